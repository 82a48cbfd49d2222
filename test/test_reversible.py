import logging

import numpy as np
import pytest
import torch

from torchsubst import Parameter
from torchsubst.core.errors import NumericalInstabilityError, PreconditionViolation
from torchsubst.evolution.empirical import EmpiricalCounts
from torchsubst.evolution.frequencies import StateFreqType
from torchsubst.evolution.substitution_model import (
    EigenDecomposition,
    EqualRatesSubstitutionModel,
    ModelState,
    ReversibleSubstitutionModel,
)
from torchsubst.evolution.substitution_model.eigen import build_rate_matrix
from torchsubst.evolution.substitution_model.general import MAX_RATE, MIN_RATE
from torchsubst.optim.optimizer import MultiDimensionalOptimizer, OptimizationResult

GTR_RATES = [0.060602, 0.402732, 0.028230, 0.047910, 0.407249, 0.053277]
FREQUENCIES = [0.479367, 0.172572, 0.140933, 0.207128]
GTR_P_01 = [
    [0.93717830, 0.009506685, 0.047505899, 0.005809115],
    [0.02640748, 0.894078744, 0.006448058, 0.073065722],
    [0.16158572, 0.007895626, 0.820605951, 0.009912704],
    [0.01344433, 0.060875872, 0.006744752, 0.918935042],
]
HKY_P = [
    [
        [0.93211187, 0.01511617, 0.03462891, 0.01814305],
        [0.04198939, 0.89405292, 0.01234480, 0.05161289],
        [0.11778615, 0.01511617, 0.84895463, 0.01814305],
        [0.04198939, 0.04300210, 0.01234480, 0.90266370],
    ],
    [
        [0.9992649548, 0.0001581235, 0.0003871353, 0.0001897863],
        [0.0004392323, 0.9988625812, 0.0001291335, 0.0005690531],
        [0.0013167952, 0.0001581235, 0.9983352949, 0.0001897863],
        [0.0004392323, 0.0004741156, 0.0001291335, 0.9989575186],
    ],
]


def test_GTR(gtr_model):
    P = gtr_model.compute_trans_matrix(0.1)
    assert torch.allclose(P, torch.tensor(GTR_P_01, dtype=torch.float64), rtol=1e-05)

    subst_model = ReversibleSubstitutionModel.from_json(
        {
            'id': 'gtr',
            'type': 'ReversibleSubstitutionModel',
            'rates': {'id': 'rates', 'type': 'Parameter', 'tensor': GTR_RATES},
            'frequencies': {'id': 'pi', 'type': 'Parameter', 'tensor': FREQUENCIES},
        },
        {},
    )
    P = subst_model.p_t(torch.tensor([[0.1]], dtype=torch.float64))
    assert torch.allclose(
        P.squeeze(), torch.tensor(GTR_P_01, dtype=torch.float64), rtol=1e-05
    )


def test_HKY(hky_model):
    for t, expected in zip((0.1, 0.001), HKY_P):
        P = hky_model.compute_trans_matrix(t)
        assert torch.allclose(P, torch.tensor(expected, dtype=torch.float64), atol=1e-06)

    P = hky_model.p_t(torch.tensor([[0.1], [0.001]], dtype=torch.float64))
    assert torch.allclose(P, torch.tensor(HKY_P, dtype=torch.float64), atol=1e-06)


@pytest.mark.parametrize("t", [0.0, 1e-6, 0.05, 0.5, 2.0, 50.0])
def test_row_sums(gtr_model, hky_model, t):
    for model in (gtr_model, hky_model):
        P = model.compute_trans_matrix(t)
        assert torch.allclose(P.sum(-1), torch.ones(4, dtype=torch.float64), atol=1e-9)
        assert torch.all(P >= -1e-12)


def test_identity_and_stationary_limit(gtr_model):
    P = gtr_model.compute_trans_matrix(0.0)
    assert torch.allclose(P, torch.eye(4, dtype=torch.float64), atol=1e-9)
    P = gtr_model.compute_trans_matrix(1000.0)
    pi = torch.tensor(FREQUENCIES, dtype=torch.float64)
    assert torch.allclose(P, pi.expand(4, 4), atol=1e-8)


@pytest.mark.parametrize("t", [1.0e6, 1.0e12])
def test_long_time_rows_are_frequencies(gtr_model, hky_model, caplog, t):
    pi = torch.tensor(FREQUENCIES, dtype=torch.float64)
    with caplog.at_level(logging.WARNING):
        for model in (gtr_model, hky_model):
            P = model.compute_trans_matrix(t)
            assert torch.allclose(P, pi.expand(4, 4), atol=1e-8)
    assert caplog.text == ''


def test_infinite_time(gtr_model):
    with pytest.raises(PreconditionViolation):
        gtr_model.compute_trans_matrix(float('inf'))
    with pytest.raises(PreconditionViolation):
        gtr_model.compute_trans_derv(float('inf'))
    with pytest.raises(PreconditionViolation):
        gtr_model.p_t(torch.tensor([[0.1], [float('inf')]]))


@pytest.mark.parametrize("t", [0.0, 0.02, 0.7])
def test_compute_trans_matches_matrix(gtr_model, t):
    P = gtr_model.compute_trans_matrix(t)
    for i in range(4):
        for j in range(4):
            assert gtr_model.compute_trans(t, i, j) == P[i, j].item()


@pytest.mark.parametrize("t", [0.01, 0.1, 1.0])
def test_derivatives_finite_differences(gtr_model, t):
    h = 1e-5
    P, D1, D2 = gtr_model.compute_trans_derv(t)
    P_plus = gtr_model.compute_trans_matrix(t + h)
    P_minus = gtr_model.compute_trans_matrix(t - h)
    assert torch.allclose(D1, (P_plus - P_minus) / (2 * h), atol=1e-6)
    assert torch.allclose(D2, (P_plus - 2 * P + P_minus) / (h * h), atol=1e-4)

    p, d1, d2 = gtr_model.compute_trans_derivatives(t, 2, 0)
    assert (p, d1, d2) == (P[2, 0].item(), D1[2, 0].item(), D2[2, 0].item())


@pytest.mark.parametrize("n", [2, 4, 6])
def test_equal_rates_reproduce_closed_form(n):
    entries = n * (n - 1) // 2
    reversible = ReversibleSubstitutionModel(
        None,
        n,
        Parameter(None, torch.full((entries,), 2.5, dtype=torch.float64)),
        Parameter(None, torch.full((n,), 1.0 / n, dtype=torch.float64)),
    )
    closed_form = EqualRatesSubstitutionModel(None, n)
    for t in (0.0, 0.001, 0.1, 1.0, 10.0):
        assert torch.allclose(
            reversible.compute_trans_matrix(t),
            closed_form.compute_trans_matrix(t),
            atol=1e-9,
            rtol=0.0,
        )
        for P, expected in zip(
            reversible.compute_trans_derv(t), closed_form.compute_trans_derv(t)
        ):
            assert torch.allclose(P, expected, atol=1e-9, rtol=0.0)


def test_decomposition_reproducible(gtr_model):
    eigenvalues = gtr_model.get_eigenvalues()
    P = gtr_model.compute_trans_matrix(0.3)
    gtr_model.set_variables(gtr_model.get_variables())
    assert gtr_model.state == ModelState.ASSEMBLED
    gtr_model.decompose_rate_matrix()
    assert torch.allclose(gtr_model.get_eigenvalues(), eigenvalues, atol=1e-12)
    assert torch.allclose(gtr_model.compute_trans_matrix(0.3), P, atol=1e-12)


def test_rate_matrix_round_trip(gtr_model):
    Q = build_rate_matrix(gtr_model.get_rate_matrix(), gtr_model.get_state_frequency())
    decomposition = EigenDecomposition.decompose(Q, gtr_model.get_state_frequency())
    assert torch.allclose(
        decomposition.eigenvalues, gtr_model.get_eigenvalues(), atol=1e-9
    )
    assert torch.allclose(Q, gtr_model.get_q_matrix(), atol=1e-12)


def test_eigenvalues(gtr_model):
    eigenvalues = gtr_model.get_eigenvalues()
    expected = torch.sort(torch.linalg.eigvals(gtr_model.q()).real)[0]
    assert torch.allclose(eigenvalues, expected, atol=1e-9)
    assert eigenvalues[-1].item() == pytest.approx(0.0, abs=1e-12)
    eigenvalues[0] = 10.0
    assert gtr_model.get_eigenvalues()[0].item() != 10.0


def test_q_normalized(hky_model):
    Q = hky_model.q()
    pi = torch.tensor(FREQUENCIES, dtype=torch.float64)
    assert torch.allclose(Q.sum(-1), torch.zeros(4, dtype=torch.float64), atol=1e-12)
    assert -(Q.diagonal() * pi).sum().item() == pytest.approx(1.0)
    assert torch.allclose(pi.unsqueeze(-1) * Q, (pi.unsqueeze(-1) * Q).t())


def test_decompose_positive_eigenvalue():
    Q = torch.tensor([[1.0, -1.0], [-1.0, 1.0]], dtype=torch.float64)
    with pytest.raises(NumericalInstabilityError):
        EigenDecomposition.decompose(Q, torch.tensor([0.5, 0.5], dtype=torch.float64))


def test_decompose_detailed_balance():
    Q = torch.tensor(
        [[-1.0, 0.5, 0.5], [0.1, -0.2, 0.1], [0.3, 0.3, -0.6]], dtype=torch.float64
    )
    with pytest.raises(NumericalInstabilityError):
        EigenDecomposition.decompose(Q, torch.full((3,), 1.0 / 3, dtype=torch.float64))


def test_fallback_on_failed_decomposition(gtr_model, monkeypatch, caplog):
    def decompose(cls, Q, frequencies):
        raise NumericalInstabilityError('corrupted')

    monkeypatch.setattr(EigenDecomposition, 'decompose', classmethod(decompose))
    with caplog.at_level(logging.WARNING):
        P = gtr_model.compute_trans_matrix(0.1)
    assert 'corrupted' in caplog.text
    assert gtr_model.state == ModelState.DECOMPOSED
    assert torch.equal(
        P, EqualRatesSubstitutionModel(None, 4).compute_trans_matrix(0.1)
    )
    with pytest.raises(NumericalInstabilityError):
        gtr_model.get_eigenvalues()


def test_fallback_on_row_sums(gtr_model, monkeypatch, caplog):
    monkeypatch.setattr(
        EigenDecomposition,
        'trans_matrix',
        lambda self, time: torch.full((4, 4), 0.5, dtype=torch.float64),
    )
    with caplog.at_level(logging.WARNING):
        P = gtr_model.compute_trans_matrix(0.1)
    assert 'sum to' in caplog.text
    assert torch.allclose(P.sum(-1), torch.ones(4, dtype=torch.float64))


def test_parameter_change_invalidates():
    rates = Parameter('rates', torch.tensor(GTR_RATES, dtype=torch.float64))
    pi = Parameter('pi', torch.tensor(FREQUENCIES, dtype=torch.float64))
    model = ReversibleSubstitutionModel('gtr', 4, rates, pi)

    class Listener:
        def __init__(self):
            self.calls = 0

        def handle_model_changed(self, model, obj, index):
            self.calls += 1

    listener = Listener()
    model.add_model_listener(listener)

    P = model.compute_trans_matrix(0.1)
    assert model.state == ModelState.DECOMPOSED
    rates.tensor = torch.ones(6, dtype=torch.float64)
    assert model.state == ModelState.ASSEMBLED
    assert listener.calls == 1
    assert not torch.allclose(model.compute_trans_matrix(0.1), P)

    pi.tensor = torch.full((4,), 0.25, dtype=torch.float64)
    assert model.state == ModelState.ASSEMBLED
    assert torch.allclose(
        model.compute_trans_matrix(0.1),
        EqualRatesSubstitutionModel(None, 4).compute_trans_matrix(0.1),
        atol=1e-9,
    )


def test_unresolved_frequencies():
    model = ReversibleSubstitutionModel(
        'hky',
        4,
        Parameter(None, torch.tensor([1.0, 2.0], dtype=torch.float64)),
        None,
        [0, 1, 0, 0, 1, 0],
        StateFreqType.EMPIRICAL,
    )
    assert model.state == ModelState.UNINITIALIZED
    with pytest.raises(PreconditionViolation):
        model.compute_trans_matrix(0.1)
    with pytest.raises(PreconditionViolation):
        model.get_state_frequency()

    model.set_empirical_counts(EmpiricalCounts(np.array([10.0, 20.0, 30.0, 40.0])))
    assert model.state == ModelState.ASSEMBLED
    assert torch.allclose(
        model.get_state_frequency(),
        torch.tensor([0.1, 0.2, 0.3, 0.4], dtype=torch.float64),
    )
    P = model.compute_trans_matrix(0.1)
    assert torch.allclose(P.sum(-1), torch.ones(4, dtype=torch.float64), atol=1e-9)


def test_set_state_frequency(hky_model):
    hky_model.compute_trans_matrix(0.1)
    hky_model.set_state_frequency([0.25, 0.25, 0.25, 0.25])
    assert hky_model.state == ModelState.ASSEMBLED
    assert torch.allclose(
        hky_model.get_state_frequency(), torch.full((4,), 0.25, dtype=torch.float64)
    )


def test_set_state_frequency_of_equal_frequencies_model():
    model = ReversibleSubstitutionModel(
        'k80',
        4,
        Parameter(None, torch.tensor([1.0, 2.0], dtype=torch.float64)),
        Parameter(None, torch.full((4,), 0.25, dtype=torch.float64)),
        mapping=[0, 1, 0, 0, 1, 0],
        freq_type=StateFreqType.EQUAL,
        name='K80',
    )
    model.set_state_frequency(FREQUENCIES)
    assert model.get_freq_type() == StateFreqType.USER_DEFINED
    assert model.num_dimensions() == 1


def test_rates_are_copies(hky_model):
    P = hky_model.compute_trans_matrix(0.1)
    hky_model.rates[1] = 5.0
    hky_model.frequencies[0] = 0.9
    assert hky_model.state == ModelState.DECOMPOSED
    assert hky_model.rates.tolist() == [1.0, 3.0]
    assert torch.equal(hky_model.compute_trans_matrix(0.1), P)

    hky_model._rates.tensor = torch.tensor([1.0, 5.0], dtype=torch.float64)
    assert not torch.allclose(hky_model.compute_trans_matrix(0.1), P)


def test_packing_layout(hky_model):
    # kappa, then pi_A/pi_T, pi_C/pi_T, pi_G/pi_T
    assert hky_model.num_dimensions() == 4
    variables = hky_model.get_variables()
    assert variables.shape == (5,)
    pi = np.array(FREQUENCIES)
    np.testing.assert_allclose(variables[1:], [3.0] + list(pi[:3] / pi[3]))

    lower, upper = hky_model.variable_bounds()
    np.testing.assert_allclose(lower[1:2], [MIN_RATE])
    np.testing.assert_allclose(upper[1:2], [MAX_RATE])
    assert np.all(lower[2:] > 0.0)

    variables[1] = 2.0
    variables[2:] = 1.0
    hky_model.set_variables(variables)
    assert hky_model.rates.tolist() == [1.0, 2.0]
    assert torch.allclose(
        hky_model.get_state_frequency(), torch.full((4,), 0.25, dtype=torch.float64)
    )


def test_set_variables_keeps_fixed_frequencies():
    pi = torch.tensor(FREQUENCIES, dtype=torch.float64)
    model = ReversibleSubstitutionModel(
        None,
        4,
        Parameter(None, torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)),
        Parameter(None, pi.clone()),
        [0, 1, 0, 0, 2, 0],
        StateFreqType.EMPIRICAL,
    )
    assert model.num_dimensions() == 2
    model.set_variables(np.array([0.0, 4.0, 5.0]))
    assert model.rates.tolist() == [1.0, 4.0, 5.0]
    assert torch.equal(model.get_state_frequency(), pi)


def test_fixed_rates():
    model = ReversibleSubstitutionModel(
        None,
        4,
        Parameter(None, torch.tensor([1.0, 2.0], dtype=torch.float64)),
        Parameter(None, torch.tensor(FREQUENCIES, dtype=torch.float64)),
        [0, 1, 0, 0, 1, 0],
        StateFreqType.USER_DEFINED,
        fixed_rates=True,
    )
    assert model.num_dimensions() == 0
    assert model.optimize_parameters(0.01, lambda m: 1.0) == 0.0


def test_optimize_rates():
    model = ReversibleSubstitutionModel(
        'hky',
        4,
        Parameter(None, torch.tensor([1.0, 1.0], dtype=torch.float64)),
        Parameter(None, torch.tensor(FREQUENCIES, dtype=torch.float64)),
        [0, 1, 0, 0, 1, 0],
        StateFreqType.EMPIRICAL,
    )

    def log_likelihood(m):
        return -((m.rates[1].item() - 4.0) ** 2)

    best = model.optimize_parameters(1e-6, log_likelihood)
    assert model.rates[1].item() == pytest.approx(4.0, abs=1e-2)
    assert best == pytest.approx(0.0, abs=1e-3)
    assert model.state == ModelState.DECOMPOSED


def test_optimize_rates_and_frequencies():
    target = torch.tensor([0.1, 0.2, 0.3, 0.4], dtype=torch.float64)
    model = ReversibleSubstitutionModel(
        'hky',
        4,
        Parameter(None, torch.tensor([1.0, 1.0], dtype=torch.float64)),
        Parameter(None, torch.full((4,), 0.25, dtype=torch.float64)),
        [0, 1, 0, 0, 1, 0],
    )

    def log_likelihood(m):
        kappa = m.rates[1].item()
        pi = m.get_state_frequency()
        return -((kappa - 2.0) ** 2) - 10.0 * torch.sum((pi - target) ** 2).item()

    model.optimize_parameters(1e-4, log_likelihood)
    assert model.rates[1].item() == pytest.approx(2.0, abs=0.05)
    assert torch.allclose(model.get_state_frequency(), target, atol=0.01)


def test_optimize_not_converged(hky_model, caplog):
    class Budget(MultiDimensionalOptimizer):
        def minimize(self, function, variables, lower, upper, tolerance):
            best = variables.copy()
            best[1] = 5.0
            return OptimizationResult(best, function(best), False, 1)

    with caplog.at_level(logging.WARNING):
        hky_model.optimize_parameters(
            0.01, lambda m: -m.rates[1].item(), optimizer=Budget()
        )
    assert 'did not converge' in caplog.text
    assert hky_model.rates[1].item() == 5.0


def test_optimize_requires_likelihood(hky_model):
    with pytest.raises(PreconditionViolation):
        hky_model.optimize_parameters(0.01)


def test_write_info(hky_model, caplog):
    with caplog.at_level(logging.INFO):
        hky_model.write_info()
    assert 'HKY' in caplog.text
    assert 'State frequencies' in caplog.text
