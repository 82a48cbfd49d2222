from __future__ import annotations

import enum
import logging
from typing import Callable, NamedTuple, Optional, Sequence, Union

import numpy as np
import torch
from torch import Tensor

from ...core.abstractparameter import AbstractParameter
from ...core.errors import (
    ConfigurationError,
    NumericalInstabilityError,
    PreconditionViolation,
)
from ...core.parameter import Parameter
from ...core.utils import process_object, register_class
from ...optim.optimizer import BoundedOptimizer, MultiDimensionalOptimizer
from ...typing import ID, Buffer, Variables
from ..empirical import EmpiricalCounts
from ..frequencies import (
    StateFreqType,
    check_frequencies,
    empirical_frequencies,
    parse_freq_type,
)
from .abstract import ModelState, SubstitutionModel
from .eigen import EigenDecomposition, build_rate_matrix

logger = logging.getLogger(__name__)

MIN_RATE = 1.0e-4
MAX_RATE = 100.0
MIN_FREQ_RATIO = 1.0e-4
MAX_FREQ_RATIO = 1.0e4
TOL_RATE = 1.0e-4
ROW_SUM_TOLERANCE = 1.0e-6


class ModelFamily(enum.Enum):
    EQUAL_RATES = 'equal_rates'
    REVERSIBLE = 'reversible'
    USER_RATES = 'user_rates'


class ModelDefinition(NamedTuple):
    """Named model of a data type.

    :param name: canonical name
    :param full_name: descriptive name, usually the reference of the model
    :param family: which model class binds the definition
    :param rate_code: one character per upper triangular entry of Q, entries
        sharing a character share a rate. None means one rate per entry
    :param freq_type: default frequency type
    """

    name: str
    full_name: str
    family: ModelFamily
    rate_code: Optional[str]
    freq_type: StateFreqType


@register_class
class EqualRatesSubstitutionModel(SubstitutionModel):
    """Equal-rates model with equal frequencies over any number of states.

    JC69 for nucleotides, JC2 for binary data and the Mk model for
    morphological characters.
    """

    def __init__(
        self,
        id_: ID,
        state_count: int,
        name: str = 'JC',
        full_name: str = 'Jukes and Cantor (1969)',
    ) -> None:
        super().__init__(id_, state_count, name, full_name)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        if 'data_type' in data:
            state_count = process_object(data['data_type'], dic).state_count
        else:
            state_count = data['state_count']
        return cls(id_, state_count)


@register_class
class ReversibleSubstitutionModel(SubstitutionModel):
    r"""Reversible substitution model with rate classes.

    The :math:`n(n-1)/2` entries of the upper triangle of :math:`Q`, taken row
    by row, are mapped to :math:`K` rate classes by ``mapping``. With rates
    :math:`r_0, \dots, r_{K-1}` and frequencies :math:`\pi`:

    .. math::

        Q_{ij} = Q_{ji} \pi_i / \pi_j = r_{g(i,j)} \pi_j

    and :math:`Q` is scaled so that the expected number of substitutions per
    unit of time is 1. The rate of the class of the last entry (G-T for
    nucleotides) is the reference and is held at 1 during optimization.

    Transition matrices are computed from an eigen-decomposition of
    :math:`Q` that is cached until a rate or a frequency changes. If the
    decomposition fails, or if a transition matrix is not stochastic, the
    model logs a warning and returns equal-rates transition probabilities.

    Free parameters are exposed to optimizers as a 1-indexed vector: the free
    rates in class order, followed by :math:`\pi_i/\pi_{n-1}` for
    :math:`i < n-1` when frequencies are estimated.

    :param id_: identifier
    :param int state_count: number of states
    :param rates: rate of each class [K]
    :param frequencies: stationary distribution [n] or None when it is not
        known yet
    :param mapping: rate class of each upper triangular entry [n(n-1)/2]
    :param freq_type: how the frequencies are obtained
    :param bool fixed_rates: the rates are not optimized
    """

    def __init__(
        self,
        id_: ID,
        state_count: int,
        rates: AbstractParameter,
        frequencies: Optional[AbstractParameter] = None,
        mapping: Union[Tensor, Sequence[int], None] = None,
        freq_type: StateFreqType = StateFreqType.ESTIMATE,
        fixed_rates: bool = False,
        name: str = 'GTR',
        full_name: str = 'General time reversible',
    ) -> None:
        super().__init__(id_, state_count, name, full_name)
        entries = self.num_rate_entries()
        if mapping is None:
            mapping = torch.arange(entries)
        self.mapping = torch.as_tensor(mapping, dtype=torch.long)
        if self.mapping.shape != (entries,) or self.mapping.min() < 0:
            raise ConfigurationError(
                f'Rate mapping {self.mapping.tolist()} does not have {entries}'
                ' nonnegative entries'
            )
        class_count = int(self.mapping.max()) + 1
        if rates.shape != (class_count,):
            raise ConfigurationError(
                f'Expected {class_count} rates, got {list(rates.shape)}'
            )
        self._check_rates(rates.tensor)
        if frequencies is not None:
            check_frequencies(frequencies.tensor, state_count)
        self.freq_type = freq_type
        self.fixed_rates = fixed_rates
        self._decomposition = None
        self._fallback = False
        self._state = ModelState.UNINITIALIZED
        self._rates = rates
        self._frequencies = frequencies
        self._invalidate()

    @staticmethod
    def _check_rates(rates: Tensor) -> None:
        if torch.any(rates < 0.0) or not torch.all(torch.isfinite(rates)):
            raise ConfigurationError(f'Rates must be nonnegative: {rates.tolist()}')
        if not torch.any(rates > 0.0):
            raise ConfigurationError('At least one rate must be positive')

    @property
    def freq_type(self) -> StateFreqType:
        return self._freq_type

    @freq_type.setter
    def freq_type(self, freq_type: StateFreqType) -> None:
        self._freq_type = freq_type

    @property
    def rates(self) -> Tensor:
        """Copy of the rate of each class. Assign the Parameter to change them."""
        return self._rates.tensor.clone()

    @property
    def frequencies(self) -> Tensor:
        if self._frequencies is None:
            raise PreconditionViolation(
                f'The frequencies of model {self.name} are not resolved yet'
            )
        return self._frequencies.tensor.clone()

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def reference_class(self) -> int:
        return int(self.mapping[-1])

    def free_rate_classes(self) -> list[int]:
        if self.fixed_rates:
            return []
        return [
            rate_class
            for rate_class in range(self.rates.shape[0])
            if rate_class != self.reference_class
        ]

    def num_dimensions(self) -> int:
        ndim = len(self.free_rate_classes())
        if self.freq_type == StateFreqType.ESTIMATE:
            ndim += self.state_count - 1
        return ndim

    def _invalidate(self) -> None:
        self._decomposition = None
        self._fallback = False
        if self._frequencies is None:
            self._state = ModelState.UNINITIALIZED
        else:
            self._state = ModelState.ASSEMBLED

    def handle_model_changed(self, model, obj, index) -> None:
        pass

    def handle_parameter_changed(self, variable, index, event) -> None:
        self._invalidate()
        self.fire_model_changed()

    def q(self) -> Tensor:
        return build_rate_matrix(self.rates[self.mapping], self.frequencies)

    def decompose_rate_matrix(self) -> None:
        """Decompose the rate matrix of the current parameters.

        A failed decomposition switches the model to equal-rates transition
        probabilities until the next parameter change.
        """
        if self._state == ModelState.UNINITIALIZED:
            raise PreconditionViolation(
                f'The frequencies of model {self.name} are not resolved yet'
            )
        try:
            self._decomposition = EigenDecomposition.decompose(
                self.q(), self.frequencies
            )
            self._fallback = False
        except NumericalInstabilityError as e:
            logger.warning(
                'Model %s: %s. Using equal-rates transition probabilities',
                self.name,
                e,
            )
            self._decomposition = None
            self._fallback = True
        self._state = ModelState.DECOMPOSED

    def _ensure_decomposed(self) -> None:
        if self._state != ModelState.DECOMPOSED:
            self.decompose_rate_matrix()

    def _is_stochastic(self, P: Tensor, time: float) -> bool:
        row_sums = P.sum(-1)
        if torch.all(torch.isfinite(P)) and torch.allclose(
            row_sums, torch.ones_like(row_sums), rtol=0.0, atol=ROW_SUM_TOLERANCE
        ):
            return True
        logger.warning(
            'Model %s: rows of P(%s) sum to %s. Using equal-rates transition'
            ' probabilities',
            self.name,
            time,
            row_sums.tolist(),
        )
        return False

    def _trans_matrix(self, time: float) -> Tensor:
        self._ensure_decomposed()
        if not self._fallback:
            P = self._decomposition.trans_matrix(time)
            if self._is_stochastic(P, time):
                return P
        return super()._trans_matrix(time)

    def _trans_derv(self, time: float) -> tuple[Tensor, Tensor, Tensor]:
        self._ensure_decomposed()
        if not self._fallback:
            P, D1, D2 = self._decomposition.trans_derv(time)
            if self._is_stochastic(P, time):
                return P, D1, D2
        return super()._trans_derv(time)

    def p_t(self, branch_lengths: Tensor) -> Tensor:
        self.check_branch_lengths(branch_lengths)
        self._ensure_decomposed()
        if self._fallback:
            return super().p_t(branch_lengths)
        return self._decomposition.p_t(branch_lengths)

    def get_rate_matrix(self, rate_matrix: Buffer = None) -> Tensor:
        return self._fill(rate_matrix, self.rates[self.mapping].clone())

    def get_eigenvalues(self) -> Tensor:
        """Eigenvalues of the normalized rate matrix in ascending order."""
        self._ensure_decomposed()
        if self._fallback:
            raise NumericalInstabilityError(
                f'The rate matrix of model {self.name} could not be decomposed'
            )
        return self._decomposition.eigenvalues.clone()

    def set_state_frequency(self, frequencies: Sequence[float]) -> None:
        """Replace the stationary distribution, e.g. once empirical
        frequencies are known.

        A model with equal frequencies becomes a model with user-defined
        frequencies.
        """
        frequencies = check_frequencies(frequencies, self.state_count)
        if self.freq_type == StateFreqType.EQUAL:
            self.freq_type = StateFreqType.USER_DEFINED
        if self._frequencies is None:
            self._frequencies = Parameter(
                f'{self.id}.frequencies' if self.id else None, frequencies
            )
            self._invalidate()
            self.fire_model_changed()
        else:
            self._frequencies.tensor = frequencies

    def set_empirical_counts(
        self, counts: Union[EmpiricalCounts, Sequence[float]]
    ) -> None:
        if self.freq_type not in (StateFreqType.EMPIRICAL, StateFreqType.ESTIMATE):
            raise ConfigurationError(
                f'Model {self.name} has {self.freq_type.value} frequencies'
            )
        states = counts.states if isinstance(counts, EmpiricalCounts) else counts
        if len(states) != self.state_count:
            raise ConfigurationError(
                f'Expected {self.state_count} state counts, got {len(states)}'
            )
        self.set_state_frequency(empirical_frequencies(states))

    def get_variables(self, variables: Optional[Variables] = None) -> Variables:
        ndim = self.num_dimensions()
        if variables is None:
            variables = np.zeros(ndim + 1)
        elif len(variables) < ndim + 1:
            raise PreconditionViolation(
                f'Variables of size {len(variables)} cannot hold {ndim} parameters'
            )
        rates = self.rates
        for index, rate_class in enumerate(self.free_rate_classes(), 1):
            variables[index] = rates[rate_class].item()
        if self.freq_type == StateFreqType.ESTIMATE:
            frequencies = self.frequencies
            offset = ndim - self.state_count + 2
            variables[offset : ndim + 1] = (
                (frequencies[:-1] / frequencies[-1]).detach().numpy()
            )
        return variables

    def set_variables(self, variables: Variables) -> None:
        ndim = self.num_dimensions()
        if len(variables) < ndim + 1:
            raise PreconditionViolation(
                f'Variables of size {len(variables)} do not hold {ndim} parameters'
            )
        if self.freq_type == StateFreqType.ESTIMATE:
            offset = ndim - self.state_count + 2
            ratios = torch.tensor(
                np.asarray(variables[offset : ndim + 1], dtype=np.float64)
            )
            frequencies = torch.cat((ratios, torch.ones(1, dtype=torch.float64)))
            self._frequencies.tensor = frequencies / frequencies.sum()
        rates = self.rates.clone()
        for index, rate_class in enumerate(self.free_rate_classes(), 1):
            rates[rate_class] = float(variables[index])
        self._rates.tensor = rates

    def variable_bounds(self) -> tuple[Variables, Variables]:
        lower, upper = super().variable_bounds()
        rate_count = len(self.free_rate_classes())
        lower[1 : rate_count + 1] = MIN_RATE
        upper[1 : rate_count + 1] = MAX_RATE
        lower[rate_count + 1 :] = MIN_FREQ_RATIO
        upper[rate_count + 1 :] = MAX_FREQ_RATIO
        return lower, upper

    def optimize_parameters(
        self,
        epsilon: float,
        log_likelihood: Optional[Callable[[SubstitutionModel], float]] = None,
        optimizer: Optional[MultiDimensionalOptimizer] = None,
    ) -> float:
        """Maximize log_likelihood over the free parameters.

        If the optimizer does not converge, a warning is logged and the best
        parameters it found are kept.

        :param float epsilon: accuracy of the parameters, at least TOL_RATE
        :param log_likelihood: function returning the log-likelihood of the
            data given this model
        :param optimizer: defaults to :class:`BoundedOptimizer`
        :return: the best log-likelihood, 0.0 if there is nothing to optimize
        """
        if self.num_dimensions() == 0:
            return 0.0
        if log_likelihood is None:
            raise PreconditionViolation(
                f'Model {self.name} needs a log-likelihood function to be optimized'
            )
        if optimizer is None:
            optimizer = BoundedOptimizer()

        lower, upper = self.variable_bounds()
        variables = np.clip(self.get_variables(), lower, upper)

        def negative_log_likelihood(x: Variables) -> float:
            self.set_variables(x)
            self.decompose_rate_matrix()
            return -float(log_likelihood(self))

        result = optimizer.minimize(
            negative_log_likelihood, variables, lower, upper, max(epsilon, TOL_RATE)
        )
        if not result.converged:
            logger.warning(
                'Model %s: optimizer did not converge after %d evaluations,'
                ' keeping the best parameters (log-likelihood %f)',
                self.name,
                result.evaluations,
                -result.value,
            )
        self.set_variables(result.variables)
        self.decompose_rate_matrix()
        return -result.value

    def write_info(self) -> None:
        super().write_info()
        logger.info(
            'Rates: %s',
            ' '.join(f'{rate:.5f}' for rate in self.get_rate_matrix().tolist()),
        )
        if self._frequencies is not None:
            logger.info(
                'State frequencies: %s',
                ' '.join(f'{freq:.5f}' for freq in self.frequencies.tolist()),
            )

    @classmethod
    def from_json(cls, data, dic):
        r"""Creates a ReversibleSubstitutionModel from a dictionary.

        **JSON attributes**:

         Mandatory:
          - id (str): identifier.
          - rates (dict or str): rate of each class.
          - frequencies (dict or str): stationary distribution.

         Optional:
          - mapping (list): rate class of each upper triangular entry.
            Default: one class per entry.
          - freq_type (str): frequency type. Default: estimate.
          - fixed_rates (bool): do not optimize the rates. Default: false.
          - name (str): name of the model. Default: GTR.

        **JSON Examples**

        .. code-block:: json

          {
            "id": "hky",
            "type": "ReversibleSubstitutionModel",
            "rates": {"id": "kappa", "type": "Parameter", "tensor": [1.0, 3.0]},
            "frequencies": {
              "id": "freqs",
              "type": "Parameter",
              "tensor": [0.25, 0.25, 0.25, 0.25]
            },
            "mapping": [0, 1, 0, 0, 1, 0]
          }
        """
        id_ = data['id']
        rates = process_object(data['rates'], dic)
        frequencies = process_object(data['frequencies'], dic)
        mapping = data.get('mapping', None)
        freq_type = parse_freq_type(data.get('freq_type', 'estimate'))
        return cls(
            id_,
            frequencies.shape[0],
            rates,
            frequencies,
            mapping,
            freq_type,
            data.get('fixed_rates', False),
            data.get('name', 'GTR'),
        )
