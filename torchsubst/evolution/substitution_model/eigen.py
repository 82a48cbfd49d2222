r"""Eigen-decomposition of reversible rate matrices.

A reversible rate matrix :math:`Q` with stationary distribution :math:`\pi` is
similar to the symmetric matrix :math:`S = \Pi^{1/2} Q \Pi^{-1/2}`, where
:math:`\Pi` is the diagonal matrix of :math:`\pi`. With :math:`S = v \Lambda v^T`:

.. math::

    Q = U \Lambda V, \quad U = \Pi^{-1/2} v, \quad V = v^T \Pi^{1/2}

    P(t) = U e^{\Lambda t} V, \quad
    \frac{dP}{dt} = U \Lambda e^{\Lambda t} V, \quad
    \frac{d^2P}{dt^2} = U \Lambda^2 e^{\Lambda t} V
"""
from __future__ import annotations

import torch
import torch.linalg
from torch import Tensor

from ...core.errors import NumericalInstabilityError

EIGEN_TOLERANCE = 1.0e-8


def build_rate_matrix(
    rates: Tensor, frequencies: Tensor, normalize: bool = True
) -> Tensor:
    r"""Assemble a reversible rate matrix :math:`Q_{ij} = r_{ij} \pi_j`.

    :param rates: exchangeability of each upper triangular entry, row by row
        [n(n-1)/2]
    :param frequencies: stationary distribution [n]
    :param bool normalize: scale Q so that the mean rate
        :math:`-\sum_i \pi_i Q_{ii}` is 1
    """
    state_count = frequencies.shape[-1]
    indices = torch.triu_indices(state_count, state_count, 1)
    R = torch.zeros((state_count, state_count), dtype=torch.float64)
    R[indices[0], indices[1]] = rates
    R[indices[1], indices[0]] = rates
    Q = R * frequencies
    Q[range(state_count), range(state_count)] = -torch.sum(Q, dim=-1)
    if normalize:
        norm = -torch.sum(torch.diagonal(Q) * frequencies)
        if not norm > 0.0:
            raise NumericalInstabilityError(f'Rate matrix has mean rate {norm}')
        Q = Q / norm
    return Q


class EigenDecomposition:
    """Spectral decomposition Q = U diag(eigenvalues) V of a reversible
    rate matrix."""

    def __init__(
        self, eigenvalues: Tensor, eigenvectors: Tensor, inv_eigenvectors: Tensor
    ) -> None:
        self.eigenvalues = eigenvalues
        self.eigenvectors = eigenvectors
        self.inv_eigenvectors = inv_eigenvectors

    @classmethod
    def decompose(
        cls, Q: Tensor, frequencies: Tensor, tolerance: float = EIGEN_TOLERANCE
    ) -> EigenDecomposition:
        """Decompose Q through its symmetrized form.

        Eigenvalues in (0, tolerance] are rounding noise and set to 0. The
        largest eigenvalue belongs to the stationary distribution and is
        exactly 0.

        :raises NumericalInstabilityError: if Q is not finite, does not
            satisfy detailed balance with the frequencies, or has an
            eigenvalue larger than tolerance
        """
        sqrt_pi = frequencies.sqrt()
        S = sqrt_pi.unsqueeze(-1) * Q / sqrt_pi
        if not torch.all(torch.isfinite(S)):
            raise NumericalInstabilityError('Rate matrix is not finite')
        scale = max(1.0, S.abs().max().item())
        if (S - S.t()).abs().max().item() > tolerance * scale:
            raise NumericalInstabilityError(
                'Rate matrix does not satisfy detailed balance'
            )
        e, v = torch.linalg.eigh(0.5 * (S + S.t()))
        if e[-1].item() > tolerance:
            raise NumericalInstabilityError(
                f'Rate matrix has a positive eigenvalue {e[-1].item()}'
            )
        e = e.clamp(max=0.0)
        e[-1] = 0.0
        return cls(e, v / sqrt_pi.unsqueeze(-1), v.t() * sqrt_pi)

    def trans_matrix(self, time: float) -> Tensor:
        expt = torch.exp(self.eigenvalues * time)
        return (self.eigenvectors * expt) @ self.inv_eigenvectors

    def trans_derv(self, time: float) -> tuple[Tensor, Tensor, Tensor]:
        expt = torch.exp(self.eigenvalues * time)
        derv1 = self.eigenvalues * expt
        derv2 = self.eigenvalues * derv1
        return (
            self.trans_matrix(time),
            (self.eigenvectors * derv1) @ self.inv_eigenvectors,
            (self.eigenvectors * derv2) @ self.inv_eigenvectors,
        )

    def p_t(self, branch_lengths: Tensor) -> Tensor:
        """Transition matrices for a batch of branch lengths [...,1]."""
        expt = torch.exp(self.eigenvalues * branch_lengths).unsqueeze(-2)
        return (self.eigenvectors * expt) @ self.inv_eigenvectors
