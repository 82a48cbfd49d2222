from __future__ import annotations

import enum
import logging
import math
from typing import Callable, Optional

import numpy as np
import torch
from torch import Tensor

from ...core.errors import PreconditionViolation
from ...core.model import Model
from ...typing import ID, Buffer, Variables
from ..frequencies import StateFreqType

logger = logging.getLogger(__name__)


class ModelState(enum.Enum):
    """Life cycle of the eigen-decomposition of a model.

    ASSEMBLED means Q and the frequencies are known but the decomposition is
    stale and is recomputed before the next query.
    """

    UNINITIALIZED = 0
    ASSEMBLED = 1
    DECOMPOSED = 2


class SubstitutionModel(Model):
    r"""Substitution model over a finite state space.

    Models derived from this class only need to override the hooks they
    change. The defaults implement the equal-rates (Jukes-Cantor type) model
    over :math:`n` states, valid for all kinds of data:

    .. math::

        P_{ii}(t) = \frac{1}{n} + \frac{n-1}{n} e^{-\frac{n}{n-1} t}, \quad
        P_{ij}(t) = \frac{1}{n} - \frac{1}{n} e^{-\frac{n}{n-1} t}

    Transition matrices are float64 tensors. Every ``compute_*`` method
    accepts optional output buffers (flat or square); a buffer is filled in
    place and returned, otherwise a new tensor owned by the caller is returned.

    :param id_: identifier
    :param int state_count: number of states, e.g. 2 for binary data, 4 for DNA
    :param str name: short name of the model
    :param str full_name: descriptive name of the model
    """

    def __init__(
        self, id_: ID, state_count: int, name: str = '', full_name: str = ''
    ) -> None:
        super().__init__(id_)
        if state_count < 2:
            raise PreconditionViolation(
                f'A substitution model needs at least 2 states, got {state_count}'
            )
        self.state_count = state_count
        self.name = name
        self.full_name = full_name

    @property
    def frequencies(self) -> Tensor:
        return torch.full(
            (self.state_count,), 1.0 / self.state_count, dtype=torch.float64
        )

    @property
    def freq_type(self) -> StateFreqType:
        return StateFreqType.EQUAL

    @property
    def state(self) -> ModelState:
        return ModelState.DECOMPOSED

    def get_freq_type(self) -> StateFreqType:
        return self.freq_type

    def num_dimensions(self) -> int:
        """Number of free parameters exposed to the optimizer."""
        return 0

    def is_reversible(self) -> bool:
        return True

    def is_site_specific_model(self) -> bool:
        return False

    def num_rate_entries(self) -> int:
        """Number of entries in the upper triangle of the rate matrix."""
        return self.state_count * (self.state_count - 1) // 2

    def trans_matrix_size(self) -> int:
        return self.state_count * self.state_count

    def get_ptn_model_id(self, ptn: int) -> int:
        """Model ID of a site pattern, always 0 for a single model."""
        return 0

    def new_trans_matrix(self) -> Tensor:
        """Allocate a flat buffer large enough for a transition matrix."""
        return torch.zeros(self.trans_matrix_size(), dtype=torch.float64)

    @staticmethod
    def check_time(time: float) -> float:
        time = float(time)
        if not 0.0 <= time < math.inf:
            raise PreconditionViolation(
                f'Time must be finite and nonnegative, got {time}'
            )
        return time

    @staticmethod
    def check_branch_lengths(branch_lengths: Tensor) -> None:
        valid = (branch_lengths >= 0.0) & torch.isfinite(branch_lengths)
        if not torch.all(valid):
            raise PreconditionViolation(
                'Branch lengths must be finite and nonnegative'
            )

    def _check_states(self, *states: int) -> None:
        for state in states:
            if not 0 <= state < self.state_count:
                raise PreconditionViolation(
                    f'State {state} is not in [0, {self.state_count})'
                )

    @staticmethod
    def _fill(buffer: Buffer, tensor: Tensor) -> Tensor:
        if buffer is None:
            return tensor
        if buffer.numel() != tensor.numel():
            raise PreconditionViolation(
                f'Buffer of size {buffer.numel()} cannot hold {tensor.numel()} values'
            )
        buffer.copy_(tensor.reshape(buffer.shape))
        return buffer

    def _trans_matrix(self, time: float) -> Tensor:
        n = self.state_count
        expt = math.exp(-n / (n - 1.0) * time)
        P = torch.full((n, n), 1.0 / n - expt / n, dtype=torch.float64)
        P.fill_diagonal_(1.0 / n + (n - 1.0) / n * expt)
        return P

    def _trans_derv(self, time: float) -> tuple[Tensor, Tensor, Tensor]:
        n = self.state_count
        beta = n / (n - 1.0)
        expt = math.exp(-beta * time)
        D1 = torch.full((n, n), expt / (n - 1.0), dtype=torch.float64)
        D1.fill_diagonal_(-expt)
        D2 = torch.full((n, n), -beta * expt / (n - 1.0), dtype=torch.float64)
        D2.fill_diagonal_(beta * expt)
        return self._trans_matrix(time), D1, D2

    def compute_trans_matrix(
        self, time: float, trans_matrix: Buffer = None, model_id: int = None
    ) -> Tensor:
        """Compute the transition probability matrix P(time) = exp(Q time).

        :param float time: time between two events
        :param trans_matrix: (OUT) buffer of size num_states * num_states
        :param model_id: ignored by single models
        :return: transition matrix
        """
        time = self.check_time(time)
        return self._fill(trans_matrix, self._trans_matrix(time))

    def compute_trans_matrix_freq(
        self, time: float, trans_matrix: Buffer = None
    ) -> Tensor:
        """Transition matrix whose row i is multiplied by the frequency of
        state i."""
        time = self.check_time(time)
        P = self._trans_matrix(time) * self.frequencies.unsqueeze(-1)
        return self._fill(trans_matrix, P)

    def compute_trans(
        self, time: float, state1: int, state2: int, model_id: int = None
    ) -> float:
        """Probability of being in state2 after time starting from state1."""
        time = self.check_time(time)
        self._check_states(state1, state2)
        return self._trans_matrix(time)[state1, state2].item()

    def compute_trans_derivatives(
        self, time: float, state1: int, state2: int, model_id: int = None
    ) -> tuple[float, float, float]:
        """Transition probability and its first and second derivatives with
        respect to time.

        :return: tuple (probability, 1st derivative, 2nd derivative)
        """
        time = self.check_time(time)
        self._check_states(state1, state2)
        P, D1, D2 = self._trans_derv(time)
        return (
            P[state1, state2].item(),
            D1[state1, state2].item(),
            D2[state1, state2].item(),
        )

    def compute_trans_derv(
        self,
        time: float,
        trans_matrix: Buffer = None,
        trans_derv1: Buffer = None,
        trans_derv2: Buffer = None,
    ) -> tuple[Tensor, Tensor, Tensor]:
        """Compute the transition matrix and its 1st and 2nd derivatives."""
        time = self.check_time(time)
        P, D1, D2 = self._trans_derv(time)
        return (
            self._fill(trans_matrix, P),
            self._fill(trans_derv1, D1),
            self._fill(trans_derv2, D2),
        )

    def compute_trans_derv_freq(
        self,
        time: float,
        rate_val: float,
        trans_matrix: Buffer = None,
        trans_derv1: Buffer = None,
        trans_derv2: Buffer = None,
    ) -> tuple[Tensor, Tensor, Tensor]:
        """Matrices of :meth:`compute_trans_derv` at time * rate_val, with
        derivatives taken with respect to time, and row i multiplied by the
        frequency of state i."""
        time = self.check_time(time * rate_val)
        P, D1, D2 = self._trans_derv(time)
        freqs = self.frequencies.unsqueeze(-1)
        return (
            self._fill(trans_matrix, P * freqs),
            self._fill(trans_derv1, D1 * (freqs * rate_val)),
            self._fill(trans_derv2, D2 * (freqs * rate_val * rate_val)),
        )

    def p_t(self, branch_lengths: Tensor) -> Tensor:
        """Calculate transition probability matrices.

        :param branch_lengths: tensor of branch lengths [...,1]
        :return: tensor of probability matrices [...,n,n]
        """
        self.check_branch_lengths(branch_lengths)
        n = self.state_count
        d = torch.unsqueeze(branch_lengths, -1)
        expt = torch.exp(-n / (n - 1.0) * d)
        a = 1.0 / n + (n - 1.0) / n * expt
        b = 1.0 / n - expt / n
        identity = torch.eye(n, dtype=branch_lengths.dtype)
        return a * identity + b * (1.0 - identity)

    def q(self) -> Tensor:
        n = self.state_count
        Q = torch.full((n, n), 1.0 / (n - 1), dtype=torch.float64)
        Q.fill_diagonal_(-1.0)
        return Q

    def get_rate_matrix(self, rate_matrix: Buffer = None) -> Tensor:
        """Upper triangle of the rate matrix, row by row."""
        return self._fill(
            rate_matrix, torch.ones(self.num_rate_entries(), dtype=torch.float64)
        )

    def get_q_matrix(self, q_matrix: Buffer = None) -> Tensor:
        return self._fill(q_matrix, self.q())

    def get_state_frequency(self, state_freq: Buffer = None) -> Tensor:
        return self._fill(state_freq, self.frequencies.clone())

    def decompose_rate_matrix(self) -> None:
        pass

    def optimize_parameters(
        self,
        epsilon: float,
        log_likelihood: Optional[Callable[['SubstitutionModel'], float]] = None,
        optimizer=None,
    ) -> float:
        """Optimize the model parameters.

        There is nothing to optimize in an equal-rates model.

        :param float epsilon: accuracy of the parameters
        :param log_likelihood: function returning the log-likelihood of the
            data given this model
        :param optimizer: a MultiDimensionalOptimizer
        :return: the best log-likelihood
        """
        return 0.0

    def set_variables(self, variables: Variables) -> None:
        """Assign the model parameters from variables, indexed from 1."""
        pass

    def get_variables(self, variables: Optional[Variables] = None) -> Variables:
        """Pack the model parameters into variables, indexed from 1."""
        if variables is None:
            variables = np.zeros(self.num_dimensions() + 1)
        return variables

    def variable_bounds(self) -> tuple[Variables, Variables]:
        """Lower and upper bounds of the variables, indexed from 1."""
        ndim = self.num_dimensions()
        return np.zeros(ndim + 1), np.zeros(ndim + 1)

    def write_info(self) -> None:
        logger.info(
            'Model %s (%s): %d states, %s frequencies',
            self.name,
            self.full_name,
            self.state_count,
            self.freq_type.value,
        )

    def handle_model_changed(self, model, obj, index) -> None:
        pass

    def handle_parameter_changed(self, variable, index, event) -> None:
        pass
