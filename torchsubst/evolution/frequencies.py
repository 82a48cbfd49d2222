r"""Equilibrium frequencies of substitution models.

The stationary distribution :math:`\pi` of a model is obtained in one of four
ways:

- ``equal``: :math:`\pi_i = 1/n`.
- ``empirical``: relative state counts observed in the data.
- ``user``: values given in the model specification.
- ``estimate``: optimized jointly with the rates, starting from the empirical
  frequencies when counts are available and from equal frequencies otherwise.
"""
from __future__ import annotations

import enum
import logging
from typing import Optional, Sequence, Union

import numpy as np
import torch

from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_FREQUENCY = 1.0e-4
FREQ_SUM_TOLERANCE = 1.0e-3


class StateFreqType(enum.Enum):
    EQUAL = 'equal'
    EMPIRICAL = 'empirical'
    USER_DEFINED = 'user'
    ESTIMATE = 'estimate'


FREQ_ALIASES = {
    'equal': StateFreqType.EQUAL,
    'fq': StateFreqType.EQUAL,
    'empirical': StateFreqType.EMPIRICAL,
    'f': StateFreqType.EMPIRICAL,
    'user': StateFreqType.USER_DEFINED,
    'fu': StateFreqType.USER_DEFINED,
    'estimate': StateFreqType.ESTIMATE,
    'fo': StateFreqType.ESTIMATE,
}


def parse_freq_type(
    freq_type: Union[str, StateFreqType, None]
) -> Optional[StateFreqType]:
    """Convert a frequency type name or alias to a :class:`StateFreqType`.

    >>> parse_freq_type('FO')
    <StateFreqType.ESTIMATE: 'estimate'>
    """
    if freq_type is None or isinstance(freq_type, StateFreqType):
        return freq_type
    try:
        return FREQ_ALIASES[freq_type.strip().lower()]
    except KeyError:
        raise ConfigurationError(
            f'Unknown frequency type `{freq_type}\'. Choose from: '
            + ', '.join(FREQ_ALIASES.keys())
        ) from None


def parse_values(string: str, what: str) -> list[float]:
    """Parse a comma separated list of numbers.

    :param str string: e.g. '0.1, 0.2,0.3'
    :param str what: description used in error messages
    """
    if string is None or string.strip() == '':
        return []
    try:
        return [float(value) for value in string.replace(' ', '').split(',')]
    except ValueError:
        raise ConfigurationError(f'Cannot parse {what} `{string}\'') from None


def check_frequencies(frequencies: Sequence[float], state_count: int) -> torch.Tensor:
    """Validate a frequency vector and return it normalized."""
    freqs = torch.as_tensor(frequencies, dtype=torch.float64).clone()
    if freqs.dim() != 1 or freqs.shape[0] != state_count:
        raise ConfigurationError(
            f'The dimension of the frequencies ({freqs.numel()}) does not match'
            f' the state count {state_count}'
        )
    if torch.any(freqs < 0.0) or not torch.all(torch.isfinite(freqs)):
        raise ConfigurationError(f'Frequencies must be nonnegative: {freqs.tolist()}')
    total = freqs.sum().item()
    if abs(total - 1.0) > FREQ_SUM_TOLERANCE:
        raise ConfigurationError(f'Frequencies sum to {total} instead of 1')
    return _floor(freqs / total)


def empirical_frequencies(state_counts: Sequence[float]) -> torch.Tensor:
    """Relative frequencies from state counts.

    Frequencies are floored at MIN_FREQUENCY so that every state remains
    reachable.
    """
    counts = np.asarray(state_counts, dtype=np.float64)
    if counts.ndim != 1 or np.any(counts < 0) or counts.sum() <= 0:
        raise ConfigurationError(f'Invalid state counts: {counts.tolist()}')
    return _floor(torch.tensor(counts / counts.sum(), dtype=torch.float64))


def resolve_frequencies(
    freq_type: StateFreqType,
    state_count: int,
    freq_params: str = '',
    state_counts: Optional[Sequence[float]] = None,
) -> Optional[torch.Tensor]:
    """Build the initial frequency vector of a model.

    :return: the frequencies or None if they depend on counts that are not
        available yet.
    """
    values = parse_values(freq_params, 'frequencies')
    if freq_type == StateFreqType.EQUAL:
        if values:
            raise ConfigurationError('Equal frequencies do not take any values')
        return torch.full((state_count,), 1.0 / state_count, dtype=torch.float64)
    elif freq_type == StateFreqType.USER_DEFINED:
        if not values:
            raise ConfigurationError('User defined frequencies require values')
        return check_frequencies(values, state_count)
    elif freq_type == StateFreqType.ESTIMATE:
        if values:
            return check_frequencies(values, state_count)
        if state_counts is not None:
            return _checked_empirical(state_counts, state_count)
        return torch.full((state_count,), 1.0 / state_count, dtype=torch.float64)
    if values:
        raise ConfigurationError('Empirical frequencies do not take any values')
    if state_counts is None:
        return None
    return _checked_empirical(state_counts, state_count)


def _checked_empirical(state_counts, state_count):
    if len(state_counts) != state_count:
        raise ConfigurationError(
            f'Expected {state_count} state counts, got {len(state_counts)}'
        )
    return empirical_frequencies(state_counts)


def _floor(freqs: torch.Tensor) -> torch.Tensor:
    if torch.any(freqs < MIN_FREQUENCY):
        logger.warning(
            'Some states have a frequency lower than {}'.format(MIN_FREQUENCY)
        )
        freqs = freqs.clamp(min=MIN_FREQUENCY)
        freqs = freqs / freqs.sum()
    return freqs
