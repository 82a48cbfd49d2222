"""Counts observed in sequence data.

Models never look at sequences: bindings consume an :class:`EmpiricalCounts`
object, built here or supplied by the caller.
"""
from __future__ import annotations

import collections
from typing import Any, NamedTuple, Optional, Sequence

import numpy as np

from ..core.errors import ConfigurationError
from .datatype import DataType


class EmpiricalCounts(NamedTuple):
    """State and state-pair counts.

    :param states: number of occurrences of each state [n]
    :param pairs: pairs[i, j] is the number of times state i and state j
        are observed at the same site of two sequences [n, n]
    """

    states: np.ndarray
    pairs: Optional[np.ndarray] = None

    @property
    def state_count(self) -> int:
        return self.states.shape[0]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmpiricalCounts:
        states = np.asarray(data['states'], dtype=np.float64)
        pairs = data.get('pairs', None)
        if pairs is not None:
            pairs = np.asarray(pairs, dtype=np.float64)
            if pairs.shape != (states.shape[0],) * 2:
                raise ConfigurationError(
                    f'Pair counts of shape {pairs.shape} do not match'
                    f' {states.shape[0]} states'
                )
        return cls(states, pairs)


def _encode(sequences: Sequence[str], data_type: DataType) -> list[list[int]]:
    return [list(map(data_type.encoding, sequence)) for sequence in sequences]


def count_states(sequences: Sequence[str], data_type: DataType) -> np.ndarray:
    """Count the unambiguous states in sequences."""
    counter = collections.Counter()
    for encoded in _encode(sequences, data_type):
        counter.update(encoded)
    counts = np.zeros(data_type.state_count)
    for state, count in counter.items():
        if state < data_type.state_count:
            counts[state] += count
    return counts


def count_pairs(sequences: Sequence[str], data_type: DataType) -> np.ndarray:
    """Count the state pairs observed at each site for every pair of sequences.

    Sites where either sequence is ambiguous are ignored.
    """
    encoded = _encode(sequences, data_type)
    counter = collections.Counter()
    for i, a in enumerate(encoded):
        for j in range(i + 1, len(encoded)):
            counter.update(zip(a, encoded[j]))

    counts = np.zeros((data_type.state_count, data_type.state_count))
    for (state1, state2), count in counter.items():
        if state1 < data_type.state_count and state2 < data_type.state_count:
            counts[state1, state2] += count
    return counts


def count_empirical(sequences: Sequence[str], data_type: DataType) -> EmpiricalCounts:
    return EmpiricalCounts(
        count_states(sequences, data_type), count_pairs(sequences, data_type)
    )
