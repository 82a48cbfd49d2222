"""Binding of named models to data.

A model is described by a string ``NAME[{p1,p2,...}][+FREQ[{f1,...}]]``:

- ``HKY{2.0}+F``: HKY with kappa fixed at 2 and empirical frequencies.
- ``GTR+FO``: GTR with estimated frequencies.
- ``010020+FU{0.1,0.2,0.3,0.4}``: TN93 rate classes with user frequencies.
"""
from __future__ import annotations

import logging
import re
from typing import Any, NamedTuple, Optional, Sequence, Union

import numpy as np
import torch
from torch import Tensor

from ...core.errors import ConfigurationError
from ...core.parameter import Parameter
from ...core.serializable import JSONSerializable
from ...core.utils import process_object, register_class
from ...typing import ID
from ..datatype import DataType
from ..empirical import EmpiricalCounts, count_empirical
from ..frequencies import (
    StateFreqType,
    empirical_frequencies,
    parse_freq_type,
    parse_values,
    resolve_frequencies,
)
from .abstract import SubstitutionModel
from .binary import BINARY_MODELS
from .general import (
    MAX_RATE,
    MIN_RATE,
    EqualRatesSubstitutionModel,
    ModelDefinition,
    ModelFamily,
    ReversibleSubstitutionModel,
)
from .nucleotide import NUCLEOTIDE_MODELS, user_rate_model

logger = logging.getLogger(__name__)

GENERAL_MODELS = {
    'JC': ModelDefinition(
        'JC',
        'Equal-rates model',
        ModelFamily.EQUAL_RATES,
        None,
        StateFreqType.EQUAL,
    ),
    'MK': ModelDefinition(
        'MK', 'Lewis (2001)', ModelFamily.EQUAL_RATES, None, StateFreqType.EQUAL
    ),
    'GTR': ModelDefinition(
        'GTR',
        'General time reversible',
        ModelFamily.REVERSIBLE,
        None,
        StateFreqType.EMPIRICAL,
    ),
}

MODEL_TABLES = {
    'binary': BINARY_MODELS,
    'nucleotide': NUCLEOTIDE_MODELS,
}

_MODEL_STRING = re.compile(
    r'^\s*(?P<name>[^{}+\s]+)\s*(\{(?P<params>[^{}]*)\})?'
    r'\s*(\+\s*(?P<freq>[A-Za-z]*)\s*(\{(?P<freq_params>[^{}]*)\})?)?\s*$'
)
_RATE_CODE = re.compile(r'^[0-9]{6}$')


class ModelSpec(NamedTuple):
    name: str
    model_params: str = ''
    freq_type: Optional[StateFreqType] = None
    freq_params: str = ''


def parse_model_string(string: str) -> ModelSpec:
    """Split a model string into name, rates, frequency type and frequencies."""
    match = _MODEL_STRING.match(string)
    if match is None:
        raise ConfigurationError(f'Cannot parse model `{string}\'')
    freq = match.group('freq')
    freq_type = parse_freq_type(freq) if freq else None
    freq_params = match.group('freq_params') or ''
    if freq_params.strip() and freq_type in (None, StateFreqType.EMPIRICAL):
        freq_type = StateFreqType.USER_DEFINED
    return ModelSpec(
        match.group('name'), match.group('params') or '', freq_type, freq_params
    )


def find_model_definition(name: str, data_type: DataType) -> ModelDefinition:
    key = name.upper()
    table = MODEL_TABLES.get(data_type.name, {})
    if key in table:
        return table[key]
    if data_type.name == 'nucleotide' and _RATE_CODE.match(name):
        return user_rate_model(name)
    if key in GENERAL_MODELS:
        return GENERAL_MODELS[key]
    raise ConfigurationError(f'Unknown model {name} for {data_type.name} data')


def rate_code_mapping(code: Optional[str], entries: int) -> Tensor:
    """Rate class of each upper triangular entry from a rate code.

    Classes are numbered in order of first appearance.

    >>> rate_code_mapping('121131', 6)
    tensor([0, 1, 0, 0, 2, 0])
    """
    if code is None:
        return torch.arange(entries)
    if len(code) != entries:
        raise ConfigurationError(
            f'Rate code {code} should have {entries} characters'
        )
    classes = {}
    return torch.tensor(
        [classes.setdefault(character, len(classes)) for character in code],
        dtype=torch.long,
    )


def empirical_rates(
    pair_counts: np.ndarray, frequencies: Union[Tensor, np.ndarray], mapping: Tensor
) -> Tensor:
    r"""Rates estimated from the pairs of states observed at the same site.

    The rate of entry :math:`(i,j)` is proportional to
    :math:`(c_{ij} + c_{ji}) / (\pi_i \pi_j)`. Entries are averaged over each
    class and divided by the reference class (class of the last entry).
    """
    pairs = np.asarray(pair_counts, dtype=np.float64)
    freqs = np.asarray(frequencies, dtype=np.float64)
    rows, cols = np.triu_indices(freqs.shape[0], 1)
    entries = (pairs[rows, cols] + pairs[cols, rows]) / (freqs[rows] * freqs[cols])
    classes = mapping.numpy()
    class_rates = np.bincount(classes, weights=entries) / np.bincount(classes)
    reference = class_rates[classes[-1]]
    if not reference > 0.0:
        logger.warning(
            'No substitution observed in the reference rate class. Using equal rates'
        )
        return torch.ones(class_rates.shape[0], dtype=torch.float64)
    return torch.tensor(
        np.clip(class_rates / reference, MIN_RATE, MAX_RATE), dtype=torch.float64
    )


def _rates_from_params(
    values: list[float], mapping: Tensor, model_name: str
) -> Tensor:
    class_count = int(mapping.max()) + 1
    reference = int(mapping[-1])
    if len(values) == class_count - 1:
        values = values[:reference] + [1.0] + values[reference:]
    elif len(values) == class_count:
        if not values[reference] > 0.0:
            raise ConfigurationError(
                f'The reference rate of {model_name} must be positive'
            )
        values = [value / values[reference] for value in values]
    else:
        raise ConfigurationError(
            f'{model_name} takes {class_count - 1} rates, got {len(values)}'
        )
    if any(value < 0.0 for value in values):
        raise ConfigurationError(f'Rates of {model_name} must be nonnegative')
    return torch.tensor(values, dtype=torch.float64)


def _bind_equal_rates(
    definition, data_type, model_params, freq_type, freq_params, counts, count_rates, id_
):
    if parse_values(model_params, 'rates'):
        raise ConfigurationError(f'{definition.name} does not take rate parameters')
    if freq_type != StateFreqType.EQUAL:
        logger.info(
            '%s with %s frequencies is bound as a reversible model with equal rates',
            definition.name,
            freq_type.value,
        )
        definition = definition._replace(
            rate_code='0' * (data_type.state_count * (data_type.state_count - 1) // 2)
        )
        return _bind_reversible(
            definition, data_type, '', freq_type, freq_params, counts, False, id_
        )
    return EqualRatesSubstitutionModel(
        id_, data_type.state_count, definition.name, definition.full_name
    )


def _bind_reversible(
    definition, data_type, model_params, freq_type, freq_params, counts, count_rates, id_
):
    state_count = data_type.state_count
    mapping = rate_code_mapping(
        definition.rate_code, state_count * (state_count - 1) // 2
    )
    values = parse_values(model_params, 'rates')
    frequencies = resolve_frequencies(
        freq_type,
        state_count,
        freq_params,
        counts.states if counts is not None else None,
    )

    if values:
        rates = _rates_from_params(values, mapping, definition.name)
        if count_rates:
            logger.info(
                'Rates of %s are given, empirical rates are not used', definition.name
            )
    elif count_rates:
        if counts is None or counts.pairs is None:
            raise ConfigurationError(
                f'Empirical rates of {definition.name} require pair counts'
            )
        if frequencies is None:
            frequencies_for_rates = empirical_frequencies(counts.states)
        else:
            frequencies_for_rates = frequencies
        rates = empirical_rates(counts.pairs, frequencies_for_rates, mapping)
    else:
        rates = torch.ones(int(mapping.max()) + 1, dtype=torch.float64)

    return ReversibleSubstitutionModel(
        id_,
        state_count,
        Parameter(f'{id_}.rates' if id_ else None, rates),
        Parameter(f'{id_}.frequencies' if id_ else None, frequencies)
        if frequencies is not None
        else None,
        mapping,
        freq_type,
        bool(values),
        definition.name,
        definition.full_name,
    )


_BINDERS = {
    ModelFamily.EQUAL_RATES: _bind_equal_rates,
    ModelFamily.REVERSIBLE: _bind_reversible,
    ModelFamily.USER_RATES: _bind_reversible,
}


def create_substitution_model(
    model_name: str,
    data_type: DataType,
    model_params: Optional[str] = None,
    freq_type: Union[str, StateFreqType, None] = None,
    freq_params: Optional[str] = None,
    counts: Optional[EmpiricalCounts] = None,
    count_rates: bool = False,
    id_: ID = None,
) -> SubstitutionModel:
    """Create a substitution model from its name.

    :param str model_name: model name, optionally with parameters and
        frequencies, e.g. 'GTR{1,2,1,1,2}+FO'
    :param DataType data_type: state space of the model
    :param str model_params: comma separated rates, overrides the rates of
        model_name
    :param freq_type: overrides the frequency type of model_name
    :param str freq_params: comma separated frequencies, overrides the
        frequencies of model_name
    :param EmpiricalCounts counts: state and pair counts of the data
    :param bool count_rates: initialize the rates from the pair counts
    :param id_: identifier of the model
    :raises ConfigurationError: if the model string or its parameters are invalid
    """
    spec = parse_model_string(model_name)
    if model_params is None:
        model_params = spec.model_params
    freq_type = parse_freq_type(freq_type) or spec.freq_type
    if freq_params is None:
        freq_params = spec.freq_params
    if parse_values(freq_params, 'frequencies') and freq_type in (
        None,
        StateFreqType.EMPIRICAL,
    ):
        freq_type = StateFreqType.USER_DEFINED

    definition = find_model_definition(spec.name, data_type)
    if freq_type is None:
        freq_type = definition.freq_type
    if counts is not None and counts.state_count != data_type.state_count:
        raise ConfigurationError(
            f'Counts of {counts.state_count} states do not match'
            f' {data_type.state_count} states of {data_type.name} data'
        )
    model = _BINDERS[definition.family](
        definition,
        data_type,
        model_params,
        freq_type,
        freq_params,
        counts,
        count_rates,
        id_,
    )
    logger.debug('Created model %s with %s frequencies', model.name, freq_type.value)
    return model


def _as_params(value: Union[str, Sequence[float], None]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return ','.join(str(v) for v in value)


@register_class
class SubstitutionModelFactory(JSONSerializable):
    """Creates substitution models from a model string in JSON files."""

    @classmethod
    def from_json(cls, data: dict[str, Any], dic: dict[str, Any]) -> SubstitutionModel:
        r"""Create a substitution model.

        **JSON attributes**:

         Mandatory:
          - id (str): identifier of the model.
          - model (str): model string, e.g. 'HKY+F'.
          - data_type (dict or str): data type.

         Optional:
          - rates (str or list): rates of the model.
          - freq_type (str): frequency type.
          - frequencies (str or list): frequencies.
          - counts (dict): ``states`` and ``pairs`` counts.
          - sequences (list): sequences the counts are computed from, when
            ``counts`` is missing.
          - count_rates (bool): initialize the rates from the pair counts.

        **JSON Examples**

        .. code-block:: json

          {
            "id": "substmodel",
            "type": "SubstitutionModelFactory",
            "model": "HKY+F",
            "data_type": {"id": "dna", "type": "NucleotideDataType"},
            "sequences": ["ACGTTA", "ACGCTA", "ATGCTA"]
          }
        """
        data_type = process_object(data['data_type'], dic)
        if 'counts' in data:
            counts = EmpiricalCounts.from_dict(data['counts'])
        elif 'sequences' in data:
            counts = count_empirical(data['sequences'], data_type)
        else:
            counts = None
        return create_substitution_model(
            data['model'],
            data_type,
            model_params=_as_params(data.get('rates', None)),
            freq_type=data.get('freq_type', None),
            freq_params=_as_params(data.get('frequencies', None)),
            counts=counts,
            count_rates=data.get('count_rates', False),
            id_=data['id'],
        )
