"""Substitution models of binary data.

Any model defined for a general state space can be used as well, e.g. Mk.
"""
from ..frequencies import StateFreqType
from .general import ModelDefinition, ModelFamily

BINARY_MODELS = {
    'JC2': ModelDefinition(
        'JC2',
        'Jukes-Cantor type binary model',
        ModelFamily.EQUAL_RATES,
        None,
        StateFreqType.EQUAL,
    ),
    'GTR2': ModelDefinition(
        'GTR2',
        'General time reversible binary model',
        ModelFamily.REVERSIBLE,
        '0',
        StateFreqType.ESTIMATE,
    ),
}
