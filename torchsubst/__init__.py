"""This is the root package of the torchsubst library."""
from ._version import __version__
from .core.errors import (
    ConfigurationError,
    NumericalInstabilityError,
    PreconditionViolation,
    SubstitutionModelError,
)
from .core.parameter import Parameter
from .evolution.datatype import BinaryDataType, GeneralDataType, NucleotideDataType
from .evolution.empirical import EmpiricalCounts
from .evolution.substitution_model import (
    EqualRatesSubstitutionModel,
    ReversibleSubstitutionModel,
    create_substitution_model,
)

__all__ = [
    'ConfigurationError',
    'NumericalInstabilityError',
    'PreconditionViolation',
    'SubstitutionModelError',
    'Parameter',
    'BinaryDataType',
    'GeneralDataType',
    'NucleotideDataType',
    'EmpiricalCounts',
    'EqualRatesSubstitutionModel',
    'ReversibleSubstitutionModel',
    'create_substitution_model',
]
