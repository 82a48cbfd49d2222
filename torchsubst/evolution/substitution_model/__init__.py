r"""Reversible Markov substitution processes.

The substitution process is described by a rate matrix :math:`Q` whose
off-diagonal elements are the instantaneous rates at which one state changes
to another and whose rows sum to zero. The probability of moving from state
:math:`i` to state :math:`j` during time :math:`t` is the element of

.. math::

    P(t) = e^{Qt}

A reversible process satisfies detailed balance with its stationary
distribution :math:`\pi`, i.e. :math:`\pi_i Q_{ij} = \pi_j Q_{ji}`, so that
:math:`Q_{ij} = r_{ij} \pi_j` with symmetric exchangeabilities :math:`r`.
Rate matrices are scaled so that one unit of time is one expected
substitution per site.

The equal-rates model (Jukes-Cantor type) has a closed form. Other
reversible models are computed from an eigen-decomposition of :math:`Q`,
which also gives the first and second derivatives of :math:`P(t)` with
respect to time. Named models are created with
:func:`create_substitution_model`, e.g. ``create_substitution_model('HKY+F',
NucleotideDataType(None), counts=counts)``.
"""
from torchsubst.evolution.substitution_model.abstract import (
    ModelState,
    SubstitutionModel,
)
from torchsubst.evolution.substitution_model.eigen import EigenDecomposition
from torchsubst.evolution.substitution_model.factory import (
    SubstitutionModelFactory,
    create_substitution_model,
    parse_model_string,
)
from torchsubst.evolution.substitution_model.general import (
    EqualRatesSubstitutionModel,
    ModelFamily,
    ReversibleSubstitutionModel,
)

__all__ = [
    'ModelState',
    'SubstitutionModel',
    'EigenDecomposition',
    'EqualRatesSubstitutionModel',
    'ReversibleSubstitutionModel',
    'ModelFamily',
    'SubstitutionModelFactory',
    'create_substitution_model',
    'parse_model_string',
]
