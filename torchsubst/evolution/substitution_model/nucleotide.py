"""Substitution models of DNA.

Rate codes list the classes of the rates AC, AG, AT, CG, CT and GT.
Any six digit code, such as 010020, defines a model directly.
"""
from ..frequencies import StateFreqType
from .general import ModelDefinition, ModelFamily

_JC = ModelDefinition(
    'JC',
    'Jukes and Cantor (1969)',
    ModelFamily.EQUAL_RATES,
    '000000',
    StateFreqType.EQUAL,
)
_F81 = ModelDefinition(
    'F81', 'Felsenstein (1981)', ModelFamily.REVERSIBLE, '000000', StateFreqType.EMPIRICAL
)
_K80 = ModelDefinition(
    'K80', 'Kimura (1980)', ModelFamily.REVERSIBLE, '010010', StateFreqType.EQUAL
)
_HKY = ModelDefinition(
    'HKY',
    'Hasegawa, Kishino and Yano (1985)',
    ModelFamily.REVERSIBLE,
    '010010',
    StateFreqType.EMPIRICAL,
)
_TN93 = ModelDefinition(
    'TN93',
    'Tamura and Nei (1993)',
    ModelFamily.REVERSIBLE,
    '010020',
    StateFreqType.EMPIRICAL,
)
_K81 = ModelDefinition(
    'K81', 'Kimura (1981)', ModelFamily.REVERSIBLE, '012210', StateFreqType.EQUAL
)
_SYM = ModelDefinition(
    'SYM', 'Zharkikh (1994)', ModelFamily.REVERSIBLE, '012345', StateFreqType.EQUAL
)
_GTR = ModelDefinition(
    'GTR', 'Tavare (1986)', ModelFamily.REVERSIBLE, '012345', StateFreqType.EMPIRICAL
)

NUCLEOTIDE_MODELS = {
    'JC': _JC,
    'JC69': _JC,
    'F81': _F81,
    'K80': _K80,
    'K2P': _K80,
    'HKY': _HKY,
    'HKY85': _HKY,
    'TN93': _TN93,
    'TN': _TN93,
    'K81': _K81,
    'K3P': _K81,
    'SYM': _SYM,
    'GTR': _GTR,
}


def user_rate_model(code: str) -> ModelDefinition:
    return ModelDefinition(
        code,
        f'Reversible model with rate classes {code}',
        ModelFamily.USER_RATES,
        code,
        StateFreqType.EMPIRICAL,
    )
