from __future__ import annotations

import abc

from ..core.identifiable import Identifiable
from ..core.utils import register_class
from ..typing import ID


class DataType(Identifiable, abc.ABC):
    """State space of a substitution model.

    Symbols that do not denote a single state (gaps, ambiguity codes) are
    encoded as :attr:`state_count`.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        pass

    @property
    @abc.abstractmethod
    def states(self) -> tuple[str, ...]:
        pass

    @property
    @abc.abstractmethod
    def state_count(self) -> int:
        pass

    @abc.abstractmethod
    def encoding(self, string: str) -> int:
        pass


class AbstractDataType(DataType, abc.ABC):
    def __init__(self, id_: ID, states: tuple[str, ...]):
        super().__init__(id_)
        self._states = states
        self._state_count = len(states)
        self._encoding = {state: idx for idx, state in enumerate(states)}

    @property
    def states(self) -> tuple[str, ...]:
        return self._states

    @property
    def state_count(self) -> int:
        return self._state_count

    def encoding(self, string: str) -> int:
        return self._encoding.get(string, self._state_count)


@register_class
class BinaryDataType(AbstractDataType):
    def __init__(self, id_: ID):
        super().__init__(id_, ('0', '1'))

    @property
    def name(self) -> str:
        return 'binary'

    @classmethod
    def from_json(cls, data, dic):
        return cls(data['id'])


@register_class
class NucleotideDataType(AbstractDataType):
    def __init__(self, id_: ID):
        super().__init__(id_, ('A', 'C', 'G', 'T'))
        self._encoding.update(
            {'U': 3, 'a': 0, 'c': 1, 'g': 2, 't': 3, 'u': 3}
        )

    @property
    def name(self) -> str:
        return 'nucleotide'

    @classmethod
    def from_json(cls, data, dic):
        return cls(data['id'])


@register_class
class GeneralDataType(AbstractDataType):
    """Data type with user defined states, e.g. morphological characters.

    :param id_: identifier
    :param codes: one symbol per state
    :param aliases: symbols mapped to the state of another symbol (e.g. {'U': 'T'}).
        Symbols mapped to a list of several codes are ambiguous.
    """

    def __init__(self, id_: ID, codes: tuple[str, ...], aliases: dict = None):
        super().__init__(id_, tuple(codes))
        if aliases is not None:
            for alias, code in aliases.items():
                if isinstance(code, (list, tuple)):
                    if len(code) != 1:
                        continue
                    code = code[0]
                self._encoding[alias] = self._encoding[code]

    @property
    def name(self) -> str:
        return 'general'

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        codes = data['codes']
        aliases = data.get('aliases', None)
        return cls(id_, codes, aliases)
