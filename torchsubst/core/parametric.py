from __future__ import annotations

import abc
from collections import OrderedDict

from .abstractparameter import AbstractParameter


class ModelListener(abc.ABC):
    @abc.abstractmethod
    def handle_model_changed(self, model, obj, index) -> None:
        ...


class ParameterListener(abc.ABC):
    @abc.abstractmethod
    def handle_parameter_changed(
        self, variable: AbstractParameter, index, event
    ) -> None:
        ...


class Parametric(ModelListener, ParameterListener, abc.ABC):
    """Object owning parameters.

    Assigning an :class:`AbstractParameter` to an attribute registers it and
    subscribes this object to its changes. Assigning another parameter to the
    same attribute unsubscribes from the previous one.
    """

    def __init__(self) -> None:
        self._parameters = OrderedDict()

    def __getattr__(self, name: str) -> AbstractParameter:
        _parameters = self.__dict__.get('_parameters', {})
        if name in _parameters:
            return _parameters[name]
        raise AttributeError(
            "'{}' object has no attribute '{}'".format(type(self).__name__, name)
        )

    def __setattr__(self, name: str, value) -> None:
        if isinstance(value, AbstractParameter):
            params = self.__dict__.get('_parameters')
            if params is None:
                raise AttributeError(
                    "cannot assign parameters before Parametric.__init__() call"
                )
            self.__dict__.pop(name, None)
            if name in params:
                params[name].remove_parameter_listener(self)
            self.register_parameter(name, value)
        else:
            object.__setattr__(self, name, value)

    def register_parameter(self, name: str, parameter: AbstractParameter) -> None:
        self._parameters[name] = parameter
        parameter.add_parameter_listener(self)
