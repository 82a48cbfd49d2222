from typing import Optional

from .identifiable import Identifiable
from .parametric import ModelListener, Parametric


class Model(Parametric, Identifiable):
    """Identifiable parametric object that notifies its listeners when one of
    its parameters changes."""

    def __init__(self, id_: Optional[str]) -> None:
        Parametric.__init__(self)
        Identifiable.__init__(self, id_)
        self.listeners = []

    def add_model_listener(self, listener: ModelListener) -> None:
        self.listeners.append(listener)

    def fire_model_changed(self, obj=None, index=None) -> None:
        for listener in self.listeners:
            listener.handle_model_changed(self, obj, index)
