"""Abstract parameter module."""
import abc

import torch
from torch import Size, Tensor

from .identifiable import Identifiable


class AbstractParameter(Identifiable, abc.ABC):
    """Abstract base class for parameters."""

    @property
    @abc.abstractmethod
    def tensor(self) -> Tensor:
        """The tensor.

        :getter: Returns the tensor.
        :setter: Sets the tensor and notifies the listeners.
        :rtype: Tensor
        """
        ...

    @tensor.setter
    @abc.abstractmethod
    def tensor(self, tensor: Tensor) -> None:
        ...

    @property
    def shape(self) -> Size:
        """The shape of the tensor.

        :rtype: Size
        """
        return self.tensor.shape

    @property
    def dtype(self) -> torch.dtype:
        """The dtype of the tensor.

        :rtype: torch.dtype
        """
        return self.tensor.dtype

    @abc.abstractmethod
    def add_parameter_listener(self, listener) -> None:
        ...

    @abc.abstractmethod
    def remove_parameter_listener(self, listener) -> None:
        ...

    @abc.abstractmethod
    def fire_parameter_changed(self, index=None, event=None) -> None:
        ...
