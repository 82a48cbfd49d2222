"""Implementation of the Parameter class."""
from __future__ import annotations

from typing import Any, Optional

import torch
from torch import Tensor

from torchsubst.core.abstractparameter import AbstractParameter
from torchsubst.core.identifiable import Identifiable
from torchsubst.core.utils import get_dtype, process_object, register_class


@register_class
class Parameter(AbstractParameter):
    """Parameter class.

    Listeners (usually models) are notified every time the tensor is replaced.

    :param id_: identifier of Parameter object.
    :type id_: str or None
    :param Tensor tensor: Tensor object.
    """

    def __init__(self, id_: Optional[str], tensor: Tensor) -> None:
        super().__init__(id_)
        self._tensor = tensor
        self.listeners = []

    def __str__(self):
        return f"{self._id}"

    def __repr__(self):
        id_ = "'" + self._id + "'" if self._id else None
        return f"Parameter(id_={id_}, tensor=torch.{self._tensor})"

    @property
    def tensor(self) -> Tensor:
        return self._tensor

    @tensor.setter
    def tensor(self, tensor: Tensor) -> None:
        self._tensor = tensor
        self.fire_parameter_changed()

    def size(self) -> torch.Size:
        return self._tensor.size()

    def add_parameter_listener(self, listener) -> None:
        self.listeners.append(listener)

    def remove_parameter_listener(self, listener) -> None:
        self.listeners.remove(listener)

    def fire_parameter_changed(self, index=None, event=None) -> None:
        for listener in self.listeners:
            listener.handle_parameter_changed(self, index, event)

    def clone(self) -> Parameter:
        """Return a clone of the Parameter.

        it is not cloning listeners and the clone's id is None
        """
        return Parameter(None, self.tensor.clone())

    @classmethod
    def from_json(cls, data: dict[str, Any], dic: dict[str, Identifiable]) -> Parameter:
        r"""Creates a Parameter object from a dictionary.

        :param dict[str, Any] data: dictionary representation of a parameter object.
        :param dict[str, Identifiable] dic: dictionary containing objects keyed by
            their ID.

        **JSON attributes**:

         Only one of ``tensor``, ``full``, ``full_like``, ``arange`` can be
         specified.

         - tensor (list): list of scalars.
         - full (int or list): size of the tensor.

           - tensor (float): the number to fill the tensor with.
         - full_like (str or dict): parameter used to determine the size of
           the tensor.

           - tensor (float): the number to fill the tensor with.
         - arange (int or list): emulate torch.arange.

         Optional:
          - dtype (str): the desired data type of returned tensor.
            Default: torch.float64 for floating point values.

        **JSON Examples**

        .. code-block:: json

          {
            "id": "rates",
            "type": "Parameter",
            "tensor": [1.0, 2.0, 1.0, 1.0, 2.0, 1.0]
          }

        :example:
        >>> p_dic = {"id": "parameter", "type": "Parameter", "tensor": [1., 2., 3.]}
        >>> parameter = Parameter.from_json(p_dic, {})
        >>> parameter.tensor
        tensor([1., 2., 3.], dtype=torch.float64)
        """
        dtype = get_dtype(data['dtype']) if 'dtype' in data else None

        if 'full_like' in data:
            input_param = process_object(data['full_like'], dic)
            t = torch.full_like(input_param.tensor, data['tensor'], dtype=dtype)
        elif 'full' in data:
            t = torch.full(
                data['full'] if isinstance(data['full'], list) else [data['full']],
                data['tensor'],
                dtype=dtype or torch.float64,
            )
        elif 'arange' in data:
            args = data['arange'] if isinstance(data['arange'], list) else [data['arange']]
            t = torch.arange(*args, dtype=dtype)
        else:
            t = torch.tensor(data['tensor'], dtype=dtype)
            if dtype is None and t.is_floating_point():
                t = t.to(dtype=torch.float64)
        return cls(data['id'], t)
