import importlib
import logging
from typing import Any

import torch

from .errors import ConfigurationError

REGISTERED_CLASSES = {}


class JSONParseError(ConfigurationError):
    ...


def get_class(full_name: str) -> Any:
    if full_name in REGISTERED_CLASSES:
        return REGISTERED_CLASSES[full_name]

    a = full_name.split('.')
    class_name = a[-1]
    module_name = '.'.join(a[:-1])
    if module_name == '':
        raise ValueError('{} is not a registered class'.format(full_name))
    module = importlib.import_module(module_name)
    klass = getattr(module, class_name)
    return klass


def get_dtype(name: str) -> torch.dtype:
    """Return a floating point torch.dtype from its name.

    :param str name: 'float64', 'torch.float64', 'float32' or 'torch.float32'
    """
    dtype = getattr(torch, name.split('.')[-1], None)
    if not isinstance(dtype, torch.dtype):
        raise JSONParseError(f'{name} is not a valid dtype')
    return dtype


def process_object(data, dic):
    if isinstance(data, str):
        try:
            obj = dic[data]
        except KeyError:
            raise JSONParseError(
                'Object with ID `{}\' not found'.format(data)
            ) from None
    elif isinstance(data, dict):
        id_ = data['id']
        if id_ in dic:
            raise JSONParseError('Object with ID `{}\' already exists'.format(id_))
        if 'type' not in data:
            raise JSONParseError(
                'Object with ID `{}\' does not have a type'.format(id_)
            )

        try:
            klass = get_class(data['type'])
        except (ModuleNotFoundError, AttributeError, ValueError) as e:
            raise JSONParseError(
                str(e) + " in object with ID '" + str(data['id']) + "'"
            ) from None

        obj = klass.from_json_safe(data, dic)
        if id_ is not None:
            dic[id_] = obj
    else:
        raise JSONParseError(
            'Object is not valid (should be str or object)\nProvided: {}'.format(data)
        )
    return obj


def register_class(_cls, name=None):
    logging.info('register_class: {}'.format(_cls))
    if name is not None:
        REGISTERED_CLASSES[name] = _cls
    else:
        REGISTERED_CLASSES[_cls.__name__] = _cls
    return _cls
