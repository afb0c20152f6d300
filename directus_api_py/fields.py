from __future__ import annotations

import collections.abc
import datetime
import types
import uuid
from contextvars import ContextVar
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from inspect import isclass
from typing import Annotated, Any, Literal, Union, get_args, get_origin

from pydantic import BaseModel

from directus_api_py.errors import FieldConfigError, UnsupportedIndirectionError, UnsupportedKindError
from directus_api_py.optional import OptionalField

# Treated as opaque leaves, the field is requested as a whole
TIME_TYPES = (datetime.datetime, datetime.date, datetime.time)

SCALAR_TYPES = (bool, int, float, str, bytes, Decimal, uuid.UUID, Enum)

SEQUENCE_TYPES = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)

MAPPING_TYPES = (dict, collections.abc.Mapping)

# Models being walked on the current path, optional wrappers call back into
# annotation_field_paths so the chain can't be passed as an argument
_models_in_progress: ContextVar[tuple[type, ...]] = ContextVar("models_in_progress", default=())


@lru_cache(maxsize=None)
def model_field_paths(model: type[BaseModel]) -> tuple[str, ...]:
    """
    Get the dot separated field paths needed to populate `model`.

    The result depends only on the declared shape of the model and is
    cached per model class.

    Args:
        model (type[BaseModel]): The read model.

    Returns:
        tuple[str]: Field paths in declaration order.

    Raises:
        FieldConfigError: The model contains a field that can't be flattened.
    """
    return tuple(iterate_fields(model, ""))


def iterate_fields(model: type[BaseModel], prefix: str) -> list[str]:
    """Return field paths for all of the model's fields."""
    seen = _models_in_progress.get()
    if model in seen:
        raise FieldConfigError(f"{model.__name__}: recursive models can't be flattened into field paths")

    token = _models_in_progress.set((*seen, model))
    try:
        paths: list[str] = []
        for name, info in model.model_fields.items():
            remote_name = info.alias or name
            path = f"{prefix}.{remote_name}" if prefix else remote_name
            paths.extend(annotation_field_paths(info.annotation, path))
        return paths
    finally:
        _models_in_progress.reset(token)


def annotation_field_paths(annotation: Any, path: str) -> list[str]:
    """
    Return the field paths a single field annotation contributes at `path`.

    Raises:
        UnsupportedIndirectionError: `annotation` is `X | None`.
        UnsupportedKindError: There's no field-path mapping for `annotation`.
    """
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Annotated:
        return annotation_field_paths(args[0], path)
    if origin is Literal:
        return [path]

    if origin is Union or origin is types.UnionType:
        if type(None) in args:
            raise UnsupportedIndirectionError(
                f"{path} ({annotation}): optional references are not supported, use Nullable instead"
            )
        raise UnsupportedKindError(f"{path} ({annotation}): kind not implemented")

    cls = origin if origin is not None else annotation
    if not isclass(cls):
        raise UnsupportedKindError(f"{path} ({annotation}): kind not implemented")

    if issubclass(cls, OptionalField):
        return cls.fields(path, args)

    if issubclass(cls, TIME_TYPES):
        return [path]

    if issubclass(cls, BaseModel):
        return iterate_fields(cls, path)

    # str and bytes are sequences too
    if issubclass(cls, SCALAR_TYPES) or issubclass(cls, MAPPING_TYPES):
        return [path]

    if issubclass(cls, SEQUENCE_TYPES):
        elem = args[0] if args else None
        if isclass(elem) and issubclass(elem, BaseModel):
            return iterate_fields(elem, path)
        return [path]

    raise UnsupportedKindError(f"{path} ({annotation}): kind not implemented")
