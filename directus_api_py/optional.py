from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import Enum
from typing import Any, Generic, TypeVar, get_args

from pydantic import BaseModel, GetCoreSchemaHandler, SerializationInfo
from pydantic_core import core_schema

T = TypeVar("T")


class Operation(Enum):
    """What a write should do with an optional field."""
    UNSET = "unset"  # leave the remote value untouched, the key is omitted
    NULL = "null"    # write an explicit null
    SET = "set"      # write the wrapped value


class OptionalField(ABC):
    """
    Capability implemented by nullable field wrappers.

    Plain `X | None` annotations are rejected by the field-path deriver,
    a wrapper decides which field paths it contributes instead.
    """

    @property
    @abstractmethod
    def operation(self) -> Operation: ...

    @property
    def is_present(self) -> bool:
        return self.operation is Operation.SET

    @classmethod
    @abstractmethod
    def fields(cls, prefix: str, args: tuple[Any, ...] = ()) -> list[str]:
        """
        Return the field paths this wrapper contributes under `prefix`.

        Args:
            prefix (str): Dot path of the field holding the wrapper.
            args (tuple): Type arguments the wrapper was parameterised with.
        """


_MISSING: Any = object()


class Nullable(OptionalField, Generic[T]):
    """
    A value that is either set, explicitly null, or unset.

    Example:
        class Article(BaseModel):
            subtitle: Nullable[str] = Nullable()

        Article(subtitle="x").subtitle.value   # "x"
        Article(subtitle=None).subtitle.operation  # Operation.NULL
    """

    __slots__ = ("_value", "_operation")

    def __init__(self, value: T | None = _MISSING):
        if value is _MISSING:
            self._value = None
            self._operation = Operation.UNSET
        elif value is None:
            self._value = None
            self._operation = Operation.NULL
        else:
            self._value = value
            self._operation = Operation.SET

    @classmethod
    def unset(cls) -> Nullable[Any]:
        return cls()

    @classmethod
    def null(cls) -> Nullable[Any]:
        return cls(None)

    @property
    def operation(self) -> Operation:
        return self._operation

    @property
    def value(self) -> T | None:
        return self._value

    def get(self, default: T | None = None) -> T | None:
        return self._value if self.is_present else default

    @classmethod
    def fields(cls, prefix: str, args: tuple[Any, ...] = ()) -> list[str]:
        if not args:
            return [prefix]
        # late import, the deriver imports this module
        from directus_api_py.fields import annotation_field_paths
        return annotation_field_paths(args[0], prefix)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Nullable):
            return NotImplemented
        return self._operation is other._operation and self._value == other._value

    def __repr__(self) -> str:
        if self._operation is Operation.SET:
            return f"Nullable({self._value!r})"
        return f"Nullable.{self._operation.value}()"

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        args = get_args(source_type)
        inner = handler.generate_schema(args[0]) if args else core_schema.any_schema()
        from_raw = core_schema.no_info_after_validator_function(cls, core_schema.nullable_schema(inner))
        return core_schema.union_schema(
            [core_schema.is_instance_schema(cls), from_raw],
            serialization=core_schema.plain_serializer_function_ser_schema(_serialize, info_arg=True),
        )


def unwrap(value: Any) -> Any:
    """Return the raw value of an optional wrapper, or `value` unchanged."""
    if isinstance(value, OptionalField):
        return getattr(value, "value", None)
    return value


def is_unset(value: Any) -> bool:
    return isinstance(value, OptionalField) and value.operation is Operation.UNSET


def unset_excludes(value: Any) -> dict[Any, Any]:
    """
    Build a pydantic `exclude` spec dropping every UNSET optional field below `value`.

    Models are keyed by field name, lists and tuples by index, dicts by key.
    """
    if isinstance(value, BaseModel):
        items: Iterable[tuple[Any, Any]] = ((name, getattr(value, name)) for name in type(value).model_fields)
    elif isinstance(value, (list, tuple)):
        items = enumerate(value)
    elif isinstance(value, dict):
        items = value.items()
    else:
        return {}

    exclude: dict[Any, Any] = {}
    for key, item in items:
        if is_unset(item):
            exclude[key] = True
            continue
        nested = unset_excludes(item)
        if nested:
            exclude[key] = nested
    return exclude


def _serialize(value: Any, info: SerializationInfo) -> Any:
    # exclude specs don't reach through a plain serializer, so wrapped
    # models and containers drop their own unset fields here
    return _dump(unwrap(value), info)


def _dump(value: Any, info: SerializationInfo) -> Any:
    if isinstance(value, OptionalField):
        return _dump(unwrap(value), info)
    if isinstance(value, BaseModel):
        return value.model_dump(mode=info.mode, by_alias=bool(info.by_alias),
                                exclude=unset_excludes(value) or None)
    if isinstance(value, (list, tuple)):
        return [_dump(item, info) for item in value if not is_unset(item)]
    if isinstance(value, dict):
        return {key: _dump(item, info) for key, item in value.items() if not is_unset(item)}
    return value
