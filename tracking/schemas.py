from __future__ import annotations

from collections.abc import Mapping
from typing import Any, NoReturn, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


def _immutable(self: object, *_args: object, **_kwargs: object) -> NoReturn:
    raise TypeError(f"{type(self).__name__} is immutable")


class FrozenList(list):
    """A list whose contents cannot be changed in place."""

    append = extend = insert = pop = remove = clear = sort = reverse = _immutable
    __setitem__ = __delitem__ = __iadd__ = __imul__ = _immutable

    def __reduce__(self):
        return (type(self), (list(self),))


class FrozenDict(dict):
    """A dict whose contents cannot be changed in place."""

    pop = popitem = setdefault = update = clear = _immutable
    __setitem__ = __delitem__ = __ior__ = _immutable

    def __reduce__(self):
        return (type(self), (dict(self),))


def freeze(value: Any) -> Any:
    """Recursively replace lists, dicts and sets with read-only equivalents."""
    if isinstance(value, (FrozenList, FrozenDict)):
        return value
    if isinstance(value, dict):
        return FrozenDict((key, freeze(item)) for key, item in value.items())
    if isinstance(value, list):
        return FrozenList(freeze(item) for item in value)
    if isinstance(value, tuple):
        return tuple(freeze(item) for item in value)
    if isinstance(value, set):
        return frozenset(value)
    return value


class Step(BaseSchema):
    """One semantically meaningful container mutation.

    ``args``, ``result`` and ``metadata`` are read-only snapshots taken at
    emission time; they never share storage with the container that produced
    them and cannot be changed after the step is built. Ordering in a step
    log is authoritative, the timestamp is informational only.
    """

    model_config = ConfigDict(frozen=True)

    type: StrictStr
    target: StrictStr
    args: list[Any] = Field(default_factory=FrozenList)
    result: Any = None
    timestamp: StrictInt
    metadata: dict[str, Any] = Field(default_factory=FrozenDict)

    @field_validator("args", "result", "metadata")
    @classmethod
    def snapshot_is_read_only(cls, value: Any) -> Any:
        return freeze(value)
