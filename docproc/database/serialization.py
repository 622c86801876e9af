"""JSONB (de)serialization of the dataclass entities via pydantic TypeAdapters."""

from functools import cache
from typing import Any, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


@cache
def _adapter(cls: type[Any]) -> TypeAdapter[Any]:
    return TypeAdapter(cls)


def dump(entity: Any) -> dict[str, Any]:
    """Serialize an entity into a JSON-compatible dict."""
    data: dict[str, Any] = _adapter(type(entity)).dump_python(entity, mode="json")
    return data


def load(cls: type[T], data: dict[str, Any]) -> T:
    """Rebuild an entity (nested dataclasses, enums, datetimes) from its JSON form."""
    entity: T = _adapter(cls).validate_python(data)
    return entity
