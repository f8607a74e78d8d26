"""
Wire shape of policystatus records.

Conditions and enactment counts are written to the policy status as plain
dicts with camelCase keys, RFC 3339 timestamps and enum values as strings.
SerializableMixin gives a dataclass that shape in both directions.

Usage:
    @dataclass
    class NodeReport(SerializableMixin):
        node_name: str
        reported_at: Optional[datetime] = None

        _field_aliases = {"node_name": "nodeName", "reported_at": "reportedAt"}

    NodeReport("node01", utc_now()).to_dict()
    # {"nodeName": "node01", "reportedAt": "2024-01-01T12:00:00+00:00"}
"""

from __future__ import annotations

import logging
from dataclasses import fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Type, TypeVar, Union, get_args, get_origin, get_type_hints

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="SerializableMixin")


def serialize_value(value: Any) -> Any:
    """Convert ``value`` to its wire form.

    Naive datetimes are taken to be UTC. Enums become their value, nested
    serializable dataclasses their dict, and sequences become lists.
    """
    if isinstance(value, datetime):
        aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return aware.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, SerializableMixin) and is_dataclass(value):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is Union or type(annotation).__name__ == "UnionType":
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if members:
            return members[0]
    return annotation


def deserialize_value(value: Any, annotation: Any) -> Any:
    """Convert a wire value back to ``annotation``.

    Raises:
        ValueError: If ``value`` names no member of an Enum annotation.
    """
    if value is None:
        return None
    target = _unwrap_optional(annotation)
    if not isinstance(target, type):
        return value

    if issubclass(target, Enum):
        if isinstance(value, target):
            return value
        match = next((m for m in target if value in (m.value, m.name)), None)
        if match is None:
            raise ValueError(f"{value!r} is not a valid {target.__name__}")
        return match
    if target is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if issubclass(target, SerializableMixin) and isinstance(value, dict):
        return target.from_dict(value)
    return value


class SerializableMixin:
    """to_dict/from_dict for dataclasses in the wire shape.

    ``_field_aliases`` maps a field name to its wire key; fields listed in
    ``_exclude_fields`` or starting with an underscore are not written.
    """

    _exclude_fields: ClassVar[tuple[str, ...]] = ()
    _field_aliases: ClassVar[Dict[str, str]] = {}

    def to_dict(self) -> Dict[str, Any]:
        if not is_dataclass(self):
            raise TypeError(f"{type(self).__name__} is not a dataclass")
        return {
            self._field_aliases.get(f.name, f.name): serialize_value(getattr(self, f.name))
            for f in fields(self)
            if f.name not in self._exclude_fields and not f.name.startswith("_")
        }

    @classmethod
    def from_dict(cls: Type[S], data: Dict[str, Any]) -> S:
        """Build an instance from a dict keyed by wire names or field names."""
        if not is_dataclass(cls):
            raise TypeError(f"{cls.__name__} is not a dataclass")
        try:
            hints = get_type_hints(cls)
        except (NameError, TypeError) as e:
            logger.debug(f"No type hints for {cls.__name__}, reading values as-is: {e}")
            hints = {}

        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if not f.init:
                continue
            for key in (cls._field_aliases.get(f.name, f.name), f.name):
                if key in data:
                    kwargs[f.name] = deserialize_value(data[key], hints.get(f.name, Any))
                    break
        return cls(**kwargs)


__all__ = ["SerializableMixin", "serialize_value", "deserialize_value"]
