"""
JSON serialization utilities for persisted migration state.

Checkpoints, change logs and locks are stored as plain JSON so operators
can inspect them. Model classes own their ``to_dict``/``from_dict``
conversion; this module only handles the encoding edge cases.
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Any

from .errors import SerializationError


class StateEncoder(json.JSONEncoder):
    """
    JSON encoder for migration state.

    Handles:
    - datetime -> ISO format string
    - Enum -> value
    - set/frozenset -> sorted list (stable on-disk ordering)
    - PurePath -> POSIX string
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        if isinstance(obj, PurePath):
            return obj.as_posix()
        if hasattr(obj, "to_dict"):
            return obj.to_dict()

        return super().default(obj)


def serialize(data: Any, pretty: bool = False) -> str:
    """
    Serialize data to a JSON string.

    Args:
        data: JSON-serializable data (model objects must expose to_dict)
        pretty: Indent output for human readability

    Returns:
        JSON string

    Raises:
        SerializationError: If serialization fails
    """
    try:
        return json.dumps(
            data,
            cls=StateEncoder,
            ensure_ascii=False,
            indent=2 if pretty else None,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(
            message=f"Failed to serialize data: {e}",
            operation="serialize",
            data_type=type(data).__name__,
        ) from e


def deserialize(data: str | bytes) -> Any:
    """
    Deserialize a JSON string.

    Raises:
        SerializationError: If the payload is not valid JSON
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")

    try:
        return json.loads(data)
    except (json.JSONDecodeError, ValueError) as e:
        raise SerializationError(
            message=f"Failed to deserialize data: {e}",
            operation="deserialize",
        ) from e


def serialize_lines(records: list[Any]) -> str:
    """Serialize records as JSON lines (one compact document per line)."""
    return "".join(serialize(record) + "\n" for record in records)


def deserialize_lines(data: str | bytes) -> list[Any]:
    """
    Parse JSON lines, skipping blank lines.

    A truncated final line (interrupted append) is ignored; corruption
    anywhere else raises SerializationError.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")

    lines = [line for line in data.splitlines() if line.strip()]
    records = []
    for index, line in enumerate(lines):
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            if index == len(lines) - 1:
                break
            raise SerializationError(
                message=f"Corrupt JSON line {index + 1}: {e}",
                operation="deserialize",
            ) from e
    return records
