from __future__ import annotations

import json
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any
from uuid import UUID

import rfc8785
from pydantic import BaseModel

# JSON-primitive types that pass through untouched.
_PASSTHROUGH_TYPES = (bool, int, float, str, type(None))

JsonValue = bool | int | float | str | None | list[Any] | dict[str, Any]


def _normalize_for_json(value: Any) -> JsonValue:
    """Recursively convert Python/Pydantic types into JSON-primitive types.

    Project documents are pydantic models dumped by alias, so the on-disk
    camelCase keys are what gets sorted. datetime, UUID, Decimal, Enum and
    path values are converted to their JSON representations.

    Args:
        value: Any Python value to normalize.

    Returns:
        A JSON-primitive structure.

    Raises:
        TypeError: If value contains a type that cannot be converted to JSON.
    """
    if isinstance(value, _PASSTHROUGH_TYPES):
        return value

    if isinstance(value, BaseModel):
        return _normalize_for_json(value.model_dump(mode="json", by_alias=True))

    if isinstance(value, dict):
        return {str(k): _normalize_for_json(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_normalize_for_json(item) for item in value]

    if isinstance(value, Enum):
        return _normalize_for_json(value.value)

    if isinstance(value, (datetime, date, time)):
        return value.isoformat()

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, PurePath):
        return str(value)

    if isinstance(value, Decimal):
        if not value.is_finite():
            raise TypeError(f"Cannot serialize non-finite Decimal to JSON: {value!r}")
        return float(value)

    if isinstance(value, bytes):
        raise TypeError(
            f"Cannot serialize bytes to canonical JSON. "
            f"Encode to base64 or hex string first: {value!r:.64}"
        )

    raise TypeError(
        f"Cannot serialize type {type(value).__name__} to canonical JSON. "
        f"Convert to a JSON-compatible type first."
    )


def _sort_keys_deep(value: JsonValue) -> JsonValue:
    if isinstance(value, list):
        return [_sort_keys_deep(item) for item in value]
    if isinstance(value, dict):
        return {key: _sort_keys_deep(value[key]) for key in sorted(value)}
    return value


def sort_deep(value: Any) -> JsonValue:
    """Return ``value`` as JSON primitives with mapping keys sorted at every level.

    List order is preserved since positions carry meaning (block order on a
    page, navigation order).
    """
    return _sort_keys_deep(_normalize_for_json(value))


def stable_stringify(value: Any, spacing: int = 2) -> str:
    """Render ``value`` as key-sorted, indented JSON ending in one newline.

    Every project file is written through this function so that re-saving an
    unchanged document is byte-identical.

    Args:
        value: Any JSON-compatible value, including pydantic models.
        spacing: Indentation width.

    Returns:
        The JSON text.

    Raises:
        TypeError: If value contains an unsupported type.
        ValueError: If value contains NaN or infinity.
    """
    rendered = json.dumps(sort_deep(value), indent=spacing, ensure_ascii=False, allow_nan=False)
    return f"{rendered}\n"


def to_canonical_json(value: Any) -> str:
    """Serialize a value to compact, byte-for-byte reproducible JSON per RFC 8785.

    Used where a digest is taken over a document (block lock hashes), so the
    result must not depend on indentation or Python float formatting.

    Args:
        value: Any Python value including Pydantic models and special types.

    Returns:
        A UTF-8 string containing the canonicalized JSON representation.

    Raises:
        TypeError: If value contains an unsupported type.
        rfc8785.CanonicalizationError: If rfc8785 rejects the normalized value.
    """
    normalized = _normalize_for_json(value)
    return rfc8785.dumps(normalized).decode("utf-8")
