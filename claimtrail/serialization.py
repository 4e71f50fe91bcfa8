"""Generic serialization helpers for claimtrail.

Provides ``to_serializable()``, a recursive converter that turns
dataclasses, Pydantic models, enums, sets, datetimes and other
common types into plain JSON-compatible dicts/lists.  Audit entry
details go through it before they are persisted.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel


def to_serializable(obj: Any) -> Any:
    """Recursively convert *obj* to a JSON-serializable structure.

    Handles: None, primitives, datetime/date, Decimal, Enum, set, list/tuple,
    dict, dataclass, Pydantic BaseModel, and arbitrary objects with
    ``__dict__``.  Falls back to ``str(obj)`` for unknown types.
    """
    # Enum before primitives: str-valued enums are also str instances
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, set):
        return sorted(to_serializable(item) for item in obj)
    if isinstance(obj, (list, tuple)):
        return [to_serializable(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, BaseModel):
        return to_serializable(obj.model_dump())
    if hasattr(obj, "__dataclass_fields__"):
        return {
            field_name: to_serializable(getattr(obj, field_name))
            for field_name in obj.__dataclass_fields__
        }
    if hasattr(obj, "__dict__"):
        return to_serializable(obj.__dict__)
    return str(obj)


def canonical_json(obj: Any) -> str:
    """Deterministic JSON (sorted keys, compact separators) for hashing."""
    return json.dumps(to_serializable(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
