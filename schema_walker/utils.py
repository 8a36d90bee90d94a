"""
utils.py – shared, low-level utilities for the schema-walker package.

This module consolidates common helpers for:
- JSON type classification (the six JSON Schema instance types)
- Canonical JSON keys (key-order-insensitive equality and uniqueness)
- JSON-pointer path rendering for error records
- Optional pandas support (DataFrame rows as JSON records)
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from typing import Any, Iterator, Tuple

# --------------------------------------------------------------------------- #
# Type classification                                                         #
# --------------------------------------------------------------------------- #

def _json_type(value: Any) -> str:
    """Return the JSON instance type of *value*.

    Exactly one of ``null``, ``boolean``, ``number``, ``string``, ``array``,
    ``object``.  ``bool`` is tested before ``int`` because it subclasses it.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, Sequence):
        return "array"
    return type(value).__name__


def _is_finite(value: Any) -> bool:
    return not isinstance(value, float) or math.isfinite(value)


def _is_integer(value: Any) -> bool:
    """JSON integers include floats with a zero fractional part."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value) and value.is_integer()


def _matches_type(name: str, value: Any) -> bool:
    """Return True iff *value* is an instance of JSON Schema type *name*."""
    if name == "integer":
        return _is_integer(value)
    if name == "number":
        return _json_type(value) == "number" and _is_finite(value)
    return _json_type(value) == name


# --------------------------------------------------------------------------- #
# Canonical JSON & equality                                                   #
# --------------------------------------------------------------------------- #

def _json_safe(x: Any) -> Any:
    """Recursively prepare a value for deterministic, order-free comparison."""
    if isinstance(x, Mapping):
        return {str(k): _json_safe(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [_json_safe(v) for v in x]
    if isinstance(x, float) and math.isfinite(x) and x.is_integer():
        return int(x)  # 1.0 and 1 are the same JSON number
    return x


def _canonical(obj: Any) -> str:
    """Return a canonical JSON string for *obj* (object keys sorted)."""
    return json.dumps(_json_safe(obj), sort_keys=True, separators=(",", ":"))


def _equal(a: Any, b: Any) -> bool:
    """Deep JSON equality; ``true`` never equals ``1``."""
    if a is b:
        return True
    return _canonical(a) == _canonical(b)


# --------------------------------------------------------------------------- #
# Paths                                                                       #
# --------------------------------------------------------------------------- #

def _dotted(path: Tuple[Any, ...], root: str = "root") -> str:
    """Render a data path the way error messages show it: ``root.a[0]``."""
    out = root
    for part in path:
        out += f"[{part}]" if isinstance(part, int) else f".{part}"
    return out


def _pointer(path: Tuple[Any, ...]) -> str:
    """Render a path as an RFC 6901 JSON pointer."""
    return "".join(
        "/" + str(part).replace("~", "~0").replace("/", "~1") for part in path
    )


# --------------------------------------------------------------------------- #
# Optional pandas support                                                     #
# --------------------------------------------------------------------------- #

def _frame_records(frame: Any) -> Iterator[Tuple[Any, dict]]:
    """Yield ``(row_label, record)`` pairs for a pandas DataFrame.
    Backs ``Schema.iter_frame_errors`` for row-by-row checks of tabular data.

    Values go through ``to_json`` so numpy scalars and NaN become plain JSON
    values (NaN turns into ``None``).
    """
    import pandas as pd

    if not isinstance(frame, pd.DataFrame):
        raise TypeError(f"expected a pandas DataFrame, got {type(frame).__name__}")
    rows = json.loads(frame.to_json(orient="records", date_format="iso"))
    yield from zip(frame.index, rows)
