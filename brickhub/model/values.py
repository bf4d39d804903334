"""
Tolerant positional extraction from decoded JSON arrays.

Hub payloads are positional and fields come and go between firmware
versions, so every accessor returns a default instead of raising when the
index is missing or the value has the wrong type.
"""
from __future__ import annotations

from typing import Any, List, Optional


def opt_list(seq: Any, idx: int) -> Optional[List[Any]]:
    if not isinstance(seq, list) or not 0 <= idx < len(seq):
        return None
    value = seq[idx]
    return value if isinstance(value, list) else None


def opt_int(seq: Any, idx: int, default: int = 0) -> int:
    if not isinstance(seq, list) or not 0 <= idx < len(seq):
        return default
    value = seq[idx]
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def opt_float(seq: Any, idx: int, default: float = 0.0) -> float:
    if not isinstance(seq, list) or not 0 <= idx < len(seq):
        return default
    value = seq[idx]
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def opt_bool(seq: Any, idx: int, default: bool = False) -> bool:
    if not isinstance(seq, list) or not 0 <= idx < len(seq):
        return default
    value = seq[idx]
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return default


def opt_str(seq: Any, idx: int, default: str = "") -> str:
    if not isinstance(seq, list) or not 0 <= idx < len(seq):
        return default
    value = seq[idx]
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def triple(seq: Any) -> Optional[tuple]:
    """Return (x, y, z) ints from a 3-element list, or None if malformed."""
    if not isinstance(seq, list) or len(seq) < 3:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in seq[:3]):
        return None
    return (int(seq[0]), int(seq[1]), int(seq[2]))
