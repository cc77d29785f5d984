# app/domain/parsing.py
from __future__ import annotations

from typing import Any


def to_int(x: Any, default: int = 0) -> int:
    if x is None or x == "" or isinstance(x, bool):
        return default
    try:
        return int(float(x))
    except (TypeError, ValueError):
        return default


def to_str(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, str):
        return x.strip()
    if isinstance(x, (int, float)) and not isinstance(x, bool):
        return str(x)
    return ""


def to_str_list(x: Any) -> tuple[str, ...]:
    """
    Lists pass through (non-empty strings only); a bare string becomes a one-item list.
    """
    if isinstance(x, str):
        return (x.strip(),) if x.strip() else ()
    if isinstance(x, (list, tuple)):
        out: list[str] = []
        for item in x:
            s = to_str(item)
            if s:
                out.append(s)
        return tuple(out)
    return ()


def is_unknown(x: Any) -> bool:
    s = to_str(x)
    return not s or s.lower() == "unknown"


def known_or(x: Any, fallback: str) -> str:
    return fallback if is_unknown(x) else to_str(x)


def get_first(payload: dict[str, Any], *keys: str) -> Any:
    """Return first non-empty key from payload."""
    for k in keys:
        v = payload.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None
