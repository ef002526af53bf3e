"""Dot-path lookup shared by the filter engine and the variable resolver."""

from __future__ import annotations

from typing import Any

from .types import MISSING


def get_path(data: Any, path: str) -> Any:
    """Walk ``a.b.0.c`` through dicts and lists. Returns MISSING on any miss."""
    if not path:
        return MISSING

    current = data
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current
