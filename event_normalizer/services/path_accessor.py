"""
event_normalizer/services/path_accessor.py

Dot-addressed access to nested payloads.

    get_nested_value(obj, "usage.prompt_tokens")
    set_nested_value(obj, "response.usage.prompt_tokens", 10)
    get_all_paths(obj)  -> ["id", "usage.prompt_tokens", ...]

Lookups never raise: a missing segment returns the MISSING sentinel so that a
present None (JSON null) can still be told apart from an absent field.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Tuple


class _Missing:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def _split(path: str) -> List[str]:
    return [p for p in path.split(".") if p != ""]


def get_nested_value(obj: Any, path: str) -> Any:
    current = obj
    for part in _split(path):
        if current is None:
            return MISSING
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list):
            if not part.isdigit():
                return MISSING
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def set_nested_value(obj: Dict[str, Any], path: str, value: Any) -> None:
    parts = _split(path)
    if not parts:
        return

    current = obj
    for part in parts[:-1]:
        # Intermediate containers are always plain dicts; an earlier scalar at
        # this position is overwritten.
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]

    current[parts[-1]] = value


def get_all_paths(obj: Dict[str, Any], prefix: str = "") -> List[str]:
    """Return every leaf path of a nested dict.

    Lists are leaves and are not descended into. Empty dicts have no leaves.
    Walks with an explicit stack, so nesting depth is not bound by recursion.
    """
    paths: List[str] = []
    stack: List[Tuple[str, Iterator[Tuple[Any, Any]]]] = [(prefix, iter(obj.items()))]
    while stack:
        base, items = stack[-1]
        for key, value in items:
            path = f"{base}.{key}" if base else str(key)
            if isinstance(value, dict):
                stack.append((path, iter(value.items())))
                break
            paths.append(path)
        else:
            stack.pop()
    return paths
