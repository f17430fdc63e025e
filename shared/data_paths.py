# shared/data_paths.py
"""Dotted-path access into nested dicts, e.g. "scenarios.realistic.revenueYearFive" """
from typing import Any, Dict

_MISSING = object()

def get_path(data: Any, path: str, default: Any = None) -> Any:
    current = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current

def set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """Assign value, creating intermediate dicts as needed"""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value

def is_present(value: Any) -> bool:
    """True for values that carry content: not None, not an empty string or collection"""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) > 0
    return True

def path_present(data: Any, path: str, min_items: int = 1) -> bool:
    """Presence test for a dotted path.

    A list value must hold at least min_items entries. "items[].field" is
    present when any element of items has field.
    """
    if "[]." in path:
        list_path, rest = path.split("[].", 1)
        items = get_path(data, list_path)
        if not isinstance(items, list):
            return False
        return any(path_present(item, rest, min_items) for item in items)

    value = get_path(data, path)
    if isinstance(value, list):
        return len(value) >= max(min_items, 1)
    return is_present(value)
