"""
Param lookup for nested config dicts.
Dotted keys address nested values, e.g. "tempo.boost" -> params["tempo"]["boost"].
"""
from typing import Any


def get_param(params: dict, name: str, default: Any = None) -> Any:
    """
    Read a value from params, supporting dotted keys for nested dicts.
    If any intermediate key is missing or not a dict, returns default.
    """
    if not params or not name:
        return default
    keys = name.split(".")
    current = params
    for key in keys[:-1]:
        next_val = current.get(key)
        if next_val is None or not isinstance(next_val, dict):
            return default
        current = next_val
    return current.get(keys[-1], default)


def set_param(params: dict, name: str, value: Any) -> dict:
    """
    Build a nested override dict for a dotted key (does not mutate params).
    set_param({}, "tempo.boost", 1.5) -> {"tempo": {"boost": 1.5}}
    """
    keys = name.split(".")
    result = dict(params) if params else {}
    current = result
    for key in keys[:-1]:
        nested = current.get(key)
        nested = dict(nested) if isinstance(nested, dict) else {}
        current[key] = nested
        current = nested
    current[keys[-1]] = value
    return result
