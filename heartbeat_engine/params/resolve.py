"""
Parameter resolution: deep-merge ENGINE_DEFAULTS with incoming overrides, then validate.
Incoming values override defaults at any nesting level.
"""
import copy
from typing import Dict, Any, Optional

from heartbeat_engine.params.defaults import ENGINE_DEFAULTS
from heartbeat_engine.params.clamp import validate_params


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dicts. override values take precedence.
    Returns a new dict (does not mutate inputs).
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def resolve_params(params: Optional[dict] = None) -> dict:
    """
    Resolve config by:
    1. Starting from a copy of ENGINE_DEFAULTS
    2. Merging incoming params onto it (caller values override defaults)
    3. Validating the result (InvalidArgumentError on bad values)

    Returns a fully resolved dict; neither input nor defaults are mutated.
    """
    merged = _deep_merge(copy.deepcopy(ENGINE_DEFAULTS), params or {})
    return validate_params(merged)
