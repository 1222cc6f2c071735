"""
Engine configuration.
Default values: single source is defaults.ENGINE_DEFAULTS; use resolve_params({}) for resolved defaults.
"""
from heartbeat_engine.params.defaults import ENGINE_DEFAULTS
from heartbeat_engine.params.resolve import resolve_params
from heartbeat_engine.params.clamp import validate_params, check_bpm

__all__ = ["ENGINE_DEFAULTS", "resolve_params", "validate_params", "check_bpm"]
