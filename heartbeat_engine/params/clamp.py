"""
Validation for caller-supplied values and resolved configuration.
Out-of-range values are rejected with InvalidArgumentError, never silently corrected.
"""
import math
import numbers
from typing import Any

from heartbeat_engine.core.errors import InvalidArgumentError
from heartbeat_engine.core.params import get_param
from heartbeat_engine.params.defaults import BPM_MIN, BPM_MAX

INTERPOLATIONS = ("linear", "cubic")


def check_finite(name: str, value: Any) -> float:
    """Return value as float; reject bools, non-numbers (including numeric strings), NaN and Infinity."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidArgumentError(f"{name} must be a number, got {value!r}")
    v = float(value)
    if not math.isfinite(v):
        raise InvalidArgumentError(f"{name} must be finite, got {v}")
    return v


def check_range(name: str, value: Any, lo: float, hi: float) -> float:
    v = check_finite(name, value)
    if v < lo or v > hi:
        raise InvalidArgumentError(f"{name} must be in [{lo}, {hi}], got {v}")
    return v


def check_bpm(bpm: Any, bpm_min: float = BPM_MIN, bpm_max: float = BPM_MAX) -> float:
    return check_range("bpm", bpm, bpm_min, bpm_max)


def check_positive(name: str, value: Any) -> float:
    v = check_finite(name, value)
    if v <= 0:
        raise InvalidArgumentError(f"{name} must be > 0, got {v}")
    return v


def _check_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgumentError(f"{name} must be a positive integer, got {value!r}")
    return value


def validate_params(params: dict) -> dict:
    """
    Validate a resolved config dict (see ENGINE_DEFAULTS for the shape).
    Returns the same dict; raises InvalidArgumentError on the first bad value.
    """
    check_positive("baseline_bpm", get_param(params, "baseline_bpm"))
    _check_positive_int("sample_rate", get_param(params, "sample_rate"))

    interpolation = get_param(params, "interpolation")
    if interpolation not in INTERPOLATIONS:
        raise InvalidArgumentError(f"interpolation must be one of {INTERPOLATIONS}, got {interpolation!r}")

    boost = check_finite("tempo.boost", get_param(params, "tempo.boost"))
    if boost < 1.0:
        raise InvalidArgumentError(f"tempo.boost must be >= 1, got {boost}")
    attenuation = check_finite("tempo.attenuation", get_param(params, "tempo.attenuation"))
    if not 0.0 < attenuation <= 1.0:
        raise InvalidArgumentError(f"tempo.attenuation must be in (0, 1], got {attenuation}")

    for key in ("full_clip.duration_s", "sample.duration_s", "fallback.duration_s",
                "post.fade_in_ms", "post.fade_out_ms"):
        if check_finite(key, get_param(params, key)) < 0:
            raise InvalidArgumentError(f"{key} must be >= 0")

    check_range("full_clip.volume", get_param(params, "full_clip.volume"), 0.0, 1.0)
    check_range("sample.volume", get_param(params, "sample.volume"), 0.0, 1.0)
    check_finite("sample.heartbeat_gain", get_param(params, "sample.heartbeat_gain"))
    check_finite("sample.whisper_gain", get_param(params, "sample.whisper_gain"))

    _check_positive_int("limits.max_output_bytes", get_param(params, "limits.max_output_bytes"))
    _check_positive_int("limits.max_decode_bytes", get_param(params, "limits.max_decode_bytes"))
    return params


def check_sample_rate(sample_rate: Any) -> int:
    return _check_positive_int("sample_rate", sample_rate)


def check_duration(duration_s: Any, name: str = "duration_s") -> float:
    v = check_finite(name, duration_s)
    if v < 0:
        raise InvalidArgumentError(f"{name} must be >= 0, got {v}")
    return v
