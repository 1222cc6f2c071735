"""
Config tests: single source is defaults.ENGINE_DEFAULTS.
Resolved defaults = resolve_params({}). Snapshot detects drift; overrides deep-merge; bad values are rejected.
Run from project root: python -m pytest tests/test_params.py -v
"""
import sys
import os
import copy

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from heartbeat_engine.core.errors import InvalidArgumentError
from heartbeat_engine.core.params import get_param, set_param
from heartbeat_engine.core.types import ProcessingOptions
from heartbeat_engine.params import ENGINE_DEFAULTS, check_bpm, resolve_params


# -----------------------------------------------------------------------------
# Defaults snapshot
# -----------------------------------------------------------------------------

def test_defaults_snapshot():
    resolved = resolve_params({})
    assert resolved["baseline_bpm"] == 140.0
    assert resolved["sample_rate"] == 44100
    assert resolved["interpolation"] == "cubic"
    assert resolved["tempo"] == {"boost": 1.3, "attenuation": 0.6}
    assert resolved["full_clip"] == {"duration_s": 8.0, "volume": 1.0}
    assert resolved["sample"] == {"duration_s": 3.0, "volume": 0.7, "heartbeat_gain": 0.7, "whisper_gain": 0.3}
    assert resolved["limits"]["max_output_bytes"] == 100 * 1024 * 1024
    assert resolved["post"] == {"fade_in_ms": 0.0, "fade_out_ms": 0.0}


def test_resolve_none_equals_empty():
    assert resolve_params(None) == resolve_params({})


# -----------------------------------------------------------------------------
# Deep merge
# -----------------------------------------------------------------------------

def test_override_nested_keeps_siblings():
    resolved = resolve_params({"tempo": {"boost": 1.5}})
    assert resolved["tempo"] == {"boost": 1.5, "attenuation": 0.6}


def test_resolve_does_not_mutate_inputs():
    snapshot = copy.deepcopy(ENGINE_DEFAULTS)
    overrides = {"sample": {"volume": 0.5}}
    resolved = resolve_params(overrides)
    resolved["sample"]["duration_s"] = 99.0
    assert ENGINE_DEFAULTS == snapshot
    assert overrides == {"sample": {"volume": 0.5}}


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("overrides", [
    {"baseline_bpm": 0},
    {"sample_rate": 44100.5},
    {"sample_rate": -1},
    {"interpolation": "sinc"},
    {"tempo": {"boost": 0.8}},
    {"tempo": {"attenuation": 1.1}},
    {"tempo": {"attenuation": 0.0}},
    {"full_clip": {"duration_s": -1.0}},
    {"full_clip": {"volume": 1.2}},
    {"sample": {"volume": float("nan")}},
    {"sample": {"whisper_gain": float("inf")}},
    {"limits": {"max_output_bytes": 0}},
    {"post": {"fade_out_ms": -5.0}},
])
def test_resolve_rejects_bad_values(overrides):
    with pytest.raises(InvalidArgumentError):
        resolve_params(overrides)


@pytest.mark.parametrize("bpm", [60, 60.0, 140, 200])
def test_bpm_range_inclusive(bpm):
    assert check_bpm(bpm) == float(bpm)


@pytest.mark.parametrize("bpm", [59.9, 200.1, 0, float("nan"), None, "120", False])
def test_bpm_out_of_range(bpm):
    with pytest.raises(InvalidArgumentError):
        check_bpm(bpm)


# -----------------------------------------------------------------------------
# Dotted lookup
# -----------------------------------------------------------------------------

def test_get_param_dotted():
    params = {"tempo": {"boost": 1.3}, "sample_rate": 44100}
    assert get_param(params, "tempo.boost") == 1.3
    assert get_param(params, "sample_rate") == 44100
    assert get_param(params, "tempo.missing", "x") == "x"
    assert get_param(params, "sample_rate.nested", "x") == "x"
    assert get_param({}, "tempo.boost", 2) == 2


def test_set_param_builds_new_dict():
    base = {"tempo": {"attenuation": 0.5}}
    updated = set_param(base, "tempo.boost", 1.5)
    assert updated == {"tempo": {"attenuation": 0.5, "boost": 1.5}}
    assert base == {"tempo": {"attenuation": 0.5}}
    assert set_param({}, "interpolation", "linear") == {"interpolation": "linear"}


# -----------------------------------------------------------------------------
# ProcessingOptions
# -----------------------------------------------------------------------------

def test_options_from_params_uses_configured_defaults():
    options = ProcessingOptions.from_params({"target_bpm": 90})
    assert options == ProcessingOptions(90, 8.0, 1.0)
    sample = ProcessingOptions.from_params({"target_bpm": 90}, section="sample")
    assert sample.target_duration_s == 3.0
    assert sample.output_volume == 0.7


def test_options_from_params_overrides():
    config = resolve_params({"full_clip": {"duration_s": 4.0}})
    options = ProcessingOptions.from_params({"target_bpm": 150, "output_volume": 0.5}, config)
    assert options.target_duration_s == 4.0
    assert options.output_volume == 0.5


@pytest.mark.parametrize("request_params", [
    {},
    {"target_bpm": 250},
    {"target_bpm": 120, "target_duration_s": float("inf")},
    {"target_bpm": 120, "output_volume": 2.0},
])
def test_options_validation(request_params):
    with pytest.raises(InvalidArgumentError):
        ProcessingOptions.from_params(request_params)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
