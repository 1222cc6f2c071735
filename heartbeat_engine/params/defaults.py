"""
Canonical engine defaults: single source for pipeline configuration.
resolve_params deep-merges caller overrides onto this dict; nothing else should hard-code these values.
"""

from typing import Dict, Any

# Product range accepted from callers (the HTTP layer validates the same range first)
BPM_MIN = 60
BPM_MAX = 200

# Tempo of the reference heartbeat recording shipped with each deployment
BASELINE_BPM = 140.0

SAMPLE_RATE = 44100

MB = 1024 * 1024

ENGINE_DEFAULTS: Dict[str, Any] = {
    "baseline_bpm": BASELINE_BPM,
    "sample_rate": SAMPLE_RATE,
    "interpolation": "cubic",
    # Perceptual exaggeration on top of target/baseline; boost >= 1 >= attenuation keeps the mapping monotonic
    "tempo": {
        "boost": 1.3,
        "attenuation": 0.6,
    },
    "full_clip": {
        "duration_s": 8.0,
        "volume": 1.0,
    },
    "sample": {
        "duration_s": 3.0,
        "volume": 0.7,
        "heartbeat_gain": 0.7,
        "whisper_gain": 0.3,
    },
    "fallback": {
        "duration_s": 8.0,
    },
    "limits": {
        # Output data chunk ceiling; above it the pipeline renders a bounded synthetic clip
        "max_output_bytes": 100 * MB,
        # Refuse to decode data chunks larger than this
        "max_decode_bytes": 1024 * MB,
    },
    "post": {
        "fade_in_ms": 0.0,
        "fade_out_ms": 0.0,
    },
}
