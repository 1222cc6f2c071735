"""
Tempo resampler: renders a waveform of a requested length whose playback tempo follows a target BPM.

Tempo change and duration fitting are one mapping, so the source is interpolated once:
    pos(i) = (i / output_length) * source_length * tempo_ratio
Positions at or past the last source sample hold that sample.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import torch

from heartbeat_engine.core.errors import InvalidArgumentError, ResourceLimitExceeded
from heartbeat_engine.core.params import get_param
from heartbeat_engine.core.types import Waveform
from heartbeat_engine.dsp.interpolate import get_interpolator
from heartbeat_engine.params.clamp import check_duration, check_finite, check_positive

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE = 2


# -----------------------------------------------------------------------------
# Tempo ratio
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class TempoPolicy:
    """
    Perceptual exaggeration applied on top of target/baseline.
    boost multiplies ratios for faster targets, attenuation for slower ones.
    boost >= 1 >= attenuation > 0 keeps ratio strictly increasing in target BPM.
    """
    boost: float = 1.3
    attenuation: float = 0.6

    def __post_init__(self):
        boost = check_finite("boost", self.boost)
        attenuation = check_finite("attenuation", self.attenuation)
        if boost < 1.0:
            raise InvalidArgumentError(f"boost must be >= 1, got {boost}")
        if not 0.0 < attenuation <= 1.0:
            raise InvalidArgumentError(f"attenuation must be in (0, 1], got {attenuation}")

    @classmethod
    def physical(cls) -> "TempoPolicy":
        """Plain target/baseline ratio."""
        return cls(boost=1.0, attenuation=1.0)

    @classmethod
    def from_params(cls, params: dict) -> "TempoPolicy":
        return cls(
            boost=get_param(params, "tempo.boost", 1.3),
            attenuation=get_param(params, "tempo.attenuation", 0.6),
        )


def tempo_ratio(target_bpm: float, baseline_bpm: float, policy: Optional[TempoPolicy] = None) -> float:
    """target/baseline, scaled by policy.boost above the baseline and policy.attenuation below it."""
    policy = policy or TempoPolicy()
    target = check_positive("target_bpm", target_bpm)
    baseline = check_positive("baseline_bpm", baseline_bpm)
    ratio = target / baseline
    if target > baseline:
        ratio *= policy.boost
    elif target < baseline:
        ratio *= policy.attenuation
    return ratio


# -----------------------------------------------------------------------------
# Sizing
# -----------------------------------------------------------------------------

def output_length_for(duration_s: float, sample_rate: int) -> int:
    """
    Sample count for a duration, rounded to the nearest sample.
    ResourceLimitExceeded when the count overflows a float (finite but huge durations).
    """
    samples = check_duration(duration_s) * sample_rate
    if not math.isfinite(samples):
        raise ResourceLimitExceeded(f"{duration_s} s at {sample_rate} Hz is too many samples to render")
    return int(round(samples))


def check_output_size(length: int, channels: int, max_output_bytes: Optional[int]) -> int:
    """Return the data-chunk size in bytes; ResourceLimitExceeded above max_output_bytes."""
    requested = int(length) * int(channels) * BYTES_PER_SAMPLE
    if max_output_bytes is not None and requested > max_output_bytes:
        raise ResourceLimitExceeded(
            f"output of {length} samples x {channels} channels needs {requested} bytes, "
            f"limit is {max_output_bytes}",
            requested_bytes=requested,
            limit_bytes=max_output_bytes,
        )
    return requested


# -----------------------------------------------------------------------------
# Resampling
# -----------------------------------------------------------------------------

def resample(
    source: Waveform,
    tempo_ratio: float,
    output_length: int,
    interpolation: str = "cubic",
    max_output_bytes: Optional[int] = None,
) -> Waveform:
    """
    Read source at pos(i) = (i / output_length) * source_length * tempo_ratio for i in [0, output_length).

    Args:
        source: Waveform recorded at the baseline tempo
        tempo_ratio: > 1 consumes the source faster, < 1 slower
        output_length: Number of output samples per channel (0 -> empty waveform)
        interpolation: "cubic" or "linear"
        max_output_bytes: Optional ceiling on the 16-bit output size

    Returns:
        New Waveform with source's sample rate and channel count.
    """
    ratio = check_positive("tempo_ratio", tempo_ratio)
    if isinstance(output_length, bool) or not isinstance(output_length, int):
        raise InvalidArgumentError(f"output_length must be an integer, got {output_length!r}")
    if output_length < 0:
        raise InvalidArgumentError(f"output_length must be >= 0, got {output_length}")
    interpolate = get_interpolator(interpolation)
    channels = source.channel_count
    check_output_size(output_length, channels, max_output_bytes)

    if output_length == 0:
        return Waveform.empty(source.sample_rate, channels)

    n = source.length
    if n == 0:
        logger.warning("resampling an empty source; output is silence")
        return Waveform.silence(output_length, source.sample_rate, channels)
    if n == 1:
        return source.with_samples(source.samples.expand(channels, output_length).clone())

    src = source.samples.to(torch.float64)
    pos = torch.arange(output_length, dtype=torch.float64) / output_length * (n * ratio)
    past_end = pos >= (n - 1)

    # Keep reads in range for held positions; their values are replaced below
    index = torch.floor(pos).clamp(max=n - 2).long()
    frac = (pos - index).clamp(0.0, 1.0)

    out = interpolate(src, index, frac)
    out = torch.where(past_end, src[:, -1:], out)
    return source.with_samples(out.float())


class TempoResampler:
    """Resampler bound to one configuration (interpolation kind, tempo policy, output ceiling)."""

    def __init__(
        self,
        interpolation: str = "cubic",
        policy: Optional[TempoPolicy] = None,
        max_output_bytes: Optional[int] = None,
    ):
        get_interpolator(interpolation)
        self.interpolation = interpolation
        self.policy = policy or TempoPolicy()
        self.max_output_bytes = max_output_bytes

    def ratio_for(self, target_bpm: float, baseline_bpm: float) -> float:
        return tempo_ratio(target_bpm, baseline_bpm, self.policy)

    def stretch(
        self,
        source: Waveform,
        target_bpm: float,
        baseline_bpm: float,
        duration_s: float,
    ) -> Tuple[Waveform, float]:
        """Resample source to target_bpm and duration_s in one pass. Returns (waveform, tempo_ratio)."""
        ratio = self.ratio_for(target_bpm, baseline_bpm)
        length = output_length_for(duration_s, source.sample_rate)
        out = resample(source, ratio, length, self.interpolation, self.max_output_bytes)
        logger.debug(
            "stretched %d -> %d samples (target=%.1f baseline=%.1f ratio=%.4f, %s)",
            source.length, length, float(target_bpm), float(baseline_bpm), ratio, self.interpolation,
        )
        return out, ratio
