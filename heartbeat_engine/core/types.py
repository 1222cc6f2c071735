from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import torch

from heartbeat_engine.core.errors import InvalidArgumentError
from heartbeat_engine.core.params import get_param
from heartbeat_engine.params.clamp import check_bpm, check_duration, check_range
from heartbeat_engine.params.resolve import resolve_params

# WAV header fields: channel count is u16, sample rate is u32
MAX_CHANNELS = 0xFFFF
MAX_SAMPLE_RATE = 0xFFFFFFFF


@dataclass(frozen=True)
class Waveform:
    """
    Multi-channel float audio. samples is a float32 tensor shaped (channels, length),
    nominally in [-1, 1]. A 1-D input is treated as a single channel.
    Transforms return new Waveforms; the tensor is never modified in place.
    """
    samples: torch.Tensor
    sample_rate: int

    def __post_init__(self):
        samples = self.samples
        if not isinstance(samples, torch.Tensor):
            samples = torch.as_tensor(np.asarray(samples, dtype=np.float32))
        if samples.dim() == 1:
            samples = samples.unsqueeze(0)
        elif samples.dim() != 2:
            raise InvalidArgumentError(f"samples must be 1-D or 2-D, got shape {tuple(samples.shape)}")
        if not 1 <= samples.shape[0] <= MAX_CHANNELS:
            raise InvalidArgumentError(f"channel count must be in [1, {MAX_CHANNELS}], got {samples.shape[0]}")
        if isinstance(self.sample_rate, bool) or not isinstance(self.sample_rate, (int, np.integer)):
            raise InvalidArgumentError(f"sample_rate must be an integer, got {self.sample_rate!r}")
        if not 0 < int(self.sample_rate) <= MAX_SAMPLE_RATE:
            raise InvalidArgumentError(f"sample_rate out of range: {self.sample_rate}")
        object.__setattr__(self, "samples", samples.to(torch.float32))
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @classmethod
    def mono(cls, samples, sample_rate: int) -> "Waveform":
        """Single-channel Waveform from any 1-D sequence (flattened if needed)."""
        if not isinstance(samples, torch.Tensor):
            samples = torch.as_tensor(np.asarray(samples, dtype=np.float32))
        return cls(samples.reshape(1, -1), sample_rate)

    @classmethod
    def empty(cls, sample_rate: int, channels: int = 1) -> "Waveform":
        return cls(torch.zeros(channels, 0), sample_rate)

    @classmethod
    def silence(cls, length: int, sample_rate: int, channels: int = 1) -> "Waveform":
        return cls(torch.zeros(channels, max(0, int(length))), sample_rate)

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def length(self) -> int:
        return int(self.samples.shape[-1])

    @property
    def duration_s(self) -> float:
        return self.length / self.sample_rate

    def with_samples(self, samples: torch.Tensor) -> "Waveform":
        """Same sample rate, new data."""
        return Waveform(samples, self.sample_rate)

    def is_finite(self) -> bool:
        return bool(torch.isfinite(self.samples).all()) if self.length else True


@dataclass(frozen=True)
class ProcessingOptions:
    """Immutable request configuration for one pipeline call."""
    target_bpm: float
    target_duration_s: float = 8.0
    output_volume: float = 1.0

    def __post_init__(self):
        check_bpm(self.target_bpm)
        check_duration(self.target_duration_s, "target_duration_s")
        check_range("output_volume", self.output_volume, 0.0, 1.0)

    @classmethod
    def from_params(cls, params: dict, config: Optional[dict] = None, section: str = "full_clip") -> "ProcessingOptions":
        """
        Options from a request dict with keys target_bpm, target_duration_s, output_volume.
        Missing duration/volume come from config[section] (resolved defaults when config is None).
        """
        config = config or resolve_params()
        return cls(
            target_bpm=params.get("target_bpm"),
            target_duration_s=params.get("target_duration_s", get_param(config, f"{section}.duration_s")),
            output_volume=params.get("output_volume", get_param(config, f"{section}.volume")),
        )


@dataclass
class ProcessingResult:
    """Encoded clip plus advisory metadata (never part of the WAV payload)."""
    wav_bytes: bytes
    duration_s: float
    bpm: float
    baseline_bpm: Optional[float] = None
    speed_factor: float = 1.0
    source: str = "baseline"
    sample_rate: int = 44100
    channel_count: int = 1
    extra: Dict[str, str] = field(default_factory=dict)

    def headers(self) -> Dict[str, str]:
        """Advisory metadata as HTTP response headers."""
        headers = {
            "X-Target-BPM": f"{self.bpm:g}",
            "X-Speed-Factor": f"{self.speed_factor:.4f}",
            "X-Duration": f"{self.duration_s:.4f}",
            "X-Audio-Source": self.source,
        }
        if self.baseline_bpm is not None:
            headers["X-Original-BPM"] = f"{self.baseline_bpm:g}"
        headers.update(self.extra)
        return headers
