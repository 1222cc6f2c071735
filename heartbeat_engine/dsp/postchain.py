"""
Shared output stage: finite check -> volume -> optional boundary fades -> clamp to [-1, 1].
Deterministic; runs on every clip right before encoding.
"""
from typing import Optional

import torch

from heartbeat_engine.core.errors import InvalidArgumentError
from heartbeat_engine.core.params import get_param
from heartbeat_engine.core.types import Waveform
from heartbeat_engine.params.clamp import check_range


class PostChain:
    """
    Output chain. Rejects NaN/Infinity instead of letting corrupt floats reach the encoder.
    """

    @staticmethod
    def _check_finite(waveform: Waveform) -> None:
        if not waveform.is_finite():
            raise InvalidArgumentError("processing produced NaN or Infinity samples")

    @staticmethod
    def _boundary_fades(buffer: torch.Tensor, sample_rate: int, fade_in_ms: float, fade_out_ms: float) -> torch.Tensor:
        """Linear fade-in / fade-out ramps; 0 ms disables a ramp."""
        n = buffer.shape[-1]
        if n == 0:
            return buffer
        out = buffer.clone()
        n_in = min(int(fade_in_ms * 1e-3 * sample_rate), n)
        n_out = min(int(fade_out_ms * 1e-3 * sample_rate), n)
        if n_in > 0:
            out[..., :n_in] = out[..., :n_in] * torch.linspace(0.0, 1.0, n_in)
        if n_out > 0:
            out[..., -n_out:] = out[..., -n_out:] * torch.linspace(1.0, 0.0, n_out)
        return out

    @classmethod
    def process(cls, waveform: Waveform, volume: float = 1.0, params: Optional[dict] = None) -> Waveform:
        """
        Run the output chain.
        params: resolved config; reads post.fade_in_ms / post.fade_out_ms.
        """
        params = params or {}
        volume = check_range("volume", volume, 0.0, 1.0)
        cls._check_finite(waveform)

        x = waveform.samples * volume
        x = cls._boundary_fades(
            x,
            waveform.sample_rate,
            float(get_param(params, "post.fade_in_ms", 0.0)),
            float(get_param(params, "post.fade_out_ms", 0.0)),
        )
        x = torch.clamp(x, -1.0, 1.0)
        return waveform.with_samples(x)
