"""
Quality analysis for rendered or uploaded clips.
Level metrics, zero-crossing rate and a rough beat-rate estimate from the amplitude envelope.
"""
import torch
import numpy as np
from typing import Dict, Optional

from heartbeat_engine.core.types import Waveform
from heartbeat_engine.params.defaults import BPM_MIN, BPM_MAX

# Envelope frames per second for beat-rate estimation
ENVELOPE_RATE = 100


def _dbfs(x: float) -> Optional[float]:
    """Convert linear amplitude to dBFS (full scale). None for silence."""
    if x <= 0:
        return None
    return float(20.0 * np.log10(abs(x)))


def zero_crossing_rate(waveform: Waveform, start_s: float = 0.0, end_s: Optional[float] = None) -> float:
    """
    Sign changes per second in [start_s, end_s), averaged over channels.
    Exact zeros count with the positive side.
    """
    sr = waveform.sample_rate
    start = max(0, int(start_s * sr))
    end = waveform.length if end_s is None else min(waveform.length, int(end_s * sr))
    if end - start < 2:
        return 0.0
    segment = waveform.samples[:, start:end]
    positive = segment >= 0
    crossings = (positive[:, 1:] != positive[:, :-1]).sum(dim=-1).float()
    return float(crossings.mean()) / ((end - start) / sr)


def _envelope(mono: torch.Tensor, sample_rate: int) -> torch.Tensor:
    """Frame RMS at ENVELOPE_RATE frames/s."""
    hop = max(1, sample_rate // ENVELOPE_RATE)
    frames = mono.shape[-1] // hop
    if frames == 0:
        return torch.zeros(0)
    framed = mono[: frames * hop].reshape(frames, hop)
    return torch.sqrt(torch.mean(framed ** 2, dim=-1) + 1e-12)


def estimate_bpm(waveform: Waveform, bpm_min: float = BPM_MIN, bpm_max: float = BPM_MAX) -> Optional[float]:
    """
    Beat rate from the autocorrelation peak of the amplitude envelope, searched between
    bpm_min and bpm_max. None when the clip is too short or has no periodic envelope.
    """
    mono = waveform.samples.mean(dim=0).double()
    env = _envelope(mono, waveform.sample_rate)
    frame_rate = waveform.sample_rate / max(1, waveform.sample_rate // ENVELOPE_RATE)
    lag_min = int(np.floor(frame_rate * 60.0 / bpm_max))
    lag_max = int(np.ceil(frame_rate * 60.0 / bpm_min))
    if env.shape[-1] < lag_max * 2 or lag_min < 1:
        return None

    env = env - env.mean()
    n = env.shape[-1]
    n_fft = 2 ** int(np.ceil(np.log2(2 * n)))
    spectrum = torch.fft.rfft(env, n=n_fft)
    acf = torch.fft.irfft(spectrum * torch.conj(spectrum), n=n_fft)[:n]
    if acf[0] <= 1e-12:
        return None

    window = acf[lag_min: lag_max + 1]
    lag = lag_min + int(torch.argmax(window))
    if acf[lag] <= 0:
        return None
    return 60.0 * frame_rate / lag


def analyze(waveform: Waveform) -> Dict:
    """Level, timing and beat metrics for a clip."""
    x = waveform.samples
    n = waveform.length
    if n == 0:
        return {
            "duration_s": 0.0,
            "sample_rate": waveform.sample_rate,
            "channels": waveform.channel_count,
            "samples": 0,
            "peak": 0.0,
            "peak_dbfs": None,
            "rms": 0.0,
            "dc_offset": 0.0,
            "clipped_fraction": 0.0,
            "zero_crossing_rate": 0.0,
            "estimated_bpm": None,
        }

    peak = float(torch.max(torch.abs(x)))
    rms = float(torch.sqrt(torch.mean(x.double() ** 2)))
    clipped = float(torch.mean((torch.abs(x) >= 0.999).float()))

    return {
        "duration_s": waveform.duration_s,
        "sample_rate": waveform.sample_rate,
        "channels": waveform.channel_count,
        "samples": n,
        "peak": peak,
        "peak_dbfs": _dbfs(peak),
        "rms": rms,
        "dc_offset": float(torch.mean(x.double())),
        "clipped_fraction": clipped,
        "zero_crossing_rate": zero_crossing_rate(waveform),
        "estimated_bpm": estimate_bpm(waveform),
    }
