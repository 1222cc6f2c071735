"""
Soft breathy overlay: three quiet sines under a slow 0.5 Hz swell, plus a little noise.
Stands in for the whisper recording when that asset is missing.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import torch

from heartbeat_engine.core.types import Waveform
from heartbeat_engine.dsp.noise import Noise, make_generator
from heartbeat_engine.dsp.oscillators import Oscillator, time_grid
from heartbeat_engine.dsp.resample import output_length_for
from heartbeat_engine.params.clamp import check_sample_rate
from heartbeat_engine.params.defaults import SAMPLE_RATE


@dataclass(frozen=True)
class WhisperVoicing:
    # (frequency Hz, level)
    partials: Tuple[Tuple[float, float], ...] = ((200.0, 0.1), (400.0, 0.05), (800.0, 0.03))
    swell_hz: float = 0.5
    noise_width: float = 0.02


class WhisperEngine:
    def __init__(self, sample_rate: int = SAMPLE_RATE, voicing: WhisperVoicing = WhisperVoicing()):
        self.sample_rate = check_sample_rate(sample_rate)
        self.voicing = voicing

    def render(self, duration_s: float, seed: Optional[int] = None) -> Waveform:
        sr = self.sample_rate
        n = output_length_for(duration_s, sr)

        tone = torch.zeros(n)
        for freq, level in self.voicing.partials:
            tone = tone + Oscillator.sine(freq, n, sr, amplitude=level)

        # Swell between 0 and 1
        t = time_grid(n, sr)
        swell = (0.5 * torch.sin(2 * np.pi * self.voicing.swell_hz * t) + 0.5).float()

        whisper = tone * swell + Noise.uniform(n, self.voicing.noise_width, make_generator(seed))
        return Waveform(whisper, sr)


def synthesize_whisper(duration_s: float, sample_rate: int = SAMPLE_RATE, seed: Optional[int] = None) -> Waveform:
    """Mono whisper Waveform of round(duration_s * sample_rate) samples."""
    return WhisperEngine(sample_rate).render(duration_s, seed=seed)
