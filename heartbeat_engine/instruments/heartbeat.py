"""
Procedural heartbeat: a lub-dub pattern at bpm/60 Hz.
Used when no baseline recording is available and for the synthetic sample path.
Per beat: phase < 0.3 -> fundamental + 2nd + 3rd harmonic ("lub"), 0.3..0.6 -> quieter fundamental ("dub"),
remainder silent. Small uniform noise is added; pass seed for a deterministic render.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import torch

from heartbeat_engine.core.types import Waveform
from heartbeat_engine.dsp.noise import Noise, make_generator
from heartbeat_engine.dsp.oscillators import Oscillator, time_grid
from heartbeat_engine.dsp.resample import output_length_for
from heartbeat_engine.params.clamp import check_positive, check_sample_rate
from heartbeat_engine.params.defaults import SAMPLE_RATE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeartbeatVoicing:
    """Level of each beat component. Weights decrease with harmonic number."""
    main_weights: Tuple[float, float, float] = (0.4, 0.2, 0.1)
    secondary_weight: float = 0.2
    main_end: float = 0.3
    secondary_end: float = 0.6
    noise_width: float = 0.05


# Full-length clips
FULL_VOICING = HeartbeatVoicing()
# Short samples sit under a whisper overlay, so everything is a little softer
SAMPLE_VOICING = HeartbeatVoicing(main_weights=(0.3, 0.15, 0.1), secondary_weight=0.15, noise_width=0.03)


class HeartbeatEngine:
    def __init__(self, sample_rate: int = SAMPLE_RATE, voicing: HeartbeatVoicing = FULL_VOICING):
        self.sample_rate = check_sample_rate(sample_rate)
        self.voicing = voicing

    def render(self, bpm: float, duration_s: float, seed: Optional[int] = None) -> Waveform:
        bpm = check_positive("bpm", bpm)
        sr = self.sample_rate
        voicing = self.voicing

        n = output_length_for(duration_s, sr)
        freq = bpm / 60.0
        beat_phase = torch.remainder(time_grid(n, sr) * freq, 1.0)

        lub = Oscillator.partials(freq, voicing.main_weights, n, sr)
        dub = Oscillator.sine(freq, n, sr, amplitude=voicing.secondary_weight)
        silence = torch.zeros(n)

        beat = torch.where(
            beat_phase < voicing.main_end,
            lub,
            torch.where(beat_phase < voicing.secondary_end, dub, silence),
        )
        beat = beat + Noise.uniform(n, voicing.noise_width, make_generator(seed))
        logger.debug("synthesized heartbeat: bpm=%.1f samples=%d sr=%d", bpm, n, sr)
        return Waveform(beat, sr)


def synthesize_heartbeat(
    bpm: float,
    duration_s: float,
    sample_rate: int = SAMPLE_RATE,
    seed: Optional[int] = None,
    voicing: HeartbeatVoicing = FULL_VOICING,
) -> Waveform:
    """Mono heartbeat Waveform of round(duration_s * sample_rate) samples."""
    return HeartbeatEngine(sample_rate, voicing).render(bpm, duration_s, seed=seed)
