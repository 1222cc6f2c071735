"""
Conform an overlay waveform to a reference: same sample rate, same length.
Rate conversion uses torchaudio's band-limited resampler.
"""
import logging

import torch
import torchaudio.functional as F

from heartbeat_engine.core.types import Waveform

logger = logging.getLogger(__name__)


def to_sample_rate(waveform: Waveform, sample_rate: int) -> Waveform:
    if waveform.sample_rate == sample_rate:
        return waveform
    if waveform.length == 0:
        return Waveform.empty(sample_rate, waveform.channel_count)
    logger.info("converting overlay from %d Hz to %d Hz", waveform.sample_rate, sample_rate)
    converted = F.resample(waveform.samples, waveform.sample_rate, sample_rate)
    return Waveform(converted, sample_rate)


def fit_length(waveform: Waveform, length: int) -> Waveform:
    """Trim, or pad with silence, to exactly length samples."""
    n = waveform.length
    if n == length:
        return waveform
    if n > length:
        return waveform.with_samples(waveform.samples[:, :length].clone())
    return waveform.with_samples(torch.nn.functional.pad(waveform.samples, (0, length - n)))


def downmix(waveform: Waveform) -> Waveform:
    """Average all channels into one."""
    if waveform.channel_count == 1:
        return waveform
    return waveform.with_samples(waveform.samples.mean(dim=0, keepdim=True))


def conform(overlay: Waveform, reference: Waveform) -> Waveform:
    """
    overlay at reference's sample rate and length. Channel layouts that differ are
    downmixed to mono, which the mixer then spreads over the reference's channels.
    """
    if overlay.channel_count != reference.channel_count:
        overlay = downmix(overlay)
    return fit_length(to_sample_rate(overlay, reference.sample_rate), reference.length)
