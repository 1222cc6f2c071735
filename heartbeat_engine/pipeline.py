"""
Processing pipeline: decode -> tempo resample -> (overlay mix) -> output chain -> encode.

generate_* functions take already-decoded Waveforms and are pure. render_* functions are the
boundary used by the service and CLI: they accept raw bytes, a Waveform or None and fall back
to synthesis when the baseline is missing, malformed, or would exceed the output ceiling.
InvalidArgumentError is never swallowed.
"""
import functools
import logging
from dataclasses import dataclass
from typing import Optional, Union

from heartbeat_engine.core.errors import MalformedWavError, ResourceLimitExceeded
from heartbeat_engine.core.params import get_param
from heartbeat_engine.core.types import ProcessingOptions, ProcessingResult, Waveform
from heartbeat_engine.core.wav import BYTES_PER_SAMPLE, decode, encode
from heartbeat_engine.dsp.convert import conform
from heartbeat_engine.dsp.mixer import mix
from heartbeat_engine.dsp.postchain import PostChain
from heartbeat_engine.dsp.resample import TempoPolicy, TempoResampler, check_output_size, output_length_for
from heartbeat_engine.instruments.heartbeat import SAMPLE_VOICING, synthesize_heartbeat
from heartbeat_engine.instruments.whisper import synthesize_whisper
from heartbeat_engine.params.clamp import check_bpm, check_duration
from heartbeat_engine.params.resolve import resolve_params

logger = logging.getLogger(__name__)

AudioInput = Union[bytes, bytearray, memoryview, Waveform, None]


# -----------------------------------------------------------------------------
# Context
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessingContext:
    """
    Resolved configuration for the pipeline. Holds no per-request state, so one
    instance can serve every request in the process.
    """
    params: dict

    @classmethod
    def create(cls, overrides: Optional[dict] = None) -> "ProcessingContext":
        return cls(resolve_params(overrides))

    @property
    def baseline_bpm(self) -> float:
        return float(get_param(self.params, "baseline_bpm"))

    @property
    def sample_rate(self) -> int:
        return int(get_param(self.params, "sample_rate"))

    @property
    def max_output_bytes(self) -> int:
        return int(get_param(self.params, "limits.max_output_bytes"))

    @property
    def max_decode_bytes(self) -> int:
        return int(get_param(self.params, "limits.max_decode_bytes"))

    def resampler(self) -> TempoResampler:
        return TempoResampler(
            interpolation=get_param(self.params, "interpolation"),
            policy=TempoPolicy.from_params(self.params),
            max_output_bytes=self.max_output_bytes,
        )

    def full_clip_options(self, bpm: float) -> ProcessingOptions:
        """Options for a full clip at the configured duration and volume."""
        return ProcessingOptions.from_params({"target_bpm": bpm}, self.params, section="full_clip")

    def bounded_duration(self, duration_s: float, sample_rate: Optional[int] = None, channels: int = 1) -> float:
        """Longest duration <= duration_s whose 16-bit output fits max_output_bytes."""
        sample_rate = sample_rate or self.sample_rate
        max_samples = self.max_output_bytes // (BYTES_PER_SAMPLE * channels)
        return min(check_duration(duration_s), max_samples / sample_rate)


@functools.lru_cache(maxsize=1)
def default_context() -> ProcessingContext:
    return ProcessingContext.create()


def _finish(
    waveform: Waveform,
    context: ProcessingContext,
    bpm: float,
    speed_factor: float,
    source: str,
    baseline_bpm: Optional[float] = None,
) -> ProcessingResult:
    wav_bytes = encode(waveform, max_output_bytes=context.max_output_bytes)
    return ProcessingResult(
        wav_bytes=wav_bytes,
        duration_s=waveform.duration_s,
        bpm=bpm,
        baseline_bpm=baseline_bpm,
        speed_factor=speed_factor,
        source=source,
        sample_rate=waveform.sample_rate,
        channel_count=waveform.channel_count,
    )


# -----------------------------------------------------------------------------
# Pure generators
# -----------------------------------------------------------------------------

def generate_full_clip(
    source: Waveform,
    options: ProcessingOptions,
    context: Optional[ProcessingContext] = None,
) -> ProcessingResult:
    """Resample source to options.target_bpm over options.target_duration_s, apply volume, encode."""
    context = context or default_context()
    stretched, ratio = context.resampler().stretch(
        source, options.target_bpm, context.baseline_bpm, options.target_duration_s,
    )
    out = PostChain.process(stretched, options.output_volume, context.params)
    return _finish(out, context, options.target_bpm, ratio, "baseline", context.baseline_bpm)


def generate_sample(
    source: Waveform,
    options: ProcessingOptions,
    whisper: Optional[Waveform] = None,
    context: Optional[ProcessingContext] = None,
    seed: Optional[int] = None,
) -> ProcessingResult:
    """
    Short sample: options.target_bpm only; duration, volume and overlay gains come from
    the sample.* config (3 s, 0.7, 0.7/0.3). whisper is conformed to the heartbeat's rate and
    length, or synthesized when None.
    """
    context = context or default_context()
    params = context.params
    duration_s = float(get_param(params, "sample.duration_s"))

    stretched, ratio = context.resampler().stretch(
        source, options.target_bpm, context.baseline_bpm, duration_s,
    )
    heart = PostChain.process(stretched, float(get_param(params, "sample.volume")))
    overlay = _overlay_for(heart, whisper, seed)
    mixed = mix(
        heart,
        overlay,
        float(get_param(params, "sample.heartbeat_gain")),
        float(get_param(params, "sample.whisper_gain")),
    )
    out = PostChain.process(mixed, 1.0, params)
    return _finish(out, context, options.target_bpm, ratio, "baseline", context.baseline_bpm)


def generate_fallback_clip(
    bpm: float,
    duration_s: Optional[float] = None,
    context: Optional[ProcessingContext] = None,
    seed: Optional[int] = None,
    volume: float = 1.0,
) -> ProcessingResult:
    """
    Synthesized heartbeat already at bpm; no resampling involved.
    duration_s defaults to fallback.duration_s.
    """
    context = context or default_context()
    if duration_s is None:
        duration_s = float(get_param(context.params, "fallback.duration_s"))
    bpm = check_bpm(bpm)
    sr = context.sample_rate
    check_output_size(output_length_for(duration_s, sr), 1, context.max_output_bytes)

    heart = synthesize_heartbeat(bpm, duration_s, sr, seed=seed)
    out = PostChain.process(heart, volume, context.params)
    return _finish(out, context, bpm, 1.0, "synthetic")


def generate_fallback_sample(
    bpm: float,
    context: Optional[ProcessingContext] = None,
    seed: Optional[int] = None,
) -> ProcessingResult:
    """Synthesized heartbeat + synthesized whisper at the sample.* gains."""
    context = context or default_context()
    params = context.params
    bpm = check_bpm(bpm)
    duration_s = float(get_param(params, "sample.duration_s"))
    sr = context.sample_rate

    heart = synthesize_heartbeat(bpm, duration_s, sr, seed=seed, voicing=SAMPLE_VOICING)
    whisper = synthesize_whisper(duration_s, sr, seed=None if seed is None else seed + 1)
    mixed = mix(
        heart,
        whisper,
        float(get_param(params, "sample.heartbeat_gain")),
        float(get_param(params, "sample.whisper_gain")),
    )
    out = PostChain.process(mixed, 1.0, params)
    return _finish(out, context, bpm, 1.0, "synthetic")


def _overlay_for(heart: Waveform, whisper: Optional[Waveform], seed: Optional[int]) -> Waveform:
    if whisper is None or whisper.length == 0:
        overlay_seed = None if seed is None else seed + 1
        return synthesize_whisper(heart.duration_s, heart.sample_rate, seed=overlay_seed)
    return conform(whisper, heart)


# -----------------------------------------------------------------------------
# Boundary wrappers (bytes in, fallback on unusable input)
# -----------------------------------------------------------------------------

def load_source(audio: AudioInput, context: Optional[ProcessingContext] = None) -> Optional[Waveform]:
    """
    Decoded Waveform for audio, or None when audio is missing or unusable
    (malformed, over the decode ceiling, or empty). The reason is logged.
    """
    context = context or default_context()
    if audio is None:
        return None
    if isinstance(audio, Waveform):
        waveform = audio
    else:
        try:
            waveform = decode(audio, max_decode_bytes=context.max_decode_bytes)
        except (MalformedWavError, ResourceLimitExceeded) as e:
            logger.warning("unusable audio input (%s: %s)", type(e).__name__, e)
            return None
    if waveform.length == 0:
        logger.warning("audio input has no samples")
        return None
    return waveform


def render_full_clip(
    baseline: AudioInput,
    options: ProcessingOptions,
    context: Optional[ProcessingContext] = None,
    seed: Optional[int] = None,
) -> ProcessingResult:
    """Full clip from the baseline, or a synthetic clip when the baseline is missing or too large."""
    context = context or default_context()
    source = load_source(baseline, context)
    if source is not None:
        try:
            return generate_full_clip(source, options, context)
        except ResourceLimitExceeded as e:
            logger.warning("full clip over output limit (%s); rendering bounded synthetic clip", e)
    else:
        logger.warning("no usable baseline audio; synthesizing %.1f BPM heartbeat", options.target_bpm)

    duration_s = context.bounded_duration(options.target_duration_s)
    return generate_fallback_clip(
        options.target_bpm, duration_s, context, seed=seed, volume=options.output_volume,
    )


def render_sample(
    baseline: AudioInput,
    options: ProcessingOptions,
    whisper: AudioInput = None,
    context: Optional[ProcessingContext] = None,
    seed: Optional[int] = None,
) -> ProcessingResult:
    """Sample from the baseline with whisper overlay, or a fully synthetic sample."""
    context = context or default_context()
    source = load_source(baseline, context)
    if source is not None:
        try:
            return generate_sample(source, options, load_source(whisper, context), context, seed=seed)
        except ResourceLimitExceeded as e:
            logger.warning("sample over output limit (%s); rendering synthetic sample", e)
    else:
        logger.warning("no usable baseline audio; synthesizing %.1f BPM sample", options.target_bpm)
    return generate_fallback_sample(options.target_bpm, context, seed=seed)
