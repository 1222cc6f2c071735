"""
Canonical 44-byte-header PCM WAV codec (16-bit, mono or multi-channel).
Scaling convention shared by decode/encode: negatives use 32768, positives use 32767.
"""
import logging
import struct
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import torch

from heartbeat_engine.core.errors import InvalidArgumentError, MalformedWavError, ResourceLimitExceeded
from heartbeat_engine.core.types import Waveform

logger = logging.getLogger(__name__)

HEADER_SIZE = 44
FMT_CHUNK_SIZE = 16
PCM_FORMAT = 1
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
U16_MAX = 0xFFFF
U32_MAX = 0xFFFFFFFF
DEFAULT_MAX_DECODE_BYTES = 1024 * 1024 * 1024

# RIFF, size, WAVE, "fmt ", fmt size, format, channels, rate, byte rate, block align, bits, "data", data size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")

BytesLike = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class WavHeader:
    riff_size: int
    format_code: int
    channel_count: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


# -----------------------------------------------------------------------------
# Sample scaling
# -----------------------------------------------------------------------------

def pcm16_to_float(pcm: np.ndarray) -> np.ndarray:
    """int16 -> float32 in [-1, 1]: negatives / 32768, positives / 32767."""
    pcm = np.asarray(pcm).astype(np.float64)
    return np.where(pcm < 0, pcm / 32768.0, pcm / 32767.0).astype(np.float32)


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """float -> little-endian int16: clamp to [-1, 1], scale (x32768 / x32767), round to nearest."""
    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(x < 0, x * 32768.0, x * 32767.0)
    return np.rint(scaled).astype("<i2")


# -----------------------------------------------------------------------------
# Decode
# -----------------------------------------------------------------------------

def read_header(data: BytesLike) -> WavHeader:
    """Parse and validate the canonical 44-byte header. Raises MalformedWavError."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise MalformedWavError(f"expected a bytes buffer, got {type(data).__name__}")
    if len(data) < HEADER_SIZE:
        raise MalformedWavError(f"buffer is {len(data)} bytes, shorter than the {HEADER_SIZE}-byte WAV header")

    (riff, riff_size, wave, fmt, _fmt_size, format_code, channels, sample_rate,
     byte_rate, block_align, bits, data_tag, data_size) = _HEADER.unpack_from(data, 0)

    if riff != b"RIFF" or wave != b"WAVE":
        raise MalformedWavError("missing RIFF/WAVE tags")
    if fmt != b"fmt ":
        raise MalformedWavError("missing 'fmt ' chunk at offset 12")
    if data_tag != b"data":
        raise MalformedWavError("missing 'data' chunk at offset 36")
    if format_code != PCM_FORMAT:
        raise MalformedWavError(f"unsupported format code {format_code} (only PCM=1)")
    if bits != BITS_PER_SAMPLE:
        raise MalformedWavError(f"unsupported bits per sample {bits} (only 16)")
    if channels == 0:
        raise MalformedWavError("channel count is zero")
    if sample_rate == 0:
        raise MalformedWavError("sample rate is zero")

    return WavHeader(
        riff_size=riff_size,
        format_code=format_code,
        channel_count=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )


def decode(data: BytesLike, max_decode_bytes: int = DEFAULT_MAX_DECODE_BYTES) -> Waveform:
    """
    Decode a canonical PCM WAV buffer into a Waveform.

    A data chunk that declares more bytes than are present is decoded up to the end of the
    buffer (warning logged); a trailing partial frame is dropped.
    Streamed files that leave the size field at 0xFFFFFFFF decode the same way.
    Raises MalformedWavError, or ResourceLimitExceeded if the bytes to decode exceed max_decode_bytes.
    """
    header = read_header(data)

    available = len(data) - HEADER_SIZE
    data_size = header.data_size
    if data_size > available:
        logger.warning(
            "WAV data chunk declares %d bytes but only %d are present; decoding available data",
            data_size, available,
        )
        data_size = available

    if data_size > max_decode_bytes:
        raise ResourceLimitExceeded(
            f"WAV data chunk of {data_size} bytes exceeds decode limit of {max_decode_bytes}",
            requested_bytes=data_size,
            limit_bytes=max_decode_bytes,
        )

    channels = header.channel_count
    frames = data_size // (channels * BYTES_PER_SAMPLE)
    if frames == 0:
        return Waveform.empty(header.sample_rate, channels)
    pcm = np.frombuffer(data, dtype="<i2", count=frames * channels, offset=HEADER_SIZE)
    interleaved = pcm16_to_float(pcm).reshape(frames, channels)
    samples = torch.from_numpy(np.ascontiguousarray(interleaved.T))
    return Waveform(samples, header.sample_rate)


# -----------------------------------------------------------------------------
# Encode
# -----------------------------------------------------------------------------

def encode(waveform: Waveform, max_output_bytes: Optional[int] = None) -> bytes:
    """
    Encode a Waveform as a canonical 16-bit PCM WAV.
    Byte rate is clamped to 0xFFFFFFFF (warning) if it would overflow.
    Raises InvalidArgumentError on non-finite samples, ResourceLimitExceeded if the data
    chunk does not fit the RIFF size field or max_output_bytes.
    """
    channels = waveform.channel_count
    sample_rate = waveform.sample_rate
    data_size = waveform.length * channels * BYTES_PER_SAMPLE

    if data_size + 36 > U32_MAX:
        raise ResourceLimitExceeded(
            f"data chunk of {data_size} bytes does not fit a RIFF container",
            requested_bytes=data_size,
            limit_bytes=U32_MAX - 36,
        )
    if max_output_bytes is not None and data_size > max_output_bytes:
        raise ResourceLimitExceeded(
            f"data chunk of {data_size} bytes exceeds output limit of {max_output_bytes}",
            requested_bytes=data_size,
            limit_bytes=max_output_bytes,
        )

    block_align = channels * BYTES_PER_SAMPLE
    if block_align > U16_MAX:
        raise InvalidArgumentError(f"{channels} channels do not fit the 16-bit block align field")

    if not waveform.is_finite():
        raise InvalidArgumentError("waveform contains NaN or Infinity samples")

    byte_rate = sample_rate * channels * BYTES_PER_SAMPLE
    if byte_rate > U32_MAX:
        logger.warning(
            "byte rate %d (rate=%d, channels=%d) overflows 32 bits; clamping to %d",
            byte_rate, sample_rate, channels, U32_MAX,
        )
        byte_rate = U32_MAX

    header = _HEADER.pack(
        b"RIFF", 36 + data_size, b"WAVE",
        b"fmt ", FMT_CHUNK_SIZE, PCM_FORMAT, channels, sample_rate, byte_rate, block_align, BITS_PER_SAMPLE,
        b"data", data_size,
    )
    # (channels, length) -> (length, channels) so C-order bytes come out interleaved
    interleaved = waveform.samples.detach().cpu().numpy().T
    return header + float_to_pcm16(interleaved).tobytes()
