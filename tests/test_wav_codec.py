"""
Tests for heartbeat_engine/core/wav: canonical 44-byte PCM WAV decode/encode.
Run from project root: python -m pytest tests/test_wav_codec.py -v
"""
import sys
import os
import logging
import struct

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
import torch

from heartbeat_engine.core.errors import InvalidArgumentError, MalformedWavError, ResourceLimitExceeded
from heartbeat_engine.core.types import Waveform
from heartbeat_engine.core.wav import (
    HEADER_SIZE,
    decode,
    encode,
    float_to_pcm16,
    pcm16_to_float,
    read_header,
)

SR = 44100


def _wav(pcm: np.ndarray, channels: int = 1, sample_rate: int = SR, bits: int = 16,
         format_code: int = 1, data_size=None, riff=b"RIFF", data_tag=b"data") -> bytes:
    """Hand-built canonical WAV around interleaved int16 frames."""
    payload = np.asarray(pcm, dtype="<i2").tobytes()
    size = len(payload) if data_size is None else data_size
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        riff, 36 + size, b"WAVE", b"fmt ", 16, format_code, channels, sample_rate,
        sample_rate * channels * 2, channels * 2, bits, data_tag, size,
    )
    return header + payload


# -----------------------------------------------------------------------------
# Scaling
# -----------------------------------------------------------------------------

def test_scaling_is_asymmetric():
    """Negatives scale by 32768, positives by 32767: both extremes map to exactly +/-1."""
    floats = pcm16_to_float(np.array([-32768, 0, 32767], dtype=np.int16))
    assert floats.tolist() == [-1.0, 0.0, 1.0]


def test_float_to_pcm16_clamps_and_rounds():
    pcm = float_to_pcm16(np.array([-2.0, -1.0, 0.5, 1.0, 1.5]))
    # 0.5 * 32767 = 16383.5 rounds to the even neighbour
    assert pcm.tolist() == [-32768, -32768, 16384, 32767, 32767]


# -----------------------------------------------------------------------------
# Decode
# -----------------------------------------------------------------------------

def test_decode_mono():
    data = _wav(np.array([0, 16384, -16384, 32767, -32768]))
    w = decode(data)
    assert w.sample_rate == SR
    assert w.channel_count == 1
    assert w.length == 5
    expected = torch.tensor([[0.0, 16384 / 32767, -0.5, 1.0, -1.0]])
    torch.testing.assert_close(w.samples, expected)


def test_decode_deinterleaves_stereo():
    # Frames: (L=100, R=-100), (L=200, R=-200)
    data = _wav(np.array([100, -100, 200, -200]), channels=2)
    w = decode(data)
    assert w.channel_count == 2
    assert w.length == 2
    torch.testing.assert_close(w.samples[0], torch.tensor([100 / 32767, 200 / 32767]))
    torch.testing.assert_close(w.samples[1], torch.tensor([-100 / 32768, -200 / 32768]))


def test_decode_rejects_short_buffer():
    with pytest.raises(MalformedWavError):
        decode(b"RIFF\x00\x00\x00\x00WA")


def test_decode_rejects_non_bytes():
    with pytest.raises(MalformedWavError):
        decode("RIFF" * 20)


@pytest.mark.parametrize("kwargs", [
    {"riff": b"RIFX"},
    {"data_tag": b"LIST"},
    {"bits": 8},
    {"bits": 24},
    {"format_code": 3},
    {"channels": 0},
    {"sample_rate": 0},
])
def test_decode_rejects_bad_header(kwargs):
    with pytest.raises(MalformedWavError):
        decode(_wav(np.zeros(4), **kwargs))


def test_malformed_is_value_error():
    with pytest.raises(ValueError):
        decode(b"\x00" * 10)


def test_decode_truncated_data_chunk(caplog):
    """Declared data size larger than the buffer: decode what is present, with a warning."""
    data = _wav(np.arange(5), data_size=100)
    with caplog.at_level(logging.WARNING, logger="heartbeat_engine.core.wav"):
        w = decode(data)
    assert w.length == 5
    assert any("declares" in r.message for r in caplog.records)


def test_decode_drops_partial_frame():
    data = _wav(np.array([1, 2, 3]), channels=2)
    assert decode(data).length == 1


def test_decode_ignores_bytes_after_data_chunk():
    data = _wav(np.array([1, 2, 3]), data_size=4) + b"\x00\x00"
    assert decode(data).length == 2


def test_decode_empty_data_chunk():
    w = decode(_wav(np.array([], dtype=np.int16)))
    assert w.length == 0
    assert w.sample_rate == SR


def test_decode_limit():
    data = _wav(np.zeros(100))
    with pytest.raises(ResourceLimitExceeded) as excinfo:
        decode(data, max_decode_bytes=100)
    assert excinfo.value.requested_bytes == 200
    assert excinfo.value.limit_bytes == 100


def test_decode_streamed_size_placeholder():
    """Streaming writers leave data size at 0xFFFFFFFF; the bytes present are decoded."""
    pcm = (np.arange(SR) % 200 - 100).astype(np.int16)
    data = bytearray(_wav(pcm))
    data[40:44] = struct.pack("<I", 0xFFFFFFFF)
    w = decode(bytes(data))
    assert w.length == SR
    torch.testing.assert_close(w.samples[0], torch.from_numpy(pcm16_to_float(pcm)), rtol=0, atol=0)


def test_decode_limit_counts_bytes_present():
    data = _wav(np.zeros(100), data_size=0xFFFFFFFF - 36)
    assert decode(data, max_decode_bytes=200).length == 100
    with pytest.raises(ResourceLimitExceeded) as excinfo:
        decode(data, max_decode_bytes=199)
    assert excinfo.value.requested_bytes == 200


# -----------------------------------------------------------------------------
# Encode
# -----------------------------------------------------------------------------

def test_encode_header_fields():
    w = Waveform(torch.zeros(2, 10), 22050)
    data = encode(w)
    assert len(data) == HEADER_SIZE + 40
    h = read_header(data)
    assert h.riff_size == 36 + 40
    assert h.format_code == 1
    assert h.channel_count == 2
    assert h.sample_rate == 22050
    assert h.byte_rate == 22050 * 2 * 2
    assert h.block_align == 4
    assert h.bits_per_sample == 16
    assert h.data_size == 40


def test_encode_interleaves_channels():
    w = Waveform(torch.tensor([[0.5, 1.0], [0.25, -1.0]]), SR)
    pcm = np.frombuffer(encode(w), dtype="<i2", offset=HEADER_SIZE)
    assert pcm.tolist() == [16384, 8192, 32767, -32768]


def test_encode_clamps_out_of_range():
    w = Waveform(torch.tensor([3.0, -3.0]), SR)
    pcm = np.frombuffer(encode(w), dtype="<i2", offset=HEADER_SIZE)
    assert pcm.tolist() == [32767, -32768]


def test_encode_rejects_nan():
    with pytest.raises(InvalidArgumentError):
        encode(Waveform(torch.tensor([0.0, float("nan")]), SR))


def test_encode_rejects_infinity():
    with pytest.raises(InvalidArgumentError):
        encode(Waveform(torch.tensor([float("inf")]), SR))


def test_encode_output_limit():
    with pytest.raises(ResourceLimitExceeded):
        encode(Waveform(torch.zeros(1, 100), SR), max_output_bytes=199)
    assert len(encode(Waveform(torch.zeros(1, 100), SR), max_output_bytes=200)) == HEADER_SIZE + 200


def test_encode_clamps_byte_rate(caplog):
    """sample_rate * block_align above 32 bits: byte rate saturates, no error."""
    w = Waveform(torch.zeros(2, 3), 0xFFFFFFFF)
    with caplog.at_level(logging.WARNING, logger="heartbeat_engine.core.wav"):
        data = encode(w)
    assert read_header(data).byte_rate == 0xFFFFFFFF
    assert read_header(data).sample_rate == 0xFFFFFFFF
    assert any("clamping" in r.message for r in caplog.records)


def test_encode_empty_waveform():
    data = encode(Waveform.empty(SR))
    assert len(data) == HEADER_SIZE
    assert read_header(data).data_size == 0
    assert decode(data).length == 0


# -----------------------------------------------------------------------------
# Round trip
# -----------------------------------------------------------------------------

def test_round_trip_quantized_values_exact():
    """Values already on the 16-bit grid survive encode -> decode unchanged."""
    pcm = np.array([[-32768, -1000, -1, 0, 1, 1000, 32767],
                    [32767, 12345, 0, -1, -12345, 5, -32768]], dtype=np.int16)
    w = Waveform(torch.from_numpy(pcm16_to_float(pcm)), 8000)
    back = decode(encode(w))
    assert back.sample_rate == 8000
    assert back.channel_count == 2
    torch.testing.assert_close(back.samples, w.samples, rtol=0, atol=0)


def test_round_trip_error_within_one_step():
    g = torch.Generator().manual_seed(7)
    samples = torch.rand(1, 1000, generator=g) * 2 - 1
    back = decode(encode(Waveform(samples, SR)))
    assert float(torch.max(torch.abs(back.samples - samples))) <= 1.0 / 32767


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
