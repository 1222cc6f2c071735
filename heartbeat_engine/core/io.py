import io
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional, Union

import soundfile as sf
import torch

from heartbeat_engine.core.errors import MalformedWavError, ResourceLimitExceeded
from heartbeat_engine.core.types import Waveform
from heartbeat_engine.core.wav import DEFAULT_MAX_DECODE_BYTES, decode, pcm16_to_float

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class AudioIO:
    @staticmethod
    def read_bytes(path: PathLike) -> Optional[bytes]:
        """File contents, or None if the file does not exist."""
        path = Path(path)
        if not path.is_file():
            return None
        return path.read_bytes()

    @staticmethod
    def from_bytes(data: bytes, name: str = "<bytes>", max_decode_bytes: int = DEFAULT_MAX_DECODE_BYTES) -> Waveform:
        """
        Canonical 44-byte WAV via the codec; anything else libsndfile can read (extra RIFF chunks,
        24-bit, FLAC...) via soundfile, quantized to 16-bit so both paths share one scaling.
        Raises MalformedWavError if neither can read it, ResourceLimitExceeded over max_decode_bytes.
        """
        try:
            return decode(data, max_decode_bytes=max_decode_bytes)
        except MalformedWavError as e:
            logger.info("%s is not a canonical PCM WAV (%s); reading with soundfile", name, e)
        try:
            pcm, sample_rate = sf.read(io.BytesIO(data), dtype="int16", always_2d=True)
        except RuntimeError as e:
            raise MalformedWavError(f"{name}: unreadable audio ({e})") from e
        samples = torch.from_numpy(pcm16_to_float(pcm).T.copy())
        return Waveform(samples, int(sample_rate))

    @staticmethod
    def load(path: PathLike, max_decode_bytes: int = DEFAULT_MAX_DECODE_BYTES) -> Optional[Waveform]:
        """Decoded file, or None if missing."""
        data = AudioIO.read_bytes(path)
        if data is None:
            return None
        return AudioIO.from_bytes(data, name=str(path), max_decode_bytes=max_decode_bytes)


class AssetStore:
    """
    Read-only audio assets (baseline heartbeat recording, whisper overlay).
    Each asset is loaded once; missing, unreadable or oversized assets are reported as None.
    Safe to share across the service's worker threads.
    """

    def __init__(
        self,
        baseline_path: PathLike,
        whisper_path: Optional[PathLike] = None,
        max_decode_bytes: int = DEFAULT_MAX_DECODE_BYTES,
    ):
        self.baseline_path = Path(baseline_path)
        self.whisper_path = Path(whisper_path) if whisper_path else None
        self.max_decode_bytes = max_decode_bytes
        self._cache: Dict[Path, Optional[Waveform]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "AssetStore":
        return cls(
            os.environ.get("HEARTBEAT_BASELINE_PATH", "baseline-heartbeat.wav"),
            os.environ.get("HEARTBEAT_WHISPER_PATH", "whisper.wav"),
        )

    def _load(self, path: Optional[Path]) -> Optional[Waveform]:
        if path is None:
            return None
        with self._lock:
            if path not in self._cache:
                try:
                    waveform = AudioIO.load(path, max_decode_bytes=self.max_decode_bytes)
                except (MalformedWavError, ResourceLimitExceeded) as e:
                    logger.warning("asset %s is unreadable: %s", path, e)
                    waveform = None
                if waveform is None:
                    logger.warning("asset %s not available", path)
                self._cache[path] = waveform
            return self._cache[path]

    def baseline(self) -> Optional[Waveform]:
        return self._load(self.baseline_path)

    def whisper(self) -> Optional[Waveform]:
        return self._load(self.whisper_path)

    def baseline_bytes(self) -> Optional[bytes]:
        return AudioIO.read_bytes(self.baseline_path)
