"""
Error taxonomy for the processing core.
MalformedWavError and ResourceLimitExceeded are recoverable (pipeline falls back to synthesis);
InvalidArgumentError always reaches the caller.
"""


class HeartbeatEngineError(Exception):
    """Base class for every error raised by the core."""


class MalformedWavError(HeartbeatEngineError, ValueError):
    """Input bytes are not a well-formed 16-bit PCM WAV."""


class InvalidArgumentError(HeartbeatEngineError, ValueError):
    """Out-of-range or non-finite argument (BPM, tempo ratio, duration, gain...)."""


class ResourceLimitExceeded(HeartbeatEngineError):
    """Computed buffer size is above the configured safety ceiling."""

    def __init__(self, message: str, requested_bytes: int = 0, limit_bytes: int = 0):
        super().__init__(message)
        self.requested_bytes = requested_bytes
        self.limit_bytes = limit_bytes
