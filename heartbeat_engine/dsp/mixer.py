"""
Layer mix with per-layer linear gain and mute, clamped to [-1, 1].
Layers of different length are padded with silence to the longest; a mono layer is spread over
the channels of multi-channel layers.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import torch

from heartbeat_engine.core.errors import InvalidArgumentError
from heartbeat_engine.core.types import Waveform
from heartbeat_engine.params.clamp import check_finite

# Heartbeat + whisper overlay
DEFAULT_GAIN_A = 0.7
DEFAULT_GAIN_B = 0.3


# -----------------------------------------------------------------------------
# Layer spec
# -----------------------------------------------------------------------------

@dataclass
class LayerSpec:
    """Gain and mute for one layer."""
    name: str
    gain: float = 1.0
    mute: bool = False


# -----------------------------------------------------------------------------
# Layer mixer
# -----------------------------------------------------------------------------

class LayerMixer:
    """
    Sum named layers after applying gain and mute.
    All layers must share a sample rate.
    """

    def __init__(self):
        self._layers: Dict[str, Tuple[Waveform, LayerSpec]] = {}

    def add(self, name: str, audio: Waveform, spec: Optional[LayerSpec] = None) -> None:
        """Register a layer. Same name overwrites."""
        spec = spec or LayerSpec(name)
        check_finite(f"{name}.gain", spec.gain)
        self._layers[name] = (audio, spec)

    def mix(self, clamp: bool = True) -> Waveform:
        if not self._layers:
            raise InvalidArgumentError("nothing to mix: no layers added")

        layers = list(self._layers.values())
        sample_rate = layers[0][0].sample_rate
        for audio, spec in layers:
            if audio.sample_rate != sample_rate:
                raise InvalidArgumentError(
                    f"layer {spec.name!r} is {audio.sample_rate} Hz, expected {sample_rate} Hz"
                )

        channels = max(audio.channel_count for audio, _ in layers)
        ref_len = max(audio.length for audio, _ in layers)
        master = torch.zeros(channels, ref_len)

        for audio, spec in layers:
            if spec.mute:
                continue
            layer = audio.samples
            if layer.shape[0] != channels:
                if layer.shape[0] != 1:
                    raise InvalidArgumentError(
                        f"layer {spec.name!r} has {layer.shape[0]} channels, cannot mix into {channels}"
                    )
                layer = layer.expand(channels, -1)
            if layer.shape[-1] < ref_len:
                layer = torch.nn.functional.pad(layer, (0, ref_len - layer.shape[-1]))
            master = master + layer * float(spec.gain)

        if clamp:
            master = torch.clamp(master, -1.0, 1.0)
        return Waveform(master, sample_rate)


def mix(a: Waveform, b: Waveform, gain_a: float = DEFAULT_GAIN_A, gain_b: float = DEFAULT_GAIN_B) -> Waveform:
    """clamp(a * gain_a + b * gain_b, -1, 1); the shorter input is silence past its end."""
    mixer = LayerMixer()
    mixer.add("a", a, LayerSpec("a", gain=gain_a))
    mixer.add("b", b, LayerSpec("b", gain=gain_b))
    return mixer.mix()
