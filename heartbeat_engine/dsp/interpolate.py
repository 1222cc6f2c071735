"""
Fractional-index readers over (channels, length) sample tensors.
index is the integer part (long tensor), frac the fractional part in [0, 1).
Neighbours outside the sequence repeat the edge sample.
"""
from typing import Callable, Dict

import torch

from heartbeat_engine.core.errors import InvalidArgumentError

Interpolator = Callable[[torch.Tensor, torch.Tensor, torch.Tensor], torch.Tensor]


def linear(samples: torch.Tensor, index: torch.Tensor, frac: torch.Tensor) -> torch.Tensor:
    """Two-point weighted average of samples[index] and samples[index + 1]."""
    last = samples.shape[-1] - 1
    y1 = samples[:, index]
    y2 = samples[:, (index + 1).clamp(max=last)]
    return y1 + (y2 - y1) * frac


def cubic(samples: torch.Tensor, index: torch.Tensor, frac: torch.Tensor) -> torch.Tensor:
    """
    Four-point cubic Hermite (Catmull-Rom tangents) between samples[index] and samples[index + 1].
    Passes through both points, so a zero fraction returns samples[index] exactly.
    """
    last = samples.shape[-1] - 1
    y0 = samples[:, (index - 1).clamp(min=0)]
    y1 = samples[:, index]
    y2 = samples[:, (index + 1).clamp(max=last)]
    y3 = samples[:, (index + 2).clamp(max=last)]

    mu = frac
    mu2 = mu * mu
    mu3 = mu2 * mu
    m0 = (y2 - y0) * 0.5
    m1 = (y3 - y1) * 0.5

    return ((2 * mu3 - 3 * mu2 + 1) * y1
            + (mu3 - 2 * mu2 + mu) * m0
            + (-2 * mu3 + 3 * mu2) * y2
            + (mu3 - mu2) * m1)


INTERPOLATORS: Dict[str, Interpolator] = {
    "linear": linear,
    "cubic": cubic,
}


def get_interpolator(kind: str) -> Interpolator:
    try:
        return INTERPOLATORS[kind]
    except (KeyError, TypeError):
        raise InvalidArgumentError(
            f"unknown interpolation {kind!r}; expected one of {sorted(INTERPOLATORS)}"
        ) from None
