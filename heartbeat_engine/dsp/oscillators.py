"""
Sample-indexed oscillators. Time grid is t[i] = i / sample_rate (float64 internally),
so long clips keep phase accuracy before the result is cast to float32.
"""

import torch
import numpy as np


def time_grid(num_samples: int, sample_rate: int) -> torch.Tensor:
    """t[i] = i / sample_rate, float64."""
    return torch.arange(int(num_samples), dtype=torch.float64) / float(sample_rate)


class Oscillator:
    @staticmethod
    def sine(frequency: float, num_samples: int, sample_rate: int, amplitude: float = 1.0, phase: float = 0.0) -> torch.Tensor:
        """
        amplitude * sin(2*pi*frequency*t + phase), float32.

        Args:
            frequency: Frequency (Hz)
            num_samples: Output length
            sample_rate: Sample rate
            amplitude: Peak level
            phase: Initial phase offset (radians)
        """
        t = time_grid(num_samples, sample_rate)
        return (amplitude * torch.sin(2 * np.pi * frequency * t + phase)).float()

    @staticmethod
    def partials(fundamental: float, weights, num_samples: int, sample_rate: int) -> torch.Tensor:
        """Sum of harmonics: weights[k] * sin(2*pi*(k+1)*fundamental*t)."""
        t = time_grid(num_samples, sample_rate)
        out = torch.zeros(int(num_samples), dtype=torch.float64)
        for k, weight in enumerate(weights):
            if weight:
                out += weight * torch.sin(2 * np.pi * fundamental * (k + 1) * t)
        return out.float()
