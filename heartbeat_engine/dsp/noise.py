from typing import Optional

import torch


def make_generator(seed: Optional[int]) -> Optional[torch.Generator]:
    """Private RNG for a seeded render; None means torch's default generator."""
    if seed is None:
        return None
    return torch.Generator().manual_seed(int(seed))


class Noise:
    @staticmethod
    def uniform(num_samples: int, width: float, generator: Optional[torch.Generator] = None) -> torch.Tensor:
        """Uniform noise in [-width/2, width/2)."""
        return (torch.rand(int(num_samples), generator=generator) - 0.5) * width
