import numpy as np
from typing import Optional


class NormalSampler:
    """
    Normal draws via the Box-Muller transform over a numpy Generator's uniforms.

    Each transform yields two independent standard normals; the cosine branch is
    returned and the sine branch is kept for the next call. Draws are reproducible:
    two samplers built with the same seed return identical sequences.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self._spare: Optional[float] = None

    def _standard_normal(self) -> float:
        if self._spare is not None:
            z, self._spare = self._spare, None
            return z

        u1 = self.rng.random()
        # random() is on [0, 1); log(0) is undefined
        while u1 == 0.0:
            u1 = self.rng.random()
        u2 = self.rng.random()

        radius = np.sqrt(-2.0 * np.log(u1))
        angle = 2.0 * np.pi * u2
        self._spare = float(radius * np.sin(angle))
        return float(radius * np.cos(angle))

    def sample(self, mean: float, std_dev: float) -> float:
        return mean + std_dev * self._standard_normal()
