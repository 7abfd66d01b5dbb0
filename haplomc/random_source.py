import numpy as np
import logging

UINT32_RANGE = 2 ** 32


class RandomSource:
    """
    Single random stream shared by every sampling decision of a run.

    All samplers draw from one instance in a fixed order, so two runs with the
    same seed make identical decisions.
    """
    def __init__(self, seed=None):
        self.seed = seed
        self._generator = np.random.default_rng(seed)
        logging.debug(f"RandomSource initialized with seed {seed}.")

    def uniform(self):
        """Returns a uniform deviate in [0, 1)."""
        return float(self._generator.random())

    def get(self):
        """Returns a uniform integer in [0, 2**32)."""
        return int(self._generator.integers(0, UINT32_RANGE))
