import math
import unittest

from haplomc.chains import EMCChain, NUM_PARENTS, roulette_wheel_select, select_chain
from haplomc.exceptions import InvariantViolation
from haplomc.random_source import RandomSource


class FixedRandom:
    """Returns queued uniform deviates."""
    def __init__(self, uniforms):
        self.uniforms = list(uniforms)

    def uniform(self):
        return self.uniforms.pop(0)

    def get(self):
        return 0


class TestRouletteWheelSelect(unittest.TestCase):

    def test_only_positive_weight_is_selected(self):
        rng = RandomSource(1)
        for _ in range(200):
            self.assertEqual(roulette_wheel_select([0, 0, 0, 1], rng), 3)

    def test_zero_weights_skipped_at_boundaries(self):
        self.assertEqual(roulette_wheel_select([0, 2, 0, 2], FixedRandom([0.0])), 1)
        self.assertEqual(roulette_wheel_select([0, 2, 0, 2], FixedRandom([0.5])), 1)
        self.assertEqual(roulette_wheel_select([0, 2, 0, 2], FixedRandom([0.51])), 3)
        self.assertEqual(roulette_wheel_select([1, 0], FixedRandom([0.9999999999])), 0)

    def test_frequencies_follow_weights(self):
        rng = RandomSource(7)
        weights = [1.0, 2.0, 3.0, 4.0]
        counts = [0, 0, 0, 0]
        draws = 20000
        for _ in range(draws):
            counts[roulette_wheel_select(weights, rng)] += 1
        for index, weight in enumerate(weights):
            self.assertAlmostEqual(counts[index] / draws, weight / 10.0, delta=0.02)

    def test_invalid_weights_raise(self):
        rng = RandomSource(0)
        with self.assertRaises(InvariantViolation):
            roulette_wheel_select([], rng)
        with self.assertRaises(InvariantViolation):
            roulette_wheel_select([0.0, 0.0], rng)
        with self.assertRaises(InvariantViolation):
            roulette_wheel_select([1.0, math.inf], rng)
        with self.assertRaises(InvariantViolation):
            roulette_wheel_select([1.0, math.nan], rng)


class TestEMCChain(unittest.TestCase):

    def test_initialization(self):
        chain = EMCChain(2.5, 10000.0, individual=3, chain_id=1)
        self.assertEqual(len(chain.parents), NUM_PARENTS)
        self.assertEqual(chain.temperature, 2.5)
        self.assertEqual(chain.individual, 3)
        self.assertEqual(chain.selection, 1.0)

    def test_invalid_temperatures(self):
        with self.assertRaises(InvariantViolation):
            EMCChain(0.0, 1.0, 0, 0)
        with self.assertRaises(InvariantViolation):
            EMCChain(1.0, -1.0, 0, 0)

    def test_set_likelihood_updates_selection(self):
        chain = EMCChain(1.0, 10.0, 0, 0)
        chain.set_likelihood(-20.0)
        self.assertAlmostEqual(chain.selection, math.exp(-2.0))

        chain.set_likelihood(1e6)
        self.assertEqual(chain.selection, math.inf)

    def test_snapshot_and_restore(self):
        chain = EMCChain(1.0, 10.0, 0, 4)
        for slot, hap in enumerate([2, 3, 4, 5]):
            chain.set_parent(slot, hap)
        chain.set_likelihood(-5.0)
        saved = chain.snapshot()

        chain.set_parent(0, 7)
        chain.set_likelihood(-1.0)
        chain.temperature = 3.0
        chain.restore(saved)

        self.assertEqual(chain.parents, [2, 3, 4, 5])
        self.assertEqual(chain.likelihood, -5.0)
        self.assertEqual(chain.temperature, 1.0)
        self.assertIsNot(chain.parents, saved.parents)

    def test_select_chain_prefers_higher_likelihood(self):
        chains = [EMCChain(1.0, 1.0, 0, i) for i in range(3)]
        chains[0].set_likelihood(-1000.0)
        chains[1].set_likelihood(0.0)
        chains[2].set_likelihood(-1000.0)
        self.assertEqual(select_chain(chains, RandomSource(5)), 1)


if __name__ == '__main__':
    unittest.main()
