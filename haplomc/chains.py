import math
import logging
from typing import List, Sequence

from haplomc.exceptions import InvariantViolation

NUM_PARENTS = 4


def roulette_wheel_select(weights: Sequence[float], rng) -> int:
    """
    Roulette wheel selection.

    Returns the index of one entry chosen with probability proportional to its
    weight. Entries are scanned in order; the first entry whose cumulative
    weight reaches the draw point wins.

    Args:
        weights: Non-negative selection weights.
        rng (RandomSource): Shared random stream (one uniform deviate is drawn).

    Raises:
        InvariantViolation: If the weights are empty or their total is not
            strictly positive and finite.
    """
    if len(weights) == 0:
        raise InvariantViolation("Cannot select from an empty population.")
    total = math.fsum(weights)
    if not total > 0 or not math.isfinite(total):
        raise InvariantViolation(f"Total selection weight must be positive and finite, got {total}.")

    remainder = rng.uniform() * total
    last_positive = None
    for index, weight in enumerate(weights):
        if weight < 0:
            raise InvariantViolation(f"Selection weight at index {index} is negative: {weight}.")
        if weight == 0:
            continue
        last_positive = index
        remainder -= weight
        if remainder <= 0:
            return index
    # floating point leftovers only
    return last_positive


class EMCChain:
    """
    One member of an evolutionary Monte Carlo population: a candidate set of
    four parent haplotypes for a fixed individual, with its own temperature.
    """
    def __init__(self, temperature: float, selection_temperature: float,
                 individual: int, chain_id: int):
        if not temperature > 0:
            raise InvariantViolation(f"Chain temperature must be positive, got {temperature}.")
        if not selection_temperature > 0:
            raise InvariantViolation("Selection temperature must be positive.")
        self.temperature = temperature
        self.selection_temperature = selection_temperature
        self.individual = individual
        self.chain_id = chain_id
        self.parents: List[int] = [0] * NUM_PARENTS
        self.likelihood = 0.0
        self.selection = 1.0

    def set_parent(self, slot: int, hap: int):
        self.parents[slot] = hap

    def get_parent(self, slot: int) -> int:
        return self.parents[slot]

    def set_likelihood(self, likelihood: float):
        """Sets the likelihood and refreshes the selection weight."""
        self.likelihood = likelihood
        try:
            self.selection = math.exp(likelihood / self.selection_temperature)
        except OverflowError:
            self.selection = math.inf

    def snapshot(self) -> "EMCChain":
        clone = EMCChain(self.temperature, self.selection_temperature, self.individual, self.chain_id)
        clone.parents = list(self.parents)
        clone.likelihood = self.likelihood
        clone.selection = self.selection
        return clone

    def restore(self, snapshot: "EMCChain"):
        self.temperature = snapshot.temperature
        self.parents = list(snapshot.parents)
        self.likelihood = snapshot.likelihood
        self.selection = snapshot.selection

    def __repr__(self):
        return (f"EMCChain(id={self.chain_id}, individual={self.individual}, "
                f"temperature={self.temperature:.4f}, likelihood={self.likelihood:.4f}, "
                f"parents={self.parents})")


def select_chain(chains: Sequence[EMCChain], rng) -> int:
    """Roulette wheel selection over the chains' selection weights."""
    index = roulette_wheel_select([chain.selection for chain in chains], rng)
    logging.debug(f"Selected chain {chains[index].chain_id} by roulette wheel.")
    return index
