import math
import logging
from typing import List

from haplomc.chains import EMCChain, NUM_PARENTS, select_chain
from haplomc.exceptions import InvariantViolation
from haplomc.trace import TraceLog


def annealing_penalty(generation: int, burnin: int) -> float:
    """
    Penalty for a generation: rises from (2 / burnin)^2 to 1, reaching 1 after
    half of the burn-in generations.
    """
    if burnin <= 0:
        return 1.0
    return min(2.0 * (generation + 1) / burnin, 1.0) ** 2


def _acceptance_probability(log_ratio: float) -> float:
    return 1.0 if log_ratio >= 0 else math.exp(log_ratio)


def exchange_acceptance_probability(first_likelihood: float, first_temperature: float,
                                    second_likelihood: float, second_temperature: float) -> float:
    """Metropolis probability of swapping the temperatures of two chains."""
    log_ratio = ((first_likelihood - second_likelihood)
                 * (1.0 / first_temperature - 1.0 / second_temperature))
    return _acceptance_probability(log_ratio)


def crossover_log_ratio(first_orig: EMCChain, second_orig: EMCChain,
                        first_new: EMCChain, second_new: EMCChain) -> float:
    """
    Log acceptance ratio of a crossover between two chains (Liang, Liu & Carroll,
    Advanced Markov Chain Monte Carlo Methods, 2010, pp. 128-132).

    The pairing of old and new likelihoods depends on whether the crossover
    flipped which chain has the higher likelihood.
    """
    orig_order = first_orig.likelihood > second_orig.likelihood
    new_order = first_new.likelihood > second_new.likelihood
    if orig_order != new_order:
        return ((second_orig.likelihood - first_new.likelihood) / second_orig.temperature
                + (first_orig.likelihood - second_new.likelihood) / first_orig.temperature)
    return ((second_orig.likelihood - second_new.likelihood) / second_orig.temperature
            + (first_orig.likelihood - first_new.likelihood) / first_orig.temperature)


class MCMCSolver:
    """
    Metropolis sampler with simulated annealing over an individual's four
    parent haplotypes. Proposals come from a relationship graph, which is told
    the outcome of every step.
    """
    def __init__(self, oracle, rng, trace: TraceLog = None, kickstart: bool = False):
        """
        Args:
            oracle: Likelihood oracle with ``evaluate`` and ``commit``.
            rng (RandomSource): Shared random stream.
            trace (TraceLog): Optional trace of accepted proposals.
            kickstart (bool): Propose only reference haplotypes on the first step.
        """
        self.oracle = oracle
        self.rng = rng
        self.trace = trace if trace is not None else TraceLog()
        self.kickstart = kickstart
        self.iteration = 0

    def solve(self, individual: int, cycles: int, penalty: float, graph) -> float:
        """
        Runs ``cycles`` Metropolis steps for ``individual`` and commits the final
        configuration.

        Returns:
            float: Likelihood of the committed configuration.
        """
        parents = [graph.sample_haplotype(individual, self.rng) for _ in range(NUM_PARENTS)]
        current = self.oracle.evaluate(individual, parents)

        for step in range(cycles):
            slot = self.rng.get() & 3
            original = parents[slot]
            if self.kickstart and step == 0:
                parents[slot] = graph.sample_haplotype(individual, self.rng, reference_only=True)
            else:
                parents[slot] = graph.sample_haplotype(individual, self.rng)

            proposal = self.oracle.evaluate(individual, parents)
            accepted = False
            if proposal > current or self.rng.uniform() < math.exp((proposal - current) * penalty):
                current = proposal
                accepted = True
            else:
                parents[slot] = original

            graph.update_graph(parents, accepted, individual, penalty)

            if accepted:
                self.trace.write_line(f"{self.iteration}\t{individual}\t{proposal}")

        self.oracle.commit(individual, parents, penalty)
        return current


class EMCSolver:
    """
    Evolutionary Monte Carlo over a population of parallel chains for one
    individual: mutation, crossover and temperature exchange between chains
    of neighbouring temperatures.
    """
    def __init__(self, oracle, rng, num_haplotypes: int, parallel_chains: int = 5,
                 max_temperature: float = None, selection_temperature: float = 10000.0,
                 mutation_rate: float = 0.3, trace: TraceLog = None):
        """
        Args:
            oracle: Likelihood oracle with ``evaluate`` and ``commit``.
            rng (RandomSource): Shared random stream.
            num_haplotypes (int): Size of the proposal pool (sample and reference haplotypes).
            parallel_chains (int): Population size, at least 2.
            max_temperature (float): Temperature of the hottest chain. Defaults to
                ``parallel_chains``.
            selection_temperature (float): Temperature of the roulette-wheel selection weights.
            mutation_rate (float): Probability of choosing crossover over mutation.
            trace (TraceLog): Optional trace of chain updates.
        """
        if not isinstance(parallel_chains, int) or parallel_chains < 2:
            raise InvariantViolation("parallel_chains must be an integer of at least 2.")
        if max_temperature is None:
            max_temperature = float(parallel_chains)
        if not max_temperature > 0:
            raise InvariantViolation("max_temperature must be positive.")
        if not selection_temperature > 0:
            raise InvariantViolation("selection_temperature must be positive.")
        if not 0.0 <= mutation_rate <= 1.0:
            raise InvariantViolation("mutation_rate must be in [0, 1].")
        if num_haplotypes <= 2:
            raise InvariantViolation("Need haplotypes other than the individual's own pair to propose from.")

        self.oracle = oracle
        self.rng = rng
        self.num_haplotypes = num_haplotypes
        self.parallel_chains = parallel_chains
        self.max_temperature = max_temperature
        self.selection_temperature = selection_temperature
        self.mutation_rate = mutation_rate
        self.trace = trace if trace is not None else TraceLog()
        self.iteration = 0
        self.last_exchange_count = 0

    def _draw_parent(self, individual: int) -> int:
        while True:
            hap = self.rng.get() % self.num_haplotypes
            if hap // 2 != individual:
                return hap

    def initialize_chains(self, individual: int):
        """
        Builds the population with ascending temperatures and random parents.

        Returns:
            tuple: (chains, hierarchy) where ``hierarchy[rank]`` is the index of
            the chain holding the rank-th lowest temperature.
        """
        chains: List[EMCChain] = []
        hierarchy: List[int] = []
        for index in range(self.parallel_chains):
            temperature = (index + 1) * self.max_temperature / self.parallel_chains
            chain = EMCChain(temperature, self.selection_temperature, individual, index)
            for slot in range(NUM_PARENTS):
                chain.set_parent(slot, self._draw_parent(individual))
            chain.set_likelihood(self.oracle.evaluate(individual, chain.parents))
            chains.append(chain)
            hierarchy.append(index)
        return chains, hierarchy

    def mutate(self, chains: List[EMCChain], individual: int) -> bool:
        """Replaces one parent of a random chain; returns whether it was accepted."""
        chain = chains[self.rng.get() % self.parallel_chains]
        current = chain.likelihood
        slot = self.rng.get() & 3
        original = chain.get_parent(slot)
        chain.set_parent(slot, self._draw_parent(individual))

        proposal = self.oracle.evaluate(individual, chain.parents)
        if proposal > current or self.rng.uniform() < _acceptance_probability((current - proposal) / chain.temperature):
            chain.set_likelihood(proposal)
            self.trace.write_chain(self.iteration, chain, True)
            return True
        chain.set_parent(slot, original)
        return False

    def crossover(self, chains: List[EMCChain], individual: int) -> bool:
        """
        Uniform crossover between a roulette-selected chain and a random second
        chain, accepted or rejected as one unit.
        """
        first_index = select_chain(chains, self.rng)
        while True:
            second_index = self.rng.get() % self.parallel_chains
            if second_index != first_index:
                break
        first = chains[first_index]
        second = chains[second_index]
        first_orig = first.snapshot()
        second_orig = second.snapshot()

        mask = self.rng.get() & 15
        for slot in range(NUM_PARENTS):
            if (mask >> slot) & 1:
                hap = first.get_parent(slot)
                first.set_parent(slot, second.get_parent(slot))
                second.set_parent(slot, hap)

        first.set_likelihood(self.oracle.evaluate(individual, first.parents))
        second.set_likelihood(self.oracle.evaluate(individual, second.parents))

        log_ratio = crossover_log_ratio(first_orig, second_orig, first, second)
        accepted = self.rng.uniform() <= _acceptance_probability(log_ratio)

        if not accepted:
            first.restore(first_orig)
            second.restore(second_orig)
            self.trace.write_line(
                f"# Unsuccessful Crossover\tChainIDs:\t{first.chain_id}\t{second.chain_id}"
            )
        else:
            self.trace.write_chain(self.iteration, first, False)
            self.trace.write_chain(self.iteration, second, False)
        return accepted

    def exchange(self, chains: List[EMCChain], hierarchy: List[int]) -> int:
        """
        Attempts ``parallel_chains`` temperature swaps between chains adjacent in
        the temperature hierarchy. Returns the number of accepted swaps.
        """
        last_rank = self.parallel_chains - 1
        exchanges = 0
        for _ in range(self.parallel_chains):
            first_rank = self.rng.get() % self.parallel_chains
            if first_rank == 0:
                second_rank = 1
            elif first_rank == last_rank:
                second_rank = last_rank - 1
            elif self.rng.get() & 1:
                second_rank = first_rank - 1
            else:
                second_rank = first_rank + 1

            first = chains[hierarchy[first_rank]]
            second = chains[hierarchy[second_rank]]
            probability = exchange_acceptance_probability(
                first.likelihood, first.temperature, second.likelihood, second.temperature
            )
            if self.rng.uniform() < probability:
                first.temperature, second.temperature = second.temperature, first.temperature
                hierarchy[first_rank], hierarchy[second_rank] = hierarchy[second_rank], hierarchy[first_rank]
                exchanges += 1

        self.trace.write_line(
            f"# Number of Exchanges out of total:\t{exchanges}\t{self.parallel_chains}"
        )
        return exchanges

    def solve(self, individual: int, iterations: int, spread: float) -> float:
        """
        Runs ``iterations`` EMC generations for ``individual`` and commits the
        configuration of a roulette-selected chain with ``spread`` as penalty.

        Returns:
            float: Likelihood of the selected chain.
        """
        chains, hierarchy = self.initialize_chains(individual)

        for _ in range(iterations):
            if self.rng.uniform() > self.mutation_rate:
                self.mutate(chains, individual)
            else:
                self.crossover(chains, individual)
            self.last_exchange_count = self.exchange(chains, hierarchy)

        selected = chains[select_chain(chains, self.rng)]
        logging.debug(f"Updating individual {individual} from chain {selected.chain_id}.")
        self.oracle.commit(individual, selected.parents, spread)
        return selected.likelihood
