"""
Generation loop shared by the three estimators: Metropolis-Hastings with
simulated annealing, evolutionary Monte Carlo, and adaptive Metropolis-Hastings.
"""

import logging
from enum import IntEnum
from typing import Callable, Dict, List, Optional

import pandas as pd

from haplomc.relationship_graph import GraphKind, RelationshipGraph
from haplomc.samplers import EMCSolver, MCMCSolver, annealing_penalty
from haplomc.trace import TraceLog


class EstimatorKind(IntEnum):
    MCMC = 0
    EMC = 1
    AMH_SAMPLE_SAMPLE = 2
    AMH_SAMPLE_HAPLOTYPE = 3

    @property
    def graph_kind(self) -> GraphKind:
        if self == EstimatorKind.AMH_SAMPLE_SAMPLE:
            return GraphKind.SAMPLE_SAMPLE
        if self == EstimatorKind.AMH_SAMPLE_HAPLOTYPE:
            return GraphKind.SAMPLE_HAPLOTYPE
        return GraphKind.UNIFORM


class EstimationLoop:
    """
    Drives burn-in and sampling generations over all individuals.

    Every generation computes the annealing penalty, updates each individual in
    index order (reading the current buffer, committing to the next one), swaps
    the buffers, and after burn-in folds the new haplotypes into the
    accumulator.
    """
    def __init__(self, buffers, oracle, rng, accumulator, graph: Optional[RelationshipGraph] = None,
                 trace: Optional[TraceLog] = None, kickstart: bool = False,
                 should_stop: Optional[Callable[[], bool]] = None,
                 sites: Optional[pd.DataFrame] = None, sample_names: Optional[List[str]] = None):
        """
        Args:
            buffers (HaplotypeBuffers): Current/next haplotype buffers.
            oracle: Likelihood oracle with ``evaluate`` and ``commit``.
            rng (RandomSource): Shared random stream.
            accumulator (PhaseAccumulator): Receives post burn-in haplotypes.
            graph (RelationshipGraph): Proposal graph; a new one is created if omitted.
            trace (TraceLog): Optional trace log.
            kickstart (bool): First MCMC step proposes reference haplotypes only.
            should_stop (Callable): Checked at each generation boundary; a true
                result ends the run early.
            sites (pd.DataFrame): Site table for the result; generic if omitted.
            sample_names (List[str]): Individual names for the result.
        """
        self.buffers = buffers
        self.oracle = oracle
        self.rng = rng
        self.accumulator = accumulator
        self.graph = graph if graph is not None else RelationshipGraph()
        self.trace = trace if trace is not None else TraceLog()
        self.kickstart = kickstart
        self.should_stop = should_stop
        self.sites = sites
        self.sample_names = sample_names
        self.history: List[Dict[str, float]] = []
        self.result = None

    @property
    def num_individuals(self) -> int:
        return self.buffers.num_individuals

    def _generations(self, burnin: int, sampling: int, solve: Callable[[int, float], float],
                     cycles: int, on_generation: Optional[Callable[[int], None]] = None):
        if burnin < 0 or sampling < 0:
            raise ValueError("burnin and sampling must be non-negative.")
        self.history = []
        num_individuals = self.num_individuals
        num_sites = self.buffers.num_sites

        for generation in range(burnin + sampling):
            if self.should_stop is not None and self.should_stop():
                logging.warning(f"Estimation stopped before generation {generation}.")
                break
            if on_generation is not None:
                on_generation(generation)
            penalty = annealing_penalty(generation, burnin)
            total = 0.0
            iterations = 0
            for individual in range(num_individuals):
                total += solve(individual, penalty)
                iterations += cycles
            self.buffers.swap()
            if generation >= burnin:
                for individual in range(num_individuals):
                    self.accumulator.replace(individual, self.buffers)

            record = {
                "generation": generation,
                "penalty": penalty,
                "likelihood": total / num_individuals / num_sites,
                "fold": iterations / num_individuals / num_individuals,
            }
            self.history.append(record)
            logging.info(f"{generation}\t{penalty:.3f}\t{record['likelihood']:.3f}\t{record['fold']:.3f}")

        return self.finalize()

    def finalize(self):
        """Runs the result step and returns its output."""
        sites = self.sites
        if sites is None:
            num_sites = self.buffers.num_sites
            sites = pd.DataFrame({
                "chrom": ["."] * num_sites,
                "pos": list(range(1, num_sites + 1)),
                "ref": ["."] * num_sites,
                "alt": ["."] * num_sites,
            })
        sample_names = self.sample_names
        if sample_names is None:
            sample_names = [f"sample{i}" for i in range(self.num_individuals)]
        self.result = self.accumulator.result(self.buffers, sites, sample_names)
        return self.result

    def run_mcmc(self, burnin: int, sampling: int, cycles: int):
        """Metropolis-Hastings with simulated annealing and uniform proposals."""
        logging.info("Running Metropolis Hastings with simulated annealing")
        logging.info("iter\tpress\tlike\tfold")
        self.graph.init(GraphKind.UNIFORM, self.num_individuals, self.buffers.num_haplotypes)
        return self._run_graph_mcmc(burnin, sampling, cycles)

    def run_adaptive_mcmc(self, burnin: int, sampling: int, cycles: int, graph_kind=GraphKind.SAMPLE_SAMPLE):
        """Metropolis-Hastings with proposals biased by a relationship graph."""
        logging.info("Running Adaptive Metropolis Hastings")
        logging.info("iter\tpress\tlike\tfold")
        self.graph.init(graph_kind, self.num_individuals, self.buffers.num_haplotypes)
        return self._run_graph_mcmc(burnin, sampling, cycles)

    def _run_graph_mcmc(self, burnin: int, sampling: int, cycles: int):
        solver = MCMCSolver(self.oracle, self.rng, trace=self.trace, kickstart=self.kickstart)
        self.trace.write_line("##iteration\tindividual\tproposal")

        def set_iteration(generation):
            solver.iteration = generation

        return self._generations(
            burnin, sampling,
            lambda individual, penalty: solver.solve(individual, cycles, penalty, self.graph),
            cycles, on_generation=set_iteration,
        )

    def run_emc(self, burnin: int, sampling: int, cycles: int, parallel_chains: int = 5,
                max_temperature: Optional[float] = None, selection_temperature: float = 10000.0,
                mutation_rate: float = 0.3):
        """Evolutionary Monte Carlo with ``parallel_chains`` chains per individual."""
        logging.info("Running Evolutionary Monte Carlo")
        logging.info("iter\tpress\tlike\tfold")
        solver = EMCSolver(
            self.oracle, self.rng, self.buffers.num_haplotypes,
            parallel_chains=parallel_chains, max_temperature=max_temperature,
            selection_temperature=selection_temperature, mutation_rate=mutation_rate,
            trace=self.trace,
        )
        self.trace.write_line("##iteration\tindividual\tproposal\tchainID\tchainTemp\tmutation")

        def set_iteration(generation):
            solver.iteration = generation

        return self._generations(
            burnin, sampling,
            lambda individual, penalty: solver.solve(individual, cycles, penalty),
            cycles, on_generation=set_iteration,
        )

    def run(self, estimator, burnin: int, sampling: int, cycles: int, **emc_options):
        """Dispatches once on the estimator kind."""
        estimator = EstimatorKind(estimator)
        if estimator == EstimatorKind.MCMC:
            return self.run_mcmc(burnin, sampling, cycles)
        if estimator == EstimatorKind.EMC:
            return self.run_emc(burnin, sampling, cycles, **emc_options)
        return self.run_adaptive_mcmc(burnin, sampling, cycles, estimator.graph_kind)
