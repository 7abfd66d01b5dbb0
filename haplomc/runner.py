"""
haplomc Runner: high-level API for a phasing run.

Loads the genotype likelihoods and optional reference panel named in the
configuration, builds the haplotype buffers, likelihood model and proposal
graph, runs the configured estimator and writes the results.
"""

import os
import logging
from typing import Any, Dict, Optional

import numpy as np
import torch

from haplomc.config import HaploMCConfig
from haplomc.data_loading import GenotypeLikelihoods, read_reference_panel, read_stbin
from haplomc.estimation import EstimationLoop, EstimatorKind
from haplomc.exceptions import InvariantViolation
from haplomc.haplotypes import HaplotypeBuffers, HaplotypePool
from haplomc.likelihood import HMMLikelihoodOracle
from haplomc.output import PhaseAccumulator, write_result
from haplomc.performance_reporter import PerformanceReporter
from haplomc.random_source import RandomSource
from haplomc.relationship_graph import RelationshipGraph, reference_sample_names
from haplomc.trace import TraceLog


class HaploMCRunner:
    """
    Runner for haplotype estimation.
    Serves as the high-level API for the library.
    """

    def __init__(self, config: HaploMCConfig):
        """
        Args:
            config: HaploMCConfig instance
        """
        self.config = config
        self._set_seeds(config.seed)
        self.rng = RandomSource(config.seed)

        self.likelihoods: Optional[GenotypeLikelihoods] = None
        self.buffers: Optional[HaplotypeBuffers] = None
        self.oracle: Optional[HMMLikelihoodOracle] = None
        self.graph = RelationshipGraph()
        self.accumulator: Optional[PhaseAccumulator] = None
        self.loop: Optional[EstimationLoop] = None

        logging.info(f"HaploMCRunner initialized on device: {config.device}")

    def _set_seeds(self, seed: int):
        """Set random seeds for reproducibility."""
        torch.manual_seed(seed)
        np.random.seed(seed)
        if torch.cuda.is_available():
            torch.cuda.manual_seed_all(seed)

    def load(self, likelihoods: Optional[GenotypeLikelihoods] = None,
             reference_pool: Optional[HaplotypePool] = None):
        """
        Builds the run state from in-memory data, or from the files in the
        configuration when arguments are omitted.
        """
        data = self.config.data
        if likelihoods is None:
            if not data.gl_file:
                raise InvariantViolation("No genotype likelihood file configured.")
            likelihoods = read_stbin(data.gl_file)
        if reference_pool is None and data.legend_file:
            reference_pool = read_reference_panel(data.legend_file, data.ref_haps_file, likelihoods.sites)
        if self.config.sampler.kickstart and reference_pool is None:
            raise InvariantViolation("Kickstart requires a reference panel.")

        self.likelihoods = likelihoods
        sample_pool = HaplotypePool.from_genotype_likelihoods(likelihoods.values, self.rng)
        self.buffers = HaplotypeBuffers(sample_pool)
        if reference_pool is not None:
            self.buffers.add_reference_panel(reference_pool)

        self.oracle = HMMLikelihoodOracle(
            likelihoods.values, likelihoods.positions, self.buffers, self.rng,
            copy_error_rate=self.config.model.copy_error_rate,
            recombination_rate=self.config.model.recombination_rate,
            device=self.config.device,
        )
        self.accumulator = PhaseAccumulator(likelihoods.num_individuals, likelihoods.num_sites)
        logging.info(f"Data prepared: {likelihoods.num_individuals} individuals, "
                     f"{likelihoods.num_sites} sites, {self.buffers.num_haplotypes} haplotypes")

    def run(self) -> Dict[str, Any]:
        """
        Runs the configured estimator and writes the outputs.

        Returns:
            Dictionary with the per-generation history, the result DataFrame
            and the path of the phased output.
        """
        if self.buffers is None:
            self.load()

        sampler = self.config.sampler
        output = self.config.output
        os.makedirs(output.output_dir, exist_ok=True)
        cycles = self.config.cycles_for(self.likelihoods.num_individuals)
        estimator = EstimatorKind(sampler.estimator)
        logging.info(f"Estimator {estimator.name}: burnin={sampler.burnin}, sampling={sampler.sampling}, "
                     f"cycles={cycles}")

        with TraceLog(output.trace_log) as trace:
            self.loop = EstimationLoop(
                self.buffers, self.oracle, self.rng, self.accumulator,
                graph=self.graph, trace=trace, kickstart=sampler.kickstart,
                sites=self.likelihoods.sites, sample_names=self.likelihoods.names,
            )
            result = self.loop.run(
                estimator, sampler.burnin, sampler.sampling, cycles,
                **self._emc_options(estimator),
            )

        output_path = os.path.join(output.output_dir, f"{output.base_filename}.phased.tsv")
        write_result(result, output_path)

        if output.relationship_graph_file:
            names = reference_sample_names(self.likelihoods.names, self.buffers.num_reference_haplotypes)
            self.graph.save(output.relationship_graph_file, names)

        self._report(estimator, cycles)
        return {
            "history": self.loop.history,
            "result": result,
            "output_path": output_path,
        }

    def _emc_options(self, estimator: EstimatorKind) -> Dict[str, Any]:
        if estimator != EstimatorKind.EMC:
            return {}
        sampler = self.config.sampler
        return {
            "parallel_chains": sampler.parallel_chains,
            "max_temperature": sampler.max_temperature,
            "selection_temperature": sampler.selection_temperature,
            "mutation_rate": sampler.mutation_rate,
        }

    def _report(self, estimator: EstimatorKind, cycles: int):
        output = self.config.output
        reporter = PerformanceReporter(output.output_dir)
        reporter.log_metric("summary", {
            "estimator": estimator.name,
            "individuals": self.likelihoods.num_individuals,
            "sites": self.likelihoods.num_sites,
            "reference_haplotypes": self.buffers.num_reference_haplotypes,
            "cycles": cycles,
            "generations": len(self.loop.history),
            "final_likelihood": self.loop.history[-1]["likelihood"] if self.loop.history else None,
        })
        reporter.log_metric("history", self.loop.history)
        for report_format in output.report_formats:
            reporter.generate_report(report_format, f"{output.base_filename}_report")
        if output.plot_filename:
            reporter.plot_likelihood_trace(output.plot_filename)
