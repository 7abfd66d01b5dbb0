"""
Copying-model HMM that scores and samples an individual's haplotype pair given
four parent haplotypes.

Hidden state (i, j): the individual's first haplotype copies parent i (0 or 1),
its second haplotype copies parent 2 + j. Each strand switches parent between
adjacent sites independently with probability rho. Emissions combine the
copied alleles, a copy-error rate and the individual's genotype likelihoods.
"""

import math
import logging
from typing import Dict, Sequence, Tuple

import numpy as np
import torch

from haplomc.chains import roulette_wheel_select
from haplomc.exceptions import InvariantViolation

NUM_STATES = 4
# state s = 2 * i + j
FIRST_PARENT = [0, 0, 1, 1]
SECOND_PARENT = [2, 3, 2, 3]


def switch_probabilities(positions, recombination_rate: float) -> np.ndarray:
    """Haldane switch probability for every interval between adjacent sites."""
    positions = np.asarray(positions, dtype=np.float64)
    distances = np.clip(np.diff(positions), 0.0, None)
    return 0.5 * (1.0 - np.exp(-2.0 * recombination_rate * distances))


class HMMLikelihoodOracle:
    """
    Likelihood oracle for the samplers.

    ``evaluate`` reads parent haplotypes from the current buffer and returns a
    log likelihood. ``commit`` samples a new pair for the individual and writes
    it into the next buffer.
    """
    def __init__(self, genotype_likelihoods, positions, buffers, rng,
                 copy_error_rate: float = 0.01, recombination_rate: float = 1e-6,
                 device: str = "cpu"):
        """
        Args:
            genotype_likelihoods (np.ndarray): (individuals, sites, 3) array of
                P(data | hom-ref, het, hom-alt).
            positions (Sequence[int]): Site positions in base pairs.
            buffers (HaplotypeBuffers): Shared haplotype buffers.
            rng (RandomSource): Shared random stream (used by ``commit``).
            copy_error_rate (float): Probability that a copied allele differs.
            recombination_rate (float): Per base pair switch rate.
            device (str): torch device.
        """
        if not 0.0 < copy_error_rate < 0.5:
            raise ValueError("copy_error_rate must be in (0, 0.5).")
        if recombination_rate < 0:
            raise ValueError("recombination_rate must be non-negative.")

        gls = np.asarray(genotype_likelihoods, dtype=np.float64)
        if gls.ndim != 3 or gls.shape[2] != 3:
            raise InvariantViolation(f"Genotype likelihoods must have shape (individuals, sites, 3), got {gls.shape}.")
        if gls.shape[0] != buffers.num_individuals or gls.shape[1] != buffers.num_sites:
            raise InvariantViolation("Genotype likelihoods do not match the haplotype buffers.")
        if len(positions) != gls.shape[1]:
            raise InvariantViolation("Number of positions does not match number of sites.")

        self.buffers = buffers
        self.rng = rng
        self.device = torch.device(device)
        self.num_sites = gls.shape[1]
        self.committed_parents: Dict[int, Tuple[int, ...]] = {}

        copy = torch.tensor([[1.0 - copy_error_rate, copy_error_rate],
                             [copy_error_rate, 1.0 - copy_error_rate]],
                            dtype=torch.float64, device=self.device)
        gl = torch.as_tensor(gls, dtype=torch.float64, device=self.device)
        # G[a, b] = GL[a + b]
        genotype_matrix = torch.stack([
            torch.stack([gl[..., 0], gl[..., 1]], dim=-1),
            torch.stack([gl[..., 1], gl[..., 2]], dim=-1),
        ], dim=-2)
        self.copy_matrix = copy
        self.genotype_matrix = genotype_matrix
        # emission for copied alleles (x, y): sum_ab C[x,a] G[a,b] C[y,b]
        self.emissions = torch.einsum('xa,nmab,yb->nmxy', copy, genotype_matrix, copy)

        rho = torch.as_tensor(switch_probabilities(positions, recombination_rate),
                              dtype=torch.float64, device=self.device)
        strand = torch.stack([
            torch.stack([1.0 - rho, rho], dim=-1),
            torch.stack([rho, 1.0 - rho], dim=-1),
        ], dim=-2)
        self.transitions = torch.einsum('mik,mjl->mijkl', strand, strand).reshape(-1, NUM_STATES, NUM_STATES)
        logging.debug(f"HMMLikelihoodOracle initialized on {self.device} for {self.num_sites} sites.")

    def _parent_alleles(self, parents: Sequence[int]) -> torch.Tensor:
        if len(parents) != 4:
            raise InvariantViolation(f"Expected 4 parent haplotypes, got {len(parents)}.")
        pool = self.buffers.current
        alleles = np.stack([pool.get_haplotype(int(p)) for p in parents]).astype(np.int64)
        return torch.from_numpy(alleles).to(self.device)

    def _state_emissions(self, individual: int, alleles: torch.Tensor) -> torch.Tensor:
        sites = torch.arange(self.num_sites, device=self.device)
        first = alleles[FIRST_PARENT]
        second = alleles[SECOND_PARENT]
        emissions = self.emissions[individual][sites, first, second]  # (states, sites)
        return emissions.transpose(0, 1)

    def _forward(self, state_emissions: torch.Tensor, keep_path: bool = False):
        alpha = state_emissions[0] / NUM_STATES
        log_likelihood = 0.0
        alphas = []
        for site in range(self.num_sites):
            if site > 0:
                alpha = (alpha @ self.transitions[site - 1]) * state_emissions[site]
            scale = float(alpha.sum())
            if not scale > 0:
                if not keep_path:
                    # parents cannot explain the data
                    return -math.inf, alphas
                raise InvariantViolation(f"HMM forward probability vanished at site {site}.")
            log_likelihood += float(np.log(scale))
            alpha = alpha / scale
            if keep_path:
                alphas.append(alpha)
        return log_likelihood, alphas

    def evaluate(self, individual: int, parents: Sequence[int]) -> float:
        """
        Log likelihood of the individual's data given four parent haplotypes;
        -inf when no copying path explains the data.
        """
        alleles = self._parent_alleles(parents)
        log_likelihood, _ = self._forward(self._state_emissions(individual, alleles))
        return log_likelihood

    def commit(self, individual: int, parents: Sequence[int], penalty: float):
        """
        Samples a haplotype pair for ``individual`` from the HMM posterior and
        writes it into the next buffer.

        Args:
            individual (int): Individual to update.
            parents (Sequence[int]): Accepted four-parent configuration.
            penalty (float): Exponent applied to the per-site allele weights;
                values below 1 flatten the allele draw.
        """
        alleles = self._parent_alleles(parents)
        _, alphas = self._forward(self._state_emissions(individual, alleles), keep_path=True)

        path = [0] * self.num_sites
        state = roulette_wheel_select(alphas[-1].tolist(), self.rng)
        path[-1] = state
        for site in range(self.num_sites - 2, -1, -1):
            weights = alphas[site] * self.transitions[site][:, state]
            state = roulette_wheel_select(weights.tolist(), self.rng)
            path[site] = state

        hap_a = np.zeros(self.num_sites, dtype=np.uint8)
        hap_b = np.zeros(self.num_sites, dtype=np.uint8)
        genotype_matrix = self.genotype_matrix[individual]
        for site, state in enumerate(path):
            x = alleles[FIRST_PARENT[state], site]
            y = alleles[SECOND_PARENT[state], site]
            weights = (self.copy_matrix[x].unsqueeze(1)
                       * genotype_matrix[site]
                       * self.copy_matrix[y].unsqueeze(0))
            weights = torch.pow(weights, penalty).flatten()
            pair = roulette_wheel_select(weights.tolist(), self.rng)
            hap_a[site] = pair >> 1
            hap_b[site] = pair & 1

        self.buffers.write_individual(individual, hap_a, hap_b)
        self.committed_parents[individual] = tuple(int(p) for p in parents)
