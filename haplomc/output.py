import os
import logging
from typing import Sequence

import numpy as np
import pandas as pd


class PhaseAccumulator:
    """
    Collects the sampled haplotype pairs of the post burn-in generations and
    builds the final phased calls from them.
    """
    def __init__(self, num_individuals: int, num_sites: int):
        if num_individuals <= 0 or num_sites <= 0:
            raise ValueError("num_individuals and num_sites must be positive.")
        self.num_individuals = num_individuals
        self.num_sites = num_sites
        # alt allele counts per (individual, site, haplotype)
        self.counts = np.zeros((num_individuals, num_sites, 2), dtype=np.int64)
        self.num_samples = np.zeros(num_individuals, dtype=np.int64)

    def is_empty(self) -> bool:
        return not self.num_samples.any()

    def replace(self, individual: int, buffers):
        """
        Adds the individual's current pair to the running counts.

        Sampled pairs carry no fixed haplotype labels, so the pair is flipped
        when the swapped orientation agrees better with the consensus so far.
        """
        hap_a, hap_b = buffers.individual_alleles(individual)
        samples = self.num_samples[individual]
        if samples > 0:
            consensus = self.counts[individual] * 2 > samples
            straight = np.sum(consensus[:, 0] == hap_a) + np.sum(consensus[:, 1] == hap_b)
            swapped = np.sum(consensus[:, 0] == hap_b) + np.sum(consensus[:, 1] == hap_a)
            if swapped > straight:
                hap_a, hap_b = hap_b, hap_a
        self.counts[individual, :, 0] += hap_a
        self.counts[individual, :, 1] += hap_b
        self.num_samples[individual] += 1

    def haplotype_frequencies(self) -> np.ndarray:
        """(individuals, sites, 2) alt-allele frequency of each haplotype."""
        denominator = np.maximum(self.num_samples, 1)[:, None, None]
        return self.counts / denominator

    def result(self, buffers, sites: pd.DataFrame, sample_names: Sequence[str]) -> pd.DataFrame:
        """
        Phased genotypes and alt-allele dosages for every individual and site.

        Uses the accumulated samples, or the current haplotypes when no
        post burn-in generation was run.

        Args:
            buffers (HaplotypeBuffers): Haplotype buffers of the run.
            sites (pd.DataFrame): Site table with chrom, pos, ref and alt columns.
            sample_names (Sequence[str]): One name per individual.
        """
        if len(sample_names) != self.num_individuals:
            raise ValueError("sample_names must have one entry per individual.")

        if self.is_empty():
            logging.warning("No sampling generations were accumulated. Reporting the current haplotypes.")
            frequencies = np.zeros((self.num_individuals, self.num_sites, 2), dtype=np.float64)
            for ind in range(self.num_individuals):
                hap_a, hap_b = buffers.individual_alleles(ind)
                frequencies[ind, :, 0] = hap_a
                frequencies[ind, :, 1] = hap_b
        else:
            frequencies = self.haplotype_frequencies()

        calls = (frequencies > 0.5).astype(np.int64)
        df = sites[["chrom", "pos", "ref", "alt"]].reset_index(drop=True).copy()
        columns = {}
        for ind, name in enumerate(sample_names):
            columns[name] = [f"{a}|{b}" for a, b in calls[ind]]
            columns[f"{name}.dosage"] = np.round(frequencies[ind].sum(axis=1), 4)
        return pd.concat([df, pd.DataFrame(columns)], axis=1)


def write_result(df: pd.DataFrame, path: str):
    """Writes a phasing result as tab-separated text (gzip when ``path`` ends in .gz)."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    df.to_csv(path, sep="\t", index=False)
    logging.info(f"Phased haplotypes written to: {path}")
