"""
Relationship graph used to propose parent haplotypes.

The graph keeps one row of weights per individual. Accepted proposals add
weight to the columns of the parents they used, so haplotypes that explain an
individual well are proposed more often for that individual as the run goes
on. In uniform mode no weights are kept and proposals are uniform over all
haplotypes not owned by the individual.
"""

import os
import math
import logging
from enum import IntEnum
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from haplomc.chains import roulette_wheel_select
from haplomc.exceptions import InvariantViolation


class GraphKind(IntEnum):
    SAMPLE_SAMPLE = 0
    SAMPLE_HAPLOTYPE = 1
    UNIFORM = 2


class RelationshipGraph:
    def __init__(self):
        self.kind: Optional[GraphKind] = None
        self.num_individuals = 0
        self.num_haplotypes = 0
        self.weights: Optional[np.ndarray] = None

    def init(self, kind, num_individuals: int, num_haplotypes: int):
        """
        (Re)initializes the graph.

        Args:
            kind (GraphKind | int): Matrix layout, or UNIFORM for no graph.
            num_individuals (int): Number of sample individuals (matrix rows).
            num_haplotypes (int): Sample plus reference haplotypes.
        """
        kind = GraphKind(kind)
        if num_individuals <= 0:
            raise InvariantViolation("Relationship graph needs at least one individual.")
        if num_haplotypes < 2 * num_individuals:
            raise InvariantViolation(
                f"{num_haplotypes} haplotypes cannot hold {num_individuals} individuals."
            )
        if num_haplotypes <= 2:
            raise InvariantViolation("Need haplotypes other than the individual's own pair to propose from.")

        self.kind = kind
        self.num_individuals = num_individuals
        self.num_haplotypes = num_haplotypes

        if kind == GraphKind.UNIFORM:
            self.weights = None
        else:
            self.weights = np.ones((num_individuals, self._num_columns()), dtype=np.float64)
        logging.debug(f"RelationshipGraph initialized: kind={kind.name}, "
                      f"individuals={num_individuals}, haplotypes={num_haplotypes}.")

    @property
    def num_reference_haplotypes(self) -> int:
        return self.num_haplotypes - 2 * self.num_individuals

    def _num_columns(self) -> int:
        if self.kind == GraphKind.SAMPLE_SAMPLE:
            return int(math.ceil(self.num_haplotypes / 2))
        return self.num_haplotypes

    def _hap_to_column(self, hap: int) -> int:
        if self.kind == GraphKind.SAMPLE_SAMPLE:
            return hap // 2
        return hap

    def _check_initialized(self):
        if self.kind is None:
            raise InvariantViolation("RelationshipGraph used before init().")

    def sample_haplotype(self, individual: int, rng, reference_only: bool = False) -> int:
        """
        Proposes a haplotype for ``individual``; never one of its own pair.

        Args:
            individual (int): Individual being updated.
            rng (RandomSource): Shared random stream.
            reference_only (bool): Draw uniformly from the reference panel.
        """
        self._check_initialized()
        if reference_only:
            if self.num_reference_haplotypes <= 0:
                raise InvariantViolation("Reference-only sampling requested but no reference panel is loaded.")
            return 2 * self.num_individuals + rng.get() % self.num_reference_haplotypes

        if self.kind == GraphKind.UNIFORM:
            while True:
                hap = rng.get() % self.num_haplotypes
                if hap // 2 != individual:
                    return hap

        row = self.weights[individual].copy()
        if self.kind == GraphKind.SAMPLE_SAMPLE:
            row[individual] = 0.0
        else:
            row[2 * individual] = 0.0
            row[2 * individual + 1] = 0.0
        column = roulette_wheel_select(row, rng)

        if self.kind == GraphKind.SAMPLE_HAPLOTYPE:
            return column
        hap = 2 * column + (rng.get() & 1)
        if hap >= self.num_haplotypes:
            # odd reference count: the last column holds a single haplotype
            hap = 2 * column
        return hap

    def update_graph(self, parents: Sequence[int], accepted: bool, individual: int, penalty: float):
        """Reinforces the parents of an accepted proposal by ``penalty``."""
        self._check_initialized()
        if self.kind == GraphKind.UNIFORM or not accepted:
            return
        for hap in parents:
            self.weights[individual, self._hap_to_column(hap)] += penalty

    def column_labels(self, sample_names: Sequence[str]) -> List[str]:
        if self.kind == GraphKind.SAMPLE_SAMPLE:
            return list(sample_names)
        labels = []
        for name in sample_names:
            labels.extend([f"{name}.0", f"{name}.1"])
        return labels[:self.num_haplotypes]

    def save(self, path: str, sample_names: Sequence[str]):
        """
        Writes the weight matrix as a tab-separated table.

        Args:
            path (str): Output file; compressed when it ends in ``.gz``.
            sample_names (Sequence[str]): Names of the sample individuals followed
                by the reference pseudo-samples.
        """
        if self.kind is None:
            logging.warning("Relationship graph was not used by this estimator. Nothing to save.")
            return
        if self.kind == GraphKind.UNIFORM:
            logging.warning("Relationship graph is in uniform mode. Nothing to save.")
            return
        if len(sample_names) * 2 < self.num_haplotypes:
            raise InvariantViolation(
                f"Need at least {math.ceil(self.num_haplotypes / 2)} sample names, got {len(sample_names)}."
            )
        df = pd.DataFrame(
            self.weights,
            index=list(sample_names[:self.num_individuals]),
            columns=self.column_labels(sample_names),
        )
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        df.to_csv(path, sep="\t", index_label="sample")
        logging.info(f"Relationship graph saved to: {path}")


def reference_sample_names(sample_names: Sequence[str], num_reference_haplotypes: int) -> List[str]:
    """Sample names followed by ``refSamp<i>`` for every reference pair."""
    names = list(sample_names)
    names.extend(f"refSamp{i}" for i in range(int(math.ceil(num_reference_haplotypes / 2))))
    return names
