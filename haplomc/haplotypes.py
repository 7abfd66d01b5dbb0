"""
Bit-packed haplotype storage and the current/next double buffer used by the
estimation loop.
"""

import logging
import numpy as np

from haplomc.exceptions import InvariantViolation

WORD_SIZE = 64
WORD_SHIFT = 6
WORD_MOD = WORD_SIZE - 1


class HaplotypePool:
    """
    Fixed-width bit sets, one per haplotype, packed into 64-bit words.
    Bit ``site`` of haplotype ``h`` holds the allele (0 = ref, 1 = alt).
    """
    def __init__(self, num_haplotypes: int, num_sites: int):
        if num_haplotypes < 0:
            raise ValueError("num_haplotypes must be non-negative.")
        if num_sites <= 0:
            raise ValueError("num_sites must be a positive integer.")
        self.num_sites = num_sites
        self.num_words = (num_sites + WORD_MOD) >> WORD_SHIFT
        self.words = np.zeros((num_haplotypes, self.num_words), dtype=np.uint64)

    @property
    def num_haplotypes(self) -> int:
        return self.words.shape[0]

    def __len__(self):
        return self.num_haplotypes

    def _check_site(self, site):
        if not 0 <= site < self.num_sites:
            raise IndexError(f"Site {site} out of range [0, {self.num_sites}).")

    def set1(self, hap: int, site: int):
        self._check_site(site)
        self.words[hap, site >> WORD_SHIFT] |= np.uint64(1) << np.uint64(site & WORD_MOD)

    def set0(self, hap: int, site: int):
        self._check_site(site)
        self.words[hap, site >> WORD_SHIFT] &= ~(np.uint64(1) << np.uint64(site & WORD_MOD))

    def set_allele(self, hap: int, site: int, allele: int):
        if allele:
            self.set1(hap, site)
        else:
            self.set0(hap, site)

    def test(self, hap: int, site: int) -> bool:
        self._check_site(site)
        word = self.words[hap, site >> WORD_SHIFT]
        return bool((word >> np.uint64(site & WORD_MOD)) & np.uint64(1))

    def get_haplotype(self, hap: int) -> np.ndarray:
        """Unpacks one haplotype into a uint8 array of length num_sites."""
        as_bytes = self.words[hap].astype('<u8').view(np.uint8)
        return np.unpackbits(as_bytes, bitorder='little')[:self.num_sites]

    def set_haplotype(self, hap: int, alleles):
        alleles = np.asarray(alleles, dtype=np.uint8)
        if alleles.shape != (self.num_sites,):
            raise ValueError(f"Expected {self.num_sites} alleles, got shape {alleles.shape}.")
        if np.any(alleles > 1):
            raise ValueError("Alleles must be 0 or 1.")
        packed = np.zeros(self.num_words * 8, dtype=np.uint8)
        bits = np.packbits(alleles, bitorder='little')
        packed[:len(bits)] = bits
        self.words[hap] = packed.view('<u8').astype(np.uint64)

    def to_alleles(self) -> np.ndarray:
        """Returns an (num_haplotypes, num_sites) uint8 matrix."""
        if self.num_haplotypes == 0:
            return np.zeros((0, self.num_sites), dtype=np.uint8)
        return np.stack([self.get_haplotype(h) for h in range(self.num_haplotypes)])

    def copy(self):
        clone = HaplotypePool(0, self.num_sites)
        clone.words = self.words.copy()
        return clone

    def extend(self, other: "HaplotypePool"):
        """Appends the haplotypes of another pool with the same site count."""
        if other.num_sites != self.num_sites:
            raise InvariantViolation(
                f"Cannot append pool with {other.num_sites} sites to pool with {self.num_sites} sites."
            )
        self.words = np.concatenate([self.words, other.words], axis=0)

    @classmethod
    def from_alleles(cls, alleles):
        """Builds a pool from an (num_haplotypes, num_sites) matrix of 0/1 values."""
        alleles = np.asarray(alleles, dtype=np.uint8)
        if alleles.ndim != 2:
            raise ValueError("alleles must be a 2-D matrix (haplotypes x sites).")
        pool = cls(alleles.shape[0], alleles.shape[1])
        for hap, row in enumerate(alleles):
            pool.set_haplotype(hap, row)
        return pool

    @classmethod
    def from_genotype_likelihoods(cls, likelihoods, rng):
        """
        Random starting haplotypes for every individual.

        At each site a genotype is drawn in proportion to its likelihood;
        heterozygous genotypes get a random phase.

        Args:
            likelihoods (np.ndarray): (individuals, sites, 3) genotype likelihoods.
            rng (RandomSource): Shared random stream.
        """
        likelihoods = np.asarray(likelihoods, dtype=np.float64)
        num_individuals, num_sites, _ = likelihoods.shape
        pool = cls(2 * num_individuals, num_sites)
        for ind in range(num_individuals):
            hap_a = np.zeros(num_sites, dtype=np.uint8)
            hap_b = np.zeros(num_sites, dtype=np.uint8)
            for site in range(num_sites):
                gl = likelihoods[ind, site]
                total = gl.sum()
                draw = rng.uniform() * total if total > 0 else 0.0
                if total <= 0 or draw < gl[0]:
                    genotype = 0
                elif draw < gl[0] + gl[1]:
                    genotype = 1
                else:
                    genotype = 2
                if genotype == 1:
                    if rng.get() & 1:
                        hap_a[site] = 1
                    else:
                        hap_b[site] = 1
                elif genotype == 2:
                    hap_a[site] = 1
                    hap_b[site] = 1
            pool.set_haplotype(2 * ind, hap_a)
            pool.set_haplotype(2 * ind + 1, hap_b)
        return pool


class HaplotypeBuffers:
    """
    Two haplotype pools, "current" and "next", selected by a generation index.

    Reads during a generation target ``current``; commits target ``next``. The
    loop calls ``swap()`` exactly once per generation. Reference haplotypes are
    appended to both pools after the sample haplotypes and are never written.
    """
    def __init__(self, sample_pool: HaplotypePool):
        if sample_pool.num_haplotypes % 2 != 0:
            raise InvariantViolation("Sample haplotype pool must hold whole pairs.")
        self._buffers = [sample_pool, sample_pool.copy()]
        self.generation = 0
        self.num_sample_haplotypes = sample_pool.num_haplotypes
        self.num_reference_haplotypes = 0

    @property
    def current(self) -> HaplotypePool:
        return self._buffers[self.generation]

    @property
    def next(self) -> HaplotypePool:
        return self._buffers[1 - self.generation]

    @property
    def num_individuals(self) -> int:
        return self.num_sample_haplotypes // 2

    @property
    def num_haplotypes(self) -> int:
        return self.num_sample_haplotypes + self.num_reference_haplotypes

    @property
    def num_sites(self) -> int:
        return self.current.num_sites

    def is_reference(self, hap: int) -> bool:
        return hap >= self.num_sample_haplotypes

    def swap(self):
        self.generation = 1 - self.generation

    def add_reference_panel(self, reference_pool: HaplotypePool):
        """Appends read-only reference haplotypes to both buffers."""
        for pool in self._buffers:
            pool.extend(reference_pool)
        self.num_reference_haplotypes += reference_pool.num_haplotypes
        logging.info(f"Reference panel haplotypes\t{reference_pool.num_haplotypes}")

    def write_individual(self, individual: int, hap_a, hap_b):
        """Writes an individual's new pair into the next buffer."""
        first = 2 * individual
        if not 0 <= first < self.num_sample_haplotypes:
            raise InvariantViolation(
                f"Individual {individual} does not own sample haplotypes; reference haplotypes are read-only."
            )
        self.next.set_haplotype(first, hap_a)
        self.next.set_haplotype(first + 1, hap_b)

    def individual_alleles(self, individual: int):
        """Returns the individual's current pair as two uint8 arrays."""
        return (self.current.get_haplotype(2 * individual),
                self.current.get_haplotype(2 * individual + 1))
