"""
Readers for genotype-likelihood text files and Impute2-style reference panels.
"""

import os
import logging
from typing import List

import numpy as np
import pandas as pd

from haplomc.exceptions import DataValidationError
from haplomc.haplotypes import HaplotypePool

SITE_COLUMNS = ["chrom", "pos", "ref", "alt"]
LEGEND_HEADER = ["id", "position", "a0", "a1"]


class GenotypeLikelihoods:
    """
    Genotype likelihoods of a set of individuals at a set of biallelic sites.

    Attributes:
        sites (pd.DataFrame): chrom, pos, ref, alt per site.
        names (List[str]): One name per individual.
        values (np.ndarray): (individuals, sites, 3) likelihoods of
            hom-ref, het and hom-alt.
    """
    def __init__(self, sites: pd.DataFrame, names: List[str], values: np.ndarray):
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (len(names), len(sites), 3):
            raise DataValidationError(
                f"Likelihood array shape {values.shape} does not match "
                f"{len(names)} samples and {len(sites)} sites."
            )
        self.sites = sites.reset_index(drop=True)
        self.names = list(names)
        self.values = values

    @property
    def num_individuals(self) -> int:
        return len(self.names)

    @property
    def num_sites(self) -> int:
        return len(self.sites)

    @property
    def positions(self) -> np.ndarray:
        return self.sites["pos"].to_numpy(dtype=np.int64)


def _split_alleles(token: str, path: str, line: int):
    token = token.strip()
    if len(token) > 2:
        parts = token.split(" ")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise DataValidationError(f"Could not parse alleles [{token}]", path, line)
        return parts[0], parts[1]
    if len(token) != 2:
        raise DataValidationError(f"Could not parse alleles [{token}]", path, line)
    return token[0], token[1]


def read_stbin(path: str) -> GenotypeLikelihoods:
    """
    Reads a tab-separated genotype-likelihood file (optionally gzipped).

    The header is ``chr<TAB>pos<TAB>allele<TAB><sample>...``. Each body line
    holds the chromosome, position, alleles (``AG`` or ``REF ALT``) and, per
    sample, the space-separated probabilities of the het and hom-alt genotypes.

    Raises:
        DataValidationError: Missing file, missing samples, wrong column counts
            or probabilities that do not sum to at most one.
    """
    if not os.path.exists(path):
        raise DataValidationError("Error opening file", path)

    try:
        df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False, compression="infer")
    except pd.errors.ParserError as e:
        raise DataValidationError(f"Input line does not have the correct number of columns: {e}", path) from e

    if df.shape[1] < 4:
        raise DataValidationError("Input bin file does not contain any sample information", path)
    names = list(df.columns[3:])
    if df.empty:
        raise DataValidationError("Input bin file does not contain any sites", path)

    num_samples = len(names)
    values = np.zeros((num_samples, len(df), 3), dtype=np.float64)
    chroms, positions, refs, alts = [], [], [], []
    for row_index, row in enumerate(df.itertuples(index=False, name=None)):
        line = row_index + 2
        if any(not isinstance(field, str) or field == "" for field in row):
            raise DataValidationError(
                f"Input line does not have the correct number of columns [{3 + num_samples}]", path, line
            )
        chrom, pos, alleles = row[0], row[1], row[2]
        try:
            position = int(pos)
        except ValueError as e:
            raise DataValidationError(f"Invalid position [{pos}]", path, line) from e
        ref, alt = _split_alleles(alleles, path, line)
        chroms.append(chrom)
        positions.append(position)
        refs.append(ref)
        alts.append(alt)

        for sample, field in enumerate(row[3:]):
            parts = field.split()
            if len(parts) != 2:
                raise DataValidationError(
                    f"Expected two likelihoods for sample {names[sample]}, got [{field}]", path, line
                )
            try:
                het, hom_alt = float(parts[0]), float(parts[1])
            except ValueError as e:
                raise DataValidationError(f"Invalid likelihood [{field}]", path, line) from e
            if het < 0 or hom_alt < 0 or het + hom_alt > 1 + 1e-6:
                raise DataValidationError(
                    f"Likelihoods [{field}] for sample {names[sample]} must be non-negative and sum to at most 1",
                    path, line,
                )
            values[sample, row_index] = (max(0.0, 1.0 - het - hom_alt), het, hom_alt)

    sites = pd.DataFrame({"chrom": chroms, "pos": positions, "ref": refs, "alt": alts})
    logging.info(f"Loaded genotype likelihoods for {num_samples} samples at {len(sites)} sites from {path}")
    return GenotypeLikelihoods(sites, names, values)


def read_reference_panel(legend_path: str, haps_path: str, sites: pd.DataFrame) -> HaplotypePool:
    """
    Loads reference haplotypes and checks that they line up with ``sites``.

    Args:
        legend_path (str): Legend file with header ``id position a0 a1``.
        haps_path (str): Space-separated 0/1 matrix, one row per site and one
            column per reference haplotype.
        sites (pd.DataFrame): Sites of the genotype-likelihood data.

    Returns:
        HaplotypePool: Reference haplotypes.
    """
    if not legend_path:
        raise DataValidationError("Need to define a legend file if defining a reference haplotypes file")
    if not haps_path:
        raise DataValidationError("Need to define a reference haplotypes file if defining a legend file")
    for path in (legend_path, haps_path):
        if not os.path.exists(path):
            raise DataValidationError("Error opening file", path)

    legend = pd.read_csv(legend_path, sep=r"\s+", dtype=str, compression="infer")
    header = list(legend.columns[:4])
    if header != LEGEND_HEADER:
        raise DataValidationError(
            f"header start does not match: {' '.join(LEGEND_HEADER)}. "
            f"Instead the first line of the header is: {' '.join(legend.columns)}",
            legend_path, 1,
        )
    if len(legend) != len(sites):
        raise DataValidationError(
            f"Number of positions in legend file ({len(legend)}) needs to match current data ({len(sites)})",
            legend_path,
        )
    for index, (row, site) in enumerate(zip(legend.itertuples(index=False), sites.itertuples(index=False))):
        line = index + 2
        if int(row.position) != int(site.pos):
            raise DataValidationError(
                f"Position {row.position} in legend file needs to match position in genotype likelihood file: {site.pos}",
                legend_path, line,
            )
        if f"{row.a0}{row.a1}" != f"{site.ref}{site.alt}":
            raise DataValidationError(
                f"Alleles {row.a0}{row.a1} in legend file need to match current data: {site.ref}{site.alt}",
                legend_path, line,
            )

    try:
        haps = pd.read_csv(haps_path, sep=r"\s+", header=None, dtype=str,
                           keep_default_na=False, compression="infer")
    except pd.errors.EmptyDataError as e:
        raise DataValidationError("num ref haps is 0. Haps file empty?", haps_path) from e
    except pd.errors.ParserError as e:
        raise DataValidationError(
            f"Every row of haplotypes file must have the same number of columns: {e}", haps_path
        ) from e
    if haps.empty:
        raise DataValidationError("num ref haps is 0. Haps file empty?", haps_path)
    num_ref_haps = haps.shape[1]
    if len(haps) != len(sites):
        raise DataValidationError(
            f"Number of rows ({len(haps)}) needs to match number of sites ({len(sites)})", haps_path
        )

    alleles = np.zeros((num_ref_haps, len(haps)), dtype=np.uint8)
    for site, tokens in enumerate(haps.itertuples(index=False, name=None)):
        line = site + 1
        if any(not isinstance(token, str) or token == "" for token in tokens):
            raise DataValidationError(
                "Every row of haplotypes file must have the same number of columns", haps_path, line
            )
        for hap, token in enumerate(tokens):
            if token == "0":
                continue
            if token == "1":
                alleles[hap, site] = 1
            else:
                raise DataValidationError("All alleles are not 0 or 1", haps_path, line)

    logging.info(f"Reference panel haplotypes\t{num_ref_haps}")
    return HaplotypePool.from_alleles(alleles)
