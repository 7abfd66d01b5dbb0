import os
import argparse
import logging

import numpy as np
import pandas as pd

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

ALLELE_PAIRS = ["AG", "CT", "GA", "TC"]


def simulate_founders(num_founders, num_sites, rng):
    """Founder haplotypes with site-specific alt allele frequencies."""
    freqs = rng.uniform(0.05, 0.5, size=num_sites)
    return (rng.random((num_founders, num_sites)) < freqs).astype(np.uint8)


def mosaic(founders, num_haplotypes, switch_rate, rng):
    """Haplotypes copied from the founders with occasional switches."""
    num_founders, num_sites = founders.shape
    haplotypes = np.zeros((num_haplotypes, num_sites), dtype=np.uint8)
    for h in range(num_haplotypes):
        source = rng.integers(num_founders)
        for site in range(num_sites):
            if rng.random() < switch_rate:
                source = rng.integers(num_founders)
            haplotypes[h, site] = founders[source, site]
    return haplotypes


def genotype_likelihoods(genotypes, error, rng):
    """Noisy (het, hom-alt) likelihoods centred on the true genotype."""
    num_samples, num_sites = genotypes.shape
    fields = np.empty((num_sites, num_samples), dtype=object)
    for i in range(num_samples):
        for site in range(num_sites):
            gl = np.full(3, error / 2)
            gl[genotypes[i, site]] = 1.0 - error
            gl = rng.dirichlet(gl * 50)
            fields[site, i] = f"{gl[1]:.4f} {gl[2]:.4f}"
    return fields


def main():
    parser = argparse.ArgumentParser(description='Simulate genotype likelihoods and a reference panel')
    parser.add_argument('--out-dir', default='examples/data')
    parser.add_argument('--samples', type=int, default=20)
    parser.add_argument('--reference', type=int, default=40, help='Reference haplotypes')
    parser.add_argument('--sites', type=int, default=100)
    parser.add_argument('--error', type=float, default=0.1)
    parser.add_argument('--seed', type=int, default=42)
    args = parser.parse_args()

    rng = np.random.default_rng(args.seed)
    os.makedirs(args.out_dir, exist_ok=True)

    founders = simulate_founders(8, args.sites, rng)
    sample_haps = mosaic(founders, 2 * args.samples, 0.01, rng)
    reference_haps = mosaic(founders, args.reference, 0.01, rng)
    positions = np.sort(rng.choice(np.arange(1, 50 * args.sites), size=args.sites, replace=False)) * 100
    alleles = [ALLELE_PAIRS[i % len(ALLELE_PAIRS)] for i in range(args.sites)]
    names = [f"samp{i}" for i in range(args.samples)]

    genotypes = sample_haps[0::2].astype(int) + sample_haps[1::2].astype(int)
    fields = genotype_likelihoods(genotypes, args.error, rng)
    gl_df = pd.DataFrame(fields, columns=names)
    gl_df.insert(0, "allele", alleles)
    gl_df.insert(0, "pos", positions)
    gl_df.insert(0, "chr", "20")
    gl_path = os.path.join(args.out_dir, "synthetic.bin")
    gl_df.to_csv(gl_path, sep="\t", index=False)

    legend = pd.DataFrame({
        "id": [f"snp{i}" for i in range(args.sites)],
        "position": positions,
        "a0": [a[0] for a in alleles],
        "a1": [a[1] for a in alleles],
    })
    legend.to_csv(os.path.join(args.out_dir, "synthetic.legend"), sep=" ", index=False)
    np.savetxt(os.path.join(args.out_dir, "synthetic.haps"), reference_haps.T, fmt="%d", delimiter=" ")

    truth = pd.DataFrame(
        {f"{name}": [f"{a}|{b}" for a, b in zip(sample_haps[2 * i], sample_haps[2 * i + 1])]
         for i, name in enumerate(names)}
    )
    truth.insert(0, "pos", positions)
    truth.to_csv(os.path.join(args.out_dir, "synthetic_truth.tsv"), sep="\t", index=False)
    logging.info(f"Wrote {args.samples} samples, {args.reference} reference haplotypes and "
                 f"{args.sites} sites to {args.out_dir}")


if __name__ == "__main__":
    main()
