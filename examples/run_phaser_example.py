import os
import logging

import pandas as pd
from haplomc.config import HaploMCConfig
from haplomc.runner import HaploMCRunner

# --- Configuration ---
# Generate the inputs first with examples/generate_synthetic_data.py
DATA_DIR = "examples/data"
GL_FILE = os.path.join(DATA_DIR, "synthetic.bin")
LEGEND_FILE = os.path.join(DATA_DIR, "synthetic.legend")
HAPS_FILE = os.path.join(DATA_DIR, "synthetic.haps")
TRUTH_FILE = os.path.join(DATA_DIR, "synthetic_truth.tsv")
OUTPUT_DIR = "examples/output"
SEED = 42

ESTIMATORS = {0: "mh", 1: "emc", 2: "amh_sample", 3: "amh_haplotype"}

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def switch_errors(phased: pd.DataFrame, truth: pd.DataFrame, sample: str) -> int:
    """Phase switches between the estimate and the truth at heterozygous sites."""
    switches = 0
    previous = None
    for estimate, actual in zip(phased[sample], truth[sample]):
        if actual[0] == actual[2] or estimate[0] == estimate[2]:
            continue
        same = estimate == actual
        if previous is not None and same != previous:
            switches += 1
        previous = same
    return switches


# --- Main Workflow ---
if __name__ == "__main__":
    logging.info("Starting haplomc Example Workflow...")
    truth = pd.read_csv(TRUTH_FILE, sep="\t", dtype=str)
    samples = [c for c in truth.columns if c != "pos"]

    for estimator, name in ESTIMATORS.items():
        config = HaploMCConfig(
            seed=SEED,
            data={"gl_file": GL_FILE, "legend_file": LEGEND_FILE, "ref_haps_file": HAPS_FILE},
            sampler={"estimator": estimator, "burnin": 20, "sampling": 20, "fold": 2},
            output={"output_dir": OUTPUT_DIR, "base_filename": name,
                    "plot_filename": f"{name}_likelihood_trace.png"},
        )
        results = HaploMCRunner(config).run()
        phased = results["result"]
        total = sum(switch_errors(phased, truth, sample) for sample in samples)
        logging.info(f"{name}: final likelihood {results['history'][-1]['likelihood']:.4f}, "
                     f"switch errors {total}")

    logging.info("haplomc Example Workflow Finished.")
