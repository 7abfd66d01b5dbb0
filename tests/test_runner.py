import unittest
import gzip
import os
import shutil
import tempfile

import numpy as np
import pandas as pd

from haplomc.config import HaploMCConfig
from haplomc.data_loading import GenotypeLikelihoods
from haplomc.exceptions import InvariantViolation
from haplomc.runner import HaploMCRunner

POSITIONS = [1000, 2000, 3000, 4000, 5000, 6000]
ALLELES = ["AG", "CT", "GA", "TC", "AC", "GT"]
SAMPLE_FIELDS = [
    ["0.1 0.0", "0.9 0.05", "0.0 1.0"],
    ["0.8 0.1", "0.2 0.0", "0.5 0.5"],
    ["0.0 0.0", "0.1 0.9", "0.9 0.1"],
    ["1.0 0.0", "0.0 0.0", "0.3 0.3"],
    ["0.2 0.8", "0.7 0.1", "0.0 0.0"],
    ["0.6 0.2", "0.1 0.1", "0.8 0.2"],
]
REFERENCE_ROWS = ["0 1 1 0", "1 0 1 0", "0 0 1 1", "1 1 0 0", "0 1 0 1", "1 0 0 1"]


def write_inputs(directory):
    gl_path = os.path.join(directory, "input.bin")
    with open(gl_path, 'w') as f:
        f.write("chr\tpos\tallele\tNA1\tNA2\tNA3\n")
        for pos, alleles, fields in zip(POSITIONS, ALLELES, SAMPLE_FIELDS):
            f.write("\t".join(["20", str(pos), alleles] + fields) + "\n")

    legend_path = os.path.join(directory, "ref.legend")
    with open(legend_path, 'w') as f:
        f.write("id position a0 a1\n")
        for i, (pos, alleles) in enumerate(zip(POSITIONS, ALLELES)):
            f.write(f"rs{i} {pos} {alleles[0]} {alleles[1]}\n")

    haps_path = os.path.join(directory, "ref.haps")
    with open(haps_path, 'w') as f:
        f.write("\n".join(REFERENCE_ROWS) + "\n")
    return gl_path, legend_path, haps_path


class TestHaploMCRunner(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.gl_path, self.legend_path, self.haps_path = write_inputs(self.test_dir)
        self.output_dir = os.path.join(self.test_dir, "out")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _config(self, **sampler):
        settings = {"burnin": 2, "sampling": 2, "cycles": 4}
        settings.update(sampler)
        return HaploMCConfig(
            seed=1,
            data={"gl_file": self.gl_path, "legend_file": self.legend_path, "ref_haps_file": self.haps_path},
            sampler=settings,
            output={
                "output_dir": self.output_dir,
                "trace_log": os.path.join(self.test_dir, "trace.txt.gz"),
                "relationship_graph_file": os.path.join(self.output_dir, "graph.tsv"),
                "plot_filename": None,
            },
        )

    def test_adaptive_run_end_to_end(self):
        runner = HaploMCRunner(self._config(estimator=2))
        results = runner.run()

        self.assertEqual(len(results["history"]), 4)
        self.assertEqual(runner.buffers.num_reference_haplotypes, 4)
        self.assertTrue(os.path.exists(results["output_path"]))
        phased = pd.read_csv(results["output_path"], sep="\t", dtype=str)
        self.assertEqual(list(phased["pos"]), [str(p) for p in POSITIONS])
        self.assertIn("NA3", phased.columns)
        self.assertTrue(all(call in {"0|0", "0|1", "1|0", "1|1"} for call in phased["NA1"]))

        graph = pd.read_csv(os.path.join(self.output_dir, "graph.tsv"), sep="\t", index_col="sample")
        self.assertEqual(list(graph.index), ["NA1", "NA2", "NA3"])
        self.assertIn("refSamp1", graph.columns)

        self.assertTrue(os.path.exists(os.path.join(self.output_dir, "haplomc_report.json")))
        self.assertTrue(os.path.exists(os.path.join(self.output_dir, "haplomc_report.txt")))

        with gzip.open(os.path.join(self.test_dir, "trace.txt.gz"), 'rt') as f:
            self.assertTrue(f.readline().startswith("##iteration"))

    def test_emc_run(self):
        runner = HaploMCRunner(self._config(estimator=1, parallel_chains=3))
        results = runner.run()
        self.assertEqual(len(results["history"]), 4)
        self.assertEqual(len(results["result"]), len(POSITIONS))
        self.assertIsNone(runner.graph.kind)
        self.assertFalse(os.path.exists(os.path.join(self.output_dir, "graph.tsv")))
        self.assertTrue(os.path.exists(results["output_path"]))

    def test_same_seed_same_result(self):
        first = HaploMCRunner(self._config()).run()["result"]
        second = HaploMCRunner(self._config()).run()["result"]
        pd.testing.assert_frame_equal(first, second)

    def test_load_in_memory(self):
        config = HaploMCConfig(output={"output_dir": self.output_dir, "plot_filename": None},
                               sampler={"burnin": 1, "sampling": 0, "cycles": 2})
        sites = pd.DataFrame({"chrom": ["1"] * 3, "pos": [10, 20, 30], "ref": ["A"] * 3, "alt": ["T"] * 3})
        values = np.full((2, 3, 3), 1.0 / 3)
        runner = HaploMCRunner(config)
        runner.load(likelihoods=GenotypeLikelihoods(sites, ["a", "b"], values))
        results = runner.run()

        self.assertEqual(runner.buffers.num_haplotypes, 4)
        self.assertEqual(list(results["result"].columns[4:]), ["a", "a.dosage", "b", "b.dosage"])

    def test_kickstart_requires_reference(self):
        config = HaploMCConfig(data={"gl_file": self.gl_path}, sampler={"kickstart": True})
        with self.assertRaises(InvariantViolation):
            HaploMCRunner(config).load()

    def test_missing_input(self):
        with self.assertRaises(InvariantViolation):
            HaploMCRunner(HaploMCConfig()).load()


if __name__ == '__main__':
    unittest.main()
