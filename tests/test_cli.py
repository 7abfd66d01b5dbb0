import os
import json
import shutil
import tempfile
import unittest

from haplomc.cli import build_parser, config_from_args, main
from test_runner import write_inputs


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.gl_path, self.legend_path, self.haps_path = write_inputs(self.test_dir)
        self.output_dir = os.path.join(self.test_dir, "out")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_defaults(self):
        args = build_parser().parse_args([self.gl_path])
        config = config_from_args(args)
        self.assertEqual(config.data.gl_file, self.gl_path)
        self.assertEqual(config.sampler.burnin, 56)
        self.assertEqual(config.sampler.estimator, 0)
        self.assertIsNone(config.data.legend_file)

    def test_overrides(self):
        args = build_parser().parse_args([
            self.gl_path, '-b', '3', '-m', '4', '-n', '5', '-C', '6', '-E', '1', '-p', '4',
            '-L', self.legend_path, '-H', self.haps_path, '-k', '-o', self.output_dir, '--seed', '9',
        ])
        config = config_from_args(args)
        self.assertEqual(config.sampler.burnin, 3)
        self.assertEqual(config.sampler.sampling, 4)
        self.assertEqual(config.sampler.fold, 5)
        self.assertEqual(config.sampler.cycles, 6)
        self.assertEqual(config.sampler.estimator, 1)
        self.assertEqual(config.sampler.parallel_chains, 4)
        self.assertTrue(config.sampler.kickstart)
        self.assertEqual(config.data.ref_haps_file, self.haps_path)
        self.assertEqual(config.output.output_dir, self.output_dir)
        self.assertEqual(config.seed, 9)

    def test_config_file_then_flags(self):
        config_path = os.path.join(self.test_dir, "config.json")
        with open(config_path, 'w') as f:
            json.dump({"seed": 5, "sampler": {"burnin": 8, "sampling": 9}}, f)
        args = build_parser().parse_args([self.gl_path, '--config', config_path, '-m', '1'])
        config = config_from_args(args)
        self.assertEqual(config.seed, 5)
        self.assertEqual(config.sampler.burnin, 8)
        self.assertEqual(config.sampler.sampling, 1)

    def test_invalid_estimator_choice(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args([self.gl_path, '-E', '7'])

    def test_main_runs(self):
        status = main([self.gl_path, '-b', '2', '-m', '1', '-C', '3', '-o', self.output_dir,
                       '-L', self.legend_path, '-H', self.haps_path, '-k'])
        self.assertEqual(status, 0)
        self.assertTrue(os.path.exists(os.path.join(self.output_dir, "haplomc.phased.tsv")))

    def test_main_reports_errors(self):
        with self.assertRaises(SystemExit) as ctx:
            main([os.path.join(self.test_dir, "missing.bin"), '-o', self.output_dir])
        self.assertEqual(ctx.exception.code, 1)

    def test_main_rejects_lonely_legend(self):
        with self.assertRaises(SystemExit) as ctx:
            main([self.gl_path, '-L', self.legend_path, '-o', self.output_dir])
        self.assertEqual(ctx.exception.code, 1)


if __name__ == '__main__':
    unittest.main()
