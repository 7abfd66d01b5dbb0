import unittest
import os
import json
import tempfile
import shutil
from unittest.mock import patch

from haplomc.performance_reporter import PerformanceReporter

HISTORY = [
    {"generation": 0, "penalty": 0.25, "likelihood": -1.5, "fold": 2.0},
    {"generation": 1, "penalty": 1.0, "likelihood": -1.2, "fold": 2.0},
]


class TestPerformanceReporter(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_initialization(self):
        reporter = PerformanceReporter(output_dir=self.test_dir)
        self.assertEqual(reporter.output_dir, self.test_dir)
        self.assertEqual(reporter.metrics_log, {})
        with self.assertRaises(TypeError):
            PerformanceReporter(output_dir=None)

    def test_log_metric_and_generate_report_json(self):
        reporter = PerformanceReporter(output_dir=self.test_dir)
        reporter.log_metric("summary", {"estimator": "MCMC", "cycles": 4})
        reporter.log_metric("history", HISTORY)

        path = reporter.generate_report(report_format="json", report_filename="haplomc_report")

        self.assertEqual(path, os.path.join(self.test_dir, "haplomc_report.json"))
        with open(path, 'r') as f:
            report_data = json.load(f)
        self.assertEqual(report_data["summary"], {"estimator": "MCMC", "cycles": 4})
        self.assertEqual(report_data["history"], HISTORY)

    def test_generate_report_txt(self):
        reporter = PerformanceReporter(output_dir=self.test_dir)
        reporter.log_metric("summary", {"final_likelihood": -1.2})
        reporter.log_metric("history", HISTORY)
        reporter.log_metric("note", "done")

        path = reporter.generate_report(report_format="txt", report_filename="report.txt")

        with open(path, 'r') as f:
            content = f.read()
        self.assertIn("--- summary ---", content)
        self.assertIn("final_likelihood: -1.2", content)
        self.assertIn("Item 1:", content)
        self.assertIn("done", content)

    def test_invalid_key(self):
        reporter = PerformanceReporter(output_dir=self.test_dir)
        with self.assertRaises(TypeError):
            reporter.log_metric(3, "value")

    @patch('matplotlib.pyplot.figure')
    @patch('matplotlib.pyplot.plot')
    @patch('matplotlib.pyplot.xlabel')
    @patch('matplotlib.pyplot.ylabel')
    @patch('matplotlib.pyplot.title')
    @patch('matplotlib.pyplot.legend')
    @patch('matplotlib.pyplot.grid')
    @patch('matplotlib.pyplot.savefig')
    @patch('matplotlib.pyplot.close')
    def test_plot_likelihood_trace_mocked(self, mock_close, mock_savefig, mock_grid, mock_legend, mock_title,
                                          mock_ylabel, mock_xlabel, mock_plot, mock_figure):
        """Test plotting the likelihood trace with mocked matplotlib."""
        reporter = PerformanceReporter(output_dir=self.test_dir)
        reporter.log_metric("history", HISTORY)

        reporter.plot_likelihood_trace(plot_filename="trace.png")

        mock_figure.assert_called_once()
        self.assertEqual(mock_plot.call_count, 2)  # likelihood and penalty
        mock_xlabel.assert_called_once_with("Generation")
        mock_title.assert_called_once()
        mock_legend.assert_called_once()
        mock_grid.assert_called_once_with(True)
        mock_savefig.assert_called_once_with(os.path.join(self.test_dir, "trace.png"))
        mock_close.assert_called_once()

    @patch('matplotlib.pyplot.savefig')
    def test_plot_without_history(self, mock_savefig):
        reporter = PerformanceReporter(output_dir=self.test_dir)
        reporter.plot_likelihood_trace()
        mock_savefig.assert_not_called()

    def test_unsupported_report_format(self):
        reporter = PerformanceReporter(output_dir=self.test_dir)
        with self.assertRaises(ValueError):
            reporter.generate_report(report_format="xml")


if __name__ == '__main__':
    unittest.main()
