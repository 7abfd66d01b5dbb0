import os
import json
import logging
from typing import Dict, Any

# Attempt to import matplotlib, but make it optional
try:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    MATPLOTLIB_AVAILABLE = True
except ImportError:
    MATPLOTLIB_AVAILABLE = False
    logging.warning("matplotlib not found. Plotting functionality will be disabled.")


class PerformanceReporter:
    """
    Writes run diagnostics (per-generation history, run summary) as JSON or
    text reports and plots the likelihood trace.
    """
    SUPPORTED_FORMATS = ["json", "txt"]

    def __init__(self, output_dir: str):
        """
        Args:
            output_dir (str): The directory where reports and plots will be saved.
        """
        if not isinstance(output_dir, str):
            raise TypeError("output_dir must be a string.")

        self.output_dir = output_dir
        self.metrics_log: Dict[str, Any] = {}
        os.makedirs(self.output_dir, exist_ok=True)

    def log_metric(self, key: str, value: Any):
        """
        Logs a metric or a set of metrics.

        Args:
            key (str): Identifier (e.g. 'summary', 'history').
            value (Any): Single value, dict or list.
        """
        if not isinstance(key, str):
            raise TypeError("Metric key must be a string.")
        self.metrics_log[key] = value
        logging.debug(f"Logged metric '{key}': {value}")

    def generate_report(self, report_format: str = "json", report_filename: str = "performance_report"):
        """
        Writes the logged metrics to ``<output_dir>/<report_filename>.<report_format>``.

        Returns:
            str: Path of the written report.
        """
        if report_format not in self.SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported report format: '{report_format}'. Supported formats: {self.SUPPORTED_FORMATS}")

        base_filename, _ = os.path.splitext(report_filename)
        filepath = os.path.join(self.output_dir, f"{base_filename}.{report_format}")

        with open(filepath, 'w') as f:
            if report_format == "json":
                json.dump(self.metrics_log, f, indent=4)
            else:
                for key, value in self.metrics_log.items():
                    f.write(f"--- {key} ---\n")
                    if isinstance(value, dict):
                        for sub_key, sub_value in value.items():
                            f.write(f"  {sub_key}: {sub_value}\n")
                    elif isinstance(value, list):
                        for i, item in enumerate(value):
                            f.write(f"  Item {i}: {item}\n")
                    else:
                        f.write(f"  {value}\n")
                    f.write("\n")
        logging.info(f"Performance report saved to: {filepath}")
        return filepath

    def plot_likelihood_trace(self, plot_filename: str = "likelihood_trace.png"):
        """
        Plots the normalized likelihood and the annealing penalty per generation
        from the logged 'history' list.
        """
        if not MATPLOTLIB_AVAILABLE:
            logging.warning("Cannot plot likelihood trace: matplotlib is not installed.")
            return

        history = self.metrics_log.get("history")
        if not isinstance(history, list) or not history:
            logging.warning("No 'history' list found in metrics log. Cannot plot likelihood trace.")
            return

        generations = [record["generation"] for record in history]
        likelihoods = [record["likelihood"] for record in history]
        penalties = [record["penalty"] for record in history]
        filepath = os.path.join(self.output_dir, plot_filename)

        plt.figure(figsize=(10, 6))
        plt.plot(generations, likelihoods, label='Mean log likelihood per site')
        plt.plot(generations, penalties, label='Penalty', linestyle='--')
        plt.xlabel("Generation")
        plt.ylabel("Value")
        plt.title("Likelihood trace")
        plt.legend()
        plt.grid(True)
        plt.savefig(filepath)
        plt.close()
        logging.info(f"Likelihood trace plot saved to: {filepath}")
