import json
import logging
import os
from typing import Optional, List

try:
    from pydantic import BaseModel, Field, field_validator
    import torch  # Needed for device check validator
except ImportError:
    logging.error("Pydantic library not found. Please install it: pip install pydantic")
    raise ImportError("Pydantic is required but not installed. Please run: pip install pydantic")


class DataConfig(BaseModel):
    gl_file: Optional[str] = None  # Tab-separated genotype likelihoods (may be gzipped)
    legend_file: Optional[str] = None  # Impute2 style legend of the reference panel
    ref_haps_file: Optional[str] = None  # Impute2 style haplotypes of the reference panel


class SamplerConfig(BaseModel):
    estimator: int = 0  # 0 MH, 1 EMC, 2 AMH sample/sample, 3 AMH sample/haplotype
    burnin: int = 56
    sampling: int = 200
    fold: int = 2  # cycles per individual = fold * individuals when cycles is 0
    cycles: int = 0
    parallel_chains: int = 5
    max_temperature: Optional[float] = None  # Defaults to parallel_chains
    selection_temperature: float = 10000.0
    mutation_rate: float = 0.3
    kickstart: bool = False  # First MH step proposes reference haplotypes only

    @field_validator('estimator')
    @classmethod
    def check_estimator(cls, v: int) -> int:
        if v not in [0, 1, 2, 3]:
            raise ValueError(f"Invalid estimator: {v}. Must be one of [0, 1, 2, 3]")
        return v

    @field_validator('parallel_chains')
    @classmethod
    def check_parallel_chains(cls, v: int) -> int:
        if v < 2:
            raise ValueError("parallel_chains must be at least 2")
        return v

    @field_validator('mutation_rate')
    @classmethod
    def check_mutation_rate(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("mutation_rate must be between 0 and 1")
        return v

    @field_validator('burnin', 'sampling', 'fold', 'cycles')
    @classmethod
    def check_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Generation and cycle counts must be non-negative")
        return v

    @field_validator('max_temperature', 'selection_temperature')
    @classmethod
    def check_positive_temperature(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("Temperatures must be positive")
        return v


class ModelConfig(BaseModel):
    copy_error_rate: float = 0.01  # Probability that a copied allele differs from its parent
    recombination_rate: float = 1e-6  # Per base pair switch rate between parents

    @field_validator('copy_error_rate')
    @classmethod
    def check_copy_error_rate(cls, v: float) -> float:
        if not 0.0 < v < 0.5:
            raise ValueError("copy_error_rate must be in (0, 0.5)")
        return v


class OutputConfig(BaseModel):
    output_dir: str = "output"
    base_filename: str = "haplomc"
    trace_log: Optional[str] = None  # Tab-delimited proposal trace, gzipped if it ends in .gz
    relationship_graph_file: Optional[str] = None
    report_formats: List[str] = ["json", "txt"]
    plot_filename: Optional[str] = "likelihood_trace.png"


class HaploMCConfig(BaseModel):
    """
    Configuration of a phasing run.
    Loads configuration from a file or uses default values.
    """
    seed: int = 42
    device: str = "cpu"  # Device for the likelihood model ('cuda' or 'cpu')
    data: DataConfig = Field(default_factory=DataConfig)
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def __init__(self, config_path: Optional[str] = None, **data):
        """
        Initializes the configuration.
        """
        loaded_data = {}
        if config_path:
            try:
                with open(config_path, 'r') as f:
                    loaded_data = json.load(f)
                logging.info(f"Loaded configuration from: {config_path}")
            except FileNotFoundError:
                logging.warning(f"Config file not found at {config_path}. Using defaults.")

        # Merge loaded data with keyword arguments (kwargs override file data)
        merged_data = {**loaded_data, **data}
        super().__init__(**merged_data)

    @field_validator('device')
    @classmethod
    def check_device(cls, v: str) -> str:
        if v not in ['cpu', 'cuda']:
            raise ValueError("Device must be 'cpu' or 'cuda'")
        if v == 'cuda' and not torch.cuda.is_available():
            logging.warning("Config specified 'cuda' but CUDA is not available. Falling back to 'cpu'.")
            return 'cpu'
        return v

    @field_validator('data')
    @classmethod
    def check_reference_panel(cls, data_config: DataConfig) -> DataConfig:
        if bool(data_config.legend_file) != bool(data_config.ref_haps_file):
            raise ValueError("legend_file and ref_haps_file must be given together")
        return data_config

    def cycles_for(self, num_individuals: int) -> int:
        """Metropolis steps per individual and generation."""
        if self.sampler.cycles > 0:
            return self.sampler.cycles
        return self.sampler.fold * num_individuals

    def save(self, filepath):
        """Saves the current configuration to a JSON file."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            f.write(self.model_dump_json(indent=4))
        logging.info(f"Configuration saved to: {filepath}")
