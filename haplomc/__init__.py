from .runner import HaploMCRunner
from .config import HaploMCConfig
from .estimation import EstimationLoop, EstimatorKind
from .samplers import MCMCSolver, EMCSolver, annealing_penalty
from .chains import EMCChain, roulette_wheel_select
from .relationship_graph import RelationshipGraph, GraphKind

__all__ = [
    'HaploMCRunner',
    'HaploMCConfig',
    'EstimationLoop',
    'EstimatorKind',
    'MCMCSolver',
    'EMCSolver',
    'annealing_penalty',
    'EMCChain',
    'roulette_wheel_select',
    'RelationshipGraph',
    'GraphKind',
]
