"""ga_synth: genetic search for synthesizer parameters matching a target waveform."""

from .errors import (
    GASynthError,
    ConfigurationError,
    EvaluationFailure,
    ConvergenceWarning,
)

from .interfaces import (
    Signal,
    FitnessDirection,
    FeatureWeights,
    ScalarFeatures,
    GeneBounds,
    ParameterConstraintSet,
    SynthParameters,
)

from .config import EvolutionConfig
from .genome import GenomeSpace, initialize_population, validate_bounds
from .population import Population
from .synthesis import ISynthesizer, CallableSynthesizer, OscillatorSynthesizer, HarmonicSynthesizer
from .feature_extractor import IFeatureExtractor, LibrosaFeatureExtractor
from .fitness import (
    FitnessEvaluator,
    IFitnessMetric,
    SquaredErrorMetric,
    EuclideanMetric,
    SpectralMSEMetric,
    FeatureDistanceMetric,
    create_metric,
)
from .operators import (
    TournamentSelection,
    RouletteSelection,
    BlendCrossover,
    SinglePointCrossover,
    UniformCrossover,
    GaussianMutation,
    UniformMutation,
)
from .evaluation import PopulationEvaluator
from .ga_engine import (
    EvolutionController,
    EvolutionResult,
    EvolutionState,
    GenerationRecord,
    TerminationReason,
    IGenerationCallback,
    LoggingCallback,
    ISynthEvolver,
    GeneticSynthEvolver,
)
from .hill_climbing import HillClimbingConfig, HillClimbingEvolver
from .pymoo_engine import PymooSynthEvolver

__all__ = [
    'GASynthError',
    'ConfigurationError',
    'EvaluationFailure',
    'ConvergenceWarning',
    'Signal',
    'FitnessDirection',
    'FeatureWeights',
    'ScalarFeatures',
    'GeneBounds',
    'ParameterConstraintSet',
    'SynthParameters',
    'EvolutionConfig',
    'GenomeSpace',
    'initialize_population',
    'validate_bounds',
    'Population',
    'ISynthesizer',
    'CallableSynthesizer',
    'OscillatorSynthesizer',
    'HarmonicSynthesizer',
    'IFeatureExtractor',
    'LibrosaFeatureExtractor',
    'FitnessEvaluator',
    'IFitnessMetric',
    'SquaredErrorMetric',
    'EuclideanMetric',
    'SpectralMSEMetric',
    'FeatureDistanceMetric',
    'create_metric',
    'TournamentSelection',
    'RouletteSelection',
    'BlendCrossover',
    'SinglePointCrossover',
    'UniformCrossover',
    'GaussianMutation',
    'UniformMutation',
    'PopulationEvaluator',
    'EvolutionController',
    'EvolutionResult',
    'EvolutionState',
    'GenerationRecord',
    'TerminationReason',
    'IGenerationCallback',
    'LoggingCallback',
    'ISynthEvolver',
    'GeneticSynthEvolver',
    'HillClimbingConfig',
    'HillClimbingEvolver',
    'PymooSynthEvolver',
]
