from typing import Dict, Tuple, List, Sequence, Union
from dataclasses import dataclass
from enum import Enum
import numpy as np

DEFAULT_SAMPLE_RATE = 44_100


@dataclass(frozen=True, eq=False)
class Signal:
    """Immutable mono waveform: a sample sequence with a known sample rate."""
    samples: np.ndarray
    sample_rate: int = DEFAULT_SAMPLE_RATE

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float64).reshape(-1)
        samples.setflags(write=False)
        object.__setattr__(self, 'samples', samples)
        object.__setattr__(self, 'sample_rate', int(self.sample_rate))
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")

    @classmethod
    def zeros(cls, n_samples: int, sample_rate: int = DEFAULT_SAMPLE_RATE) -> 'Signal':
        """Silent signal of the given length."""
        return cls(np.zeros(n_samples), sample_rate)

    @property
    def n_samples(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return self.n_samples / self.sample_rate

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.samples)))

    def __len__(self) -> int:
        return self.n_samples


class FitnessDirection(Enum):
    """Whether lower or higher scores are better for a run."""
    MINIMIZE = 'minimize'
    MAXIMIZE = 'maximize'

    @property
    def worst(self) -> float:
        """Worst possible score, assigned to failed evaluations."""
        return float('inf') if self is FitnessDirection.MINIMIZE else float('-inf')

    def key(self, scores):
        """Map scores onto a lower-is-better scale for sorting."""
        return scores if self is FitnessDirection.MINIMIZE else -scores

    def is_better(self, candidate: float, incumbent: float) -> bool:
        """Strict improvement test."""
        if self is FitnessDirection.MINIMIZE:
            return candidate < incumbent
        return candidate > incumbent

    def reached(self, score: float, target: float) -> bool:
        """Whether a score meets a target threshold."""
        if self is FitnessDirection.MINIMIZE:
            return score <= target
        return score >= target


@dataclass
class FeatureWeights:
    """Weighted feature set for feature-distance fitness."""
    # Spectral features
    spectral_centroid: float = 0.0
    spectral_bandwidth: float = 0.0
    spectral_rolloff: float = 0.0
    spectral_flatness: float = 0.0

    # Temporal features
    zero_crossing_rate: float = 0.0
    rms_energy: float = 0.0

    # Cepstral features
    mfcc_mean: float = 0.0

    def get_active_features(self) -> Dict[str, float]:
        """Return only features with non-zero weights."""
        return {k: v for k, v in self.__dict__.items() if v != 0.0}


@dataclass
class ScalarFeatures:
    """Scalar feature values extracted from a waveform."""
    spectral_centroid: float = 0.0
    spectral_bandwidth: float = 0.0
    spectral_rolloff: float = 0.0
    spectral_flatness: float = 0.0
    zero_crossing_rate: float = 0.0
    rms_energy: float = 0.0
    mfcc_mean: float = 0.0


# Type aliases
Genome = np.ndarray  # 1-D float64 gene vector
GeneBounds = List[Tuple[float, float]]  # per-gene (min, max)
ParameterConstraintSet = Dict[str, Tuple[float, float]]  # param name -> (min, max)
SynthParameters = Dict[str, float]  # param name -> value
BoundsSpec = Union[Sequence[Tuple[float, float]], ParameterConstraintSet]
