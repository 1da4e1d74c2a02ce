"""
Fitness evaluation: comparing a rendered waveform with the target.

Waveforms are aligned by sample index. When lengths differ the shorter one
is zero-padded to the longer one; nothing is ever truncated. The distance
itself is a pluggable ``IFitnessMetric``. A waveform that cannot be scored
(non-finite samples, mismatched sample rate, non-finite distance) gets the
worst possible score for the run's direction.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple, Union
import logging
import math

import numpy as np

from .errors import ConfigurationError, EvaluationFailure
from .feature_extractor import IFeatureExtractor, LibrosaFeatureExtractor
from .interfaces import FeatureWeights, FitnessDirection, Signal

logger = logging.getLogger(__name__)

DEFAULT_SPECTRUM_WINDOW = 16_384
DEFAULT_SIGMOID_SCALE = 1.0


def align(waveform: np.ndarray, target: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Zero-pad the shorter of two sample arrays to the length of the longer."""
    n = max(len(waveform), len(target))
    if len(waveform) < n:
        waveform = np.pad(waveform, (0, n - len(waveform)))
    if len(target) < n:
        target = np.pad(target, (0, n - len(target)))
    return waveform, target


def fit_length(samples: np.ndarray, n: int) -> np.ndarray:
    """Truncate or zero-pad to exactly ``n`` samples."""
    if len(samples) >= n:
        return samples[:n]
    return np.pad(samples, (0, n - len(samples)))


class IFitnessMetric(ABC):
    """Distance between a waveform and the target. Lower is closer."""

    def prepare(self, target: Signal) -> None:
        """Precompute anything that only depends on the target."""

    @abstractmethod
    def distance(self, waveform: np.ndarray, target: np.ndarray, sample_rate: int) -> float:
        """Distance between two aligned sample arrays of equal length."""
        pass


class SquaredErrorMetric(IFitnessMetric):
    """Sum of squared sample differences, optionally divided by target energy."""

    def __init__(self, normalize: bool = False):
        self.normalize = normalize

    def distance(self, waveform, target, sample_rate):
        error = float(np.sum((waveform - target) ** 2))
        if self.normalize:
            energy = float(np.sum(target ** 2))
            if energy > 0.0:
                error /= energy
        return error


class EuclideanMetric(IFitnessMetric):
    """Time-domain Euclidean distance."""

    def distance(self, waveform, target, sample_rate):
        return float(np.sqrt(np.sum((waveform - target) ** 2)))


class SpectralMSEMetric(IFitnessMetric):
    """
    Mean squared error between magnitude spectra.

    Both signals are cut or zero-padded to a fixed analysis window before
    the FFT, and each spectrum is shifted so its minimum is zero.
    """

    def __init__(self, window: int = DEFAULT_SPECTRUM_WINDOW):
        if window <= 0:
            raise ConfigurationError(f"Spectrum window must be positive, got {window}")
        self.window = window
        self._target_spectrum = None

    def spectrum(self, samples: np.ndarray) -> np.ndarray:
        magnitudes = np.abs(np.fft.rfft(fit_length(samples, self.window)))
        return magnitudes - magnitudes.min()

    def prepare(self, target: Signal) -> None:
        self._target_spectrum = self.spectrum(target.samples)

    def distance(self, waveform, target, sample_rate):
        # alignment padding past the window does not change the spectrum
        target_spectrum = self._target_spectrum
        if target_spectrum is None:
            target_spectrum = self.spectrum(target)
        return float(np.mean((self.spectrum(waveform) - target_spectrum) ** 2))


class FeatureDistanceMetric(IFitnessMetric):
    """Weighted RMS distance between scalar audio features."""

    def __init__(self, feature_weights: Optional[FeatureWeights] = None,
                 feature_extractor: Optional[IFeatureExtractor] = None):
        self.feature_weights = feature_weights or FeatureWeights(
            spectral_centroid=1.0, rms_energy=1.0, zero_crossing_rate=1.0)
        if not self.feature_weights.get_active_features():
            raise ConfigurationError("At least one feature weight must be non-zero")
        self.feature_extractor = feature_extractor or LibrosaFeatureExtractor()
        self._target_features = None

    def prepare(self, target: Signal) -> None:
        self._target_features = self.feature_extractor.extract_scalar_features(target, self.feature_weights)

    def distance(self, waveform, target, sample_rate):
        target_features = self._target_features
        if target_features is None:
            target_features = self.feature_extractor.extract_scalar_features(
                Signal(target, sample_rate), self.feature_weights)
        actual = self.feature_extractor.extract_scalar_features(Signal(waveform, sample_rate), self.feature_weights)
        return self.feature_extractor.compute_feature_distance(target_features, actual, self.feature_weights)


FITNESS_METRICS = {
    'squared_error': SquaredErrorMetric,
    'euclidean': EuclideanMetric,
    'spectral_mse': SpectralMSEMetric,
    'feature_distance': FeatureDistanceMetric,
}

FITNESS_SCALINGS = ('sigmoid',)


def create_metric(name: str, **kwargs) -> IFitnessMetric:
    """Build a fitness metric by name."""
    if name not in FITNESS_METRICS:
        raise ConfigurationError(f"Unknown fitness metric '{name}', expected one of {sorted(FITNESS_METRICS)}")
    return FITNESS_METRICS[name](**kwargs)


def sigmoid_fitness(distance: float, scale: float = DEFAULT_SIGMOID_SCALE) -> float:
    """Map a distance onto (0, 1], higher is better: ``2 * sigmoid(-cost)``."""
    if not math.isfinite(distance):
        return 0.0
    cost = (distance / scale) ** (1.0 / math.log(10.0))
    if cost > 700.0:
        return 0.0
    return 2.0 / (1.0 + math.exp(cost))


class FitnessEvaluator:
    """
    Scores waveforms against a fixed target.

    Also holds the genome -> score cache. Entries written during one
    generation stay available for the next one, so genomes carried over by
    elitism, and unchanged copies of parents, are not rendered again.
    Failed evaluations are never cached.
    """

    def __init__(self, target: Signal,
                 metric: Union[str, IFitnessMetric] = 'squared_error',
                 scaling: Optional[str] = None,
                 scale: float = DEFAULT_SIGMOID_SCALE,
                 cache_enabled: bool = True):
        """
        Args:
            target: Reference waveform, read-only for the whole run
            metric: Metric name or instance
            scaling: None for raw distances (minimize) or 'sigmoid' (maximize)
            scale: Distance scale used by the sigmoid mapping
            cache_enabled: Disable for non-deterministic synthesizers

        Raises:
            ConfigurationError: If the target or options are invalid
        """
        if not isinstance(target, Signal):
            raise ConfigurationError("Target must be a Signal")
        if target.n_samples == 0:
            raise ConfigurationError("Target waveform cannot be empty")
        if not target.is_finite():
            raise ConfigurationError("Target waveform contains non-finite samples")
        if scaling is not None and scaling not in FITNESS_SCALINGS:
            raise ConfigurationError(f"Unknown fitness scaling '{scaling}'")
        if scale <= 0:
            raise ConfigurationError(f"Fitness scale must be positive, got {scale}")

        self.target = target
        self.metric = create_metric(metric) if isinstance(metric, str) else metric
        self.scaling = scaling
        self.scale = scale
        self.direction = FitnessDirection.MAXIMIZE if scaling else FitnessDirection.MINIMIZE
        self.cache_enabled = cache_enabled

        self._current: Dict[bytes, float] = {}
        self._previous: Dict[bytes, float] = {}
        self.cache_hits = 0

        self.metric.prepare(target)

    @property
    def worst(self) -> float:
        return self.direction.worst

    def score(self, waveform: Signal) -> float:
        """
        Score a waveform.

        Raises:
            EvaluationFailure: If the waveform cannot be scored
        """
        if not isinstance(waveform, Signal):
            raise EvaluationFailure(f"Renderer returned {type(waveform).__name__}, expected Signal")
        if waveform.sample_rate != self.target.sample_rate:
            raise EvaluationFailure(
                f"Sample rate {waveform.sample_rate} doesn't match target {self.target.sample_rate}")
        if not waveform.is_finite():
            raise EvaluationFailure("Rendered waveform contains non-finite samples")

        rendered, target = align(waveform.samples, self.target.samples)
        try:
            with np.errstate(over='ignore', invalid='ignore'):
                distance = self.metric.distance(rendered, target, self.target.sample_rate)
        except Exception as e:
            raise EvaluationFailure(f"Metric failed: {type(e).__name__}: {e}") from e

        if not math.isfinite(distance):
            raise EvaluationFailure(f"Metric produced non-finite distance {distance}")

        if self.scaling == 'sigmoid':
            return sigmoid_fitness(distance, self.scale)
        return float(distance)

    def evaluate(self, waveform: Signal) -> float:
        """Score a waveform, mapping any failure to the worst score."""
        try:
            return self.score(waveform)
        except EvaluationFailure as e:
            logger.warning(f"Waveform assigned worst score: {e}")
            return self.worst

    # Cache

    @staticmethod
    def _key(genome: np.ndarray) -> bytes:
        return np.ascontiguousarray(genome, dtype=np.float64).tobytes()

    def lookup(self, genome: np.ndarray) -> Optional[float]:
        if not self.cache_enabled:
            return None
        key = self._key(genome)
        if key in self._current:
            self.cache_hits += 1
            return self._current[key]
        if key in self._previous:
            self.cache_hits += 1
            self._current[key] = self._previous[key]
            return self._current[key]
        return None

    def store(self, genome: np.ndarray, score: float) -> None:
        if self.cache_enabled:
            self._current[self._key(genome)] = score

    def advance_generation(self) -> None:
        """Drop entries older than the generation that just finished."""
        self._previous = self._current
        self._current = {}

    def clear_cache(self) -> None:
        self._current = {}
        self._previous = {}
