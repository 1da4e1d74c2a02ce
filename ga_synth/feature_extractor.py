from abc import ABC, abstractmethod
import numpy as np
import librosa
import logging

from .interfaces import FeatureWeights, ScalarFeatures, Signal

logger = logging.getLogger(__name__)


class IFeatureExtractor(ABC):
    """Interface for waveform feature extraction."""

    @abstractmethod
    def extract_scalar_features(self, signal: Signal,
                                feature_weights: FeatureWeights) -> ScalarFeatures:
        """Extract scalar features from a waveform."""
        pass

    @abstractmethod
    def compute_feature_distance(self, target_features: ScalarFeatures,
                                 actual_features: ScalarFeatures,
                                 feature_weights: FeatureWeights) -> float:
        """Compute weighted distance between feature sets."""
        pass


class LibrosaFeatureExtractor(IFeatureExtractor):
    """Librosa-based feature extraction for in-memory waveforms.

    Only features with non-zero weights are computed. The FFT size shrinks
    to fit short signals so that frame-based features stay defined.
    """

    def __init__(self, n_fft: int = 2048, hop_length: int = 512):
        """Initialize feature extractor.

        Args:
            n_fft: Maximum FFT size for spectral analysis
            hop_length: Hop length for spectral analysis
        """
        self.n_fft = n_fft
        self.hop_length = hop_length

    def _frame_sizes(self, n_samples: int):
        n_fft = self.n_fft
        while n_fft > n_samples and n_fft > 16:
            n_fft //= 2
        hop_length = min(self.hop_length, max(1, n_fft // 4))
        return n_fft, hop_length

    def extract_scalar_features(self, signal: Signal,
                                feature_weights: FeatureWeights) -> ScalarFeatures:
        """Extract scalar features from a waveform.

        Args:
            signal: Waveform to analyse
            feature_weights: Weights for each feature type

        Returns:
            ScalarFeatures object containing extracted feature values

        Raises:
            ValueError: If the waveform is empty or feature extraction fails
        """
        if signal.n_samples == 0:
            raise ValueError("Cannot extract features from an empty signal")

        y = np.ascontiguousarray(signal.samples, dtype=np.float32)
        sr = signal.sample_rate
        n_fft, hop_length = self._frame_sizes(len(y))

        features = ScalarFeatures()
        active_features = feature_weights.get_active_features()

        if not active_features:
            logger.warning("No active features specified, returning zero features")
            return features

        try:
            # Spectral features
            if 'spectral_centroid' in active_features:
                centroid = librosa.feature.spectral_centroid(y=y, sr=sr, n_fft=n_fft, hop_length=hop_length)
                features.spectral_centroid = float(np.mean(centroid))

            if 'spectral_bandwidth' in active_features:
                bandwidth = librosa.feature.spectral_bandwidth(y=y, sr=sr, n_fft=n_fft, hop_length=hop_length)
                features.spectral_bandwidth = float(np.mean(bandwidth))

            if 'spectral_rolloff' in active_features:
                rolloff = librosa.feature.spectral_rolloff(y=y, sr=sr, n_fft=n_fft, hop_length=hop_length)
                features.spectral_rolloff = float(np.mean(rolloff))

            if 'spectral_flatness' in active_features:
                flatness = librosa.feature.spectral_flatness(y=y, n_fft=n_fft, hop_length=hop_length)
                features.spectral_flatness = float(np.mean(flatness))

            # Temporal features
            if 'zero_crossing_rate' in active_features:
                zcr = librosa.feature.zero_crossing_rate(y, frame_length=n_fft, hop_length=hop_length)
                features.zero_crossing_rate = float(np.mean(zcr))

            if 'rms_energy' in active_features:
                rms = librosa.feature.rms(y=y, frame_length=n_fft, hop_length=hop_length)
                features.rms_energy = float(np.mean(rms))

            # Cepstral features
            if 'mfcc_mean' in active_features:
                mfccs = librosa.feature.mfcc(y=y, sr=sr, n_mfcc=1, n_fft=n_fft, hop_length=hop_length)
                features.mfcc_mean = float(np.mean(mfccs[0]))  # First coefficient only

        except Exception as e:
            logger.error(f"Error extracting features: {str(e)}")
            raise ValueError(f"Feature extraction failed: {str(e)}") from e

        logger.debug(f"Extracted {len(active_features)} features from {signal.n_samples} samples")
        return features

    def compute_feature_distance(self, target_features: ScalarFeatures,
                                 actual_features: ScalarFeatures,
                                 feature_weights: FeatureWeights) -> float:
        """Compute weighted root-mean-square distance between feature sets.

        Only features with non-zero weights contribute to the distance.
        """
        active_weights = feature_weights.get_active_features()

        if not active_weights:
            logger.warning("No active features for distance calculation")
            return 0.0

        total_distance = 0.0
        total_weight = 0.0

        target_dict = target_features.__dict__
        actual_dict = actual_features.__dict__

        for feature_name, weight in active_weights.items():
            diff = (target_dict[feature_name] - actual_dict[feature_name]) ** 2
            total_distance += weight * diff
            total_weight += weight

        if total_weight == 0.0:
            return 0.0

        return float(np.sqrt(total_distance / total_weight))
