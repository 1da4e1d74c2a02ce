"""
Synthesis adapters: the seam between the GA and the sound engine.

The GA only knows ``ISynthesizer.render(genome) -> Signal``. Real engines are
injected by the caller; ``OscillatorSynthesizer`` and ``HarmonicSynthesizer``
are small reference implementations used by the examples and tests.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union
import logging
import math

import numpy as np

from .interfaces import DEFAULT_SAMPLE_RATE, ParameterConstraintSet, Signal

logger = logging.getLogger(__name__)

MIN_FREQ = 20.0
MAX_FREQ = 10_000.0
MIN_AMP = 0.0
MAX_AMP = 1.0
MIN_PHASE = 0.0
MAX_PHASE = 2.0 * math.pi
DEFAULT_DURATION = 1.0


class ISynthesizer(ABC):
    """Interface for rendering a genome into a waveform."""

    #: Same genome always renders the same waveform. Fitness caching
    #: is only enabled for deterministic synthesizers.
    deterministic: bool = True

    @abstractmethod
    def render(self, genome: np.ndarray) -> Signal:
        """Render one genome. May raise; the caller treats that as a failed evaluation."""
        pass


class CallableSynthesizer(ISynthesizer):
    """Adapter for a plain render function.

    The function may return a ``Signal`` or a bare sample array, in which
    case ``sample_rate`` is attached.
    """

    def __init__(self, render_fn: Callable[[np.ndarray], Union[Signal, np.ndarray]],
                 sample_rate: int = DEFAULT_SAMPLE_RATE,
                 deterministic: bool = True):
        self.render_fn = render_fn
        self.sample_rate = sample_rate
        self.deterministic = deterministic

    def render(self, genome: np.ndarray) -> Signal:
        result = self.render_fn(genome)
        if isinstance(result, Signal):
            return result
        return Signal(result, self.sample_rate)


def sine_wave(freq: float, n_samples: int, sample_rate: int,
              amplitude: float, phase: float) -> np.ndarray:
    t = np.arange(n_samples) / sample_rate
    return amplitude * np.sin(2.0 * math.pi * freq * t + phase)


def square_wave(freq: float, n_samples: int, sample_rate: int,
                amplitude: float, phase: float) -> np.ndarray:
    samples_cycle = sample_rate / freq
    shift = samples_cycle / (2.0 * math.pi) * phase
    position = (np.arange(n_samples) + shift) % samples_cycle
    return amplitude * np.where(position < samples_cycle / 2.0, 1.0, -1.0)


def saw_wave(freq: float, n_samples: int, sample_rate: int,
             amplitude: float, phase: float) -> np.ndarray:
    shift = sample_rate / (freq * 2.0 * math.pi) * phase
    t = (np.arange(n_samples) + shift) / sample_rate
    return amplitude * (freq * (t % (1.0 / freq)) * 2.0 - 1.0)


class OscillatorSynthesizer(ISynthesizer):
    """
    Sum of a sine, a square and a saw oscillator sharing one frequency.

    Genome layout (7 genes): frequency, then (amplitude, phase) for the
    sine, square and saw oscillators in that order.
    """

    GENE_NAMES = ['freq', 'sine_amp', 'sine_phase', 'square_amp',
                  'square_phase', 'saw_amp', 'saw_phase']

    def __init__(self, duration: float = DEFAULT_DURATION,
                 sample_rate: int = DEFAULT_SAMPLE_RATE):
        self.duration = duration
        self.sample_rate = sample_rate
        self.n_samples = int(duration * sample_rate)

    @classmethod
    def constraint_set(cls) -> ParameterConstraintSet:
        """Full valid range for every gene."""
        return {
            'freq': (MIN_FREQ, MAX_FREQ),
            'sine_amp': (MIN_AMP, MAX_AMP),
            'sine_phase': (MIN_PHASE, MAX_PHASE),
            'square_amp': (MIN_AMP, MAX_AMP),
            'square_phase': (MIN_PHASE, MAX_PHASE),
            'saw_amp': (MIN_AMP, MAX_AMP),
            'saw_phase': (MIN_PHASE, MAX_PHASE),
        }

    def render(self, genome: np.ndarray) -> Signal:
        if len(genome) != len(self.GENE_NAMES):
            raise ValueError(f"Oscillator genome needs {len(self.GENE_NAMES)} genes, got {len(genome)}")

        freq, sine_amp, sine_phase, square_amp, square_phase, saw_amp, saw_phase = (float(g) for g in genome)
        if freq <= 0:
            raise ValueError(f"Frequency must be positive, got {freq}")

        n, sr = self.n_samples, self.sample_rate
        samples = (sine_wave(freq, n, sr, sine_amp, sine_phase)
                   + square_wave(freq, n, sr, square_amp, square_phase)
                   + saw_wave(freq, n, sr, saw_amp, saw_phase))
        return Signal(samples, sr)


class HarmonicSynthesizer(ISynthesizer):
    """
    Additive synthesis over a harmonic series.

    Genome layout: fundamental frequency followed by one amplitude per
    harmonic. Renders fail when a harmonic reaches the Nyquist frequency.
    """

    def __init__(self, n_harmonics: int = 9,
                 duration: float = DEFAULT_DURATION,
                 sample_rate: int = DEFAULT_SAMPLE_RATE,
                 max_freq: Optional[float] = None):
        if n_harmonics < 1:
            raise ValueError("At least one harmonic is required")
        self.n_harmonics = n_harmonics
        self.duration = duration
        self.sample_rate = sample_rate
        self.n_samples = int(duration * sample_rate)
        self.max_freq = max_freq if max_freq is not None else MAX_FREQ

    def constraint_set(self) -> ParameterConstraintSet:
        bounds = {'freq': (MIN_FREQ, self.max_freq)}
        for i in range(1, self.n_harmonics + 1):
            bounds[f'harmonic_{i}'] = (MIN_AMP, MAX_AMP)
        return bounds

    def render(self, genome: np.ndarray) -> Signal:
        if len(genome) != self.n_harmonics + 1:
            raise ValueError(f"Harmonic genome needs {self.n_harmonics + 1} genes, got {len(genome)}")

        fundamental = float(genome[0])
        nyquist = self.sample_rate / 2.0
        if fundamental * self.n_harmonics >= nyquist:
            raise ValueError(f"Harmonic {self.n_harmonics} of {fundamental:.1f}Hz exceeds Nyquist {nyquist:.0f}Hz")

        samples = np.zeros(self.n_samples)
        for i, amplitude in enumerate(genome[1:], start=1):
            samples += sine_wave(fundamental * i, self.n_samples, self.sample_rate, float(amplitude), 0.0)
        return Signal(samples, self.sample_rate)
