"""
Pytest configuration and shared fixtures for ga_synth testing.

Provides:
- Target waveforms
- Small deterministic synthesizers (constant level, oscillator)
- Failing and non-finite synthesizer doubles
- Fast run configurations
"""

import pytest
import numpy as np

from ga_synth.config import EvolutionConfig
from ga_synth.genome import GenomeSpace
from ga_synth.interfaces import Signal
from ga_synth.synthesis import CallableSynthesizer, OscillatorSynthesizer


TEST_SAMPLE_RATE = 8000
TARGET_LENGTH = 100


# =============================================================================
# Targets
# =============================================================================

@pytest.fixture
def zero_target():
    """Constant-zero target of 100 samples."""
    return Signal.zeros(TARGET_LENGTH, TEST_SAMPLE_RATE)


@pytest.fixture
def sine_target():
    """Quarter second of a 440Hz sine."""
    t = np.arange(TEST_SAMPLE_RATE // 4) / TEST_SAMPLE_RATE
    return Signal(0.5 * np.sin(2 * np.pi * 440.0 * t), TEST_SAMPLE_RATE)


# =============================================================================
# Synthesizers
# =============================================================================

def render_constant(genome):
    """Waveform whose every sample equals the first gene."""
    return np.full(TARGET_LENGTH, float(genome[0]))


def render_level_sum(genome):
    """Waveform whose level is the sum of all genes."""
    return np.full(TARGET_LENGTH, float(np.sum(genome)))


@pytest.fixture
def constant_synth():
    """One-gene synthesizer: gene value -> constant waveform (zero at gene 0)."""
    return CallableSynthesizer(render_constant, sample_rate=TEST_SAMPLE_RATE)


@pytest.fixture
def level_synth():
    """Multi-gene synthesizer rendering the sum of its genes as a constant level."""
    return CallableSynthesizer(render_level_sum, sample_rate=TEST_SAMPLE_RATE)


@pytest.fixture
def failing_synth():
    """Synthesizer that always raises."""
    def render(genome):
        raise RuntimeError("synth engine crashed")
    return CallableSynthesizer(render, sample_rate=TEST_SAMPLE_RATE)


@pytest.fixture
def nan_synth():
    """Synthesizer producing NaN samples for genes above 0.5."""
    def render(genome):
        samples = np.full(TARGET_LENGTH, float(genome[0]))
        if genome[0] > 0.5:
            samples[3] = np.nan
        return samples
    return CallableSynthesizer(render, sample_rate=TEST_SAMPLE_RATE)


@pytest.fixture
def oscillator_synth():
    """Reference oscillator synthesizer rendering a quarter second."""
    return OscillatorSynthesizer(duration=0.25, sample_rate=TEST_SAMPLE_RATE)


# =============================================================================
# Spaces and configs
# =============================================================================

@pytest.fixture
def unit_space():
    """Single gene in [0, 1]."""
    return GenomeSpace([(0.0, 1.0)])


@pytest.fixture
def sample_constraint_set():
    """Named constraint set with mixed ranges."""
    return {
        'freq': (20.0, 2000.0),
        'amp': (0.0, 1.0),
        'detune': (-1.0, 1.0),
        'cutoff': (100.0, 1000.0),
    }


@pytest.fixture
def fast_config():
    """Small, seeded, sequential configuration."""
    return EvolutionConfig(
        population_size=10,
        max_generations=5,
        mutation_rate=0.3,
        seed=7,
        max_workers=2,
    )
