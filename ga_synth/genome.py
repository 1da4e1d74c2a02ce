"""
Genome search space and population initialization.

A genome is a float64 vector with one gene per synthesizer parameter. Gene
count and per-gene bounds are fixed by the ``GenomeSpace`` for the whole run.
"""

from collections.abc import Mapping
from typing import List, Optional, Union
import logging
import math

import numpy as np

from .errors import ConfigurationError
from .interfaces import BoundsSpec, FitnessDirection, GeneBounds, SynthParameters
from .population import Population

logger = logging.getLogger(__name__)


def validate_bounds(bounds) -> GeneBounds:
    """
    Check a sequence of (min, max) pairs and return it as floats.

    Raises:
        ConfigurationError: If bounds are empty, malformed, non-finite,
            or any bound has min > max
    """
    if bounds is None or len(bounds) == 0:
        raise ConfigurationError("Gene bounds cannot be empty")

    validated = []
    for i, bound in enumerate(bounds):
        try:
            low, high = bound
            low, high = float(low), float(high)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Bound {i} must be a (min, max) pair, got {bound!r}")

        if not (math.isfinite(low) and math.isfinite(high)):
            raise ConfigurationError(f"Bound {i} must be finite, got ({low}, {high})")
        if low > high:
            raise ConfigurationError(f"Invalid bound {i}: min {low} > max {high}")
        validated.append((low, high))

    return validated


class GenomeSpace:
    """Bounds and names of the genes searched in a run."""

    def __init__(self, bounds: BoundsSpec):
        """
        Args:
            bounds: Either a sequence of (min, max) pairs or a mapping
                from parameter name to (min, max)

        Raises:
            ConfigurationError: If the bounds are invalid
        """
        if isinstance(bounds, Mapping):
            names = [str(name) for name in bounds.keys()]
            pairs = list(bounds.values())
        else:
            pairs = list(bounds) if bounds is not None else []
            names = [f"gene_{i}" for i in range(len(pairs))]

        pairs = validate_bounds(pairs)
        self.names: List[str] = names
        self.bounds: GeneBounds = pairs
        self.xl = np.array([low for low, _ in pairs])
        self.xu = np.array([high for _, high in pairs])
        self.xl.setflags(write=False)
        self.xu.setflags(write=False)

    @property
    def n_genes(self) -> int:
        return len(self.bounds)

    def __len__(self) -> int:
        return self.n_genes

    @property
    def span(self) -> np.ndarray:
        return self.xu - self.xl

    def random_genomes(self, count: int, rng: np.random.Generator) -> np.ndarray:
        """Sample ``count`` genomes uniformly within bounds."""
        return rng.uniform(self.xl, self.xu, size=(count, self.n_genes))

    def clamp(self, genome: np.ndarray) -> np.ndarray:
        return np.clip(genome, self.xl, self.xu)

    def contains(self, genome: np.ndarray) -> bool:
        genome = np.asarray(genome, dtype=np.float64)
        return genome.shape == (self.n_genes,) and bool(np.all((genome >= self.xl) & (genome <= self.xu)))

    def genome_to_parameters(self, genome: np.ndarray) -> SynthParameters:
        """
        Convert a genome to a named parameter dictionary.

        Raises:
            ValueError: If the genome has the wrong number of genes
        """
        if len(genome) != self.n_genes:
            raise ValueError(f"Genome size {len(genome)} doesn't match expected {self.n_genes}")
        return {name: float(value) for name, value in zip(self.names, genome)}

    def parameters_to_genome(self, params: SynthParameters) -> np.ndarray:
        """Convert a named parameter dictionary to a genome.

        Missing parameters fall back to the midpoint of their bound.
        """
        genome = np.zeros(self.n_genes)
        for i, name in enumerate(self.names):
            if name not in params:
                low, high = self.bounds[i]
                genome[i] = (low + high) / 2.0
                logger.warning(f"Parameter {name} not found, using midpoint {genome[i]}")
            else:
                genome[i] = params[name]
        return self.clamp(genome)

    def __repr__(self) -> str:
        return f"GenomeSpace(n_genes={self.n_genes}, names={self.names})"


def initialize_population(bounds: Union[BoundsSpec, GenomeSpace],
                          count: int,
                          rng: Optional[Union[np.random.Generator, int]] = None,
                          direction: FitnessDirection = FitnessDirection.MINIMIZE) -> Population:
    """
    Build a population of ``count`` genomes sampled uniformly within bounds.

    Args:
        bounds: GenomeSpace, (min, max) pairs, or name -> (min, max) mapping
        count: Population size N
        rng: Random generator or seed
        direction: Fitness direction for the population

    Raises:
        ConfigurationError: If bounds are invalid or count <= 0
    """
    space = bounds if isinstance(bounds, GenomeSpace) else GenomeSpace(bounds)

    if isinstance(count, bool) or not isinstance(count, (int, np.integer)) or count <= 0:
        raise ConfigurationError(f"Population size must be a positive integer, got {count!r}")

    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)

    population = Population(space.random_genomes(int(count), rng), direction)
    logger.debug(f"Initialized population of {count} genomes with {space.n_genes} genes")
    return population
