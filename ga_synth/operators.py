"""
Genetic operators: selection, crossover and mutation strategies.

Each family is a small interface with a closed set of implementations,
chosen by name through the ``*_STRATEGIES`` registries. All randomness comes
from the ``numpy.random.Generator`` passed in by the caller.
"""

from abc import ABC, abstractmethod
from typing import Tuple
import logging

import numpy as np

from .errors import ConfigurationError
from .genome import GenomeSpace
from .population import Population

logger = logging.getLogger(__name__)

ROULETTE_EPSILON = 1e-12


# =============================================================================
# Selection
# =============================================================================

class ISelection(ABC):
    """Chooses parent pairs from a fully scored population."""

    @abstractmethod
    def select_parents(self, population: Population, n: int, rng: np.random.Generator) -> np.ndarray:
        """Return ``n`` parent slot indices, drawn with replacement across calls."""
        pass

    def select_pairs(self, population: Population, n_pairs: int, rng: np.random.Generator) -> np.ndarray:
        """Return an ``(n_pairs, 2)`` array of parent slot indices."""
        return self.select_parents(population, 2 * n_pairs, rng).reshape(n_pairs, 2)


class TournamentSelection(ISelection):
    """Best of ``k`` individuals sampled uniformly without replacement."""

    def __init__(self, tournament_size: int = 3):
        if tournament_size < 1:
            raise ConfigurationError(f"Tournament size must be at least 1, got {tournament_size}")
        self.tournament_size = tournament_size

    def select_parents(self, population, n, rng):
        size = len(population)
        k = min(self.tournament_size, size)
        keys = population.direction.key(population.scores)

        winners = np.empty(n, dtype=int)
        for i in range(n):
            contestants = rng.choice(size, size=k, replace=False)
            winners[i] = contestants[np.argmin(keys[contestants])]
        return winners


class RouletteSelection(ISelection):
    """
    Fitness-proportional selection.

    Scores are turned into non-negative weights relative to the worst finite
    score, so the scheme works for both directions. Individuals with a
    non-finite score get zero weight; if no weight remains, selection is
    uniform.
    """

    def weights(self, population: Population) -> np.ndarray:
        keys = population.direction.key(population.scores)
        finite = np.isfinite(keys)
        weights = np.zeros(len(keys))
        if finite.any():
            worst = keys[finite].max()
            weights[finite] = worst - keys[finite] + ROULETTE_EPSILON
        total = weights.sum()
        if total <= 0.0 or not np.isfinite(total):
            return np.full(len(keys), 1.0 / len(keys))
        return weights / total

    def select_parents(self, population, n, rng):
        return rng.choice(len(population), size=n, replace=True, p=self.weights(population))


# =============================================================================
# Crossover
# =============================================================================

class ICrossover(ABC):
    """Combines two parents into two children."""

    @abstractmethod
    def crossover(self, parent_a: np.ndarray, parent_b: np.ndarray,
                  rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
        pass


class BlendCrossover(ICrossover):
    """Per-gene random weighted average; the second child uses the complementary weights."""

    def crossover(self, parent_a, parent_b, rng):
        beta = rng.random(len(parent_a))
        child_a = beta * parent_a + (1.0 - beta) * parent_b
        child_b = (1.0 - beta) * parent_a + beta * parent_b
        return child_a, child_b


class SinglePointCrossover(ICrossover):
    """Swap gene tails after a random cut point."""

    def crossover(self, parent_a, parent_b, rng):
        n_genes = len(parent_a)
        if n_genes < 2:
            return parent_a.copy(), parent_b.copy()
        point = int(rng.integers(1, n_genes))
        child_a = np.concatenate([parent_a[:point], parent_b[point:]])
        child_b = np.concatenate([parent_b[:point], parent_a[point:]])
        return child_a, child_b


class UniformCrossover(ICrossover):
    """Each gene comes from either parent with equal probability."""

    def crossover(self, parent_a, parent_b, rng):
        mask = rng.random(len(parent_a)) < 0.5
        child_a = np.where(mask, parent_a, parent_b)
        child_b = np.where(mask, parent_b, parent_a)
        return child_a, child_b


# =============================================================================
# Mutation
# =============================================================================

class IMutation(ABC):
    """Perturbs each gene independently with a given probability."""

    @abstractmethod
    def perturb(self, genome: np.ndarray, mask: np.ndarray, space: GenomeSpace,
                rng: np.random.Generator) -> np.ndarray:
        """Return a perturbed copy; only genes where ``mask`` is set may change."""
        pass

    def mutate(self, genome: np.ndarray, space: GenomeSpace, rate: float,
               rng: np.random.Generator) -> np.ndarray:
        """Mutate a genome and clamp the result into the gene bounds."""
        mask = rng.random(len(genome)) < rate
        mutated = self.perturb(genome, mask, space, rng) if mask.any() else genome.copy()
        return space.clamp(mutated)


class GaussianMutation(IMutation):
    """Gaussian jitter with sigma proportional to each gene's range."""

    def __init__(self, scale: float = 0.1):
        if scale <= 0:
            raise ConfigurationError(f"Mutation scale must be positive, got {scale}")
        self.scale = scale

    def perturb(self, genome, mask, space, rng):
        noise = rng.normal(0.0, 1.0, len(genome)) * self.scale * space.span
        return np.where(mask, genome + noise, genome)


class UniformMutation(IMutation):
    """Re-sample mutated genes uniformly within their bounds."""

    def perturb(self, genome, mask, space, rng):
        resampled = rng.uniform(space.xl, space.xu)
        return np.where(mask, resampled, genome)


# =============================================================================
# Registries
# =============================================================================

SELECTION_STRATEGIES = {
    'tournament': TournamentSelection,
    'roulette': RouletteSelection,
}

CROSSOVER_STRATEGIES = {
    'blend': BlendCrossover,
    'single_point': SinglePointCrossover,
    'uniform': UniformCrossover,
}

MUTATION_STRATEGIES = {
    'gaussian': GaussianMutation,
    'uniform': UniformMutation,
}


def create_selection(name: str, tournament_size: int = 3) -> ISelection:
    if name == 'tournament':
        return TournamentSelection(tournament_size)
    if name in SELECTION_STRATEGIES:
        return SELECTION_STRATEGIES[name]()
    raise ConfigurationError(f"Unknown selection strategy '{name}'")


def create_crossover(name: str) -> ICrossover:
    if name not in CROSSOVER_STRATEGIES:
        raise ConfigurationError(f"Unknown crossover strategy '{name}'")
    return CROSSOVER_STRATEGIES[name]()


def create_mutation(name: str, scale: float = 0.1) -> IMutation:
    if name == 'gaussian':
        return GaussianMutation(scale)
    if name in MUTATION_STRATEGIES:
        return MUTATION_STRATEGIES[name]()
    raise ConfigurationError(f"Unknown mutation strategy '{name}'")
