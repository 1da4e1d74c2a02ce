"""
Fixed-size population arena.

Genomes live in one ``(N, G)`` array and their scores in one ``(N,)`` array.
Evaluation workers write into disjoint slots, so no locking is needed; the
best individual is found afterwards by a sequential reduction.
"""

from typing import Dict, List, Optional, Tuple
import logging

import numpy as np

from .interfaces import FitnessDirection

logger = logging.getLogger(__name__)


class Population:
    """Genomes of one generation together with their fitness scores."""

    def __init__(self, genomes: np.ndarray,
                 direction: FitnessDirection = FitnessDirection.MINIMIZE):
        """
        Args:
            genomes: Array of shape (N, G), one row per genome
            direction: Whether lower or higher scores are better

        Raises:
            ValueError: If the genome array is not two-dimensional or empty
        """
        genomes = np.array(genomes, dtype=np.float64)
        if genomes.ndim != 2 or genomes.shape[0] == 0 or genomes.shape[1] == 0:
            raise ValueError(f"Population needs a non-empty (N, G) genome array, got shape {genomes.shape}")

        # genes never change once a genome is in a population
        genomes.setflags(write=False)
        self._genomes = genomes
        self._scores = np.full(genomes.shape[0], np.nan)
        self.direction = direction

    def __len__(self) -> int:
        return self._genomes.shape[0]

    @property
    def size(self) -> int:
        return len(self)

    @property
    def n_genes(self) -> int:
        return self._genomes.shape[1]

    @property
    def genomes(self) -> np.ndarray:
        """Read-only view of the genome arena."""
        return self._genomes

    @property
    def scores(self) -> np.ndarray:
        return self._scores.copy()

    def genome(self, index: int) -> np.ndarray:
        """Writable copy of one genome."""
        return self._genomes[index].copy()

    def score(self, index: int) -> float:
        return float(self._scores[index])

    def is_scored(self, index: int) -> bool:
        return not np.isnan(self._scores[index])

    @property
    def all_scored(self) -> bool:
        return not np.isnan(self._scores).any()

    def unscored_indices(self) -> List[int]:
        return [int(i) for i in np.flatnonzero(np.isnan(self._scores))]

    def set_score(self, index: int, score: float) -> None:
        """Write the score of one slot. Each slot is written exactly once."""
        if self.is_scored(index):
            raise RuntimeError(f"Slot {index} already holds a score")
        if np.isnan(score):
            raise ValueError("Scores must not be NaN")
        self._scores[index] = score

    def ranking(self) -> np.ndarray:
        """Slot indices ordered best first. Ties keep slot order."""
        self._require_scores()
        return np.argsort(self.direction.key(self._scores), kind='stable')

    def best_index(self) -> int:
        return int(self.ranking()[0])

    def best(self) -> Tuple[np.ndarray, float]:
        """Copy of the best genome and its score."""
        idx = self.best_index()
        return self.genome(idx), self.score(idx)

    def top(self, k: int) -> np.ndarray:
        return self.ranking()[:k]

    def diversity(self) -> float:
        """Average pairwise Euclidean distance between genomes."""
        n = len(self)
        if n < 2:
            return 0.0
        # one row at a time keeps memory at O(N * G)
        total = 0.0
        for i in range(n - 1):
            total += float(np.linalg.norm(self._genomes[i + 1:] - self._genomes[i], axis=1).sum())
        return total / (n * (n - 1) / 2)

    def statistics(self) -> Dict[str, Optional[float]]:
        """Best, mean and spread of the generation's scores.

        Mean and standard deviation only consider finite scores, so a few
        failed renders do not turn the whole row into infinities.
        """
        self._require_scores()
        finite = self._scores[np.isfinite(self._scores)]
        best_idx = self.best_index()
        return {
            'best_fitness': float(self._scores[best_idx]),
            'worst_fitness': float(self._scores[self.ranking()[-1]]),
            'mean_fitness': float(np.mean(finite)) if finite.size else None,
            'std_fitness': float(np.std(finite)) if finite.size else None,
            'n_finite': int(finite.size),
            'diversity': self.diversity(),
        }

    def _require_scores(self):
        if not self.all_scored:
            missing = len(self.unscored_indices())
            raise RuntimeError(f"{missing} of {len(self)} genomes have not been evaluated")

    def __repr__(self) -> str:
        scored = len(self) - len(self.unscored_indices())
        return f"Population(size={len(self)}, n_genes={self.n_genes}, scored={scored})"
