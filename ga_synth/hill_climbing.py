"""
Hill-climbing search over the same genome space as the GA.

Useful as a baseline when comparing against the genetic algorithm. Each
iteration samples a neighbour within a step-size-dependent window around the
current genome and keeps it only if it scores strictly better.
"""

from dataclasses import dataclass
from typing import Optional, Union
import logging
import time

import numpy as np

from .errors import ConfigurationError, EvaluationFailure
from .fitness import FitnessEvaluator, IFitnessMetric
from .ga_engine import EvolutionResult, GenerationRecord, ISynthEvolver, TerminationReason
from .genome import GenomeSpace
from .interfaces import BoundsSpec, Signal
from .synthesis import ISynthesizer

logger = logging.getLogger(__name__)


@dataclass
class HillClimbingConfig:
    """Options for the hill climber."""
    init_step_size: float = 1.0
    max_iterations: int = 3000
    min_step_size: float = 0.0001
    max_unsuccessful_iters: int = 5000
    step_decay: float = 0.95
    target_fitness: Optional[float] = None
    seed: Optional[int] = None

    def validate(self) -> 'HillClimbingConfig':
        errors = []
        if self.init_step_size <= 0:
            errors.append(f"init_step_size must be positive, got {self.init_step_size}")
        if self.max_iterations <= 0:
            errors.append(f"max_iterations must be positive, got {self.max_iterations}")
        if self.min_step_size < 0:
            errors.append(f"min_step_size must be non-negative, got {self.min_step_size}")
        if self.max_unsuccessful_iters <= 0:
            errors.append(f"max_unsuccessful_iters must be positive, got {self.max_unsuccessful_iters}")
        if not 0.0 < self.step_decay < 1.0:
            errors.append(f"step_decay must be in (0, 1), got {self.step_decay}")
        if errors:
            raise ConfigurationError("Invalid hill climbing config: " + "; ".join(errors))
        return self


def neighbour(genome: np.ndarray, space: GenomeSpace, step_size: float,
              rng: np.random.Generator) -> np.ndarray:
    """Sample each gene uniformly within ``step_size / 2`` of its range around the current value."""
    reach = space.span * step_size / 2.0
    low = np.maximum(space.xl, genome - reach)
    high = np.minimum(space.xu, genome + reach)
    return rng.uniform(low, high)


class HillClimbingEvolver(ISynthEvolver):
    """
    Adaptive-step hill climber.

    The step grows after an improvement and shrinks after a rejected
    candidate. The search stops at ``max_iterations``, after
    ``max_unsuccessful_iters`` consecutive rejections, when the step falls
    below ``min_step_size``, or when the target fitness is reached.
    """

    def __init__(self, synthesizer: ISynthesizer,
                 config: Optional[HillClimbingConfig] = None,
                 metric: Union[str, IFitnessMetric] = 'squared_error'):
        self.synthesizer = synthesizer
        self.config = (config or HillClimbingConfig()).validate()
        self.metric = metric

    def _score(self, genome: np.ndarray, evaluator: FitnessEvaluator) -> float:
        try:
            return evaluator.score(self.synthesizer.render(genome))
        except EvaluationFailure as e:
            logger.warning(f"Candidate failed evaluation: {e}")
        except Exception as e:
            logger.warning(f"Candidate failed evaluation: Render failed: {type(e).__name__}: {e}")
        return evaluator.worst

    def evolve(self, bounds: Union[BoundsSpec, GenomeSpace], target: Signal) -> EvolutionResult:
        start_time = time.time()
        config = self.config
        space = bounds if isinstance(bounds, GenomeSpace) else GenomeSpace(bounds)
        evaluator = FitnessEvaluator(target, metric=self.metric, cache_enabled=False)
        direction = evaluator.direction
        rng = np.random.default_rng(config.seed)

        current = space.random_genomes(1, rng)[0]
        current_fitness = self._score(current, evaluator)
        failures = int(current_fitness == evaluator.worst)
        best_iteration = 0
        history = [current_fitness]
        stats = [GenerationRecord(0, current_fitness, current_fitness, current_fitness, 0.0, 0.0,
                                  current.copy(), rendered=1, failures=failures, improved=True)]

        step_size = config.init_step_size
        unsuccessful = 0
        iteration = 0
        reason = TerminationReason.MAX_GENERATIONS

        logger.info(f"Starting hill climbing: {space.n_genes} genes, max {config.max_iterations} iterations")

        while True:
            if config.target_fitness is not None and direction.reached(current_fitness, config.target_fitness):
                reason = TerminationReason.TARGET_REACHED
                break
            if iteration + 1 >= config.max_iterations:
                reason = TerminationReason.MAX_GENERATIONS
                break
            if step_size < config.min_step_size:
                logger.info(f"Step size too small ({step_size} < {config.min_step_size}). Terminating")
                reason = TerminationReason.MIN_STEP_SIZE
                break
            if unsuccessful >= config.max_unsuccessful_iters:
                logger.info(f"{unsuccessful} unsuccessful iterations reached. Terminating")
                reason = TerminationReason.STAGNATION
                break

            iteration += 1
            candidate = neighbour(current, space, step_size, rng)
            candidate_fitness = self._score(candidate, evaluator)
            failed = candidate_fitness == evaluator.worst
            failures += int(failed)

            improved = direction.is_better(candidate_fitness, current_fitness)
            if improved:
                current, current_fitness = candidate, candidate_fitness
                best_iteration = iteration
                unsuccessful = 0
                step_size = min(step_size / config.step_decay, 1.0)
                logger.debug(f"Iteration {iteration}: fitness {current_fitness:.6g}, step {step_size:.4g}")
            else:
                unsuccessful += 1
                step_size *= config.step_decay

            history.append(current_fitness)
            stats.append(GenerationRecord(iteration, current_fitness, candidate_fitness, None, None, 0.0,
                                          current.copy(), rendered=1, failures=int(failed), improved=improved))

        elapsed = time.time() - start_time
        logger.info(f"Hill climbing finished ({reason.value}) after {iteration} iterations. "
                    f"Best fitness: {current_fitness:.6g}")

        return EvolutionResult(
            best_genome=current.copy(),
            best_parameters=space.genome_to_parameters(current),
            best_fitness=current_fitness,
            best_generation=best_iteration,
            fitness_history=history,
            termination_reason=reason,
            direction=direction,
            generation_stats=stats,
            failure_count=failures,
            total_evaluations=iteration + 1,
            elapsed=elapsed,
        )
