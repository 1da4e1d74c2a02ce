from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
import logging
import math
import threading
import time
import warnings

import numpy as np

from .config import EvolutionConfig
from .errors import ConvergenceWarning
from .evaluation import PopulationEvaluator
from .fitness import FitnessEvaluator, IFitnessMetric, SquaredErrorMetric, create_metric
from .genome import GenomeSpace, initialize_population
from .interfaces import BoundsSpec, FitnessDirection, Signal, SynthParameters
from .operators import create_crossover, create_mutation, create_selection
from .population import Population
from .synthesis import ISynthesizer

logger = logging.getLogger(__name__)


class EvolutionState(Enum):
    INITIALIZING = 'initializing'
    EVALUATING = 'evaluating'
    BREEDING = 'breeding'
    TERMINATED = 'terminated'


class TerminationReason(Enum):
    MAX_GENERATIONS = 'max_generations'
    TARGET_REACHED = 'target_reached'
    STAGNATION = 'stagnation'
    CANCELLED = 'cancelled'
    MIN_STEP_SIZE = 'min_step_size'


@dataclass
class GenerationRecord:
    """Statistics of one evaluated generation."""
    generation: int
    best_fitness: float
    worst_fitness: float
    mean_fitness: Optional[float]
    std_fitness: Optional[float]
    diversity: float
    best_genome: np.ndarray
    rendered: int = 0
    cached: int = 0
    failures: int = 0
    improved: bool = False
    elapsed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'generation': self.generation,
            'best_fitness': self.best_fitness,
            'worst_fitness': self.worst_fitness,
            'avg_fitness': self.mean_fitness,
            'std_fitness': self.std_fitness,
            'diversity': self.diversity,
            'best_genome': self.best_genome.tolist(),
            'rendered': self.rendered,
            'cached': self.cached,
            'failures': self.failures,
            'improved': self.improved,
            'elapsed': self.elapsed,
        }


@dataclass
class EvolutionResult:
    """Outcome of a search run."""
    best_genome: Optional[np.ndarray]
    best_parameters: SynthParameters
    best_fitness: float
    best_generation: int
    fitness_history: List[float]
    termination_reason: TerminationReason
    direction: FitnessDirection = FitnessDirection.MINIMIZE
    generation_stats: List[GenerationRecord] = field(default_factory=list)
    failure_count: int = 0
    total_evaluations: int = 0
    cache_hits: int = 0
    elapsed: float = 0.0

    @property
    def generations_run(self) -> int:
        return len(self.fitness_history)

    @property
    def target_reached(self) -> bool:
        return self.termination_reason is TerminationReason.TARGET_REACHED

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dictionary summary of the run."""
        history = self.fitness_history
        improvement_ratio = 0.0
        if history and math.isfinite(history[0]) and history[0] != 0 and math.isfinite(self.best_fitness):
            improvement_ratio = (history[0] - self.best_fitness) / history[0]

        return {
            'best_parameters': dict(self.best_parameters),
            'best_genome': self.best_genome.tolist() if self.best_genome is not None else [],
            'best_fitness': self.best_fitness,
            'best_generation': self.best_generation,
            'fitness_history': list(history),
            'generation_stats': [record.to_dict() for record in self.generation_stats],
            'generations_run': self.generations_run,
            'termination_reason': self.termination_reason.value,
            'direction': self.direction.value,
            'performance_metrics': {
                'total_evaluations': self.total_evaluations,
                'cache_hits': self.cache_hits,
                'failure_count': self.failure_count,
                'evolution_time': self.elapsed,
                'avg_evaluation_time': self.elapsed / self.total_evaluations if self.total_evaluations else 0.0,
                'convergence_generation': find_convergence_generation(history),
                'improvement_ratio': improvement_ratio,
            },
        }


def find_convergence_generation(fitness_history: Sequence[float],
                                threshold: float = 0.01) -> Optional[int]:
    """
    Find the generation where fitness converged (stopped improving significantly).

    Args:
        fitness_history: Best fitness per generation
        threshold: Improvement over two generations below which the run counts as converged

    Returns:
        Generation number where convergence occurred, or None
    """
    if len(fitness_history) < 3:
        return None

    for i in range(2, len(fitness_history)):
        older, newer = fitness_history[i - 2], fitness_history[i]
        if not (math.isfinite(older) and math.isfinite(newer)):
            continue
        if abs(older - newer) < threshold:
            return i

    return None


class IGenerationCallback(ABC):
    """Observer notified after every evaluated generation."""

    @abstractmethod
    def notify(self, record: GenerationRecord, controller: 'EvolutionController') -> None:
        pass


class LoggingCallback(IGenerationCallback):
    """Logs a one-line summary every ``every`` generations."""

    def __init__(self, every: int = 10):
        self.every = max(1, every)

    def notify(self, record, controller):
        if record.generation % self.every == 0 or record.improved:
            logger.info(f"Generation {record.generation}: best={record.best_fitness:.6g}, "
                        f"worst={record.worst_fitness:.6g}, failures={record.failures}")


class EvolutionController:
    """
    Drives the generation loop of the genetic algorithm.

    States: INITIALIZING -> EVALUATING -> BREEDING -> EVALUATING -> ... -> TERMINATED.
    The controller exclusively owns its population and run state, so
    independent controllers can run concurrently.
    """

    def __init__(self,
                 bounds: Union[BoundsSpec, GenomeSpace],
                 synthesizer: ISynthesizer,
                 target: Signal,
                 config: Optional[EvolutionConfig] = None,
                 metric: Optional[IFitnessMetric] = None,
                 callbacks: Optional[List[IGenerationCallback]] = None):
        """
        Args:
            bounds: Gene bounds as a GenomeSpace, (min, max) pairs or name -> (min, max)
            synthesizer: Renders genomes into waveforms
            target: Waveform to approximate
            config: Run options; defaults to EvolutionConfig()
            metric: Metric instance overriding ``config.fitness_metric``
            callbacks: Generation observers; a LoggingCallback when omitted

        Raises:
            ConfigurationError: If the bounds, target or config are invalid
        """
        self.config = (config or EvolutionConfig()).validate()
        self.space = bounds if isinstance(bounds, GenomeSpace) else GenomeSpace(bounds)
        self.synthesizer = synthesizer
        self.callbacks = callbacks if callbacks is not None else [LoggingCallback()]

        if not synthesizer.deterministic:
            logger.info("Synthesizer is not deterministic, fitness cache disabled")

        self.fitness_evaluator = FitnessEvaluator(
            target,
            metric=metric or self._build_metric(),
            scaling=self.config.fitness_scaling,
            scale=self.config.fitness_scale,
            cache_enabled=synthesizer.deterministic,
        )
        self.direction = self.fitness_evaluator.direction

        self.selection = create_selection(self.config.selection_strategy, self.config.tournament_size)
        self.crossover = create_crossover(self.config.crossover_strategy)
        self.mutation = create_mutation(self.config.mutation_strategy, self.config.mutation_scale)
        self.rng = np.random.default_rng(self.config.seed)

        # Run state
        self.state = EvolutionState.INITIALIZING
        self.population: Optional[Population] = None
        self.generation = 0
        self.best_genome: Optional[np.ndarray] = None
        self.best_fitness = self.direction.worst
        self.best_generation = -1
        self.history: List[GenerationRecord] = []
        self.failure_count = 0
        self.total_evaluations = 0
        self._stagnant_generations = 0
        self._cancel_event = threading.Event()

    def _build_metric(self) -> IFitnessMetric:
        if self.config.fitness_metric == 'squared_error':
            return SquaredErrorMetric(normalize=self.config.normalize_fitness)
        return create_metric(self.config.fitness_metric)

    @property
    def target(self) -> Signal:
        return self.fitness_evaluator.target

    # Cancellation

    def cancel(self) -> None:
        """Request a stop. Checked before each generation is evaluated."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # Generation loop

    def initialize(self) -> Population:
        """Build the first population."""
        self.state = EvolutionState.INITIALIZING
        self.population = initialize_population(self.space, self.config.population_size,
                                                self.rng, self.direction)
        self.generation = 0
        logger.info(f"Initialized population: {self.config.population_size} genomes, "
                    f"{self.space.n_genes} genes")
        return self.population

    def evaluate_generation(self, evaluator: PopulationEvaluator) -> GenerationRecord:
        """Score the current population and update the run state."""
        self.state = EvolutionState.EVALUATING
        report = evaluator.evaluate(self.population)
        self.failure_count += report.failures
        self.total_evaluations += report.rendered

        stats = self.population.statistics()
        genome, fitness = self.population.best()

        improved = self.best_genome is None or self.direction.is_better(fitness, self.best_fitness)
        if improved:
            self.best_genome = genome
            self.best_fitness = fitness
            self.best_generation = self.generation
            self._stagnant_generations = 0
        else:
            self._stagnant_generations += 1

        record = GenerationRecord(
            generation=self.generation,
            best_fitness=stats['best_fitness'],
            worst_fitness=stats['worst_fitness'],
            mean_fitness=stats['mean_fitness'],
            std_fitness=stats['std_fitness'],
            diversity=stats['diversity'],
            best_genome=genome,
            rendered=report.rendered,
            cached=report.cached,
            failures=report.failures,
            improved=improved,
            elapsed=report.elapsed,
        )
        self.history.append(record)
        self._notify(record)
        return record

    def breed(self) -> Population:
        """
        Build the next population from the current, fully scored one.

        Slot order: elites, bred children, then random immigrants.
        """
        self.state = EvolutionState.BREEDING
        current = self.population
        size = len(current)
        n_elites = self.config.elitism
        n_immigrants = self.config.random_immigrants
        n_children = size - n_elites - n_immigrants

        elite_slots = current.top(n_elites)
        rows = [current.genome(i) for i in elite_slots]

        n_pairs = math.ceil(n_children / 2)
        children = []
        pairs = self.selection.select_pairs(current, n_pairs, self.rng) if n_pairs else []
        for a, b in pairs:
            parent_a, parent_b = current.genome(a), current.genome(b)
            if self.rng.random() < self.config.crossover_rate:
                child_a, child_b = self.crossover.crossover(parent_a, parent_b, self.rng)
            else:
                child_a, child_b = parent_a, parent_b
            children.append(self.mutation.mutate(child_a, self.space, self.config.mutation_rate, self.rng))
            children.append(self.mutation.mutate(child_b, self.space, self.config.mutation_rate, self.rng))

        rows.extend(children[:n_children])
        if n_immigrants:
            rows.extend(self.space.random_genomes(n_immigrants, self.rng))
        next_population = Population(np.vstack(rows), self.direction)

        # elites keep their scores and skip evaluation
        for slot, index in enumerate(elite_slots):
            next_population.set_score(slot, current.score(index))

        return next_population

    def _check_termination(self) -> Optional[TerminationReason]:
        target = self.config.target_fitness
        if target is not None and self.direction.reached(self.best_fitness, target):
            return TerminationReason.TARGET_REACHED
        if self.generation + 1 >= self.config.max_generations:
            return TerminationReason.MAX_GENERATIONS
        window = self.config.stagnation_generations
        if window is not None and self._stagnant_generations >= window:
            return TerminationReason.STAGNATION
        return None

    def run(self) -> EvolutionResult:
        """
        Run the GA until a termination condition holds.

        Returns:
            EvolutionResult with the best genome ever observed
        """
        start_time = time.time()
        logger.info(f"Starting evolution: {self.space.n_genes} genes, "
                    f"population {self.config.population_size}, "
                    f"max {self.config.max_generations} generations")

        if self.population is None:
            self.initialize()

        reason = None
        with PopulationEvaluator(self.synthesizer, self.fitness_evaluator,
                                 max_workers=self.config.max_workers,
                                 timeout=self.config.evaluation_timeout) as evaluator:
            while reason is None:
                if self.cancelled:
                    reason = TerminationReason.CANCELLED
                    logger.info(f"Evolution cancelled before generation {self.generation}")
                    break

                self.evaluate_generation(evaluator)
                reason = self._check_termination()
                if reason is not None:
                    break

                self.population = self.breed()
                self.fitness_evaluator.advance_generation()
                self.generation += 1

        self.state = EvolutionState.TERMINATED
        result = self._build_result(reason, time.time() - start_time)

        if reason is TerminationReason.MAX_GENERATIONS and self.config.target_fitness is not None:
            message = (f"Reached {self.config.max_generations} generations without reaching "
                       f"target fitness {self.config.target_fitness} (best {self.best_fitness:.6g})")
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning)

        logger.info(f"Evolution finished ({reason.value}) in {result.elapsed:.2f}s. "
                    f"Best fitness: {self.best_fitness:.6g} at generation {self.best_generation}, "
                    f"{self.failure_count} failed evaluations")
        return result

    def _build_result(self, reason: TerminationReason, elapsed: float) -> EvolutionResult:
        best_parameters = {}
        if self.best_genome is not None:
            best_parameters = self.space.genome_to_parameters(self.best_genome)

        return EvolutionResult(
            best_genome=None if self.best_genome is None else self.best_genome.copy(),
            best_parameters=best_parameters,
            best_fitness=self.best_fitness,
            best_generation=self.best_generation,
            fitness_history=[record.best_fitness for record in self.history],
            termination_reason=reason,
            direction=self.direction,
            generation_stats=list(self.history),
            failure_count=self.failure_count,
            total_evaluations=self.total_evaluations,
            cache_hits=self.fitness_evaluator.cache_hits,
            elapsed=elapsed,
        )

    def _notify(self, record: GenerationRecord) -> None:
        for callback in self.callbacks:
            try:
                callback.notify(record, self)
            except Exception as e:
                logger.error(f"Generation callback {type(callback).__name__} failed: {e}")


class ISynthEvolver(ABC):
    """Interface for searching synthesizer parameters that match a target waveform."""

    @abstractmethod
    def evolve(self, bounds: Union[BoundsSpec, GenomeSpace], target: Signal) -> EvolutionResult:
        """Run the search and return the best configuration found."""
        pass


class GeneticSynthEvolver(ISynthEvolver):
    """Genetic algorithm search, one EvolutionController per call."""

    def __init__(self, synthesizer: ISynthesizer,
                 config: Optional[EvolutionConfig] = None,
                 metric: Optional[IFitnessMetric] = None,
                 callbacks: Optional[List[IGenerationCallback]] = None):
        self.synthesizer = synthesizer
        self.config = config or EvolutionConfig()
        self.metric = metric
        self.callbacks = callbacks

    def evolve(self, bounds, target):
        controller = EvolutionController(bounds, self.synthesizer, target, self.config,
                                         metric=self.metric, callbacks=self.callbacks)
        return controller.run()
