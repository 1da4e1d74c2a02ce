from typing import List, Optional, Union
import logging
import time

import numpy as np

# PyMoo imports
from pymoo.core.problem import Problem
from pymoo.algorithms.soo.nonconvex.ga import GA
from pymoo.operators.crossover.sbx import SBX
from pymoo.operators.mutation.pm import PM
from pymoo.operators.sampling.rnd import FloatRandomSampling
from pymoo.operators.selection.rnd import RandomSelection
from pymoo.optimize import minimize
from pymoo.termination import get_termination
from pymoo.core.callback import Callback

from .config import EvolutionConfig
from .evaluation import PopulationEvaluator
from .fitness import FitnessEvaluator, IFitnessMetric, SquaredErrorMetric, create_metric
from .ga_engine import EvolutionResult, ISynthEvolver, TerminationReason
from .genome import GenomeSpace
from .interfaces import BoundsSpec, FitnessDirection, Signal
from .population import Population
from .synthesis import ISynthesizer

logger = logging.getLogger(__name__)


class GenerationLogger(Callback):
    """Callback recording the best objective value of each pymoo generation."""

    def __init__(self):
        super().__init__()
        self.data['best'] = []
        self.data['best_genome'] = []

    def notify(self, algorithm):
        """Called after each generation."""
        try:
            gen = algorithm.n_gen
            F = algorithm.pop.get("F").flatten()
            X = algorithm.pop.get("X")

            best_idx = int(np.argmin(F))
            self.data['best'].append(float(F[best_idx]))
            self.data['best_genome'].append(np.array(X[best_idx], dtype=np.float64))

            logger.info(f"Generation {gen}: best={F[best_idx]:.6g}, worst={np.max(F):.6g}")

        except Exception as e:
            logger.error(f"Error logging generation statistics: {e}")


class SynthesisProblem(Problem):
    """
    Single-objective pymoo problem over a genome space.

    Populations are scored through a PopulationEvaluator, so pymoo
    generations use the same worker pool, timeout and failure handling as
    the native controller. Objectives are always minimized; maximizing
    fitness scalings are negated.
    """

    def __init__(self, space: GenomeSpace, evaluator: PopulationEvaluator):
        self.space = space
        self.evaluator = evaluator
        self.failure_count = 0
        self.total_evaluations = 0

        super().__init__(n_var=space.n_genes, n_obj=1,
                         xl=np.array(space.xl), xu=np.array(space.xu))

        logger.info(f"Initialized synthesis problem with {space.n_genes} parameters")

    @property
    def direction(self) -> FitnessDirection:
        return self.evaluator.fitness_evaluator.direction

    def _evaluate(self, x, out, *args, **kwargs):
        """
        Evaluate population fitness.

        Args:
            x: Population matrix (n_individuals × n_variables)
            out: Output dictionary for objective values
        """
        population = Population(self.space.clamp(np.atleast_2d(x)), self.direction)
        report = self.evaluator.evaluate(population)
        self.failure_count += report.failures
        self.total_evaluations += report.rendered
        self.evaluator.fitness_evaluator.advance_generation()

        objectives = population.scores
        if self.direction is FitnessDirection.MAXIMIZE:
            objectives = -objectives

        out["F"] = objectives.reshape(-1, 1)  # pymoo expects column vector


class PymooSynthEvolver(ISynthEvolver):
    """
    Baseline search with pymoo's GA (SBX crossover, polynomial mutation).

    Reads population size, generation count, crossover rate, worker count,
    timeout, fitness options and seed from an ``EvolutionConfig``.
    """

    def __init__(self, synthesizer: ISynthesizer,
                 config: Optional[EvolutionConfig] = None,
                 metric: Optional[IFitnessMetric] = None):
        self.synthesizer = synthesizer
        self.config = (config or EvolutionConfig()).validate()
        self.metric = metric

    def _build_metric(self) -> IFitnessMetric:
        if self.metric is not None:
            return self.metric
        if self.config.fitness_metric == 'squared_error':
            return SquaredErrorMetric(normalize=self.config.normalize_fitness)
        return create_metric(self.config.fitness_metric)

    def evolve(self, bounds: Union[BoundsSpec, GenomeSpace], target: Signal) -> EvolutionResult:
        start_time = time.time()
        config = self.config
        space = bounds if isinstance(bounds, GenomeSpace) else GenomeSpace(bounds)

        fitness_evaluator = FitnessEvaluator(
            target,
            metric=self._build_metric(),
            scaling=config.fitness_scaling,
            scale=config.fitness_scale,
            cache_enabled=self.synthesizer.deterministic,
        )
        direction = fitness_evaluator.direction

        logger.info(f"Starting pymoo optimization: {space.n_genes} parameters, "
                    f"{config.max_generations} generations, {config.population_size} population")

        with PopulationEvaluator(self.synthesizer, fitness_evaluator,
                                 max_workers=config.max_workers,
                                 timeout=config.evaluation_timeout) as evaluator:
            problem = SynthesisProblem(space, evaluator)

            algorithm = GA(
                pop_size=config.population_size,
                sampling=FloatRandomSampling(),
                crossover=SBX(prob=config.crossover_rate, eta=15),
                mutation=PM(prob=1.0 / space.n_genes, eta=20),
                selection=RandomSelection(),
            )

            callback = GenerationLogger()
            result = minimize(
                problem,
                algorithm,
                get_termination("n_gen", config.max_generations),
                callback=callback,
                verbose=False,
                seed=config.seed,
            )

        return self._process_results(result, callback, problem, space, direction, start_time)

    def _process_results(self, result, callback: GenerationLogger, problem: SynthesisProblem,
                         space: GenomeSpace, direction: FitnessDirection,
                         start_time: float) -> EvolutionResult:
        """Convert a pymoo result into an EvolutionResult."""
        sign = -1.0 if direction is FitnessDirection.MAXIMIZE else 1.0
        history: List[float] = [sign * value for value in callback.data['best']]

        if result.X is None or result.F is None:
            logger.warning("No valid solution found during evolution")
            best_genome, best_fitness, best_generation = None, direction.worst, -1
        else:
            best_genome = space.clamp(np.asarray(result.X, dtype=np.float64).reshape(-1))
            best_fitness = sign * float(np.asarray(result.F).flatten()[0])
            best_generation = next((i for i, value in enumerate(history) if value == best_fitness),
                                   len(history) - 1)

        logger.info(f"Evolution completed in {time.time() - start_time:.2f}s. Best fitness: {best_fitness:.6g}")

        return EvolutionResult(
            best_genome=best_genome,
            best_parameters=space.genome_to_parameters(best_genome) if best_genome is not None else {},
            best_fitness=best_fitness,
            best_generation=best_generation,
            fitness_history=history,
            termination_reason=TerminationReason.MAX_GENERATIONS,
            direction=direction,
            failure_count=problem.failure_count,
            total_evaluations=problem.total_evaluations,
            cache_hits=problem.evaluator.fitness_evaluator.cache_hits,
            elapsed=time.time() - start_time,
        )
