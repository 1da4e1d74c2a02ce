"""
Unit and scenario tests for the GA engine.

Tests cover:
- Configuration failures before any generation runs
- Convergence on a trivial target
- Failure isolation across a whole run
- Elitism, population size and bound invariants
- Determinism and result round-trips
- Termination conditions and cancellation
"""

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest
import numpy as np

from ga_synth.config import EvolutionConfig
from ga_synth.errors import ConfigurationError, ConvergenceWarning
from ga_synth.evaluation import PopulationEvaluator
from ga_synth.fitness import FitnessEvaluator
from ga_synth.ga_engine import (
    EvolutionController,
    EvolutionState,
    GeneticSynthEvolver,
    IGenerationCallback,
    LoggingCallback,
    TerminationReason,
    find_convergence_generation,
)
from ga_synth.genome import GenomeSpace
from ga_synth.interfaces import FitnessDirection
from ga_synth.operators import CROSSOVER_STRATEGIES, MUTATION_STRATEGIES, SELECTION_STRATEGIES
from ga_synth.synthesis import CallableSynthesizer


SAMPLE_RATE = 8000
LEVEL_BOUNDS = [(-1.0, 1.0), (-1.0, 1.0), (-1.0, 1.0)]


class RecordingCallback(IGenerationCallback):
    """Collects generation records and the population size seen at each one."""

    def __init__(self):
        self.records = []
        self.population_sizes = []

    def notify(self, record, controller):
        self.records.append(record)
        self.population_sizes.append(len(controller.population))


class CancelAt(IGenerationCallback):
    def __init__(self, generation):
        self.generation = generation

    def notify(self, record, controller):
        if record.generation == self.generation:
            controller.cancel()


@pytest.fixture
def silent_synth():
    """Renders silence for every genome."""
    return CallableSynthesizer(lambda genome: np.zeros(100), sample_rate=SAMPLE_RATE)


class TestConfigurationFailures:
    """Invalid runs abort before the first generation."""

    def test_zero_population_size(self, constant_synth, zero_target):
        render = Mock()
        synth = CallableSynthesizer(render, sample_rate=SAMPLE_RATE)
        with pytest.raises(ConfigurationError, match="population_size"):
            EvolutionController([(0.0, 1.0)], synth, zero_target, EvolutionConfig(population_size=0))
        render.assert_not_called()

    def test_string_target_fitness(self, zero_target):
        render = Mock()
        synth = CallableSynthesizer(render, sample_rate=SAMPLE_RATE)
        with pytest.raises(ConfigurationError, match="target_fitness"):
            EvolutionController([(0.0, 1.0)], synth, zero_target,
                                EvolutionConfig(population_size=5, target_fitness="0.1"))
        render.assert_not_called()

    def test_empty_bounds(self, constant_synth, zero_target):
        with pytest.raises(ConfigurationError):
            EvolutionController([], constant_synth, zero_target, EvolutionConfig(population_size=5))

    def test_inverted_bounds(self, constant_synth, zero_target):
        with pytest.raises(ConfigurationError):
            EvolutionController([(1.0, 0.0)], constant_synth, zero_target)

    def test_invalid_probability(self, constant_synth, zero_target):
        with pytest.raises(ConfigurationError, match="mutation_rate"):
            EvolutionController([(0.0, 1.0)], constant_synth, zero_target, EvolutionConfig(mutation_rate=1.5))

    def test_invalid_target(self, constant_synth):
        with pytest.raises(ConfigurationError):
            EvolutionController([(0.0, 1.0)], constant_synth, np.zeros(100))

    def test_evolver_raises_on_zero_population(self, constant_synth, zero_target):
        evolver = GeneticSynthEvolver(constant_synth, EvolutionConfig(population_size=0))
        with pytest.raises(ConfigurationError):
            evolver.evolve([(0.0, 1.0)], zero_target)


class TestScenarios:
    """End-to-end runs on small problems."""

    def test_converges_on_zero_target(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=20, max_generations=50, seed=42)
        result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config).run()

        assert result.termination_reason is TerminationReason.MAX_GENERATIONS
        assert result.generations_run == 50
        assert result.best_fitness <= 1e-4
        assert abs(result.best_genome[0]) <= 1e-2
        assert result.failure_count == 0

    def test_always_failing_synth_completes_run(self, failing_synth, zero_target):
        config = EvolutionConfig(population_size=6, max_generations=4, seed=0, max_workers=2)
        result = EvolutionController([(0.0, 1.0), (0.0, 1.0)], failing_synth, zero_target, config).run()

        assert result.termination_reason is TerminationReason.MAX_GENERATIONS
        assert result.generations_run == 4
        assert result.failure_count == 6 * 4
        assert result.best_fitness == float('inf')
        assert all(record.failures == 6 for record in result.generation_stats)
        assert all(record.worst_fitness == float('inf') for record in result.generation_stats)

    def test_always_failing_synth_maximizing(self, failing_synth, zero_target):
        config = EvolutionConfig(population_size=4, max_generations=3, seed=0, fitness_scaling='sigmoid')
        result = EvolutionController([(0.0, 1.0)], failing_synth, zero_target, config).run()

        assert result.failure_count == 12
        assert result.best_fitness == float('-inf')

    def test_sigmoid_scaling_run(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=20, max_generations=20, seed=3,
                                 elitism=1, fitness_scaling='sigmoid')
        result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config).run()

        assert result.direction is FitnessDirection.MAXIMIZE
        assert 0.0 < result.best_fitness <= 1.0
        assert all(b >= a for a, b in zip(result.fitness_history, result.fitness_history[1:]))

    def test_multi_gene_run_improves(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=16, max_generations=15, seed=11,
                                 elitism=1, mutation_rate=0.5, max_workers=4)
        result = GeneticSynthEvolver(level_synth, config).evolve(LEVEL_BOUNDS, zero_target)

        assert result.best_fitness <= result.fitness_history[0]
        assert set(result.best_parameters) == {'gene_0', 'gene_1', 'gene_2'}


class TestInvariants:
    """Properties that hold for every generation."""

    @pytest.mark.parametrize("elitism", [0, 1, 3])
    def test_population_size_constant(self, level_synth, zero_target, elitism):
        callback = RecordingCallback()
        config = EvolutionConfig(population_size=7, max_generations=6, seed=1, elitism=elitism)
        EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config, callbacks=[callback]).run()

        assert callback.population_sizes == [7] * 6

    def test_elitism_monotonic_best(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=12, max_generations=20, seed=9,
                                 elitism=1, mutation_rate=0.5, crossover_strategy='uniform')
        result = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        history = result.fitness_history
        assert all(b <= a for a, b in zip(history, history[1:]))

    def test_genes_stay_in_bounds(self, level_synth, zero_target):
        space = GenomeSpace([(0.0, 0.1), (-5.0, -4.0), (2.0, 3.0)])
        config = EvolutionConfig(population_size=10, max_generations=2, seed=4,
                                 mutation_rate=1.0, mutation_scale=10.0)
        controller = EvolutionController(space, level_synth, zero_target, config)
        controller.initialize()

        with PopulationEvaluator(level_synth, controller.fitness_evaluator, max_workers=2) as evaluator:
            for _ in range(5):
                controller.evaluate_generation(evaluator)
                controller.population = controller.breed()
                assert all(space.contains(genome) for genome in controller.population.genomes)

    def test_elites_carried_with_scores(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=8, max_generations=3, seed=2, elitism=2)
        controller = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config)
        controller.initialize()

        with PopulationEvaluator(level_synth, controller.fitness_evaluator, max_workers=2) as evaluator:
            controller.evaluate_generation(evaluator)
        previous = controller.population
        elites = previous.top(2)
        next_population = controller.breed()

        assert len(next_population) == 8
        assert next_population.unscored_indices() == list(range(2, 8))
        for slot, index in enumerate(elites):
            np.testing.assert_array_equal(next_population.genomes[slot], previous.genomes[index])
            assert next_population.score(slot) == previous.score(index)

    def test_determinism(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=10, max_generations=8, seed=123,
                                 elitism=1, mutation_rate=0.4, max_workers=4)
        first = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()
        second = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        np.testing.assert_array_equal(first.best_genome, second.best_genome)
        assert first.fitness_history == second.fitness_history

    def test_independent_runs_concurrently(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=10, max_generations=5, seed=77, max_workers=2)
        expected = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        def run():
            return EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        with ThreadPoolExecutor(max_workers=3) as executor:
            results = [f.result() for f in [executor.submit(run) for _ in range(3)]]

        for result in results:
            assert result.fitness_history == expected.fitness_history

    def test_round_trip_best_fitness(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=10, max_generations=10, seed=5, elitism=1)
        result = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        rescored = FitnessEvaluator(zero_target).score(level_synth.render(result.best_genome))
        assert rescored == pytest.approx(result.best_fitness, rel=1e-12, abs=1e-12)

    def test_best_generation_matches_history(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=10, max_generations=10, seed=8)
        result = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        assert result.fitness_history[result.best_generation] == result.best_fitness
        assert result.best_fitness == min(result.fitness_history)

    def test_children_copy_parents_without_variation(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=8, max_generations=3, seed=6,
                                 crossover_rate=0.0, mutation_rate=0.0)
        controller = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config)
        controller.initialize()
        with PopulationEvaluator(level_synth, controller.fitness_evaluator, max_workers=2) as evaluator:
            controller.evaluate_generation(evaluator)

        selected = []
        select_pairs = controller.selection.select_pairs

        def recording_select_pairs(population, n_pairs, rng):
            pairs = select_pairs(population, n_pairs, rng)
            selected.extend(pairs)
            return pairs

        controller.selection.select_pairs = recording_select_pairs
        previous = controller.population
        next_population = controller.breed()

        assert len(selected) == 4
        for slot in range(8):
            parent = selected[slot // 2][slot % 2]
            np.testing.assert_array_equal(next_population.genomes[slot], previous.genomes[parent])

    @pytest.mark.parametrize("selection", sorted(SELECTION_STRATEGIES))
    @pytest.mark.parametrize("crossover", sorted(CROSSOVER_STRATEGIES))
    @pytest.mark.parametrize("mutation", sorted(MUTATION_STRATEGIES))
    def test_every_strategy_keeps_size_and_bounds(self, level_synth, zero_target,
                                                  selection, crossover, mutation):
        space = GenomeSpace([(0.0, 0.5), (-2.0, -1.0), (1.0, 4.0)])
        callback = RecordingCallback()
        config = EvolutionConfig(population_size=9, max_generations=6, seed=13, elitism=1,
                                 mutation_rate=0.5, mutation_scale=5.0,
                                 selection_strategy=selection, crossover_strategy=crossover,
                                 mutation_strategy=mutation)
        controller = EvolutionController(space, level_synth, zero_target, config, callbacks=[callback])
        result = controller.run()

        assert callback.population_sizes == [9] * 6
        assert all(space.contains(record.best_genome) for record in callback.records)
        assert all(space.contains(genome) for genome in controller.population.genomes)
        assert space.contains(result.best_genome)


class TestRandomImmigrants:
    """Fresh random genomes injected each generation."""

    def test_immigrants_fill_last_slots(self, level_synth, zero_target):
        space = GenomeSpace([(0.0, 0.5), (-2.0, -1.0), (1.0, 4.0)])
        config = EvolutionConfig(population_size=8, max_generations=3, seed=3,
                                 elitism=1, random_immigrants=3)
        controller = EvolutionController(space, level_synth, zero_target, config)
        controller.initialize()
        with PopulationEvaluator(level_synth, controller.fitness_evaluator, max_workers=2) as evaluator:
            controller.evaluate_generation(evaluator)
        next_population = controller.breed()

        assert len(next_population) == 8
        assert next_population.unscored_indices() == list(range(1, 8))
        assert all(space.contains(genome) for genome in next_population.genomes)

    def test_immigrants_only(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=6, max_generations=3, seed=3,
                                 elitism=2, random_immigrants=4)
        controller = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config)
        controller.initialize()
        with PopulationEvaluator(level_synth, controller.fitness_evaluator, max_workers=2) as evaluator:
            controller.evaluate_generation(evaluator)
        previous = controller.population
        next_population = controller.breed()

        assert len(next_population) == 6
        for slot, index in enumerate(previous.top(2)):
            np.testing.assert_array_equal(next_population.genomes[slot], previous.genomes[index])

    def test_run_keeps_population_size(self, level_synth, zero_target):
        callback = RecordingCallback()
        config = EvolutionConfig(population_size=10, max_generations=5, seed=11,
                                 elitism=1, random_immigrants=4)
        EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config, callbacks=[callback]).run()

        assert callback.population_sizes == [10] * 5

    def test_run_is_deterministic(self, level_synth, zero_target):
        config = EvolutionConfig(population_size=10, max_generations=5, seed=11, random_immigrants=2)
        first = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()
        second = EvolutionController(LEVEL_BOUNDS, level_synth, zero_target, config).run()

        assert first.fitness_history == second.fitness_history


class TestTermination:
    """Termination conditions."""

    def test_target_reached(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=20, max_generations=50, seed=42, target_fitness=0.5)
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config).run()

        assert result.termination_reason is TerminationReason.TARGET_REACHED
        assert result.target_reached
        assert result.best_fitness <= 0.5

    def test_convergence_warning(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=5, max_generations=3, seed=1, target_fitness=-1.0)
        with pytest.warns(ConvergenceWarning, match="without reaching"):
            result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config).run()

        assert result.termination_reason is TerminationReason.MAX_GENERATIONS
        assert not result.target_reached

    def test_stagnation(self, silent_synth, zero_target):
        config = EvolutionConfig(population_size=5, max_generations=50, seed=1, stagnation_generations=3)
        result = EvolutionController([(0.0, 1.0)], silent_synth, zero_target, config).run()

        assert result.termination_reason is TerminationReason.STAGNATION
        assert result.generations_run == 4
        assert result.best_generation == 0

    def test_max_generations_before_stagnation(self, silent_synth, zero_target):
        config = EvolutionConfig(population_size=5, max_generations=3, seed=1, stagnation_generations=2)
        result = EvolutionController([(0.0, 1.0)], silent_synth, zero_target, config).run()

        assert result.termination_reason is TerminationReason.MAX_GENERATIONS

    def test_single_generation(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=5, max_generations=1, seed=1)
        result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config).run()

        assert result.generations_run == 1
        assert result.best_generation == 0


class TestCancellation:
    """External cancellation between generations."""

    def test_cancel_before_run(self, constant_synth, zero_target):
        controller = EvolutionController([(0.0, 1.0)], constant_synth, zero_target,
                                         EvolutionConfig(population_size=5, seed=1))
        controller.cancel()
        result = controller.run()

        assert result.termination_reason is TerminationReason.CANCELLED
        assert result.generations_run == 0
        assert result.best_genome is None
        assert controller.state is EvolutionState.TERMINATED

    def test_cancel_from_callback(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=5, max_generations=50, seed=1)
        controller = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config,
                                         callbacks=[CancelAt(2)])
        result = controller.run()

        assert controller.cancelled
        assert result.termination_reason is TerminationReason.CANCELLED
        assert result.generations_run == 3
        assert result.best_genome is not None


class TestCallbacksAndResults:
    """Observers and result reporting."""

    def test_failing_callback_does_not_abort(self, constant_synth, zero_target):
        broken = Mock(spec=IGenerationCallback)
        broken.notify.side_effect = RuntimeError("plot window closed")
        config = EvolutionConfig(population_size=5, max_generations=3, seed=1)
        result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config,
                                     callbacks=[broken]).run()

        assert result.generations_run == 3
        assert broken.notify.call_count == 3

    def test_logging_callback(self, constant_synth, zero_target, caplog):
        caplog.set_level(logging.INFO, logger="ga_synth")
        config = EvolutionConfig(population_size=5, max_generations=2, seed=1)
        EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config,
                            callbacks=[LoggingCallback(every=1)]).run()

        assert "Generation 0: best=" in caplog.text
        assert "Evolution finished" in caplog.text

    def test_generation_records(self, constant_synth, zero_target):
        callback = RecordingCallback()
        config = EvolutionConfig(population_size=6, max_generations=4, seed=1)
        result = EvolutionController([(0.0, 1.0)], constant_synth, zero_target, config,
                                     callbacks=[callback]).run()

        assert [r.generation for r in callback.records] == [0, 1, 2, 3]
        assert callback.records[0].rendered == 6
        assert callback.records[0].improved
        for record in result.generation_stats:
            assert record.best_fitness <= record.mean_fitness <= record.worst_fitness
            assert record.rendered + record.cached == 6

    def test_result_to_dict(self, constant_synth, zero_target):
        config = EvolutionConfig(population_size=6, max_generations=5, seed=1)
        result = EvolutionController({'level': (0.0, 1.0)}, constant_synth, zero_target, config).run()
        summary = result.to_dict()

        assert summary['termination_reason'] == 'max_generations'
        assert summary['direction'] == 'minimize'
        assert summary['generations_run'] == 5
        assert list(summary['best_parameters']) == ['level']
        assert len(summary['generation_stats']) == 5
        assert summary['performance_metrics']['total_evaluations'] == result.total_evaluations

    def test_find_convergence_generation(self):
        assert find_convergence_generation([10.0, 5.0]) is None
        assert find_convergence_generation([10.0, 5.0, 2.0, 1.999, 1.998]) == 4
        assert find_convergence_generation([float("inf"), 1.0, 1.0, 1.0]) == 3
