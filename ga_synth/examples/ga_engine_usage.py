"""
Usage example for the ga_synth GA engine.

This example evolves oscillator parameters toward a target waveform. It shows:

1. Rendering a target with a known configuration
2. Running the genetic algorithm with a custom configuration
3. Observing generations through a callback
4. Comparing against the hill-climbing and pymoo baselines
5. Loading a configuration from JSON
"""

import json
import logging
import tempfile
from pathlib import Path

import numpy as np

from ga_synth import (
    EvolutionConfig,
    EvolutionController,
    GenomeSpace,
    HarmonicSynthesizer,
    HillClimbingConfig,
    HillClimbingEvolver,
    IGenerationCallback,
    OscillatorSynthesizer,
    PymooSynthEvolver,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_RATE = 8000
DURATION = 0.1


class ProgressPrinter(IGenerationCallback):
    """Prints a progress line every few generations."""

    def __init__(self, every: int = 10):
        self.every = every

    def notify(self, record, controller):
        if record.generation % self.every == 0:
            print(f"  gen {record.generation:4d}: best={record.best_fitness:.5f} "
                  f"mean={record.mean_fitness:.5f} diversity={record.diversity:.3f}")


def create_target(synth: OscillatorSynthesizer):
    """Render the waveform the GA should rediscover."""
    target_params = {
        'freq': 220.0,
        'sine_amp': 0.6, 'sine_phase': 0.0,
        'square_amp': 0.2, 'square_phase': 1.0,
        'saw_amp': 0.0, 'saw_phase': 0.0,
    }
    space = GenomeSpace(synth.constraint_set())
    return synth.render(space.parameters_to_genome(target_params)), target_params


def basic_evolution_example():
    """
    Evolve all seven oscillator genes toward a rendered target.
    """
    print("=" * 60)
    print("BASIC EVOLUTION EXAMPLE")
    print("=" * 60)

    synth = OscillatorSynthesizer(duration=DURATION, sample_rate=SAMPLE_RATE)
    target, target_params = create_target(synth)

    # Narrow the frequency range around the target to keep the demo short
    bounds = synth.constraint_set()
    bounds['freq'] = (100.0, 400.0)

    config = EvolutionConfig(
        population_size=60,
        max_generations=150,
        mutation_rate=0.2,
        elitism=2,
        fitness_metric='spectral_mse',
        stagnation_generations=40,
        seed=42,
    )

    controller = EvolutionController(bounds, synth, target, config, callbacks=[ProgressPrinter()])
    result = controller.run()

    print("\nEVOLUTION RESULTS:")
    print(f"Termination: {result.termination_reason.value}")
    print(f"Best fitness: {result.best_fitness:.6f} (generation {result.best_generation})")
    print(f"Evaluations: {result.total_evaluations} rendered, {result.cache_hits} cached, "
          f"{result.failure_count} failed")

    print("\nBest parameters vs target:")
    for name, value in result.best_parameters.items():
        print(f"  {name:14s} {value:9.4f}  (target {target_params[name]:9.4f})")

    return result


def baseline_comparison_example():
    """
    Compare the GA with the hill climber and the pymoo GA on a harmonic synth.
    """
    print("=" * 60)
    print("BASELINE COMPARISON")
    print("=" * 60)

    synth = HarmonicSynthesizer(n_harmonics=5, duration=DURATION, sample_rate=SAMPLE_RATE, max_freq=500.0)
    target = synth.render(np.array([110.0, 1.0, 0.5, 0.0, 0.25, 0.0]))
    bounds = synth.constraint_set()

    config = EvolutionConfig(population_size=40, max_generations=60, elitism=1,
                             fitness_scaling='sigmoid', fitness_scale=100.0, seed=7)

    results = {
        'ga': EvolutionController(bounds, synth, target, config, callbacks=[]).run(),
        'pymoo': PymooSynthEvolver(synth, config).evolve(bounds, target),
        'hill_climbing': HillClimbingEvolver(
            synth, HillClimbingConfig(max_iterations=2400, seed=7)).evolve(bounds, target),
    }

    for name, result in results.items():
        print(f"  {name:14s} best={result.best_fitness:.6f} ({result.direction.value}), "
              f"evaluations={result.total_evaluations}, time={result.elapsed:.2f}s")

    return results


def config_file_example():
    """
    Load run options from a JSON file.
    """
    print("=" * 60)
    print("CONFIG FILE EXAMPLE")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "evolution.json"
        path.write_text(json.dumps({
            'population_size': 30,
            'max_generations': 20,
            'selection_strategy': 'roulette',
            'crossover_strategy': 'uniform',
            'mutation_strategy': 'uniform',
            'mutation_rate': 0.1,
            'seed': 1,
        }, indent=2))

        config = EvolutionConfig.from_json_file(path)
        print(json.dumps(config.to_dict(), indent=2))
        return config


def main():
    """
    Main function demonstrating the GA engine.
    """
    print("GA SYNTH - GA ENGINE DEMO")
    print("=" * 60)

    basic_evolution_example()
    print()
    baseline_comparison_example()
    print()
    config_file_example()

    print("\n" + "=" * 60)
    print("DEMO COMPLETE")
    print("=" * 60)


if __name__ == "__main__":
    main()
