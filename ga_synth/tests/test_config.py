"""Tests for EvolutionConfig validation and loading."""

import json

import pytest

from ga_synth.config import EvolutionConfig
from ga_synth.errors import ConfigurationError


class TestValidation:
    """Option validation."""

    def test_defaults_are_valid(self):
        config = EvolutionConfig().validate()
        assert config.population_size == 100
        assert config.selection_strategy == 'tournament'
        assert config.elitism == 0
        assert config.fitness_scaling is None

    @pytest.mark.parametrize("options", [
        {'population_size': 0},
        {'population_size': -5},
        {'population_size': 2.5},
        {'population_size': True},
        {'max_generations': 0},
        {'crossover_rate': 1.5},
        {'mutation_rate': -0.1},
        {'tournament_size': 0},
        {'mutation_scale': 0.0},
        {'elitism': -1},
        {'elitism': 10, 'population_size': 10},
        {'selection_strategy': 'rank'},
        {'crossover_strategy': 'arithmetic'},
        {'mutation_strategy': 'creep'},
        {'fitness_metric': 'cosine'},
        {'fitness_scaling': 'log'},
        {'stagnation_generations': 0},
        {'evaluation_timeout': 0.0},
        {'evaluation_timeout': '2'},
        {'evaluation_timeout': float('nan')},
        {'max_workers': 0},
        {'max_workers': '4'},
        {'target_fitness': '0.1'},
        {'target_fitness': float('inf')},
        {'mutation_scale': True},
        {'random_immigrants': -1},
        {'random_immigrants': 1.5},
        {'elitism': 3, 'random_immigrants': 8, 'population_size': 10},
    ])
    def test_invalid_options(self, options):
        with pytest.raises(ConfigurationError):
            EvolutionConfig(**options).validate()

    def test_all_errors_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EvolutionConfig(population_size=0, crossover_rate=2.0, mutation_rate=-1.0).validate()
        message = str(exc_info.value)
        assert 'population_size' in message
        assert 'crossover_rate' in message
        assert 'mutation_rate' in message

    @pytest.mark.parametrize("rate", [0.0, 1.0, 0, 1])
    def test_probability_bounds_inclusive(self, rate):
        EvolutionConfig(crossover_rate=rate, mutation_rate=rate).validate()

    def test_immigrants_may_fill_non_elite_slots(self):
        config = EvolutionConfig(population_size=10, elitism=2, random_immigrants=8).validate()
        assert config.random_immigrants == 8

    def test_string_target_from_json_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({'target_fitness': '0.1'}))
        with pytest.raises(ConfigurationError, match="target_fitness"):
            EvolutionConfig.from_json_file(path)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            EvolutionConfig(population_size=0).validate()


class TestLoading:
    """Dictionary and JSON loading."""

    def test_round_trip_dict(self):
        config = EvolutionConfig(population_size=20, seed=42, fitness_scaling='sigmoid')
        assert EvolutionConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigurationError, match="popsize"):
            EvolutionConfig.from_dict({'popsize': 10})

    def test_from_dict_validates(self):
        with pytest.raises(ConfigurationError):
            EvolutionConfig.from_dict({'population_size': 0})

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({'population_size': 30, 'mutation_rate': 0.2, 'elitism': 2}))
        config = EvolutionConfig.from_json_file(path)
        assert config.population_size == 30
        assert config.mutation_rate == 0.2
        assert config.elitism == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            EvolutionConfig.from_json_file(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{population_size: 10")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            EvolutionConfig.from_json_file(path)

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ConfigurationError, match="JSON object"):
            EvolutionConfig.from_json_file(str(path))
