"""Run configuration for the genetic algorithm."""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json
import logging
import math

from .errors import ConfigurationError
from .fitness import FITNESS_METRICS, FITNESS_SCALINGS
from .operators import CROSSOVER_STRATEGIES, MUTATION_STRATEGIES, SELECTION_STRATEGIES

logger = logging.getLogger(__name__)

# GA defaults
DEFAULT_POPULATION_SIZE = 100
DEFAULT_MAX_GENERATIONS = 1_000
DEFAULT_CROSSOVER_RATE = 0.9
DEFAULT_MUTATION_RATE = 0.05
DEFAULT_MUTATION_SCALE = 0.1
DEFAULT_TOURNAMENT_SIZE = 3
DEFAULT_ELITISM = 0
DEFAULT_RANDOM_IMMIGRANTS = 0

# Fitness defaults
DEFAULT_FITNESS_METRIC = 'squared_error'
DEFAULT_FITNESS_SCALE = 1.0


@dataclass
class EvolutionConfig:
    """Options recognized by the evolution controller."""
    population_size: int = DEFAULT_POPULATION_SIZE
    max_generations: int = DEFAULT_MAX_GENERATIONS

    # Operators
    selection_strategy: str = 'tournament'
    tournament_size: int = DEFAULT_TOURNAMENT_SIZE
    crossover_strategy: str = 'blend'
    crossover_rate: float = DEFAULT_CROSSOVER_RATE
    mutation_strategy: str = 'gaussian'
    mutation_rate: float = DEFAULT_MUTATION_RATE
    mutation_scale: float = DEFAULT_MUTATION_SCALE
    elitism: int = DEFAULT_ELITISM
    random_immigrants: int = DEFAULT_RANDOM_IMMIGRANTS  # fresh random genomes per generation

    # Fitness
    fitness_metric: str = DEFAULT_FITNESS_METRIC
    normalize_fitness: bool = False
    fitness_scaling: Optional[str] = None  # None (minimize distance) or 'sigmoid' (maximize)
    fitness_scale: float = DEFAULT_FITNESS_SCALE

    # Termination
    target_fitness: Optional[float] = None
    stagnation_generations: Optional[int] = None

    # Evaluation
    evaluation_timeout: Optional[float] = None  # seconds per render
    max_workers: Optional[int] = None  # defaults to os.cpu_count()
    seed: Optional[int] = None

    def validate(self) -> 'EvolutionConfig':
        """
        Check every option.

        Raises:
            ConfigurationError: Listing every invalid option
        """
        errors = []

        if not _is_int(self.population_size) or self.population_size <= 0:
            errors.append(f"population_size must be a positive integer, got {self.population_size!r}")
        if not _is_int(self.max_generations) or self.max_generations <= 0:
            errors.append(f"max_generations must be a positive integer, got {self.max_generations!r}")

        for name in ('crossover_rate', 'mutation_rate'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                errors.append(f"{name} must be a probability in [0, 1], got {value!r}")

        if self.selection_strategy not in SELECTION_STRATEGIES:
            errors.append(f"Unknown selection_strategy '{self.selection_strategy}'")
        if self.crossover_strategy not in CROSSOVER_STRATEGIES:
            errors.append(f"Unknown crossover_strategy '{self.crossover_strategy}'")
        if self.mutation_strategy not in MUTATION_STRATEGIES:
            errors.append(f"Unknown mutation_strategy '{self.mutation_strategy}'")
        if self.fitness_metric not in FITNESS_METRICS:
            errors.append(f"Unknown fitness_metric '{self.fitness_metric}'")
        if self.fitness_scaling is not None and self.fitness_scaling not in FITNESS_SCALINGS:
            errors.append(f"Unknown fitness_scaling '{self.fitness_scaling}'")

        if not _is_int(self.tournament_size) or self.tournament_size < 1:
            errors.append(f"tournament_size must be at least 1, got {self.tournament_size!r}")
        if not _is_number(self.mutation_scale) or self.mutation_scale <= 0:
            errors.append(f"mutation_scale must be positive, got {self.mutation_scale!r}")
        if not _is_number(self.fitness_scale) or self.fitness_scale <= 0:
            errors.append(f"fitness_scale must be positive, got {self.fitness_scale!r}")

        if not _is_int(self.elitism) or self.elitism < 0:
            errors.append(f"elitism must be a non-negative integer, got {self.elitism!r}")
        elif _is_int(self.population_size) and self.elitism >= self.population_size > 0:
            errors.append(f"elitism ({self.elitism}) must be smaller than population_size ({self.population_size})")

        if not _is_int(self.random_immigrants) or self.random_immigrants < 0:
            errors.append(f"random_immigrants must be a non-negative integer, got {self.random_immigrants!r}")
        elif (_is_int(self.elitism) and _is_int(self.population_size)
              and self.elitism + self.random_immigrants > self.population_size > 0):
            errors.append(f"elitism + random_immigrants ({self.elitism + self.random_immigrants}) "
                          f"must not exceed population_size ({self.population_size})")

        if self.stagnation_generations is not None and (
                not _is_int(self.stagnation_generations) or self.stagnation_generations < 1):
            errors.append(f"stagnation_generations must be at least 1, got {self.stagnation_generations!r}")
        if self.target_fitness is not None and not _is_number(self.target_fitness):
            errors.append(f"target_fitness must be a finite number, got {self.target_fitness!r}")
        if self.evaluation_timeout is not None and (
                not _is_number(self.evaluation_timeout) or self.evaluation_timeout <= 0):
            errors.append(f"evaluation_timeout must be positive, got {self.evaluation_timeout!r}")
        if self.max_workers is not None and (not _is_int(self.max_workers) or self.max_workers < 1):
            errors.append(f"max_workers must be at least 1, got {self.max_workers!r}")

        if errors:
            raise ConfigurationError("Invalid evolution config: " + "; ".join(errors))
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EvolutionConfig':
        """
        Build and validate a config from a plain dictionary.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration options: {', '.join(unknown)}")
        return cls(**data).validate()

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> 'EvolutionConfig':
        """
        Load a config from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigurationError: If the JSON is malformed or invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a JSON object, got {type(data).__name__}")

        config = cls.from_dict(data)
        logger.info(f"Loaded evolution config from {path}")
        return config


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
