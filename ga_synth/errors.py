"""Exceptions and warnings raised by the GA synthesis engine."""


class GASynthError(Exception):
    """Base class for all ga_synth errors."""


class ConfigurationError(GASynthError, ValueError):
    """Invalid run configuration. Raised before any generation runs."""


class EvaluationFailure(GASynthError):
    """A single genome could not be rendered or scored.

    Always handled at the evaluation boundary: the genome receives the worst
    possible score and the run continues.
    """

    def __init__(self, message: str, genome_index=None):
        super().__init__(message)
        self.genome_index = genome_index


class ConvergenceWarning(UserWarning):
    """Run hit its generation limit without reaching the target fitness."""
