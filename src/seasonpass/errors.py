"""Exception hierarchy for the season-pass analysis pipeline."""

from typing import Optional


class SeasonPassError(Exception):
    """Base class for all pipeline errors."""


class SchemaError(SeasonPassError, ValueError):
    """Raw input value outside the declared category levels, or a missing column."""

    def __init__(self, message: str, column: Optional[str] = None, values=None):
        super().__init__(message)
        self.column = column
        self.values = list(values) if values is not None else []


class AggregationInvariantError(SeasonPassError):
    """Aggregated counts violate ``0 <= successes <= trials`` or conservation."""


class FitError(SeasonPassError, RuntimeError):
    """The sampler failed to produce a posterior."""


class ConvergenceError(FitError):
    """A posterior was produced but its diagnostics are not trustworthy."""

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report


class PredictionDomainError(SeasonPassError, KeyError):
    """Prediction requested for a level that is not in the category encoding."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
