"""
Exception hierarchy for the indicator engine.

All engine failures are typed and surfaced to the caller. A silently empty
cohort is indistinguishable from a correctly empty one, so no error here is
ever converted into a zero count.

Exception Hierarchy:
    IndicatorEngineError (base)
    |-- DefinitionError - malformed expressions, raised at definition time
    |   +-- UndeclaredParameterError
    |-- EvaluationError - per-request failures
    |   |-- MissingParameterError
    |   |-- UnboundedComplementError
    |   +-- ProviderFailure
    +-- LibraryError - registry misuse
        |-- DuplicateIndicatorError
        +-- NotFoundError
"""

from collections.abc import Iterable


class IndicatorEngineError(Exception):
    """Base exception for all indicator engine errors.

    Example:
        try:
            count = evaluator.evaluate("on_art", period.binding())
        except IndicatorEngineError as e:
            log.error("indicator_failed", error=str(e))
    """


class DefinitionError(IndicatorEngineError):
    """Raised when a cohort expression or indicator definition is malformed."""


class UndeclaredParameterError(DefinitionError):
    """Raised when an expression references a parameter that is not declared.

    Attributes:
        parameters: The offending parameter names
    """

    def __init__(self, message: str, parameters: Iterable[str] = ()) -> None:
        self.parameters = frozenset(parameters)
        super().__init__(message)


class EvaluationError(IndicatorEngineError):
    """Base class for failures while evaluating a cohort or indicator."""


class MissingParameterError(EvaluationError):
    """Raised when a binding lacks parameters the expression requires.

    Attributes:
        missing: Sorted list of missing parameter names
        indicator_name: Indicator being evaluated (optional)
    """

    def __init__(self, missing: Iterable[str], indicator_name: str | None = None) -> None:
        self.missing = sorted(missing)
        self.indicator_name = indicator_name
        target = f" for indicator '{indicator_name}'" if indicator_name else ""
        super().__init__(f"Missing parameters{target}: {', '.join(self.missing)}")


class UnboundedComplementError(EvaluationError):
    """Raised when a complement is requested but the provider has no universe."""

    def __init__(self, message: str = "Query provider does not define a patient universe") -> None:
        super().__init__(message)


class ProviderFailure(EvaluationError):
    """Wraps any failure raised by the external query provider.

    Attributes:
        predicate_name: Predicate being queried, or None when not tied to one
            (universe lookup, evaluation timeout)
        cause: The underlying exception
    """

    def __init__(self, predicate_name: str | None, cause: BaseException) -> None:
        self.predicate_name = predicate_name
        self.cause = cause
        target = f"predicate '{predicate_name}'" if predicate_name else "patient query"
        super().__init__(f"Query provider failed for {target}: {cause!r}")


class LibraryError(IndicatorEngineError):
    """Base class for indicator registry errors."""


class DuplicateIndicatorError(LibraryError):
    """Raised when an indicator name is registered twice."""

    def __init__(self, indicator_name: str) -> None:
        self.indicator_name = indicator_name
        super().__init__(f"Indicator '{indicator_name}' is already registered")


class NotFoundError(LibraryError):
    """Raised when a name cannot be resolved.

    Attributes:
        name: The name that was looked up
        available: Known names, for error messages (optional)
    """

    def __init__(self, name: str, kind: str = "Indicator", available: Iterable[str] = ()) -> None:
        self.name = name
        self.available = sorted(available)
        message = f"{kind} '{name}' not found"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)
