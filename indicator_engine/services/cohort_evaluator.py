"""
Cohort evaluation against an external query provider.

Key patterns:
- Protocol-based dependency injection: the EMR storage is only reachable
  through QueryProvider, so tests and adapters plug in structurally
- Recursive evaluation by expression variant with set algebra
- Fail fast: any provider error aborts the whole evaluation; there is no
  partial cohort
"""

import time
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol

import structlog

from indicator_engine.domain.expressions import (
    AllOf,
    AnyOf,
    Atomic,
    CohortExpression,
    Compose,
    Not,
    ParameterRef,
)
from indicator_engine.domain.models import Cohort, ParameterBinding, PatientId
from indicator_engine.exceptions import (
    MissingParameterError,
    ProviderFailure,
    UnboundedComplementError,
)

logger = structlog.get_logger(__name__)

# Reorders and/or children before evaluation; must not change the result
OperandOrder = Callable[[Sequence[CohortExpression]], Sequence[CohortExpression]]


class QueryProvider(Protocol):
    """
    Capability the engine needs from patient storage.

    Adapters and test doubles implement the two methods structurally.
    """

    def query_patients(
        self, predicate_name: str, args: Sequence[Any], binding: ParameterBinding
    ) -> Iterable[PatientId]:
        """
        Patients satisfying a single predicate.

        Args:
            predicate_name: Name used in ``atomic(...)``
            args: Static arguments of the predicate (concepts, programs, ...)
            binding: Values of exactly the parameters the predicate declares
        """
        ...

    def universe(self) -> Iterable[PatientId] | None:
        """All known patients, or None when the provider has no closed world."""
        ...


class _Evaluation:
    """State for one evaluate() call: provider, universe memo, counters."""

    def __init__(self, evaluator: "CohortEvaluator", provider: QueryProvider) -> None:
        self.evaluator = evaluator
        self.provider = provider
        self.primitive_queries = 0
        self._universe: Cohort | None = None

    def universe(self) -> Cohort:
        if self._universe is not None:
            return self._universe

        universe_fn = getattr(self.provider, "universe", None)
        if universe_fn is None:
            raise UnboundedComplementError()
        try:
            members = universe_fn()
            universe = None if members is None else frozenset(members)
        except Exception as e:
            self.evaluator.logger.error("universe_query_failed", error=str(e))
            raise ProviderFailure(None, e) from e

        if universe is None:
            raise UnboundedComplementError()
        self._universe = universe
        return universe

    def visit(self, expr: CohortExpression, binding: ParameterBinding) -> Cohort:
        if isinstance(expr, Atomic):
            return self._atomic(expr, binding)

        if isinstance(expr, AllOf):
            if not expr.operands:
                return self.universe()
            result: Cohort | None = None
            for operand in self.evaluator.ordered(expr.operands):
                members = self.visit(operand, binding)
                result = members if result is None else result & members
                if not result:
                    # Remaining operands cannot add members to an empty intersection
                    return frozenset()
            return result if result is not None else frozenset()

        if isinstance(expr, AnyOf):
            union: set[PatientId] = set()
            for operand in self.evaluator.ordered(expr.operands):
                union |= self.visit(operand, binding)
            return frozenset(union)

        if isinstance(expr, Not):
            # Universe first, so an unbounded provider fails before any query runs
            universe = self.universe()
            return universe - self.visit(expr.operand, binding)

        if isinstance(expr, Compose):
            inner = dict(binding)
            for name, value in expr.overrides:
                if isinstance(value, ParameterRef):
                    if value.name not in binding:
                        raise MissingParameterError([value.name])
                    inner[name] = binding[value.name]
                else:
                    inner[name] = value
            return self.visit(expr.operand, inner)

        raise TypeError(f"Unsupported expression type: {type(expr).__name__}")

    def _atomic(self, expr: Atomic, binding: ParameterBinding) -> Cohort:
        missing = expr.parameters - binding.keys()
        if missing:
            raise MissingParameterError(missing)
        scoped = {name: binding[name] for name in sorted(expr.parameters)}

        self.primitive_queries += 1
        start_time = time.perf_counter()
        try:
            members = frozenset(self.provider.query_patients(expr.predicate_name, expr.args, scoped))
        except Exception as e:
            self.evaluator.logger.error(
                "primitive_query_failed", predicate=expr.predicate_name, error=str(e)
            )
            raise ProviderFailure(expr.predicate_name, e) from e

        self.evaluator.logger.debug(
            "primitive_query_completed",
            predicate=expr.predicate_name,
            size=len(members),
            duration_seconds=round(time.perf_counter() - start_time, 4),
        )
        return members


class CohortEvaluator:
    """
    Resolves expressions into concrete patient sets.

    The evaluator holds no per-call state and can be shared between threads;
    thread safety of the provider itself is the provider's concern.
    """

    def __init__(self, operand_order: OperandOrder | None = None) -> None:
        """
        Args:
            operand_order: Optional hook that reorders and/or children, e.g.
                to run the most selective primitive first
        """
        self.operand_order = operand_order
        self.logger = logger.bind(component="cohort_evaluator")

    def ordered(self, operands: Sequence[CohortExpression]) -> Sequence[CohortExpression]:
        if self.operand_order is None:
            return operands
        return self.operand_order(operands)

    def evaluate(
        self, expr: CohortExpression, binding: ParameterBinding, provider: QueryProvider
    ) -> Cohort:
        """
        Evaluate ``expr`` under ``binding``.

        Raises:
            MissingParameterError: If the binding lacks a free parameter of ``expr``
            UnboundedComplementError: If a complement or empty intersection
                needs a universe the provider does not define
            ProviderFailure: If any provider call fails
        """
        missing = expr.free_parameters() - binding.keys()
        if missing:
            raise MissingParameterError(missing)

        evaluation = _Evaluation(self, provider)
        start_time = time.perf_counter()
        result = evaluation.visit(expr, binding)

        self.logger.debug(
            "cohort_evaluated",
            size=len(result),
            primitive_queries=evaluation.primitive_queries,
            duration_seconds=round(time.perf_counter() - start_time, 4),
        )
        return result
