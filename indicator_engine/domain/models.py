"""
Domain models for cohort indicators.

These models represent the core reporting concepts and are independent of any
EMR storage. They use Pydantic for validation and are immutable once built:
definitions are constructed at startup and only read afterwards.
"""

import calendar
from collections.abc import Hashable, Mapping
from datetime import date
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from indicator_engine.domain.expressions import CohortExpression
from indicator_engine.exceptions import UndeclaredParameterError

# Opaque patient identifier; only equality and hashing are relied upon
PatientId = Hashable

# Parameter name -> value (date, int, identifier list, ...)
ParameterBinding = Mapping[str, Any]

# Result of evaluating an expression under a binding
Cohort = frozenset[PatientId]

# Report-level parameter names
START_DATE = "start_date"
END_DATE = "end_date"


class IndicatorDefinition(BaseModel):
    """A named cohort expression reduced to a count for a reporting period.

    ``required_parameters`` is derived from the expression when omitted. When
    given explicitly it must match the expression's free parameters exactly.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    expression: CohortExpression
    description: str = ""
    required_parameters: frozenset[str] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def derive_required_parameters(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("required_parameters") is None:
            expression = data.get("expression")
            if isinstance(expression, CohortExpression):
                data = {**data, "required_parameters": expression.free_parameters()}
        return data

    @model_validator(mode="after")
    def parameters_match_expression(self) -> Self:
        free = self.expression.free_parameters()
        if self.required_parameters != free:
            mismatched = self.required_parameters ^ free
            raise UndeclaredParameterError(
                f"Indicator '{self.name}' declares {sorted(self.required_parameters)} "
                f"but its expression uses {sorted(free)}",
                parameters=mismatched,
            )
        return self

    def missing_parameters(self, binding: ParameterBinding) -> frozenset[str]:
        return self.required_parameters - binding.keys()


class ReportingPeriod(BaseModel):
    """Inclusive date range a report is run for."""

    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def start_before_end(self) -> Self:
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date} must not be after end_date {self.end_date}"
            )
        return self

    @classmethod
    def for_month(cls, year: int, month: int) -> "ReportingPeriod":
        last_day = calendar.monthrange(year, month)[1]
        return cls(start_date=date(year, month, 1), end_date=date(year, month, last_day))

    @classmethod
    def for_quarter(cls, year: int, quarter: int) -> "ReportingPeriod":
        if quarter not in (1, 2, 3, 4):
            raise ValueError(f"quarter must be 1-4, got {quarter}")
        first_month = 3 * (quarter - 1) + 1
        last_month = first_month + 2
        return cls(
            start_date=date(year, first_month, 1),
            end_date=date(year, last_month, calendar.monthrange(year, last_month)[1]),
        )

    def binding(self) -> dict[str, date]:
        return {START_DATE: self.start_date, END_DATE: self.end_date}


def _canonical_value(value: Any) -> Hashable:
    if isinstance(value, Mapping):
        return tuple(sorted((str(k), _canonical_value(v)) for k, v in value.items()))
    if isinstance(value, set | frozenset):
        return tuple(sorted((_canonical_value(v) for v in value), key=repr))
    if isinstance(value, list | tuple):
        return tuple(_canonical_value(v) for v in value)
    return value


def canonical_binding(
    binding: ParameterBinding, names: frozenset[str] | None = None
) -> tuple[tuple[str, Hashable], ...]:
    """Hashable, order-independent form of a binding, used for cache keys.

    Args:
        binding: Parameter values
        names: If given, only these parameters are included

    Returns:
        Sorted tuple of (name, value) pairs with lists and sets made hashable
    """
    return tuple(
        (name, _canonical_value(value))
        for name, value in sorted(binding.items())
        if names is None or name in names
    )
