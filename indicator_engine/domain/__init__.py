"""Cohort expressions and indicator definitions."""

from .expressions import (
    AllOf,
    AnyOf,
    Atomic,
    CohortExpression,
    Compose,
    Not,
    ParameterRef,
    all_of,
    any_of,
    atomic,
    compose,
    free_parameters,
    negate,
    param,
    with_parameter,
)
from .models import (
    END_DATE,
    START_DATE,
    Cohort,
    IndicatorDefinition,
    ParameterBinding,
    PatientId,
    ReportingPeriod,
    canonical_binding,
)

__all__ = [
    "AllOf",
    "AnyOf",
    "Atomic",
    "Cohort",
    "CohortExpression",
    "Compose",
    "END_DATE",
    "IndicatorDefinition",
    "Not",
    "ParameterBinding",
    "ParameterRef",
    "PatientId",
    "ReportingPeriod",
    "START_DATE",
    "all_of",
    "any_of",
    "atomic",
    "canonical_binding",
    "compose",
    "free_parameters",
    "negate",
    "param",
    "with_parameter",
]
