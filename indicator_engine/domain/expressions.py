"""
Composable cohort expressions.

An expression is an immutable tree of predicates over patient identifiers:

- Atomic: a named predicate answered by the query provider, with static
  arguments and the report parameters it consumes
- AllOf / AnyOf: intersection / union of any number of operands
- Not: complement within the provider's patient universe
- Compose: re-maps the parameters of an inner expression onto outer
  parameters or fixed values

Parameters are declared dependencies, not string templates, so every name an
expression needs is known before any report runs.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from indicator_engine.exceptions import UndeclaredParameterError


class ParameterRef(BaseModel):
    """Reference to a parameter of the enclosing scope, e.g. ``${start_date}``."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)

    def __str__(self) -> str:
        return f"${{{self.name}}}"


class CohortExpression(BaseModel):
    """Base class for all expression variants.

    Supports ``a & b``, ``a | b`` and ``~a`` as shorthands for
    :func:`all_of`, :func:`any_of` and :func:`negate`.
    """

    model_config = ConfigDict(frozen=True)

    def free_parameters(self) -> frozenset[str]:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.describe()

    def __and__(self, other: CohortExpression) -> AllOf:
        return all_of(self, other)

    def __or__(self, other: CohortExpression) -> AnyOf:
        return any_of(self, other)

    def __invert__(self) -> Not:
        return negate(self)


class Atomic(CohortExpression):
    """Leaf predicate evaluated by the query provider."""

    kind: Literal["atomic"] = "atomic"
    predicate_name: str = Field(min_length=1)
    args: tuple[Any, ...] = ()
    parameters: frozenset[str] = frozenset()

    def free_parameters(self) -> frozenset[str]:
        return self.parameters

    def describe(self) -> str:
        args = ", ".join(str(getattr(a, "name", a)) for a in self.args)
        text = f"{self.predicate_name}({args})"
        if self.parameters:
            text += f"[{', '.join(sorted(self.parameters))}]"
        return text


class AllOf(CohortExpression):
    """Intersection. With no operands this is the whole universe."""

    kind: Literal["all_of"] = "all_of"
    operands: tuple[CohortExpression, ...] = ()

    def free_parameters(self) -> frozenset[str]:
        return frozenset().union(*(op.free_parameters() for op in self.operands))

    def describe(self) -> str:
        if not self.operands:
            return "ALL"
        return "(" + " AND ".join(op.describe() for op in self.operands) + ")"


class AnyOf(CohortExpression):
    """Union. With no operands this is the empty cohort."""

    kind: Literal["any_of"] = "any_of"
    operands: tuple[CohortExpression, ...] = ()

    def free_parameters(self) -> frozenset[str]:
        return frozenset().union(*(op.free_parameters() for op in self.operands))

    def describe(self) -> str:
        if not self.operands:
            return "NONE"
        return "(" + " OR ".join(op.describe() for op in self.operands) + ")"


class Not(CohortExpression):
    """Complement of the operand within the provider's universe."""

    kind: Literal["not"] = "not"
    operand: CohortExpression

    def free_parameters(self) -> frozenset[str]:
        return self.operand.free_parameters()

    def describe(self) -> str:
        return f"NOT {self.operand.describe()}"


class Compose(CohortExpression):
    """Binds parameters of the operand to outer parameters or fixed values.

    Parameters of the operand that are not overridden pass through under
    their own name.
    """

    kind: Literal["compose"] = "compose"
    operand: CohortExpression
    overrides: tuple[tuple[str, Any], ...] = ()

    @model_validator(mode="after")
    def overrides_must_be_declared(self) -> Compose:
        inner = self.operand.free_parameters()
        undeclared = {name for name, _ in self.overrides} - inner
        if undeclared:
            raise UndeclaredParameterError(
                f"Cannot map undeclared parameter(s) {', '.join(sorted(undeclared))} "
                f"onto {self.operand.describe()}; it declares "
                f"{', '.join(sorted(inner)) or 'no parameters'}",
                parameters=undeclared,
            )
        return self

    @property
    def override_map(self) -> dict[str, Any]:
        return dict(self.overrides)

    def free_parameters(self) -> frozenset[str]:
        mapped = {name for name, _ in self.overrides}
        referenced = {v.name for _, v in self.overrides if isinstance(v, ParameterRef)}
        return (self.operand.free_parameters() - mapped) | referenced

    def describe(self) -> str:
        mapping = ",".join(f"{name}={value}" for name, value in self.overrides)
        return f"{self.operand.describe()}{{{mapping}}}"


def _check_operands(exprs: Iterable[Any]) -> list[CohortExpression]:
    operands = list(exprs)
    for op in operands:
        if not isinstance(op, CohortExpression):
            raise TypeError(f"Expected a CohortExpression, got {type(op).__name__}")
    return operands


def atomic(predicate_name: str, *args: Any, parameters: Iterable[str] = ()) -> Atomic:
    """Leaf node referencing an external predicate by name."""
    return Atomic(predicate_name=predicate_name, args=tuple(args), parameters=frozenset(parameters))


def with_parameter(expr: CohortExpression, name: str) -> Atomic:
    """Return a copy of a leaf predicate that also consumes parameter ``name``."""
    if not isinstance(expr, Atomic):
        raise TypeError(f"with_parameter() applies to atomic predicates, got {type(expr).__name__}")
    if not name:
        raise UndeclaredParameterError("Parameter name cannot be empty")
    return expr.model_copy(update={"parameters": expr.parameters | {name}})


def all_of(*exprs: CohortExpression) -> AllOf:
    operands: list[CohortExpression] = []
    for op in _check_operands(exprs):
        # Nested intersections are flattened
        operands.extend(op.operands if isinstance(op, AllOf) else [op])
    return AllOf(operands=tuple(operands))


def any_of(*exprs: CohortExpression) -> AnyOf:
    operands: list[CohortExpression] = []
    for op in _check_operands(exprs):
        operands.extend(op.operands if isinstance(op, AnyOf) else [op])
    return AnyOf(operands=tuple(operands))


def negate(expr: CohortExpression) -> Not:
    (operand,) = _check_operands([expr])
    return Not(operand=operand)


def param(name: str) -> ParameterRef:
    return ParameterRef(name=name)


def compose(expr: CohortExpression, **overrides: Any) -> Compose:
    """Map parameters of ``expr``.

    Example:
        compose(started_art(), on_or_after=param("start_date"), on_or_before=param("end_date"))

    Raises:
        UndeclaredParameterError: If an override names a parameter ``expr`` does not declare
    """
    (operand,) = _check_operands([expr])
    return Compose(operand=operand, overrides=tuple(sorted(overrides.items())))


def free_parameters(expr: CohortExpression) -> frozenset[str]:
    """Parameter names an expression still needs from its binding."""
    return expr.free_parameters()
