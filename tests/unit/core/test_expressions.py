"""
Tests for cohort expression construction in `indicator_engine/domain/expressions.py`.

Covers:
- Identity elements and flattening of all_of/any_of
- Immutability and operator shorthands
- Free parameter analysis through Compose
- Definition-time UndeclaredParameterError
"""

import pytest

from indicator_engine.domain.expressions import (
    AllOf,
    AnyOf,
    Atomic,
    Compose,
    Not,
    all_of,
    any_of,
    atomic,
    compose,
    free_parameters,
    negate,
    param,
    with_parameter,
)
from indicator_engine.exceptions import UndeclaredParameterError


@pytest.fixture
def enrolled() -> Atomic:
    return atomic("enrolledInProgram", "HIV", parameters=("on_or_after", "on_or_before"))


class TestConstruction:
    def test_atomic_keeps_args_and_parameters(self, enrolled: Atomic) -> None:
        assert enrolled.predicate_name == "enrolledInProgram"
        assert enrolled.args == ("HIV",)
        assert enrolled.parameters == frozenset({"on_or_after", "on_or_before"})

    def test_empty_combinators_are_identity_elements(self) -> None:
        assert all_of() == AllOf(operands=())
        assert any_of() == AnyOf(operands=())
        assert all_of().describe() == "ALL"
        assert any_of().describe() == "NONE"

    def test_operators_build_combinators(self, enrolled: Atomic) -> None:
        transfer = atomic("transferIn")

        assert isinstance(enrolled & transfer, AllOf)
        assert isinstance(enrolled | transfer, AnyOf)
        assert isinstance(~transfer, Not)
        assert (enrolled & ~transfer).operands == (enrolled, Not(operand=transfer))

    def test_nested_intersections_are_flattened(self) -> None:
        a, b, c = atomic("a"), atomic("b"), atomic("c")

        assert all_of(all_of(a, b), c).operands == (a, b, c)
        assert any_of(a, any_of(b, c)).operands == (a, b, c)
        # Different combinators are not merged
        assert all_of(any_of(a, b), c).operands == (any_of(a, b), c)

    def test_non_expression_operand_rejected(self) -> None:
        with pytest.raises(TypeError, match="Expected a CohortExpression"):
            all_of(atomic("a"), "b")  # type: ignore[arg-type]

        with pytest.raises(TypeError):
            negate(42)  # type: ignore[arg-type]

    def test_describe_is_readable(self, enrolled: Atomic) -> None:
        expr = compose(enrolled & ~atomic("transferIn"), on_or_after=param("start_date"))

        assert expr.describe() == (
            "(enrolledInProgram(HIV)[on_or_after, on_or_before] AND NOT transferIn())"
            "{on_or_after=${start_date}}"
        )
        assert str(expr) == expr.describe()


class TestImmutability:
    def test_expression_is_frozen(self, enrolled: Atomic) -> None:
        with pytest.raises(ValueError, match="frozen"):
            enrolled.predicate_name = "other"  # type: ignore[misc]

    def test_composing_does_not_mutate_operands(self, enrolled: Atomic) -> None:
        other = atomic("startedArt", parameters=("on_or_before",))
        before = (enrolled.model_dump(), other.model_dump())

        combined = enrolled & other
        composed = compose(combined, on_or_before=param("end_date"))
        widened = with_parameter(enrolled, "on_date")

        assert (enrolled.model_dump(), other.model_dump()) == before
        assert "on_date" not in enrolled.parameters
        assert "on_date" in widened.parameters
        assert composed.operand is combined


class TestFreeParameters:
    def test_combinators_union_parameters(self, enrolled: Atomic) -> None:
        on_art = atomic("onArt", parameters=("on_date",))

        assert free_parameters(enrolled | ~on_art) == {"on_or_after", "on_or_before", "on_date"}
        assert free_parameters(all_of()) == frozenset()

    def test_compose_replaces_mapped_parameters(self, enrolled: Atomic) -> None:
        period = compose(enrolled, on_or_after=param("start_date"), on_or_before=param("end_date"))
        cumulative = compose(enrolled, on_or_after=None, on_or_before=param("end_date"))

        assert free_parameters(period) == {"start_date", "end_date"}
        assert free_parameters(cumulative) == {"end_date"}

    def test_unmapped_parameters_pass_through(self, enrolled: Atomic) -> None:
        partial = compose(enrolled, on_or_before=param("end_date"))

        assert free_parameters(partial) == {"on_or_after", "end_date"}

    def test_nested_compose(self, enrolled: Atomic) -> None:
        inner = compose(enrolled, on_or_after=None, on_or_before=param("on_date"))
        outer = compose(inner, on_date=param("end_date"))

        assert free_parameters(outer) == {"end_date"}

    def test_with_parameter_adds_dependency(self) -> None:
        expr = with_parameter(atomic("onArt"), "on_date")

        assert free_parameters(expr) == {"on_date"}


class TestDefinitionTimeErrors:
    def test_compose_with_undeclared_parameter_fails(self, enrolled: Atomic) -> None:
        with pytest.raises(UndeclaredParameterError) as exc_info:
            compose(enrolled, on_date=param("end_date"))

        assert exc_info.value.parameters == {"on_date"}
        assert "on_date" in str(exc_info.value)

    def test_direct_compose_construction_is_checked(self) -> None:
        with pytest.raises(UndeclaredParameterError):
            Compose(operand=atomic("a"), overrides=(("on_date", None),))

    def test_already_bound_parameter_cannot_be_mapped_again(self, enrolled: Atomic) -> None:
        bound = compose(enrolled, on_or_after=None, on_or_before=None)

        with pytest.raises(UndeclaredParameterError):
            compose(bound, on_or_after=param("start_date"))

    def test_with_parameter_requires_atomic(self, enrolled: Atomic) -> None:
        with pytest.raises(TypeError, match="atomic"):
            with_parameter(enrolled & enrolled, "on_date")
