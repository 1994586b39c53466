"""
Cohort expressions for HIV care and ART.

Expressions here use predicate-level parameters (``on_or_after``,
``on_or_before``, ``on_date``); indicators map report parameters onto them.
"""

from indicator_engine.domain.expressions import (
    CohortExpression,
    atomic,
    compose,
    param,
)

from .vocabulary import HIV_PROGRAM, TB_PROGRAM, Concept, Program, who_stage_concept

ON_OR_AFTER = "on_or_after"
ON_OR_BEFORE = "on_or_before"
ON_DATE = "on_date"

WINDOW = (ON_OR_AFTER, ON_OR_BEFORE)


def enrolled(program: Program = HIV_PROGRAM) -> CohortExpression:
    return atomic("enrolled_in_program", program, parameters=WINDOW)


def transferred_in(program: Program = HIV_PROGRAM) -> CohortExpression:
    return atomic("enrolled_as_transfer_in", program, parameters=WINDOW)


def enrolled_excluding_transfers(program: Program = HIV_PROGRAM) -> CohortExpression:
    """Newly enrolled in the window, not as a transfer from another facility."""
    return enrolled(program) & ~transferred_in(program)


def referred_from(*entry_points: Concept) -> CohortExpression:
    return atomic("referred_from", HIV_PROGRAM, *entry_points, parameters=WINDOW)


def enrolled_excluding_transfers_and_referred_from(*entry_points: Concept) -> CohortExpression:
    return enrolled_excluding_transfers(HIV_PROGRAM) & referred_from(*entry_points)


def enrolled_excluding_transfers_and_not_referred_from(*entry_points: Concept) -> CohortExpression:
    return enrolled_excluding_transfers(HIV_PROGRAM) & ~referred_from(*entry_points)


def started_art() -> CohortExpression:
    return atomic("started_art", parameters=WINDOW)


def started_art_while_pregnant() -> CohortExpression:
    return started_art() & atomic("pregnant_at_art_start")


def started_art_while_tb_patient() -> CohortExpression:
    return started_art() & atomic("tb_patient_at_art_start", TB_PROGRAM)


def started_art_with_who_stage(stage: int) -> CohortExpression:
    return started_art() & atomic("who_stage_at_art_start", who_stage_concept(stage))


def in_program(program: Program = HIV_PROGRAM) -> CohortExpression:
    return atomic("in_program_on_date", program, parameters=(ON_DATE,))


def started_art_by(on_date_param: str = ON_DATE) -> CohortExpression:
    """Started ART at any time up to the given date parameter."""
    return compose(started_art(), on_or_after=None, on_or_before=param(on_date_param))


def eligible_for_art() -> CohortExpression:
    """In HIV care, medically eligible and not yet started on ART."""
    return (
        in_program(HIV_PROGRAM)
        & atomic("medically_eligible_for_art", parameters=(ON_DATE,))
        & ~started_art_by(ON_DATE)
    )


def on_art() -> CohortExpression:
    return atomic("on_art_on_date", parameters=(ON_DATE,))


def pregnant() -> CohortExpression:
    return atomic("pregnant_on_date", parameters=(ON_DATE,))


def on_art_and_pregnant() -> CohortExpression:
    return on_art() & pregnant()


def on_art_and_not_pregnant() -> CohortExpression:
    return on_art() & ~pregnant()


def in_hiv_program_and_on_medication(*drugs: Concept) -> CohortExpression:
    return in_program(HIV_PROGRAM) & atomic("on_medication", *drugs, parameters=(ON_DATE,))
