"""
Library of ART indicator definitions.

Three parameter sets are used, one per kind of indicator:
- period: patients with an event between ``start_date`` and ``end_date``
- cumulative: patients with an event at any time up to ``end_date``
- point in time: patients in a given state on ``end_date``
"""

from collections.abc import Callable
from typing import Any

from indicator_engine.domain.expressions import CohortExpression, compose, param
from indicator_engine.domain.models import END_DATE, START_DATE, IndicatorDefinition
from indicator_engine.services.indicator_library import IndicatorLibrary

from . import cohorts
from .vocabulary import (
    FLUCONAZOLE,
    HIV_PROGRAM,
    INPATIENT_CARE,
    PMTCT_PROGRAM,
    SULFAMETHOXAZOLE_TRIMETHOPRIM,
    TB_CLINIC,
    VCT_PROGRAM,
)

PERIOD = {"on_or_after": param(START_DATE), "on_or_before": param(END_DATE)}
CUMULATIVE = {"on_or_after": None, "on_or_before": param(END_DATE)}
AT_END_DATE = {"on_date": param(END_DATE)}

# Referral entry points reported separately
ENTRY_POINTS = {
    "vct": VCT_PROGRAM,
    "pmtct": PMTCT_PROGRAM,
    "tb_clinic": TB_CLINIC,
    "inpatient": INPATIENT_CARE,
}


def create_cohort_indicator(
    name: str, description: str, cohort: CohortExpression, mapping: dict[str, Any]
) -> IndicatorDefinition:
    return IndicatorDefinition(
        name=name, description=description, expression=compose(cohort, **mapping)
    )


def enrolled_excluding_transfers() -> IndicatorDefinition:
    """Number of new patients enrolled in HIV care (excluding transfers)."""
    return create_cohort_indicator(
        "enrolled_excluding_transfers",
        "Number of new patients enrolled in HIV care (excluding transfers)",
        cohorts.enrolled_excluding_transfers(HIV_PROGRAM),
        PERIOD,
    )


def enrolled_cumulative() -> IndicatorDefinition:
    """Number of patients ever enrolled in HIV care (including transfers) up to end_date."""
    return create_cohort_indicator(
        "enrolled_cumulative",
        "Number of patients ever enrolled in HIV care (including transfers)",
        cohorts.enrolled(HIV_PROGRAM),
        CUMULATIVE,
    )


def enrolled_excluding_transfers_and_referred_from(*entry_points: Any) -> IndicatorDefinition:
    names = ", ".join(str(e) for e in entry_points)
    return create_cohort_indicator(
        "enrolled_excluding_transfers_and_referred_from",
        f"Number of newly enrolled patients referred from {names}",
        cohorts.enrolled_excluding_transfers_and_referred_from(*entry_points),
        PERIOD,
    )


def enrolled_excluding_transfers_and_not_referred_from(*entry_points: Any) -> IndicatorDefinition:
    names = ", ".join(str(e) for e in entry_points)
    return create_cohort_indicator(
        "enrolled_excluding_transfers_and_not_referred_from",
        f"Number of newly enrolled patients not referred from {names}",
        cohorts.enrolled_excluding_transfers_and_not_referred_from(*entry_points),
        PERIOD,
    )


def started_art() -> IndicatorDefinition:
    return create_cohort_indicator(
        "started_art", "Number of patients who started ART", cohorts.started_art(), PERIOD
    )


def started_art_while_pregnant() -> IndicatorDefinition:
    return create_cohort_indicator(
        "started_art_while_pregnant",
        "Number of patients who started ART while pregnant",
        cohorts.started_art_while_pregnant(),
        PERIOD,
    )


def started_art_while_tb_patient() -> IndicatorDefinition:
    return create_cohort_indicator(
        "started_art_while_tb_patient",
        "Number of patients who started ART while being a TB patient",
        cohorts.started_art_while_tb_patient(),
        PERIOD,
    )


def started_art_with_who_stage(stage: int) -> IndicatorDefinition:
    return create_cohort_indicator(
        f"started_art_with_who_stage_{stage}",
        f"Number of patients who started ART with WHO stage {stage}",
        cohorts.started_art_with_who_stage(stage),
        PERIOD,
    )


def started_art_cumulative() -> IndicatorDefinition:
    return create_cohort_indicator(
        "started_art_cumulative",
        "Number of patients who have ever started ART",
        cohorts.started_art(),
        CUMULATIVE,
    )


def eligible_for_art() -> IndicatorDefinition:
    return create_cohort_indicator(
        "eligible_for_art",
        "Number of patients eligible for ART",
        cohorts.eligible_for_art(),
        AT_END_DATE,
    )


def on_art() -> IndicatorDefinition:
    return create_cohort_indicator(
        "on_art", "Number of patients on ART", cohorts.on_art(), AT_END_DATE
    )


def on_art_and_pregnant() -> IndicatorDefinition:
    return create_cohort_indicator(
        "on_art_and_pregnant",
        "Number of patients on ART and pregnant",
        cohorts.on_art_and_pregnant(),
        AT_END_DATE,
    )


def on_art_and_not_pregnant() -> IndicatorDefinition:
    return create_cohort_indicator(
        "on_art_and_not_pregnant",
        "Number of patients on ART and not pregnant",
        cohorts.on_art_and_not_pregnant(),
        AT_END_DATE,
    )


def on_cotrimoxazole_prophylaxis() -> IndicatorDefinition:
    return create_cohort_indicator(
        "on_cotrimoxazole_prophylaxis",
        "Number of patients on Cotrimoxazole",
        cohorts.in_hiv_program_and_on_medication(SULFAMETHOXAZOLE_TRIMETHOPRIM),
        AT_END_DATE,
    )


def on_fluconazole_prophylaxis() -> IndicatorDefinition:
    return create_cohort_indicator(
        "on_fluconazole_prophylaxis",
        "Number of patients on Fluconazole",
        cohorts.in_hiv_program_and_on_medication(FLUCONAZOLE),
        AT_END_DATE,
    )


def on_prophylaxis() -> IndicatorDefinition:
    return create_cohort_indicator(
        "on_prophylaxis",
        "Number of patients on prophylaxis",
        cohorts.in_hiv_program_and_on_medication(FLUCONAZOLE, SULFAMETHOXAZOLE_TRIMETHOPRIM),
        AT_END_DATE,
    )


# Registration order is the order indicators appear in reports
ART_INDICATORS: dict[str, Callable[[], IndicatorDefinition]] = {
    "enrolled_excluding_transfers": enrolled_excluding_transfers,
    "enrolled_cumulative": enrolled_cumulative,
    "started_art": started_art,
    "started_art_while_pregnant": started_art_while_pregnant,
    "started_art_while_tb_patient": started_art_while_tb_patient,
    "started_art_cumulative": started_art_cumulative,
    "eligible_for_art": eligible_for_art,
    "on_art": on_art,
    "on_art_and_pregnant": on_art_and_pregnant,
    "on_art_and_not_pregnant": on_art_and_not_pregnant,
    "on_cotrimoxazole_prophylaxis": on_cotrimoxazole_prophylaxis,
    "on_fluconazole_prophylaxis": on_fluconazole_prophylaxis,
    "on_prophylaxis": on_prophylaxis,
}


def build_art_indicator_library(library: IndicatorLibrary | None = None) -> IndicatorLibrary:
    """Register every ART indicator, including the WHO stage and referral families."""
    if library is None:
        library = IndicatorLibrary("art")

    for name, factory in ART_INDICATORS.items():
        library.register(name, factory)

    library.register_family("started_art_with_who_stage_{}", started_art_with_who_stage, range(1, 5))
    library.register_family(
        "enrolled_excluding_transfers_and_referred_from_{}",
        lambda key: enrolled_excluding_transfers_and_referred_from(ENTRY_POINTS[key]),
        ENTRY_POINTS,
    )
    library.register(
        "enrolled_excluding_transfers_and_not_referred_from_listed",
        lambda: enrolled_excluding_transfers_and_not_referred_from(*ENTRY_POINTS.values()),
    )
    return library
