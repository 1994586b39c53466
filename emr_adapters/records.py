"""
In-memory patient store implementing the QueryProvider protocol.

Stands in for the EMR's patient, program, observation and drug order tables.
The store is read-only after construction, so it is safe for the concurrent
reads of parallel indicator evaluation.

Date windows: ``on_or_after`` / ``on_or_before`` are inclusive and a value of
None leaves that side of the window open.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import date
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict

from emr_adapters.hiv.vocabulary import (
    ARV_DRUGS,
    CD4_COUNT,
    CD4_ELIGIBILITY_THRESHOLD,
    CURRENT_WHO_STAGE,
    PREGNANCY_STATUS,
    WHO_STAGE_3,
    WHO_STAGE_4,
    YES,
    Concept,
    Program,
)
from indicator_engine.domain.models import ParameterBinding

logger = structlog.get_logger(__name__)

Predicate = Callable[[Sequence[Any], ParameterBinding], set[int]]


class ProgramEnrollment(BaseModel):
    model_config = ConfigDict(frozen=True)

    program: Program
    date_enrolled: date
    date_completed: date | None = None
    entry_point: Concept | None = None
    transfer_in: bool = False

    def active_on(self, on_date: date) -> bool:
        return self.date_enrolled <= on_date and (
            self.date_completed is None or self.date_completed > on_date
        )


class Observation(BaseModel):
    model_config = ConfigDict(frozen=True)

    concept: Concept
    value: Concept | float
    obs_date: date


class DrugOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    concept: Concept
    start_date: date
    stop_date: date | None = None

    def active_on(self, on_date: date) -> bool:
        return self.start_date <= on_date and (self.stop_date is None or self.stop_date > on_date)


class PatientRecord(BaseModel):
    """A patient with the clinical history the ART predicates look at."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    given_name: str
    family_name: str
    identifier: str = ""
    gender: Literal["M", "F"]
    birthdate: date
    enrollments: tuple[ProgramEnrollment, ...] = ()
    observations: tuple[Observation, ...] = ()
    drug_orders: tuple[DrugOrder, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.given_name} {self.family_name}"

    def age_on(self, on_date: date) -> int:
        had_birthday = (on_date.month, on_date.day) >= (self.birthdate.month, self.birthdate.day)
        return on_date.year - self.birthdate.year - (0 if had_birthday else 1)

    def art_start_date(self) -> date | None:
        starts = [o.start_date for o in self.drug_orders if o.concept in ARV_DRUGS]
        return min(starts, default=None)

    def latest_obs(self, concept: Concept, on_or_before: date) -> Observation | None:
        candidates = [
            o for o in self.observations if o.concept == concept and o.obs_date <= on_or_before
        ]
        return max(candidates, key=lambda o: o.obs_date, default=None)

    def in_program_on(self, program: Program, on_date: date) -> bool:
        return any(e.program == program and e.active_on(on_date) for e in self.enrollments)

    def on_drug(self, drugs: Iterable[Concept], on_date: date) -> bool:
        drugs = set(drugs)
        return any(o.concept in drugs and o.active_on(on_date) for o in self.drug_orders)


def _in_window(value: date, binding: ParameterBinding) -> bool:
    on_or_after = binding.get("on_or_after")
    on_or_before = binding.get("on_or_before")
    return (on_or_after is None or value >= on_or_after) and (
        on_or_before is None or value <= on_or_before
    )


class InMemoryPatientStore:
    """
    QueryProvider over a fixed list of patient records.

    Predicates are looked up by name; an unknown name raises ValueError,
    which the engine reports as a ProviderFailure.
    """

    def __init__(self, records: Iterable[PatientRecord], source_name: str = "in-memory") -> None:
        self._records: dict[int, PatientRecord] = {}
        for record in records:
            if record.patient_id in self._records:
                raise ValueError(f"Duplicate patient_id {record.patient_id}")
            self._records[record.patient_id] = record

        self.source_name = source_name
        self.logger = logger.bind(source=source_name)
        self._predicates: dict[str, Predicate] = {
            "enrolled_in_program": self._enrolled_in_program,
            "enrolled_as_transfer_in": self._enrolled_as_transfer_in,
            "referred_from": self._referred_from,
            "in_program_on_date": self._in_program_on_date,
            "started_art": self._started_art,
            "pregnant_at_art_start": self._pregnant_at_art_start,
            "tb_patient_at_art_start": self._tb_patient_at_art_start,
            "who_stage_at_art_start": self._who_stage_at_art_start,
            "medically_eligible_for_art": self._medically_eligible_for_art,
            "on_art_on_date": self._on_art_on_date,
            "pregnant_on_date": self._pregnant_on_date,
            "on_medication": self._on_medication,
        }
        self.logger.info("patient_store_loaded", patients=len(self._records))

    @property
    def predicate_names(self) -> list[str]:
        return sorted(self._predicates)

    def get(self, patient_id: int) -> PatientRecord:
        return self._records[patient_id]

    # QueryProvider

    def query_patients(
        self, predicate_name: str, args: Sequence[Any], binding: ParameterBinding
    ) -> set[int]:
        predicate = self._predicates.get(predicate_name)
        if predicate is None:
            raise ValueError(f"Unknown predicate '{predicate_name}'")
        return predicate(args, binding)

    def universe(self) -> set[int]:
        return set(self._records)

    # Patient search

    def search(
        self,
        query: str,
        age: int | None = None,
        age_window: int = 5,
        on_date: date | None = None,
    ) -> list[PatientRecord]:
        """
        Find patients by name or identifier.

        Args:
            query: Case-insensitive substring of the full name or identifier;
                a blank query returns no results
            age: If given, keep only patients within ``age_window`` years of it
            age_window: Allowed age difference in years
            on_date: Date ages are computed on, defaults to today

        Returns:
            Matching records ordered by patient_id
        """
        if not query or not query.strip():
            return []

        needle = query.strip().lower()
        matches = [
            r
            for r in self._records.values()
            if needle in r.full_name.lower() or needle in r.identifier.lower()
        ]
        if age is not None:
            on_date = on_date or date.today()
            matches = [r for r in matches if abs(r.age_on(on_date) - age) <= age_window]

        self.logger.debug("patient_search", query=query, age=age, results=len(matches))
        return sorted(matches, key=lambda r: r.patient_id)

    # Predicates

    def _select(self, test: Callable[[PatientRecord], bool]) -> set[int]:
        return {pid for pid, record in self._records.items() if test(record)}

    def _enrolled_in_program(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        (program,) = args
        return self._select(
            lambda r: any(
                e.program == program and _in_window(e.date_enrolled, binding)
                for e in r.enrollments
            )
        )

    def _enrolled_as_transfer_in(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        (program,) = args
        return self._select(
            lambda r: any(
                e.program == program and e.transfer_in and _in_window(e.date_enrolled, binding)
                for e in r.enrollments
            )
        )

    def _referred_from(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        program, *entry_points = args
        return self._select(
            lambda r: any(
                e.program == program
                and e.entry_point in entry_points
                and _in_window(e.date_enrolled, binding)
                for e in r.enrollments
            )
        )

    def _in_program_on_date(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        (program,) = args
        return self._select(lambda r: r.in_program_on(program, binding["on_date"]))

    def _started_art(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        def test(r: PatientRecord) -> bool:
            start = r.art_start_date()
            return start is not None and _in_window(start, binding)

        return self._select(test)

    def _at_art_start(self, test: Callable[[PatientRecord, date], bool]) -> set[int]:
        def wrapped(r: PatientRecord) -> bool:
            start = r.art_start_date()
            return start is not None and test(r, start)

        return self._select(wrapped)

    def _pregnant_at_art_start(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        def test(r: PatientRecord, start: date) -> bool:
            obs = r.latest_obs(PREGNANCY_STATUS, start)
            return obs is not None and obs.value == YES

        return self._at_art_start(test)

    def _tb_patient_at_art_start(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        (tb_program,) = args
        return self._at_art_start(lambda r, start: r.in_program_on(tb_program, start))

    def _who_stage_at_art_start(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        (stage,) = args

        def test(r: PatientRecord, start: date) -> bool:
            obs = r.latest_obs(CURRENT_WHO_STAGE, start)
            return obs is not None and obs.value == stage

        return self._at_art_start(test)

    def _medically_eligible_for_art(
        self, args: Sequence[Any], binding: ParameterBinding
    ) -> set[int]:
        on_date = binding["on_date"]

        def test(r: PatientRecord) -> bool:
            stage = r.latest_obs(CURRENT_WHO_STAGE, on_date)
            if stage is not None and stage.value in (WHO_STAGE_3, WHO_STAGE_4):
                return True
            cd4 = r.latest_obs(CD4_COUNT, on_date)
            return (
                cd4 is not None
                and not isinstance(cd4.value, Concept)
                and cd4.value < CD4_ELIGIBILITY_THRESHOLD
            )

        return self._select(test)

    def _on_art_on_date(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        return self._select(lambda r: r.on_drug(ARV_DRUGS, binding["on_date"]))

    def _pregnant_on_date(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        def test(r: PatientRecord) -> bool:
            obs = r.latest_obs(PREGNANCY_STATUS, binding["on_date"])
            return obs is not None and obs.value == YES

        return self._select(test)

    def _on_medication(self, args: Sequence[Any], binding: ParameterBinding) -> set[int]:
        return self._select(lambda r: r.on_drug(args, binding["on_date"]))
