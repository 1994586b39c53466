"""
Tests for the in-memory patient store in `emr_adapters/records.py`.

Covers:
- Predicate answers for date windows and point-in-time states
- Unknown predicates surfacing as ProviderFailure through the engine
- Patient search by name, identifier and age
"""

from datetime import date

import pytest

from emr_adapters.hiv.vocabulary import (
    ARV_DRUGS,
    FLUCONAZOLE,
    HIV_PROGRAM,
    INPATIENT_CARE,
    TB_PROGRAM,
    VCT_PROGRAM,
    WHO_STAGE_3,
)
from emr_adapters.records import InMemoryPatientStore, PatientRecord
from indicator_engine.domain.expressions import atomic
from indicator_engine.exceptions import ProviderFailure
from indicator_engine.services.cohort_evaluator import CohortEvaluator

JANUARY = {"on_or_after": date(2024, 1, 1), "on_or_before": date(2024, 1, 31)}


class TestPredicates:
    def test_enrolled_in_window(self, store: InMemoryPatientStore) -> None:
        assert store.query_patients("enrolled_in_program", [HIV_PROGRAM], JANUARY) == {1, 2}

    def test_open_window(self, store: InMemoryPatientStore) -> None:
        binding = {"on_or_after": None, "on_or_before": date(2024, 1, 31)}

        assert store.query_patients("enrolled_in_program", [HIV_PROGRAM], binding) == {1, 2, 3, 4}

    def test_window_bounds_are_inclusive(self, store: InMemoryPatientStore) -> None:
        binding = {"on_or_after": date(2024, 1, 10), "on_or_before": date(2024, 1, 10)}

        assert store.query_patients("enrolled_in_program", [HIV_PROGRAM], binding) == {1}

    def test_transfer_in(self, store: InMemoryPatientStore) -> None:
        assert store.query_patients("enrolled_as_transfer_in", [HIV_PROGRAM], JANUARY) == {2}

    def test_referred_from_any_entry_point(self, store: InMemoryPatientStore) -> None:
        result = store.query_patients("referred_from", [HIV_PROGRAM, VCT_PROGRAM, INPATIENT_CARE], JANUARY)

        assert result == {1}

    def test_started_art_uses_first_arv_order(self, store: InMemoryPatientStore) -> None:
        assert store.query_patients("started_art", [], JANUARY) == {1}
        assert store.get(3).art_start_date() == date(2022, 5, 10)

    def test_state_at_art_start(self, store: InMemoryPatientStore) -> None:
        assert store.query_patients("pregnant_at_art_start", [], {}) == {1}
        assert store.query_patients("tb_patient_at_art_start", [TB_PROGRAM], {}) == {3}
        assert store.query_patients("who_stage_at_art_start", [WHO_STAGE_3], {}) == {1}

    def test_medically_eligible(self, store: InMemoryPatientStore) -> None:
        # Patient 1 by WHO stage, patient 2 by CD4 count
        result = store.query_patients("medically_eligible_for_art", [], {"on_date": date(2024, 1, 31)})

        assert result == {1, 2}

    def test_on_date_predicates(self, store: InMemoryPatientStore) -> None:
        end = {"on_date": date(2024, 1, 31)}

        assert store.query_patients("on_art_on_date", [], end) == {1, 3}
        assert store.query_patients("pregnant_on_date", [], end) == {1}
        assert store.query_patients("in_program_on_date", [HIV_PROGRAM], end) == {1, 2, 3, 4}
        assert store.query_patients("on_medication", [FLUCONAZOLE], end) == set()
        assert store.query_patients("on_medication", [FLUCONAZOLE], {"on_date": date(2023, 3, 1)}) == {3}

    def test_drug_not_active_before_start(self, store: InMemoryPatientStore) -> None:
        assert store.query_patients("on_medication", ARV_DRUGS, {"on_date": date(2024, 1, 14)}) == {3}

    def test_universe(self, store: InMemoryPatientStore) -> None:
        assert store.universe() == {1, 2, 3, 4, 5}


class TestStoreErrors:
    def test_duplicate_patient_id(self, clinic_records: list[PatientRecord]) -> None:
        with pytest.raises(ValueError, match="Duplicate patient_id 1"):
            InMemoryPatientStore([*clinic_records, clinic_records[0]])

    def test_unknown_predicate(self, store: InMemoryPatientStore) -> None:
        with pytest.raises(ValueError, match="Unknown predicate"):
            store.query_patients("no_such_thing", [], {})

    def test_unknown_predicate_through_engine(self, store: InMemoryPatientStore) -> None:
        with pytest.raises(ProviderFailure) as exc_info:
            CohortEvaluator().evaluate(atomic("no_such_thing"), {}, store)

        assert exc_info.value.predicate_name == "no_such_thing"
        assert isinstance(exc_info.value.cause, ValueError)

    def test_predicate_names(self, store: InMemoryPatientStore) -> None:
        assert "started_art" in store.predicate_names
        assert store.predicate_names == sorted(store.predicate_names)


class TestSearch:
    def test_blank_query_returns_nothing(self, store: InMemoryPatientStore) -> None:
        assert store.search("") == []
        assert store.search("   ") == []

    def test_name_match_is_case_insensitive(self, store: InMemoryPatientStore) -> None:
        assert [r.patient_id for r in store.search("otieno")] == [1, 3]
        assert [r.patient_id for r in store.search("AMINA OTI")] == [1]

    def test_identifier_match(self, store: InMemoryPatientStore) -> None:
        assert [r.patient_id for r in store.search("hiv-0000")] == [1, 2, 3, 4, 5]

    def test_age_filter(self, store: InMemoryPatientStore) -> None:
        results = store.search("otieno", age=33, on_date=date(2024, 1, 31))

        assert [r.patient_id for r in results] == [1]

    def test_age_window(self, store: InMemoryPatientStore) -> None:
        on_date = date(2024, 1, 31)

        assert store.search("otieno", age=50, age_window=3, on_date=on_date) == []
        assert [r.patient_id for r in store.search("otieno", age=50, age_window=4, on_date=on_date)] == [3]

    def test_age_on_birthday_boundary(self, store: InMemoryPatientStore) -> None:
        esther = store.get(4)

        assert esther.age_on(date(2023, 12, 23)) == 22
        assert esther.age_on(date(2023, 12, 24)) == 23
