"""Hand-built clinic population shared by the adapter tests.

Reporting month used throughout: January 2024.

1 Amina   enrolled 2024-01-10 from VCT, pregnant, WHO stage 3, ART from 2024-01-15,
          cotrimoxazole from 2024-01-10
2 Brian   enrolled 2024-01-20 as a transfer from PMTCT, CD4 200, no ART
3 Caro    enrolled 2022-05-01 from TB clinic while in the TB program, WHO stage 2,
          ART from 2022-05-10, fluconazole during the first half of 2023
4 Esther  enrolled 2023-12-15, WHO stage 1, CD4 500, not pregnant
5 George  never enrolled
"""

from datetime import date

import pytest

from emr_adapters.hiv.vocabulary import (
    CD4_COUNT,
    CURRENT_WHO_STAGE,
    FLUCONAZOLE,
    HIV_PROGRAM,
    LAMIVUDINE,
    NO,
    PMTCT_PROGRAM,
    PREGNANCY_STATUS,
    SULFAMETHOXAZOLE_TRIMETHOPRIM,
    TB_CLINIC,
    TB_PROGRAM,
    TENOFOVIR,
    VCT_PROGRAM,
    WHO_STAGE_1,
    WHO_STAGE_2,
    WHO_STAGE_3,
    YES,
)
from emr_adapters.records import (
    DrugOrder,
    InMemoryPatientStore,
    Observation,
    PatientRecord,
    ProgramEnrollment,
)
from indicator_engine.domain.models import ReportingPeriod


@pytest.fixture
def january_2024() -> ReportingPeriod:
    return ReportingPeriod.for_month(2024, 1)


@pytest.fixture
def clinic_records() -> list[PatientRecord]:
    return [
        PatientRecord(
            patient_id=1,
            given_name="Amina",
            family_name="Otieno",
            identifier="HIV-00001",
            gender="F",
            birthdate=date(1990, 6, 1),
            enrollments=(
                ProgramEnrollment(
                    program=HIV_PROGRAM, date_enrolled=date(2024, 1, 10), entry_point=VCT_PROGRAM
                ),
            ),
            observations=(
                Observation(concept=PREGNANCY_STATUS, value=YES, obs_date=date(2024, 1, 10)),
                Observation(concept=CURRENT_WHO_STAGE, value=WHO_STAGE_3, obs_date=date(2024, 1, 10)),
            ),
            drug_orders=(
                DrugOrder(concept=TENOFOVIR, start_date=date(2024, 1, 15)),
                DrugOrder(concept=SULFAMETHOXAZOLE_TRIMETHOPRIM, start_date=date(2024, 1, 10)),
            ),
        ),
        PatientRecord(
            patient_id=2,
            given_name="Brian",
            family_name="Kamau",
            identifier="HIV-00002",
            gender="M",
            birthdate=date(1985, 2, 10),
            enrollments=(
                ProgramEnrollment(
                    program=HIV_PROGRAM,
                    date_enrolled=date(2024, 1, 20),
                    entry_point=PMTCT_PROGRAM,
                    transfer_in=True,
                ),
            ),
            observations=(
                Observation(concept=CURRENT_WHO_STAGE, value=WHO_STAGE_1, obs_date=date(2024, 1, 20)),
                Observation(concept=CD4_COUNT, value=200.0, obs_date=date(2024, 1, 20)),
            ),
        ),
        PatientRecord(
            patient_id=3,
            given_name="Caro",
            family_name="Otieno",
            identifier="HIV-00003",
            gender="F",
            birthdate=date(1970, 1, 1),
            enrollments=(
                ProgramEnrollment(
                    program=HIV_PROGRAM, date_enrolled=date(2022, 5, 1), entry_point=TB_CLINIC
                ),
                ProgramEnrollment(
                    program=TB_PROGRAM,
                    date_enrolled=date(2022, 4, 1),
                    date_completed=date(2022, 10, 1),
                ),
            ),
            observations=(
                Observation(concept=CURRENT_WHO_STAGE, value=WHO_STAGE_2, obs_date=date(2022, 5, 1)),
            ),
            drug_orders=(
                DrugOrder(concept=LAMIVUDINE, start_date=date(2022, 5, 10)),
                DrugOrder(
                    concept=FLUCONAZOLE, start_date=date(2023, 1, 1), stop_date=date(2023, 6, 1)
                ),
            ),
        ),
        PatientRecord(
            patient_id=4,
            given_name="Esther",
            family_name="Wanjiru",
            identifier="HIV-00004",
            gender="F",
            birthdate=date(2000, 12, 24),
            enrollments=(ProgramEnrollment(program=HIV_PROGRAM, date_enrolled=date(2023, 12, 15)),),
            observations=(
                Observation(concept=CURRENT_WHO_STAGE, value=WHO_STAGE_1, obs_date=date(2023, 12, 15)),
                Observation(concept=CD4_COUNT, value=500.0, obs_date=date(2023, 12, 15)),
                Observation(concept=PREGNANCY_STATUS, value=NO, obs_date=date(2023, 12, 15)),
            ),
        ),
        PatientRecord(
            patient_id=5,
            given_name="George",
            family_name="Mwangi",
            identifier="HIV-00005",
            gender="M",
            birthdate=date(1960, 3, 3),
        ),
    ]


@pytest.fixture
def store(clinic_records: list[PatientRecord]) -> InMemoryPatientStore:
    return InMemoryPatientStore(clinic_records, source_name="test-clinic")
