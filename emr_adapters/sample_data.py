"""
Deterministic synthetic patient records for demos and smoke tests.

Records are drawn from a seeded random generator so the same seed always
yields the same clinic population.
"""

import random
from datetime import date, timedelta

from emr_adapters.hiv.vocabulary import (
    CD4_COUNT,
    CURRENT_WHO_STAGE,
    EFAVIRENZ,
    FLUCONAZOLE,
    HIV_PROGRAM,
    INPATIENT_CARE,
    LAMIVUDINE,
    NO,
    PMTCT_PROGRAM,
    PREGNANCY_STATUS,
    SULFAMETHOXAZOLE_TRIMETHOPRIM,
    TB_CLINIC,
    TB_PROGRAM,
    TENOFOVIR,
    VCT_PROGRAM,
    WHO_STAGES,
    YES,
)
from emr_adapters.records import DrugOrder, Observation, PatientRecord, ProgramEnrollment

GIVEN_NAMES = ["Amina", "Brian", "Caro", "David", "Esther", "Faith", "George", "Halima", "Ian"]
FAMILY_NAMES = ["Otieno", "Wanjiru", "Kamau", "Mutua", "Achieng", "Njoroge", "Kiprono", "Mwangi"]
ENTRY_POINTS = [VCT_PROGRAM, PMTCT_PROGRAM, TB_CLINIC, INPATIENT_CARE, None]


def _random_date(rng: random.Random, start: date, end: date) -> date:
    return start + timedelta(days=rng.randint(0, (end - start).days))


def generate_patient(rng: random.Random, patient_id: int, start: date, end: date) -> PatientRecord:
    gender = rng.choice(["M", "F"])
    enrolled_on = _random_date(rng, start, end)
    enrollments = [
        ProgramEnrollment(
            program=HIV_PROGRAM,
            date_enrolled=enrolled_on,
            entry_point=rng.choice(ENTRY_POINTS),
            transfer_in=rng.random() < 0.15,
        )
    ]
    if rng.random() < 0.2:
        tb_start = enrolled_on - timedelta(days=rng.randint(0, 90))
        enrollments.append(
            ProgramEnrollment(
                program=TB_PROGRAM,
                date_enrolled=tb_start,
                date_completed=tb_start + timedelta(days=180),
            )
        )

    observations = [
        Observation(
            concept=CURRENT_WHO_STAGE,
            value=WHO_STAGES[rng.choices([1, 2, 3, 4], weights=[0.4, 0.3, 0.2, 0.1])[0]],
            obs_date=enrolled_on,
        ),
        Observation(concept=CD4_COUNT, value=float(rng.randint(50, 900)), obs_date=enrolled_on),
    ]
    if gender == "F":
        observations.append(
            Observation(
                concept=PREGNANCY_STATUS,
                value=YES if rng.random() < 0.25 else NO,
                obs_date=enrolled_on,
            )
        )

    drug_orders = [DrugOrder(concept=SULFAMETHOXAZOLE_TRIMETHOPRIM, start_date=enrolled_on)]
    if rng.random() < 0.3:
        drug_orders.append(DrugOrder(concept=FLUCONAZOLE, start_date=enrolled_on))
    if rng.random() < 0.7:
        art_start = enrolled_on + timedelta(days=rng.randint(0, 60))
        stop = art_start + timedelta(days=rng.randint(30, 400)) if rng.random() < 0.1 else None
        for drug in (TENOFOVIR, LAMIVUDINE, EFAVIRENZ):
            drug_orders.append(DrugOrder(concept=drug, start_date=art_start, stop_date=stop))

    return PatientRecord(
        patient_id=patient_id,
        given_name=rng.choice(GIVEN_NAMES),
        family_name=rng.choice(FAMILY_NAMES),
        identifier=f"HIV-{patient_id:05d}",
        gender=gender,
        birthdate=_random_date(rng, date(1950, 1, 1), date(2005, 12, 31)),
        enrollments=tuple(enrollments),
        observations=tuple(observations),
        drug_orders=tuple(drug_orders),
    )


def generate_patients(
    count: int, start: date, end: date, seed: int = 42
) -> list[PatientRecord]:
    rng = random.Random(seed)
    return [generate_patient(rng, patient_id, start, end) for patient_id in range(1, count + 1)]
