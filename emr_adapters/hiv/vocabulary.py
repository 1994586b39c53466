"""
HIV care vocabulary: concepts and programs used by the ART indicators.

Concept identifiers follow the CIEL dictionary convention (numeric id padded
with 'A' to 36 characters). Lookups are pure functions; the engine only ever
sees the resolved Concept/Program values passed as predicate arguments.
"""

from pydantic import BaseModel, ConfigDict, Field

from indicator_engine.exceptions import NotFoundError


class Concept(BaseModel):
    """Coded dictionary entry (drug, diagnosis, answer, question)."""

    model_config = ConfigDict(frozen=True)

    uuid: str = Field(min_length=1)
    name: str

    def __str__(self) -> str:
        return self.name


class Program(BaseModel):
    """Care program a patient can be enrolled in."""

    model_config = ConfigDict(frozen=True)

    uuid: str = Field(min_length=1)
    name: str

    def __str__(self) -> str:
        return self.name


def _ciel(concept_id: int) -> str:
    return str(concept_id).ljust(36, "A")


HIV_PROGRAM = Program(uuid="dfdc6d40-2f2f-463d-ba90-cc97350441a8", name="HIV Program")
TB_PROGRAM = Program(uuid="9f144a34-3a4a-44a9-8486-6b7af6cc64f6", name="TB Program")

# Drugs
SULFAMETHOXAZOLE_TRIMETHOPRIM = Concept(uuid=_ciel(105281), name="Sulfamethoxazole / Trimethoprim")
FLUCONAZOLE = Concept(uuid=_ciel(76488), name="Fluconazole")
LAMIVUDINE = Concept(uuid=_ciel(78643), name="Lamivudine")
ZIDOVUDINE = Concept(uuid=_ciel(86663), name="Zidovudine")
NEVIRAPINE = Concept(uuid=_ciel(80586), name="Nevirapine")
TENOFOVIR = Concept(uuid=_ciel(84795), name="Tenofovir")
EFAVIRENZ = Concept(uuid=_ciel(75523), name="Efavirenz")

ARV_DRUGS = frozenset({LAMIVUDINE, ZIDOVUDINE, NEVIRAPINE, TENOFOVIR, EFAVIRENZ})

# Questions and answers
CURRENT_WHO_STAGE = Concept(uuid=_ciel(5356), name="Current WHO HIV stage")
WHO_STAGE_1 = Concept(uuid=_ciel(1204), name="WHO stage 1")
WHO_STAGE_2 = Concept(uuid=_ciel(1205), name="WHO stage 2")
WHO_STAGE_3 = Concept(uuid=_ciel(1206), name="WHO stage 3")
WHO_STAGE_4 = Concept(uuid=_ciel(1207), name="WHO stage 4")
PREGNANCY_STATUS = Concept(uuid=_ciel(5272), name="Pregnancy status")
CD4_COUNT = Concept(uuid=_ciel(5497), name="CD4 count")
YES = Concept(uuid=_ciel(1065), name="Yes")
NO = Concept(uuid=_ciel(1066), name="No")

# Entry points into HIV care
VCT_PROGRAM = Concept(uuid=_ciel(160539), name="VCT program")
PMTCT_PROGRAM = Concept(uuid=_ciel(160538), name="PMTCT program")
TB_CLINIC = Concept(uuid=_ciel(160541), name="TB clinic")
INPATIENT_CARE = Concept(uuid=_ciel(160536), name="Inpatient care")

WHO_STAGES = {1: WHO_STAGE_1, 2: WHO_STAGE_2, 3: WHO_STAGE_3, 4: WHO_STAGE_4}

# CD4 count (cells/mm3) below which a patient is eligible for ART
CD4_ELIGIBILITY_THRESHOLD = 350.0

_CONCEPTS: dict[str, Concept] = {
    name: value for name, value in globals().items() if isinstance(value, Concept)
}


def get_concept(key: str) -> Concept:
    """Resolve a concept by constant name (e.g. ``"FLUCONAZOLE"``) or UUID.

    Raises:
        NotFoundError: If the key matches no known concept
    """
    concept = _CONCEPTS.get(key.upper())
    if concept is not None:
        return concept
    for concept in _CONCEPTS.values():
        if concept.uuid == key:
            return concept
    raise NotFoundError(key, kind="Concept")


def who_stage_concept(stage: int) -> Concept:
    try:
        return WHO_STAGES[stage]
    except KeyError:
        raise NotFoundError(str(stage), kind="WHO stage", available=map(str, WHO_STAGES)) from None
