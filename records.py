from dataclasses import dataclass
from datetime import date
from enum import IntEnum
from typing import Optional


class Disposition(IntEnum):
    SCREEN_FAIL = 0
    WITHDRAWN = 1
    COMPLETER = 2


def make_subject_key(study_id: str, site_id: str, subject_id: str) -> str:
    return f"{study_id}-{site_id}-{subject_id}"


# ---------------------------
# Subject-level tables
# ---------------------------

@dataclass(frozen=True)
class Subject:
    """One row of the SC table; the shared timeline for DM and VS."""

    study_id: str
    subject_id: str
    site_id: str
    subject_key: str
    disposition: Disposition
    enrollment_date: date
    last_visit: int
    treatment_start: Optional[date] = None
    treatment_end: Optional[date] = None
    arm_code: Optional[int] = None
    arm_name: Optional[str] = None

    @property
    def is_screen_failure(self) -> bool:
        return self.disposition == Disposition.SCREEN_FAIL


@dataclass(frozen=True)
class Demographic:
    study_id: str
    domain: str
    subject_id: str
    site_id: str
    subject_key: str
    treatment_start: Optional[date]
    treatment_end: Optional[date]
    enrollment_date: date
    investigator_code: str
    investigator_name: str
    country: str
    age: Optional[int]
    age_units: str
    birth_date: Optional[date]
    sex: Optional[str]
    race: Optional[str]
    arm_code: Optional[int]
    arm_name: Optional[str]
    study_day: int = 0


# ---------------------------
# Findings
# ---------------------------

@dataclass(frozen=True, order=True)
class VitalSignKey:
    subject_key: str
    test_code: str
    visit_number: int


@dataclass(frozen=True)
class VitalSign:
    study_id: str
    domain: str
    subject_id: str
    site_id: str
    subject_key: str
    sequence_number: int
    visit_number: int
    test_code: str
    test_name: str
    original_result: Optional[float]
    standardized_result: Optional[float]
    standardized_result_text: Optional[str]
    original_units: str
    standardized_units: str
    baseline_flag: bool
    visit_date: date
    study_day: int

    @property
    def sort_key(self) -> VitalSignKey:
        return VitalSignKey(self.subject_key, self.test_code, self.visit_number)
