from datetime import date, timedelta
from typing import Optional

import pytest

from config import StudyConfig
from disposition import treatment_dates
from randomization import Randomizer
from records import Disposition, Subject, make_subject_key


@pytest.fixture
def rnd() -> Randomizer:
    return Randomizer(20100101)


@pytest.fixture
def cfg() -> StudyConfig:
    return StudyConfig(seed=7)


def make_subject(
    number: int = 1,
    disposition: Disposition = Disposition.COMPLETER,
    last_visit: Optional[int] = None,
    arm_code: Optional[int] = 1,
    site_id: str = "0001",
    enrollment: date = date(2010, 3, 1),
) -> Subject:
    """Hand-built SC record for scenario tests."""
    if last_visit is None:
        last_visit = {Disposition.SCREEN_FAIL: 0, Disposition.WITHDRAWN: 6, Disposition.COMPLETER: 14}[disposition]
    if disposition == Disposition.SCREEN_FAIL:
        arm_code = None
    subject_id = str(number).zfill(6)
    start, end = treatment_dates(disposition, enrollment, last_visit)
    return Subject(
        study_id="XYZ123",
        subject_id=subject_id,
        site_id=site_id,
        subject_key=make_subject_key("XYZ123", site_id, subject_id),
        disposition=disposition,
        enrollment_date=enrollment,
        last_visit=last_visit,
        treatment_start=start,
        treatment_end=end,
        arm_code=arm_code,
        arm_name=None if arm_code is None else ("Placebo", "Active")[arm_code],
    )


@pytest.fixture
def subject_factory():
    return make_subject


@pytest.fixture
def mixed_subjects():
    """One subject of each disposition plus a placebo completer."""
    return [
        make_subject(1, Disposition.SCREEN_FAIL),
        make_subject(2, Disposition.WITHDRAWN, last_visit=6, arm_code=1, site_id="0003"),
        make_subject(3, Disposition.COMPLETER, arm_code=0, site_id="0002"),
        make_subject(4, Disposition.COMPLETER, arm_code=1, enrollment=date(2010, 3, 1) + timedelta(days=30)),
    ]
