import logging
from dataclasses import replace
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

from config import ACTIVE, DEFAULT_TEST_CATALOG, PLACEBO, TestDefinition
from randomization import Randomizer
from records import Subject, VitalSign

logger = logging.getLogger(__name__)

DOMAIN = "VS"
VISIT_INTERVAL_DAYS = 14

# Active-arm trend: (first visit, last visit exclusive, baseline factor, noise low, noise high)
ACTIVE_TREND: Tuple[Tuple[int, int, float, float, float], ...] = (
    (1, 5, 0.975, -3.0, 2.0),
    (5, 8, 0.95, -5.0, 1.0),
    (8, 11, 0.925, -7.0, 0.0),
    (11, 15, 0.9, -10.0, -3.0),
)
PLACEBO_NOISE = (-5.0, 5.0)


def draw_baseline(rnd: Randomizer, test: TestDefinition) -> float:
    return float(rnd.uniform_int(test.baseline_low, test.baseline_high - 1))


def visit_result(rnd: Randomizer, baseline: float, visit: int, arm_code: Optional[int]) -> Optional[float]:
    """Result for one visit given the subject's arm.

    Placebo wanders around the baseline; Active declines stepwise over the
    visit windows in ACTIVE_TREND. Visits past the last window reuse it.
    """
    if arm_code is None:
        return None
    if visit == 0:
        return baseline
    if arm_code == PLACEBO:
        return baseline + rnd.uniform(*PLACEBO_NOISE)
    if arm_code != ACTIVE:
        raise ValueError(f"unknown arm code {arm_code}")
    for first, stop, factor, low, high in ACTIVE_TREND:
        if first <= visit < stop:
            break
    return baseline * factor + rnd.uniform(low, high)


def _subject_rows(rnd: Randomizer, s: Subject, catalog: Sequence[TestDefinition], interval: int) -> List[VitalSign]:
    rows: List[VitalSign] = []
    for test in catalog:
        baseline = draw_baseline(rnd, test)
        # screen failures keep their rows but lose the test identity
        code, name, units = ("", "", "") if s.is_screen_failure else (test.code, test.name, test.units)

        for visit in range(s.last_visit + 1):
            result = visit_result(rnd, baseline, visit, s.arm_code)
            rows.append(
                VitalSign(
                    study_id=s.study_id,
                    domain=DOMAIN,
                    subject_id=s.subject_id,
                    site_id=s.site_id,
                    subject_key=s.subject_key,
                    sequence_number=0,
                    visit_number=visit,
                    test_code=code,
                    test_name=name,
                    original_result=result,
                    standardized_result=result,
                    standardized_result_text=None if result is None else f"{result:.2f}",
                    original_units=units,
                    standardized_units=units,
                    baseline_flag=visit == 1,
                    visit_date=s.enrollment_date + timedelta(days=visit * interval),
                    study_day=visit * interval,
                )
            )
    return rows


def sort_rows(rows: Sequence[VitalSign]) -> List[VitalSign]:
    """Stable sort on (subject key, test code, visit number)."""
    return sorted(rows, key=lambda r: r.sort_key)


def assign_sequence_numbers(rows: Sequence[VitalSign]) -> List[VitalSign]:
    """Number rows 1..n within each subject key; expects sorted input."""
    out: List[VitalSign] = []
    count = 0
    previous = None
    for r in rows:
        if r.subject_key != previous:
            count = 0
            previous = r.subject_key
        count += 1
        out.append(replace(r, sequence_number=count))
    return out


def generate_vitals(
    rnd: Randomizer,
    subjects: Sequence[Subject],
    catalog: Sequence[TestDefinition] = DEFAULT_TEST_CATALOG,
    interval_days: int = VISIT_INTERVAL_DAYS,
) -> List[VitalSign]:
    rows: List[VitalSign] = []
    for s in subjects:
        rows.extend(_subject_rows(rnd, s, catalog, interval_days))

    # sequence numbers need the complete, sorted row set
    rows = assign_sequence_numbers(sort_rows(rows))
    logger.info("generated %d vital-sign rows for %d subjects", len(rows), len(subjects))
    return rows
