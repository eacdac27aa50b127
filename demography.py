import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

import pandas as pd

from config import DemographyTables
from randomization import DEFAULT_MISSING_RATE, Randomizer
from records import Demographic, Subject

logger = logging.getLogger(__name__)

DOMAIN = "DM"
STUDY_DAY = 0
OVERALL = "Overall"
SCREENED = "Screened"
SCREEN_FAILURES = "SF"


def draw_age(rnd: Randomizer, tables: DemographyTables, missing_rate: float) -> Optional[int]:
    if rnd.is_missing(missing_rate):
        return None
    return rnd.uniform_int(tables.age_low, tables.age_high)


def birth_date_for(rnd: Randomizer, collected: date, age: Optional[int]) -> Optional[date]:
    """Latest birthday consistent with ``age`` on ``collected``, less 0-363 days."""
    if age is None:
        return None
    birthday = (pd.Timestamp(collected) - pd.DateOffset(years=age)).date()
    return birthday - timedelta(days=rnd.uniform_int(0, 363))


def generate_demography(
    rnd: Randomizer,
    subjects: Sequence[Subject],
    tables: Optional[DemographyTables] = None,
    missing_rate: float = DEFAULT_MISSING_RATE,
) -> List[Demographic]:
    tables = tables or DemographyTables()
    rows: List[Demographic] = []
    for s in subjects:
        inv_code, inv_name = rnd.pick_pair(tables.investigator_codes, tables.investigator_names)
        country = rnd.pick(tables.countries)
        age = draw_age(rnd, tables, missing_rate)
        birth_date = birth_date_for(rnd, s.enrollment_date, age)
        sex = rnd.pick_or_missing(tables.sexes, missing_rate)
        race = rnd.pick_or_missing(tables.races, missing_rate)

        rows.append(
            Demographic(
                study_id=s.study_id,
                domain=DOMAIN,
                subject_id=s.subject_id,
                site_id=s.site_id,
                subject_key=s.subject_key,
                treatment_start=s.treatment_start,
                treatment_end=s.treatment_end,
                enrollment_date=s.enrollment_date,
                investigator_code=inv_code,
                investigator_name=inv_name,
                country=country,
                age=age,
                age_units=tables.age_units,
                birth_date=birth_date,
                sex=sex,
                race=race,
                arm_code=s.arm_code,
                arm_name=s.arm_name,
                study_day=STUDY_DAY,
            )
        )

    logger.info("generated %d demographic records", len(rows))
    return rows


# ---------------------------
# Treatment-group helpers
# ---------------------------

def count_by_arm(dm: Sequence[Demographic]) -> Dict[str, int]:
    """Subjects per arm plus Screened (all rows), SF and Overall (randomized)."""
    counts: Dict[str, int] = {SCREENED: len(dm), SCREEN_FAILURES: 0, OVERALL: 0}
    for r in dm:
        if r.arm_name is None:
            counts[SCREEN_FAILURES] += 1
        else:
            counts[r.arm_name] = counts.get(r.arm_name, 0) + 1
            counts[OVERALL] += 1
    return counts


def unique_arms(dm: Sequence[Demographic]) -> List[str]:
    """Arms in first-seen order, followed by Overall."""
    arms: List[str] = []
    for r in dm:
        if r.arm_name is not None and r.arm_name not in arms:
            arms.append(r.arm_name)
    arms.append(OVERALL)
    return arms


def remove_screen_failures(dm: Sequence[Demographic]) -> List[Demographic]:
    return [r for r in dm if r.arm_name is not None]


def subset_by_arm(dm: Sequence[Demographic], arm: str) -> List[Demographic]:
    if arm == OVERALL:
        return list(dm)
    return [r for r in dm if r.arm_name == arm]


def site_subject(r: Demographic) -> str:
    """Display id ``site-subject``, the subject key without its study prefix."""
    return f"{r.site_id}-{r.subject_id}"
