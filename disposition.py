import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from config import StudyConfig
from randomization import Randomizer
from records import Disposition, Subject, make_subject_key

logger = logging.getLogger(__name__)

SCREEN_FAIL_THRESHOLD = 0.05
WITHDRAWAL_THRESHOLD = 0.40


def classify_disposition(x: float) -> Disposition:
    """Map a uniform [0, 1) draw onto a disposition class.

    x <= 0.05 screen failure, 0.05 < x < 0.40 withdrawn, otherwise completer.
    """
    if x <= SCREEN_FAIL_THRESHOLD:
        return Disposition.SCREEN_FAIL
    if x < WITHDRAWAL_THRESHOLD:
        return Disposition.WITHDRAWN
    return Disposition.COMPLETER


def draw_last_visit(rnd: Randomizer, disposition: Disposition, max_visit: int) -> int:
    if disposition == Disposition.SCREEN_FAIL:
        return 0
    if disposition == Disposition.WITHDRAWN:
        # dosed subjects cannot leave at visit 0
        return rnd.uniform_int(1, max_visit - 1)
    return max_visit


def treatment_dates(
    disposition: Disposition,
    enrollment_date: date,
    last_visit: int,
    interval_days: int = 14,
) -> Tuple[Optional[date], Optional[date]]:
    if disposition == Disposition.SCREEN_FAIL:
        return None, None
    start = enrollment_date + timedelta(days=interval_days)
    end = enrollment_date + timedelta(days=last_visit * interval_days)
    return start, end


def generate_subjects(rnd: Randomizer, cfg: StudyConfig) -> List[Subject]:
    subjects: List[Subject] = []
    for i in range(cfg.subject_count):
        site_id = str(rnd.pick(cfg.site_ids)).zfill(4)
        subject_id = str(i + 1).zfill(6)
        disposition = classify_disposition(rnd.random())
        enrollment = cfg.enrollment_start + timedelta(days=rnd.uniform_int(0, cfg.enrollment_window_days - 1))
        last_visit = draw_last_visit(rnd, disposition, cfg.max_visit)
        start, end = treatment_dates(disposition, enrollment, last_visit, cfg.visit_interval_days)

        arm_code: Optional[int] = None
        arm_name: Optional[str] = None
        if disposition != Disposition.SCREEN_FAIL:
            arm_code, arm_name = rnd.pick_pair(cfg.arm_codes, cfg.arm_names)

        subjects.append(
            Subject(
                study_id=cfg.study_id,
                subject_id=subject_id,
                site_id=site_id,
                subject_key=make_subject_key(cfg.study_id, site_id, subject_id),
                disposition=disposition,
                enrollment_date=enrollment,
                last_visit=last_visit,
                treatment_start=start,
                treatment_end=end,
                arm_code=arm_code,
                arm_name=arm_name,
            )
        )
        logger.debug("subject %s: %s, last visit %d", subject_id, disposition.name, last_visit)

    logger.info("generated %d subjects", len(subjects))
    return subjects
