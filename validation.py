from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from records import Demographic, Disposition, Subject, VitalSign, make_subject_key


def _subject_issues(sc: Sequence[Subject], max_visit: int, interval_days: int) -> List[str]:
    issues: List[str] = []
    seen = set()
    for s in sc:
        if s.subject_key in seen:
            issues.append(f"SC: duplicate subject key {s.subject_key}.")
        seen.add(s.subject_key)

        if s.subject_key != make_subject_key(s.study_id, s.site_id, s.subject_id):
            issues.append(f"SC: subject key {s.subject_key} does not match its study, site and subject ids.")

        if s.disposition == Disposition.SCREEN_FAIL:
            if s.last_visit != 0 or s.arm_code is not None or s.treatment_start or s.treatment_end:
                issues.append(f"SC: screen failure {s.subject_key} has visits, treatment dates or an arm.")
            continue

        if s.disposition == Disposition.WITHDRAWN and not 1 <= s.last_visit <= max_visit - 1:
            issues.append(f"SC: withdrawn subject {s.subject_key} has last visit {s.last_visit}.")
        if s.disposition == Disposition.COMPLETER and s.last_visit != max_visit:
            issues.append(f"SC: completer {s.subject_key} has last visit {s.last_visit}.")
        if s.arm_code is None:
            issues.append(f"SC: randomized subject {s.subject_key} has no arm.")
        if s.treatment_start is None or s.treatment_end is None:
            issues.append(f"SC: randomized subject {s.subject_key} is missing treatment dates.")
        elif (s.treatment_end - s.enrollment_date).days != s.last_visit * interval_days:
            issues.append(f"SC: treatment end for {s.subject_key} does not match its last visit.")
    return issues


def _demography_issues(sc_by_key: Dict[str, Subject], dm: Sequence[Demographic]) -> List[str]:
    issues: List[str] = []
    for d in dm:
        s = sc_by_key.get(d.subject_key)
        if s is None:
            issues.append(f"DM: subject {d.subject_key} not in SC.")
            continue
        carried = (
            (d.enrollment_date, d.treatment_start, d.treatment_end, d.arm_code, d.arm_name)
            != (s.enrollment_date, s.treatment_start, s.treatment_end, s.arm_code, s.arm_name)
        )
        if carried:
            issues.append(f"DM: dates or arm for {d.subject_key} differ from SC.")
        if d.birth_date is not None and d.age is None:
            issues.append(f"DM: {d.subject_key} has a birth date but no age.")
    if len(dm) != len(sc_by_key):
        issues.append(f"DM: {len(dm)} records for {len(sc_by_key)} subjects.")
    return issues


def _vitals_issues(sc_by_key: Dict[str, Subject], vs: Sequence[VitalSign], n_tests: int) -> List[str]:
    issues: List[str] = []
    by_subject: Dict[str, List[VitalSign]] = defaultdict(list)
    for v in vs:
        by_subject[v.subject_key].append(v)

    unknown = sorted(set(by_subject) - set(sc_by_key))
    if unknown:
        issues.append(f"VS: FK violation (subject not in SC). Example: {unknown[:5]}")

    keys = [v.sort_key for v in vs]
    if keys != sorted(keys):
        issues.append("VS: rows are not sorted by subject, test code and visit.")

    for key, rows in by_subject.items():
        seqs = [r.sequence_number for r in rows]
        if seqs != list(range(1, len(rows) + 1)):
            issues.append(f"VS: sequence numbers for {key} are not 1..{len(rows)}.")
        s = sc_by_key.get(key)
        if s is None:
            continue
        expected = (s.last_visit + 1) * n_tests
        if len(rows) != expected:
            issues.append(f"VS: {key} has {len(rows)} rows, expected {expected}.")
        if any((r.original_result is None) != (s.arm_code is None) for r in rows):
            issues.append(f"VS: results for {key} do not follow its arm assignment.")
    return issues


def validate_tables(
    sc: Sequence[Subject],
    dm: Optional[Sequence[Demographic]] = None,
    vs: Optional[Sequence[VitalSign]] = None,
    n_tests: int = 3,
    max_visit: int = 14,
    interval_days: int = 14,
) -> List[str]:
    """Cross-table consistency checks; an empty list means the tables agree."""
    issues = _subject_issues(sc, max_visit, interval_days)
    sc_by_key = {s.subject_key: s for s in sc}
    if dm is not None:
        issues.extend(_demography_issues(sc_by_key, dm))
    if vs is not None:
        issues.extend(_vitals_issues(sc_by_key, vs, n_tests))
    return issues
