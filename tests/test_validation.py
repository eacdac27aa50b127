from dataclasses import replace
from datetime import timedelta

from config import StudyConfig
from demography import generate_demography
from disposition import generate_subjects
from records import Disposition
from validation import validate_tables
from vitals import assign_sequence_numbers, generate_vitals


def _tables(rnd, subjects):
    return subjects, generate_demography(rnd, subjects), generate_vitals(rnd, subjects)


class TestValidateTables:
    def test_generated_tables_are_consistent(self, rnd):
        sc, dm, vs = _tables(rnd, generate_subjects(rnd, StudyConfig(subject_count=60)))
        assert validate_tables(sc, dm, vs) == []

    def test_subject_table_alone(self, mixed_subjects):
        assert validate_tables(mixed_subjects) == []

    def test_tampered_screen_failure(self, mixed_subjects):
        sc = list(mixed_subjects)
        sc[0] = replace(sc[0], arm_code=1, arm_name="Active")
        issues = validate_tables(sc)
        assert len(issues) == 1
        assert "screen failure" in issues[0]

    def test_duplicate_and_bad_key(self, mixed_subjects):
        sc = list(mixed_subjects) + [mixed_subjects[2]]
        sc[1] = replace(sc[1], subject_key="XYZ123-9999-000002")
        issues = validate_tables(sc)
        assert any("duplicate" in i for i in issues)
        assert any("does not match" in i for i in issues)

    def test_withdrawn_and_completer_visits(self, mixed_subjects):
        sc = list(mixed_subjects)
        sc[1] = replace(sc[1], last_visit=14)
        sc[2] = replace(sc[2], last_visit=13)
        issues = validate_tables(sc)
        assert any("withdrawn" in i for i in issues)
        assert any("completer" in i for i in issues)
        # treatment end no longer matches the changed last visits
        assert sum("treatment end" in i for i in issues) == 2

    def test_demography_mismatch(self, rnd, mixed_subjects):
        sc, dm, _ = _tables(rnd, mixed_subjects)
        dm[3] = replace(dm[3], enrollment_date=dm[3].enrollment_date + timedelta(days=1))
        issues = validate_tables(sc, dm)
        assert issues == [f"DM: dates or arm for {dm[3].subject_key} differ from SC."]

    def test_demography_count(self, rnd, mixed_subjects):
        sc, dm, _ = _tables(rnd, mixed_subjects)
        issues = validate_tables(sc, dm[:-1])
        assert issues == ["DM: 3 records for 4 subjects."]

    def test_unknown_vitals_subject(self, rnd, mixed_subjects, subject_factory):
        sc, _, vs = _tables(rnd, mixed_subjects)
        stranger = generate_vitals(rnd, [subject_factory(9, Disposition.SCREEN_FAIL, site_id="0005")])
        issues = validate_tables(sc, vs=vs + stranger)
        assert any("FK violation" in i and "XYZ123-0005-000009" in i for i in issues)

    def test_broken_sequence(self, rnd, mixed_subjects):
        sc, _, vs = _tables(rnd, mixed_subjects)
        vs[1] = replace(vs[1], sequence_number=7)
        issues = validate_tables(sc, vs=vs)
        assert issues == [f"VS: sequence numbers for {vs[1].subject_key} are not 1..3."]

    def test_unsorted_rows(self, rnd, mixed_subjects):
        sc, _, vs = _tables(rnd, mixed_subjects)
        issues = validate_tables(sc, vs=assign_sequence_numbers(list(reversed(vs))))
        assert any("not sorted" in i for i in issues)

    def test_missing_visit_rows(self, rnd, mixed_subjects):
        sc, _, vs = _tables(rnd, mixed_subjects)
        last = vs[-1].subject_key
        issues = validate_tables(sc, vs=vs[:-1])
        assert f"VS: {last} has 20 rows, expected 21." in issues
