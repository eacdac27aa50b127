"""Delimited-text persistence for the SC, DM and VS tables.

Files are comma separated with no header row and no quoting. A missing value is
an empty field, dates are ``YYYY-MM-DD``, numeric results carry one decimal and
booleans are ``true``/``false``. Everything is read as text and decoded field by
field so a bad value is reported with its line and column instead of being
defaulted.
"""

import csv
import io
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

import pandas as pd

from errors import TableParseError, TableReadError, TableWriteError
from records import Demographic, Disposition, Subject, VitalSign

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


# ---------------------------
# Field converters
# ---------------------------

class _FieldError(ValueError):
    pass


def _fmt_date(d: Optional[date]) -> str:
    return "" if d is None else d.isoformat()


def _fmt_int(v: Optional[int]) -> str:
    return "" if v is None else str(int(v))


def _fmt_float(v: Optional[float], decimals: int = 1) -> str:
    return "" if v is None else f"{v:.{decimals}f}"


def _fmt_str(v: Optional[str]) -> str:
    return "" if v is None else v


def _fmt_bool(v: bool) -> str:
    return "true" if v else "false"


def _req(value: str) -> str:
    if value == "":
        raise _FieldError("required value is missing")
    return value


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(_req(value))
    except ValueError as e:
        raise _FieldError(f"not a YYYY-MM-DD date: {e}") from e


def _parse_int(value: str) -> int:
    try:
        return int(_req(value))
    except ValueError as e:
        raise _FieldError("not an integer") from e


def _parse_float(value: str) -> float:
    try:
        return float(_req(value))
    except ValueError as e:
        raise _FieldError("not a number") from e


def _parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise _FieldError("expected true or false")


def _parse_disposition(value: str) -> Disposition:
    code = _parse_int(value)
    try:
        return Disposition(code)
    except ValueError as e:
        raise _FieldError("disposition class must be 0, 1 or 2") from e


def _optional(parse: Callable[[str], object]) -> Callable[[str], object]:
    def _inner(value: str):
        return None if value == "" else parse(value)
    return _inner


def _optional_str(value: str) -> Optional[str]:
    return None if value == "" else value


# ---------------------------
# Table layouts
# ---------------------------

@dataclass(frozen=True)
class TableFormat:
    name: str
    columns: Sequence[str]
    to_fields: Callable[[object], List[str]]
    parsers: Dict[str, Callable[[str], object]]
    build: Callable[[Dict[str, object]], object]


SC_COLUMNS = (
    "StudyId", "SubjectId", "SiteId", "SubjectKey", "DispositionClass", "EnrollmentDate",
    "LastVisit", "TreatmentStartDate", "TreatmentEndDate", "ArmCode", "ArmName",
)


DM_COLUMNS = (
    "StudyId", "Domain", "SubjectId", "SiteId", "SubjectKey", "TreatmentStartDate",
    "TreatmentEndDate", "EnrollmentDate", "InvestigatorCode", "InvestigatorName", "Country",
    "Age", "AgeUnits", "BirthDate", "Sex", "Race", "ArmCode", "ArmName", "StudyDay",
)


VS_COLUMNS = (
    "StudyId", "Domain", "SubjectId", "SiteId", "SubjectKey", "SequenceNumber", "VisitNumber",
    "TestCode", "TestName", "OriginalResult", "StandardizedResult", "StandardizedResultText",
    "OriginalUnits", "StandardizedUnits", "BaselineFlag", "VisitDate", "StudyDay",
)


def _subject_fields(s: Subject) -> List[str]:
    return [
        s.study_id, s.subject_id, s.site_id, s.subject_key, str(int(s.disposition)),
        _fmt_date(s.enrollment_date), str(s.last_visit), _fmt_date(s.treatment_start),
        _fmt_date(s.treatment_end), _fmt_int(s.arm_code), _fmt_str(s.arm_name),
    ]


def _demographic_fields(d: Demographic) -> List[str]:
    return [
        d.study_id, d.domain, d.subject_id, d.site_id, d.subject_key, _fmt_date(d.treatment_start),
        _fmt_date(d.treatment_end), _fmt_date(d.enrollment_date), d.investigator_code,
        d.investigator_name, d.country, _fmt_int(d.age), d.age_units, _fmt_date(d.birth_date),
        _fmt_str(d.sex), _fmt_str(d.race), _fmt_int(d.arm_code), _fmt_str(d.arm_name), str(d.study_day),
    ]


def _vital_fields(v: VitalSign) -> List[str]:
    return [
        v.study_id, v.domain, v.subject_id, v.site_id, v.subject_key, str(v.sequence_number),
        str(v.visit_number), v.test_code, v.test_name, _fmt_float(v.original_result),
        _fmt_float(v.standardized_result), _fmt_str(v.standardized_result_text), v.original_units,
        v.standardized_units, _fmt_bool(v.baseline_flag), _fmt_date(v.visit_date), str(v.study_day),
    ]


SUBJECTS = TableFormat(
    name="SC",
    columns=SC_COLUMNS,
    to_fields=_subject_fields,
    parsers={
        "StudyId": _req, "SubjectId": _req, "SiteId": _req, "SubjectKey": _req,
        "DispositionClass": _parse_disposition, "EnrollmentDate": _parse_date, "LastVisit": _parse_int,
        "TreatmentStartDate": _optional(_parse_date), "TreatmentEndDate": _optional(_parse_date),
        "ArmCode": _optional(_parse_int), "ArmName": _optional_str,
    },
    build=lambda f: Subject(
        study_id=f["StudyId"], subject_id=f["SubjectId"], site_id=f["SiteId"], subject_key=f["SubjectKey"],
        disposition=f["DispositionClass"], enrollment_date=f["EnrollmentDate"], last_visit=f["LastVisit"],
        treatment_start=f["TreatmentStartDate"], treatment_end=f["TreatmentEndDate"],
        arm_code=f["ArmCode"], arm_name=f["ArmName"],
    ),
)


DEMOGRAPHY = TableFormat(
    name="DM",
    columns=DM_COLUMNS,
    to_fields=_demographic_fields,
    parsers={
        "StudyId": _req, "Domain": _req, "SubjectId": _req, "SiteId": _req, "SubjectKey": _req,
        "TreatmentStartDate": _optional(_parse_date), "TreatmentEndDate": _optional(_parse_date),
        "EnrollmentDate": _parse_date, "InvestigatorCode": _req, "InvestigatorName": _req, "Country": _req,
        "Age": _optional(_parse_int), "AgeUnits": str, "BirthDate": _optional(_parse_date),
        "Sex": _optional_str, "Race": _optional_str, "ArmCode": _optional(_parse_int),
        "ArmName": _optional_str, "StudyDay": _parse_int,
    },
    build=lambda f: Demographic(
        study_id=f["StudyId"], domain=f["Domain"], subject_id=f["SubjectId"], site_id=f["SiteId"],
        subject_key=f["SubjectKey"], treatment_start=f["TreatmentStartDate"],
        treatment_end=f["TreatmentEndDate"], enrollment_date=f["EnrollmentDate"],
        investigator_code=f["InvestigatorCode"], investigator_name=f["InvestigatorName"],
        country=f["Country"], age=f["Age"], age_units=f["AgeUnits"], birth_date=f["BirthDate"],
        sex=f["Sex"], race=f["Race"], arm_code=f["ArmCode"], arm_name=f["ArmName"],
        study_day=f["StudyDay"],
    ),
)


VITALS = TableFormat(
    name="VS",
    columns=VS_COLUMNS,
    to_fields=_vital_fields,
    parsers={
        "StudyId": _req, "Domain": _req, "SubjectId": _req, "SiteId": _req, "SubjectKey": _req,
        "SequenceNumber": _parse_int, "VisitNumber": _parse_int, "TestCode": str, "TestName": str,
        "OriginalResult": _optional(_parse_float), "StandardizedResult": _optional(_parse_float),
        "StandardizedResultText": _optional_str, "OriginalUnits": str, "StandardizedUnits": str,
        "BaselineFlag": _parse_bool, "VisitDate": _parse_date, "StudyDay": _parse_int,
    },
    build=lambda f: VitalSign(
        study_id=f["StudyId"], domain=f["Domain"], subject_id=f["SubjectId"], site_id=f["SiteId"],
        subject_key=f["SubjectKey"], sequence_number=f["SequenceNumber"], visit_number=f["VisitNumber"],
        test_code=f["TestCode"], test_name=f["TestName"], original_result=f["OriginalResult"],
        standardized_result=f["StandardizedResult"],
        standardized_result_text=f["StandardizedResultText"], original_units=f["OriginalUnits"],
        standardized_units=f["StandardizedUnits"], baseline_flag=f["BaselineFlag"],
        visit_date=f["VisitDate"], study_day=f["StudyDay"],
    ),
)


# ---------------------------
# Encode / decode
# ---------------------------

def to_frame(fmt: TableFormat, records: Sequence[object]) -> pd.DataFrame:
    """Text-formatted frame of the records, one column per layout column."""
    return pd.DataFrame([fmt.to_fields(r) for r in records], columns=list(fmt.columns), dtype=str)


def encode_table(fmt: TableFormat, records: Sequence[object]) -> str:
    if not records:
        return ""
    return to_frame(fmt, records).to_csv(
        header=False, index=False, lineterminator="\n", quoting=csv.QUOTE_NONE
    )


def _row_lines(fmt: TableFormat, text: str) -> List[int]:
    """Physical line numbers of the data rows, checking each has the layout's field count."""
    rows = []
    # rows end at \n or \r\n, as pandas reads them
    for number, raw in enumerate(text.split("\n"), start=1):
        raw = raw.rstrip("\r")
        if not raw:
            continue
        found = raw.count(",") + 1
        if found != len(fmt.columns):
            raise TableParseError(
                f"{fmt.name} table expects {len(fmt.columns)} fields per row, found {found}", line=number
            )
        rows.append(number)
    return rows


def _read_frame(fmt: TableFormat, text: str) -> pd.DataFrame:
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(fmt.columns),
            dtype=str,
            keep_default_na=False,
            quoting=csv.QUOTE_NONE,
            skip_blank_lines=True,
        )
    except pd.errors.ParserError as e:
        raise TableParseError(f"{fmt.name} table is malformed: {e}", line=0) from e
    return df


def decode_table(fmt: TableFormat, text: str) -> List[object]:
    lines = _row_lines(fmt, text)
    if not lines:
        return []
    df = _read_frame(fmt, text)
    records: List[object] = []
    for line, row in zip(lines, df.itertuples(index=False, name=None)):
        values: Dict[str, object] = {}
        for column, raw in zip(fmt.columns, row):
            try:
                values[column] = fmt.parsers[column](raw)
            except _FieldError as e:
                raise TableParseError(str(e), line=line, column=column, value=raw) from e
        records.append(fmt.build(values))
    return records


# ---------------------------
# Files
# ---------------------------

def write_table(fmt: TableFormat, records: Sequence[object], path: PathLike) -> Path:
    """Write atomically: a temporary file in the target directory is moved into place."""
    path = Path(path)
    try:
        text = encode_table(fmt, records)
    except csv.Error as e:
        raise TableWriteError(f"cannot encode {fmt.name} table: {e}") from e
    directory = path.parent
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", newline="", dir=directory, prefix=f".{path.name}.", delete=False
        ) as handle:
            tmp_name = handle.name
            handle.write(text)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise TableWriteError(f"cannot write {fmt.name} table to {path}: {e}") from e

    logger.info("wrote %d %s rows to %s", len(records), fmt.name, path)
    return path


def read_table(fmt: TableFormat, path: PathLike) -> List[object]:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TableReadError(f"cannot read {fmt.name} table from {path}: {e}") from e
    records = decode_table(fmt, text)
    logger.info("read %d %s rows from %s", len(records), fmt.name, path)
    return records
