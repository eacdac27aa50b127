from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from demography import (
    OVERALL,
    count_by_arm,
    remove_screen_failures,
    site_subject,
    subset_by_arm,
    unique_arms,
)
from records import Demographic, Disposition, Subject, VitalSign


@dataclass(frozen=True)
class ArmCategoryKey:
    category: str
    arm: str


@dataclass(frozen=True)
class ProfileKey:
    arm: str
    test_code: str
    visit_number: int


def records_frame(records: Sequence[object]) -> pd.DataFrame:
    """Typed frame of dataclass records; missing values become NaN/None."""
    if not records:
        return pd.DataFrame()
    return pd.DataFrame([asdict(r) for r in records])


# ---------------------------
# Report card
# ---------------------------

def basic_report(
    visits: List[int],
    sc: Sequence[Subject],
    dm: Optional[Sequence[Demographic]] = None,
    vs: Optional[Sequence[VitalSign]] = None,
) -> Dict:
    sc_df = records_frame(sc)
    dm_df = records_frame(dm or [])
    vs_df = records_frame(vs or [])

    report: Dict = {}
    report["row_counts"] = {"SC": int(len(sc_df)), "DM": int(len(dm_df)), "VS": int(len(vs_df))}

    n_subj = int(len(sc_df))
    report["n_subjects"] = n_subj
    if n_subj:
        # pandas stores the IntEnum as plain int64
        names = sc_df["disposition"].map(lambda d: Disposition(int(d)).name)
        report["disposition_counts"] = {str(k): int(v) for k, v in names.value_counts().items()}
    else:
        report["disposition_counts"] = {}

    # Fraction of subjects with any VS row at each visit
    def completion(df: pd.DataFrame) -> Dict[str, float]:
        if len(df) == 0:
            return {str(v): 0.0 for v in visits}
        out = {}
        for v in visits:
            n = df[df["visit_number"] == v]["subject_key"].nunique()
            out[str(v)] = float(n) / float(n_subj) if n_subj else 0.0
        return out

    report["vs_completion_by_visitnum"] = completion(vs_df)

    # Missingness per table (% cells missing)
    def missingness(df: pd.DataFrame) -> float:
        if len(df) == 0:
            return 0.0
        total = df.size
        miss = int(df.isna().sum().sum())
        return float(miss) / float(total) if total else 0.0

    report["missingness_fraction"] = {
        "SC": missingness(sc_df),
        "DM": missingness(dm_df),
        "VS": missingness(vs_df),
    }
    return report


# ---------------------------
# Demographic summary
# ---------------------------

def _age_stats(ages: pd.Series) -> Dict[str, Optional[float]]:
    ages = ages.dropna().astype(float)
    if ages.empty:
        return {"n": 0, "mean": None, "sd": None, "median": None, "min": None, "max": None}
    return {
        "n": int(ages.size),
        "mean": float(ages.mean()),
        "sd": float(ages.std(ddof=0)),
        "median": float(ages.median()),
        "min": float(ages.min()),
        "max": float(ages.max()),
    }


def _category_counts(
    df: pd.DataFrame, column: str, arm_n: Dict[str, int]
) -> Dict[ArmCategoryKey, Tuple[int, float]]:
    out: Dict[ArmCategoryKey, Tuple[int, float]] = {}
    present = df[df[column].notna()]
    for arm, group in list(present.groupby("arm_name")) + [(OVERALL, present)]:
        n = arm_n.get(arm, 0)
        for category, count in group[column].value_counts().items():
            pct = 100.0 * count / n if n else 0.0
            out[ArmCategoryKey(str(category), str(arm))] = (int(count), pct)
    return out


def demography_summary(dm: Sequence[Demographic]) -> Dict:
    """Counts, age statistics and sex/race breakdown by treatment arm.

    Screen failures are counted but excluded from the statistics; percentages
    are relative to the number of randomized subjects in the arm.
    """
    counts = count_by_arm(dm)
    randomized = remove_screen_failures(dm)
    arms = unique_arms(randomized)
    df = records_frame(randomized)

    summary: Dict = {"counts": counts, "arms": arms, "age": {}, "sex": {}, "race": {}}
    if df.empty:
        summary["age"] = {arm: _age_stats(pd.Series([], dtype=float)) for arm in arms}
        return summary

    for arm in arms:
        subset = df if arm == OVERALL else df[df["arm_name"] == arm]
        summary["age"][arm] = _age_stats(subset["age"])

    summary["sex"] = _category_counts(df, "sex", counts)
    summary["race"] = _category_counts(df, "race", counts)
    return summary


# ---------------------------
# Vital-sign profiles
# ---------------------------

def vitals_profile(vs: Sequence[VitalSign], subjects: Sequence[object]) -> Dict[ProfileKey, float]:
    """Mean result per arm, test and visit for randomized subjects.

    ``subjects`` is any sequence of SC or DM records; only their subject key
    and arm name are used.
    """
    arm_of = {s.subject_key: s.arm_name for s in subjects if s.arm_name is not None}
    df = records_frame(vs)
    if df.empty:
        return {}
    df["arm"] = df["subject_key"].map(arm_of)
    df = df[df["arm"].notna() & df["original_result"].notna()]

    df = df.assign(original_result=df["original_result"].astype(float))
    means = df.groupby(["arm", "test_code", "visit_number"])["original_result"].mean()
    return {ProfileKey(str(arm), str(code), int(visit)): float(m) for (arm, code, visit), m in means.items()}


def summary_table(dm: Sequence[Demographic]) -> pd.DataFrame:
    """demography_summary laid out as display rows, one column per arm."""
    s = demography_summary(dm)
    arms = s["arms"]
    age = s["age"]

    def fmt(v, dec):
        return "" if v is None else f"{v:.{dec}f}"

    rows = [
        ["Number of Subjects", "N"] + [str(s["counts"].get(a, 0)) for a in arms],
        ["Age (years)", "Number of Non-Missing"] + [str(age[a]["n"]) for a in arms],
        ["", "Mean (SD)"] + [f"{fmt(age[a]['mean'], 2)} ({fmt(age[a]['sd'], 2)})" for a in arms],
        ["", "Median"] + [fmt(age[a]["median"], 0) for a in arms],
        ["", "Minimum"] + [fmt(age[a]["min"], 0) for a in arms],
        ["", "Maximum"] + [fmt(age[a]["max"], 0) for a in arms],
    ]
    for label, counts in (("Gender", s["sex"]), ("Race", s["race"])):
        categories = sorted({k.category for k in counts})
        for i, category in enumerate(categories):
            cells = []
            for a in arms:
                n, pct = counts.get(ArmCategoryKey(category, a), (0, 0.0))
                cells.append(f"{n} ({pct:.2f}%)")
            rows.append([label if i == 0 else "", category] + cells)

    return pd.DataFrame(rows, columns=["Characteristic", "Statistic"] + arms)


# ---------------------------
# Listings
# ---------------------------

LISTING_COLUMNS = ["SiteID-SubjectID", "Date of Birth", "Age (Years)", "Gender", "Ethnicity"]


def listing_table(dm: Sequence[Demographic], arm: str) -> pd.DataFrame:
    """Randomized subjects of one arm (or Overall), one display row each."""
    rows = [
        [
            site_subject(d),
            "" if d.birth_date is None else d.birth_date.isoformat(),
            "" if d.age is None else str(d.age),
            d.sex or "",
            d.race or "",
        ]
        for d in subset_by_arm(remove_screen_failures(dm), arm)
    ]
    return pd.DataFrame(rows, columns=LISTING_COLUMNS)


def profile_table(vs: Sequence[VitalSign], subjects: Sequence[object]) -> pd.DataFrame:
    """vitals_profile as rows ordered by arm, test and visit."""
    profile = vitals_profile(vs, subjects)
    keys = sorted(profile, key=lambda k: (k.arm, k.test_code, k.visit_number))
    rows = [[k.arm, k.test_code, k.visit_number, round(profile[k], 2)] for k in keys]
    return pd.DataFrame(rows, columns=["Arm", "Test", "Visit", "Mean"])
