import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from errors import ConfigError
from randomization import DEFAULT_MISSING_RATE


# ---------------------------
# Lookup tables
# ---------------------------

@dataclass(frozen=True)
class TestDefinition:
    __test__ = False  # not a pytest class

    code: str
    name: str
    units: str
    baseline_low: int  # inclusive
    baseline_high: int  # exclusive


DEFAULT_TEST_CATALOG: Tuple[TestDefinition, ...] = (
    TestDefinition("SBP", "Systolic Blood Pressure", "mmHg", 120, 160),
    TestDefinition("DBP", "Diastolic Blood Pressure", "mmHg", 90, 120),
    TestDefinition("HR", "Heart Rate", "bpm", 70, 120),
)

PLACEBO = 0
ACTIVE = 1


@dataclass(frozen=True)
class DemographyTables:
    investigator_codes: Tuple[str, ...] = ("AAA", "BBB", "CCC", "DDD", "EEE")
    investigator_names: Tuple[str, ...] = ("Smith", "Jones", "Robinson", "Brown", "Green")
    countries: Tuple[str, ...] = ("GBR", "USA", "FRA", "GER", "SWE")
    sexes: Tuple[str, ...] = ("M", "F")
    races: Tuple[str, ...] = ("White", "Black", "Asian")
    age_low: int = 20
    age_high: int = 80
    age_units: str = "Years"

    def __post_init__(self):
        if len(self.investigator_codes) != len(self.investigator_names):
            raise ConfigError("investigator_codes and investigator_names must have the same length")
        for name in ("investigator_codes", "countries", "sexes", "races"):
            if not getattr(self, name):
                raise ConfigError(f"{name} must not be empty")
        if self.age_low > self.age_high:
            raise ConfigError(f"age_low ({self.age_low}) exceeds age_high ({self.age_high})")


# ---------------------------
# Study config
# ---------------------------

@dataclass(frozen=True)
class StudyConfig:
    study_id: str = "XYZ123"
    subject_count: int = 100
    site_ids: Tuple[str, ...] = ("1", "2", "3", "4", "5")
    enrollment_start: date = date(2010, 1, 1)
    enrollment_window_days: int = 364
    max_visit: int = 14
    visit_interval_days: int = 14
    missing_rate: float = DEFAULT_MISSING_RATE
    seed: Optional[int] = None
    arms: Tuple[Tuple[int, str], ...] = ((PLACEBO, "Placebo"), (ACTIVE, "Active"))
    demography: DemographyTables = field(default_factory=DemographyTables)
    test_catalog: Tuple[TestDefinition, ...] = DEFAULT_TEST_CATALOG

    def __post_init__(self):
        if self.subject_count < 1:
            raise ConfigError(f"subject_count must be positive, got {self.subject_count}")
        if not self.site_ids:
            raise ConfigError("site_ids must not be empty")
        if self.enrollment_window_days < 1:
            raise ConfigError(f"enrollment_window_days must be positive, got {self.enrollment_window_days}")
        if self.max_visit < 2:
            raise ConfigError(f"max_visit must be at least 2, got {self.max_visit}")
        if not 0.0 <= self.missing_rate <= 1.0:
            raise ConfigError(f"missing_rate must be between 0.0 and 1.0, got {self.missing_rate}")
        if sorted(code for code, _ in self.arms) != [PLACEBO, ACTIVE]:
            raise ConfigError("arms must define exactly the Placebo (0) and Active (1) codes")
        if not self.test_catalog:
            raise ConfigError("test_catalog must not be empty")

    @property
    def arm_codes(self) -> Tuple[int, ...]:
        return tuple(code for code, _ in self.arms)

    @property
    def arm_names(self) -> Tuple[str, ...]:
        return tuple(name for _, name in self.arms)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "study_id": self.study_id,
            "subject_count": self.subject_count,
            "site_ids": list(self.site_ids),
            "enrollment_start": self.enrollment_start.isoformat(),
            "enrollment_window_days": self.enrollment_window_days,
            "max_visit": self.max_visit,
            "visit_interval_days": self.visit_interval_days,
            "missing_rate": self.missing_rate,
            "seed": self.seed,
            "arms": [{"code": c, "name": n} for c, n in self.arms],
            "tests": [t.code for t in self.test_catalog],
        }


# ---------------------------
# Loading
# ---------------------------

_SCALAR_KEYS = {f.name for f in fields(StudyConfig)} - {"arms", "demography", "test_catalog"}


def _coerce(key: str, value: Any) -> Any:
    if key == "site_ids":
        return tuple(str(v) for v in value)
    if key == "enrollment_start" and isinstance(value, str):
        return date.fromisoformat(value)
    return value


def _from_mapping(data: Dict[str, Any], base: StudyConfig) -> StudyConfig:
    study = data.get("study", {})
    unknown = set(study) - _SCALAR_KEYS - {"arms"}
    if unknown:
        raise ConfigError(f"unknown [study] keys: {', '.join(sorted(unknown))}")
    updates = {k: _coerce(k, v) for k, v in study.items() if k in _SCALAR_KEYS}
    if "arms" in study:
        updates["arms"] = tuple((int(a["code"]), str(a["name"])) for a in study["arms"])

    demo = data.get("demography")
    if demo:
        updates["demography"] = DemographyTables(
            **{k: tuple(v) if isinstance(v, list) else v for k, v in demo.items()}
        )

    tests = data.get("tests")
    if tests:
        updates["test_catalog"] = tuple(TestDefinition(**t) for t in tests)
    return replace(base, **updates)


def _apply_env(config: StudyConfig) -> StudyConfig:
    updates: Dict[str, Any] = {}
    seed = os.getenv("TRIALSYNTH_SEED")
    if seed:
        updates["seed"] = int(seed)
    subjects = os.getenv("TRIALSYNTH_SUBJECTS")
    if subjects:
        updates["subject_count"] = int(subjects)
    return replace(config, **updates) if updates else config


def load_config(path: Optional[Path] = None) -> StudyConfig:
    """Defaults, then the TOML file (if given), then environment overrides."""
    config = StudyConfig()
    if path is not None:
        try:
            with Path(path).open("rb") as handle:
                data = tomllib.load(handle)
        except OSError as e:
            raise ConfigError(f"cannot read config file {path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"invalid TOML in {path}: {e}") from e
        try:
            config = _from_mapping(data, config)
        except (TypeError, ValueError, KeyError) as e:
            raise ConfigError(f"invalid configuration in {path}: {e}") from e
    try:
        return _apply_env(config)
    except ValueError as e:
        raise ConfigError(f"invalid environment override: {e}") from e
