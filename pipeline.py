import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import codec
from config import StudyConfig
from demography import generate_demography
from disposition import generate_subjects
from errors import TableWriteError
from randomization import Randomizer
from records import Demographic, Subject, VitalSign
from reporting import basic_report
from validation import validate_tables
from vitals import generate_vitals

logger = logging.getLogger(__name__)

SC_FILE = "sc3.csv"
DM_FILE = "dm3.csv"
VS_FILE = "vs3.csv"
MANIFEST_FILE = "manifest.json"


@dataclass
class PipelineResult:
    subjects: List[Subject]
    demography: List[Demographic]
    vitals: List[VitalSign]
    report: Dict
    issues: List[str]
    files: Dict[str, Path] = field(default_factory=dict)
    seed: Optional[int] = None


# ---------------------------
# Standalone steps
# ---------------------------

def write_disposition(cfg: StudyConfig, rnd: Randomizer, out_path: Path) -> List[Subject]:
    subjects = generate_subjects(rnd, cfg)
    codec.write_table(codec.SUBJECTS, subjects, out_path)
    return subjects


def write_demography(cfg: StudyConfig, rnd: Randomizer, in_path: Path, out_path: Path) -> List[Demographic]:
    subjects = codec.read_table(codec.SUBJECTS, in_path)
    dm = generate_demography(rnd, subjects, cfg.demography, cfg.missing_rate)
    codec.write_table(codec.DEMOGRAPHY, dm, out_path)
    return dm


def write_vitals(cfg: StudyConfig, rnd: Randomizer, in_path: Path, out_path: Path) -> List[VitalSign]:
    subjects = codec.read_table(codec.SUBJECTS, in_path)
    vs = generate_vitals(rnd, subjects, cfg.test_catalog, cfg.visit_interval_days)
    codec.write_table(codec.VITALS, vs, out_path)
    return vs


# ---------------------------
# Full run
# ---------------------------

def build_manifest(cfg: StudyConfig, seed: Optional[int], report: Dict, issues: List[str]) -> Dict:
    return {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "seed": seed,
        "config_used": cfg.as_dict(),
        "report": report,
        "validation_issues": issues,
    }


def run_pipeline(cfg: StudyConfig, out_dir: Path, seed: Optional[int] = None) -> PipelineResult:
    """SC first; DM and VS are generated from the SC file as read back from disk."""
    seed = cfg.seed if seed is None else seed
    rnd = Randomizer(seed)
    out_dir = Path(out_dir)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise TableWriteError(f"cannot create output directory {out_dir}: {e}") from e

    files = {"SC": out_dir / SC_FILE, "DM": out_dir / DM_FILE, "VS": out_dir / VS_FILE}
    write_disposition(cfg, rnd, files["SC"])
    subjects = codec.read_table(codec.SUBJECTS, files["SC"])
    dm = write_demography(cfg, rnd, files["SC"], files["DM"])
    vs = write_vitals(cfg, rnd, files["SC"], files["VS"])

    issues = validate_tables(subjects, dm, vs, len(cfg.test_catalog), cfg.max_visit, cfg.visit_interval_days)
    report = basic_report(list(range(cfg.max_visit + 1)), subjects, dm, vs)
    if issues:
        logger.warning("%d consistency issues found", len(issues))

    manifest_path = out_dir / MANIFEST_FILE
    try:
        manifest_path.write_text(json.dumps(build_manifest(cfg, seed, report, issues), indent=2), encoding="utf-8")
    except OSError as e:
        raise TableWriteError(f"cannot write {manifest_path}: {e}") from e
    files["manifest"] = manifest_path

    return PipelineResult(subjects, dm, vs, report, issues, files, seed)


# ---------------------------
# In-memory run (front end downloads)
# ---------------------------

def generate_bundle(cfg: StudyConfig, seed: Optional[int] = None) -> Tuple[PipelineResult, Dict[str, bytes]]:
    """Same flow as run_pipeline, but the SC hand-off goes through encoded text."""
    seed = cfg.seed if seed is None else seed
    rnd = Randomizer(seed)

    sc_text = codec.encode_table(codec.SUBJECTS, generate_subjects(rnd, cfg))
    subjects = codec.decode_table(codec.SUBJECTS, sc_text)
    dm = generate_demography(rnd, subjects, cfg.demography, cfg.missing_rate)
    vs = generate_vitals(rnd, subjects, cfg.test_catalog, cfg.visit_interval_days)

    issues = validate_tables(subjects, dm, vs, len(cfg.test_catalog), cfg.max_visit, cfg.visit_interval_days)
    report = basic_report(list(range(cfg.max_visit + 1)), subjects, dm, vs)

    files = {
        SC_FILE: sc_text.encode("utf-8"),
        DM_FILE: codec.encode_table(codec.DEMOGRAPHY, dm).encode("utf-8"),
        VS_FILE: codec.encode_table(codec.VITALS, vs).encode("utf-8"),
        MANIFEST_FILE: json.dumps(build_manifest(cfg, seed, report, issues), indent=2).encode("utf-8"),
    }
    return PipelineResult(subjects, dm, vs, report, issues, seed=seed), files


def make_zip_bytes(files: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for fname, content in files.items():
            zf.writestr(fname, content)
    return buf.getvalue()
