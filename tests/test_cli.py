"""Tests for the trialsynth command line."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

import codec
from cli import app


def _flat(output: str) -> str:
    # rich wraps long lines to the console width
    return " ".join(output.split())


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("TRIALSYNTH_SEED", raising=False)
    monkeypatch.delenv("TRIALSYNTH_SUBJECTS", raising=False)
    return CliRunner()


class TestGenerateCommands:
    def test_three_steps(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(app, ["--seed", "10", "disposition", "-o", "sc.csv"])
            assert result.exit_code == 0, result.output
            assert "100 subjects written to sc.csv" in _flat(result.output)

            result = runner.invoke(app, ["--seed", "11", "demography", "-i", "sc.csv", "-o", "dm.csv"])
            assert result.exit_code == 0, result.output

            result = runner.invoke(app, ["--seed", "12", "vitals", "-i", "sc.csv", "-o", "vs.csv"])
            assert result.exit_code == 0, result.output

            sc = codec.read_table(codec.SUBJECTS, "sc.csv")
            dm = codec.read_table(codec.DEMOGRAPHY, "dm.csv")
            assert len(sc) == len(dm) == 100
            assert Path("vs.csv").stat().st_size > 0

    def test_default_file_names(self, runner):
        with runner.isolated_filesystem():
            assert runner.invoke(app, ["disposition"]).exit_code == 0
            assert runner.invoke(app, ["demography"]).exit_code == 0
            assert runner.invoke(app, ["vitals"]).exit_code == 0
            assert all(Path(name).exists() for name in ("sc3.csv", "dm3.csv", "vs3.csv"))

    def test_seed_reproduces_output(self, runner):
        with runner.isolated_filesystem():
            runner.invoke(app, ["--seed", "3", "disposition", "-o", "a.csv"])
            runner.invoke(app, ["--seed", "3", "disposition", "-o", "b.csv"])
            assert Path("a.csv").read_bytes() == Path("b.csv").read_bytes()

    def test_missing_input_file(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(app, ["demography", "-i", "nope.csv"])
            assert result.exit_code == 1
            assert "cannot read SC table" in _flat(result.output)
            assert not Path("dm3.csv").exists()

    def test_malformed_input_file(self, runner):
        with runner.isolated_filesystem():
            Path("sc3.csv").write_text("XYZ123,000001,0001\n")
            result = runner.invoke(app, ["vitals"])
            assert result.exit_code == 1
            assert "line 1" in _flat(result.output)

    def test_config_file(self, runner):
        with runner.isolated_filesystem():
            Path("study.toml").write_text('[study]\nstudy_id = "ABC1"\nsubject_count = 7\n')
            result = runner.invoke(app, ["--config", "study.toml", "disposition"])
            assert result.exit_code == 0, result.output
            sc = codec.read_table(codec.SUBJECTS, "sc3.csv")
            assert len(sc) == 7
            assert sc[0].subject_key.startswith("ABC1-")

    def test_invalid_config_file(self, runner):
        with runner.isolated_filesystem():
            Path("study.toml").write_text("[study]\nsubject_count = 0\n")
            result = runner.invoke(app, ["--config", "study.toml", "disposition"])
            assert result.exit_code == 1
            assert "subject_count must be positive" in _flat(result.output)


class TestAllSummaryCheck:
    def test_all_then_summary_and_check(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(app, ["--seed", "1", "all", "--out-dir", "out"])
            assert result.exit_code == 0, result.output
            assert {p.name for p in Path("out").iterdir()} == {"sc3.csv", "dm3.csv", "vs3.csv", "manifest.json"}
            manifest = json.loads(Path("out/manifest.json").read_text())
            counts = manifest["report"]["disposition_counts"]
            assert {"WITHDRAWN", "COMPLETER"} <= set(counts) <= {"SCREEN_FAIL", "WITHDRAWN", "COMPLETER"}
            assert sum(counts.values()) == 100

            result = runner.invoke(app, ["summary", "-i", "out/dm3.csv"])
            assert result.exit_code == 0, result.output
            text = _flat(result.output)
            assert "Of the original 100 screened subjects" in text
            assert "Overall" in text

            result = runner.invoke(
                app, ["check", "--sc", "out/sc3.csv", "--dm", "out/dm3.csv", "--vs", "out/vs3.csv"]
            )
            assert result.exit_code == 0, result.output
            assert "100 subjects consistent across tables" in _flat(result.output)

    def test_check_reports_issues(self, runner):
        with runner.isolated_filesystem():
            runner.invoke(app, ["--seed", "1", "all"])
            dm_lines = Path("dm3.csv").read_text().splitlines()
            Path("dm3.csv").write_text("\n".join(dm_lines[:-1]) + "\n")

            result = runner.invoke(app, ["check", "--dm", "dm3.csv"])
            assert result.exit_code == 1
            assert "DM: 99 records for 100 subjects." in _flat(result.output)


class TestListingAndProfile:
    def test_listing_per_arm(self, runner):
        with runner.isolated_filesystem():
            Path("small.toml").write_text("[study]\nsubject_count = 12\n")
            result = runner.invoke(app, ["--seed", "4", "--config", "small.toml", "all"])
            assert result.exit_code == 0, result.output

            result = runner.invoke(app, ["listing"])
            assert result.exit_code == 0, result.output
            text = _flat(result.output)
            assert "Treatment Group: Overall" in text
            assert "Of the original 12 screened subjects" in text
            assert "are not shown" in text

            dm = codec.read_table(codec.DEMOGRAPHY, "dm3.csv")
            for d in dm:
                if d.arm_name is not None:
                    assert f"Treatment Group: {d.arm_name}" in text
                    assert f"{d.site_id}-{d.subject_id}" in text

    def test_profile(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(app, ["--seed", "4", "all"])
            assert result.exit_code == 0, result.output

            result = runner.invoke(app, ["profile", "--sc", "sc3.csv", "-i", "vs3.csv"])
            assert result.exit_code == 0, result.output
            text = _flat(result.output)
            assert "Mean Result by Visit and Treatment Arm" in text
            assert "Placebo" in text and "Active" in text
            assert "SBP" in text

    def test_profile_missing_input(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(app, ["profile"])
            assert result.exit_code == 1
            assert "cannot read SC table" in _flat(result.output)
