"""Command line for generating and checking the SC, DM and VS tables."""

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

import codec
import pipeline
from config import StudyConfig, load_config
from demography import count_by_arm, remove_screen_failures, unique_arms
from errors import TrialSynthError
from randomization import Randomizer
from reporting import LISTING_COLUMNS, listing_table, profile_table, summary_table
from validation import validate_tables

console = Console()


def _configure_logging(verbose: int) -> None:
    level = logging.DEBUG if verbose > 1 else logging.INFO if verbose == 1 else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


class _State:
    def __init__(self, cfg: StudyConfig, seed: Optional[int]):
        self.cfg = cfg
        self.seed = cfg.seed if seed is None else seed

    def randomizer(self) -> Randomizer:
        return Randomizer(self.seed)


def _run(action):
    try:
        return action()
    except TrialSynthError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="TOML file with [study], [demography] and [[tests]] tables",
)
@click.option("--seed", type=int, default=None, help="Seed for a reproducible run (default: random)")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
@click.pass_context
def app(ctx: click.Context, config_file: Optional[Path], seed: Optional[int], verbose: int) -> None:
    """Synthesize a consistent SC / DM / VS clinical-trial dataset."""
    _configure_logging(verbose)
    cfg = _run(lambda: load_config(config_file))
    ctx.obj = _State(cfg, seed)


@app.command()
@click.option("-o", "outfile", type=click.Path(dir_okay=False, path_type=Path), default=pipeline.SC_FILE,
              show_default=True, help="Name of output file")
@click.pass_obj
def disposition(state: _State, outfile: Path) -> None:
    """Create the subject disposition (SC) table."""
    subjects = _run(lambda: pipeline.write_disposition(state.cfg, state.randomizer(), outfile))
    console.print(f"[green]✓[/green] {len(subjects)} subjects written to {outfile}")


@app.command()
@click.option("-i", "infile", type=click.Path(path_type=Path), default=pipeline.SC_FILE,
              show_default=True, help="Name of input file")
@click.option("-o", "outfile", type=click.Path(dir_okay=False, path_type=Path), default=pipeline.DM_FILE,
              show_default=True, help="Name of output file")
@click.pass_obj
def demography(state: _State, infile: Path, outfile: Path) -> None:
    """Create the demographic (DM) table from an SC table."""
    dm = _run(lambda: pipeline.write_demography(state.cfg, state.randomizer(), infile, outfile))
    console.print(f"[green]✓[/green] {len(dm)} demographic records written to {outfile}")


@app.command()
@click.option("-i", "infile", type=click.Path(path_type=Path), default=pipeline.SC_FILE,
              show_default=True, help="Name of input file")
@click.option("-o", "outfile", type=click.Path(dir_okay=False, path_type=Path), default=pipeline.VS_FILE,
              show_default=True, help="Name of output file")
@click.pass_obj
def vitals(state: _State, infile: Path, outfile: Path) -> None:
    """Create the vital-signs (VS) table from an SC table."""
    vs = _run(lambda: pipeline.write_vitals(state.cfg, state.randomizer(), infile, outfile))
    console.print(f"[green]✓[/green] {len(vs)} vital-sign rows written to {outfile}")


@app.command(name="all")
@click.option("--out-dir", type=click.Path(file_okay=False, path_type=Path), default=Path("."),
              show_default=True, help="Directory for the generated tables")
@click.pass_obj
def run_all(state: _State, out_dir: Path) -> None:
    """Run the full pipeline: SC, then DM and VS from the persisted SC."""
    result = _run(lambda: pipeline.run_pipeline(state.cfg, out_dir, state.seed))
    for name, path in result.files.items():
        console.print(f"[green]✓[/green] {name}: {path}")
    for issue in result.issues:
        console.print(f"[yellow]⚠[/yellow] {escape(issue)}")


def _frame_table(frame, title: str, left: int = 1) -> Table:
    table = Table(title=escape(title))
    for i, column in enumerate(frame.columns):
        table.add_column(column, justify="left" if i < left else "right")
    for row in frame.itertuples(index=False, name=None):
        table.add_row(*(escape(str(v)) for v in row))
    return table


@app.command()
@click.option("-i", "infile", type=click.Path(path_type=Path), default=pipeline.DM_FILE,
              show_default=True, help="DM table to summarize")
def summary(infile: Path) -> None:
    """Summary of demographic data by treatment arm."""
    dm = _run(lambda: codec.read_table(codec.DEMOGRAPHY, infile))
    counts = count_by_arm(dm)

    console.print(_frame_table(summary_table(dm), "Summary of Demographic Data by Treatment Arm", left=2))
    console.print(
        f"Of the original {counts['Screened']} screened subjects, "
        f"{counts['SF']} were excluded at Screening and are not counted."
    )


@app.command()
@click.option("-i", "infile", type=click.Path(path_type=Path), default=pipeline.DM_FILE,
              show_default=True, help="DM table to list")
def listing(infile: Path) -> None:
    """Listing of demographic data, one table per treatment arm."""
    dm = _run(lambda: codec.read_table(codec.DEMOGRAPHY, infile))
    counts = count_by_arm(dm)

    for arm in unique_arms(remove_screen_failures(dm)):
        console.print(_frame_table(listing_table(dm, arm), f"Treatment Group: {arm}", left=len(LISTING_COLUMNS)))
    console.print(
        f"Of the original {counts['Screened']} screened subjects, "
        f"{counts['SF']} were excluded at Screening and are not shown."
    )


@app.command()
@click.option("--sc", "sc_path", type=click.Path(path_type=Path), default=pipeline.SC_FILE,
              show_default=True, help="SC table giving each subject's arm")
@click.option("-i", "infile", type=click.Path(path_type=Path), default=pipeline.VS_FILE,
              show_default=True, help="VS table to profile")
def profile(sc_path: Path, infile: Path) -> None:
    """Mean vital-sign result by treatment arm, test and visit."""
    def load():
        return codec.read_table(codec.SUBJECTS, sc_path), codec.read_table(codec.VITALS, infile)

    sc, vs = _run(load)
    frame = profile_table(vs, sc)
    if frame.empty:
        console.print("No results for randomized subjects.")
        return
    console.print(_frame_table(frame, "Mean Result by Visit and Treatment Arm", left=2))


@app.command()
@click.option("--sc", "sc_path", type=click.Path(path_type=Path), default=pipeline.SC_FILE, show_default=True)
@click.option("--dm", "dm_path", type=click.Path(path_type=Path), default=None, help="DM table to cross-check")
@click.option("--vs", "vs_path", type=click.Path(path_type=Path), default=None, help="VS table to cross-check")
@click.pass_obj
def check(state: _State, sc_path: Path, dm_path: Optional[Path], vs_path: Optional[Path]) -> None:
    """Check cross-table consistency; exits 1 when issues are found."""
    def load():
        sc = codec.read_table(codec.SUBJECTS, sc_path)
        dm = codec.read_table(codec.DEMOGRAPHY, dm_path) if dm_path else None
        vs = codec.read_table(codec.VITALS, vs_path) if vs_path else None
        return sc, dm, vs

    sc, dm, vs = _run(load)
    cfg = state.cfg
    issues = validate_tables(sc, dm, vs, len(cfg.test_catalog), cfg.max_visit, cfg.visit_interval_days)
    if not issues:
        console.print(f"[green]✓[/green] {len(sc)} subjects consistent across tables")
        return
    for issue in issues:
        console.print(f"[red]✗[/red] {escape(issue)}")
    raise click.exceptions.Exit(1)


if __name__ == "__main__":  # pragma: no cover - manual CLI invocation
    app()
