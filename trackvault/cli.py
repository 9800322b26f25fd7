import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.markup import escape
from rich.prompt import Prompt

from .analysis import load_analyzer
from .catalog import (
    CatalogOpenError,
    CorruptRecordError,
    Record,
    format_compact,
    format_detailed,
    open_library,
)
from .config import CONFIG_FILE, config, console
from .fingerprint import fingerprint_stem
from .ingest import (
    Candidates,
    Decision,
    Duplicate,
    Outcome,
    Resolution,
    ingest_directory,
)
from .reconcile import reconcile

app = typer.Typer(help="A content-addressed music store.")
config_app = typer.Typer(help="Show configuration")


@app.callback()
def main(
    ctx: typer.Context,
    db: Path = typer.Option(config["DB_PATH"], "--db", help="Path to the catalog database."),
    store: Path = typer.Option(config["STORE_ROOT"], "--store", help="Path to the music store."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    ctx.obj = {"db": db, "store": store}


def _open(ctx: typer.Context):
    try:
        analyzer = load_analyzer(config["ANALYZER"], suffix=config["ANALYSIS_SUFFIX"])
    except (ValueError, ImportError, AttributeError, TypeError) as e:
        console.print(f"[bold red]Cannot load analyzer {escape(str(config['ANALYZER']))}: {escape(str(e))}[/bold red]")
        raise typer.Exit(1)
    return open_library(
        ctx.obj["db"],
        ctx.obj["store"],
        extension=config["STORE_EXTENSION"],
        analyzer=analyzer,
    )


def _describe(record: Optional[Record], fp: int) -> str:
    if record is None:
        return f"{fingerprint_stem(fp)} (unreadable)"
    return f"{record.artist} - {record.title}\t| {record.album}: {fingerprint_stem(fp)}"


def _lookup(library, fp: int) -> Optional[Record]:
    try:
        return library.store.get(fp)
    except CorruptRecordError:
        return None


def _ask_tags(outcome: Outcome, decision: Decision) -> Resolution:
    cand = outcome.candidate
    title = Prompt.ask("Song title", default=cand.title)
    artist = Prompt.ask("Song artist", default=cand.artist)
    album = Prompt.ask("Song album", default=cand.album)
    return Resolution(decision, replace(cand, title=title, artist=artist, album=album))


def _prompt_decider(library) -> Callable[[Outcome], Resolution]:
    def decide(outcome: Outcome) -> Resolution:
        cand = outcome.candidate
        if isinstance(outcome, Duplicate):
            console.print("[bold red]Fingerprint collision, probably a duplicate.[/bold red]")
            console.print("--- Prev Song ---")
            console.print(_describe(outcome.existing, cand.fingerprint), markup=False)
            console.print("--- Curr Song ---")
            console.print(f"{cand.artist} - {cand.title}\t| {cand.album}", markup=False)
            choice = Prompt.ask(
                "Choose process ([s]kip, [r]eplace stored, abort [x])",
                choices=["s", "r", "x"],
                default="s",
            )
            if choice == "r":
                return _ask_tags(outcome, Decision.REPLACE_CLOSEST)
            return Resolution(Decision(choice))

        closest = outcome.closest
        console.print("\n--- Curr Song ---")
        console.print(
            f"{cand.artist} - {cand.title}\t| {cand.album}: {cand.stem}", markup=False
        )
        choices = ["n"]
        if closest.audio_best is not None:
            console.print(f"--- Closest Song (Dist: {closest.audio_distance}) ---")
            console.print(_describe(_lookup(library, closest.audio_best), closest.audio_best), markup=False)
            choices.append("r")
        if closest.title_best is not None:
            console.print(f"--- Closest Title (Score: {closest.title_score}) ---")
            console.print(_describe(_lookup(library, closest.title_best), closest.title_best), markup=False)
            choices.append("t")
        console.print("-----------------")
        choices += ["s", "x"]
        choice = Prompt.ask(
            "Choose process ([n]ew, replace closest [r], replace closest [t]itle, [s]kip, abort [x])",
            choices=choices,
            default="n",
        )
        decision = Decision(choice)
        if decision in (Decision.SKIP, Decision.ABORT):
            return Resolution(decision)
        return _ask_tags(outcome, decision)

    return decide


def _accept_new(outcome: Outcome) -> Resolution:
    if isinstance(outcome, Candidates):
        return Resolution(Decision.NEW)
    console.print(
        f"[yellow]Duplicate of {outcome.candidate.stem}, skipping {escape(str(outcome.candidate.source))}[/yellow]"
    )
    return Resolution(Decision.SKIP)


@app.command()
def ingest(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Path to folder to ingest."),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Accept every new song as-is and skip duplicates."
    ),
):
    """Ingest music into the catalog."""
    if not path.is_dir():
        console.print(f"[red]Error: '{escape(str(path))}' is not a directory.[/red]")
        raise typer.Exit(1)
    try:
        with _open(ctx) as library:
            decide = _accept_new if yes else _prompt_decider(library)
            report = ingest_directory(library, path, decide, extensions=config["AUDIO_EXTENSIONS"])
    except CatalogOpenError as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        raise typer.Exit(1)

    for failed_path, reason in report.failed:
        console.print(f"[red]Failed:[/red] {escape(str(failed_path))}: {escape(reason)}")
    console.print(
        f"[bold green]{len(report.accepted)} added[/bold green], "
        f"{len(report.duplicates)} duplicate(s), {len(report.skipped)} skipped, "
        f"[red]{len(report.failed)} failed[/red]"
    )
    if report.aborted:
        console.print("[bold red]Ingest aborted by user.[/bold red]")


@app.command(name="list")
def list_catalog(
    ctx: typer.Context,
    detailed: bool = typer.Option(False, "--detailed", help="List song analysis information."),
):
    """List music in the catalog."""
    try:
        with _open(ctx) as library:
            for entry in library.store.records():
                line = format_detailed(entry.record) if detailed else format_compact(entry.record)
                console.print(line, markup=False, highlight=False, soft_wrap=True)
    except CatalogOpenError as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        raise typer.Exit(1)


@app.command()
def sync(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without writing."),
):
    """Sync the catalog with the music store."""
    try:
        with _open(ctx) as library:
            report = reconcile(library, dry_run=dry_run)
    except CatalogOpenError as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        raise typer.Exit(1)

    for record in report.removed:
        console.print(
            f"{fingerprint_stem(record.fingerprint)} - {record.title} \t| no longer exists! Removing...",
            markup=False,
        )
    for record in report.updated:
        console.print(
            f"{fingerprint_stem(record.fingerprint)} - {record.title} \t| stored differs from file! Updating...",
            markup=False,
        )
    for corrupt in report.skipped:
        console.print(f"[yellow]Skipped corrupt entry {corrupt.key.hex()}[/yellow]")
    prefix = "[dim](dry run)[/dim] " if dry_run else ""
    console.print(
        f"{prefix}[green]{report.unchanged} unchanged[/green], "
        f"{len(report.updated)} updated, {len(report.removed)} removed"
    )


@config_app.command(name="show")
def config_show():
    """Show current configuration values."""
    console.print(f"[dim]{CONFIG_FILE}[/dim]")
    for k, v in config.items():
        if isinstance(v, (set, list)):
            v = ",".join(sorted(str(x) for x in v))
        console.print(f"[cyan]{k}[/cyan]=[white]{escape(str(v))}[/white]")


app.add_typer(config_app, name="config")


if __name__ == "__main__":
    app()
