"""CLI over a folder of markdown person notes with YAML frontmatter."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="kinship-graph",
    help="Family relationship graph: validate, relate and sync person notes",
    add_completion=False,
)
console = Console()

DirArg = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, help="Folder of markdown notes")
TypesOpt = typer.Option(None, "--types", "-t", help="YAML file with custom relationship types")
LogLevelOpt = typer.Option(None, "--log-level", help="Override LOG_LEVEL")

_SEVERITY_STYLE = {"error": "red", "warning": "yellow", "info": "dim"}


def get_config(log_level: str | None = None):
    """Load configuration from environment (and .env)."""
    from dotenv import load_dotenv

    from .config import EngineConfig
    from .logging import configure_logging

    load_dotenv()
    config = EngineConfig()
    level = (log_level or config.log_level).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level = "INFO"
    configure_logging(level)
    return config


def _registry(types: Path | None):
    from .exceptions import RegistryError
    from .models import RelationshipTypeRegistry

    registry = RelationshipTypeRegistry.with_defaults()
    if types is not None:
        try:
            registry.load_from_yaml(types)
        except (RegistryError, OSError) as e:
            console.print(f"[red]Error loading relationship types: {e}[/red]")
            raise typer.Exit(2) from e
    return registry


def _open(directory: Path, types: Path | None, config):
    """Store, adapter and a fully built projection for a notes folder."""
    from .adapter import RecordAdapter
    from .graph import GraphProjection
    from .sync import FrontmatterRecordStore

    store = FrontmatterRecordStore(directory)
    adapter = RecordAdapter(_registry(types), resolver=store.link_resolver())
    projection = GraphProjection(store, adapter, batch_size=config.projection_batch_size)
    asyncio.run(projection.sync(full_rebuild=True))
    return store, adapter, projection


@app.command()
def validate(
    directory: Path = DirArg,
    types: Path = TypesOpt,
    as_json: bool = typer.Option(False, "--json", help="Print findings as JSON"),
    log_level: str = LogLevelOpt,
):
    """Check the relationship graph for structural problems."""
    config = get_config(log_level)
    _, _, projection = _open(directory, types, config)

    from .validation import RelationshipValidator

    report = RelationshipValidator(projection.snapshot, config).validate()

    if as_json:
        typer.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    elif not report.findings:
        console.print(f"[green]No problems found in {report.nodes_checked} records[/green]")
    else:
        table = Table(title="Validation Findings")
        table.add_column("Severity")
        table.add_column("Record")
        table.add_column("Field")
        table.add_column("Finding")
        table.add_column("Details")

        for finding in report.findings:
            style = _SEVERITY_STYLE[finding.severity.value]
            table.add_row(
                f"[{style}]{finding.severity.value}[/{style}]",
                finding.node_id,
                finding.field or "",
                finding.kind,
                finding.message,
            )

        console.print(table)
        console.print(f"[dim]{len(report.findings)} findings, {len(report.errors)} errors[/dim]")

    if report.errors:
        raise typer.Exit(1)


@app.command()
def relate(
    directory: Path = DirArg,
    person_a: str = typer.Argument(..., help="cr_id of the first person"),
    person_b: str = typer.Argument(..., help="cr_id of the second person"),
    types: Path = TypesOpt,
    log_level: str = LogLevelOpt,
):
    """Name how PERSON_B is related to PERSON_A."""
    config = get_config(log_level)
    _, _, projection = _open(directory, types, config)

    from .kinship import NotRelated, RelationshipCalculator

    graph = projection.snapshot
    result = RelationshipCalculator(graph, config).relationship_between(person_a, person_b)

    if isinstance(result, NotRelated):
        console.print(f"[yellow]{person_a} and {person_b} are not related ({result.reason})[/yellow]")
        return

    console.print(
        Panel(
            f"[bold]{person_b}[/bold] is the [bold]{result.gendered_relationship}[/bold] of {person_a}\n"
            f"{person_a} is the {result.gendered_inverse} of {person_b}",
            title="Relationship",
        )
    )

    table = Table(title="Path")
    table.add_column("#")
    table.add_column("Step")
    table.add_column("Record")
    table.add_column("Name")

    for i, step in enumerate(result.path):
        node = graph.find_node(step.node_id)
        label = step.step.value if not step.role or step.role == "biological" else f"{step.step.value} ({step.role})"
        table.add_row(str(i), label, step.node_id, node.name if node else "")

    console.print(table)
    if result.common_ancestor and result.cousin_degree is not None:
        console.print(f"[dim]Common ancestor: {result.common_ancestor}[/dim]")


@app.command()
def sync(
    directory: Path = DirArg,
    identifier: str = typer.Argument(..., help="cr_id of the record to reconcile"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show the writes without making them"),
    types: Path = TypesOpt,
    log_level: str = LogLevelOpt,
):
    """Add missing reciprocal relationships for one record."""
    config = get_config(log_level)

    from .adapter import RecordAdapter
    from .sync import BidirectionalSynchronizer, FrontmatterRecordStore, InMemoryRecordStore

    store = FrontmatterRecordStore(directory)
    adapter = RecordAdapter(_registry(types), resolver=store.link_resolver())
    target_store = InMemoryRecordStore(dict(store.scan())) if dry_run else store

    synchronizer = BidirectionalSynchronizer(
        target_store, adapter, max_concurrency=config.sync_max_concurrency
    )
    report = asyncio.run(synchronizer.reconcile(identifier))

    if not (report.writes or report.failures or report.conflicts):
        console.print(f"[green]{identifier}: all reciprocal relationships are in place[/green]")
        return

    if report.writes:
        table = Table(title="Planned Writes" if dry_run else "Writes")
        table.add_column("Record")
        table.add_column("Added")
        table.add_column("Updated")
        table.add_column("Fields")

        for write in report.writes:
            table.add_row(
                write.target,
                str(len(write.added)),
                str(len(write.updated)),
                ", ".join(sorted(k for k, v in write.fields.items() if v is not None)),
            )

        console.print(table)

    for conflict in report.conflicts:
        console.print(
            f"[yellow]Conflict on {conflict.target}.{conflict.field}: "
            f"{conflict.target_value!r} replaced by {conflict.incoming_value!r}[/yellow]"
        )
    for failure in report.failures:
        console.print(f"[red]Failed {failure.target} ({failure.field}): {failure.reason}[/red]")

    if dry_run:
        console.print("[dim]Dry run: no files were changed[/dim]")
    if report.failures:
        raise typer.Exit(1)


@app.command()
def number(
    directory: Path = DirArg,
    root: str = typer.Argument(..., help="cr_id of the root person"),
    system: str = typer.Option("ahnentafel", "--system", "-s", help="ahnentafel, daboville or henry"),
    write: bool = typer.Option(False, "--write", help="Store the numbers in the notes"),
    types: Path = TypesOpt,
    log_level: str = LogLevelOpt,
):
    """Assign genealogical reference numbers from ROOT."""
    config = get_config(log_level)

    from .exceptions import NodeNotFoundError
    from .kinship import NumberingSystem, ReferenceNumbering, write_numbers

    try:
        chosen = NumberingSystem(system.lower())
    except ValueError:
        console.print(f"[red]Unknown numbering system: {system}[/red]")
        raise typer.Exit(2) from None

    store, _, projection = _open(directory, types, config)
    try:
        result = ReferenceNumbering(projection.snapshot).assign(chosen, root)
    except NodeNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title=chosen.description)
    table.add_column("Number")
    table.add_column("Record")
    table.add_column("Name")
    for assignment in result.assignments:
        table.add_row(str(assignment.number), assignment.node_id, assignment.name)
    console.print(table)

    if write:
        written = write_numbers(store, result)
        console.print(f"[green]Wrote {written} {chosen.value} numbers[/green]")


@app.command()
def lineage(
    directory: Path = DirArg,
    root: str = typer.Argument(..., help="cr_id of the root person"),
    lineage_type: str = typer.Option("all", "--type", help="all, patrilineal or matrilineal"),
    name: str = typer.Option(None, "--name", help="Lineage name (default: root's surname + ' Line')"),
    write: bool = typer.Option(False, "--write", help="Add the lineage to each member's note"),
    types: Path = TypesOpt,
    log_level: str = LogLevelOpt,
):
    """Trace a line of descent from ROOT."""
    config = get_config(log_level)

    from .exceptions import NodeNotFoundError
    from .kinship import LineageTracker, LineageType, assign_lineage

    try:
        chosen = LineageType(lineage_type.lower())
    except ValueError:
        console.print(f"[red]Unknown lineage type: {lineage_type}[/red]")
        raise typer.Exit(2) from None

    store, _, projection = _open(directory, types, config)
    try:
        result = LineageTracker(projection.snapshot).trace(root, chosen, name)
    except NodeNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title=f"{result.name} ({chosen.value})")
    table.add_column("Generation")
    table.add_column("Record")
    table.add_column("Name")
    for member in result.members:
        table.add_row(str(member.generation), member.node_id, member.name)
    console.print(table)
    console.print(f"[dim]{len(result.members)} members over {result.max_generation + 1} generations[/dim]")

    if write:
        changed = assign_lineage(store, result)
        console.print(f"[green]Added '{result.name}' to {changed} notes[/green]")


@app.command()
def stats(
    directory: Path = DirArg,
    types: Path = TypesOpt,
    log_level: str = LogLevelOpt,
):
    """Show statistics about the relationship graph."""
    config = get_config(log_level)
    _, _, projection = _open(directory, types, config)
    counts = projection.snapshot.stats()
    meta = projection.metadata

    table = Table(title="Graph Statistics")
    table.add_column("Metric")
    table.add_column("Value")

    table.add_row("Records", str(counts.pop("nodes")))
    table.add_row("Edges", str(counts.pop("edges")))
    for name, count in sorted(counts.items()):
        table.add_row(f"  {name}", str(count))
    table.add_row("Skipped notes", str(meta.records_skipped))
    table.add_row("Build time", f"{meta.sync_duration_ms:.1f} ms")

    console.print(table)


if __name__ == "__main__":
    app()
