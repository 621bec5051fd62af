"""CLI for the qcgate measurement evaluation engine."""

import json
import shutil
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from qcgate import __version__
from qcgate.batch import BatchNotFoundError, BatchVerdict, JsonBatchStore
from qcgate.config import (
    GlobalConfig,
    get_batch_store_path,
    get_product_registry_path,
    get_qcgate_home,
    load_global_config,
    resolve_batch_store,
    resolve_product_registry,
    save_global_config,
)
from qcgate.errors import QCGateError
from qcgate.io import read_json, read_jsonl, write_jsonl
from qcgate.logging import configure_logging
from qcgate.pipeline import EvaluationPipeline, PipelineConfig
from qcgate.registry import ProductNotFoundError, load_product

app = typer.Typer(
    name="qcgate",
    help="Quality-control measurement evaluation engine.",
    no_args_is_help=True,
)
console = Console()

RegistryOption = Annotated[
    Path | None,
    typer.Option(
        "--product-registry",
        envvar="QCGATE_PRODUCT_REGISTRY",
        help="Path to product registry",
    ),
]
StoreOption = Annotated[
    Path | None,
    typer.Option(
        "--batch-store",
        envvar="QCGATE_BATCH_STORE",
        help="Directory holding batch documents",
    ),
]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"qcgate version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option("--log-format", help="Log output: console or json"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Minimum log level"),
    ] = None,
) -> None:
    """qcgate: quality-control measurement evaluation engine."""
    config = load_global_config()
    configure_logging(log_format or config.log_format, log_level or config.log_level)


def _pipeline(product_registry: Path | None, batch_store: Path | None) -> EvaluationPipeline:
    registry_path = resolve_product_registry(product_registry)
    if not registry_path.exists():
        console.print(f"[red]Error:[/red] Product registry not found: {registry_path}")
        raise typer.Exit(1)

    schema_path = Path("schemas") / "product_spec.schema.json"
    return EvaluationPipeline(
        PipelineConfig(
            product_registry_path=registry_path,
            product_schema_path=schema_path if schema_path.exists() else None,
            batch_store_path=resolve_batch_store(batch_store),
            legacy_average_fallback=load_global_config().legacy_average_fallback,
        )
    )


def _read_submissions(path: Path) -> list[dict[str, Any]]:
    """Read item submissions from a JSON list, a ``{"items": [...]}`` object, or JSONL."""
    if not path.exists():
        console.print(f"[red]Error:[/red] Input file not found: {path}")
        raise typer.Exit(1)
    try:
        if path.suffix == ".jsonl":
            return list(read_jsonl(path))
        data = read_json(path)
    except ValueError as e:
        raise _fail(e)
    if isinstance(data, dict):
        data = data.get("items", [data])
    if not isinstance(data, list):
        console.print(f"[red]Error:[/red] Expected a list of submissions in {path}")
        raise typer.Exit(1)
    return data


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(1)


def _write(output_path: Path | None, payload: str) -> None:
    if output_path is not None:
        output_path.write_text(payload)
        console.print(f"  Written to {output_path}")


def _status_text(status: bool | None) -> str:
    if status is None:
        return "[yellow]pending[/yellow]"
    return "[green]OK[/green]" if status else "[red]NG[/red]"


def _print_verdict(verdict: BatchVerdict) -> None:
    table = Table(title=f"Batch {verdict.batch.batch_number}")
    table.add_column("Item")
    table.add_column("Type")
    table.add_column("Final value", justify="right")
    table.add_column("Samples")
    table.add_column("Result")
    for detail in verdict.summary.item_details:
        table.add_row(
            detail.measurement_item,
            detail.evaluation_type.value,
            "" if detail.final_value is None else f"{detail.final_value:g}",
            " ".join(s.result for s in detail.samples_summary),
            _status_text(detail.status),
        )
    console.print(table)
    colour = "green" if verdict.overall_result == "OK" else "red"
    console.print(
        f"[bold]Overall:[/bold] [{colour}]{verdict.overall_result}[/{colour}]  "
        f"({verdict.summary.passed_items}/{verdict.summary.total_items} passed, "
        f"{verdict.summary.pass_rate}%)"
    )


@app.command()
def init(
    source: Annotated[
        Path | None,
        typer.Option("--from", "-f", help="Directory containing product-registry"),
    ] = None,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing registry"),
) -> None:
    """Initialize qcgate global configuration and sync the product registry.

    Creates:
      ~/.config/qcgate/config.yaml
      ~/.config/qcgate/product-registry/
      ~/.config/qcgate/batches/
    """
    home = get_qcgate_home()
    registry_dest = get_product_registry_path()
    batches = get_batch_store_path()

    source_registry = (source or Path.cwd()) / "product-registry"
    if not source_registry.exists():
        console.print(f"[red]Error:[/red] product-registry not found at {source_registry}")
        console.print("Use --from to specify source directory")
        raise typer.Exit(1)

    if registry_dest.exists() and not force:
        console.print(f"[yellow]Warning:[/yellow] Registry already exists at {registry_dest}")
        console.print("Use --force to overwrite")
        raise typer.Exit(1)

    console.print(f"[bold]Initializing qcgate at {home}[/bold]")
    home.mkdir(parents=True, exist_ok=True)
    batches.mkdir(parents=True, exist_ok=True)

    if registry_dest.exists():
        shutil.rmtree(registry_dest)
    shutil.copytree(source_registry, registry_dest)
    product_count = len(list(registry_dest.glob("products/*.json")))
    console.print(f"  [green]✓[/green] {product_count} products synced")

    config_path = save_global_config(
        GlobalConfig(
            default_product_registry_path=str(registry_dest),
            default_batch_store_path=str(batches),
        )
    )
    console.print(f"  [green]✓[/green] Created config at {config_path}")
    console.print("\n[green]✓ Initialized qcgate[/green]")


@app.command("create-batch")
def create_batch(
    product_id: Annotated[str, typer.Argument(help="Product ID")],
    batch_number: Annotated[
        str | None, typer.Option("--batch-number", "-n", help="Production batch number")
    ] = None,
    sample_count: Annotated[
        int | None, typer.Option("--sample-count", help="Samples per item")
    ] = None,
    measured_by: Annotated[str | None, typer.Option("--by", help="Acting user")] = None,
    notes: Annotated[str | None, typer.Option("--notes", help="Free-text notes")] = None,
    product_registry: RegistryOption = None,
    batch_store: StoreOption = None,
) -> None:
    """Create a new PENDING batch for a product."""
    pipeline = _pipeline(product_registry, batch_store)
    try:
        batch = pipeline.create_batch(
            product_id,
            batch_number=batch_number,
            sample_count=sample_count,
            measured_by=measured_by,
            notes=notes,
        )
    except (QCGateError, ProductNotFoundError) as e:
        raise _fail(e)
    console.print(f"[green]Created batch[/green] {batch.measurement_id} ({batch.batch_number})")


@app.command("check-deps")
def check_deps(
    measurement_id: Annotated[str, typer.Argument(help="Batch measurement ID")],
    item_id: Annotated[str, typer.Argument(help="Measurement item name_id")],
    with_items: Annotated[
        list[str] | None,
        typer.Option("--with", help="Items submitted in the same request"),
    ] = None,
    product_registry: RegistryOption = None,
    batch_store: StoreOption = None,
) -> None:
    """List the items that must be submitted before ITEM_ID."""
    pipeline = _pipeline(product_registry, batch_store)
    try:
        missing = pipeline.check_dependencies(measurement_id, item_id, with_items or [])
    except (QCGateError, ProductNotFoundError, BatchNotFoundError) as e:
        raise _fail(e)
    if missing:
        console.print(f"[yellow]Missing dependencies:[/yellow] {', '.join(missing)}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {item_id} has no missing dependencies")


@app.command()
def evaluate(
    measurement_id: Annotated[str, typer.Argument(help="Batch measurement ID")],
    input_path: Annotated[Path, typer.Option("--in", "-i", help="Submissions JSON/JSONL")],
    output_path: Annotated[Path | None, typer.Option("--out", "-o", help="Result JSON")] = None,
    product_registry: RegistryOption = None,
    batch_store: StoreOption = None,
) -> None:
    """Evaluate the first submission in the input without storing it."""
    submissions = _read_submissions(input_path)
    if not submissions:
        console.print("[red]Error:[/red] No submissions in input")
        raise typer.Exit(1)
    pipeline = _pipeline(product_registry, batch_store)
    try:
        result = pipeline.evaluate_item(measurement_id, submissions[0], submissions[1:])
    except (QCGateError, ProductNotFoundError, BatchNotFoundError) as e:
        raise _fail(e)
    console.print(f"{result.measurement_item_name_id}: {_status_text(result.status)}")
    if result.final_value is not None:
        console.print(f"  Final value: {result.final_value:g}")
    _write(output_path, result.model_dump_json(indent=2))


@app.command()
def save(
    measurement_id: Annotated[str, typer.Argument(help="Batch measurement ID")],
    input_path: Annotated[Path, typer.Option("--in", "-i", help="Submissions JSON/JSONL")],
    diagnostics: Annotated[
        Path | None, typer.Option("--diagnostics", "-d", help="Diagnostics output JSON")
    ] = None,
    product_registry: RegistryOption = None,
    batch_store: StoreOption = None,
) -> None:
    """Save partial results for a batch."""
    submissions = _read_submissions(input_path)
    pipeline = _pipeline(product_registry, batch_store)
    try:
        report = pipeline.save_progress(measurement_id, submissions)
    except (QCGateError, ProductNotFoundError, BatchNotFoundError) as e:
        raise _fail(e)

    console.print(
        f"[green]Saved[/green] {report.saved_items} items "
        f"({report.total_items} stored, {report.progress:.0f}% evaluated)"
    )
    if report.diagnostics:
        for item in report.diagnostics.items:
            for problem in [*item.errors, *item.warnings]:
                message = escape(problem.message)
                console.print(f"  [yellow]{item.item_id}[/yellow] {problem.code}: {message}")
        if diagnostics:
            _write(diagnostics, report.diagnostics.model_dump_json(indent=2))


@app.command()
def submit(
    measurement_id: Annotated[str, typer.Argument(help="Batch measurement ID")],
    input_path: Annotated[
        Path | None, typer.Option("--in", "-i", help="Submissions JSON/JSONL")
    ] = None,
    measured_by: Annotated[str | None, typer.Option("--by", help="Acting user")] = None,
    output_path: Annotated[Path | None, typer.Option("--out", "-o", help="Verdict JSON, or per-item JSONL")] = None,
    product_registry: RegistryOption = None,
    batch_store: StoreOption = None,
) -> None:
    """Evaluate every item and complete the batch."""
    submissions = _read_submissions(input_path) if input_path else []
    pipeline = _pipeline(product_registry, batch_store)
    try:
        verdict = pipeline.submit_batch(measurement_id, submissions, measured_by=measured_by)
    except (QCGateError, ProductNotFoundError, BatchNotFoundError) as e:
        raise _fail(e)
    _print_verdict(verdict)
    if output_path is not None and output_path.suffix == ".jsonl":
        count = write_jsonl(
            output_path, [r.model_dump(mode="json") for r in verdict.batch.measurement_results]
        )
        console.print(f"  Written {count} results to {output_path}")
    else:
        _write(output_path, verdict.model_dump_json(indent=2))


@app.command()
def show(
    measurement_id: Annotated[str, typer.Argument(help="Batch measurement ID")],
    as_json: Annotated[bool, typer.Option("--json", help="Print the batch as JSON")] = False,
    batch_store: StoreOption = None,
) -> None:
    """Show a stored batch."""
    store = JsonBatchStore(resolve_batch_store(batch_store))
    try:
        batch = store.load_batch(measurement_id)
    except BatchNotFoundError as e:
        raise _fail(e)

    if as_json:
        console.print_json(batch.model_dump_json())
        return

    console.print(f"[bold]{batch.measurement_id}[/bold] {batch.batch_number} ({batch.product_id})")
    console.print(f"  Status: {batch.status.value}")
    console.print(f"  Progress: {batch.progress():.0f}%")
    if batch.overall_result is not None:
        console.print(f"  Overall: {_status_text(batch.overall_result)}")
    for result in batch.measurement_results:
        console.print(f"  {result.measurement_item_name_id}: {_status_text(result.status)}")


@app.command()
def validate(
    spec_path: Annotated[Path, typer.Argument(help="Path to a product spec file")],
    schema_path: Annotated[
        Path | None,
        typer.Option("--schema", "-s", help="Path to the schema file"),
    ] = None,
) -> None:
    """Validate a product spec: JSON Schema plus measurement-point checks."""
    if not spec_path.exists():
        console.print(f"[red]Error:[/red] Spec file not found: {spec_path}")
        raise typer.Exit(1)

    if schema_path is None:
        default_schema = Path("schemas") / "product_spec.schema.json"
        schema_path = default_schema if default_schema.exists() else None

    schema = None
    if schema_path is not None:
        with open(schema_path) as f:
            schema = json.load(f)

    try:
        spec = load_product(read_json(spec_path), schema)
    except (QCGateError, ValueError) as e:
        console.print(f"[red]Invalid:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    console.print(
        f"[green]Valid:[/green] {spec_path} ({len(spec.measurement_points)} measurement points)"
    )


if __name__ == "__main__":
    app()
