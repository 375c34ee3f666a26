"""
CLI Interface
=============
Command-line interface for the DRMD engine.

Usage:
    drmd convert <value> <unit>
    drmd normalize <extraction.json> [--base doc.xml] [-o out.xml|out.json]
    drmd export <document.json> [-o out.xml] [--force]
    drmd import <document.xml> [-o out.json]
    drmd validate <document.xml|document.json>
    drmd serve [--host] [--port] [--debug]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .codec import encode_document
from .engine import DrmdEngine, EngineConfig
from .exceptions import ExportBlockedError, MalformedDocumentError
from .units import convert_to_dsi

console = Console()

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"])


@click.group()
@click.version_option(version=__version__, prog_name="drmd")
def cli():
    """DRMD Engine: reference material certificates to DRMD XML."""
    pass


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {escape(message)}")
    sys.exit(1)


def _load(engine: DrmdEngine, path: str):
    try:
        return engine.load_document(path)
    except MalformedDocumentError as e:
        _fail(str(e))
    except (json.JSONDecodeError, ValidationError) as e:
        _fail(f"Not a document JSON file: {e}")


@cli.command()
@click.argument("value")
@click.argument("unit")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def convert(value: str, unit: str, json_output: bool):
    """Convert a value and unit to D-SI notation."""
    dsi = convert_to_dsi(value, unit)

    if json_output:
        click.echo(json.dumps({"dsiValue": dsi.dsi_value, "dsiUnit": dsi.dsi_unit}))
        return

    if not dsi.dsi_unit:
        console.print(f"[yellow]No D-SI mapping for unit:[/] {escape(unit)}")
        sys.exit(1)

    table = Table(title="D-SI Conversion", border_style="cyan")
    table.add_column("Input", style="bold")
    table.add_column("D-SI Value", justify="right")
    table.add_column("D-SI Unit")
    table.add_row(escape(f"{value} {unit}"), escape(dsi.dsi_value), escape(dsi.dsi_unit))
    console.print(table)


@cli.command()
@click.argument("extraction_json", type=click.Path(exists=True))
@click.option(
    "--base", "-b",
    default=None,
    type=click.Path(exists=True),
    help="Existing document (XML or JSON) to merge the extraction into",
)
@click.option(
    "--output", "-o",
    default=None,
    help="Write the result to this file (.xml for DRMD XML, else JSON)",
)
@click.option("--log-level", default="INFO", type=LOG_LEVELS, help="Logging level")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only the document JSON to stdout",
)
def normalize(
    extraction_json: str,
    base: Optional[str],
    output: Optional[str],
    log_level: str,
    json_output: bool,
):
    """Apply an extraction result onto a new or existing document."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    engine = DrmdEngine(EngineConfig(log_level=log_level))

    try:
        with open(extraction_json, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        _fail(f"Invalid extraction JSON: {e}")

    document = _load(engine, base) if base else engine.new_document()
    document = engine.apply_extraction(document, payload)

    if output:
        if Path(output).suffix.lower() == ".xml":
            Path(output).parent.mkdir(parents=True, exist_ok=True)
            Path(output).write_text(encode_document(document), encoding="utf-8")
        else:
            engine.save_document(document, output)

    if json_output:
        click.echo(json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False))
        return

    _display_document(document)
    if output:
        console.print(f"[green]Saved:[/] {escape(output)}")


@cli.command(name="export")
@click.argument("document_path", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="XML output file")
@click.option(
    "--output-dir",
    default="output",
    help="Directory for DRMD-<id>.xml when --output is not given",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Export even if validation reports errors",
)
@click.option("--log-level", default="INFO", type=LOG_LEVELS, help="Logging level")
def export_command(
    document_path: str,
    output: Optional[str],
    output_dir: str,
    force: bool,
    log_level: str,
):
    """Validate a document and export it as DRMD XML."""
    engine = DrmdEngine(EngineConfig(
        log_level=log_level,
        output_dir=output_dir,
        enforce_validation=not force,
    ))
    document = _load(engine, document_path)

    try:
        xml = engine.export_xml(document, save=output is None)
    except ExportBlockedError as e:
        _display_report(e.report)
        _fail("Export blocked, fix the errors above or use --force")

    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_text(xml, encoding="utf-8")
        target = output
    else:
        target = str(Path(output_dir) / engine.export_filename(document))

    console.print(
        Panel.fit(
            f"[bold cyan]DRMD exported[/]\n[dim]{escape(target)}[/]",
            border_style="cyan",
        )
    )


@cli.command(name="import")
@click.argument("xml_path", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="JSON output file")
@click.option("--log-level", default="ERROR", type=LOG_LEVELS, help="Logging level")
def import_command(xml_path: str, output: Optional[str], log_level: str):
    """Decode a DRMD XML file into document JSON."""
    engine = DrmdEngine(EngineConfig(log_level=log_level))

    try:
        document = engine.import_xml(Path(xml_path))
    except MalformedDocumentError as e:
        _fail(str(e))

    if output:
        engine.save_document(document, output)
        console.print(f"[green]Saved:[/] {escape(output)}")
    else:
        click.echo(json.dumps(document.to_json_dict(), indent=2, ensure_ascii=False))


@cli.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--log-level", default="WARNING", type=LOG_LEVELS, help="Logging level")
def validate(path: str, log_level: str):
    """Validate a DRMD XML or document JSON file."""
    engine = DrmdEngine(EngineConfig(log_level=log_level))
    document = _load(engine, path)
    report = engine.validate(document)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Validation Report[/]\n[dim]File: {escape(path)}[/]",
            border_style="cyan",
        )
    )
    _display_report(report)

    if not report.is_exportable:
        sys.exit(1)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP API server."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]DRMD API Server[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_report(report):
    """Display a validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Level", justify="center")
    table.add_column("Section", style="bold")
    table.add_column("Message")

    for issue in report.errors:
        table.add_row("[red]✗ error[/]", issue.section, escape(issue.message))
    for issue in report.warnings:
        table.add_row("[yellow]⚠ warning[/]", issue.section, escape(issue.message))

    console.print(table)
    status = "[green]✓ exportable[/]" if report.is_exportable else "[red]✗ blocked[/]"
    console.print(
        f"[bold]Errors:[/] {len(report.errors)}  "
        f"[bold]Warnings:[/] {len(report.warnings)}  {status}"
    )
    console.print()


def _display_document(document):
    """Display a document summary."""
    admin = document.administrative_data

    table = Table(title="Document", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("Title", escape(admin.title))
    table.add_row("Identifier", escape(admin.unique_identifier))
    table.add_row("Validity", escape(admin.validity.kind))
    table.add_row("Producers", str(len(admin.producers)))
    table.add_row("Responsible Persons", str(len(admin.responsible_persons)))
    table.add_row("Materials", str(len(document.materials)))
    table.add_row("Properties", str(len(document.properties)))
    table.add_row(
        "Quantities",
        str(sum(1 for _ in document.iter_quantities())),
    )
    console.print(table)
    console.print()

    for prop in document.properties:
        for result in prop.results:
            results_table = Table(
                title=escape(f"{prop.name} / {result.name}"),
                border_style="yellow",
            )
            results_table.add_column("Name", style="bold")
            results_table.add_column("Value", justify="right")
            results_table.add_column("Unit")
            results_table.add_column("D-SI Unit")
            results_table.add_column("Uncertainty", justify="right")
            for q in result.quantities:
                results_table.add_row(
                    escape(q.name),
                    escape(q.value),
                    escape(q.unit),
                    escape(q.dsi_unit) or "[dim]-[/]",
                    escape(q.uncertainty),
                )
            console.print(results_table)
            console.print()


# ─── Entry point (for python -m drmd.cli) ─────────────────────────────────────


if __name__ == "__main__":
    cli()
