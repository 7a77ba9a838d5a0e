"""
CLI Interface
=============
Command-line interface for the lab record engine.

Usage:
    python -m labrecord extract <pdf_path> [options]
    python -m labrecord batch <directory> [options]
    python -m labrecord plan <image_path> [--zones zones.json]
    python -m labrecord paginate <image_path> -o out.pdf [options]
    python -m labrecord validate <record.json>
    python -m labrecord info <pdf_path>
    python -m labrecord serve [options]
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
import fitz
import numpy as np
from PIL import Image
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from . import __version__
from .config import load_config
from .engine import LabRecordConfig, LabRecordEngine
from .fragment_extractor import ExtractionFailed
from .models import ExtractedRecord, LabRecord, ProtectedZone
from .validator import RecordValidator

console = Console()


def _build_config(
    config_path: Optional[str],
    log_level: str = "INFO",
    **kwargs,
) -> LabRecordConfig:
    if config_path:
        return LabRecordConfig.from_settings(
            load_config(config_path), log_level=log_level, **kwargs
        )
    return LabRecordConfig(log_level=log_level, **kwargs)


def _load_bitmap(image_path: str) -> np.ndarray:
    with Image.open(image_path) as img:
        return np.asarray(img.convert("RGB"))


def _load_zones(zones_path: Optional[str]) -> list[ProtectedZone]:
    if not zones_path:
        return []
    with open(zones_path, "r", encoding="utf-8") as f:
        return [ProtectedZone(**z) for z in json.load(f)]


def _load_inputs(image_path: str, zones_path: Optional[str]):
    """Read the bitmap and zones, exiting with a red error if either is unusable."""
    try:
        return _load_bitmap(image_path), _load_zones(zones_path)
    except (OSError, ValueError, TypeError, ValidationError) as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="labrecord")
def cli():
    """Lab Record Engine — lab submission extractor and repaginator."""
    pass


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
@click.option(
    "--output", "-o",
    default=None,
    help="Directory to save the extracted record JSON",
)
@click.option(
    "--config", "config_path",
    default=None,
    type=click.Path(exists=True),
    help="JSON file with extraction/pagination/overlay settings",
)
@click.option(
    "--statement-lookahead",
    default=None,
    type=int,
    help="Lines after a numbered line searched for 'Problem Statement'",
)
@click.option(
    "--page-start",
    default=None,
    type=int,
    help="Start page (1-indexed)",
)
@click.option(
    "--page-end",
    default=None,
    type=int,
    help="End page (1-indexed, inclusive)",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def extract(
    pdf_path: str,
    output: Optional[str],
    config_path: Optional[str],
    statement_lookahead: Optional[int],
    page_start: Optional[int],
    page_end: Optional[int],
    log_level: str,
    log_file: Optional[str],
    json_output: bool,
):
    """Extract the student, lab and question record from a submission PDF."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    page_range = None
    if page_start is not None or page_end is not None:
        page_range = (page_start or 1, page_end or 99999)

    config = _build_config(
        config_path,
        log_level=log_level,
        log_file=log_file,
        output_dir=output,
        page_range=page_range,
    )
    if statement_lookahead is not None:
        config.extraction.statement_lookahead = statement_lookahead

    try:
        engine = LabRecordEngine(config)
        record = engine.extract(pdf_path)
    except ExtractionFailed as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    if json_output:
        print(json.dumps(record.model_dump(), indent=2, ensure_ascii=False, default=str))
        return

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Lab Record Engine v{__version__}[/]\n"
            f"[dim]Extracted: {os.path.basename(pdf_path)}[/]",
            border_style="cyan",
        )
    )
    _display_record(record)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", default="output", help="Output directory")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True))
@click.option("--log-level", default="WARNING", help="Logging level")
def batch(directory: str, output: str, config_path: Optional[str], log_level: str):
    """Extract every PDF in a directory."""

    pdf_files = sorted(Path(directory).glob("*.pdf"))

    if not pdf_files:
        console.print(f"[yellow]No PDF files found in: {directory}[/]")
        return

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Batch Extraction[/]\n"
            f"[dim]Found {len(pdf_files)} PDFs in: {directory}[/]",
            border_style="cyan",
        )
    )
    console.print()

    engine = LabRecordEngine(
        _build_config(config_path, log_level=log_level, output_dir=output)
    )
    results = []
    errors = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Processing PDFs...", total=len(pdf_files))

        for pdf_file in pdf_files:
            progress.update(task, description=f"Extracting: {pdf_file.name}")
            try:
                results.append((pdf_file.name, engine.extract(str(pdf_file))))
            except ExtractionFailed as e:
                errors.append((pdf_file.name, str(e)))
            progress.advance(task)

    _display_batch_summary(results, errors)


@cli.command()
@click.argument("image_path", type=click.Path(exists=True))
@click.option("--zones", "zones_path", default=None, type=click.Path(exists=True),
              help="JSON list of {top, bottom} protected pixel intervals")
@click.option("--page-height", default=None, type=int,
              help="Usable page height in source pixels (default: from A4 geometry)")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True))
@click.option("--json-output", is_flag=True, default=False)
def plan(
    image_path: str,
    zones_path: Optional[str],
    page_height: Optional[int],
    config_path: Optional[str],
    json_output: bool,
):
    """Plan page breaks for a full-height document image."""

    bitmap, zones = _load_inputs(image_path, zones_path)
    engine = LabRecordEngine(
        _build_config(config_path, log_level="ERROR" if json_output else "INFO")
    )
    slices = engine.plan_pages(bitmap, zones, page_height_px=page_height)

    if json_output:
        print(json.dumps([s.model_dump() for s in slices], indent=2))
        return

    table = Table(title="Page Plan", border_style="cyan")
    table.add_column("Page", justify="right", style="bold")
    table.add_column("Source Rows", justify="right")
    table.add_column("Height (px)", justify="right")
    table.add_column("Printed (mm)", justify="right")
    for n, s in enumerate(slices, start=1):
        table.add_row(
            str(n),
            f"{s.source_top}–{s.source_bottom}",
            str(s.height_px),
            f"{s.rendered_height_mm:.1f}",
        )
    console.print()
    console.print(table)
    console.print()


@cli.command()
@click.argument("image_path", type=click.Path(exists=True))
@click.option("--output", "-o", required=True, help="Output PDF path")
@click.option("--zones", "zones_path", default=None, type=click.Path(exists=True),
              help="JSON list of {top, bottom} protected pixel intervals")
@click.option("--register-number", default="", help="Identifier stamped in page corners")
@click.option("--logo", default=None, help="Logo image composited at the page centre")
@click.option("--dpi", default=None, type=int, help="Page raster resolution")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True))
@click.option("--log-level", default="INFO",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
def paginate(
    image_path: str,
    output: str,
    zones_path: Optional[str],
    register_number: str,
    logo: Optional[str],
    dpi: Optional[int],
    config_path: Optional[str],
    log_level: str,
):
    """Split a full-height document image into stamped A4 pages."""

    config = _build_config(config_path, log_level=log_level)
    if dpi:
        config.pagination.dpi = dpi

    bitmap, zones = _load_inputs(image_path, zones_path)
    engine = LabRecordEngine(config)

    with console.status("Paginating..."):
        engine.render_pdf(
            bitmap,
            zones,
            output_path=output,
            register_number=register_number,
            logo=logo,
        )

    with fitz.open(output) as doc:
        page_count = doc.page_count
    console.print(f"[green]✓[/] Wrote {page_count} pages to [bold]{output}[/]")


@cli.command()
@click.argument("json_path", type=click.Path(exists=True))
def validate(json_path: str):
    """Validate a previously extracted or edited record JSON."""

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    record = LabRecord.model_validate(data)
    if "selected_questions" not in data:
        record = LabRecord.from_extracted(ExtractedRecord.model_validate(data))

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Validation Report[/]\n"
            f"[dim]File: {json_path}[/]",
            border_style="cyan",
        )
    )

    report = RecordValidator().validate(record, source=json_path)
    _display_validation_table(report.model_dump())


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP service for the form application."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Lab Record Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
def info(pdf_path: str):
    """Display PDF file information."""

    try:
        doc = fitz.open(pdf_path)
    except Exception as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    table = Table(title="PDF Information", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")

    table.add_row("File", os.path.basename(pdf_path))
    table.add_row("Pages", str(doc.page_count))
    table.add_row(
        "File Size",
        f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
    )

    metadata = doc.metadata or {}
    for key in ["title", "author", "subject", "creator", "producer"]:
        val = metadata.get(key, "")
        if val:
            table.add_row(key.title(), val)

    span_count = 0
    for page in doc:
        for block in page.get_text("dict").get("blocks", []):
            for line in block.get("lines", []):
                span_count += len(line.get("spans", []))
    table.add_row("Text Fragments", str(span_count))

    doc.close()
    console.print()
    console.print(table)
    console.print()


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_record(record: ExtractedRecord):
    """Display an extracted record as formatted tables."""
    console.print()

    student = Table(title="Student", border_style="cyan")
    student.add_column("Field", style="bold")
    student.add_column("Value")
    for key, value in record.student_info.model_dump().items():
        if key == "register_number" and not value:
            value = "[yellow](manual entry required)[/]"
        student.add_row(key.replace("_", " ").title(), value or "[dim]—[/]")
    console.print(student)
    console.print()

    lab = Table(title="Lab", border_style="cyan")
    lab.add_column("Field", style="bold")
    lab.add_column("Value")
    for key, value in record.lab_info.model_dump().items():
        lab.add_row(key.replace("_", " ").title(), value or "[dim]—[/]")
    console.print(lab)
    console.print()

    questions = Table(title=f"Questions ({len(record.questions)})", border_style="green")
    questions.add_column("#", justify="right", style="bold")
    questions.add_column("Problem Statement")
    questions.add_column("Status", justify="center")
    questions.add_column("Marks", justify="right")
    for n, q in enumerate(record.questions, start=1):
        first_line = q.problem_statement.split("\n", 1)[0]
        if len(first_line) > 60:
            first_line = first_line[:57] + "..."
        questions.add_row(
            str(n),
            first_line,
            q.status or "-",
            f"{q.marks_obtained or '-'}/{q.max_marks}",
        )
    console.print(questions)
    console.print()


def _display_validation_table(validation: dict):
    """Display validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    total = validation.get("total_questions", 0)
    table.add_row(
        "Total Questions",
        str(total),
        "[green]✓[/]" if total > 0 else "[red]✗[/]",
    )

    missing = validation.get("questions_missing_marks", [])
    table.add_row("Questions Missing Marks", str(len(missing)), status_icon(len(missing)))

    over = validation.get("questions_over_max", [])
    table.add_row("Questions Over Max", str(len(over)), status_icon(len(over)))

    table.add_row(
        "Register Number",
        validation.get("register_number") or "-",
        "[green]✓[/]" if validation.get("register_number_valid") else "[yellow]⚠ manual[/]",
    )

    fields = validation.get("missing_student_fields", [])
    table.add_row("Missing Student Fields", ", ".join(fields) or "0", status_icon(len(fields)))

    table.add_row(
        "Question Marks",
        f"{validation.get('total_obtained', 0):g}/{validation.get('total_max', 0):g}",
        "",
    )
    rubric_over = validation.get("rubric_over_max", [])
    table.add_row(
        "Rubric Marks",
        f"{validation.get('rubric_obtained', 0):g}/{validation.get('rubric_max', 0):g}",
        status_icon(len(rubric_over)),
    )

    console.print(table)
    console.print()


def _display_batch_summary(results, errors):
    """Display batch processing summary."""
    console.print()

    table = Table(title="Batch Extraction Summary", border_style="cyan")
    table.add_column("PDF", style="bold")
    table.add_column("Questions", justify="right")
    table.add_column("Register Number")
    table.add_column("Status", justify="center")

    total_questions = 0

    for name, record in results:
        q_count = len(record.questions)
        total_questions += q_count
        reg = record.student_info.register_number
        status = "[green]✓[/]" if q_count and reg else "[yellow]⚠[/]"
        table.add_row(name, str(q_count), reg or "-", status)

    for name, error in errors:
        table.add_row(name, "-", "-", "[red]✗ FAILED[/]")

    console.print(table)
    console.print()
    console.print(
        f"[bold]Total:[/] {total_questions} questions from "
        f"{len(results)} PDFs, {len(errors)} failures"
    )
    console.print()


# ─── Entry point (for python -m labrecord.cli) ───────────────────────────────


if __name__ == "__main__":
    cli()
