"""
Command line interface for the offering ingestion service.
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from offering_ingest import __version__
from offering_ingest.config.logging_config import configure_logging
from offering_ingest.config.settings import (
    ApplicationSettings,
    get_environment_info,
    get_settings,
)
from offering_ingest.exceptions import (
    OfferingIngestError,
    QuotaExhaustedError,
    RepositoryError,
)
from offering_ingest.models.domain import (
    Document,
    ExtractionRequest,
    ExtractionResponse,
    RunSummary,
)
from offering_ingest.pipeline.orchestrator import ExtractionPipeline
from offering_ingest.repositories.base import RecordStore
from offering_ingest.repositories.memory_store import InMemoryRecordStore
from offering_ingest.repositories.offering_repository import OfferingRepository
from offering_ingest.services.chunker import split_text
from offering_ingest.services.extraction_client import ExtractionClient

console = Console()
logger = structlog.get_logger(__name__)

PREVIEW_LENGTH = 60


@click.group()
@click.version_option(version=__version__, prog_name="Coffee Offering Ingestion")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, verbose):
    """
    Coffee Offering Ingestion CLI

    Turns supplier price lists into structured, deduplicated coffee offerings.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging("DEBUG" if verbose else "WARNING", log_format="text")


@cli.command()
@click.pass_context
def info(ctx):
    """Show application information and configuration"""
    try:
        info_data = get_environment_info()
    except (OfferingIngestError, ValidationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status", style="green")
    table.add_column("Details", style="dim")

    table.add_row("Application", info_data["app_name"], f"v{info_data['app_version']}")
    table.add_row("Environment", info_data["environment"], "")
    table.add_row(
        "Extraction API",
        "✓ Configured" if info_data["extraction_configured"] else "✗ Not configured",
        info_data["extraction_model"],
    )
    table.add_row(
        "Database",
        "✓ Configured" if info_data["database_configured"] else "✗ In-memory store",
        "",
    )

    limits = info_data["pipeline_limits"]
    table.add_row("Max Chunk Size", f"{limits['max_chunk_size']:,}", "characters")
    table.add_row("Max Chunks", str(limits["max_chunks"]), "per document")
    table.add_row("Chunk Delay", f"{limits['chunk_delay_seconds']}s", "")
    table.add_row("Max Retries", str(limits["max_retries"]), "per chunk")

    console.print(table)

    if ctx.obj["verbose"]:
        console.print("\n[bold]Full Configuration:[/bold]")
        console.print_json(json.dumps(info_data))


def _build_extractor(settings: ApplicationSettings) -> ExtractionClient:
    return ExtractionClient(settings.to_extraction_config(), settings.extraction.api_key)


async def _build_record_store(settings: ApplicationSettings) -> RecordStore:
    if not settings.database.database_url:
        return InMemoryRecordStore()
    repository = OfferingRepository.from_url(
        settings.database.database_url, echo=settings.database.database_echo
    )
    try:
        await repository.create_tables()
    except RepositoryError:
        await repository.close()
        raise
    return repository


async def _run_extraction(
    settings: ApplicationSettings, document: Document
) -> tuple[RunSummary, int]:
    extractor = _build_extractor(settings)
    record_store: Optional[RecordStore] = None
    try:
        record_store = await _build_record_store(settings)
        pipeline = ExtractionPipeline(
            settings.to_pipeline_config(), extractor, record_store=record_store
        )
        summary = await pipeline.run(document)

        inserted = 0
        if document.source_id and summary.records:
            try:
                inserted = await record_store.insert_records(
                    document.source_id, summary.records
                )
            except RepositoryError as e:
                logger.error(
                    "Failed to store extracted offerings",
                    source_id=document.source_id,
                    record_count=summary.count,
                    error=e.message,
                )
        return summary, inserted
    finally:
        await extractor.close()
        if record_store is not None:
            await record_store.close()


def _print_summary(summary: RunSummary, inserted: int) -> None:
    table = Table(title=f"Extracted Offerings ({summary.count})")
    table.add_column("Name", style="cyan")
    table.add_column("Origin", style="green")
    table.add_column("Process")
    table.add_column("Price", style="yellow", justify="right")
    table.add_column("Score", justify="right")

    for record in summary.records:
        price = f"{record.price:g} {record.currency}" if record.price is not None else "-"
        table.add_row(
            record.name,
            record.origin or "-",
            record.process or "-",
            price,
            str(record.score) if record.score is not None else "-",
        )

    console.print(table)
    console.print(
        f"{summary.chunks_processed} of {summary.chunks_total} chunks succeeded, "
        f"{summary.duplicates_skipped} duplicates skipped"
    )
    if inserted:
        console.print(f"[green]Stored {inserted} new offerings[/green]")
    if summary.error_code:
        console.print(
            f"[yellow]Stopped early: {summary.error_code.value}, results are partial[/yellow]"
        )


@cli.command()
@click.argument(
    "file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("--source-id", help="Supplier id (UUID); new offerings are stored for it")
@click.option("--source-name", help="Supplier name shown to the model")
@click.option(
    "--locale", type=click.Choice(["ar", "en"]), default="ar", show_default=True
)
@click.option("--truncate", is_flag=True, help="Cap long documents to a page budget")
@click.option(
    "--max-pages", type=click.IntRange(1, 1000), default=50, show_default=True
)
@click.option(
    "--check-duplicates", is_flag=True, help="Skip offerings already stored"
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def extract(
    file_path: Path,
    source_id: Optional[str],
    source_name: Optional[str],
    locale: str,
    truncate: bool,
    max_pages: int,
    check_duplicates: bool,
    as_json: bool,
):
    """Extract offerings from a plain-text price list"""
    settings = get_settings()
    text = file_path.read_text(encoding="utf-8")

    try:
        request = ExtractionRequest(
            text=text,
            source_id=source_id,
            source_name=source_name or file_path.stem,
            locale=locale,
            truncate=truncate,
            max_pages=max_pages,
            check_duplicates=check_duplicates,
        )
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            console.print(f"[red]✗ {field}: {escape(error['msg'])}[/red]")
        sys.exit(1)

    try:
        summary, inserted = asyncio.run(
            _run_extraction(settings, request.to_document())
        )
    except QuotaExhaustedError:
        console.print("[red]✗ AI credits exhausted. Please try again later.[/red]")
        sys.exit(2)
    except OfferingIngestError as e:
        console.print(f"[red]✗ {escape(e.message)}[/red]")
        sys.exit(1)

    if as_json:
        response = ExtractionResponse.from_summary(summary, inserted=inserted)
        click.echo(response.model_dump_json(indent=2))
    else:
        _print_summary(summary, inserted)


@cli.command()
@click.argument(
    "file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("--max-chunk-size", type=click.IntRange(min=1), help="Override chunk size")
def chunk(file_path: Path, max_chunk_size: Optional[int]):
    """Preview how a price list would be split into chunks"""
    settings = get_settings()
    size = max_chunk_size or settings.pipeline.max_chunk_size
    text = file_path.read_text(encoding="utf-8")

    chunks = split_text(text, size)

    table = Table(title=f"Chunks (max {size:,} characters)")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Length", style="green", justify="right")
    table.add_column("Preview", style="dim")

    for item in chunks:
        preview = " ".join(item.text.split())[:PREVIEW_LENGTH]
        table.add_row(
            str(item.index + 1),
            str(item.start),
            str(item.end),
            str(len(item.text)),
            preview,
        )

    console.print(table)

    ceiling = settings.pipeline.max_chunks
    if len(chunks) > ceiling:
        console.print(
            f"[yellow]{len(chunks)} chunks; only the first {ceiling} would be extracted[/yellow]"
        )


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
