#!/usr/bin/env python3
"""
MFDS Catalog Matching Agent
Main entry point for the application
"""

import sys

import click
import uvicorn
from loguru import logger
from tqdm import tqdm

from mfds_matcher.agent import CatalogMatchingAgent
from mfds_matcher.catalog_loader import CatalogFileLoader
from mfds_matcher.config import ensure_directories, settings
from mfds_matcher.models import (
    CancelFilter,
    GenericCountBasis,
    GenericDefinition,
    InvalidInputError,
    ProcessingOptions,
)


@click.group()
@click.option('--log-level', default=settings.LOG_LEVEL, help='Logging level')
def cli(log_level):
    """MFDS Catalog Matching Agent"""
    logger.remove()
    logger.add(lambda msg: click.echo(msg, nl=False, err=True), level=log_level)
    if settings.LOG_FILE:
        ensure_directories()
        logger.add(settings.LOG_FILE, level="DEBUG", rotation="10 MB", encoding="utf-8")
    logger.debug(f"Starting MFDS Catalog Matching Agent with log level: {log_level}")


@cli.command()
@click.option('--catalog', 'catalog_path', required=True, type=click.Path(exists=True, dir_okay=False), help='MFDS catalog file (xlsx/csv)')
@click.option('--source', 'source_path', required=True, type=click.Path(exists=True, dir_okay=False), help='Source list file (xlsx/csv)')
@click.option('--mapping', 'mapping_path', type=click.Path(exists=True, dir_okay=False), help='Optional mapping override file')
@click.option('--basis', type=click.Choice([b.value for b in GenericCountBasis]), default=settings.GENERIC_COUNT_BASIS.value, help='Generic count basis')
@click.option('--definition', type=click.Choice([d.value for d in GenericDefinition]), default=settings.GENERIC_DEFINITION.value, help='Generic count definition')
@click.option('--cancel-filter', type=click.Choice([c.value for c in CancelFilter]), default=settings.CANCEL_FILTER.value, help='Cancelled record policy')
@click.option('--review-threshold', type=click.FloatRange(0.0, 1.0), default=settings.REVIEW_THRESHOLD, help='Review threshold for multi-ingredient token matches')
@click.option('--max-workers', default=settings.MAX_WORKERS, help='Maximum number of workers')
@click.option('--output', 'output_path', type=click.Path(dir_okay=False), help='Output file (.xlsx, .csv or .json)')
def match(catalog_path, source_path, mapping_path, basis, definition, cancel_filter,
          review_threshold, max_workers, output_path):
    """Match a source list against the MFDS catalog and export the results"""
    options = ProcessingOptions(
        generic_count_basis=basis,
        generic_definition=definition,
        cancel_filter=cancel_filter,
        review_threshold=review_threshold,
    )
    loader = CatalogFileLoader()
    agent = CatalogMatchingAgent(options=options, max_workers=max_workers)

    try:
        catalog = loader.load_catalog(catalog_path)
        sources = loader.load_sources(source_path)
        mappings = loader.load_mappings(mapping_path) if mapping_path else []

        with tqdm(total=100, desc="Matching", unit="%") as bar:
            def on_progress(pct, label):
                bar.set_postfix_str(label, refresh=False)
                bar.update(max(0, pct - bar.n))

            output = agent.run(catalog, sources, mappings, on_progress=on_progress)
    except InvalidInputError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    saved = agent.save_results(output, output_path, mappings)
    summary = output.summary

    click.echo("=== Matching Summary ===")
    click.echo(f"Total Rows: {summary.total_rows}")
    click.echo(f"HIGH: {summary.high_count}")
    click.echo(f"MEDIUM: {summary.medium_count}")
    click.echo(f"REVIEW: {summary.review_count}")
    click.echo(f"Not Found: {summary.not_found_count}")
    click.echo(f"Mapping Used (item code / ingredient / name): "
               f"{summary.used_map_item_code} / {summary.used_map_ingredient} / {summary.used_map_name}")
    click.echo(f"Generic Item Rows: {summary.total_generic_item_rows}")
    click.echo(f"Max Generics per Source: {summary.max_generic_per_source}")
    click.echo(f"Average Generics per Source: {summary.average_generic_per_source:.2f}")
    if output.consistency_issues:
        click.echo(f"Consistency Issues: {len(output.consistency_issues)}")
        for issue in output.consistency_issues[:10]:
            click.echo(f"  #{issue.source_index} ({issue.source_id}): count={issue.generic_count}, items={issue.item_rows}")
    click.echo(f"Saved to: {saved}")


@cli.command()
@click.option('--catalog', 'catalog_path', type=click.Path(dir_okay=False), help='MFDS catalog file to inspect')
@click.option('--source', 'source_path', type=click.Path(dir_okay=False), help='Source list file to inspect')
@click.option('--all-records', is_flag=True, help='Skip the active row count for the catalog')
def diagnose(catalog_path, source_path, all_records):
    """Show detected sheets and columns for input files"""
    if not catalog_path and not source_path:
        raise click.UsageError("Pass --catalog and/or --source")

    loader = CatalogFileLoader()
    reports = []
    if source_path:
        reports.append(("Source", loader.diagnose_source_file(source_path)))
    if catalog_path:
        reports.append(("Catalog", loader.diagnose_catalog_file(catalog_path, active_only=not all_records)))

    failed = False
    for title, report in reports:
        click.echo(f"=== {title}: {report.file_name} ===")
        for sheet in report.sheets:
            click.echo(f"Sheet '{sheet.name}': {sheet.row_count} rows, {sheet.matched_required_count} required columns found")
        click.echo(f"Selected Sheet: {report.selected_sheet}")
        click.echo(f"Rows: {report.row_count}")
        if report.active_row_count is not None:
            click.echo(f"Active Rows: {report.active_row_count}")
        for key, column in report.column_map.items():
            click.echo(f"  {key} <- {column or '(not found)'}")
        for error in report.errors:
            click.echo(f"Error: {error}", err=True)
        failed = failed or bool(report.missing_columns)

    if failed:
        sys.exit(1)


@cli.command()
@click.option('--host', default=settings.API_HOST, help='Host to bind to')
@click.option('--port', default=settings.API_PORT, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve_api(host, port, reload):
    """Start the API server"""
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run(
        "mfds_matcher.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == '__main__':
    cli()
