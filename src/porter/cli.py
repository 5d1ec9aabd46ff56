import logging
import time
from pathlib import Path
from typing import Annotated, Optional

import typer

from .config.settings import Config, ConfigurationError
from .config.structures import StructureRegistry
from .config_loader import describe_mapping, load_plan
from .pipeline.assets import THUMBNAIL_DEFAULT_SIZE
from .pipeline.export import ExportSession
from .pipeline.serialize import format_elapsed
from .pipeline.source import create_connector
from .types import PorterError
from .utils import setup_logging

app = typer.Typer(help="Nitro Porter: export community platform databases to the porter format")

logger = logging.getLogger(__name__)


def load_registry(config: Config) -> StructureRegistry:
    """Built-in destination structures, extended by the configured YAML file."""
    if config.export.structures_file:
        return StructureRegistry.from_yaml(Path(config.export.structures_file))
    return StructureRegistry()


def load_settings(env_file: Optional[Path]) -> Config:
    """Environment configuration, validated after the CLI overrides are applied."""
    return Config(env_file=env_file, validate_on_init=False)


@app.command("export")
def export_command(
    plan: Annotated[Path, typer.Argument(help="YAML export plan (tables, queries, mappings, blobs)")],
    source_db: Annotated[Optional[str], typer.Option("--source-db", "-d", help="Source database file")] = None,
    driver: Annotated[Optional[str], typer.Option("--driver", help="Source driver: duckdb, sqlite")] = None,
    output_dir: Annotated[Optional[str], typer.Option("--output-dir", "-o", help="Directory for the export file")] = None,
    tables: Annotated[Optional[str], typer.Option("--tables", "-t", help="Comma-separated tables to export (default: all)")] = None,
    no_compression: Annotated[bool, typer.Option("--no-compression", help="Write plain text instead of gzip")] = False,
    test_mode: Annotated[bool, typer.Option("--test-mode", help="Limit every query for a quick trial run")] = False,
    create_tables: Annotated[Optional[bool], typer.Option("--create-tables/--no-create-tables", help="Script create table statements")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Explicit .env file")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Create timestamped log files")] = False,
):
    """
    Export a source database to a porter file.

    Options override the PORTER_* environment variables.

    Examples:
        porter export plans/vbulletin.yml --source-db forum.duckdb
        porter export plans/vbulletin.yml -d forum.sqlite --driver sqlite --tables user,discussion
        porter export plans/vbulletin.yml --test-mode --no-compression
    """
    setup_logging(verbose, plan.stem, "export", log_to_file)

    try:
        export_plan = load_plan(plan)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"ERROR loading export plan: {e}", err=True)
        raise typer.Exit(1)

    try:
        config = load_settings(env_file)
        config.override("source", database=source_db, driver=driver)
        config.override(
            "output",
            directory=output_dir,
            use_compression=False if no_compression else None,
        )
        config.override(
            "export",
            restricted_tables=[name for name in (tables or "").split(",") if name.strip()] or None,
            test_mode=test_mode or None,
            script_create_table=create_tables,
        )
        config.validate()
        registry = load_registry(config)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    logger.debug(f"Configuration: {config.get_summary()}")
    start = time.perf_counter()

    try:
        with create_connector(config.source.driver, config.source.database) as connector:
            session = ExportSession(config, connector, registry=registry, console=True)
            path = session.run(export_plan)
    except PorterError as e:
        logger.error(f"Export failed: {e}")
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    exported = [s for s in session.summaries if not s.skipped and s.error is None]
    skipped = [s.table for s in session.summaries if s.skipped]
    failed = [s.table for s in session.summaries if s.error]

    typer.echo(f"Exported {len(exported)} tables, {sum(s.rows for s in exported)} rows in {format_elapsed(time.perf_counter() - start)}")
    if skipped:
        typer.echo(f"Skipped: {', '.join(skipped)}")
    if failed:
        typer.echo(f"Not valid exports: {', '.join(failed)}")
    typer.echo(f"Exported to: {path}")


@app.command("list-tables")
def list_tables(
    source: Annotated[bool, typer.Option("--source", help="List the tables of the source database instead")] = False,
    source_db: Annotated[Optional[str], typer.Option("--source-db", "-d", help="Source database file")] = None,
    driver: Annotated[Optional[str], typer.Option("--driver", help="Source driver: duckdb, sqlite")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Explicit .env file")] = None,
):
    """
    List the destination tables the porter format carries.

    With --source, list the tables found in the source database.
    """
    try:
        config = load_settings(env_file)
        config.override("source", database=source_db, driver=driver)
        config.validate()

        if source:
            with create_connector(config.source.driver, config.source.database) as connector:
                names = connector.tables()
            typer.echo(f"Source tables ({config.source.database})")
            typer.echo("=" * 50)
            for name in names:
                typer.echo(f"  {name}")
            typer.echo(f"\nFound {len(names)} tables")
            return

        registry = load_registry(config)
    except (ConfigurationError, PorterError, FileNotFoundError, ValueError) as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Destination tables")
    typer.echo("=" * 50)
    for name in registry.tables():
        typer.echo(f"  {name} ({len(registry.get(name))} columns)")
    typer.echo(f"\nFound {len(registry.tables())} tables")


@app.command("show-plan")
def show_plan(
    plan: Annotated[Path, typer.Argument(help="YAML export plan")],
):
    """Show the tables, mappings and blob jobs of an export plan."""
    try:
        export_plan = load_plan(plan)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"ERROR loading export plan: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Export plan: {plan}")
    if export_plan.source:
        typer.echo(f"Source: {export_plan.source}")
    typer.echo("=" * 50)

    for table_plan in export_plan.tables:
        flags = " [create table]" if table_plan.create_table else ""
        typer.echo(f"\n* {table_plan.table}{flags}")
        typer.echo(f"   Query: {' '.join(table_plan.query.split())}")
        for source_column, mapping in table_plan.mappings.items():
            typer.echo(f"   {describe_mapping(source_column, mapping)}")

    for blob_plan in export_plan.blobs:
        typer.echo(f"\n* Blobs: {blob_plan.blob_column} -> {blob_plan.path_column}")
        if blob_plan.thumbnail:
            typer.echo(f"   Thumbnail: {THUMBNAIL_DEFAULT_SIZE if blob_plan.thumbnail is True else blob_plan.thumbnail}px")

    typer.echo(f"\n{len(export_plan.tables)} tables, {len(export_plan.blobs)} blob jobs")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"porter version: {__version__}")


if __name__ == "__main__":
    app()
