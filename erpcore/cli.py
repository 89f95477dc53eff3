"""CLI interface for erpcore."""

import click
import csv
import json
import logging
import os
import sys
from typing import Optional
from .config import CONFIG_KEYS, load_settings
from .dates import (
    convert_and_validate_grn_date,
    normalize_grn_number,
    to_iso_date_string,
    to_number,
    validate_item_code,
)
from .imports import (
    calculate_data_quality,
    coerce_cell,
    file_hash,
    read_grn_csv,
    stage_grn_rows,
    validate_sheet_headers,
)
from .models import Severity
from .reporting import ClickNotifier, StorageErrorLogger
from .resilience import ErrorHandler
from .storage import Storage


# Global storage instance
_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """Get or create storage instance."""
    global _storage
    if _storage is None:
        data_dir = os.environ.get("ERPCORE_DATA_DIR", ".erpcore")
        _storage = Storage(data_dir)
    return _storage


def get_error_handler() -> ErrorHandler:
    """Error handler that records to the error log and echoes to the terminal."""
    storage = get_storage()
    return ErrorHandler.from_settings(
        storage.get_config(),
        logger=StorageErrorLogger(storage),
        notifier=ClickNotifier(),
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """erpcore - GRN import normalization and error log tools"""
    # reads config.json without creating the data dir
    level = "DEBUG" if verbose else load_settings(os.environ.get("ERPCORE_DATA_DIR")).log_level
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@click.argument("value")
def date(value: str):
    """Normalize a date or spreadsheet serial to YYYY-MM-DD.

    Example:
        erpcore date 44197
        erpcore date 15/08/2023
    """
    result = to_iso_date_string(coerce_cell(value))
    if result is None:
        click.echo(f"✗ Invalid date: {value}", err=True)
        sys.exit(1)
    click.echo(result)


@cli.command("grn-date")
@click.argument("value")
def grn_date(value: str):
    """Convert a GRN date and show any warnings.

    Example:
        erpcore grn-date 2023-08-15
    """
    result = convert_and_validate_grn_date(coerce_cell(value))
    if not result.is_valid:
        click.echo(f"✗ {result.warnings[0]}", err=True)
        sys.exit(1)
    click.echo(result.date)
    for warning in result.warnings:
        click.echo(f"  ! {warning}")


@cli.command("item-code")
@click.argument("value")
def item_code(value: str):
    """Validate an item code.

    Example:
        erpcore item-code bop-650
    """
    result = validate_item_code(value)
    if not result.is_valid:
        click.echo(f"✗ Invalid item code: {result.code or '(empty)'}", err=True)
        for suggestion in result.suggestions or []:
            click.echo(f"  - {suggestion}", err=True)
        sys.exit(1)
    click.echo(f"✓ {result.code}")


@cli.command("grn-number")
@click.argument("value")
def grn_number(value: str):
    """Normalize a GRN number.

    Example:
        erpcore grn-number "grn 2024 001"
    """
    click.echo(normalize_grn_number(value))


@cli.command()
@click.argument("value")
def number(value: str):
    """Read a number from text with currency symbols or separators.

    Example:
        erpcore number "₹1,234.56"
    """
    click.echo(to_number(value))


@cli.command()
def backoff():
    """Show the retry delay schedule for the current configuration.

    Example:
        erpcore backoff
    """
    policy = get_storage().get_config().retry_policy()
    click.echo(f"\n{'Attempt':<10} {'Delay (ms)':<12}")
    click.echo("-" * 22)
    for attempt in range(1, policy.max_retries + 1):
        click.echo(f"{attempt:<10} {policy.delay_for(attempt):<12.0f}")
    click.echo()


@cli.group("import")
def import_():
    """Check GRN spreadsheet exports"""
    pass


@import_.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print staged records and metrics as JSON")
def check(path: str, as_json: bool):
    """Validate, stage and score a GRN CSV file.

    Example:
        erpcore import check grn_march.csv
    """
    handler = get_error_handler()
    try:
        headers, rows = read_grn_csv(path)
    except (OSError, UnicodeDecodeError, ValueError, csv.Error) as e:
        handler.handle_error(e, context={"path": path})
        sys.exit(1)

    structure = validate_sheet_headers(headers)
    if not structure.valid:
        click.echo(f"✗ File structure invalid: {', '.join(structure.errors)}", err=True)
        sys.exit(1)

    records = stage_grn_rows(rows)
    quality = calculate_data_quality(records)

    if as_json:
        click.echo(json.dumps({
            "file_hash": file_hash(path),
            "records": [r.model_dump(mode="json") for r in records],
            "quality": quality.model_dump(mode="json"),
        }, indent=2))
        return

    click.echo(f"\n{'Row':<6} {'GRN Number':<16} {'Item Code':<16} {'Date':<12} {'Status':<10}")
    click.echo("-" * 62)
    for record in records:
        status = "duplicate" if record.is_duplicate else record.validation_status
        click.echo(f"{record.source_row_number:<6} {record.grn_number[:16]:<16} "
                   f"{record.item_code[:16]:<16} {record.date:<12} {status:<10}")
        for error in record.validation_errors:
            click.echo(f"       ✗ {error}")
        for warning in record.validation_warnings:
            click.echo(f"       ! {warning}")

    click.echo("\n" + "=" * 50)
    click.echo(f"Overall Quality: {quality.overall_quality_score}%")
    click.echo(f"  Completeness: {quality.completeness_score}%")
    click.echo(f"  Accuracy:     {quality.accuracy_score}%")
    click.echo(f"  Consistency:  {quality.consistency_score}%")
    click.echo(f"  Validity:     {quality.validity_score}%")
    for recommendation in quality.recommendations:
        click.echo(f"  - {recommendation}")
    click.echo("=" * 50 + "\n")


@cli.command()
def status():
    """Show error log statistics and configuration.

    Example:
        erpcore status
    """
    storage = get_storage()
    stats = storage.get_stats()
    config = storage.get_config()

    click.echo("\n" + "=" * 50)
    click.echo("erpcore Status")
    click.echo("=" * 50)
    click.echo(f"Logged Errors:  {stats['total']}")
    click.echo(f"  Critical:     {stats['critical']}")
    click.echo(f"  High:         {stats['high']}")
    click.echo(f"  Medium:       {stats['medium']}")
    click.echo(f"  Low:          {stats['low']}")
    click.echo("\nConfiguration:")
    click.echo(f"  Max Retries:  {config.max_retries}")
    click.echo(f"  Breaker:      {config.failure_threshold} failures / {config.recovery_time_ms:.0f}ms")
    click.echo("=" * 50 + "\n")


@cli.group()
def errors():
    """Inspect the error log"""
    pass


@errors.command("list")
@click.option("--severity", type=click.Choice([s.value for s in Severity]), help="Filter by severity")
@click.option("--limit", default=10, help="Maximum entries to display")
def list_errors(severity: Optional[str], limit: int):
    """List logged errors, newest first.

    Example:
        erpcore errors list --severity high
    """
    storage = get_storage()
    entries = storage.get_errors(Severity(severity) if severity else None)
    entries = list(reversed(entries))[:limit]

    if not entries:
        click.echo("No errors logged")
        return

    click.echo(f"\n{'Logged':<20} {'Severity':<10} {'Type':<20} {'Message':<40}")
    click.echo("-" * 90)
    for entry in entries:
        logged = entry.logged_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(f"{logged:<20} {entry.severity.value:<10} {entry.error_type[:20]:<20} "
                   f"{entry.error_message[:40]:<40}")
    click.echo()


@errors.command("clear")
def clear_errors():
    """Remove all logged errors.

    Example:
        erpcore errors clear
    """
    count = get_storage().clear_errors()
    click.echo(f"✓ Removed {count} error(s)")


@cli.group()
def config():
    """Manage configuration"""
    pass


@config.command()
def show():
    """Show current configuration.

    Example:
        erpcore config show
    """
    cfg = get_storage().get_config()

    click.echo("\nCurrent Configuration:")
    click.echo(f"  max-retries:       {cfg.max_retries}")
    click.echo(f"  base-delay:        {cfg.base_delay_ms:.0f} ms")
    click.echo(f"  max-delay:         {cfg.max_delay_ms:.0f} ms")
    click.echo(f"  exponential-base:  {cfg.exponential_base}")
    click.echo(f"  failure-threshold: {cfg.failure_threshold}")
    click.echo(f"  recovery-time:     {cfg.recovery_time_ms:.0f} ms")
    click.echo(f"  log-level:         {cfg.log_level}")
    click.echo()


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_(key: str, value: str):
    """Set a configuration value.

    Example:
        erpcore config set max-retries 5
        erpcore config set base-delay 500
    """
    if key not in CONFIG_KEYS:
        click.echo(f"✗ Unknown config key: {key}", err=True)
        sys.exit(1)

    storage = get_storage()
    field, cast = CONFIG_KEYS[key]
    try:
        storage.update_config(**{field: cast(value)})
    except ValueError as e:
        click.echo(f"✗ Invalid value: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Configuration updated: {key} = {value}")


if __name__ == "__main__":
    cli()
