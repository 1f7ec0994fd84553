"""
CLI record formatters.

Records go to stdout as a Rich table or JSON; warnings and errors go to
stderr so JSON output stays machine-readable.
"""

import json
from typing import Any, Dict, List, Sequence

import typer
from rich.console import Console
from rich.table import Table

from autodbadmin.domain.encryption import EncryptionChangeResult, EncryptionStatus
from autodbadmin.domain.firewall import FirewallQueryResult


console = Console()
err_console = Console(stderr=True)

FIREWALL_COLUMNS = [
    ("computer_name", "ComputerName"),
    ("instance_name", "InstanceName"),
    ("sql_instance", "SqlInstance"),
    ("display_name", "DisplayName"),
    ("name", "Name"),
    ("type", "Type"),
    ("protocol", "Protocol"),
    ("local_port", "LocalPort"),
    ("program", "Program"),
]

ENCRYPTION_CHANGE_COLUMNS = [
    ("sql_instance", "SqlInstance"),
    ("database_name", "DatabaseName"),
    ("encryption_enabled", "EncryptionEnabled"),
    ("key_removed", "KeyRemoved"),
    ("status", "Status"),
    ("error", "Error"),
]

ENCRYPTION_STATUS_COLUMNS = [
    ("sql_instance", "SqlInstance"),
    ("database_name", "DatabaseName"),
    ("encryption_enabled", "EncryptionEnabled"),
    ("key_state", "KeyState"),
    ("key_algorithm", "Algorithm"),
    ("key_length", "KeyLength"),
    ("encryptor_type", "EncryptorType"),
    ("percent_complete", "PercentComplete"),
]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def render_records(
    records: List[Dict[str, Any]],
    columns: Sequence[tuple],
    output_format: str = "table",
    title: str | None = None,
) -> None:
    """Print records as a table or as a JSON array keyed by column header."""
    if output_format == "json":
        payload = [{header: record.get(key) for key, header in columns} for record in records]
        # Plain echo: Rich would wrap long lines and break the JSON
        typer.echo(json.dumps(payload, indent=2, default=str))
        return

    if not records:
        return

    table = Table(title=title)
    for _, header in columns:
        table.add_column(header, overflow="fold")
    for record in records:
        table.add_row(*(_cell(record.get(key)) for key, _ in columns))
    console.print(table)


def report_firewall_results(results: List[FirewallQueryResult], output_format: str = "table") -> int:
    """Print rules and per-target problems; returns the number of failed targets."""
    records = [rule.to_record() for result in results for rule in result.rules]
    render_records(records, FIREWALL_COLUMNS, output_format, title="Firewall rules")

    failed = 0
    for result in results:
        if result.warning:
            err_console.print(f"[yellow]WARNING[/yellow] {result.target}: {result.warning}")
        if not result.successful:
            failed += 1
            err_console.print(f"[red]ERROR[/red] {result.target}: {result.error}")
    return failed


def report_encryption_changes(results: List[EncryptionChangeResult], output_format: str = "table") -> int:
    """Print per-database outcomes; returns the number of failed databases."""
    render_records(
        [r.to_record() for r in results],
        ENCRYPTION_CHANGE_COLUMNS,
        output_format,
        title="Encryption changes",
    )
    failed = [r for r in results if r.failed]
    for result in failed:
        name = f"{result.sql_instance}/{result.database_name}" if result.database_name else result.sql_instance
        err_console.print(f"[red]ERROR[/red] {name}: {result.error}")
    return len(failed)


def report_encryption_status(statuses: List[EncryptionStatus], output_format: str = "table") -> None:
    render_records(
        [s.to_record() for s in statuses],
        ENCRYPTION_STATUS_COLUMNS,
        output_format,
        title="Encryption status",
    )
