"""
AutoDBAdmin CLI.

    autodbadmin firewall get|new|remove TARGET...
    autodbadmin encryption disable|status TARGET...

TARGET is HOST, HOST\\INSTANCE or HOST,PORT. Use --from-config to run
against every enabled target in targets.json.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from autodbadmin.application.encryption_service import EncryptionService
from autodbadmin.application.firewall_service import FirewallRuleService
from autodbadmin.domain.errors import AdminError, ConfigError
from autodbadmin.domain.firewall import FirewallRuleType
from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import Credential, TargetReference
from autodbadmin.infrastructure.config_loader import ConfigLoader
from autodbadmin.infrastructure.logging_config import setup_logging
from autodbadmin.interface import formatters
from autodbadmin.interface.formatters import err_console

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="autodbadmin",
    help="SQL Server administration helpers: firewall rules and database encryption",
    add_completion=False,
    no_args_is_help=True,
)
firewall_app = typer.Typer(
    help="Windows firewall rules for SQL Server instances",
    no_args_is_help=True,
)
encryption_app = typer.Typer(
    help="Transparent Data Encryption on SQL Server databases",
    no_args_is_help=True,
)
app.add_typer(firewall_app, name="firewall")
app.add_typer(encryption_app, name="encryption")


@dataclass
class CliState:
    """Per-invocation state shared by subcommands."""

    settings: AdminSettings
    loader: ConfigLoader


# Shared options
TARGETS_ARG = typer.Argument(None, help="HOST, HOST\\INSTANCE or HOST,PORT")
FROM_CONFIG_OPT = typer.Option(False, "--from-config", help="Use enabled targets from targets.json")
FORMAT_OPT = typer.Option("table", "--format", "-f", help="Output format: table or json")
USERNAME_OPT = typer.Option(None, "--username", "-u", help="Windows account for remoting")
PASSWORD_OPT = typer.Option(None, "--password", "-p", help="Password for --username")
SQL_USERNAME_OPT = typer.Option(None, "--sql-username", help="SQL login (switches to SQL auth)")
SQL_PASSWORD_OPT = typer.Option(None, "--sql-password", help="Password for --sql-username")
YES_OPT = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show verbose notes and debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs to file"),
    config_dir: Optional[Path] = typer.Option(None, "--config-dir", help="Directory with settings.json / targets.json"),
):
    """SQL Server administration helpers."""
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file)

    loader = ConfigLoader(config_dir)
    try:
        settings = loader.load_settings()
    except ConfigError as e:
        err_console.print(f"[red]ERROR[/red] {e}")
        raise typer.Exit(code=2) from e

    ctx.obj = CliState(settings=settings, loader=loader)


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj


def _credential(username: Optional[str], password: Optional[str], label: str) -> Optional[Credential]:
    if not username:
        return None
    if password is None:
        password = typer.prompt(f"{label} password for {username}", hide_input=True)
    return Credential(username, password)


def _resolve_targets(
    ctx: typer.Context,
    targets: Optional[List[str]],
    from_config: bool,
    credential: Optional[Credential] = None,
    sql_credential: Optional[Credential] = None,
) -> List[TargetReference]:
    resolved = []
    for text in targets or []:
        try:
            resolved.append(TargetReference.parse(text, credential, sql_credential))
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="TARGETS") from e

    if from_config:
        try:
            configured = _state(ctx).loader.load_targets()
        except ConfigError as e:
            raise typer.BadParameter(str(e), param_hint="--from-config") from e
        resolved.extend(t.with_credentials(credential, sql_credential) for t in configured)

    if not resolved:
        raise typer.BadParameter("Specify at least one target or --from-config", param_hint="TARGETS")
    return resolved


def _rule_types(values: Optional[List[str]]) -> List[FirewallRuleType]:
    types = []
    for value in values or []:
        try:
            types.append(FirewallRuleType.parse(value))
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--type") from e
    return types


def _check_format(output_format: str) -> str:
    value = output_format.lower()
    if value not in ("table", "json"):
        raise typer.BadParameter("Use 'table' or 'json'", param_hint="--format")
    return value


def _confirmer(yes: bool):
    def confirm(target: str, action: str) -> bool:
        if yes:
            return True
        return typer.confirm(f"{action} on {target}?", default=False)
    return confirm


def _finish(failed: int) -> None:
    if failed:
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# firewall
# ----------------------------------------------------------------------

@firewall_app.command("get")
def firewall_get(
    ctx: typer.Context,
    targets: Optional[List[str]] = TARGETS_ARG,
    rule_type: Optional[List[str]] = typer.Option(None, "--type", "-t", help="Engine, Browser or AllInstance"),
    from_config: bool = FROM_CONFIG_OPT,
    username: Optional[str] = USERNAME_OPT,
    password: Optional[str] = PASSWORD_OPT,
    output_format: str = FORMAT_OPT,
):
    """
    Show the SQL Server firewall rules of each target.

    Without --type: the instance's Engine rule, plus the Browser rule when
    the instance is not on port 1433.
    """
    output_format = _check_format(output_format)
    types = _rule_types(rule_type)
    resolved = _resolve_targets(ctx, targets, from_config, _credential(username, password, "Windows"))

    service = FirewallRuleService(settings=_state(ctx).settings)
    results = service.get_rules(resolved, types)
    _finish(formatters.report_firewall_results(results, output_format))


@firewall_app.command("new")
def firewall_new(
    ctx: typer.Context,
    targets: Optional[List[str]] = TARGETS_ARG,
    rule_type: Optional[List[str]] = typer.Option(None, "--type", "-t", help="Engine, Browser or AllInstance"),
    port: Optional[int] = typer.Option(None, "--port", min=1, max=65535, help="Instance TCP port"),
    from_config: bool = FROM_CONFIG_OPT,
    username: Optional[str] = USERNAME_OPT,
    password: Optional[str] = PASSWORD_OPT,
    sql_username: Optional[str] = SQL_USERNAME_OPT,
    sql_password: Optional[str] = SQL_PASSWORD_OPT,
    output_format: str = FORMAT_OPT,
):
    """Create the firewall rules an instance needs."""
    output_format = _check_format(output_format)
    types = _rule_types(rule_type)
    resolved = _resolve_targets(
        ctx,
        targets,
        from_config,
        _credential(username, password, "Windows"),
        _credential(sql_username, sql_password, "SQL"),
    )

    service = FirewallRuleService(settings=_state(ctx).settings)
    results = service.new_rules(resolved, types, port=port)
    _finish(formatters.report_firewall_results(results, output_format))


@firewall_app.command("remove")
def firewall_remove(
    ctx: typer.Context,
    targets: Optional[List[str]] = TARGETS_ARG,
    rule_type: Optional[List[str]] = typer.Option(None, "--type", "-t", help="Engine, Browser or AllInstance"),
    from_config: bool = FROM_CONFIG_OPT,
    username: Optional[str] = USERNAME_OPT,
    password: Optional[str] = PASSWORD_OPT,
    yes: bool = YES_OPT,
    output_format: str = FORMAT_OPT,
):
    """Remove the rules 'firewall get' would show."""
    output_format = _check_format(output_format)
    types = _rule_types(rule_type)
    resolved = _resolve_targets(ctx, targets, from_config, _credential(username, password, "Windows"))

    service = FirewallRuleService(settings=_state(ctx).settings)
    results = service.remove_rules(resolved, types, confirm=_confirmer(yes))
    _finish(formatters.report_firewall_results(results, output_format))


# ----------------------------------------------------------------------
# encryption
# ----------------------------------------------------------------------

@encryption_app.command("disable")
def encryption_disable(
    ctx: typer.Context,
    targets: Optional[List[str]] = TARGETS_ARG,
    database: List[str] = typer.Option(..., "--database", "-d", help="Database name (repeatable)"),
    keep_key: bool = typer.Option(False, "--keep-key", help="Do not remove the database encryption key"),
    from_config: bool = FROM_CONFIG_OPT,
    sql_username: Optional[str] = SQL_USERNAME_OPT,
    sql_password: Optional[str] = SQL_PASSWORD_OPT,
    yes: bool = YES_OPT,
    what_if: bool = typer.Option(False, "--what-if", help="Show what would change"),
    output_format: str = FORMAT_OPT,
):
    """Turn encryption off and, unless --keep-key, drop the encryption key."""
    output_format = _check_format(output_format)
    resolved = _resolve_targets(
        ctx, targets, from_config, sql_credential=_credential(sql_username, sql_password, "SQL")
    )

    service = EncryptionService(settings=_state(ctx).settings)
    results = service.disable(
        targets=resolved,
        database_names=database,
        keep_key=keep_key,
        confirm=_confirmer(yes),
        what_if=what_if,
    )
    _finish(formatters.report_encryption_changes(results, output_format))


@encryption_app.command("status")
def encryption_status(
    ctx: typer.Context,
    targets: Optional[List[str]] = TARGETS_ARG,
    database: Optional[List[str]] = typer.Option(None, "--database", "-d", help="Database name (repeatable)"),
    from_config: bool = FROM_CONFIG_OPT,
    sql_username: Optional[str] = SQL_USERNAME_OPT,
    sql_password: Optional[str] = SQL_PASSWORD_OPT,
    output_format: str = FORMAT_OPT,
):
    """Show the encryption state of databases."""
    output_format = _check_format(output_format)
    resolved = _resolve_targets(
        ctx, targets, from_config, sql_credential=_credential(sql_username, sql_password, "SQL")
    )

    service = EncryptionService(settings=_state(ctx).settings)
    statuses = []
    failed = 0
    for target in resolved:
        try:
            statuses.extend(service.get_status(target, database or None))
        except AdminError as e:
            logger.error("%s", e)
            err_console.print(f"[red]ERROR[/red] {target.sql_instance}: {e}")
            failed += 1

    formatters.report_encryption_status(statuses, output_format)
    _finish(failed)


def main() -> int:
    """Console script entry point."""
    try:
        app()
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0
    return 0
