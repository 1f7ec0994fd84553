"""
Firewall Rule Service.

Query, create and remove the Windows firewall rules that let clients reach
SQL Server instances. Rules are read fresh from the host on every call.

Each target is processed on its own: a missing NetSecurity module, an
unreachable host or any other failure becomes an unsuccessful
FirewallQueryResult for that target and the batch moves on.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

import pyodbc

from autodbadmin.domain.errors import (
    AdminError,
    CapabilityMissingError,
    TargetUnreachableError,
)
from autodbadmin.domain.firewall import (
    BROWSER_PORT,
    BROWSER_RULE_NAME,
    FirewallQueryResult,
    FirewallRule,
    FirewallRuleType,
    build_rule,
    rule_name_for,
    select_rules,
)
from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import DEFAULT_PORT, Credential, TargetReference
from autodbadmin.infrastructure.psremote.executor import ExecutionResult, ScriptExecutor
from autodbadmin.infrastructure.psremote.scripts import CAPABILITY_NAME
from autodbadmin.infrastructure.sql_server import SqlConnector

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[TargetReference, AdminSettings], ScriptExecutor]
ConnectorFactory = Callable[[TargetReference, AdminSettings], SqlConnector]
ConfirmCallback = Callable[[str, str], bool]

# Static TcpPort wins over dynamic ports
INSTANCE_PORT_QUERY = """
SELECT TOP 1 CAST(value_data AS NVARCHAR(64)) AS Port
FROM sys.dm_server_registry
WHERE registry_key LIKE '%IPAll'
  AND value_name IN ('TcpPort', 'TcpDynamicPorts')
  AND CAST(value_data AS NVARCHAR(64)) <> ''
ORDER BY CASE value_name WHEN 'TcpPort' THEN 0 ELSE 1 END
"""


class FirewallRuleService:
    """Firewall rule operations over a batch of targets."""

    def __init__(
        self,
        settings: AdminSettings | None = None,
        executor_factory: ExecutorFactory | None = None,
        connector_factory: ConnectorFactory | None = None,
    ):
        self.settings = settings or AdminSettings()
        self._executor_factory = executor_factory or ScriptExecutor.for_target
        self._connector_factory = connector_factory or SqlConnector.for_target

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get_rules(
        self,
        targets: Iterable[TargetReference],
        types: Iterable[FirewallRuleType] | None = None,
        credential: Credential | None = None,
    ) -> List[FirewallQueryResult]:
        """
        Return the SQL Server firewall rules of every target.

        Without types, each target yields its instance's Engine rule and the
        Browser rule when the instance is not on port 1433.
        """
        types = list(types or [])
        return self._for_each(
            targets, credential, lambda target: self._get_rules(target, types)
        )

    def new_rules(
        self,
        targets: Iterable[TargetReference],
        types: Iterable[FirewallRuleType] | None = None,
        port: int | None = None,
        credential: Credential | None = None,
    ) -> List[FirewallQueryResult]:
        """
        Create the Engine rule (and Browser rule when needed) for every target.

        Port resolution: explicit port, the target's port, the instance's
        configured TCP port, then 1433 for a default instance.
        """
        types = list(types or [])
        return self._for_each(
            targets, credential, lambda target: self._new_rules(target, types, port)
        )

    def remove_rules(
        self,
        targets: Iterable[TargetReference],
        types: Iterable[FirewallRuleType] | None = None,
        credential: Credential | None = None,
        confirm: ConfirmCallback | None = None,
    ) -> List[FirewallQueryResult]:
        """Remove the rules get_rules would return for the same arguments."""
        types = list(types or [])
        return self._for_each(
            targets, credential, lambda target: self._remove_rules(target, types, confirm)
        )

    # ------------------------------------------------------------------
    # Per-target work
    # ------------------------------------------------------------------

    def _for_each(
        self,
        targets: Iterable[TargetReference],
        credential: Credential | None,
        work: Callable[[TargetReference], FirewallQueryResult],
    ) -> List[FirewallQueryResult]:
        results = []
        for target in targets:
            target = target.with_credentials(credential=credential)
            try:
                result = work(target)
            except CapabilityMissingError as e:
                logger.warning("%s", e)
                result = self._failed(
                    target,
                    str(e),
                    warning=f"Firewall rules are not supported on {target.computer_name}",
                )
            except TargetUnreachableError as e:
                logger.error("%s", e)
                result = self._failed(target, str(e))
            except AdminError as e:
                logger.error("%s: %s", target.sql_instance, e)
                result = self._failed(target, str(e))
            except Exception as e:  # pylint: disable=broad-except
                logger.exception("Unexpected failure on %s", target.sql_instance)
                result = self._failed(target, f"{type(e).__name__}: {e}")
            results.append(result)
        return results

    def _get_rules(
        self, target: TargetReference, types: list[FirewallRuleType]
    ) -> FirewallQueryResult:
        executor = self._executor_factory(target, self.settings)
        try:
            result = self._checked(target, executor.get_firewall_rules())
        finally:
            executor.close()

        rules = self._to_rules(target, result.data)
        selected = select_rules(rules, target.effective_instance, types)
        notes = list(result.verbose)

        if not selected:
            note = f"No firewall rules found on {target.computer_name} for {target.sql_instance}"
            logger.debug("%s", note)
            notes.append(note)

        return FirewallQueryResult(
            target=target.sql_instance,
            computer_name=target.computer_name,
            rules=selected,
            verbose=notes,
        )

    def _new_rules(
        self,
        target: TargetReference,
        types: list[FirewallRuleType],
        port: int | None,
    ) -> FirewallQueryResult:
        port = port or target.port or self._instance_port(target)
        if not port:
            if not target.is_default_instance:
                raise AdminError(
                    f"Cannot determine the TCP port of {target.sql_instance}; pass a port explicitly"
                )
            port = DEFAULT_PORT

        wanted = set(types)
        all_types = FirewallRuleType.ALL_INSTANCE in wanted
        want_engine = not wanted or all_types or FirewallRuleType.ENGINE in wanted
        want_browser = (
            all_types
            or FirewallRuleType.BROWSER in wanted
            or (not wanted and port != DEFAULT_PORT)
        )

        specs = []
        if want_engine:
            name = rule_name_for(target)
            specs.append(
                {"Name": name, "DisplayName": name, "Protocol": "TCP", "LocalPort": str(port)}
            )
        if want_browser:
            specs.append(
                {
                    "Name": BROWSER_RULE_NAME,
                    "DisplayName": BROWSER_RULE_NAME,
                    "Protocol": "UDP",
                    "LocalPort": str(BROWSER_PORT),
                }
            )

        executor = self._executor_factory(target, self.settings)
        try:
            result = self._checked(target, executor.new_firewall_rules(specs))
        finally:
            executor.close()

        data = result.data or {}
        created = self._to_rules(target, data.get("Created"))
        existing = _as_list(data.get("Existing"))

        for rule in created:
            logger.info("Created firewall rule '%s' on %s", rule.name, target.computer_name)

        warning = None
        if existing:
            warning = f"Rules already exist on {target.computer_name}: {', '.join(map(str, existing))}"
            logger.warning("%s", warning)

        return FirewallQueryResult(
            target=target.sql_instance,
            computer_name=target.computer_name,
            rules=created,
            verbose=list(result.verbose),
            warning=warning,
        )

    def _remove_rules(
        self,
        target: TargetReference,
        types: list[FirewallRuleType],
        confirm: ConfirmCallback | None,
    ) -> FirewallQueryResult:
        executor = self._executor_factory(target, self.settings)
        try:
            listing = self._checked(target, executor.get_firewall_rules())
            rules = select_rules(
                self._to_rules(target, listing.data), target.effective_instance, types
            )
            notes = list(listing.verbose)

            if not rules:
                note = f"No firewall rules to remove on {target.computer_name} for {target.sql_instance}"
                logger.debug("%s", note)
                notes.append(note)
                return FirewallQueryResult(
                    target=target.sql_instance,
                    computer_name=target.computer_name,
                    verbose=notes,
                )

            names = [rule.name for rule in rules]
            action = f"Removing firewall rules {', '.join(names)}"
            if confirm is not None and not confirm(target.computer_name, action):
                logger.info("Skipped removal on %s", target.computer_name)
                return FirewallQueryResult(
                    target=target.sql_instance,
                    computer_name=target.computer_name,
                    verbose=notes,
                    warning="Removal not confirmed; nothing was changed",
                )

            removal = self._checked(target, executor.remove_firewall_rules(names))
        finally:
            executor.close()

        outcome = {
            str(item.get("Name")): item for item in _as_list(removal.data) if isinstance(item, dict)
        }
        removed: list[FirewallRule] = []
        errors = []
        for rule in rules:
            item = outcome.get(rule.name, {})
            if item.get("Removed"):
                logger.info("Removed firewall rule '%s' from %s", rule.name, target.computer_name)
                removed.append(rule)
            else:
                errors.append(f"{rule.name}: {item.get('Error') or 'not removed'}")

        return FirewallQueryResult(
            target=target.sql_instance,
            computer_name=target.computer_name,
            successful=not errors,
            rules=removed,
            verbose=notes + list(removal.verbose),
            error="; ".join(errors) or None,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _checked(self, target: TargetReference, result: ExecutionResult) -> ExecutionResult:
        """Log the script's notes and turn failures into domain errors."""
        for note in result.verbose:
            logger.debug("%s: %s", target.computer_name, note)

        if result.success:
            return result
        if result.capability_missing:
            raise CapabilityMissingError(target.computer_name, CAPABILITY_NAME, result.error)
        if not result.reached:
            raise TargetUnreachableError(target.computer_name, result.error)
        raise AdminError(f"Failed to execute command on {target.computer_name}: {result.error}")

    def _instance_port(self, target: TargetReference) -> Optional[int]:
        """Configured TCP port of the instance, or None when it cannot be read."""
        try:
            value = self._connector_factory(target, self.settings).execute_scalar(
                INSTANCE_PORT_QUERY
            )
        except (AdminError, pyodbc.Error, RuntimeError) as e:
            logger.warning("Could not read the TCP port of %s: %s", target.sql_instance, e)
            return None

        if value is None:
            return None
        first = str(value).split(",")[0].strip()
        if not first.isdigit():
            return None
        logger.debug("%s listens on TCP port %s", target.sql_instance, first)
        return int(first)

    @staticmethod
    def _to_rules(target: TargetReference, raw) -> list[FirewallRule]:
        return [
            build_rule(target.computer_name, item)
            for item in _as_list(raw)
            if isinstance(item, dict)
        ]

    @staticmethod
    def _failed(target: TargetReference, error: str, warning: str | None = None) -> FirewallQueryResult:
        return FirewallQueryResult(
            target=target.sql_instance,
            computer_name=target.computer_name,
            successful=False,
            warning=warning,
            error=error,
        )


def _as_list(value) -> list:
    """ConvertTo-Json unwraps single-item arrays; wrap them back."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
