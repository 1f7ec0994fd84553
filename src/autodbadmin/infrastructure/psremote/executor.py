"""
Script Executor - Remote PowerShell Script Runner.

Runs the firewall scripts on a host via PSRemote and unpacks the JSON
envelope they print.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import TargetReference
from autodbadmin.infrastructure.psremote import scripts
from autodbadmin.infrastructure.psremote.client import (
    PSRemoteClient,
    ConnectionConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result from script execution."""

    success: bool
    data: Any = None
    raw_output: str = ""
    error: str = ""
    script_name: str = ""
    reached: bool = True
    capability_missing: bool = False
    verbose: list[str] = field(default_factory=list)
    connection_info: dict[str, str] = field(default_factory=dict)


class ScriptExecutor:
    """
    Executes firewall scripts on one host.

    Wraps PSRemoteClient with script-specific logic:
    - Builds the script
    - Parses the JSON envelope
    - Separates transport failures (reached=False) from script failures
    """

    def __init__(self, client: PSRemoteClient) -> None:
        self.client = client

    @classmethod
    def for_target(cls, target: TargetReference, settings: AdminSettings) -> ScriptExecutor:
        """Create an executor for a target's computer."""
        return cls(PSRemoteClient(ConnectionConfig.for_target(target, settings)))

    def get_firewall_rules(self) -> ExecutionResult:
        return self.run_json_script(scripts.get_rules_script(), "Get-FirewallRules")

    def new_firewall_rules(self, rules: list[dict[str, Any]]) -> ExecutionResult:
        return self.run_json_script(scripts.new_rules_script(rules), "New-FirewallRules")

    def remove_firewall_rules(self, names: list[str]) -> ExecutionResult:
        return self.run_json_script(scripts.remove_rules_script(names), "Remove-FirewallRules")

    def run_json_script(self, script: str, script_name: str) -> ExecutionResult:
        """Execute a script and unpack its JSON envelope."""
        result = self.client.run_ps(script)
        connection_info = {
            "transport": result.transport_used,
            "auth": result.auth_used,
        }

        output = (result.stdout or "").strip()
        json_start = output.find("{")
        json_end = output.rfind("}") + 1

        if json_start < 0 or json_end <= json_start:
            # No envelope: the script never ran or died before printing
            error = result.error or result.stderr.strip() or "Script produced no output"
            logger.debug("%s produced no JSON envelope: %s", script_name, error)
            return ExecutionResult(
                success=False,
                raw_output=result.stdout,
                error=error,
                script_name=script_name,
                reached=bool(result.transport_used) and not result.error,
                connection_info=connection_info,
            )

        try:
            envelope = json.loads(output[json_start:json_end])
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse JSON from %s: %s", script_name, e)
            return ExecutionResult(
                success=False,
                raw_output=result.stdout,
                error=f"JSON parse error: {e}",
                script_name=script_name,
                connection_info=connection_info,
            )

        if not isinstance(envelope, dict):
            return ExecutionResult(
                success=False,
                raw_output=result.stdout,
                error="Unexpected script output",
                script_name=script_name,
                connection_info=connection_info,
            )

        verbose = envelope.get("Verbose") or []
        if isinstance(verbose, str):
            verbose = [verbose]

        successful = bool(envelope.get("Successful"))
        data = envelope.get("Output")

        return ExecutionResult(
            success=successful,
            data=data if successful else None,
            raw_output=result.stdout,
            error="" if successful else str(data or "Script reported failure"),
            script_name=script_name,
            capability_missing=bool(envelope.get("CapabilityMissing")),
            verbose=[str(v) for v in verbose],
            connection_info=connection_info,
        )

    def close(self) -> None:
        """Close the underlying client."""
        self.client.close()
