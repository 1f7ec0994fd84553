"""
Shared fixtures: fake remote executors and fake database handles.

Nothing here touches WinRM, PowerShell or ODBC.
"""

from __future__ import annotations

from typing import Any

import pytest

from autodbadmin.domain.encryption import EncryptionKeyInfo, EncryptionState
from autodbadmin.domain.errors import DatabaseOperationError
from autodbadmin.domain.settings import AdminSettings
from autodbadmin.infrastructure.psremote.executor import ExecutionResult


def rule_payload(name: str, port: str | None = "1433", protocol: str = "TCP",
                 display_name: str | None = None, program: str = "Any") -> dict[str, Any]:
    """One raw rule as printed by the query script."""
    return {
        "DisplayName": display_name or name,
        "Name": name,
        "Protocol": protocol,
        "LocalPort": port,
        "Program": program,
    }


def ok(data: Any = None, verbose: list[str] | None = None) -> ExecutionResult:
    return ExecutionResult(success=True, data=data, verbose=verbose or [], script_name="test")


class FakeExecutor:
    """Stands in for ScriptExecutor; returns canned results and records calls."""

    def __init__(self, get_result=None, new_result=None, remove_result=None):
        self.get_result = get_result or ok([])
        self.new_result = new_result or ok({"Created": [], "Existing": []})
        self.remove_result = remove_result or ok([])
        self.created_specs = None
        self.removed_names = None
        self.closed = False

    def get_firewall_rules(self):
        if isinstance(self.get_result, Exception):
            raise self.get_result
        return self.get_result

    def new_firewall_rules(self, specs):
        self.created_specs = specs
        return self.new_result

    def remove_firewall_rules(self, names):
        self.removed_names = names
        return self.remove_result

    def close(self):
        self.closed = True


class ExecutorFactory:
    """Maps computer name -> FakeExecutor; remembers which hosts were contacted."""

    def __init__(self, executors: dict[str, FakeExecutor]):
        self.executors = executors
        self.calls: list[str] = []

    def __call__(self, target, settings):
        self.calls.append(target.computer_name)
        return self.executors[target.computer_name]


class FakeDatabase:
    """Stands in for DatabaseHandle."""

    def __init__(self, name: str, encrypted: bool = True, has_key: bool = True,
                 sql_instance: str = "SQL01", fail_on: str | None = None,
                 reaches_unencrypted: bool = True):
        self.name = name
        self.sql_instance = sql_instance
        self.encryption_enabled = encrypted
        self.encryption_key = (
            EncryptionKeyInfo(state=EncryptionState.ENCRYPTED if encrypted else EncryptionState.UNENCRYPTED)
            if has_key else None
        )
        self.fail_on = fail_on
        self.reaches_unencrypted = reaches_unencrypted
        self.altered = False
        self.key_dropped = False
        self.waited = False

    def alter(self):
        if self.fail_on == "alter":
            raise DatabaseOperationError(self.name, "SET ENCRYPTION OFF", "permission denied")
        self.altered = True
        if self.encryption_key is not None:
            self.encryption_key = EncryptionKeyInfo(state=EncryptionState.DECRYPTION_IN_PROGRESS)

    def wait_for_key_state(self, states, timeout, poll_interval=2.0, sleep=None, clock=None):
        self.waited = True
        if self.reaches_unencrypted:
            self.encryption_key = EncryptionKeyInfo(state=EncryptionState.UNENCRYPTED)
        return self.reaches_unencrypted

    def drop_encryption_key(self):
        if self.fail_on == "drop":
            raise DatabaseOperationError(self.name, "DROP DATABASE ENCRYPTION KEY", "in use")
        self.key_dropped = True
        self.encryption_key = None


@pytest.fixture
def settings() -> AdminSettings:
    return AdminSettings()
