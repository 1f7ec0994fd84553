"""
Firewall rule records and selection policy.

Rules are created in the Windows firewall group "SQL Server" with internal
names that encode what they are for:

    SQL Server default instance   -> Engine rule for MSSQLSERVER
    SQL Server instance <NAME>    -> Engine rule for a named instance
    SQL Server Browser            -> Browser rule (UDP 1434)

Everything here is pure: no I/O, no remoting.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable, Optional, List

# pyright: reportMissingImports=false
# pylint: disable=no-name-in-module
from pydantic import BaseModel, Field, ConfigDict

from autodbadmin.domain.targets import DEFAULT_INSTANCE, DEFAULT_PORT, TargetReference


FIREWALL_GROUP = "SQL Server"
BROWSER_PORT = 1434

DEFAULT_INSTANCE_RULE_NAME = "SQL Server default instance"
INSTANCE_RULE_PREFIX = "SQL Server instance "
BROWSER_RULE_NAME = "SQL Server Browser"

_INSTANCE_RULE_RE = re.compile(r"^SQL Server instance (?P<instance>.+)$", re.IGNORECASE)


class FirewallRuleType(str, Enum):
    """Rule classification as understood by callers."""

    ENGINE = "Engine"
    BROWSER = "Browser"
    ALL_INSTANCE = "AllInstance"

    @classmethod
    def parse(cls, value: str) -> FirewallRuleType:
        """Case-insensitive lookup by value."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown firewall rule type '{value}'. Valid: {valid}")


class FirewallRule(BaseModel):
    """One firewall rule, reshaped for output."""

    computer_name: str = Field(..., description="Computer the rule lives on")
    instance_name: Optional[str] = Field(None, description="Instance derived from the rule name")
    sql_instance: Optional[str] = Field(None, description="HOST or HOST\\INSTANCE")
    display_name: str = Field("", description="Rule display name")
    name: str = Field(..., description="Rule internal name")
    type: Optional[FirewallRuleType] = Field(None, description="Engine or Browser")
    protocol: Optional[str] = Field(None, description="TCP / UDP / Any")
    local_port: Optional[str] = Field(None, description="Local port filter")
    program: Optional[str] = Field(None, description="Application filter path")

    model_config = ConfigDict(use_enum_values=False)

    def to_record(self) -> dict[str, Any]:
        """Flat dict for tabular/JSON output."""
        data = self.model_dump()
        data["type"] = self.type.value if self.type else None
        return data


class FirewallQueryResult(BaseModel):
    """Per-target outcome of a firewall rule operation."""

    target: str = Field(..., description="Target display name")
    computer_name: str = Field(..., description="Computer name")
    successful: bool = Field(True, description="Whether the target was processed")
    rules: List[FirewallRule] = Field(default_factory=list)
    verbose: List[str] = Field(default_factory=list, description="Informational notes")
    warning: Optional[str] = Field(None, description="Non-fatal warning")
    error: Optional[str] = Field(None, description="Failure details")


def rule_name_for(target: TargetReference) -> str:
    """Internal Engine rule name for a target's instance."""
    if target.is_default_instance:
        return DEFAULT_INSTANCE_RULE_NAME
    return f"{INSTANCE_RULE_PREFIX}{target.instance_name}"


def classify_rule(name: str) -> tuple[FirewallRuleType | None, str | None]:
    """
    Derive (type, instance name) from a rule's internal name.

    Unknown names come back as (None, None).
    """
    value = (name or "").strip()
    if value.lower() == DEFAULT_INSTANCE_RULE_NAME.lower():
        return FirewallRuleType.ENGINE, DEFAULT_INSTANCE
    if value.lower() == BROWSER_RULE_NAME.lower():
        return FirewallRuleType.BROWSER, None
    match = _INSTANCE_RULE_RE.match(value)
    if match:
        return FirewallRuleType.ENGINE, match.group("instance").strip()
    return None, None


def build_rule(computer_name: str, raw: dict[str, Any]) -> FirewallRule:
    """Reshape one raw rule (as emitted by the query script) into a record."""
    name = str(raw.get("Name") or "")
    rule_type, instance_name = classify_rule(name)

    sql_instance = None
    if rule_type == FirewallRuleType.ENGINE:
        if instance_name == DEFAULT_INSTANCE:
            sql_instance = computer_name
        else:
            sql_instance = f"{computer_name}\\{instance_name}"

    return FirewallRule(
        computer_name=computer_name,
        instance_name=instance_name,
        sql_instance=sql_instance,
        display_name=str(raw.get("DisplayName") or ""),
        name=name,
        type=rule_type,
        protocol=_as_text(raw.get("Protocol")),
        local_port=_as_text(raw.get("LocalPort")),
        program=_as_text(raw.get("Program")),
    )


def select_rules(
    rules: Iterable[FirewallRule],
    instance_name: str | None,
    types: Iterable[FirewallRuleType] | None = None,
) -> list[FirewallRule]:
    """
    Apply the caller's type filter.

    Without types: the Engine rule of the requested instance, plus the Browser
    rule when that Engine rule is not on the default port. A missing Engine
    rule counts as non-default.

    Engine only ever matches the requested instance; AllInstance is the one
    filter that crosses instances.
    """
    rules = list(rules)
    wanted = set(types or [])

    if FirewallRuleType.ALL_INSTANCE in wanted:
        return rules

    instance = (instance_name or DEFAULT_INSTANCE).lower()
    engine_rules = [
        r
        for r in rules
        if r.type == FirewallRuleType.ENGINE
        and (r.instance_name or "").lower() == instance
    ]

    if wanted:
        return [
            r
            for r in rules
            if (r.type == FirewallRuleType.BROWSER and FirewallRuleType.BROWSER in wanted)
            or (r in engine_rules and FirewallRuleType.ENGINE in wanted)
        ]

    selected = list(engine_rules)

    needs_browser = not engine_rules or any(
        (r.local_port or "").strip() != str(DEFAULT_PORT) for r in engine_rules
    )
    if needs_browser:
        selected.extend(r for r in rules if r.type == FirewallRuleType.BROWSER)

    return selected


def _as_text(value: Any) -> str | None:
    """Firewall filters come back as scalars or arrays; flatten to text."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)
