"""
PowerShell script builders for firewall rule management.

Every script prints one JSON envelope on stdout:

    {"Successful": bool, "CapabilityMissing": bool, "Verbose": [...], "Output": ...}

On failure "Output" carries the error message.
"""

from __future__ import annotations

import json
from typing import Any

from autodbadmin.domain.firewall import FIREWALL_GROUP

CAPABILITY_NAME = "Get-NetFirewallRule"

_PREAMBLE = """
$ErrorActionPreference = 'Stop'
$ProgressPreference = 'SilentlyContinue'
$verbose = @()
$successful = $true
$capabilityMissing = $false
$output = $null
"""

_CAPABILITY_CHECK = """
    if (-not (Get-Command -Name Get-NetFirewallRule -ErrorAction SilentlyContinue)) {
        $capabilityMissing = $true
        throw 'The module NetSecurity with the command Get-NetFirewallRule is missing on the target computer.'
    }
"""

_ENVELOPE = """
[PSCustomObject]@{
    Successful        = $successful
    CapabilityMissing = $capabilityMissing
    Verbose           = @($verbose)
    Output            = $output
} | ConvertTo-Json -Depth 5 -Compress
"""


def ps_quote(value: str) -> str:
    """Single-quoted PowerShell literal."""
    return "'" + str(value).replace("'", "''") + "'"


def _json_here_string(payload: Any) -> str:
    return "@'\n" + json.dumps(payload) + "\n'@"


def _wrap(body: str) -> str:
    return (
        _PREAMBLE
        + "try {\n"
        + _CAPABILITY_CHECK
        + body
        + "\n} catch {\n"
        + "    $successful = $false\n"
        + "    $output = $_.Exception.Message\n"
        + "}\n"
        + _ENVELOPE
    )


def get_rules_script(group: str = FIREWALL_GROUP) -> str:
    """List every rule of the group with its port and application filters."""
    body = f"""
    $rules = @(Get-NetFirewallRule -Group {ps_quote(group)} -ErrorAction SilentlyContinue)
    $verbose += "Found $($rules.Count) rules in group " + {ps_quote(group)}
    $output = @(foreach ($rule in $rules) {{
        $portFilter = $rule | Get-NetFirewallPortFilter
        $appFilter = $rule | Get-NetFirewallApplicationFilter
        [PSCustomObject]@{{
            DisplayName = $rule.DisplayName
            Name        = $rule.Name
            Protocol    = $portFilter.Protocol
            LocalPort   = $portFilter.LocalPort
            Program     = $appFilter.Program
        }}
    }})
"""
    return _wrap(body)


def new_rules_script(rules: list[dict[str, Any]], group: str = FIREWALL_GROUP) -> str:
    """
    Create inbound allow rules.

    Args:
        rules: dicts with Name, DisplayName, Protocol and LocalPort

    Rules whose name already exists are left alone and reported in
    Output.Existing.
    """
    body = f"""
    $wanted = ConvertFrom-Json {_json_here_string(rules)}
    $created = @()
    $existing = @()
    foreach ($r in @($wanted)) {{
        if (Get-NetFirewallRule -Name $r.Name -ErrorAction SilentlyContinue) {{
            $verbose += "Rule $($r.Name) already exists"
            $existing += $r.Name
            continue
        }}
        $null = New-NetFirewallRule -Name $r.Name -DisplayName $r.DisplayName -Group {ps_quote(group)} `
            -Enabled True -Direction Inbound -Protocol $r.Protocol -LocalPort $r.LocalPort -Action Allow
        $verbose += "Created rule $($r.Name)"
        $created += [PSCustomObject]@{{
            DisplayName = $r.DisplayName
            Name        = $r.Name
            Protocol    = $r.Protocol
            LocalPort   = [string]$r.LocalPort
            Program     = 'Any'
        }}
    }}
    $output = [PSCustomObject]@{{ Created = @($created); Existing = @($existing) }}
"""
    return _wrap(body)


def remove_rules_script(names: list[str]) -> str:
    """Remove rules by internal name, reporting per-name outcome."""
    body = f"""
    $names = ConvertFrom-Json {_json_here_string(list(names))}
    $output = @(foreach ($name in @($names)) {{
        try {{
            Remove-NetFirewallRule -Name $name -ErrorAction Stop
            $verbose += "Removed rule $name"
            [PSCustomObject]@{{ Name = $name; Removed = $true; Error = $null }}
        }} catch {{
            [PSCustomObject]@{{ Name = $name; Removed = $false; Error = $_.Exception.Message }}
        }}
    }})
"""
    return _wrap(body)
