"""ScriptExecutor envelope parsing and the PowerShell script builders."""

import json
from unittest.mock import MagicMock

from autodbadmin.infrastructure.psremote import scripts
from autodbadmin.infrastructure.psremote.client import PSRemoteResult
from autodbadmin.infrastructure.psremote.executor import ScriptExecutor


def _executor(result: PSRemoteResult) -> ScriptExecutor:
    client = MagicMock()
    client.run_ps.return_value = result
    return ScriptExecutor(client)


def _envelope(**fields):
    body = {"Successful": True, "CapabilityMissing": False, "Verbose": [], "Output": None}
    body.update(fields)
    return json.dumps(body)


def test_successful_envelope_is_unpacked():
    stdout = "WARNING: noise\n" + _envelope(
        Output=[{"Name": "SQL Server Browser"}], Verbose=["Found 1 rules"]
    )
    result = _executor(
        PSRemoteResult(success=True, stdout=stdout, return_code=0, transport_used="https")
    ).get_firewall_rules()

    assert result.success
    assert result.data == [{"Name": "SQL Server Browser"}]
    assert result.verbose == ["Found 1 rules"]
    assert result.script_name == "Get-FirewallRules"


def test_capability_missing_is_flagged():
    stdout = _envelope(Successful=False, CapabilityMissing=True, Output="NetSecurity is missing")
    result = _executor(
        PSRemoteResult(success=True, stdout=stdout, transport_used="https")
    ).get_firewall_rules()

    assert not result.success
    assert result.capability_missing
    assert result.reached
    assert result.error == "NetSecurity is missing"


def test_transport_failure_is_unreached():
    result = _executor(
        PSRemoteResult(success=False, error="Failed to establish a PowerShell remoting connection")
    ).get_firewall_rules()

    assert not result.success
    assert not result.reached
    assert "remoting" in result.error


def test_script_crash_without_output_is_reached_failure():
    result = _executor(
        PSRemoteResult(success=False, stderr="ParserError", return_code=1, transport_used="http")
    ).get_firewall_rules()

    assert not result.success
    assert result.reached
    assert result.error == "ParserError"


def test_malformed_json_is_an_error():
    result = _executor(
        PSRemoteResult(success=True, stdout="{not json}", transport_used="https")
    ).get_firewall_rules()

    assert not result.success
    assert "JSON parse error" in result.error


def test_single_verbose_string_becomes_list():
    stdout = _envelope(Verbose="only note", Output=[])
    result = _executor(PSRemoteResult(success=True, stdout=stdout, transport_used="local")).get_firewall_rules()
    assert result.verbose == ["only note"]


def test_ps_quote_escapes_single_quotes():
    assert scripts.ps_quote("O'Brien") == "'O''Brien'"


def test_scripts_check_capability_and_print_envelope():
    for script in (
        scripts.get_rules_script(),
        scripts.new_rules_script([{"Name": "SQL Server Browser"}]),
        scripts.remove_rules_script(["SQL Server Browser"]),
    ):
        assert "Get-Command -Name Get-NetFirewallRule" in script
        assert "ConvertTo-Json" in script
        assert "CapabilityMissing" in script


def test_new_rules_script_embeds_rule_specs_and_group():
    spec = {"Name": "SQL Server instance SALES", "Protocol": "TCP", "LocalPort": "50001"}
    script = scripts.new_rules_script([spec])
    assert json.dumps([spec]) in script
    assert "-Group 'SQL Server'" in script
