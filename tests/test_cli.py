"""Command line wiring with the services mocked out."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from autodbadmin.domain.encryption import EncryptionChangeResult, EncryptionStatus
from autodbadmin.domain.firewall import FirewallQueryResult, FirewallRuleType, build_rule
from autodbadmin.interface.cli import app

from conftest import rule_payload

runner = CliRunner()


@pytest.fixture
def base_args(tmp_path):
    return ["--config-dir", str(tmp_path)]


def _rules_result():
    return FirewallQueryResult(
        target="SQL01",
        computer_name="SQL01",
        rules=[build_rule("SQL01", rule_payload("SQL Server default instance"))],
    )


def test_firewall_get_json(base_args):
    with patch("autodbadmin.interface.cli.FirewallRuleService") as service_cls:
        service_cls.return_value.get_rules.return_value = [_rules_result()]

        result = runner.invoke(
            app, base_args + ["firewall", "get", "SQL01", "--type", "engine", "--format", "json"]
        )

    assert result.exit_code == 0, result.output
    records = json.loads(result.stdout)
    assert records[0]["Name"] == "SQL Server default instance"
    assert records[0]["Type"] == "Engine"
    assert records[0]["InstanceName"] == "MSSQLSERVER"

    targets, types = service_cls.return_value.get_rules.call_args.args
    assert [t.computer_name for t in targets] == ["SQL01"]
    assert types == [FirewallRuleType.ENGINE]


def test_firewall_get_failed_target_sets_exit_code(base_args):
    failed = FirewallQueryResult(
        target="DOWN01", computer_name="DOWN01", successful=False, error="Failed to reach DOWN01"
    )
    with patch("autodbadmin.interface.cli.FirewallRuleService") as service_cls:
        service_cls.return_value.get_rules.return_value = [_rules_result(), failed]

        result = runner.invoke(app, base_args + ["firewall", "get", "SQL01", "DOWN01"])

    assert result.exit_code == 1
    assert "Failed to reach DOWN01" in result.output


def test_invalid_type_is_rejected(base_args):
    result = runner.invoke(app, base_args + ["firewall", "get", "SQL01", "--type", "Nope"])
    assert result.exit_code != 0


def test_missing_target_is_rejected(base_args):
    result = runner.invoke(app, base_args + ["firewall", "get"])
    assert result.exit_code != 0


def test_firewall_get_from_config(base_args, tmp_path):
    (tmp_path / "targets.json").write_text(
        json.dumps([{"server": "SQL07", "instance": "DEV"}]), encoding="utf-8"
    )
    with patch("autodbadmin.interface.cli.FirewallRuleService") as service_cls:
        service_cls.return_value.get_rules.return_value = []

        result = runner.invoke(app, base_args + ["firewall", "get", "--from-config"])

    assert result.exit_code == 0, result.output
    targets, _ = service_cls.return_value.get_rules.call_args.args
    assert [t.sql_instance for t in targets] == ["SQL07\\DEV"]


def test_firewall_new_passes_port(base_args):
    with patch("autodbadmin.interface.cli.FirewallRuleService") as service_cls:
        service_cls.return_value.new_rules.return_value = [_rules_result()]

        result = runner.invoke(app, base_args + ["firewall", "new", "SQL01\\SALES", "--port", "50001"])

    assert result.exit_code == 0, result.output
    assert service_cls.return_value.new_rules.call_args.kwargs["port"] == 50001


def test_firewall_remove_with_yes_confirms_automatically(base_args):
    with patch("autodbadmin.interface.cli.FirewallRuleService") as service_cls:
        service_cls.return_value.remove_rules.return_value = []

        result = runner.invoke(app, base_args + ["firewall", "remove", "SQL01", "--yes"])

    assert result.exit_code == 0, result.output
    confirm = service_cls.return_value.remove_rules.call_args.kwargs["confirm"]
    assert confirm("SQL01", "Removing firewall rules") is True


def test_encryption_disable_options(base_args):
    outcome = EncryptionChangeResult(
        sql_instance="SQL01", database_name="Sales", encryption_enabled=False, key_removed=False
    )
    with patch("autodbadmin.interface.cli.EncryptionService") as service_cls:
        service_cls.return_value.disable.return_value = [outcome]

        result = runner.invoke(
            app,
            base_args
            + ["encryption", "disable", "SQL01", "-d", "Sales", "--keep-key", "--yes", "--format", "json"],
        )

    assert result.exit_code == 0, result.output
    kwargs = service_cls.return_value.disable.call_args.kwargs
    assert kwargs["database_names"] == ["Sales"]
    assert kwargs["keep_key"] is True
    assert kwargs["what_if"] is False
    records = json.loads(result.stdout)
    assert records[0]["DatabaseName"] == "Sales"
    assert records[0]["KeyRemoved"] is False


def test_encryption_disable_failure_exit_code(base_args):
    failed = EncryptionChangeResult(
        sql_instance="SQL01", database_name="Sales", status="Failed", error="permission denied"
    )
    with patch("autodbadmin.interface.cli.EncryptionService") as service_cls:
        service_cls.return_value.disable.return_value = [failed]

        result = runner.invoke(app, base_args + ["encryption", "disable", "SQL01", "-d", "Sales", "--yes"])

    assert result.exit_code == 1
    assert "permission denied" in result.output


def test_encryption_disable_requires_database(base_args):
    result = runner.invoke(app, base_args + ["encryption", "disable", "SQL01"])
    assert result.exit_code != 0


def test_encryption_status_json(base_args):
    status = EncryptionStatus(
        sql_instance="SQL01", database_name="Sales", encryption_enabled=True, key_state="Encrypted"
    )
    with patch("autodbadmin.interface.cli.EncryptionService") as service_cls:
        service_cls.return_value.get_status.return_value = [status]

        result = runner.invoke(app, base_args + ["encryption", "status", "SQL01", "--format", "json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)[0]["KeyState"] == "Encrypted"


def test_invalid_settings_exit_early(base_args, tmp_path):
    (tmp_path / "settings.json").write_text("{broken", encoding="utf-8")

    result = runner.invoke(app, base_args + ["firewall", "get", "SQL01"])

    assert result.exit_code == 2
