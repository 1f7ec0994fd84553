"""Rule classification and default selection policy."""

import pytest

from autodbadmin.domain.firewall import (
    FirewallRuleType,
    build_rule,
    classify_rule,
    rule_name_for,
    select_rules,
)
from autodbadmin.domain.targets import TargetReference

from conftest import rule_payload


@pytest.mark.parametrize(
    "name, expected",
    [
        ("SQL Server default instance", (FirewallRuleType.ENGINE, "MSSQLSERVER")),
        ("SQL Server instance SALES", (FirewallRuleType.ENGINE, "SALES")),
        ("SQL Server Browser", (FirewallRuleType.BROWSER, None)),
        ("Something else", (None, None)),
    ],
)
def test_classify_rule(name, expected):
    assert classify_rule(name) == expected


def test_build_rule_derives_instance_fields():
    rule = build_rule("SQL01", rule_payload("SQL Server instance SALES", port="14330"))
    assert rule.type == FirewallRuleType.ENGINE
    assert rule.instance_name == "SALES"
    assert rule.sql_instance == "SQL01\\SALES"
    assert rule.local_port == "14330"

    browser = build_rule("SQL01", rule_payload("SQL Server Browser", port="1434", protocol="UDP"))
    assert browser.sql_instance is None
    assert browser.to_record()["type"] == "Browser"


def test_build_rule_flattens_port_arrays():
    rule = build_rule("SQL01", rule_payload("SQL Server default instance", port=["1433", "1434"]))
    assert rule.local_port == "1433,1434"


def _rules(engine_port="1433"):
    return [
        build_rule("SQL01", rule_payload("SQL Server default instance", port=engine_port)),
        build_rule("SQL01", rule_payload("SQL Server instance SALES", port="50001")),
        build_rule("SQL01", rule_payload("SQL Server Browser", port="1434", protocol="UDP")),
        build_rule("SQL01", rule_payload("Custom", port="8080")),
    ]


def test_default_port_engine_excludes_browser():
    selected = select_rules(_rules("1433"), "MSSQLSERVER")
    assert [r.name for r in selected] == ["SQL Server default instance"]


def test_non_default_port_engine_includes_browser():
    selected = select_rules(_rules("14330"), "MSSQLSERVER")
    assert [r.name for r in selected] == ["SQL Server default instance", "SQL Server Browser"]


def test_named_instance_selection_is_case_insensitive():
    selected = select_rules(_rules(), "sales")
    assert [r.name for r in selected] == ["SQL Server instance SALES", "SQL Server Browser"]


def test_missing_engine_rule_still_returns_browser():
    selected = select_rules(_rules(), "OTHER")
    assert [r.name for r in selected] == ["SQL Server Browser"]


def test_all_instance_returns_everything():
    rules = _rules()
    assert select_rules(rules, "MSSQLSERVER", [FirewallRuleType.ALL_INSTANCE]) == rules


def test_explicit_types_filter_by_type():
    selected = select_rules(_rules(), "MSSQLSERVER", [FirewallRuleType.BROWSER])
    assert [r.name for r in selected] == ["SQL Server Browser"]

    engines = select_rules(_rules(), "MSSQLSERVER", [FirewallRuleType.ENGINE])
    assert [r.name for r in engines] == ["SQL Server default instance"]


def test_explicit_engine_type_stays_on_requested_instance():
    selected = select_rules(
        _rules(), "SALES", [FirewallRuleType.ENGINE, FirewallRuleType.BROWSER]
    )
    assert [r.name for r in selected] == ["SQL Server instance SALES", "SQL Server Browser"]

    assert select_rules(_rules(), "OTHER", [FirewallRuleType.ENGINE]) == []


def test_no_rules_selects_nothing():
    assert select_rules([], "MSSQLSERVER") == []


def test_rule_type_parse():
    assert FirewallRuleType.parse("allinstance") == FirewallRuleType.ALL_INSTANCE
    with pytest.raises(ValueError):
        FirewallRuleType.parse("DAC")


def test_rule_name_for_target():
    assert rule_name_for(TargetReference.parse("SQL01")) == "SQL Server default instance"
    assert rule_name_for(TargetReference.parse("SQL01\\SALES")) == "SQL Server instance SALES"
