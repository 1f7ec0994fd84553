"""Target parsing and display names."""

import pytest

from autodbadmin.domain.targets import Credential, TargetReference


def test_parse_plain_host_is_default_instance():
    target = TargetReference.parse("SQL01")
    assert target.computer_name == "SQL01"
    assert target.instance_name is None
    assert target.is_default_instance
    assert target.effective_instance == "MSSQLSERVER"
    assert target.sql_instance == "SQL01"


def test_parse_named_instance_and_port():
    target = TargetReference.parse("SQL01\\SALES,14330")
    assert target.instance_name == "SALES"
    assert target.port == 14330
    assert target.sql_instance == "SQL01\\SALES"
    assert target.server_instance == "SQL01,14330"


def test_mssqlserver_instance_name_means_default():
    target = TargetReference.parse("SQL01\\mssqlserver")
    assert target.is_default_instance
    assert target.sql_instance == "SQL01"


@pytest.mark.parametrize("text", ["", "   ", "\\SALES", "SQL01,abc"])
def test_parse_rejects_bad_input(text):
    with pytest.raises(ValueError):
        TargetReference.parse(text)


def test_localhost_detection():
    assert TargetReference.parse(".").is_localhost
    assert TargetReference.parse("localhost\\DEV").is_localhost
    assert not TargetReference.parse("SQL01").is_localhost


def test_with_credentials_keeps_explicit_ones():
    own = Credential("DOMAIN\\own", "x")
    target = TargetReference.parse("SQL01", credential=own)
    updated = target.with_credentials(Credential("DOMAIN\\other", "y"), Credential("sa", "z"))
    assert updated.credential is own
    assert updated.sql_credential.username == "sa"


def test_credential_repr_hides_password():
    assert "secret" not in repr(Credential("sa", "secret"))
