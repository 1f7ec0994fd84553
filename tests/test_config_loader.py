"""settings.json / targets.json loading."""

import json

import pytest

from autodbadmin.domain.errors import ConfigError
from autodbadmin.infrastructure.config_loader import CONFIG_DIR_ENV, ConfigLoader, resolve_config_dir


def test_missing_files_give_defaults(tmp_path):
    loader = ConfigLoader(tmp_path)

    settings = loader.load_settings()

    assert settings.timeouts.powershell_command_timeout == 120
    assert settings.winrm.port_https == 5986
    assert loader.load_targets() == []


def test_settings_are_validated(tmp_path):
    (tmp_path / "settings.json").write_text(
        json.dumps({"timeouts": {"decryption_wait_timeout": 30}, "sql": {"auth": "SQL"}}),
        encoding="utf-8",
    )

    settings = ConfigLoader(tmp_path).load_settings()

    assert settings.timeouts.decryption_wait_timeout == 30
    assert settings.sql.auth == "sql"


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "   ",
        json.dumps({"sql": {"auth": "kerberos"}}),
        json.dumps({"timeouts": {"connection_timeout": 0}}),
    ],
)
def test_bad_settings_raise_config_error(tmp_path, content):
    (tmp_path / "settings.json").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        ConfigLoader(tmp_path).load_settings()


def test_targets_load_enabled_entries_with_credentials(tmp_path):
    (tmp_path / "targets.json").write_text(
        json.dumps(
            {
                "targets": [
                    {"server": "SQL01", "instance": "SALES", "port": 50001,
                     "username": "DOMAIN\\admin", "password": "pw"},
                    {"server": "SQL02", "instance": "MSSQLSERVER", "sql_username": "sa",
                     "sql_password": "x"},
                    {"server": "SQL03", "enabled": False},
                ]
            }
        ),
        encoding="utf-8",
    )

    first, second = ConfigLoader(tmp_path).load_targets()

    assert first.sql_instance == "SQL01\\SALES"
    assert first.port == 50001
    assert first.credential.username == "DOMAIN\\admin"
    assert second.is_default_instance
    assert second.sql_credential.username == "sa"


def test_target_without_server_is_rejected(tmp_path):
    (tmp_path / "targets.json").write_text(json.dumps([{"instance": "X"}]), encoding="utf-8")

    with pytest.raises(ConfigError):
        ConfigLoader(tmp_path).load_targets()


def test_config_dir_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path))
    assert resolve_config_dir() == tmp_path
    assert resolve_config_dir("elsewhere").name == "elsewhere"


def test_zero_decryption_wait_warns_that_keys_stay(tmp_path, caplog):
    (tmp_path / "settings.json").write_text(
        json.dumps({"timeouts": {"decryption_wait_timeout": 0}}), encoding="utf-8"
    )

    with caplog.at_level("WARNING", logger="autodbadmin.domain.settings"):
        settings = ConfigLoader(tmp_path).load_settings()

    assert settings.timeouts.decryption_wait_timeout == 0
    assert "keep its encryption key" in caplog.text
