"""
Configuration loader module.

Handles loading and validation of JSON configuration files:
- settings.json: timeouts, WinRM and SQL settings (optional)
- targets.json: SQL Server targets for batch runs (optional)
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import List

from pydantic import ValidationError

from autodbadmin.domain.errors import ConfigError
from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import Credential, TargetReference


logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "AUTODBADMIN_CONFIG_DIR"
DEFAULT_CONFIG_DIR = "config"


def resolve_config_dir(config_dir: str | Path | None = None) -> Path:
    """
    Pick the configuration directory.

    Order: explicit argument, AUTODBADMIN_CONFIG_DIR, ./config. A relative
    default is anchored next to the executable when frozen.
    """
    if config_dir:
        return Path(config_dir)
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent / DEFAULT_CONFIG_DIR
    return Path(DEFAULT_CONFIG_DIR)


class ConfigLoader:
    """
    Load and validate configuration files.

    Both files are optional; a missing file yields defaults / no targets.
    """

    def __init__(self, config_dir: str | Path | None = None):
        self.config_dir = resolve_config_dir(config_dir)
        logger.debug("ConfigLoader initialized with directory: %s", self.config_dir)

    def _load_json_file(self, filepath: Path, required: bool = False) -> dict | list | None:
        """
        Load and parse a JSON file.

        Raises:
            ConfigError: Required file missing, unreadable, empty or malformed
        """
        if not filepath.exists():
            if required:
                raise ConfigError(f"Configuration file not found: {filepath}")
            logger.debug("Optional config not found: %s", filepath)
            return None

        try:
            content = filepath.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config file {filepath}: {e}") from e

        if not content.strip():
            raise ConfigError(f"Configuration file is empty: {filepath}")

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in config file: {filepath}\n"
                f"Error at line {e.lineno}, column {e.colno}: {e.msg}"
            ) from e

    def load_settings(self, filename: str = "settings.json") -> AdminSettings:
        """Load settings.json, falling back to defaults when absent."""
        filepath = self.config_dir / filename
        data = self._load_json_file(filepath)
        if data is None:
            return AdminSettings()
        if not isinstance(data, dict):
            raise ConfigError(f"{filepath} must contain a JSON object")

        try:
            settings = AdminSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings in {filepath}:\n{e}") from e

        logger.info("Loaded settings from %s", filepath)
        return settings

    def load_targets(self, filename: str = "targets.json") -> List[TargetReference]:
        """
        Load enabled targets.

        Accepts either a list of entries or {"targets": [...]}. Each entry
        needs "server"; "instance", "port", "username"/"password" (WinRM) and
        "sql_username"/"sql_password" are optional.
        """
        filepath = self.config_dir / filename
        data = self._load_json_file(filepath)
        if data is None:
            return []

        entries = data.get("targets", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ConfigError(f"{filepath}: 'targets' must be a list")

        targets = []
        for index, item in enumerate(entries):
            if not isinstance(item, dict) or not item.get("server"):
                raise ConfigError(f"{filepath}: entry {index} is missing 'server'")
            if not item.get("enabled", True):
                logger.debug("Skipping disabled target: %s", item["server"])
                continue

            credential = None
            if item.get("username"):
                credential = Credential(item["username"], item.get("password"))
            sql_credential = None
            if item.get("sql_username"):
                sql_credential = Credential(item["sql_username"], item.get("sql_password"))

            port = item.get("port")
            try:
                port = int(port) if port is not None else None
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{filepath}: entry {index} has invalid port {port!r}") from e

            instance = item.get("instance") or None
            if instance and instance.upper() == "MSSQLSERVER":
                instance = None

            target = TargetReference(
                computer_name=item["server"],
                instance_name=instance,
                port=port,
                credential=credential,
                sql_credential=sql_credential,
            )
            targets.append(target)
            logger.debug("Loaded target: %s", target.sql_instance)

        logger.info("Loaded %d targets from %s", len(targets), filepath)
        return targets
