"""
Runtime settings model.

Loaded from settings.json in the config directory; every field has a
default so the file is optional.
"""

import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class Timeouts(BaseModel):
    """Timeouts for remote and database operations."""

    powershell_command_timeout: int = Field(
        default=120,
        description="Timeout in seconds for a remote PowerShell script",
        ge=5,
        le=1800
    )

    connection_timeout: int = Field(
        default=30,
        description="Timeout in seconds for WinRM and ODBC connections",
        ge=1,
        le=300
    )

    decryption_wait_timeout: int = Field(
        default=600,
        description="Seconds to wait for decryption to finish before dropping the key",
        ge=0,
        le=86400
    )

    decryption_poll_interval: float = Field(
        default=2.0,
        description="Seconds between encryption state checks",
        gt=0,
        le=60
    )

    @field_validator('decryption_wait_timeout')
    @classmethod
    def warn_on_short_wait(cls, v: int) -> int:
        if v == 0:
            logger.warning(
                "decryption_wait_timeout is 0 - a database still decrypting will fail "
                "and keep its encryption key"
            )
        return v


class WinRMSettings(BaseModel):
    """PowerShell remoting endpoint settings."""

    port_http: int = Field(default=5985, ge=1, le=65535)
    port_https: int = Field(default=5986, ge=1, le=65535)
    verify_ssl: bool = Field(
        default=True,
        description="Validate HTTPS certificates before falling back to unvalidated HTTPS"
    )
    max_retries_per_combo: int = Field(default=1, ge=1, le=5)


class SqlSettings(BaseModel):
    """SQL connectivity settings."""

    auth: str = Field(default="integrated", description="'integrated' or 'sql'")

    @field_validator('auth')
    @classmethod
    def validate_auth(cls, v: str) -> str:
        value = v.lower()
        if value not in ("integrated", "sql"):
            raise ValueError("auth must be 'integrated' or 'sql'")
        return value


class AdminSettings(BaseModel):
    """All tunables of the toolkit."""

    timeouts: Timeouts = Timeouts()
    winrm: WinRMSettings = WinRMSettings()
    sql: SqlSettings = SqlSettings()
