"""
Target references.

A target is a computer plus an optional SQL Server instance, optionally with
alternate credentials. Targets are built per call and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace


DEFAULT_INSTANCE = "MSSQLSERVER"
DEFAULT_PORT = 1433

LOCALHOST_NAMES = {".", "localhost", "(local)", "127.0.0.1", "::1"}


@dataclass(frozen=True)
class Credential:
    """Alternate username/password pair."""

    username: str
    password: str | None = None

    def __repr__(self) -> str:
        # Never leak the password through logs or tracebacks
        return f"Credential(username={self.username!r}, password=***)"


@dataclass(frozen=True)
class TargetReference:
    """
    Computer + optional instance name.

    `credential` is used for the remote-execution (WinRM) channel,
    `sql_credential` for SQL authentication. Both are optional; without
    them the current Windows identity is used.
    """

    computer_name: str
    instance_name: str | None = None
    port: int | None = None
    credential: Credential | None = field(default=None, compare=False)
    sql_credential: Credential | None = field(default=None, compare=False)

    @classmethod
    def parse(
        cls,
        text: str,
        credential: Credential | None = None,
        sql_credential: Credential | None = None,
    ) -> TargetReference:
        """
        Parse `HOST`, `HOST\\INSTANCE`, `HOST,PORT` or `HOST\\INSTANCE,PORT`.

        Raises:
            ValueError: If the text is empty or the port is not numeric
        """
        value = (text or "").strip()
        if not value:
            raise ValueError("Target name cannot be empty")

        port = None
        if "," in value:
            value, port_text = value.rsplit(",", 1)
            try:
                port = int(port_text.strip())
            except ValueError as e:
                raise ValueError(f"Invalid port in target '{text}': {port_text!r}") from e

        instance = None
        if "\\" in value:
            value, instance = value.split("\\", 1)
            instance = instance.strip() or None

        computer = value.strip()
        if not computer:
            raise ValueError(f"Missing computer name in target '{text}'")

        if instance and instance.upper() == DEFAULT_INSTANCE:
            instance = None

        return cls(
            computer_name=computer,
            instance_name=instance,
            port=port,
            credential=credential,
            sql_credential=sql_credential,
        )

    @property
    def is_default_instance(self) -> bool:
        return self.instance_name is None

    @property
    def effective_instance(self) -> str:
        """Instance name with the default instance spelled MSSQLSERVER."""
        return self.instance_name or DEFAULT_INSTANCE

    @property
    def is_localhost(self) -> bool:
        return self.computer_name.lower() in LOCALHOST_NAMES

    @property
    def sql_instance(self) -> str:
        """Display name: HOST or HOST\\INSTANCE."""
        if self.instance_name:
            return f"{self.computer_name}\\{self.instance_name}"
        return self.computer_name

    @property
    def server_instance(self) -> str:
        """Server string for ODBC connections. An explicit port wins."""
        if self.port:
            return f"{self.computer_name},{self.port}"
        return self.sql_instance

    def with_credentials(
        self,
        credential: Credential | None = None,
        sql_credential: Credential | None = None,
    ) -> TargetReference:
        """Copy of this target with credentials filled in where missing."""
        return replace(
            self,
            credential=self.credential or credential,
            sql_credential=self.sql_credential or sql_credential,
        )

    def __str__(self) -> str:
        return self.server_instance
