"""
Thin database handles over T-SQL.

A DatabaseHandle exposes the few properties the encryption commands touch:
the encryption-enabled flag and the database encryption key. Changes to the
flag are staged and applied by alter().
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, List

import pyodbc

from autodbadmin.domain.encryption import EncryptionKeyInfo, EncryptionState
from autodbadmin.domain.errors import DatabaseNotFoundError, DatabaseOperationError
from autodbadmin.infrastructure.sql_server import SqlConnector

logger = logging.getLogger(__name__)

SYSTEM_DATABASE_MAX_ID = 4

_DATABASE_STATE_QUERY = """
SELECT
    d.name AS DatabaseName,
    CAST(d.is_encrypted AS INT) AS IsEncrypted,
    dek.encryption_state AS EncryptionState,
    dek.key_algorithm AS KeyAlgorithm,
    dek.key_length AS KeyLength,
    dek.encryptor_type AS EncryptorType,
    dek.percent_complete AS PercentComplete
FROM sys.databases d
LEFT JOIN sys.dm_database_encryption_keys dek ON d.database_id = dek.database_id
WHERE d.name = ?
"""

_DATABASE_LIST_QUERY = """
SELECT name AS DatabaseName, database_id AS DatabaseId
FROM sys.databases
ORDER BY name
"""


def quote_name(name: str) -> str:
    """Bracket-quote an identifier."""
    return "[" + name.replace("]", "]]") + "]"


class DatabaseHandle:
    """Handle to one database on a server."""

    def __init__(self, connector: SqlConnector, name: str, sql_instance: str | None = None):
        self.connector = connector
        self.name = name
        self.sql_instance = sql_instance or connector.server_instance
        self._encryption_enabled: bool | None = None
        self._pending_encryption: bool | None = None
        self._key: EncryptionKeyInfo | None = None
        self._loaded = False

    def __repr__(self) -> str:
        return f"DatabaseHandle({self.sql_instance!r}, {self.name!r})"

    def refresh(self) -> DatabaseHandle:
        """Reload state from the server and drop any staged change."""
        try:
            rows = self.connector.execute_query(_DATABASE_STATE_QUERY, (self.name,))
        except pyodbc.Error as e:
            raise DatabaseOperationError(self.name, "Refresh", str(e)) from e

        if not rows:
            raise DatabaseNotFoundError(self.sql_instance, self.name)

        row = rows[0]
        self._encryption_enabled = bool(row.get("IsEncrypted"))
        state = row.get("EncryptionState")
        if state is None:
            self._key = None
        else:
            self._key = EncryptionKeyInfo(
                state=EncryptionState(int(state)),
                algorithm=row.get("KeyAlgorithm"),
                key_length=row.get("KeyLength"),
                encryptor_type=row.get("EncryptorType"),
                percent_complete=row.get("PercentComplete"),
            )
        self._pending_encryption = None
        self._loaded = True
        return self

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.refresh()

    @property
    def encryption_enabled(self) -> bool:
        self._ensure_loaded()
        if self._pending_encryption is not None:
            return self._pending_encryption
        return bool(self._encryption_enabled)

    @encryption_enabled.setter
    def encryption_enabled(self, value: bool) -> None:
        self._ensure_loaded()
        self._pending_encryption = bool(value)

    @property
    def encryption_key(self) -> EncryptionKeyInfo | None:
        """The database encryption key, or None when the database has none."""
        self._ensure_loaded()
        return self._key

    def alter(self) -> None:
        """Apply a staged encryption change."""
        if self._pending_encryption is None:
            return
        mode = "ON" if self._pending_encryption else "OFF"
        statement = f"ALTER DATABASE {quote_name(self.name)} SET ENCRYPTION {mode}"
        logger.debug("%s: %s", self.sql_instance, statement)
        try:
            self.connector.execute_non_query(statement)
        except pyodbc.Error as e:
            raise DatabaseOperationError(self.name, f"SET ENCRYPTION {mode}", str(e)) from e
        self.refresh()

    def drop_encryption_key(self) -> None:
        """Drop the database encryption key (must run inside the database)."""
        logger.debug("%s: dropping encryption key of %s", self.sql_instance, self.name)
        try:
            self.connector.for_database(self.name).execute_non_query(
                "DROP DATABASE ENCRYPTION KEY"
            )
        except pyodbc.Error as e:
            raise DatabaseOperationError(self.name, "DROP DATABASE ENCRYPTION KEY", str(e)) from e
        self.refresh()

    def wait_for_key_state(
        self,
        states: Iterable[EncryptionState],
        timeout: float,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> bool:
        """
        Poll until the key is in one of `states` (or gone).

        Returns:
            True if the state was reached before the timeout
        """
        wanted = set(states)
        deadline = clock() + timeout
        while True:
            self.refresh()
            key = self._key
            if key is None or key.state in wanted:
                return True
            if clock() >= deadline:
                logger.warning(
                    "%s: [%s] still %s after %ss",
                    self.sql_instance, self.name, key.state.description, timeout,
                )
                return False
            logger.debug(
                "%s: [%s] %s (%s%%), waiting",
                self.sql_instance, self.name, key.state.description, key.percent_complete,
            )
            sleep(poll_interval)


def list_databases(
    connector: SqlConnector,
    names: Iterable[str] | None = None,
    sql_instance: str | None = None,
) -> List[DatabaseHandle]:
    """
    Resolve database handles by name.

    Without names, every user database is returned.

    Raises:
        DatabaseNotFoundError: A requested name does not exist
    """
    sql_instance = sql_instance or connector.server_instance
    rows = connector.execute_query(_DATABASE_LIST_QUERY)
    by_name = {row["DatabaseName"].lower(): row for row in rows}

    wanted = list(names or [])
    if not wanted:
        return [
            DatabaseHandle(connector, row["DatabaseName"], sql_instance)
            for row in rows
            if int(row["DatabaseId"]) > SYSTEM_DATABASE_MAX_ID
        ]

    handles = []
    for name in wanted:
        row = by_name.get(name.lower())
        if row is None:
            raise DatabaseNotFoundError(sql_instance, name)
        handles.append(DatabaseHandle(connector, row["DatabaseName"], sql_instance))
    return handles
