"""
SQL Server connection and query execution module.

Handles:
- Connection string building
- ODBC driver detection and fallback
- Query and statement execution
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import pyodbc

from autodbadmin.domain.errors import TargetUnreachableError
from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import TargetReference


logger = logging.getLogger(__name__)

PREFERRED_DRIVERS = [
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "ODBC Driver 11 for SQL Server",
]

FALLBACK_DRIVERS = [
    "SQL Server Native Client 11.0",
    "SQL Server Native Client 10.0",
    "SQL Server",
]


def detect_odbc_driver() -> str:
    """
    Detect best available ODBC driver.

    Raises:
        RuntimeError: If no suitable driver found
    """
    drivers = pyodbc.drivers()
    logger.debug("Available ODBC drivers: %s", drivers)

    for driver in PREFERRED_DRIVERS:
        if driver in drivers:
            return driver

    for driver in FALLBACK_DRIVERS:
        if driver in drivers:
            logger.warning("Using fallback ODBC driver: %s", driver)
            return driver

    raise RuntimeError("No SQL Server ODBC driver found. Please install ODBC Driver 17 or 18.")


class SqlConnector:
    """
    SQL Server connection manager.

    Every call opens and closes its own connection; nothing is kept
    between calls.
    """

    def __init__(self, server_instance: str, auth: str = "integrated",
                 username: str | None = None, password: str | None = None,
                 connect_timeout: int = 30, database: str = "master",
                 driver: str | None = None):
        """
        Initialize SQL connector.

        Args:
            server_instance: "SERVER", "SERVER\\INSTANCE" or "SERVER,PORT"
            auth: Authentication mode ('integrated' or 'sql')
            username: SQL username (required if auth='sql')
            password: SQL password (required if auth='sql')
            connect_timeout: Connection timeout in seconds
            database: Initial database
            driver: ODBC driver name; detected when omitted
        """
        self.server_instance = server_instance
        self.auth = auth.lower()
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self.database = database
        self._driver = driver

        logger.debug("SqlConnector initialized for %s (auth=%s, db=%s)",
                     server_instance, self.auth, database)

    @classmethod
    def for_target(cls, target: TargetReference, settings: AdminSettings) -> SqlConnector:
        """Build a connector from a target; SQL credentials switch to SQL auth."""
        credential = target.sql_credential
        auth = "sql" if credential else settings.sql.auth
        return cls(
            server_instance=target.server_instance,
            auth=auth,
            username=credential.username if credential else None,
            password=credential.password if credential else None,
            connect_timeout=settings.timeouts.connection_timeout,
        )

    def for_database(self, database: str) -> SqlConnector:
        """Same server and credentials, different initial database."""
        return SqlConnector(
            server_instance=self.server_instance,
            auth=self.auth,
            username=self.username,
            password=self.password,
            connect_timeout=self.connect_timeout,
            database=database,
            driver=self._driver,
        )

    def build_connection_string(self) -> str:
        """Build ODBC connection string."""
        if not self._driver:
            self._driver = detect_odbc_driver()

        database = self.database.replace("}", "}}")
        parts = [
            f"DRIVER={{{self._driver}}}",
            f"SERVER={self.server_instance}",
            f"DATABASE={{{database}}}",
            "Encrypt=no",
            "TrustServerCertificate=yes",
        ]

        if self.auth == "integrated":
            parts.append("Trusted_Connection=yes")
        else:
            if not self.username or not self.password:
                raise ValueError("Username and password required for SQL authentication")
            parts.append(f"UID={self.username}")
            password = self.password.replace("}", "}}")
            parts.append(f"PWD={{{password}}}")

        return ";".join(parts)

    def _connect(self, autocommit: bool = False) -> pyodbc.Connection:
        conn_str = self.build_connection_string()
        try:
            return pyodbc.connect(conn_str, autocommit=autocommit, timeout=self.connect_timeout)
        except pyodbc.Error as e:
            raise TargetUnreachableError(self.server_instance, str(e)) from e

    def execute_query(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Execute SQL query and return results as list of dictionaries.

        Raises:
            TargetUnreachableError: If the connection cannot be opened
            pyodbc.Error: If query execution fails
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, *params)

            columns = [column[0] for column in cursor.description] if cursor.description else []
            rows = cursor.fetchall() if columns else []

            results = []
            for row in rows:
                row_dict = {}
                for i, column in enumerate(columns):
                    value = row[i]
                    if value is None or isinstance(value, (str, int, float, bool)):
                        row_dict[column] = value
                    else:
                        row_dict[column] = str(value)
                results.append(row_dict)

            logger.debug("Query returned %d rows, %d columns", len(results), len(columns))
            return results

    def execute_scalar(self, query: str, params: Sequence[Any] = ()) -> Any:
        """Execute query and return first column of first row."""
        results = self.execute_query(query, params)
        if results:
            first_row = results[0]
            return list(first_row.values())[0] if first_row else None
        return None

    def execute_non_query(self, statement: str, params: Sequence[Any] = ()) -> None:
        """
        Execute a statement in autocommit mode.

        ALTER DATABASE and DROP DATABASE ENCRYPTION KEY refuse to run
        inside a user transaction.
        """
        conn = self._connect(autocommit=True)
        try:
            conn.cursor().execute(statement, *params)
        finally:
            conn.close()
        logger.debug("Executed statement on %s/%s", self.server_instance, self.database)
