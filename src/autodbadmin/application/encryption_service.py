"""
Encryption Service.

Turns Transparent Data Encryption off for databases and, unless asked to
keep it, drops the database encryption key once decryption has finished.

Databases come either as pre-fetched DatabaseHandles or are resolved from
targets + database names. Every database gets its own result; a failure on
one never stops the rest.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, List

import pyodbc

from autodbadmin.domain.encryption import (
    EncryptionChangeResult,
    EncryptionState,
    EncryptionStatus,
)
from autodbadmin.domain.errors import AdminError, DatabaseOperationError
from autodbadmin.domain.settings import AdminSettings
from autodbadmin.domain.targets import TargetReference
from autodbadmin.infrastructure.database_objects import DatabaseHandle, list_databases
from autodbadmin.infrastructure.sql_server import SqlConnector

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[TargetReference, AdminSettings], SqlConnector]
ConfirmCallback = Callable[[str, str], bool]


class EncryptionService:
    """TDE operations on SQL Server databases."""

    def __init__(
        self,
        settings: AdminSettings | None = None,
        connector_factory: ConnectorFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or AdminSettings()
        self._connector_factory = connector_factory or SqlConnector.for_target
        self._sleep = sleep

    def resolve(
        self, target: TargetReference, database_names: Iterable[str] | None = None
    ) -> List[DatabaseHandle]:
        """Database handles for a target; all user databases without names."""
        connector = self._connector_factory(target, self.settings)
        try:
            return list_databases(connector, database_names, sql_instance=target.sql_instance)
        except pyodbc.Error as e:
            raise AdminError(f"Failed to list databases on {target.sql_instance}: {e}") from e

    def disable(
        self,
        databases: Iterable[DatabaseHandle] | None = None,
        targets: Iterable[TargetReference] | None = None,
        database_names: Iterable[str] | None = None,
        keep_key: bool = False,
        confirm: ConfirmCallback | None = None,
        what_if: bool = False,
    ) -> List[EncryptionChangeResult]:
        """
        Disable encryption on every database given or resolved.

        Args:
            databases: Pre-fetched handles
            targets: Targets to resolve `database_names` on
            database_names: Databases to resolve on each target
            keep_key: Leave the database encryption key in place
            confirm: Called as confirm(sql_instance, action); False skips
            what_if: Report what would change without changing anything

        Raises:
            ValueError: Neither databases nor targets were given, or targets
                were given without database names
        """
        handles = list(databases or [])
        targets = list(targets or [])
        names = list(database_names or [])

        if not handles and not targets:
            raise ValueError("Specify databases, or targets with database names")
        if targets and not names:
            raise ValueError("Database names are required when disabling encryption by target")

        results: List[EncryptionChangeResult] = []
        queue: list[DatabaseHandle] = list(handles)

        for target in targets:
            for name in names:
                try:
                    queue.extend(self.resolve(target, [name]))
                except AdminError as e:
                    logger.error("%s", e)
                    results.append(
                        EncryptionChangeResult(
                            sql_instance=target.sql_instance,
                            database_name=name,
                            status="Failed",
                            error=str(e),
                        )
                    )

        for db in queue:
            results.append(self._disable_one(db, keep_key, confirm, what_if))

        return results

    def _disable_one(
        self,
        db: DatabaseHandle,
        keep_key: bool,
        confirm: ConfirmCallback | None,
        what_if: bool,
    ) -> EncryptionChangeResult:
        action = f"Disabling encryption on {db.name}"
        if not keep_key:
            action += " and removing its encryption key"

        if what_if:
            logger.info("What if: %s on %s", action, db.sql_instance)
            return EncryptionChangeResult(
                sql_instance=db.sql_instance, database_name=db.name, status="Skipped"
            )

        if confirm is not None and not confirm(db.sql_instance, action):
            logger.info("Skipped %s on %s", db.name, db.sql_instance)
            return EncryptionChangeResult(
                sql_instance=db.sql_instance, database_name=db.name, status="Skipped"
            )

        enabled = None
        try:
            if db.encryption_enabled:
                db.encryption_enabled = False
                db.alter()
                logger.info("Encryption disabled on %s/%s", db.sql_instance, db.name)
            else:
                logger.debug("%s/%s is not encrypted", db.sql_instance, db.name)
            enabled = db.encryption_enabled

            key_removed = False
            if not keep_key and db.encryption_key is not None:
                self._wait_for_decryption(db)
                db.drop_encryption_key()
                key_removed = True
                logger.info("Encryption key removed from %s/%s", db.sql_instance, db.name)

            return EncryptionChangeResult(
                sql_instance=db.sql_instance,
                database_name=db.name,
                encryption_enabled=db.encryption_enabled,
                key_removed=key_removed,
            )

        except AdminError as e:
            logger.error("Failure on %s/%s: %s", db.sql_instance, db.name, e)
            error = str(e)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception("Unexpected failure on %s/%s", db.sql_instance, db.name)
            error = f"{type(e).__name__}: {e}"

        return EncryptionChangeResult(
            sql_instance=db.sql_instance,
            database_name=db.name,
            encryption_enabled=enabled,
            status="Failed",
            error=error,
        )

    def _wait_for_decryption(self, db: DatabaseHandle) -> None:
        """The key can only be dropped once the database is fully decrypted."""
        timeouts = self.settings.timeouts
        reached = db.wait_for_key_state(
            [EncryptionState.UNENCRYPTED, EncryptionState.NO_KEY],
            timeout=timeouts.decryption_wait_timeout,
            poll_interval=timeouts.decryption_poll_interval,
            sleep=self._sleep,
        )
        if not reached:
            state = db.encryption_key.state.description if db.encryption_key else "unknown"
            raise DatabaseOperationError(
                db.name,
                "DROP DATABASE ENCRYPTION KEY",
                f"decryption did not finish within {timeouts.decryption_wait_timeout}s "
                f"(state: {state})",
            )

    def get_status(
        self, target: TargetReference, database_names: Iterable[str] | None = None
    ) -> List[EncryptionStatus]:
        """TDE status of a target's databases."""
        statuses = []
        for db in self.resolve(target, database_names):
            key = db.refresh().encryption_key
            statuses.append(
                EncryptionStatus(
                    sql_instance=db.sql_instance,
                    database_name=db.name,
                    encryption_enabled=db.encryption_enabled,
                    key_state=key.state.description if key else None,
                    key_algorithm=key.algorithm if key else None,
                    key_length=key.key_length if key else None,
                    encryptor_type=key.encryptor_type if key else None,
                    percent_complete=key.percent_complete if key else None,
                )
            )
        logger.debug("Collected encryption status of %d databases on %s",
                     len(statuses), target.sql_instance)
        return statuses
