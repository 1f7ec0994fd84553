"""
Transparent Data Encryption records.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional

# pyright: reportMissingImports=false
# pylint: disable=no-name-in-module
from pydantic import BaseModel, Field


class EncryptionState(IntEnum):
    """sys.dm_database_encryption_keys.encryption_state values."""

    NO_KEY = 0
    UNENCRYPTED = 1
    ENCRYPTION_IN_PROGRESS = 2
    ENCRYPTED = 3
    KEY_CHANGE_IN_PROGRESS = 4
    DECRYPTION_IN_PROGRESS = 5
    PROTECTION_CHANGE_IN_PROGRESS = 6

    @property
    def description(self) -> str:
        return _STATE_DESCRIPTIONS[self]


_STATE_DESCRIPTIONS = {
    EncryptionState.NO_KEY: "No encryption key",
    EncryptionState.UNENCRYPTED: "Unencrypted",
    EncryptionState.ENCRYPTION_IN_PROGRESS: "Encryption in progress",
    EncryptionState.ENCRYPTED: "Encrypted",
    EncryptionState.KEY_CHANGE_IN_PROGRESS: "Key change in progress",
    EncryptionState.DECRYPTION_IN_PROGRESS: "Decryption in progress",
    EncryptionState.PROTECTION_CHANGE_IN_PROGRESS: "Protection change in progress",
}


class EncryptionKeyInfo(BaseModel):
    """The database encryption key as reported by the engine."""

    state: EncryptionState = Field(EncryptionState.NO_KEY)
    algorithm: Optional[str] = None
    key_length: Optional[int] = None
    encryptor_type: Optional[str] = None
    percent_complete: Optional[float] = None


class EncryptionStatus(BaseModel):
    """TDE status of one database."""

    sql_instance: str
    database_name: str
    encryption_enabled: bool = False
    key_state: Optional[str] = None
    key_algorithm: Optional[str] = None
    key_length: Optional[int] = None
    encryptor_type: Optional[str] = None
    percent_complete: Optional[float] = None

    def to_record(self) -> dict[str, Any]:
        return self.model_dump()


class EncryptionChangeResult(BaseModel):
    """Outcome of an encryption change on one database."""

    sql_instance: str
    database_name: Optional[str] = None
    encryption_enabled: Optional[bool] = None
    key_removed: bool = False
    status: str = Field("Success", description="Success / Failed / Skipped")
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "Failed"

    def to_record(self) -> dict[str, Any]:
        return self.model_dump()
