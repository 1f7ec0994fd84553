"""
Domain layer package.

Request-scoped records and pure selection rules. No I/O.
"""

from autodbadmin.domain.targets import Credential, TargetReference
from autodbadmin.domain.firewall import (
    FirewallRuleType,
    FirewallRule,
    FirewallQueryResult,
    classify_rule,
    select_rules,
)
from autodbadmin.domain.encryption import (
    EncryptionState,
    EncryptionStatus,
    EncryptionChangeResult,
)
from autodbadmin.domain.errors import (
    AdminError,
    ConfigError,
    CapabilityMissingError,
    TargetUnreachableError,
    DatabaseNotFoundError,
    DatabaseOperationError,
)

__all__ = [
    "Credential",
    "TargetReference",
    "FirewallRuleType",
    "FirewallRule",
    "FirewallQueryResult",
    "classify_rule",
    "select_rules",
    "EncryptionState",
    "EncryptionStatus",
    "EncryptionChangeResult",
    "AdminError",
    "ConfigError",
    "CapabilityMissingError",
    "TargetUnreachableError",
    "DatabaseNotFoundError",
    "DatabaseOperationError",
]
