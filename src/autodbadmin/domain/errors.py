"""
Error taxonomy.

Zero results is not an error and has no exception here.
"""


class AdminError(Exception):
    """Base class for all AutoDBAdmin errors."""


class ConfigError(AdminError):
    """Configuration file missing, unreadable or invalid."""


class CapabilityMissingError(AdminError):
    """The target lacks the platform capability an operation needs."""

    def __init__(self, target: str, capability: str, message: str | None = None):
        self.target = target
        self.capability = capability
        super().__init__(
            message or f"{capability} is not available on {target}"
        )


class TargetUnreachableError(AdminError):
    """Transport or connectivity failure while reaching a target."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to reach {target}: {reason}")


class DatabaseNotFoundError(AdminError):
    """A named database does not exist on the target."""

    def __init__(self, target: str, database: str):
        self.target = target
        self.database = database
        super().__init__(f"Database [{database}] not found on {target}")


class DatabaseOperationError(AdminError):
    """The database engine rejected a mutation."""

    def __init__(self, database: str, operation: str, reason: str):
        self.database = database
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed on [{database}]: {reason}")
