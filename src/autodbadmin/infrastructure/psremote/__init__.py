"""
PSRemote Infrastructure Package.

PowerShell remoting using pywinrm, with a local PowerShell bypass for
localhost targets.
"""

from autodbadmin.infrastructure.psremote.client import (
    PSRemoteClient,
    PSRemoteResult,
    ConnectionConfig,
)
from autodbadmin.infrastructure.psremote.executor import (
    ScriptExecutor,
    ExecutionResult,
)

__all__ = [
    "PSRemoteClient",
    "PSRemoteResult",
    "ConnectionConfig",
    "ScriptExecutor",
    "ExecutionResult",
]
