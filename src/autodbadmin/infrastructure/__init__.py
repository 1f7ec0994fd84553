"""
Infrastructure layer package.

Contains all I/O and external system integrations:
- PowerShell remoting (psremote/)
- SQL Server connectivity and database handles
- Configuration file loading
- Logging setup
"""

from autodbadmin.infrastructure.config_loader import ConfigLoader
from autodbadmin.infrastructure.logging_config import setup_logging

__all__ = [
    "ConfigLoader",
    "setup_logging",
]
