"""
Application layer package.

Services that orchestrate one operation over a batch of targets or
databases, converting per-item failures into result records.
"""

from autodbadmin.application.firewall_service import FirewallRuleService
from autodbadmin.application.encryption_service import EncryptionService

__all__ = ["FirewallRuleService", "EncryptionService"]
