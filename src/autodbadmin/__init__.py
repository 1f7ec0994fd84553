"""
AutoDBAdmin - SQL Server administration helpers.

Queries and manages the Windows firewall rules of SQL Server instances and
turns Transparent Data Encryption off on databases.

Usage:
    # CLI
    autodbadmin firewall get SQL01\\SALES
    autodbadmin encryption disable SQL01 --database Sales

    # Programmatic
    from autodbadmin.application import FirewallRuleService
    from autodbadmin.domain import TargetReference

    results = FirewallRuleService().get_rules([TargetReference.parse("SQL01")])
"""

__version__ = "0.1.0"
__author__ = "AutoDBAdmin Team"

__all__ = ["__version__"]
