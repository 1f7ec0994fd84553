"""
AutoDBAdmin - SQL Server administration helpers.

Run from a source checkout: python src/main.py firewall get SQL01
"""

import sys
from autodbadmin.interface.cli import main


if __name__ == "__main__":
    sys.exit(main())
