"""
Split Ledger - Source Package

A shared-expense ledger: members form groups, log expenses with
per-member splits, record settlement payments and read computed
balances per group and per currency.

DESIGN PRINCIPLES:
1. Money is integer cents inside the core, Decimal at the edges
2. Validate before writing, never after
3. Fail early, fail loudly
4. Every ledger action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Ledger Team"

from splitledger.config.logging import configure_logging
from splitledger.config.settings import LedgerSettings

configure_logging(debug=LedgerSettings().debug_mode)
