"""
Ledger persistence.
"""

from .base import LedgerRepository, LedgerUnitOfWork
from .sql import SqlLedgerRepository, SqlLedgerUnitOfWork

__all__ = [
    "LedgerRepository",
    "LedgerUnitOfWork",
    "SqlLedgerRepository",
    "SqlLedgerUnitOfWork",
]
