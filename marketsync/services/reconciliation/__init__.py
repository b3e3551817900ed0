"""
Reconciliation of ledger transactions with blockchain outcomes.
"""

from .reconciler import BlockchainReconciler
from .types import ReconciliationReport, UnitOutcome

__all__ = ["BlockchainReconciler", "ReconciliationReport", "UnitOutcome"]
