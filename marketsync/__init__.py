"""
Marketplace chain reconciler.

Derives the ledger state of a crypto marketplace from the blockchain:
- Status derivation for seller marketplaces, product orders and payouts
- Reconciliation passes against a blockchain data provider
- Commission-aware income split recorded as product sales
- Withdrawable seller balances and payout requests
"""

__version__ = "0.1.0"
