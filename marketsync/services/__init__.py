"""
Ledger services: status derivation, income split, payout balance,
reconciliation and lifecycle commands.
"""
