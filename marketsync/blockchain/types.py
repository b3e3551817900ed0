"""
Types returned by blockchain data and contract clients.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class BlockchainTransaction:
    """Outcome of one transaction as reported by a blockchain data provider."""
    hash: str
    sender_address: str
    amount_paid: Decimal
    error: Optional[str]
    success: bool
    token_address: Optional[str]  # None for the native coin
    timestamp: datetime
    gas: int
    gas_value: Decimal


@dataclass(frozen=True)
class OnChainOrder:
    """An order as stored by a seller marketplace contract."""
    buyer_address: str
    price: int  # token base units
    payment_contract: str  # zero address for the native coin
