"""
Withdrawable seller balance per (seller marketplace, token) pair.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Tuple

import structlog

from .income_split import format_amount
from .types import TokenBalance

logger = structlog.get_logger(__name__)

_Pair = Tuple[str, str]


class PayoutBalanceCalculator:
    """
    Computes what a seller can still withdraw.

    The balance of a pair is the total seller income of its sales minus
    every payout of the pair that has not been cancelled. Draft, pending
    and confirmed payouts all count against the balance.

    It reads through anything offering list_sale_totals and
    list_payout_amounts, so a unit of work can serve a locked read.
    """

    def __init__(self, repository):
        self.repository = repository
        self.logger = logger.bind(service="payout_balance")

    async def _payouts_by_pair(self, seller_id: str) -> Dict[_Pair, Decimal]:
        reserved: Dict[_Pair, Decimal] = defaultdict(Decimal)
        for payout in await self.repository.list_payout_amounts(seller_id):
            if payout.cancelled_at is not None:
                continue
            pair = (payout.seller_marketplace_id, payout.seller_marketplace_token_id)
            reserved[pair] += payout.amount
        return reserved

    async def available_balance(self, seller_id: str) -> List[TokenBalance]:
        """Balance of every pair the seller has sales for."""
        totals = await self.repository.list_sale_totals(seller_id)
        reserved = await self._payouts_by_pair(seller_id)

        balances = []
        for total in totals:
            pair = (total.seller_marketplace_id, total.seller_marketplace_token_id)
            amount = total.seller_income - reserved.get(pair, Decimal(0))
            if amount < 0:
                self.logger.error(
                    "Negative payout balance",
                    seller_id=seller_id,
                    seller_marketplace_id=total.seller_marketplace_id,
                    seller_marketplace_token_id=total.seller_marketplace_token_id,
                    amount=str(amount)
                )
            balances.append(TokenBalance(
                seller_marketplace_id=total.seller_marketplace_id,
                seller_marketplace_token_id=total.seller_marketplace_token_id,
                amount=amount,
                amount_formatted=format_amount(amount, total.symbol),
                symbol=total.symbol,
                decimals=total.decimals,
                network_title=total.network_title,
                marketplace_smart_contract_address=total.marketplace_smart_contract_address,
                token_smart_contract_address=total.token_smart_contract_address,
            ))

        balances.sort(key=lambda balance: (balance.network_title, balance.symbol))
        return balances

    async def balance_for(
        self,
        seller_id: str,
        seller_marketplace_id: str,
        seller_marketplace_token_id: str
    ) -> Decimal:
        """Balance of a single pair; zero when the pair has no sales."""
        pair = (seller_marketplace_id, seller_marketplace_token_id)
        income = Decimal(0)
        for total in await self.repository.list_sale_totals(seller_id):
            if (total.seller_marketplace_id, total.seller_marketplace_token_id) == pair:
                income += total.seller_income
        reserved = await self._payouts_by_pair(seller_id)
        return income - reserved.get(pair, Decimal(0))
