"""
Persistence contract of the ledger.

LedgerRepository serves plain reads; every write goes through a
LedgerUnitOfWork obtained from unit_of_work(), which commits on clean exit
and rolls back when the block raises.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import AsyncContextManager, List, Optional

from marketsync.services.types import (
    AggregateKind,
    AggregateState,
    NetworkMarketplaceRecord,
    NetworkRecord,
    NewOrder,
    NewPayout,
    NewSale,
    NewSellerMarketplace,
    OpenTransaction,
    PayoutAmount,
    OrderPaymentTarget,
    PayoutTarget,
    SaleTotal,
    TransactionState,
)


class LedgerUnitOfWork(ABC):
    """Writes applied atomically."""

    @abstractmethod
    async def load_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str
    ) -> Optional[AggregateState]:
        """Load an aggregate with its transactions, locking its row."""

    @abstractmethod
    async def record_transaction_outcome(
        self,
        kind: AggregateKind,
        transaction_id: str,
        *,
        sender_address: str,
        gas: int,
        transaction_fee: Decimal,
        blockchain_error: Optional[str] = None,
        confirmed_at: Optional[datetime] = None,
        failed_at: Optional[datetime] = None
    ) -> None:
        """Store the provider's verdict on one transaction."""

    @abstractmethod
    async def confirm_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        confirmed_at: datetime,
        *,
        owner_wallet_address: Optional[str] = None,
        smart_contract_address: Optional[str] = None
    ) -> None:
        """Set confirmed_at; activations also store owner wallet and contract."""

    @abstractmethod
    async def cancel_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        cancelled_at: datetime
    ) -> None:
        """Set cancelled_at on an order or payout."""

    @abstractmethod
    async def mark_pending(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        pending_at: datetime
    ) -> None:
        """Set pending_at on a draft aggregate."""

    @abstractmethod
    async def add_transaction(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        network_id: str,
        transaction_hash: str
    ) -> str:
        """Attach a new open transaction and return its id."""

    @abstractmethod
    async def transaction_hash_exists(
        self,
        kind: AggregateKind,
        network_id: str,
        transaction_hash: str
    ) -> bool:
        """Whether the hash is already stored for this kind on the network."""

    @abstractmethod
    async def sale_exists_for_transaction(self, transaction_id: str) -> bool:
        """Whether a product sale already references the order transaction."""

    @abstractmethod
    async def create_sale(self, sale: NewSale) -> str:
        """Store a product sale and return its id."""

    @abstractmethod
    async def seller_marketplace_address_taken(
        self,
        address: str,
        exclude_id: str
    ) -> bool:
        """Whether another seller marketplace already uses the contract address."""

    @abstractmethod
    async def create_payout(self, payout: NewPayout) -> str:
        """Store a draft payout and return its id."""

    @abstractmethod
    async def has_unsettled_payout(
        self,
        seller_id: str,
        seller_marketplace_id: str,
        seller_marketplace_token_id: str
    ) -> bool:
        """Whether a draft or pending payout exists for the pair."""

    @abstractmethod
    async def lock_seller_marketplace(self, seller_marketplace_id: str) -> None:
        """Lock the seller marketplace row until the unit ends."""

    @abstractmethod
    async def list_sale_totals(self, seller_id: str) -> List[SaleTotal]:
        """Seller income summed per pair, read inside the unit."""

    @abstractmethod
    async def list_payout_amounts(self, seller_id: str) -> List[PayoutAmount]:
        """Every payout of the seller, read inside the unit."""

    @abstractmethod
    async def get_network_marketplace(
        self,
        network_marketplace_id: str
    ) -> Optional[NetworkMarketplaceRecord]:
        pass

    @abstractmethod
    async def has_draft_marketplace(self, seller_id: str, network_marketplace_id: str) -> bool:
        """Whether the seller has a not yet activated marketplace on this contract."""

    @abstractmethod
    async def create_seller_marketplace(self, marketplace: NewSellerMarketplace) -> str:
        """Store a draft seller marketplace with its tokens and return its id."""

    @abstractmethod
    async def get_order_payment_target(
        self,
        seller_marketplace_token_id: str
    ) -> Optional[OrderPaymentTarget]:
        pass

    @abstractmethod
    async def has_unpaid_order(self, buyer_id: str, product_id: str) -> bool:
        """Whether the buyer has an order for the product that is not settled."""

    @abstractmethod
    async def create_order(self, order: NewOrder) -> str:
        """Store a draft product order and return its id."""


class LedgerRepository(ABC):
    """Reads of the ledger and the entry point for atomic writes."""

    @abstractmethod
    async def get_network(self, chain_id: int) -> Optional[NetworkRecord]:
        pass

    @abstractmethod
    async def list_open_transactions(self, chain_id: int) -> List[OpenTransaction]:
        """
        Open transactions on the network whose aggregate is pending and not
        yet confirmed, cancelled or refunded.
        """

    @abstractmethod
    async def list_sale_totals(self, seller_id: str) -> List[SaleTotal]:
        """Seller income summed per (marketplace, token) pair."""

    @abstractmethod
    async def list_payout_amounts(self, seller_id: str) -> List[PayoutAmount]:
        """Every payout of the seller, cancelled ones included."""

    @abstractmethod
    async def get_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str
    ) -> Optional[AggregateState]:
        pass

    @abstractmethod
    async def get_transaction(
        self,
        kind: AggregateKind,
        transaction_id: str
    ) -> Optional[TransactionState]:
        pass

    @abstractmethod
    async def get_payout_target(
        self,
        seller_id: str,
        seller_marketplace_id: str,
        seller_marketplace_token_id: str
    ) -> Optional[PayoutTarget]:
        """
        Seller marketplace the payout is requested from; token fields are
        None when the token is not enabled on it.
        """

    @abstractmethod
    def unit_of_work(self) -> AsyncContextManager[LedgerUnitOfWork]:
        pass
