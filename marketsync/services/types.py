"""
Types shared by the status engine, reconciler and lifecycle commands.

Persisted rows reach the services as frozen dataclasses; the services never
see ORM objects.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union


class AggregateKind(str, Enum):
    """Entities whose status is derived from blockchain transactions."""
    MARKETPLACE_ACTIVATION = "marketplace_activation"
    PURCHASE_ORDER = "purchase_order"
    PAYOUT = "payout"

    @property
    def label(self) -> str:
        """Short name used in human readable messages."""
        return _KIND_LABELS[self]

    @property
    def supports_cancellation(self) -> bool:
        return self is not AggregateKind.MARKETPLACE_ACTIVATION

    @property
    def supports_refund(self) -> bool:
        return self is AggregateKind.PURCHASE_ORDER


_KIND_LABELS = {
    AggregateKind.MARKETPLACE_ACTIVATION: "marketplace",
    AggregateKind.PURCHASE_ORDER: "order",
    AggregateKind.PAYOUT: "payout",
}


class AggregateStatus(str, Enum):
    """Derived lifecycle status of an aggregate."""
    DRAFT = "draft"
    PENDING = "pending"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class TransactionStatus(str, Enum):
    """Status of a single blockchain transaction."""
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionState:
    """One stored transaction attached to an aggregate."""
    id: str
    aggregate_id: str
    network_id: str
    hash: str
    sender_address: Optional[str] = None
    gas: Optional[int] = None
    transaction_fee: Optional[Decimal] = None
    blockchain_error: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.confirmed_at is None and self.failed_at is None

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    @property
    def is_failed(self) -> bool:
        return self.failed_at is not None


@dataclass(frozen=True)
class ActivationDetails:
    """What the reconciler needs to confirm a seller marketplace deploy."""
    seller_id: str
    network_marketplace_address: str
    smart_contract_address: Optional[str] = None
    owner_wallet_address: Optional[str] = None
    network_marketplace_id: Optional[str] = None


@dataclass(frozen=True)
class OrderDetails:
    """What the reconciler needs to confirm an order payment and book the sale."""
    buyer_id: str
    seller_id: str
    product_id: str
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    seller_marketplace_address: Optional[str]
    price: Decimal
    price_decimals: int
    token_symbol: str
    token_decimals: int
    token_contract_address: Optional[str]
    commission_rate: Decimal


@dataclass(frozen=True)
class PayoutDetails:
    """What the reconciler needs to confirm a payout withdrawal."""
    seller_id: str
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    seller_marketplace_address: Optional[str]
    owner_wallet_address: Optional[str]
    amount: Decimal
    token_symbol: str


AggregateDetails = Union[ActivationDetails, OrderDetails, PayoutDetails]


@dataclass(frozen=True)
class AggregateState:
    """Status markers and transactions of one aggregate."""
    kind: AggregateKind
    id: str
    owner_id: str
    network_id: str
    pending_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    transactions: Tuple[TransactionState, ...] = ()
    details: Optional[AggregateDetails] = None

    @property
    def open_transactions(self) -> Tuple[TransactionState, ...]:
        return tuple(tx for tx in self.transactions if tx.is_open)

    @property
    def confirmed_transactions(self) -> Tuple[TransactionState, ...]:
        return tuple(tx for tx in self.transactions if tx.is_confirmed)

    @property
    def failed_transactions(self) -> Tuple[TransactionState, ...]:
        return tuple(tx for tx in self.transactions if tx.is_failed)

    def find_transaction(self, transaction_id: str) -> Optional[TransactionState]:
        for tx in self.transactions:
            if tx.id == transaction_id:
                return tx
        return None


@dataclass(frozen=True)
class NetworkRecord:
    """A network and its platform marketplace contract."""
    id: str
    chain_id: int
    title: str
    marketplace_address: Optional[str] = None


@dataclass(frozen=True)
class OpenTransaction:
    """An open transaction selected for reconciliation."""
    kind: AggregateKind
    transaction_id: str
    aggregate_id: str
    hash: str
    contract_address: Optional[str]


@dataclass(frozen=True)
class SaleTotal:
    """Summed seller income for one (marketplace, token) pair."""
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    seller_income: Decimal
    symbol: str
    decimals: int
    network_title: str
    marketplace_smart_contract_address: Optional[str]
    token_smart_contract_address: Optional[str]


@dataclass(frozen=True)
class PayoutAmount:
    """One stored payout of a seller."""
    payout_id: str
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    amount: Decimal
    cancelled_at: Optional[datetime] = None


@dataclass(frozen=True)
class PayoutTarget:
    """Seller marketplace and token a payout is requested for."""
    seller_marketplace_id: str
    seller_id: str
    confirmed_at: Optional[datetime]
    seller_marketplace_token_id: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None


@dataclass(frozen=True)
class NetworkMarketplaceRecord:
    """A platform marketplace contract and the tokens it accepts."""
    id: str
    network_id: str
    smart_contract_address: str
    token_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OrderPaymentTarget:
    """Seller marketplace token an order is paid with."""
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    seller_id: str
    confirmed_at: Optional[datetime]
    smart_contract_address: Optional[str]
    owner_wallet_address: Optional[str]
    symbol: str
    decimals: int


@dataclass(frozen=True)
class ProductOffer:
    """Price of a published product at the moment it is ordered."""
    product_id: str
    seller_marketplace_token_id: str
    price: Decimal


@dataclass(frozen=True)
class NewSellerMarketplace:
    seller_id: str
    network_id: str
    network_marketplace_id: str
    network_marketplace_token_ids: Tuple[str, ...]


@dataclass(frozen=True)
class NewOrder:
    """Values of a product order about to be stored."""
    buyer_id: str
    seller_id: str
    product_id: str
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    price: Decimal
    price_decimals: int
    price_formatted: str


@dataclass(frozen=True)
class NewSale:
    """Values of a product sale about to be stored."""
    seller_id: str
    product_id: str
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    product_order_transaction_id: str
    seller_income: Decimal
    seller_income_formatted: str
    platform_income: Decimal
    platform_income_formatted: str
    decimals: int


@dataclass(frozen=True)
class NewPayout:
    """Values of a payout about to be stored."""
    seller_id: str
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    amount: Decimal
    amount_formatted: str
    decimals: int


@dataclass(frozen=True)
class TokenBalance:
    """Withdrawable income of a seller for one (marketplace, token) pair."""
    seller_marketplace_id: str
    seller_marketplace_token_id: str
    amount: Decimal
    amount_formatted: str
    symbol: str
    decimals: int
    network_title: str
    marketplace_smart_contract_address: Optional[str]
    token_smart_contract_address: Optional[str]


@dataclass(frozen=True)
class IncomeSplit:
    """Platform commission and seller remainder of an order price."""
    seller_income: Decimal
    platform_income: Decimal
    decimals: int
