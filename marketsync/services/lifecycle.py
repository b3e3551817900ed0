"""
Lifecycle commands that create the state the reconciler consumes.
"""

import re
from datetime import datetime, timezone
from typing import Optional

import structlog

from marketsync.core.config import Settings
from marketsync.core.exceptions import (
    ClientError,
    ConflictError,
    InternalError,
    InvariantViolation,
    Reason,
    ValidationError,
)
from .income_split import format_amount, to_base_units
from .payout_balance import PayoutBalanceCalculator
from .status_engine import derive_status, transaction_status
from .types import (
    AggregateKind,
    AggregateState,
    AggregateStatus,
    NewOrder,
    NewPayout,
    NewSellerMarketplace,
    ProductOffer,
    TransactionStatus,
)

logger = structlog.get_logger(__name__)

TRANSACTION_HASH_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")

_SETTLED_CONFLICTS = {
    AggregateStatus.CONFIRMED: Reason.ALREADY_CONFIRMED,
    AggregateStatus.CANCELLED: Reason.ALREADY_CANCELLED,
    AggregateStatus.REFUNDED: Reason.ALREADY_REFUNDED,
}

_CANCELLABLE = {AggregateStatus.DRAFT, AggregateStatus.PENDING}


def normalize_transaction_hash(transaction_hash: str) -> str:
    """Trim and lower-case a transaction hash, validating its format."""
    if not isinstance(transaction_hash, str):
        raise ValidationError(["transactionHash: Expected string"])
    normalized = transaction_hash.strip().lower()
    if not TRANSACTION_HASH_PATTERN.match(normalized):
        raise ValidationError(["transactionHash: Invalid transaction hash"])
    return normalized


class LifecycleService:
    """Commands and queries on marketplace activations, orders and payouts."""

    def __init__(self, repository, settings: Settings):
        self.repository = repository
        self.settings = settings
        self.logger = logger.bind(service="lifecycle")

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _ensure_owned(
        self,
        kind: AggregateKind,
        owner_id: str,
        aggregate_id: str,
        aggregate: Optional[AggregateState]
    ) -> AggregateState:
        if aggregate is None or aggregate.owner_id != owner_id:
            raise ClientError(
                f"{kind.label.capitalize()} does not exist",
                Reason.AGGREGATE_DOES_NOT_EXIST,
                {"aggregate_kind": kind.value, "aggregate_id": aggregate_id}
            )
        return aggregate

    def _derive(self, aggregate: AggregateState) -> AggregateStatus:
        try:
            return derive_status(aggregate)
        except InvariantViolation as e:
            self.logger.error("Aggregate invariant violated", **e.to_dict())
            raise

    async def add_transaction(
        self,
        kind: AggregateKind,
        owner_id: str,
        aggregate_id: str,
        transaction_hash: str
    ) -> str:
        """
        Attach a blockchain transaction to an aggregate.

        A draft aggregate becomes pending in the same unit of work that
        stores the transaction.

        Returns:
            Id of the stored transaction
        """
        transaction_hash = normalize_transaction_hash(transaction_hash)

        async with self.repository.unit_of_work() as uow:
            aggregate = self._ensure_owned(
                kind, owner_id, aggregate_id,
                await uow.load_aggregate(kind, aggregate_id)
            )
            status = self._derive(aggregate)

            if status in _SETTLED_CONFLICTS:
                raise ConflictError(
                    f"{kind.label.capitalize()} is already {status.value}",
                    _SETTLED_CONFLICTS[status],
                    {"aggregate_id": aggregate_id}
                )

            if status is AggregateStatus.AWAITING_CONFIRMATION:
                raise ConflictError(
                    f"{kind.label.capitalize()} already has a pending transaction",
                    Reason.PENDING_TRANSACTION_EXISTS,
                    {"aggregate_id": aggregate_id}
                )

            if await uow.transaction_hash_exists(kind, aggregate.network_id, transaction_hash):
                raise ConflictError(
                    "Transaction hash has already been submitted",
                    Reason.TRANSACTION_HASH_EXISTS,
                    {"transaction_hash": transaction_hash}
                )

            max_attempts = self.settings.max_transaction_attempts
            failed_attempts = len(aggregate.failed_transactions)
            if max_attempts and failed_attempts >= max_attempts:
                raise ConflictError(
                    f"{kind.label.capitalize()} has reached {max_attempts} failed transactions",
                    Reason.TRANSACTION_ATTEMPTS_EXHAUSTED,
                    {"aggregate_id": aggregate_id, "failed_attempts": failed_attempts}
                )

            if status is AggregateStatus.DRAFT:
                await uow.mark_pending(kind, aggregate_id, self._now())

            transaction_id = await uow.add_transaction(
                kind, aggregate_id, aggregate.network_id, transaction_hash
            )

        self.logger.info(
            "Transaction added",
            aggregate_kind=kind.value,
            aggregate_id=aggregate_id,
            transaction_hash=transaction_hash,
            previous_status=status.value
        )
        return transaction_id

    async def _cancel(self, kind: AggregateKind, owner_id: str, aggregate_id: str) -> None:
        async with self.repository.unit_of_work() as uow:
            aggregate = self._ensure_owned(
                kind, owner_id, aggregate_id,
                await uow.load_aggregate(kind, aggregate_id)
            )
            status = self._derive(aggregate)

            if status not in _CANCELLABLE:
                raise ConflictError(
                    f"{kind.label.capitalize()} cannot be cancelled while {status.value}",
                    Reason.CANNOT_BE_CANCELLED,
                    {"aggregate_id": aggregate_id, "status": status.value}
                )

            await uow.cancel_aggregate(kind, aggregate_id, self._now())

        self.logger.info("Aggregate cancelled", aggregate_kind=kind.value, aggregate_id=aggregate_id)

    async def cancel_order(self, buyer_id: str, order_id: str) -> None:
        """Cancel a draft order, or a pending one whose transactions all failed."""
        await self._cancel(AggregateKind.PURCHASE_ORDER, buyer_id, order_id)

    async def cancel_payout(self, seller_id: str, payout_id: str) -> None:
        """Cancel a draft payout, or a pending one whose transactions all failed."""
        await self._cancel(AggregateKind.PAYOUT, seller_id, payout_id)

    async def create_draft_marketplace(self, seller_id: str, network_marketplace_id: str) -> str:
        """
        Create the draft seller marketplace the seller then deploys on chain.

        Every token the platform marketplace accepts is enabled on the new
        marketplace. A seller keeps at most one draft per platform marketplace.

        Returns:
            Id of the new seller marketplace
        """
        async with self.repository.unit_of_work() as uow:
            network_marketplace = await uow.get_network_marketplace(network_marketplace_id)
            if network_marketplace is None:
                raise ClientError(
                    "Network marketplace does not exist",
                    Reason.NETWORK_MARKETPLACE_DOES_NOT_EXIST,
                    {"network_marketplace_id": network_marketplace_id}
                )

            if not network_marketplace.token_ids:
                error = InternalError(
                    "Network marketplace does not have tokens",
                    Reason.NETWORK_MARKETPLACE_HAS_NO_TOKENS,
                    {"network_marketplace_id": network_marketplace_id}
                )
                self.logger.error("Unable to create seller marketplace", **error.to_dict())
                raise error

            if await uow.has_draft_marketplace(seller_id, network_marketplace_id):
                raise ConflictError(
                    "A draft marketplace already exists on this network marketplace",
                    Reason.DRAFT_MARKETPLACE_EXISTS,
                    {"seller_id": seller_id, "network_marketplace_id": network_marketplace_id}
                )

            seller_marketplace_id = await uow.create_seller_marketplace(NewSellerMarketplace(
                seller_id=seller_id,
                network_id=network_marketplace.network_id,
                network_marketplace_id=network_marketplace_id,
                network_marketplace_token_ids=network_marketplace.token_ids,
            ))

        self.logger.info(
            "Seller marketplace created",
            seller_id=seller_id,
            seller_marketplace_id=seller_marketplace_id,
            tokens=len(network_marketplace.token_ids)
        )
        return seller_marketplace_id

    async def create_order(self, buyer_id: str, offer: ProductOffer) -> str:
        """
        Create a draft order for a product at its current price.

        The price is stored as it was when ordered, with the token decimals
        and a formatted label, so later price changes do not affect it.

        Returns:
            Id of the new draft order
        """
        if offer.price <= 0:
            raise ValidationError(["price: Number must be greater than 0"])

        async with self.repository.unit_of_work() as uow:
            target = await uow.get_order_payment_target(offer.seller_marketplace_token_id)
            if target is None:
                raise ClientError(
                    "Marketplace token does not exist",
                    Reason.MARKETPLACE_TOKEN_DOES_NOT_EXIST,
                    {"seller_marketplace_token_id": offer.seller_marketplace_token_id}
                )

            details = {"seller_marketplace_id": target.seller_marketplace_id}
            error = None
            if target.confirmed_at is None:
                error = InternalError(
                    "Seller marketplace is not confirmed",
                    Reason.SELLER_MARKETPLACE_NOT_CONFIRMED, details
                )
            elif not target.smart_contract_address:
                error = InternalError(
                    "Seller marketplace does not have a smart contract address",
                    Reason.SELLER_MARKETPLACE_WITHOUT_CONTRACT, details
                )
            elif not target.owner_wallet_address:
                error = InternalError(
                    "Seller marketplace does not have an owner wallet address",
                    Reason.SELLER_MARKETPLACE_WITHOUT_OWNER_WALLET, details
                )
            if error is not None:
                self.logger.error("Unable to create order", **error.to_dict())
                raise error

            # Rejects prices finer than the token can represent
            to_base_units(offer.price, target.decimals)

            if await uow.has_unpaid_order(buyer_id, offer.product_id):
                raise ConflictError(
                    "Unpaid order exists. Please pay or cancel the order",
                    Reason.UNPAID_ORDER_EXISTS,
                    {"buyer_id": buyer_id, "product_id": offer.product_id}
                )

            price_formatted = format_amount(offer.price, target.symbol)
            order_id = await uow.create_order(NewOrder(
                buyer_id=buyer_id,
                seller_id=target.seller_id,
                product_id=offer.product_id,
                seller_marketplace_id=target.seller_marketplace_id,
                seller_marketplace_token_id=offer.seller_marketplace_token_id,
                price=offer.price,
                price_decimals=target.decimals,
                price_formatted=price_formatted,
            ))

        self.logger.info(
            "Order created",
            buyer_id=buyer_id,
            order_id=order_id,
            product_id=offer.product_id,
            price=price_formatted
        )
        return order_id

    async def create_payout(
        self,
        seller_id: str,
        seller_marketplace_id: str,
        seller_marketplace_token_id: str
    ) -> str:
        """
        Request a payout of the full available balance of one token.

        Returns:
            Id of the new draft payout
        """
        target = await self.repository.get_payout_target(
            seller_id, seller_marketplace_id, seller_marketplace_token_id
        )
        if target is None or target.seller_id != seller_id or target.confirmed_at is None:
            raise ClientError(
                "Marketplace does not exist",
                Reason.MARKETPLACE_DOES_NOT_EXIST,
                {"seller_marketplace_id": seller_marketplace_id}
            )
        if target.seller_marketplace_token_id is None:
            raise ClientError(
                "Marketplace token does not exist",
                Reason.MARKETPLACE_TOKEN_DOES_NOT_EXIST,
                {"seller_marketplace_token_id": seller_marketplace_token_id}
            )

        async with self.repository.unit_of_work() as uow:
            # Serialises payout requests of one marketplace until commit
            await uow.lock_seller_marketplace(seller_marketplace_id)

            if await uow.has_unsettled_payout(
                seller_id, seller_marketplace_id, seller_marketplace_token_id
            ):
                raise ConflictError(
                    "A pending payout already exists for this token",
                    Reason.PENDING_PAYOUT_EXISTS,
                    {
                        "seller_marketplace_id": seller_marketplace_id,
                        "seller_marketplace_token_id": seller_marketplace_token_id,
                    }
                )

            balance = await PayoutBalanceCalculator(uow).balance_for(
                seller_id, seller_marketplace_id, seller_marketplace_token_id
            )
            if balance < 0:
                error = InternalError(
                    "Available payout balance is negative",
                    Reason.BALANCE_NEGATIVE,
                    {
                        "seller_id": seller_id,
                        "seller_marketplace_id": seller_marketplace_id,
                        "seller_marketplace_token_id": seller_marketplace_token_id,
                        "balance": str(balance),
                    }
                )
                self.logger.error("Unable to create payout", **error.to_dict())
                raise error
            if balance == 0:
                raise ClientError(
                    "Nothing to request",
                    Reason.NOTHING_TO_REQUEST,
                    {"seller_marketplace_token_id": seller_marketplace_token_id}
                )

            payout_id = await uow.create_payout(NewPayout(
                seller_id=seller_id,
                seller_marketplace_id=seller_marketplace_id,
                seller_marketplace_token_id=seller_marketplace_token_id,
                amount=balance,
                amount_formatted=format_amount(balance, target.symbol),
                decimals=target.decimals,
            ))

        self.logger.info(
            "Payout created",
            seller_id=seller_id,
            payout_id=payout_id,
            amount=format_amount(balance, target.symbol)
        )
        return payout_id

    async def get_status(
        self,
        kind: AggregateKind,
        owner_id: str,
        aggregate_id: str
    ) -> AggregateStatus:
        """Derived status of an aggregate the caller owns."""
        aggregate = self._ensure_owned(
            kind, owner_id, aggregate_id,
            await self.repository.get_aggregate(kind, aggregate_id)
        )
        return self._derive(aggregate)

    async def get_transaction_status(
        self,
        kind: AggregateKind,
        owner_id: str,
        aggregate_id: str,
        transaction_id: str
    ) -> TransactionStatus:
        """Status of one transaction of an aggregate the caller owns."""
        self._ensure_owned(
            kind, owner_id, aggregate_id,
            await self.repository.get_aggregate(kind, aggregate_id)
        )
        transaction = await self.repository.get_transaction(kind, transaction_id)
        if transaction is None or transaction.aggregate_id != aggregate_id:
            raise ClientError(
                "Transaction does not exist",
                Reason.TRANSACTION_DOES_NOT_EXIST,
                {"transaction_id": transaction_id}
            )
        return transaction_status(transaction)
