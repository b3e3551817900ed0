"""
SQLAlchemy implementation of the ledger repository.
"""

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional, Type

import structlog
from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketsync.models import (
    Network,
    NetworkMarketplace,
    NetworkMarketplaceToken,
    ProductOrder,
    ProductOrderTransaction,
    ProductSale,
    SellerMarketplace,
    SellerMarketplaceToken,
    SellerMarketplaceTransaction,
    SellerPayout,
    SellerPayoutTransaction,
)
from marketsync.models.base import generate_id
from marketsync.services.types import (
    ActivationDetails,
    AggregateDetails,
    AggregateKind,
    AggregateState,
    NetworkMarketplaceRecord,
    NetworkRecord,
    NewOrder,
    NewPayout,
    NewSale,
    NewSellerMarketplace,
    OpenTransaction,
    OrderDetails,
    OrderPaymentTarget,
    PayoutAmount,
    PayoutDetails,
    PayoutTarget,
    SaleTotal,
    TransactionState,
)
from .base import LedgerRepository, LedgerUnitOfWork

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _KindTables:
    aggregate: Type[Any]
    transaction: Type[Any]
    parent_column: str

    @property
    def parent(self):
        return getattr(self.transaction, self.parent_column)


_TABLES: Dict[AggregateKind, _KindTables] = {
    AggregateKind.MARKETPLACE_ACTIVATION: _KindTables(
        SellerMarketplace, SellerMarketplaceTransaction, "seller_marketplace_id"
    ),
    AggregateKind.PURCHASE_ORDER: _KindTables(
        ProductOrder, ProductOrderTransaction, "product_order_id"
    ),
    AggregateKind.PAYOUT: _KindTables(
        SellerPayout, SellerPayoutTransaction, "seller_payout_id"
    ),
}


def _to_transaction_state(row: Any, parent_column: str) -> TransactionState:
    return TransactionState(
        id=row.id,
        aggregate_id=getattr(row, parent_column),
        network_id=row.network_id,
        hash=row.hash,
        sender_address=row.sender_address,
        gas=row.gas,
        transaction_fee=row.transaction_fee,
        blockchain_error=row.blockchain_error,
        confirmed_at=row.confirmed_at,
        failed_at=row.failed_at,
        created_at=row.created_at,
    )


async def _load_details(
    session: AsyncSession,
    kind: AggregateKind,
    row: Any
) -> AggregateDetails:
    if kind is AggregateKind.MARKETPLACE_ACTIVATION:
        marketplace_address = await session.scalar(
            select(NetworkMarketplace.smart_contract_address)
            .where(NetworkMarketplace.id == row.network_marketplace_id)
        )
        return ActivationDetails(
            seller_id=row.seller_id,
            network_marketplace_address=marketplace_address,
            smart_contract_address=row.smart_contract_address,
            owner_wallet_address=row.owner_wallet_address,
            network_marketplace_id=row.network_marketplace_id,
        )

    token_query = (
        select(
            SellerMarketplace.smart_contract_address,
            SellerMarketplace.owner_wallet_address,
            NetworkMarketplaceToken.symbol,
            NetworkMarketplaceToken.decimals,
            NetworkMarketplaceToken.smart_contract_address.label("token_address"),
            NetworkMarketplace.commission_rate,
        )
        .select_from(SellerMarketplaceToken)
        .join(SellerMarketplace, SellerMarketplace.id == SellerMarketplaceToken.seller_marketplace_id)
        .join(
            NetworkMarketplaceToken,
            NetworkMarketplaceToken.id == SellerMarketplaceToken.network_marketplace_token_id
        )
        .join(NetworkMarketplace, NetworkMarketplace.id == SellerMarketplace.network_marketplace_id)
        .where(SellerMarketplaceToken.id == row.seller_marketplace_token_id)
    )
    token = (await session.execute(token_query)).one()

    if kind is AggregateKind.PURCHASE_ORDER:
        return OrderDetails(
            buyer_id=row.buyer_id,
            seller_id=row.seller_id,
            product_id=row.product_id,
            seller_marketplace_id=row.seller_marketplace_id,
            seller_marketplace_token_id=row.seller_marketplace_token_id,
            seller_marketplace_address=token.smart_contract_address,
            price=row.price,
            price_decimals=row.price_decimals,
            token_symbol=token.symbol,
            token_decimals=token.decimals,
            token_contract_address=token.token_address,
            commission_rate=token.commission_rate,
        )

    return PayoutDetails(
        seller_id=row.seller_id,
        seller_marketplace_id=row.seller_marketplace_id,
        seller_marketplace_token_id=row.seller_marketplace_token_id,
        seller_marketplace_address=token.smart_contract_address,
        owner_wallet_address=token.owner_wallet_address,
        amount=row.amount,
        token_symbol=token.symbol,
    )


async def _load_aggregate(
    session: AsyncSession,
    kind: AggregateKind,
    aggregate_id: str,
    lock: bool = False
) -> Optional[AggregateState]:
    tables = _TABLES[kind]
    query = (
        select(tables.aggregate)
        .where(tables.aggregate.id == aggregate_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        query = query.with_for_update()
    row = await session.scalar(query)
    if row is None:
        return None

    tx_rows = await session.scalars(
        select(tables.transaction)
        .where(tables.parent == aggregate_id)
        .order_by(tables.transaction.created_at, tables.transaction.id)
        .execution_options(populate_existing=True)
    )
    transactions = tuple(
        _to_transaction_state(tx, tables.parent_column) for tx in tx_rows
    )

    if kind is AggregateKind.MARKETPLACE_ACTIVATION:
        owner_id = row.seller_id
        network_id = row.network_id
    else:
        owner_id = row.buyer_id if kind is AggregateKind.PURCHASE_ORDER else row.seller_id
        network_id = await session.scalar(
            select(SellerMarketplace.network_id)
            .where(SellerMarketplace.id == row.seller_marketplace_id)
        )

    return AggregateState(
        kind=kind,
        id=row.id,
        owner_id=owner_id,
        network_id=network_id,
        pending_at=row.pending_at,
        confirmed_at=row.confirmed_at,
        cancelled_at=getattr(row, "cancelled_at", None),
        refunded_at=getattr(row, "refunded_at", None),
        transactions=transactions,
        details=await _load_details(session, kind, row),
    )


async def _sale_totals(session: AsyncSession, seller_id: str) -> List[SaleTotal]:
    query = (
        select(
            ProductSale.seller_marketplace_id,
            ProductSale.seller_marketplace_token_id,
            func.sum(ProductSale.seller_income).label("seller_income"),
            NetworkMarketplaceToken.symbol,
            NetworkMarketplaceToken.decimals,
            Network.title,
            SellerMarketplace.smart_contract_address.label("marketplace_address"),
            NetworkMarketplaceToken.smart_contract_address.label("token_address"),
        )
        .join(SellerMarketplace, SellerMarketplace.id == ProductSale.seller_marketplace_id)
        .join(Network, Network.id == SellerMarketplace.network_id)
        .join(SellerMarketplaceToken, SellerMarketplaceToken.id == ProductSale.seller_marketplace_token_id)
        .join(
            NetworkMarketplaceToken,
            NetworkMarketplaceToken.id == SellerMarketplaceToken.network_marketplace_token_id
        )
        .where(ProductSale.seller_id == seller_id)
        .group_by(
            ProductSale.seller_marketplace_id,
            ProductSale.seller_marketplace_token_id,
            NetworkMarketplaceToken.symbol,
            NetworkMarketplaceToken.decimals,
            Network.title,
            SellerMarketplace.smart_contract_address,
            NetworkMarketplaceToken.smart_contract_address,
        )
    )
    rows = (await session.execute(query)).all()

    return [
        SaleTotal(
            seller_marketplace_id=row.seller_marketplace_id,
            seller_marketplace_token_id=row.seller_marketplace_token_id,
            seller_income=row.seller_income,
            symbol=row.symbol,
            decimals=row.decimals,
            network_title=row.title,
            marketplace_smart_contract_address=row.marketplace_address,
            token_smart_contract_address=row.token_address,
        )
        for row in rows
    ]


async def _payout_amounts(session: AsyncSession, seller_id: str) -> List[PayoutAmount]:
    rows = await session.scalars(
        select(SellerPayout).where(SellerPayout.seller_id == seller_id)
    )
    return [
        PayoutAmount(
            payout_id=row.id,
            seller_marketplace_id=row.seller_marketplace_id,
            seller_marketplace_token_id=row.seller_marketplace_token_id,
            amount=row.amount,
            cancelled_at=row.cancelled_at,
        )
        for row in rows
    ]


class SqlLedgerUnitOfWork(LedgerUnitOfWork):
    """Unit of work bound to one session transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str
    ) -> Optional[AggregateState]:
        await self.session.flush()
        return await _load_aggregate(self.session, kind, aggregate_id, lock=True)

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
        model = _TABLES[kind].transaction
        await self.session.execute(
            update(model)
            .where(model.id == transaction_id)
            .values(
                sender_address=sender_address,
                gas=gas,
                transaction_fee=transaction_fee,
                blockchain_error=blockchain_error,
                confirmed_at=confirmed_at,
                failed_at=failed_at,
            )
        )

    async def confirm_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        confirmed_at: datetime,
        *,
        owner_wallet_address: Optional[str] = None,
        smart_contract_address: Optional[str] = None
    ) -> None:
        model = _TABLES[kind].aggregate
        values: Dict[str, Any] = {"confirmed_at": confirmed_at}
        if kind is AggregateKind.MARKETPLACE_ACTIVATION:
            values["owner_wallet_address"] = owner_wallet_address
            values["smart_contract_address"] = smart_contract_address
        await self.session.execute(
            update(model).where(model.id == aggregate_id).values(**values)
        )

    async def cancel_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        cancelled_at: datetime
    ) -> None:
        model = _TABLES[kind].aggregate
        await self.session.execute(
            update(model).where(model.id == aggregate_id).values(cancelled_at=cancelled_at)
        )

    async def mark_pending(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        pending_at: datetime
    ) -> None:
        model = _TABLES[kind].aggregate
        await self.session.execute(
            update(model).where(model.id == aggregate_id).values(pending_at=pending_at)
        )

    async def add_transaction(
        self,
        kind: AggregateKind,
        aggregate_id: str,
        network_id: str,
        transaction_hash: str
    ) -> str:
        tables = _TABLES[kind]
        transaction = tables.transaction(
            id=generate_id(),
            network_id=network_id,
            hash=transaction_hash,
            **{tables.parent_column: aggregate_id}
        )
        self.session.add(transaction)
        await self.session.flush()
        return transaction.id

    async def transaction_hash_exists(
        self,
        kind: AggregateKind,
        network_id: str,
        transaction_hash: str
    ) -> bool:
        model = _TABLES[kind].transaction
        return bool(await self.session.scalar(
            select(exists().where(and_(
                model.network_id == network_id,
                model.hash == transaction_hash,
            )))
        ))

    async def sale_exists_for_transaction(self, transaction_id: str) -> bool:
        return bool(await self.session.scalar(
            select(exists().where(ProductSale.product_order_transaction_id == transaction_id))
        ))

    async def create_sale(self, sale: NewSale) -> str:
        row = ProductSale(id=generate_id(), **asdict(sale))
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def seller_marketplace_address_taken(self, address: str, exclude_id: str) -> bool:
        return bool(await self.session.scalar(
            select(exists().where(and_(
                func.lower(SellerMarketplace.smart_contract_address) == address.lower(),
                SellerMarketplace.id != exclude_id,
            )))
        ))

    async def create_payout(self, payout: NewPayout) -> str:
        row = SellerPayout(id=generate_id(), **asdict(payout))
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def has_unsettled_payout(
        self,
        seller_id: str,
        seller_marketplace_id: str,
        seller_marketplace_token_id: str
    ) -> bool:
        return bool(await self.session.scalar(
            select(exists().where(and_(
                SellerPayout.seller_id == seller_id,
                SellerPayout.seller_marketplace_id == seller_marketplace_id,
                SellerPayout.seller_marketplace_token_id == seller_marketplace_token_id,
                SellerPayout.confirmed_at.is_(None),
                SellerPayout.cancelled_at.is_(None),
            )))
        ))

    async def lock_seller_marketplace(self, seller_marketplace_id: str) -> None:
        await self.session.execute(
            select(SellerMarketplace.id)
            .where(SellerMarketplace.id == seller_marketplace_id)
            .with_for_update()
        )

    async def list_sale_totals(self, seller_id: str) -> List[SaleTotal]:
        await self.session.flush()
        return await _sale_totals(self.session, seller_id)

    async def list_payout_amounts(self, seller_id: str) -> List[PayoutAmount]:
        await self.session.flush()
        return await _payout_amounts(self.session, seller_id)

    async def get_network_marketplace(
        self,
        network_marketplace_id: str
    ) -> Optional[NetworkMarketplaceRecord]:
        marketplace = await self.session.get(NetworkMarketplace, network_marketplace_id)
        if marketplace is None:
            return None

        token_ids = await self.session.scalars(
            select(NetworkMarketplaceToken.id)
            .where(NetworkMarketplaceToken.network_marketplace_id == network_marketplace_id)
            .order_by(NetworkMarketplaceToken.created_at, NetworkMarketplaceToken.id)
        )
        return NetworkMarketplaceRecord(
            id=marketplace.id,
            network_id=marketplace.network_id,
            smart_contract_address=marketplace.smart_contract_address,
            token_ids=tuple(token_ids),
        )

    async def has_draft_marketplace(self, seller_id: str, network_marketplace_id: str) -> bool:
        return bool(await self.session.scalar(
            select(exists().where(and_(
                SellerMarketplace.seller_id == seller_id,
                SellerMarketplace.network_marketplace_id == network_marketplace_id,
                SellerMarketplace.pending_at.is_(None),
                SellerMarketplace.confirmed_at.is_(None),
            )))
        ))

    async def create_seller_marketplace(self, marketplace: NewSellerMarketplace) -> str:
        row = SellerMarketplace(
            id=generate_id(),
            seller_id=marketplace.seller_id,
            network_id=marketplace.network_id,
            network_marketplace_id=marketplace.network_marketplace_id,
        )
        self.session.add(row)
        for token_id in marketplace.network_marketplace_token_ids:
            self.session.add(SellerMarketplaceToken(
                id=generate_id(),
                seller_marketplace_id=row.id,
                network_marketplace_token_id=token_id,
            ))
        await self.session.flush()
        return row.id

    async def get_order_payment_target(
        self,
        seller_marketplace_token_id: str
    ) -> Optional[OrderPaymentTarget]:
        row = (await self.session.execute(
            select(
                SellerMarketplace.id.label("seller_marketplace_id"),
                SellerMarketplace.seller_id,
                SellerMarketplace.confirmed_at,
                SellerMarketplace.smart_contract_address,
                SellerMarketplace.owner_wallet_address,
                NetworkMarketplaceToken.symbol,
                NetworkMarketplaceToken.decimals,
            )
            .select_from(SellerMarketplaceToken)
            .join(SellerMarketplace, SellerMarketplace.id == SellerMarketplaceToken.seller_marketplace_id)
            .join(
                NetworkMarketplaceToken,
                NetworkMarketplaceToken.id == SellerMarketplaceToken.network_marketplace_token_id
            )
            .where(SellerMarketplaceToken.id == seller_marketplace_token_id)
        )).first()
        if row is None:
            return None

        return OrderPaymentTarget(
            seller_marketplace_id=row.seller_marketplace_id,
            seller_marketplace_token_id=seller_marketplace_token_id,
            seller_id=row.seller_id,
            confirmed_at=row.confirmed_at,
            smart_contract_address=row.smart_contract_address,
            owner_wallet_address=row.owner_wallet_address,
            symbol=row.symbol,
            decimals=row.decimals,
        )

    async def has_unpaid_order(self, buyer_id: str, product_id: str) -> bool:
        return bool(await self.session.scalar(
            select(exists().where(and_(
                ProductOrder.buyer_id == buyer_id,
                ProductOrder.product_id == product_id,
                ProductOrder.confirmed_at.is_(None),
                ProductOrder.cancelled_at.is_(None),
                ProductOrder.refunded_at.is_(None),
            )))
        ))

    async def create_order(self, order: NewOrder) -> str:
        row = ProductOrder(id=generate_id(), **asdict(order))
        self.session.add(row)
        await self.session.flush()
        return row.id


class SqlLedgerRepository(LedgerRepository):
    """Ledger repository over an async session maker."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self.logger = logger.bind(service="ledger_repository")

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncGenerator[SqlLedgerUnitOfWork, None]:
        async with self.session_maker() as session:
            async with session.begin():
                yield SqlLedgerUnitOfWork(session)

    async def get_network(self, chain_id: int) -> Optional[NetworkRecord]:
        async with self.session_maker() as session:
            row = (await session.execute(
                select(Network, NetworkMarketplace.smart_contract_address)
                .outerjoin(NetworkMarketplace, NetworkMarketplace.network_id == Network.id)
                .where(Network.chain_id == chain_id)
                .limit(1)
            )).first()

        if row is None:
            return None

        network, marketplace_address = row
        return NetworkRecord(
            id=network.id,
            chain_id=network.chain_id,
            title=network.title,
            marketplace_address=marketplace_address,
        )

    async def list_open_transactions(self, chain_id: int) -> List[OpenTransaction]:
        activation = _TABLES[AggregateKind.MARKETPLACE_ACTIVATION]
        order = _TABLES[AggregateKind.PURCHASE_ORDER]
        payout = _TABLES[AggregateKind.PAYOUT]

        def open_filter(tables: _KindTables):
            return and_(
                tables.transaction.confirmed_at.is_(None),
                tables.transaction.failed_at.is_(None),
                Network.chain_id == chain_id,
                tables.aggregate.pending_at.isnot(None),
                tables.aggregate.confirmed_at.is_(None),
            )

        queries = [
            (
                AggregateKind.MARKETPLACE_ACTIVATION,
                select(
                    activation.transaction.id,
                    activation.parent,
                    activation.transaction.hash,
                    NetworkMarketplace.smart_contract_address,
                )
                .join(Network, Network.id == activation.transaction.network_id)
                .join(SellerMarketplace, SellerMarketplace.id == activation.parent)
                .join(NetworkMarketplace, NetworkMarketplace.id == SellerMarketplace.network_marketplace_id)
                .where(open_filter(activation))
            ),
            (
                AggregateKind.PURCHASE_ORDER,
                select(
                    order.transaction.id,
                    order.parent,
                    order.transaction.hash,
                    SellerMarketplace.smart_contract_address,
                )
                .join(Network, Network.id == order.transaction.network_id)
                .join(ProductOrder, ProductOrder.id == order.parent)
                .join(SellerMarketplace, SellerMarketplace.id == ProductOrder.seller_marketplace_id)
                .where(
                    open_filter(order),
                    ProductOrder.cancelled_at.is_(None),
                    ProductOrder.refunded_at.is_(None),
                )
            ),
            (
                AggregateKind.PAYOUT,
                select(
                    payout.transaction.id,
                    payout.parent,
                    payout.transaction.hash,
                    SellerMarketplace.smart_contract_address,
                )
                .join(Network, Network.id == payout.transaction.network_id)
                .join(SellerPayout, SellerPayout.id == payout.parent)
                .join(SellerMarketplace, SellerMarketplace.id == SellerPayout.seller_marketplace_id)
                .where(open_filter(payout), SellerPayout.cancelled_at.is_(None))
            ),
        ]

        open_transactions: List[OpenTransaction] = []
        async with self.session_maker() as session:
            for kind, query in queries:
                result = await session.execute(query)
                for transaction_id, aggregate_id, tx_hash, contract_address in result:
                    open_transactions.append(OpenTransaction(
                        kind=kind,
                        transaction_id=transaction_id,
                        aggregate_id=aggregate_id,
                        hash=tx_hash,
                        contract_address=contract_address,
                    ))

        self.logger.debug(
            "Loaded open transactions",
            chain_id=chain_id,
            count=len(open_transactions)
        )
        return open_transactions

    async def list_sale_totals(self, seller_id: str) -> List[SaleTotal]:
        async with self.session_maker() as session:
            return await _sale_totals(session, seller_id)

    async def list_payout_amounts(self, seller_id: str) -> List[PayoutAmount]:
        async with self.session_maker() as session:
            return await _payout_amounts(session, seller_id)

    async def get_aggregate(
        self,
        kind: AggregateKind,
        aggregate_id: str
    ) -> Optional[AggregateState]:
        async with self.session_maker() as session:
            return await _load_aggregate(session, kind, aggregate_id)

    async def get_transaction(
        self,
        kind: AggregateKind,
        transaction_id: str
    ) -> Optional[TransactionState]:
        tables = _TABLES[kind]
        async with self.session_maker() as session:
            row = await session.get(tables.transaction, transaction_id)
            if row is None:
                return None
            return _to_transaction_state(row, tables.parent_column)

    async def get_payout_target(
        self,
        seller_id: str,
        seller_marketplace_id: str,
        seller_marketplace_token_id: str
    ) -> Optional[PayoutTarget]:
        async with self.session_maker() as session:
            marketplace = await session.get(SellerMarketplace, seller_marketplace_id)
            if marketplace is None:
                return None

            token = (await session.execute(
                select(
                    SellerMarketplaceToken.id,
                    NetworkMarketplaceToken.symbol,
                    NetworkMarketplaceToken.decimals,
                )
                .join(
                    NetworkMarketplaceToken,
                    NetworkMarketplaceToken.id == SellerMarketplaceToken.network_marketplace_token_id
                )
                .where(
                    SellerMarketplaceToken.id == seller_marketplace_token_id,
                    SellerMarketplaceToken.seller_marketplace_id == seller_marketplace_id,
                )
            )).first()

        return PayoutTarget(
            seller_marketplace_id=marketplace.id,
            seller_id=marketplace.seller_id,
            confirmed_at=marketplace.confirmed_at,
            seller_marketplace_token_id=token.id if token else None,
            symbol=token.symbol if token else None,
            decimals=token.decimals if token else None,
        )
