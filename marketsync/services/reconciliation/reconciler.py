"""
Blockchain reconciler.

One pass over a network:
1. Validate the chain id and resolve the network and its clients
2. Load open transactions of pending aggregates
3. Ask the data provider for outcomes, one request per target contract
4. Apply every outcome as its own unit of work, cross-checking successful
   orders, payouts and activations against the contracts
"""

import asyncio
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Tuple

import structlog

from marketsync.blockchain.interfaces import (
    BlockchainClient,
    BlockchainClientFactory,
    MarketplaceClient,
    MarketplaceClientFactory,
    SellerMarketplaceClient,
    SellerMarketplaceClientFactory,
)
from marketsync.blockchain.types import ZERO_ADDRESS, BlockchainTransaction
from marketsync.core.exceptions import (
    BlockchainProviderError,
    ClientError,
    InternalError,
    Reason,
    ValidationError,
)
from marketsync.repositories.base import LedgerRepository, LedgerUnitOfWork
from ..income_split import format_amount, split_income, to_base_units
from ..status_engine import derive_status
from ..types import (
    ActivationDetails,
    AggregateKind,
    AggregateState,
    AggregateStatus,
    NewSale,
    NetworkRecord,
    OpenTransaction,
    OrderDetails,
    PayoutDetails,
    TransactionState,
)
from .types import ReconciliationReport, UnitOutcome

logger = structlog.get_logger(__name__)

TRANSACTION_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


class _Clients:
    def __init__(
        self,
        blockchain: BlockchainClient,
        seller_marketplace: SellerMarketplaceClient,
        marketplace: MarketplaceClient
    ):
        self.blockchain = blockchain
        self.seller_marketplace = seller_marketplace
        self.marketplace = marketplace


class BlockchainReconciler:
    """
    Applies blockchain transaction outcomes to the ledger.

    Passes for the same chain id are serialised inside the process. Across
    processes each unit re-checks that its transaction is still open under
    a row lock, and sales are unique per order transaction, so overlapping
    passes do not double-apply an outcome.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        client_factory: BlockchainClientFactory,
        seller_marketplace_client_factory: SellerMarketplaceClientFactory,
        marketplace_client_factory: MarketplaceClientFactory
    ):
        self.repository = repository
        self.client_factory = client_factory
        self.seller_marketplace_client_factory = seller_marketplace_client_factory
        self.marketplace_client_factory = marketplace_client_factory
        self.logger = logger.bind(service="blockchain_reconciler")
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, chain_id: int) -> asyncio.Lock:
        if chain_id not in self._locks:
            self._locks[chain_id] = asyncio.Lock()
        return self._locks[chain_id]

    async def reconcile_network(self, chain_id: int) -> ReconciliationReport:
        """
        Run one reconciliation pass over the network.

        Returns:
            ReconciliationReport of the pass

        Raises:
            ValidationError: chain_id is not a positive integer
            ClientError: no network with this chain id
            BlockchainProviderError: a provider call failed, the pass stopped
            InternalError: a client is missing, or some units could not be
                applied (reason reconciliation_incomplete, report in details)
        """
        if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
            raise ValidationError(["networkChainId: Number must be greater than 0"])

        network = await self.repository.get_network(chain_id)
        if network is None:
            raise ClientError(
                f"Network with chain id {chain_id} does not exist",
                Reason.NETWORK_DOES_NOT_EXIST,
                {"chain_id": chain_id}
            )

        async with self._lock_for(chain_id):
            return await self._run_pass(network)

    def _resolve_clients(self, chain_id: int) -> _Clients:
        blockchain = self.client_factory.get_client(chain_id)
        if blockchain is None:
            raise InternalError(
                f"Blockchain client for chain {chain_id} does not exist",
                Reason.BLOCKCHAIN_CLIENT_DOES_NOT_EXIST,
                {"chain_id": chain_id}
            )

        seller_marketplace = self.seller_marketplace_client_factory.get_client(chain_id)
        if seller_marketplace is None:
            raise InternalError(
                f"Seller marketplace client for chain {chain_id} does not exist",
                Reason.SELLER_MARKETPLACE_CLIENT_DOES_NOT_EXIST,
                {"chain_id": chain_id}
            )

        marketplace = self.marketplace_client_factory.get_client(chain_id)
        if marketplace is None:
            raise InternalError(
                f"Marketplace client for chain {chain_id} does not exist",
                Reason.MARKETPLACE_CLIENT_DOES_NOT_EXIST,
                {"chain_id": chain_id}
            )

        return _Clients(blockchain, seller_marketplace, marketplace)

    def _group_by_contract(
        self,
        open_transactions: List[OpenTransaction],
        report: ReconciliationReport
    ) -> Dict[str, Dict[str, OpenTransaction]]:
        groups: Dict[str, Dict[str, OpenTransaction]] = defaultdict(dict)
        for open_tx in open_transactions:
            if not TRANSACTION_HASH_PATTERN.match(open_tx.hash):
                self.logger.warning(
                    "Skipping transaction with malformed hash",
                    aggregate_kind=open_tx.kind.value,
                    transaction_id=open_tx.transaction_id,
                    transaction_hash=open_tx.hash
                )
                report.transactions_skipped += 1
                continue

            if not open_tx.contract_address:
                self.logger.warning(
                    "Skipping transaction without target contract",
                    aggregate_kind=open_tx.kind.value,
                    transaction_id=open_tx.transaction_id,
                    aggregate_id=open_tx.aggregate_id
                )
                report.transactions_skipped += 1
                continue

            groups[open_tx.contract_address.lower()][open_tx.hash.lower()] = open_tx
        return groups

    async def _run_pass(self, network: NetworkRecord) -> ReconciliationReport:
        chain_id = network.chain_id
        report = ReconciliationReport(chain_id=chain_id, start_time=datetime.now(timezone.utc))
        log = self.logger.bind(chain_id=chain_id)

        try:
            clients = self._resolve_clients(chain_id)
        except InternalError as e:
            log.error("Reconciliation clients unavailable", **e.to_dict())
            raise

        open_transactions = await self.repository.list_open_transactions(chain_id)
        groups = self._group_by_contract(open_transactions, report)
        report.transactions_requested = sum(len(hashes) for hashes in groups.values())

        if not groups:
            report.end_time = datetime.now(timezone.utc)
            log.info("No open transactions to reconcile", skipped=report.transactions_skipped)
            return report

        log.info(
            "Starting reconciliation pass",
            network=network.title,
            contracts=len(groups),
            transactions=report.transactions_requested
        )

        for contract_address, requested in groups.items():
            try:
                outcomes = await clients.blockchain.get_transactions(
                    contract_address, list(requested.keys())
                )
            except BlockchainProviderError as e:
                log.error(
                    "Blockchain provider failed, aborting pass",
                    contract_address=contract_address,
                    **e.to_dict()
                )
                raise

            applied = set()
            for outcome in outcomes:
                outcome_hash = outcome.hash.lower()
                open_tx = requested.get(outcome_hash)
                if open_tx is None or outcome_hash in applied:
                    continue
                applied.add(outcome_hash)
                await self._apply_safely(open_tx, outcome, clients, report, log)

            report.transactions_still_pending += len(requested) - len(applied)

        report.end_time = datetime.now(timezone.utc)

        if report.units_failed:
            log.error(
                "Reconciliation pass incomplete",
                units_failed=report.units_failed,
                failures=report.failures
            )
            raise InternalError(
                f"Reconciliation of chain {chain_id} left {report.units_failed} transaction(s) unapplied",
                Reason.RECONCILIATION_INCOMPLETE,
                {"chain_id": chain_id, "failures": report.failures, "report": report.to_dict()}
            )

        log.info(
            "Reconciliation pass completed",
            confirmed=report.transactions_confirmed,
            failed=report.transactions_failed,
            still_pending=report.transactions_still_pending,
            skipped=report.transactions_skipped,
            sales_created=report.sales_created,
            duration=f"{report.duration:.2f}s"
        )
        return report

    async def _apply_safely(
        self,
        open_tx: OpenTransaction,
        outcome: BlockchainTransaction,
        clients: _Clients,
        report: ReconciliationReport,
        log
    ) -> None:
        unit_log = log.bind(
            aggregate_kind=open_tx.kind.value,
            aggregate_id=open_tx.aggregate_id,
            transaction_hash=open_tx.hash
        )
        try:
            result, sale_created = await self._apply_outcome(open_tx, outcome, clients)
        except BlockchainProviderError as e:
            unit_log.error("Blockchain provider failed, aborting pass", **e.to_dict())
            raise
        except InternalError as e:
            unit_log.error("Unable to apply transaction outcome", **e.to_dict())
            report.units_failed += 1
            report.failures.append({
                "aggregate_kind": open_tx.kind.value,
                "aggregate_id": open_tx.aggregate_id,
                "transaction_hash": open_tx.hash,
                "code": e.code,
                "message": e.message,
            })
            return

        if result is UnitOutcome.CONFIRMED:
            report.transactions_confirmed += 1
        elif result is UnitOutcome.FAILED:
            report.transactions_failed += 1
        else:
            report.transactions_skipped += 1
        if sale_created:
            report.sales_created += 1

        unit_log.info("Transaction outcome applied", result=result.value, sale_created=sale_created)

    async def _apply_outcome(
        self,
        open_tx: OpenTransaction,
        outcome: BlockchainTransaction,
        clients: _Clients
    ) -> Tuple[UnitOutcome, bool]:
        sale_created = False

        async with self.repository.unit_of_work() as uow:
            aggregate = await uow.load_aggregate(open_tx.kind, open_tx.aggregate_id)
            transaction = aggregate.find_transaction(open_tx.transaction_id) if aggregate else None
            if transaction is None or not transaction.is_open:
                return UnitOutcome.SKIPPED, False

            status = derive_status(aggregate)
            if status is not AggregateStatus.AWAITING_CONFIRMATION:
                raise self._unexpected_status(aggregate, status, AggregateStatus.AWAITING_CONFIRMATION)

            sender = outcome.sender_address.lower()

            if not outcome.success:
                await uow.record_transaction_outcome(
                    open_tx.kind,
                    transaction.id,
                    sender_address=sender,
                    gas=outcome.gas,
                    transaction_fee=outcome.gas_value,
                    blockchain_error=outcome.error,
                    failed_at=outcome.timestamp,
                )
                result, expected = UnitOutcome.FAILED, AggregateStatus.PENDING
            else:
                if open_tx.kind is AggregateKind.MARKETPLACE_ACTIVATION:
                    await self._confirm_activation(uow, aggregate, transaction, outcome, clients.marketplace)
                elif open_tx.kind is AggregateKind.PAYOUT:
                    await self._confirm_payout(uow, aggregate, transaction, outcome)
                else:
                    sale_created = await self._confirm_order(
                        uow, aggregate, transaction, outcome, clients.seller_marketplace
                    )
                result, expected = UnitOutcome.CONFIRMED, AggregateStatus.CONFIRMED

            refreshed = await uow.load_aggregate(open_tx.kind, open_tx.aggregate_id)
            status = derive_status(refreshed)
            if status is not expected:
                raise self._unexpected_status(refreshed, status, expected)

        return result, sale_created

    def _unexpected_status(
        self,
        aggregate: AggregateState,
        status: AggregateStatus,
        expected: AggregateStatus
    ) -> InternalError:
        return InternalError(
            f"{aggregate.kind.label.capitalize()} {aggregate.id} is {status.value}, expected {expected.value}",
            Reason.UNEXPECTED_STATUS,
            {"aggregate_id": aggregate.id, "status": status.value, "expected": expected.value}
        )

    async def _confirm_transaction(
        self,
        uow: LedgerUnitOfWork,
        kind: AggregateKind,
        transaction: TransactionState,
        outcome: BlockchainTransaction
    ) -> None:
        await uow.record_transaction_outcome(
            kind,
            transaction.id,
            sender_address=outcome.sender_address.lower(),
            gas=outcome.gas,
            transaction_fee=outcome.gas_value,
            confirmed_at=outcome.timestamp,
        )

    async def _confirm_activation(
        self,
        uow: LedgerUnitOfWork,
        aggregate: AggregateState,
        transaction: TransactionState,
        outcome: BlockchainTransaction,
        marketplace_client: MarketplaceClient
    ) -> None:
        details: ActivationDetails = aggregate.details
        contract_address = await marketplace_client.get_seller_marketplace_address(
            details.network_marketplace_address,
            details.seller_id,
            aggregate.id
        )
        if contract_address is None:
            raise InternalError(
                f"Seller marketplace {aggregate.id} is not deployed on chain",
                Reason.ONCHAIN_SELLER_MARKETPLACE_NOT_FOUND,
                {"seller_marketplace_id": aggregate.id, "seller_id": details.seller_id}
            )

        contract_address = contract_address.lower()
        if await uow.seller_marketplace_address_taken(contract_address, aggregate.id):
            raise InternalError(
                f"Seller marketplace address {contract_address} is already in use",
                Reason.SELLER_MARKETPLACE_ADDRESS_NOT_UNIQUE,
                {"seller_marketplace_id": aggregate.id, "address": contract_address}
            )

        await self._confirm_transaction(uow, aggregate.kind, transaction, outcome)
        await uow.confirm_aggregate(
            aggregate.kind,
            aggregate.id,
            outcome.timestamp,
            owner_wallet_address=outcome.sender_address.lower(),
            smart_contract_address=contract_address,
        )

    async def _confirm_payout(
        self,
        uow: LedgerUnitOfWork,
        aggregate: AggregateState,
        transaction: TransactionState,
        outcome: BlockchainTransaction
    ) -> None:
        details: PayoutDetails = aggregate.details
        owner = (details.owner_wallet_address or "").lower()
        if not owner or owner != outcome.sender_address.lower():
            raise InternalError(
                "Payout transaction was not sent by the seller marketplace owner",
                Reason.PAYOUT_OWNER_MISMATCH,
                {
                    "payout_id": aggregate.id,
                    "sender_address": outcome.sender_address,
                    "owner_wallet_address": details.owner_wallet_address,
                }
            )

        await self._confirm_transaction(uow, aggregate.kind, transaction, outcome)
        await uow.confirm_aggregate(aggregate.kind, aggregate.id, outcome.timestamp)

    async def _confirm_order(
        self,
        uow: LedgerUnitOfWork,
        aggregate: AggregateState,
        transaction: TransactionState,
        outcome: BlockchainTransaction,
        seller_marketplace_client: SellerMarketplaceClient
    ) -> bool:
        details: OrderDetails = aggregate.details
        order = await seller_marketplace_client.get_order(
            details.seller_marketplace_address, aggregate.id
        )
        if order is None:
            raise InternalError(
                f"Order {aggregate.id} does not exist on the seller marketplace contract",
                Reason.ONCHAIN_ORDER_NOT_FOUND,
                {"order_id": aggregate.id, "seller_marketplace_address": details.seller_marketplace_address}
            )

        if order.buyer_address.lower() != outcome.sender_address.lower():
            raise InternalError(
                "On-chain order buyer does not match the transaction sender",
                Reason.ONCHAIN_ORDER_BUYER_MISMATCH,
                {"order_id": aggregate.id, "buyer_address": order.buyer_address,
                 "sender_address": outcome.sender_address}
            )

        expected_contract = (details.token_contract_address or ZERO_ADDRESS).lower()
        if order.payment_contract.lower() != expected_contract:
            raise InternalError(
                "On-chain order payment contract does not match the order token",
                Reason.ONCHAIN_ORDER_PAYMENT_CONTRACT_MISMATCH,
                {"order_id": aggregate.id, "payment_contract": order.payment_contract,
                 "token_contract_address": expected_contract}
            )

        try:
            expected_price = to_base_units(details.price, details.price_decimals)
            split = split_income(details.price, details.commission_rate, details.price_decimals)
        except ValidationError as e:
            raise InternalError(
                f"Order {aggregate.id} has an invalid stored price: {e.message}",
                Reason.INVALID_STORED_AMOUNT,
                {"order_id": aggregate.id, "errors": e.errors}
            ) from e

        if order.price != expected_price:
            raise InternalError(
                "On-chain order price does not match the order price",
                Reason.ONCHAIN_ORDER_PRICE_MISMATCH,
                {"order_id": aggregate.id, "onchain_price": str(order.price),
                 "expected_price": str(expected_price)}
            )

        await self._confirm_transaction(uow, aggregate.kind, transaction, outcome)
        await uow.confirm_aggregate(aggregate.kind, aggregate.id, outcome.timestamp)

        if await uow.sale_exists_for_transaction(transaction.id):
            return False

        await uow.create_sale(NewSale(
            seller_id=details.seller_id,
            product_id=details.product_id,
            seller_marketplace_id=details.seller_marketplace_id,
            seller_marketplace_token_id=details.seller_marketplace_token_id,
            product_order_transaction_id=transaction.id,
            seller_income=split.seller_income,
            seller_income_formatted=format_amount(split.seller_income, details.token_symbol),
            platform_income=split.platform_income,
            platform_income_formatted=format_amount(split.platform_income, details.token_symbol),
            decimals=split.decimals,
        ))
        return True
