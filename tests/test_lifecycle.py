"""
Test lifecycle commands: creating marketplaces and orders, attaching transactions,
cancelling and requesting payouts.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from marketsync.core.exceptions import (
    ClientError,
    ConflictError,
    InternalError,
    InvariantViolation,
    Reason,
    ValidationError,
)
from marketsync.services.lifecycle import LifecycleService, normalize_transaction_hash
from marketsync.services.types import AggregateKind, AggregateStatus, ProductOffer, TransactionStatus

from tests.fakes import (
    BUYER_ID,
    COIN_TOKEN_ID,
    NETWORK_MARKETPLACE_ID,
    OWNER_WALLET,
    SELLER_ID,
    SELLER_MARKETPLACE_ADDRESS,
    SELLER_MARKETPLACE_ID,
    T0,
    InMemoryLedgerRepository,
    make_activation,
    make_order,
    make_payout,
    transaction,
    tx_hash,
)

ORDER = AggregateKind.PURCHASE_ORDER
ACTIVATION = AggregateKind.MARKETPLACE_ACTIVATION


@pytest.fixture
def service(repository, settings):
    return LifecycleService(repository, settings)


def _draft_order(repository, order_id="order-1"):
    return repository.add_aggregate(make_order(order_id, pending_at=None))


def _fail_open_transactions(repository, kind, aggregate_id):
    aggregate = repository.aggregate(kind, aggregate_id)
    transactions = tuple(
        replace(tx, failed_at=T0, blockchain_error="Contract error") if tx.is_open else tx
        for tx in aggregate.transactions
    )
    repository.add_aggregate(replace(aggregate, transactions=transactions))


def test_normalize_transaction_hash():
    """Test that hashes are trimmed and lower-cased."""
    raw = "  0x" + "AB" * 32 + " "
    assert normalize_transaction_hash(raw) == "0x" + "ab" * 32


@pytest.mark.parametrize("value", ["", "0x123", "ab" * 33, "0x" + "g" * 64, None])
def test_normalize_transaction_hash_rejects_malformed(value):
    """Test that anything but a 32 byte hex hash is rejected."""
    with pytest.raises(ValidationError):
        normalize_transaction_hash(value)


@pytest.mark.asyncio
async def test_add_transaction_to_draft_marks_pending(service, repository):
    """Test that the first transaction moves a draft to awaiting confirmation."""
    _draft_order(repository)

    transaction_id = await service.add_transaction(ORDER, BUYER_ID, "order-1", " " + tx_hash(1).upper())

    order = repository.aggregate(ORDER, "order-1")
    assert order.pending_at is not None
    assert order.transactions[0].id == transaction_id
    assert order.transactions[0].hash == tx_hash(1)
    assert await service.get_status(ORDER, BUYER_ID, "order-1") is AggregateStatus.AWAITING_CONFIRMATION
    assert await service.get_transaction_status(ORDER, BUYER_ID, "order-1", transaction_id) \
        is TransactionStatus.AWAITING_CONFIRMATION


@pytest.mark.asyncio
async def test_add_transaction_requires_ownership(service, repository):
    """Test that another user's order looks like a missing one."""
    _draft_order(repository)

    with pytest.raises(ClientError) as exc_info:
        await service.add_transaction(ORDER, "someone-else", "order-1", tx_hash(1))
    assert exc_info.value.reason is Reason.AGGREGATE_DOES_NOT_EXIST
    assert exc_info.value.message == "Order does not exist"

    with pytest.raises(ClientError):
        await service.add_transaction(ORDER, BUYER_ID, "missing", tx_hash(1))


@pytest.mark.asyncio
async def test_add_transaction_while_awaiting_is_conflict(service, repository):
    """Test that only one open transaction is allowed."""
    _draft_order(repository)
    await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))

    with pytest.raises(ConflictError) as exc_info:
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(2))
    assert exc_info.value.reason is Reason.PENDING_TRANSACTION_EXISTS


@pytest.mark.asyncio
async def test_retry_after_failed_transaction(service, repository):
    """Test that a pending order accepts a new transaction after a failure."""
    _draft_order(repository)
    await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))
    _fail_open_transactions(repository, ORDER, "order-1")
    pending_at = repository.aggregate(ORDER, "order-1").pending_at

    await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(2))

    order = repository.aggregate(ORDER, "order-1")
    assert len(order.transactions) == 2
    assert order.pending_at == pending_at


@pytest.mark.asyncio
async def test_duplicate_hash_is_conflict(service, repository):
    """Test that a hash can be submitted once per network and kind."""
    _draft_order(repository)
    _draft_order(repository, "order-2")
    await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))

    with pytest.raises(ConflictError) as exc_info:
        await service.add_transaction(ORDER, BUYER_ID, "order-2", tx_hash(1))
    assert exc_info.value.reason is Reason.TRANSACTION_HASH_EXISTS
    assert repository.aggregate(ORDER, "order-2").pending_at is None


@pytest.mark.asyncio
async def test_attempts_are_capped(repository, settings):
    """Test that an aggregate accepts a limited number of failed attempts."""
    service = LifecycleService(repository, settings.model_copy(update={"max_transaction_attempts": 2}))
    _draft_order(repository)

    for n in (1, 2):
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(n))
        _fail_open_transactions(repository, ORDER, "order-1")

    with pytest.raises(ConflictError) as exc_info:
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(3))
    assert exc_info.value.reason is Reason.TRANSACTION_ATTEMPTS_EXHAUSTED


@pytest.mark.asyncio
async def test_unlimited_attempts(repository, settings):
    """Test that a zero cap disables the attempt limit."""
    service = LifecycleService(repository, settings.model_copy(update={"max_transaction_attempts": 0}))
    _draft_order(repository)

    for n in range(1, 8):
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(n))
        _fail_open_transactions(repository, ORDER, "order-1")

    assert len(repository.aggregate(ORDER, "order-1").transactions) == 7


@pytest.mark.asyncio
@pytest.mark.parametrize("markers, reason", [
    ({"confirmed_at": T0}, Reason.ALREADY_CONFIRMED),
    ({"confirmed_at": T0, "refunded_at": T0}, Reason.ALREADY_REFUNDED),
])
async def test_add_transaction_to_settled_order_is_conflict(service, repository, markers, reason):
    """Test that settled orders accept no more transactions."""
    repository.add_aggregate(make_order(
        transactions=(transaction("tx-1", "order-1", 1, confirmed=True),), **markers
    ))

    with pytest.raises(ConflictError) as exc_info:
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(2))
    assert exc_info.value.reason is reason


@pytest.mark.asyncio
async def test_add_transaction_to_cancelled_order_is_conflict(service, repository):
    """Test that a cancelled order accepts no more transactions."""
    repository.add_aggregate(make_order(pending_at=None, cancelled_at=T0))

    with pytest.raises(ConflictError) as exc_info:
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))
    assert exc_info.value.reason is Reason.ALREADY_CANCELLED


@pytest.mark.asyncio
async def test_add_transaction_to_corrupt_order_raises_invariant(service, repository):
    """Test that corrupted markers surface as invariant violations."""
    repository.add_aggregate(make_order(transactions=()))

    with pytest.raises(InvariantViolation) as exc_info:
        await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))
    assert exc_info.value.reason is Reason.PENDING_MUST_HAVE_TRANSACTIONS


@pytest.mark.asyncio
async def test_cancel_draft_order(service, repository):
    """Test that a draft order can be cancelled."""
    _draft_order(repository)

    await service.cancel_order(BUYER_ID, "order-1")

    assert await service.get_status(ORDER, BUYER_ID, "order-1") is AggregateStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_awaiting_order_is_conflict(service, repository):
    """Test that an order waiting for its transaction cannot be cancelled."""
    _draft_order(repository)
    await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))

    with pytest.raises(ConflictError) as exc_info:
        await service.cancel_order(BUYER_ID, "order-1")
    assert exc_info.value.reason is Reason.CANNOT_BE_CANCELLED
    assert repository.aggregate(ORDER, "order-1").cancelled_at is None


@pytest.mark.asyncio
async def test_cancel_pending_order_after_failure(service, repository):
    """Test that an order whose transactions failed can be cancelled."""
    _draft_order(repository)
    await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))
    _fail_open_transactions(repository, ORDER, "order-1")

    await service.cancel_order(BUYER_ID, "order-1")

    assert await service.get_status(ORDER, BUYER_ID, "order-1") is AggregateStatus.CANCELLED


@pytest.mark.asyncio
async def test_get_transaction_status_of_other_aggregate(service, repository):
    """Test that transactions are only visible through their own aggregate."""
    _draft_order(repository)
    _draft_order(repository, "order-2")
    transaction_id = await service.add_transaction(ORDER, BUYER_ID, "order-1", tx_hash(1))

    with pytest.raises(ClientError) as exc_info:
        await service.get_transaction_status(ORDER, BUYER_ID, "order-2", transaction_id)
    assert exc_info.value.reason is Reason.TRANSACTION_DOES_NOT_EXIST


@pytest.fixture
def marketplace_repository(repository):
    repository.add_aggregate(make_activation(
        pending_at=T0,
        confirmed_at=T0,
        smart_contract_address=SELLER_MARKETPLACE_ADDRESS,
        owner_wallet_address=OWNER_WALLET,
        transactions=(transaction("activation-tx", SELLER_MARKETPLACE_ID, 90, confirmed=True),),
    ))
    return repository


@pytest.mark.asyncio
async def test_create_payout_requires_confirmed_marketplace(service, repository):
    """Test that payouts need an activated marketplace of the seller."""
    repository.add_aggregate(make_activation())

    with pytest.raises(ClientError) as exc_info:
        await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert exc_info.value.reason is Reason.MARKETPLACE_DOES_NOT_EXIST

    with pytest.raises(ClientError):
        await service.create_payout(SELLER_ID, "missing", COIN_TOKEN_ID)


@pytest.mark.asyncio
async def test_create_payout_of_other_seller(service, marketplace_repository):
    """Test that a seller cannot withdraw from someone else's marketplace."""
    with pytest.raises(ClientError) as exc_info:
        await service.create_payout("seller-2", SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert exc_info.value.reason is Reason.MARKETPLACE_DOES_NOT_EXIST


@pytest.mark.asyncio
async def test_create_payout_for_unknown_token(service, marketplace_repository):
    """Test that the token must belong to the marketplace."""
    with pytest.raises(ClientError) as exc_info:
        await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, "missing-token")
    assert exc_info.value.reason is Reason.MARKETPLACE_TOKEN_DOES_NOT_EXIST


@pytest.mark.asyncio
async def test_create_payout_with_nothing_to_request(service, marketplace_repository):
    """Test that an empty balance cannot be withdrawn."""
    with pytest.raises(ClientError) as exc_info:
        await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert exc_info.value.reason is Reason.NOTHING_TO_REQUEST


@pytest.mark.asyncio
async def test_create_payout_with_unsettled_payout(service, marketplace_repository):
    """Test that one unsettled payout per token is allowed."""
    marketplace_repository.add_sale(Decimal("1"))
    await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    marketplace_repository.add_sale(Decimal("1"))

    with pytest.raises(ConflictError) as exc_info:
        await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert exc_info.value.reason is Reason.PENDING_PAYOUT_EXISTS


@pytest.mark.asyncio
async def test_create_payout_with_negative_balance(service, marketplace_repository):
    """Test that an overdrawn balance is an internal error."""
    marketplace_repository.add_sale(Decimal("1"))
    marketplace_repository.add_aggregate(make_payout(
        amount=Decimal("2"),
        pending_at=T0,
        confirmed_at=T0,
        transactions=(transaction("payout-tx", "payout-1", 91, confirmed=True),),
    ))

    with pytest.raises(InternalError) as exc_info:
        await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert exc_info.value.reason is Reason.BALANCE_NEGATIVE


@pytest.mark.asyncio
async def test_create_payout_after_confirmed_payout(service, marketplace_repository):
    """Test that new income can be withdrawn once earlier payouts settled."""
    marketplace_repository.add_sale(Decimal("1"))
    marketplace_repository.add_aggregate(make_payout(
        amount=Decimal("0.25"),
        pending_at=T0,
        confirmed_at=T0,
        transactions=(transaction("payout-tx", "payout-1", 91, confirmed=True),),
    ))

    payout_id = await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)

    payout = marketplace_repository.aggregate(AggregateKind.PAYOUT, payout_id)
    assert payout.details.amount == Decimal("0.75")
    assert payout.details.owner_wallet_address == OWNER_WALLET
    assert await service.get_status(AggregateKind.PAYOUT, SELLER_ID, payout_id) is AggregateStatus.DRAFT

@pytest.mark.asyncio
async def test_create_payout_locks_marketplace_row(service, marketplace_repository):
    """Test that every payout request locks its seller marketplace before reading the balance."""
    marketplace_repository.add_sale(Decimal("1"))

    await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert marketplace_repository.locks == [SELLER_MARKETPLACE_ID]

    with pytest.raises(ConflictError):
        await service.create_payout(SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID)
    assert marketplace_repository.locks == [SELLER_MARKETPLACE_ID, SELLER_MARKETPLACE_ID]


class UnitBalanceOnlyRepository(InMemoryLedgerRepository):
    """Ledger that refuses balance reads outside a unit of work."""

    async def list_sale_totals(self, seller_id):
        raise AssertionError("sale totals read outside the unit of work")

    async def list_payout_amounts(self, seller_id):
        raise AssertionError("payouts read outside the unit of work")


@pytest.mark.asyncio
async def test_create_payout_reads_balance_inside_unit(settings):
    """Test that the payout amount comes from the same unit that stores the payout."""
    repository = UnitBalanceOnlyRepository()
    repository.add_network()
    repository.add_token()
    repository.add_aggregate(make_activation(
        pending_at=T0,
        confirmed_at=T0,
        smart_contract_address=SELLER_MARKETPLACE_ADDRESS,
        owner_wallet_address=OWNER_WALLET,
        transactions=(transaction("activation-tx", SELLER_MARKETPLACE_ID, 90, confirmed=True),),
    ))
    repository.add_sale(Decimal("0.5"))

    payout_id = await LifecycleService(repository, settings).create_payout(
        SELLER_ID, SELLER_MARKETPLACE_ID, COIN_TOKEN_ID
    )

    assert repository.aggregate(AggregateKind.PAYOUT, payout_id).details.amount == Decimal("0.5")


@pytest.fixture
def network_repository(repository):
    repository.add_network_marketplace()
    return repository


@pytest.mark.asyncio
async def test_create_draft_marketplace(service, network_repository):
    """Test that a new seller marketplace is a draft with the platform tokens enabled."""
    seller_marketplace_id = await service.create_draft_marketplace(SELLER_ID, NETWORK_MARKETPLACE_ID)

    marketplace = network_repository.aggregate(ACTIVATION, seller_marketplace_id)
    assert marketplace.owner_id == SELLER_ID
    assert marketplace.details.network_marketplace_id == NETWORK_MARKETPLACE_ID
    assert marketplace.details.smart_contract_address is None
    assert await service.get_status(ACTIVATION, SELLER_ID, seller_marketplace_id) is AggregateStatus.DRAFT

    tokens = [
        token for token in network_repository.state.tokens.values()
        if token.seller_marketplace_id == seller_marketplace_id
    ]
    assert [(token.symbol, token.decimals) for token in tokens] == [("COIN", 18)]


@pytest.mark.asyncio
async def test_create_draft_marketplace_copies_every_token(service, repository):
    """Test that all tokens of the platform marketplace are copied."""
    repository.add_network_marketplace(tokens=(
        ("network-token-bnb", "tBNB", 18),
        ("network-token-busd", "BUSD", 18),
        ("network-token-usdt", "USDT", 6),
    ))

    seller_marketplace_id = await service.create_draft_marketplace(SELLER_ID, NETWORK_MARKETPLACE_ID)

    symbols = sorted(
        (token.symbol, token.decimals) for token in repository.state.tokens.values()
        if token.seller_marketplace_id == seller_marketplace_id
    )
    assert symbols == [("BUSD", 18), ("USDT", 6), ("tBNB", 18)]


@pytest.mark.asyncio
async def test_create_draft_marketplace_on_unknown_network_marketplace(service, repository):
    """Test that the platform marketplace must exist."""
    with pytest.raises(ClientError) as exc_info:
        await service.create_draft_marketplace(SELLER_ID, "missing")

    assert exc_info.value.reason is Reason.NETWORK_MARKETPLACE_DOES_NOT_EXIST
    assert repository.writes == 0


@pytest.mark.asyncio
async def test_create_draft_marketplace_without_tokens(service, repository):
    """Test that a platform marketplace without tokens is a deployment error."""
    repository.add_network_marketplace(tokens=())

    with pytest.raises(InternalError) as exc_info:
        await service.create_draft_marketplace(SELLER_ID, NETWORK_MARKETPLACE_ID)

    assert exc_info.value.reason is Reason.NETWORK_MARKETPLACE_HAS_NO_TOKENS
    assert exc_info.value.message == "Network marketplace does not have tokens"


@pytest.mark.asyncio
async def test_one_draft_marketplace_per_seller(service, network_repository):
    """Test that a seller keeps one draft until it is deployed."""
    first_id = await service.create_draft_marketplace(SELLER_ID, NETWORK_MARKETPLACE_ID)

    with pytest.raises(ConflictError) as exc_info:
        await service.create_draft_marketplace(SELLER_ID, NETWORK_MARKETPLACE_ID)
    assert exc_info.value.reason is Reason.DRAFT_MARKETPLACE_EXISTS
    assert network_repository.rollbacks == 1

    # Other sellers are not affected
    await service.create_draft_marketplace("seller-2", NETWORK_MARKETPLACE_ID)

    await service.add_transaction(ACTIVATION, SELLER_ID, first_id, tx_hash(5))
    second_id = await service.create_draft_marketplace(SELLER_ID, NETWORK_MARKETPLACE_ID)
    assert second_id != first_id


@pytest.mark.asyncio
async def test_create_order_snapshots_price(service, marketplace_repository):
    """Test that the order keeps the price, its decimals and label at order time."""
    order_id = await service.create_order(
        BUYER_ID, ProductOffer("product-2", COIN_TOKEN_ID, Decimal("0.0100"))
    )

    order = marketplace_repository.aggregate(ORDER, order_id)
    assert order.owner_id == BUYER_ID
    assert order.details.seller_id == SELLER_ID
    assert order.details.seller_marketplace_id == SELLER_MARKETPLACE_ID
    assert order.details.price == Decimal("0.0100")
    assert order.details.price_decimals == 18
    assert marketplace_repository.state.order_prices[order_id] == "0.01 COIN"
    assert await service.get_status(ORDER, BUYER_ID, order_id) is AggregateStatus.DRAFT


@pytest.mark.asyncio
async def test_unpaid_order_blocks_new_order(service, marketplace_repository):
    """Test that a buyer must pay or cancel an order before ordering the product again."""
    offer = ProductOffer("product-2", COIN_TOKEN_ID, Decimal("1"))
    order_id = await service.create_order(BUYER_ID, offer)

    with pytest.raises(ConflictError) as exc_info:
        await service.create_order(BUYER_ID, offer)
    assert exc_info.value.reason is Reason.UNPAID_ORDER_EXISTS
    assert exc_info.value.message == "Unpaid order exists. Please pay or cancel the order"

    # Another buyer or another product is unaffected
    await service.create_order("buyer-2", offer)
    await service.create_order(BUYER_ID, replace(offer, product_id="product-3"))

    await service.cancel_order(BUYER_ID, order_id)
    assert await service.create_order(BUYER_ID, offer) != order_id


@pytest.mark.asyncio
async def test_settled_orders_do_not_block_new_order(service, marketplace_repository):
    """Test that confirmed and refunded orders of the product allow a new order."""
    marketplace_repository.add_aggregate(make_order(
        "order-confirmed", confirmed_at=T0,
        transactions=(transaction("tx-confirmed", "order-confirmed", 92, confirmed=True),),
    ))
    marketplace_repository.add_aggregate(make_order(
        "order-refunded", confirmed_at=T0, refunded_at=T0,
        transactions=(transaction("tx-refunded", "order-refunded", 93, confirmed=True),),
    ))

    order_id = await service.create_order(BUYER_ID, ProductOffer("product-1", COIN_TOKEN_ID, Decimal("1")))
    assert await service.get_status(ORDER, BUYER_ID, order_id) is AggregateStatus.DRAFT


@pytest.mark.asyncio
@pytest.mark.parametrize("activation, reason", [
    (
        make_activation(smart_contract_address=SELLER_MARKETPLACE_ADDRESS, owner_wallet_address=OWNER_WALLET),
        Reason.SELLER_MARKETPLACE_NOT_CONFIRMED,
    ),
    (
        make_activation(pending_at=T0, confirmed_at=T0, owner_wallet_address=OWNER_WALLET),
        Reason.SELLER_MARKETPLACE_WITHOUT_CONTRACT,
    ),
    (
        make_activation(pending_at=T0, confirmed_at=T0, smart_contract_address=SELLER_MARKETPLACE_ADDRESS),
        Reason.SELLER_MARKETPLACE_WITHOUT_OWNER_WALLET,
    ),
])
async def test_create_order_requires_deployed_marketplace(service, repository, activation, reason):
    """Test that orders are only taken by a deployed seller marketplace."""
    repository.add_aggregate(activation)

    with pytest.raises(InternalError) as exc_info:
        await service.create_order(BUYER_ID, ProductOffer("product-2", COIN_TOKEN_ID, Decimal("1")))

    assert exc_info.value.reason is reason
    assert exc_info.value.details["seller_marketplace_id"] == SELLER_MARKETPLACE_ID
    assert repository.writes == 0


@pytest.mark.asyncio
async def test_create_order_for_unknown_token(service, marketplace_repository):
    """Test that the payment token must be enabled on a seller marketplace."""
    with pytest.raises(ClientError) as exc_info:
        await service.create_order(BUYER_ID, ProductOffer("product-2", "missing-token", Decimal("1")))
    assert exc_info.value.reason is Reason.MARKETPLACE_TOKEN_DOES_NOT_EXIST


@pytest.mark.asyncio
@pytest.mark.parametrize("price", [Decimal(0), Decimal("-1")])
async def test_create_order_rejects_non_positive_price(service, marketplace_repository, price):
    """Test that free or negative prices are rejected before any I/O."""
    with pytest.raises(ValidationError) as exc_info:
        await service.create_order(BUYER_ID, ProductOffer("product-2", COIN_TOKEN_ID, price))

    assert exc_info.value.errors == ["price: Number must be greater than 0"]
    assert marketplace_repository.commits == 0
    assert marketplace_repository.rollbacks == 0


@pytest.mark.asyncio
async def test_create_order_rejects_price_finer_than_token(service, marketplace_repository):
    """Test that the price must be payable in whole base units of the token."""
    with pytest.raises(ValidationError):
        await service.create_order(
            BUYER_ID, ProductOffer("product-2", COIN_TOKEN_ID, Decimal("0.0000000000000000001"))
        )
    assert marketplace_repository.writes == 0


if __name__ == "__main__":
    pytest.main([__file__])
