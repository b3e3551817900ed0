"""
Test status derivation for activations, orders and payouts.
"""

from dataclasses import replace

import pytest

from marketsync.core.exceptions import InvariantViolation, Reason
from marketsync.services.status_engine import derive_status, transaction_status
from marketsync.services.types import AggregateKind, AggregateStatus, TransactionStatus

from tests.fakes import T0, make_activation, make_order, make_payout, transaction

ALL_KINDS = [make_activation, make_order, make_payout]


def _bare(builder):
    return replace(builder(), pending_at=None, transactions=())


def _open(aggregate_id):
    return transaction("tx-open", aggregate_id, 1)


def _failed(aggregate_id, n=2):
    return transaction(f"tx-failed-{n}", aggregate_id, n, failed=True)


def _confirmed(aggregate_id, n=3, complete=True):
    return transaction(f"tx-confirmed-{n}", aggregate_id, n, confirmed=True, complete=complete)


def _assert_violation(aggregate, reason):
    with pytest.raises(InvariantViolation) as exc_info:
        derive_status(aggregate)
    assert exc_info.value.reason is reason
    assert exc_info.value.details["aggregate_id"] == aggregate.id
    assert exc_info.value.details["aggregate_kind"] == aggregate.kind.value


def test_transaction_status():
    """Test that a transaction is confirmed, failed or awaiting confirmation."""
    assert transaction_status(_open("a")) is TransactionStatus.AWAITING_CONFIRMATION
    assert transaction_status(_failed("a")) is TransactionStatus.FAILED
    assert transaction_status(_confirmed("a")) is TransactionStatus.CONFIRMED


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_draft(builder):
    """Test that an aggregate without markers or transactions is a draft."""
    assert derive_status(_bare(builder)) is AggregateStatus.DRAFT


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_draft_with_transactions_is_violation(builder):
    """Test that a draft must not carry transactions."""
    aggregate = _bare(builder)
    aggregate = replace(aggregate, transactions=(_failed(aggregate.id),))
    _assert_violation(aggregate, Reason.DRAFT_MUST_NOT_HAVE_TRANSACTIONS)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_awaiting_confirmation(builder):
    """Test that a pending aggregate with an open transaction awaits confirmation."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0,
        transactions=(_failed(aggregate.id), _open(aggregate.id))
    )
    assert derive_status(aggregate) is AggregateStatus.AWAITING_CONFIRMATION


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_pending_after_failed_transactions(builder):
    """Test that a pending aggregate whose transactions all failed is pending."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0,
        transactions=(_failed(aggregate.id, 1), _failed(aggregate.id, 2))
    )
    assert derive_status(aggregate) is AggregateStatus.PENDING


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_pending_without_transactions_is_violation(builder):
    """Test that pending requires at least one transaction."""
    aggregate = replace(_bare(builder), pending_at=T0)
    _assert_violation(aggregate, Reason.PENDING_MUST_HAVE_TRANSACTIONS)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_pending_with_confirmed_transaction_is_violation(builder):
    """Test that a confirmed transaction requires the confirmed marker."""
    aggregate = _bare(builder)
    aggregate = replace(aggregate, pending_at=T0, transactions=(_confirmed(aggregate.id),))
    _assert_violation(aggregate, Reason.PENDING_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_confirmed(builder):
    """Test that a confirmed aggregate has exactly one complete confirmed transaction."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, confirmed_at=T0,
        transactions=(_failed(aggregate.id), _confirmed(aggregate.id))
    )
    assert derive_status(aggregate) is AggregateStatus.CONFIRMED


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_confirmed_without_confirmed_transaction_is_violation(builder):
    """Test that the confirmed marker needs a confirmed transaction."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, confirmed_at=T0, transactions=(_failed(aggregate.id),)
    )
    _assert_violation(aggregate, Reason.CONFIRMED_MUST_HAVE_CONFIRMED_TRANSACTION)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_confirmed_transaction_without_gas_is_violation(builder):
    """Test that the confirming transaction must carry gas and fee."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, confirmed_at=T0,
        transactions=(_confirmed(aggregate.id, complete=False),)
    )
    _assert_violation(aggregate, Reason.CONFIRMED_TRANSACTION_INCOMPLETE)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_multiple_confirmed_transactions_is_violation(builder):
    """Test that no aggregate can hold two confirmed transactions."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, confirmed_at=T0,
        transactions=(_confirmed(aggregate.id, 3), _confirmed(aggregate.id, 4))
    )
    _assert_violation(aggregate, Reason.MULTIPLE_CONFIRMED_TRANSACTIONS)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_multiple_open_transactions_is_violation(builder):
    """Test that an aggregate waits for at most one transaction at a time."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0,
        transactions=(
            transaction("tx-open-1", aggregate.id, 1),
            transaction("tx-open-2", aggregate.id, 2),
        )
    )
    _assert_violation(aggregate, Reason.MULTIPLE_OPEN_TRANSACTIONS)


@pytest.mark.parametrize("builder", ALL_KINDS)
def test_confirmed_with_open_transaction_is_violation(builder):
    """Test that no transaction may be waiting once the aggregate is confirmed."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, confirmed_at=T0,
        transactions=(_confirmed(aggregate.id), _open(aggregate.id))
    )
    _assert_violation(aggregate, Reason.CONFIRMED_MUST_NOT_HAVE_PENDING_TRANSACTIONS)


def test_refunded_order_with_open_transaction_is_violation():
    """Test that a refunded order cannot wait for another payment."""
    order = make_order(
        pending_at=T0, confirmed_at=T0, refunded_at=T0,
        transactions=(_confirmed("order-1"), _open("order-1"))
    )
    _assert_violation(order, Reason.REFUNDED_MUST_NOT_HAVE_PENDING_TRANSACTIONS)


def test_open_transaction_message():
    """Test the message of a confirmed aggregate with a waiting transaction."""
    order = make_order(
        pending_at=T0, confirmed_at=T0,
        transactions=(_confirmed("order-1"), _open("order-1"))
    )
    with pytest.raises(InvariantViolation) as exc_info:
        derive_status(order)
    assert exc_info.value.message == "Confirmed order must not have pending transactions"


@pytest.mark.parametrize("builder", [make_order, make_payout])
def test_cancelled(builder):
    """Test that orders and payouts can be cancelled after failed attempts."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, cancelled_at=T0, transactions=(_failed(aggregate.id),)
    )
    assert derive_status(aggregate) is AggregateStatus.CANCELLED


@pytest.mark.parametrize("builder", [make_order, make_payout])
def test_cancelled_draft(builder):
    """Test that a cancelled draft without transactions is cancelled."""
    aggregate = replace(_bare(builder), cancelled_at=T0)
    assert derive_status(aggregate) is AggregateStatus.CANCELLED


@pytest.mark.parametrize("builder", [make_order, make_payout])
def test_cancelled_with_open_transaction_is_violation(builder):
    """Test that a cancelled aggregate must not wait for a transaction."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, cancelled_at=T0, transactions=(_open(aggregate.id),)
    )
    _assert_violation(aggregate, Reason.CANCELLED_MUST_NOT_HAVE_PENDING_TRANSACTIONS)


@pytest.mark.parametrize("builder", [make_order, make_payout])
def test_cancelled_with_confirmed_transaction_is_violation(builder):
    """Test that a cancelled aggregate must not have been paid."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, cancelled_at=T0, transactions=(_confirmed(aggregate.id),)
    )
    _assert_violation(aggregate, Reason.CANCELLED_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS)


def test_cancelled_wins_over_confirmed_marker():
    """Test that cancellation is checked before confirmation."""
    order = make_order(pending_at=T0, confirmed_at=T0, cancelled_at=T0,
                       transactions=(_failed("order-1"),))
    assert derive_status(order) is AggregateStatus.CANCELLED


def test_refunded_order():
    """Test that a refunded order keeps its single confirmed transaction."""
    order = make_order(
        pending_at=T0, confirmed_at=T0, refunded_at=T0,
        transactions=(_confirmed("order-1"),)
    )
    assert derive_status(order) is AggregateStatus.REFUNDED


def test_refunded_order_without_confirmed_transaction_is_violation():
    """Test that only a paid order can be refunded."""
    order = make_order(refunded_at=T0, transactions=(_failed("order-1"),))
    _assert_violation(order, Reason.REFUNDED_MUST_HAVE_CONFIRMED_TRANSACTION)


def test_cancelled_activation_is_unsupported():
    """Test that marketplace activations cannot be cancelled."""
    activation = replace(make_activation(), cancelled_at=T0)
    _assert_violation(activation, Reason.UNSUPPORTED_MARKER)


@pytest.mark.parametrize("builder", [make_activation, make_payout])
def test_refund_is_unsupported_outside_orders(builder):
    """Test that only orders can be refunded."""
    aggregate = _bare(builder)
    aggregate = replace(
        aggregate, pending_at=T0, confirmed_at=T0, refunded_at=T0,
        transactions=(_confirmed(aggregate.id),)
    )
    _assert_violation(aggregate, Reason.UNSUPPORTED_MARKER)


def test_violation_message_names_the_kind():
    """Test that invariant messages use the aggregate's short name."""
    payout = replace(make_payout(), pending_at=T0)
    with pytest.raises(InvariantViolation) as exc_info:
        derive_status(payout)
    assert exc_info.value.message == "Pending payout must have transactions"
    assert exc_info.value.aggregate_kind is AggregateKind.PAYOUT


if __name__ == "__main__":
    pytest.main([__file__])
