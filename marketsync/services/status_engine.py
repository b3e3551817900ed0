"""
Status derivation for marketplace activations, purchase orders and payouts.

An aggregate's status is never stored. It is derived from the four optional
markers (refunded_at, cancelled_at, confirmed_at, pending_at) checked in
that order, and cross-checked against the attached transactions. Any
disagreement between markers and transactions is an invariant violation.
"""

from marketsync.core.exceptions import InvariantViolation, Reason
from .types import AggregateState, AggregateStatus, TransactionState, TransactionStatus


def transaction_status(transaction: TransactionState) -> TransactionStatus:
    """Status of a single transaction."""
    if transaction.confirmed_at is not None:
        return TransactionStatus.CONFIRMED
    if transaction.failed_at is not None:
        return TransactionStatus.FAILED
    return TransactionStatus.AWAITING_CONFIRMATION


def _violation(aggregate: AggregateState, reason: Reason) -> InvariantViolation:
    return InvariantViolation(aggregate.kind, reason, {"aggregate_id": aggregate.id})


def derive_status(aggregate: AggregateState) -> AggregateStatus:
    """
    Derive the status of an aggregate from its markers and transactions.

    Raises:
        InvariantViolation: markers and transactions disagree
    """
    kind = aggregate.kind
    confirmed = aggregate.confirmed_transactions
    has_open = bool(aggregate.open_transactions)

    if aggregate.refunded_at is not None and not kind.supports_refund:
        raise _violation(aggregate, Reason.UNSUPPORTED_MARKER)
    if aggregate.cancelled_at is not None and not kind.supports_cancellation:
        raise _violation(aggregate, Reason.UNSUPPORTED_MARKER)

    if len(confirmed) > 1:
        raise _violation(aggregate, Reason.MULTIPLE_CONFIRMED_TRANSACTIONS)
    if len(aggregate.open_transactions) > 1:
        raise _violation(aggregate, Reason.MULTIPLE_OPEN_TRANSACTIONS)

    if aggregate.refunded_at is not None:
        if len(confirmed) != 1:
            raise _violation(aggregate, Reason.REFUNDED_MUST_HAVE_CONFIRMED_TRANSACTION)
        if has_open:
            raise _violation(aggregate, Reason.REFUNDED_MUST_NOT_HAVE_PENDING_TRANSACTIONS)
        return AggregateStatus.REFUNDED

    if aggregate.cancelled_at is not None:
        if confirmed:
            raise _violation(aggregate, Reason.CANCELLED_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS)
        if has_open:
            raise _violation(aggregate, Reason.CANCELLED_MUST_NOT_HAVE_PENDING_TRANSACTIONS)
        return AggregateStatus.CANCELLED

    if aggregate.confirmed_at is not None:
        if len(confirmed) != 1:
            raise _violation(aggregate, Reason.CONFIRMED_MUST_HAVE_CONFIRMED_TRANSACTION)
        if has_open:
            raise _violation(aggregate, Reason.CONFIRMED_MUST_NOT_HAVE_PENDING_TRANSACTIONS)
        transaction = confirmed[0]
        if transaction.gas is None or transaction.transaction_fee is None:
            raise _violation(aggregate, Reason.CONFIRMED_TRANSACTION_INCOMPLETE)
        return AggregateStatus.CONFIRMED

    if aggregate.pending_at is not None:
        if not aggregate.transactions:
            raise _violation(aggregate, Reason.PENDING_MUST_HAVE_TRANSACTIONS)
        if confirmed:
            raise _violation(aggregate, Reason.PENDING_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS)
        if has_open:
            return AggregateStatus.AWAITING_CONFIRMATION
        return AggregateStatus.PENDING

    if aggregate.transactions:
        raise _violation(aggregate, Reason.DRAFT_MUST_NOT_HAVE_TRANSACTIONS)
    return AggregateStatus.DRAFT
