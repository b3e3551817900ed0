"""
Error taxonomy for the reconciliation engine.

Every error carries a kind (validation, client, conflict, internal) and a
structured reason code. Callers branch on the kind; operators search logs
by the code.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from marketsync.services.types import AggregateKind


class ErrorKind(str, Enum):
    """Top-level error categories."""
    VALIDATION = "validation"
    CLIENT = "client"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class Reason(str, Enum):
    """Structured reason codes."""

    # Validation
    INVALID_REQUEST = "invalid_request"

    # Client
    NETWORK_DOES_NOT_EXIST = "network_does_not_exist"
    AGGREGATE_DOES_NOT_EXIST = "aggregate_does_not_exist"
    TRANSACTION_DOES_NOT_EXIST = "transaction_does_not_exist"
    MARKETPLACE_DOES_NOT_EXIST = "marketplace_does_not_exist"
    MARKETPLACE_TOKEN_DOES_NOT_EXIST = "marketplace_token_does_not_exist"
    NETWORK_MARKETPLACE_DOES_NOT_EXIST = "network_marketplace_does_not_exist"
    NOTHING_TO_REQUEST = "nothing_to_request"

    # Conflict
    ALREADY_CONFIRMED = "already_confirmed"
    ALREADY_CANCELLED = "already_cancelled"
    ALREADY_REFUNDED = "already_refunded"
    PENDING_TRANSACTION_EXISTS = "pending_transaction_exists"
    TRANSACTION_HASH_EXISTS = "transaction_hash_exists"
    TRANSACTION_ATTEMPTS_EXHAUSTED = "transaction_attempts_exhausted"
    CANNOT_BE_CANCELLED = "cannot_be_cancelled"
    PENDING_PAYOUT_EXISTS = "pending_payout_exists"
    DRAFT_MARKETPLACE_EXISTS = "draft_marketplace_exists"
    UNPAID_ORDER_EXISTS = "unpaid_order_exists"

    # Internal: deployment and provider
    BLOCKCHAIN_CLIENT_DOES_NOT_EXIST = "blockchain_client_does_not_exist"
    SELLER_MARKETPLACE_CLIENT_DOES_NOT_EXIST = "seller_marketplace_client_does_not_exist"
    MARKETPLACE_CLIENT_DOES_NOT_EXIST = "marketplace_client_does_not_exist"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INVALID_CONTRACT_ADDRESS = "invalid_contract_address"
    CONTRACT_CALL_REVERTED = "contract_call_reverted"
    CONTRACT_CALL_INVALID_RESULT = "contract_call_invalid_result"

    # Internal: on-chain cross-validation
    ONCHAIN_ORDER_NOT_FOUND = "onchain_order_not_found"
    ONCHAIN_ORDER_BUYER_MISMATCH = "onchain_order_buyer_mismatch"
    ONCHAIN_ORDER_PRICE_MISMATCH = "onchain_order_price_mismatch"
    ONCHAIN_ORDER_PAYMENT_CONTRACT_MISMATCH = "onchain_order_payment_contract_mismatch"
    ONCHAIN_SELLER_MARKETPLACE_NOT_FOUND = "onchain_seller_marketplace_not_found"
    SELLER_MARKETPLACE_ADDRESS_NOT_UNIQUE = "seller_marketplace_address_not_unique"
    PAYOUT_OWNER_MISMATCH = "payout_owner_mismatch"

    # Internal: ledger
    NETWORK_MARKETPLACE_HAS_NO_TOKENS = "network_marketplace_has_no_tokens"
    SELLER_MARKETPLACE_NOT_CONFIRMED = "seller_marketplace_not_confirmed"
    SELLER_MARKETPLACE_WITHOUT_CONTRACT = "seller_marketplace_without_contract"
    SELLER_MARKETPLACE_WITHOUT_OWNER_WALLET = "seller_marketplace_without_owner_wallet"
    BALANCE_NEGATIVE = "balance_negative"
    INVALID_STORED_AMOUNT = "invalid_stored_amount"
    UNEXPECTED_STATUS = "unexpected_status"
    RECONCILIATION_INCOMPLETE = "reconciliation_incomplete"

    # Invariant violations
    DRAFT_MUST_NOT_HAVE_TRANSACTIONS = "draft_must_not_have_transactions"
    CANCELLED_MUST_NOT_HAVE_PENDING_TRANSACTIONS = "cancelled_must_not_have_pending_transactions"
    CANCELLED_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS = "cancelled_must_not_have_confirmed_transactions"
    REFUNDED_MUST_HAVE_CONFIRMED_TRANSACTION = "refunded_must_have_confirmed_transaction"
    CONFIRMED_MUST_HAVE_CONFIRMED_TRANSACTION = "confirmed_must_have_confirmed_transaction"
    CONFIRMED_TRANSACTION_INCOMPLETE = "confirmed_transaction_incomplete"
    PENDING_MUST_HAVE_TRANSACTIONS = "pending_must_have_transactions"
    PENDING_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS = "pending_must_not_have_confirmed_transactions"
    MULTIPLE_CONFIRMED_TRANSACTIONS = "multiple_confirmed_transactions"
    MULTIPLE_OPEN_TRANSACTIONS = "multiple_open_transactions"
    CONFIRMED_MUST_NOT_HAVE_PENDING_TRANSACTIONS = "confirmed_must_not_have_pending_transactions"
    REFUNDED_MUST_NOT_HAVE_PENDING_TRANSACTIONS = "refunded_must_not_have_pending_transactions"
    UNSUPPORTED_MARKER = "unsupported_marker"


_INVARIANT_MESSAGES = {
    Reason.DRAFT_MUST_NOT_HAVE_TRANSACTIONS: "Draft {kind} must not have transactions",
    Reason.CANCELLED_MUST_NOT_HAVE_PENDING_TRANSACTIONS: "Cancelled {kind} must not have pending transactions",
    Reason.CANCELLED_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS: "Cancelled {kind} must not have confirmed transactions",
    Reason.REFUNDED_MUST_HAVE_CONFIRMED_TRANSACTION: "Refunded {kind} must have confirmed transaction",
    Reason.CONFIRMED_MUST_HAVE_CONFIRMED_TRANSACTION: "Confirmed {kind} must have confirmed transaction",
    Reason.CONFIRMED_TRANSACTION_INCOMPLETE: "Confirmed {kind} transaction does not have gas or transaction fee",
    Reason.PENDING_MUST_HAVE_TRANSACTIONS: "Pending {kind} must have transactions",
    Reason.PENDING_MUST_NOT_HAVE_CONFIRMED_TRANSACTIONS: "Pending {kind} must not have confirmed transactions",
    Reason.MULTIPLE_CONFIRMED_TRANSACTIONS: "A {kind} must not have more than one confirmed transaction",
    Reason.MULTIPLE_OPEN_TRANSACTIONS: "A {kind} must not have more than one pending transaction",
    Reason.CONFIRMED_MUST_NOT_HAVE_PENDING_TRANSACTIONS: "Confirmed {kind} must not have pending transactions",
    Reason.REFUNDED_MUST_NOT_HAVE_PENDING_TRANSACTIONS: "Refunded {kind} must not have pending transactions",
    Reason.UNSUPPORTED_MARKER: "Status marker is not supported for a {kind}",
}


class MarketSyncError(Exception):
    """Base exception class for the reconciliation engine."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        reason: Reason,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.reason = reason
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.reason.value

    def to_dict(self) -> Dict[str, Any]:
        """Render the error for structured log records."""
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(MarketSyncError):
    """Raised when request data fails validation, before any I/O."""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: List[str], details: Optional[Dict[str, Any]] = None):
        self.errors = errors
        super().__init__("; ".join(errors), Reason.INVALID_REQUEST, details)


class ClientError(MarketSyncError):
    """Raised when the caller references something that does not exist."""

    kind = ErrorKind.CLIENT


class ConflictError(MarketSyncError):
    """Raised when the aggregate state makes the operation illegal."""

    kind = ErrorKind.CONFLICT


class InternalError(MarketSyncError):
    """Raised when stored data or deployment configuration has drifted."""

    kind = ErrorKind.INTERNAL


class BlockchainProviderError(InternalError):
    """Raised when a blockchain provider call fails or times out."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, Reason.PROVIDER_UNAVAILABLE, details)


class InvariantViolation(InternalError):
    """Raised when an aggregate's markers disagree with its transactions."""

    def __init__(
        self,
        aggregate_kind: "AggregateKind",
        reason: Reason,
        details: Optional[Dict[str, Any]] = None
    ):
        self.aggregate_kind = aggregate_kind
        super().__init__(
            _INVARIANT_MESSAGES[reason].format(kind=aggregate_kind.label),
            reason,
            {"aggregate_kind": aggregate_kind.value, **(details or {})}
        )
