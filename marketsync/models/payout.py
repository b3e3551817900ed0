"""
Seller payouts: the withdrawal aggregate and its transactions.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import MONEY, BaseModel, TimestampMixin, BlockchainTransactionMixin


class SellerPayout(BaseModel, TimestampMixin):
    """A seller's withdrawal of accumulated income for one token."""

    __tablename__ = "seller_payouts"

    seller_id: Mapped[str] = mapped_column(String(36))

    seller_marketplace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_marketplaces.id")
    )

    seller_marketplace_token_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_marketplace_tokens.id")
    )

    amount: Mapped[Decimal] = mapped_column(MONEY)

    amount_formatted: Mapped[str] = mapped_column(String(120))

    decimals: Mapped[int] = mapped_column(Integer)

    pending_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    transactions: Mapped[List["SellerPayoutTransaction"]] = relationship(
        "SellerPayoutTransaction",
        back_populates="seller_payout",
        order_by="SellerPayoutTransaction.created_at"
    )

    __table_args__ = (
        Index("idx_seller_payout_pair", "seller_id", "seller_marketplace_id", "seller_marketplace_token_id"),
    )

    def __repr__(self) -> str:
        return f"<SellerPayout(id={self.id}, amount={self.amount_formatted})>"


class SellerPayoutTransaction(BaseModel, TimestampMixin, BlockchainTransactionMixin):
    """Withdrawal transaction of a seller payout."""

    __tablename__ = "seller_payout_transactions"

    seller_payout_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_payouts.id", ondelete="CASCADE")
    )

    seller_payout: Mapped["SellerPayout"] = relationship(
        "SellerPayout",
        back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint("network_id", "hash", name="uq_seller_payout_transaction_hash"),
        Index("idx_seller_payout_transaction_parent", "seller_payout_id"),
    )

    def __repr__(self) -> str:
        return f"<SellerPayoutTransaction(hash={self.hash})>"
