"""
Product orders: the purchase aggregate and its transactions.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import MONEY, BaseModel, TimestampMixin, BlockchainTransactionMixin


class ProductOrder(BaseModel, TimestampMixin):
    """A buyer's order for a product, paid on the seller marketplace contract."""

    __tablename__ = "product_orders"

    buyer_id: Mapped[str] = mapped_column(String(36))

    seller_id: Mapped[str] = mapped_column(String(36))

    product_id: Mapped[str] = mapped_column(String(36))

    seller_marketplace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_marketplaces.id")
    )

    seller_marketplace_token_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_marketplace_tokens.id")
    )

    price: Mapped[Decimal] = mapped_column(MONEY, comment="Price in token units")

    price_decimals: Mapped[int] = mapped_column(
        Integer,
        comment="Token decimals the price was fixed with"
    )

    price_formatted: Mapped[str] = mapped_column(String(120))

    pending_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    transactions: Mapped[List["ProductOrderTransaction"]] = relationship(
        "ProductOrderTransaction",
        back_populates="product_order",
        order_by="ProductOrderTransaction.created_at"
    )

    __table_args__ = (
        Index("idx_product_order_buyer", "buyer_id"),
        Index("idx_product_order_seller_marketplace", "seller_marketplace_id"),
    )

    def __repr__(self) -> str:
        return f"<ProductOrder(id={self.id}, price={self.price_formatted})>"


class ProductOrderTransaction(BaseModel, TimestampMixin, BlockchainTransactionMixin):
    """Payment transaction of a product order."""

    __tablename__ = "product_order_transactions"

    product_order_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("product_orders.id", ondelete="CASCADE")
    )

    product_order: Mapped["ProductOrder"] = relationship(
        "ProductOrder",
        back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint("network_id", "hash", name="uq_product_order_transaction_hash"),
        Index("idx_product_order_transaction_parent", "product_order_id"),
    )

    def __repr__(self) -> str:
        return f"<ProductOrderTransaction(hash={self.hash})>"
