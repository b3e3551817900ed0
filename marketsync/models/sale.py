"""
Product sales recorded when an order payment is confirmed.
"""

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, String, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import MONEY, BaseModel, TimestampMixin


class ProductSale(BaseModel, TimestampMixin):
    """Seller and platform income for one confirmed order transaction."""

    __tablename__ = "product_sales"

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

    product_order_transaction_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("product_order_transactions.id"),
        unique=True,
        comment="At most one sale per confirmed transaction"
    )

    seller_income: Mapped[Decimal] = mapped_column(MONEY)

    seller_income_formatted: Mapped[str] = mapped_column(String(120))

    platform_income: Mapped[Decimal] = mapped_column(MONEY)

    platform_income_formatted: Mapped[str] = mapped_column(String(120))

    decimals: Mapped[int] = mapped_column(Integer)

    __table_args__ = (
        Index("idx_product_sale_seller_pair", "seller_id", "seller_marketplace_id", "seller_marketplace_token_id"),
    )

    def __repr__(self) -> str:
        return f"<ProductSale(id={self.id}, seller_income={self.seller_income_formatted})>"
