"""
Seller marketplaces: the activation aggregate and its transactions.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, String, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin, BlockchainTransactionMixin


class SellerMarketplace(BaseModel, TimestampMixin):
    """A seller's own marketplace contract, activated by an on-chain deploy."""

    __tablename__ = "seller_marketplaces"

    seller_id: Mapped[str] = mapped_column(String(36))

    network_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("networks.id")
    )

    network_marketplace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("network_marketplaces.id")
    )

    smart_contract_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        unique=True,
        comment="Deployed seller marketplace contract, set on confirmation"
    )

    owner_wallet_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        comment="Wallet that deployed the contract"
    )

    pending_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    transactions: Mapped[List["SellerMarketplaceTransaction"]] = relationship(
        "SellerMarketplaceTransaction",
        back_populates="seller_marketplace",
        order_by="SellerMarketplaceTransaction.created_at"
    )

    tokens: Mapped[List["SellerMarketplaceToken"]] = relationship(
        "SellerMarketplaceToken",
        back_populates="seller_marketplace"
    )

    __table_args__ = (
        Index("idx_seller_marketplace_seller", "seller_id"),
        Index("idx_seller_marketplace_network_pending", "network_id", "pending_at"),
    )

    def __repr__(self) -> str:
        return f"<SellerMarketplace(id={self.id}, seller={self.seller_id})>"


class SellerMarketplaceToken(BaseModel, TimestampMixin):
    """A network marketplace token enabled on a seller marketplace."""

    __tablename__ = "seller_marketplace_tokens"

    seller_marketplace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_marketplaces.id", ondelete="CASCADE")
    )

    network_marketplace_token_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("network_marketplace_tokens.id")
    )

    seller_marketplace: Mapped["SellerMarketplace"] = relationship(
        "SellerMarketplace",
        back_populates="tokens"
    )

    __table_args__ = (
        UniqueConstraint(
            "seller_marketplace_id", "network_marketplace_token_id",
            name="uq_seller_marketplace_token"
        ),
    )


class SellerMarketplaceTransaction(BaseModel, TimestampMixin, BlockchainTransactionMixin):
    """Deploy transaction of a seller marketplace."""

    __tablename__ = "seller_marketplace_transactions"

    seller_marketplace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seller_marketplaces.id", ondelete="CASCADE")
    )

    seller_marketplace: Mapped["SellerMarketplace"] = relationship(
        "SellerMarketplace",
        back_populates="transactions"
    )

    __table_args__ = (
        UniqueConstraint("network_id", "hash", name="uq_seller_marketplace_transaction_hash"),
        Index("idx_seller_marketplace_transaction_parent", "seller_marketplace_id"),
    )

    def __repr__(self) -> str:
        return f"<SellerMarketplaceTransaction(hash={self.hash})>"
