"""
Networks, their platform marketplace contracts and payment tokens.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin


class Network(BaseModel, TimestampMixin):
    """An EVM network the platform is deployed on."""

    __tablename__ = "networks"

    chain_id: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        comment="EIP-155 chain id"
    )

    title: Mapped[str] = mapped_column(String(100))

    blockchain_explorer_url: Mapped[Optional[str]] = mapped_column(String(255))

    marketplaces: Mapped[List["NetworkMarketplace"]] = relationship(
        "NetworkMarketplace",
        back_populates="network"
    )

    __table_args__ = (
        CheckConstraint("chain_id > 0", name="ck_networks_chain_id_positive"),
    )

    def __repr__(self) -> str:
        return f"<Network(chain_id={self.chain_id}, title={self.title})>"


class NetworkMarketplace(BaseModel, TimestampMixin):
    """Platform marketplace contract deployed on a network."""

    __tablename__ = "network_marketplaces"

    network_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("networks.id", ondelete="CASCADE")
    )

    smart_contract_address: Mapped[str] = mapped_column(
        String(42),
        comment="Marketplace contract that deploys seller marketplaces"
    )

    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        comment="Platform commission in percent"
    )

    network: Mapped["Network"] = relationship("Network", back_populates="marketplaces")

    tokens: Mapped[List["NetworkMarketplaceToken"]] = relationship(
        "NetworkMarketplaceToken",
        back_populates="network_marketplace"
    )

    __table_args__ = (
        Index("idx_network_marketplace_network", "network_id"),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_network_marketplaces_commission_rate"
        ),
    )

    def __repr__(self) -> str:
        return f"<NetworkMarketplace(address={self.smart_contract_address}, rate={self.commission_rate})>"


class NetworkMarketplaceToken(BaseModel, TimestampMixin):
    """Payment token accepted by a network marketplace."""

    __tablename__ = "network_marketplace_tokens"

    network_marketplace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("network_marketplaces.id", ondelete="CASCADE")
    )

    symbol: Mapped[str] = mapped_column(String(20))

    decimals: Mapped[int] = mapped_column(Integer)

    smart_contract_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        comment="ERC-20 contract, NULL for the native coin"
    )

    network_marketplace: Mapped["NetworkMarketplace"] = relationship(
        "NetworkMarketplace",
        back_populates="tokens"
    )

    def __repr__(self) -> str:
        return f"<NetworkMarketplaceToken(symbol={self.symbol}, decimals={self.decimals})>"

    @property
    def is_native(self) -> bool:
        return self.smart_contract_address is None
