"""
Declarative base and shared column mixins.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Token amounts up to uint256 with 18 fractional digits
MONEY = Numeric(78, 18)


def generate_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Root declarative class holding the shared metadata."""


class BaseModel(Base):
    """Abstract base for every table: string UUID primary key."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_id,
        comment="Row identifier (UUID)"
    )


class TimestampMixin:
    """Adds created_at / updated_at maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        comment="Row creation time"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last row update time"
    )


class BlockchainTransactionMixin:
    """Columns shared by the three aggregate transaction tables."""

    network_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("networks.id"),
        comment="Network the transaction was sent to"
    )

    hash: Mapped[str] = mapped_column(
        String(66),
        comment="Lower-cased 0x transaction hash"
    )

    sender_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        comment="Wallet that sent the transaction"
    )

    gas: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        comment="Gas used"
    )

    transaction_fee: Mapped[Optional[Decimal]] = mapped_column(
        MONEY,
        comment="Fee paid in the native coin"
    )

    blockchain_error: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Error reported by the chain for a failed transaction"
    )

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        comment="Block time of a successful transaction"
    )

    failed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        comment="Block time of a failed transaction"
    )

    @property
    def is_open(self) -> bool:
        return self.confirmed_at is None and self.failed_at is None
