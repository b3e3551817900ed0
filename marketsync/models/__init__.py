"""
Database models for the marketplace ledger.

Mirror the on-chain lifecycle of seller marketplaces, product orders and
payouts together with the sales derived from confirmed orders.
"""

from .base import Base, BaseModel, TimestampMixin, BlockchainTransactionMixin
from .network import Network, NetworkMarketplace, NetworkMarketplaceToken
from .marketplace import SellerMarketplace, SellerMarketplaceToken, SellerMarketplaceTransaction
from .order import ProductOrder, ProductOrderTransaction
from .sale import ProductSale
from .payout import SellerPayout, SellerPayoutTransaction

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "BlockchainTransactionMixin",
    "Network",
    "NetworkMarketplace",
    "NetworkMarketplaceToken",
    "SellerMarketplace",
    "SellerMarketplaceToken",
    "SellerMarketplaceTransaction",
    "ProductOrder",
    "ProductOrderTransaction",
    "ProductSale",
    "SellerPayout",
    "SellerPayoutTransaction",
]
