"""
Blockchain data and contract clients.
"""

from .types import ZERO_ADDRESS, BlockchainTransaction, OnChainOrder
from .interfaces import (
    BlockchainClient,
    BlockchainClientFactory,
    MarketplaceClient,
    MarketplaceClientFactory,
    SellerMarketplaceClient,
    SellerMarketplaceClientFactory,
)
from .bitquery_client import BitQueryClient, parse_transactions
from .factory import (
    BitQueryClientFactory,
    Web3MarketplaceClientFactory,
    Web3SellerMarketplaceClientFactory,
)

__all__ = [
    "ZERO_ADDRESS",
    "BlockchainTransaction",
    "OnChainOrder",
    "BlockchainClient",
    "BlockchainClientFactory",
    "MarketplaceClient",
    "MarketplaceClientFactory",
    "SellerMarketplaceClient",
    "SellerMarketplaceClientFactory",
    "BitQueryClient",
    "parse_transactions",
    "BitQueryClientFactory",
    "Web3MarketplaceClientFactory",
    "Web3SellerMarketplaceClientFactory",
]
