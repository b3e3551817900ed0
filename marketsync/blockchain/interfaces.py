"""
Abstract blockchain clients and their per-chain factories.

The reconciler depends only on these interfaces; concrete implementations
live in bitquery_client.py and contracts.py.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .types import BlockchainTransaction, OnChainOrder


class BlockchainClient(ABC):
    """Reads transaction outcomes from a blockchain data provider."""

    @abstractmethod
    async def get_transactions(
        self,
        contract_address: str,
        hashes: List[str]
    ) -> List[BlockchainTransaction]:
        """
        Return outcomes for the given hashes sent to contract_address.

        Hashes the provider does not know yet are simply absent from the
        result. Transport failures raise BlockchainProviderError.
        """


class BlockchainClientFactory(ABC):

    @abstractmethod
    def get_client(self, chain_id: int) -> Optional[BlockchainClient]:
        """Client for chain_id, or None when the chain is not supported."""


class SellerMarketplaceClient(ABC):
    """Reads seller marketplace contracts."""

    @abstractmethod
    async def get_order(
        self,
        seller_marketplace_address: str,
        order_id: str
    ) -> Optional[OnChainOrder]:
        """Return the on-chain order, or None if the contract has no such order."""


class SellerMarketplaceClientFactory(ABC):

    @abstractmethod
    def get_client(self, chain_id: int) -> Optional[SellerMarketplaceClient]:
        """Client for chain_id, or None when the chain is not supported."""


class MarketplaceClient(ABC):
    """Reads the platform marketplace contract."""

    @abstractmethod
    async def get_seller_marketplace_address(
        self,
        marketplace_address: str,
        seller_id: str,
        seller_marketplace_id: str
    ) -> Optional[str]:
        """Return the deployed seller marketplace address, or None if not deployed."""


class MarketplaceClientFactory(ABC):

    @abstractmethod
    def get_client(self, chain_id: int) -> Optional[MarketplaceClient]:
        """Client for chain_id, or None when the chain is not supported."""
