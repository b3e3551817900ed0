"""
Per-chain client factories.
"""

from typing import Dict, Optional

from marketsync.core.config import Settings
from .bitquery_client import BitQueryClient, get_network_name
from .contracts import Web3ContractReader, Web3MarketplaceClient, Web3SellerMarketplaceClient
from .interfaces import (
    BlockchainClient,
    BlockchainClientFactory,
    MarketplaceClient,
    MarketplaceClientFactory,
    SellerMarketplaceClient,
    SellerMarketplaceClientFactory,
)

# Chains the marketplace contracts are deployed on
SUPPORTED_CONTRACT_CHAIN_IDS = frozenset({
    1, 11155111,   # Ethereum, Sepolia
    56, 97,        # BNB Smart Chain, testnet
    137, 80002,    # Polygon, Amoy
})


class BitQueryClientFactory(BlockchainClientFactory):
    """BitQuery clients for the chains configured in bitquery_networks."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def get_client(self, chain_id: int) -> Optional[BlockchainClient]:
        network = get_network_name(chain_id, self.settings)
        if network is None:
            return None
        return BitQueryClient(network, self.settings)


class _ContractReaders:

    def __init__(self, settings: Settings):
        self.settings = settings
        self._readers: Dict[int, Web3ContractReader] = {}

    def get(self, chain_id: int) -> Optional[Web3ContractReader]:
        if chain_id not in SUPPORTED_CONTRACT_CHAIN_IDS:
            return None
        rpc_url = self.settings.rpc_urls.get(chain_id)
        if not rpc_url:
            return None
        if chain_id not in self._readers:
            self._readers[chain_id] = Web3ContractReader(
                chain_id, rpc_url, self.settings.rpc_timeout
            )
        return self._readers[chain_id]


class Web3SellerMarketplaceClientFactory(SellerMarketplaceClientFactory):

    def __init__(self, settings: Settings):
        self._readers = _ContractReaders(settings)

    def get_client(self, chain_id: int) -> Optional[SellerMarketplaceClient]:
        reader = self._readers.get(chain_id)
        if reader is None:
            return None
        return Web3SellerMarketplaceClient(reader)


class Web3MarketplaceClientFactory(MarketplaceClientFactory):

    def __init__(self, settings: Settings):
        self._readers = _ContractReaders(settings)

    def get_client(self, chain_id: int) -> Optional[MarketplaceClient]:
        reader = self._readers.get(chain_id)
        if reader is None:
            return None
        return Web3MarketplaceClient(reader)
