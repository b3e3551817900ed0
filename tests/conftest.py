"""
Shared fixtures.
"""

import pytest

from marketsync.core.config import Settings
from marketsync.services.reconciliation import BlockchainReconciler

from tests.fakes import (
    InMemoryLedgerRepository,
    ScriptedBlockchainClient,
    ScriptedMarketplaceClient,
    ScriptedSellerMarketplaceClient,
    StaticClientFactory,
)


@pytest.fixture
def settings():
    """Settings independent of the developer's .env file."""
    return Settings(_env_file=None, environment="development", max_transaction_attempts=5)


@pytest.fixture
def repository():
    """Ledger with the BSC testnet network registered."""
    repository = InMemoryLedgerRepository()
    repository.add_network()
    repository.add_token()
    return repository


@pytest.fixture
def blockchain_client():
    return ScriptedBlockchainClient()


@pytest.fixture
def seller_marketplace_client():
    return ScriptedSellerMarketplaceClient()


@pytest.fixture
def marketplace_client():
    return ScriptedMarketplaceClient()


@pytest.fixture
def reconciler(repository, blockchain_client, seller_marketplace_client, marketplace_client):
    return BlockchainReconciler(
        repository,
        StaticClientFactory(blockchain_client),
        StaticClientFactory(seller_marketplace_client),
        StaticClientFactory(marketplace_client),
    )
