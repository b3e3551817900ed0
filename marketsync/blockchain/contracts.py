"""
Read-only clients for the marketplace and seller marketplace contracts.

Both use web3.py's AsyncWeb3 over an HTTP JSON-RPC endpoint.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from marketsync.core.exceptions import BlockchainProviderError, InternalError, Reason
from marketsync.core.logging import get_logger
from .interfaces import MarketplaceClient, SellerMarketplaceClient
from .types import ZERO_ADDRESS, OnChainOrder

logger = get_logger(__name__)

SELLER_MARKETPLACE_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "getOrder",
        "stateMutability": "view",
        "inputs": [{"name": "orderId", "type": "string"}],
        "outputs": [
            {"name": "exists", "type": "bool"},
            {"name": "buyer", "type": "address"},
            {"name": "price", "type": "uint256"},
            {"name": "paymentContract", "type": "address"},
        ],
    },
]

MARKETPLACE_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "getSellerMarketplace",
        "stateMutability": "view",
        "inputs": [
            {"name": "sellerId", "type": "string"},
            {"name": "sellerMarketplaceId", "type": "string"},
        ],
        "outputs": [
            {"name": "exists", "type": "bool"},
            {"name": "marketplace", "type": "address"},
        ],
    },
]


class Web3ContractReader:
    """Shared AsyncWeb3 connection and contract call wrapper."""

    def __init__(self, chain_id: int, rpc_url: str, timeout: int = 30):
        self.chain_id = chain_id
        self.timeout = timeout
        self._w3 = AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)})
        )
        self.logger = logger.bind(service="contract_reader", chain_id=chain_id)

    def checksum(self, address: str) -> str:
        try:
            return self._w3.to_checksum_address(address)
        except ValueError as e:
            raise InternalError(
                f"Invalid contract address {address}",
                Reason.INVALID_CONTRACT_ADDRESS,
                {"address": address, "chain_id": self.chain_id}
            ) from e

    async def call(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        args: List[Any]
    ) -> Any:
        """Call a view function and return its decoded result."""
        contract: Any = self._w3.eth.contract(address=self.checksum(address), abi=abi)
        func: Any = getattr(contract.functions, function_name)
        try:
            return await asyncio.wait_for(func(*args).call(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise BlockchainProviderError(
                f"Contract call {function_name} timed out",
                {"address": address, "chain_id": self.chain_id}
            ) from e
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise InternalError(
                f"Contract call {function_name} reverted",
                Reason.CONTRACT_CALL_REVERTED,
                {"address": address, "chain_id": self.chain_id, "args": args, "error": str(e)}
            ) from e
        except Exception as e:
            self.logger.error(
                "Contract call failed",
                function=function_name,
                address=address,
                error=str(e)
            )
            raise BlockchainProviderError(
                f"Contract call {function_name} failed",
                {"address": address, "chain_id": self.chain_id, "error": str(e)}
            ) from e


class Web3SellerMarketplaceClient(SellerMarketplaceClient):
    """Seller marketplace contract reader."""

    def __init__(self, reader: Web3ContractReader):
        self.reader = reader

    async def get_order(
        self,
        seller_marketplace_address: str,
        order_id: str
    ) -> Optional[OnChainOrder]:
        exists, buyer, price, payment_contract = await self.reader.call(
            seller_marketplace_address,
            SELLER_MARKETPLACE_ABI,
            "getOrder",
            [order_id]
        )

        if not exists:
            return None

        if buyer.lower() == ZERO_ADDRESS:
            raise InternalError(
                "Unexpected zero address for buyer address",
                Reason.CONTRACT_CALL_INVALID_RESULT,
                {"seller_marketplace_address": seller_marketplace_address, "order_id": order_id}
            )

        return OnChainOrder(
            buyer_address=buyer.lower(),
            price=int(price),
            payment_contract=payment_contract.lower(),
        )


class Web3MarketplaceClient(MarketplaceClient):
    """Platform marketplace contract reader."""

    def __init__(self, reader: Web3ContractReader):
        self.reader = reader

    async def get_seller_marketplace_address(
        self,
        marketplace_address: str,
        seller_id: str,
        seller_marketplace_id: str
    ) -> Optional[str]:
        exists, address = await self.reader.call(
            marketplace_address,
            MARKETPLACE_ABI,
            "getSellerMarketplace",
            [seller_id, seller_marketplace_id]
        )

        if not exists:
            return None

        if address.lower() == ZERO_ADDRESS:
            raise InternalError(
                "Unexpected zero address for seller marketplace",
                Reason.CONTRACT_CALL_INVALID_RESULT,
                {"marketplace_address": marketplace_address, "seller_id": seller_id}
            )

        return address.lower()
