"""
BitQuery GraphQL client for reading transaction outcomes.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import aiohttp

from marketsync.core.config import Settings
from marketsync.core.exceptions import BlockchainProviderError
from marketsync.core.logging import get_logger
from .interfaces import BlockchainClient
from .types import BlockchainTransaction

logger = get_logger(__name__)

TRANSACTIONS_QUERY = """
query Transactions($network: EthereumNetwork, $smart_contract_address: String, $time_after: ISO8601DateTime, $transactions: [String!]) {
  ethereum(network: $network) {
    transactions(
      txHash: {in: $transactions}
      time: {after: $time_after}
      txTo: {is: $smart_contract_address}
    ) {
      error
      success
      sender {
        address
      }
      amount
      currency {
        address
        tokenId
      }
      gas
      gasValue
      hash
      block {
        timestamp {
          iso8601
        }
      }
    }
  }
}
"""

# BitQuery reports the native coin with this placeholder currency address
NATIVE_CURRENCY_ADDRESS = "-"


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_transaction(item: Dict[str, Any]) -> BlockchainTransaction:
    currency_address = item["currency"]["address"]
    return BlockchainTransaction(
        hash=item["hash"].lower(),
        sender_address=item["sender"]["address"].lower(),
        amount_paid=Decimal(str(item["amount"])),
        error=item.get("error") or None,
        success=bool(item["success"]),
        token_address=(
            None if currency_address == NATIVE_CURRENCY_ADDRESS
            else currency_address.lower()
        ),
        timestamp=_parse_timestamp(item["block"]["timestamp"]["iso8601"]),
        gas=int(item["gas"]),
        gas_value=Decimal(str(item["gasValue"])),
    )


def parse_transactions(payload: Dict[str, Any]) -> List[BlockchainTransaction]:
    """
    Parse a BitQuery transactions response.

    Raises:
        BlockchainProviderError: GraphQL errors or an unexpected payload shape
    """
    if payload.get("errors"):
        messages = [str(error.get("message", error)) for error in payload["errors"]]
        raise BlockchainProviderError(
            "BitQuery returned errors",
            {"errors": messages}
        )

    try:
        items = payload["data"]["ethereum"]["transactions"] or []
        return [_parse_transaction(item) for item in items]
    except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as e:
        raise BlockchainProviderError(
            "Unexpected BitQuery response",
            {"error": str(e)}
        ) from e


class BitQueryClient(BlockchainClient):
    """Blockchain data client backed by the BitQuery GraphQL API."""

    def __init__(self, network: str, settings: Settings):
        self.network = network
        self.url = settings.bitquery_api_url
        self.api_key = settings.bitquery_api_key
        self.timeout = aiohttp.ClientTimeout(total=settings.bitquery_timeout)
        self.lookback = timedelta(hours=settings.bitquery_lookback_hours)
        self.logger = logger.bind(service="bitquery_client", network=network)

    def build_request(self, contract_address: str, hashes: List[str]) -> Dict[str, Any]:
        """GraphQL request body for the given contract and hashes."""
        time_after = datetime.now(timezone.utc) - self.lookback
        return {
            "query": TRANSACTIONS_QUERY,
            "variables": {
                "network": self.network,
                "smart_contract_address": contract_address,
                "transactions": hashes,
                "time_after": time_after.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
        }

    async def get_transactions(
        self,
        contract_address: str,
        hashes: List[str]
    ) -> List[BlockchainTransaction]:
        if not hashes:
            return []

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key

        self.logger.debug(
            "Requesting transactions",
            contract_address=contract_address,
            hashes=len(hashes)
        )

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    self.url,
                    json=self.build_request(contract_address, hashes),
                    headers=headers
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise BlockchainProviderError(
                            "Unable to get transactions",
                            {"status": response.status, "body": body[:500]}
                        )
                    payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise BlockchainProviderError(
                "BitQuery request timed out",
                {"timeout": self.timeout.total}
            ) from e
        except aiohttp.ClientError as e:
            raise BlockchainProviderError(
                "Unable to get transactions",
                {"error": str(e)}
            ) from e

        if not isinstance(payload, dict):
            raise BlockchainProviderError("Unexpected BitQuery response")

        transactions = parse_transactions(payload)
        self.logger.debug(
            "Transactions received",
            contract_address=contract_address,
            received=len(transactions)
        )
        return transactions


def get_network_name(chain_id: int, settings: Settings) -> Optional[str]:
    """BitQuery network name for a chain id, None if unsupported."""
    return settings.bitquery_networks.get(chain_id)
