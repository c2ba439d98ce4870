"""
Tendermint RPC client for chain queries.

Balances are read with an `abci_query` against the bank module's gRPC
service path, using the generated protobuf messages shipped with cosmpy.
"""

import base64
import binascii
import logging
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse, urlunparse

import httpx
from cosmpy.protos.cosmos.bank.v1beta1.query_pb2 import QueryAllBalancesRequest, QueryAllBalancesResponse
from cosmpy.protos.cosmos.base.query.v1beta1.pagination_pb2 import PageRequest
from google.protobuf.message import DecodeError

from ..errors import ChainQueryError
from ..models import Coin

logger = logging.getLogger(__name__)

ALL_BALANCES_PATH = "/cosmos.bank.v1beta1.Query/AllBalances"


def fix_rpc_address(rpc_address: str) -> str:
    """Ensure the address has a scheme and a port, without a trailing slash."""
    address = rpc_address.strip()
    if "://" not in address:
        address = "http://" + address

    parsed = urlparse(address)
    netloc = parsed.netloc
    if parsed.port is None:
        port = 443 if parsed.scheme == "https" else 80
        netloc = f"{netloc}:{port}"

    return urlunparse(parsed._replace(netloc=netloc)).rstrip("/")


def encode_all_balances_request(address: str, page_key: bytes = b"") -> bytes:
    request = QueryAllBalancesRequest(address=address)
    if page_key:
        request.pagination.CopyFrom(PageRequest(key=page_key))
    return request.SerializeToString()


def decode_all_balances_response(data: bytes) -> tuple[list[Coin], bytes]:
    """
    Decode QueryAllBalancesResponse.

    Returns:
        Tuple of coins and the next pagination key (empty when done)
    """
    response = QueryAllBalancesResponse.FromString(data)
    coins = [Coin(denom=c.denom, amount=Decimal(c.amount or "0")) for c in response.balances]
    return coins, response.pagination.next_key


class ChainClient:
    """Queries a chain over its Tendermint RPC endpoint."""

    def __init__(self, rpc_address: str):
        self.rpc_address = fix_rpc_address(rpc_address)

    async def _abci_query(self, client: httpx.AsyncClient, path: str, data: bytes) -> bytes:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "abci_query",
            "params": {"path": path, "data": data.hex(), "height": "0", "prove": False},
        }
        try:
            response = await client.post(self.rpc_address, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise ChainQueryError(f"query {path} on {self.rpc_address} failed: {e}") from e
        except ValueError as e:
            raise ChainQueryError(f"invalid JSON from {self.rpc_address}: {e}") from e

        if body.get("error"):
            raise ChainQueryError(f"query {path} on {self.rpc_address} failed: {body['error']}")

        try:
            result = body["result"]["response"]
        except (KeyError, TypeError) as e:
            raise ChainQueryError(f"unexpected abci_query response from {self.rpc_address}") from e

        code = int(result.get("code") or 0)
        if code != 0:
            raise ChainQueryError(
                f"query {path} on {self.rpc_address} returned code {code}: {result.get('log', '')}"
            )

        try:
            return base64.b64decode(result.get("value") or "")
        except binascii.Error as e:
            raise ChainQueryError(f"invalid abci_query value from {self.rpc_address}: {e}") from e

    async def all_balances(self, address: str) -> list[Coin]:
        """
        Query every balance held by address, following pagination.

        Raises:
            ChainQueryError: If the query fails or its response cannot be decoded
        """
        coins: list[Coin] = []
        page_key = b""
        async with httpx.AsyncClient(timeout=None) as client:
            while True:
                raw = await self._abci_query(
                    client, ALL_BALANCES_PATH, encode_all_balances_request(address, page_key)
                )
                try:
                    page, page_key = decode_all_balances_response(raw)
                except (DecodeError, InvalidOperation) as e:
                    raise ChainQueryError(f"cannot decode balances of {address}: {e}") from e
                coins.extend(page)
                if not page_key:
                    break

        logger.debug(f"Fetched {len(coins)} balances for {address} from {self.rpc_address}")
        return coins
