"""
Shared data models for the IBC relayer.

This module contains the chain, path and coin types stored in the relayer
configuration and exchanged with the relay executor.
"""

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

DEFAULT_GAS_LIMIT = 400_000
DEFAULT_PORT_ID = "transfer"
DEFAULT_VERSION = "ics20-1"
DEFAULT_ORDERING = "ORDER_UNORDERED"


@dataclass(slots=True)
class Chain:
    """A configured blockchain endpoint.

    Attributes:
        id: Chain identifier, unique within the configuration
        account: Name of the signing account in the account registry
        address_prefix: Bech32 prefix used to derive the account address
        rpc_address: Tendermint RPC endpoint
        gas_price: Gas price as amount and denom, e.g. 0.025stake
        gas_limit: Gas limit handed to the relay executor
    """
    id: str
    account: str
    address_prefix: str
    rpc_address: str
    gas_price: str
    gas_limit: int = DEFAULT_GAS_LIMIT

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chain":
        gas_limit = int(data.get("gas_limit", DEFAULT_GAS_LIMIT))
        if gas_limit <= 0:
            raise ValueError(f"gas_limit of chain {data['id']!r} must be positive, got {gas_limit}")
        return cls(
            id=str(data["id"]),
            account=str(data["account"]),
            address_prefix=str(data["address_prefix"]),
            rpc_address=str(data["rpc_address"]),
            gas_price=str(data["gas_price"]),
            gas_limit=gas_limit,
        )


@dataclass(slots=True)
class PathEnd:
    """One side of a path. An empty channel_id means the side is not linked yet."""
    chain_id: str
    channel_id: str = ""
    port_id: str = DEFAULT_PORT_ID
    version: str = DEFAULT_VERSION
    packet_height: int = 0
    ack_height: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PathEnd":
        return cls(
            chain_id=str(data["chain_id"]),
            channel_id=str(data.get("channel_id") or ""),
            port_id=str(data.get("port_id") or DEFAULT_PORT_ID),
            version=str(data.get("version") or DEFAULT_VERSION),
            packet_height=int(data.get("packet_height") or 0),
            ack_height=int(data.get("ack_height") or 0),
        )


@dataclass(slots=True)
class Path:
    """A directed relationship between two chains for packet relay."""
    id: str
    src: PathEnd
    dst: PathEnd
    ordering: str = DEFAULT_ORDERING

    @property
    def is_linked(self) -> bool:
        return self.src.channel_id != ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ordering": self.ordering,
            "src": self.src.to_dict(),
            "dst": self.dst.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Path":
        return cls(
            id=str(data["id"]),
            src=PathEnd.from_dict(data["src"]),
            dst=PathEnd.from_dict(data["dst"]),
            ordering=str(data.get("ordering") or DEFAULT_ORDERING),
        )


@dataclass(frozen=True, slots=True)
class Coin:
    """An amount of a single denomination."""
    denom: str
    amount: Decimal = Decimal(0)
