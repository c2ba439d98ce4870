"""Shared fixtures for the relayer tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ibc_relayer.config import Config
from ibc_relayer.models import Chain, Path, PathEnd
from ibc_relayer.utils.account_registry import Account
from ibc_relayer.utils.key_armor import encrypt_armor_priv_key

SECP256K1_KEY = bytes.fromhex("1f" * 32)
ED25519_KEY = bytes.fromhex("2e" * 64)
ADDRESS_BYTES = bytes(range(1, 21))


def make_config() -> Config:
    return Config(
        chains=[
            Chain(
                id="earth",
                account="alice",
                address_prefix="cosmos",
                rpc_address="http://localhost:26657",
                gas_price="0.025stake",
            ),
            Chain(
                id="mars",
                account="bob",
                address_prefix="mars",
                rpc_address="http://localhost:26659",
                gas_price="1token",
            ),
        ],
        paths=[
            Path(id="earth-mars", src=PathEnd(chain_id="earth"), dst=PathEnd(chain_id="mars")),
            Path(
                id="mars-earth",
                src=PathEnd(chain_id="mars", channel_id="channel-0"),
                dst=PathEnd(chain_id="earth", channel_id="channel-1"),
            ),
        ],
    )


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture(scope="session")
def armored_secp256k1_key() -> str:
    """secp256k1 key armored with an empty passphrase (bcrypt is slow, build it once)."""
    return encrypt_armor_priv_key(SECP256K1_KEY, "", "secp256k1")


@pytest.fixture(scope="session")
def armored_ed25519_key() -> str:
    return encrypt_armor_priv_key(ED25519_KEY, "", "ed25519")


@pytest.fixture
def mock_registry(armored_secp256k1_key):
    """Registry that knows every account and exports a valid secp256k1 key."""
    registry = MagicMock()
    registry.get_by_name = AsyncMock(side_effect=lambda name: Account(name=name, address_bytes=ADDRESS_BYTES))
    registry.export = AsyncMock(return_value=armored_secp256k1_key)
    return registry


@pytest.fixture
def mock_store(config):
    store = MagicMock()
    store.get = MagicMock(return_value=config)
    store.save = MagicMock()
    return store
