"""
Endpoint preparation for relay actions.

Before every relayer action both chains of the path are resolved into a
chain definition plus the hex encoded private key of its relaying account,
after checking that the account can pay for the action.
"""

import logging
import re
from collections.abc import Callable
from decimal import Decimal, InvalidOperation

from .config import Config
from .errors import (
    GasPriceParseError,
    InsufficientFundsError,
    UnsupportedAlgorithmError,
)
from .models import Chain, Coin
from .utils.account_registry import AccountRegistry
from .utils.chain_client import ChainClient
from .utils.key_armor import ALGO_SECP256K1, unarmor_decrypt_priv_key

logger = logging.getLogger(__name__)

# Gas budget an account must be able to pay at its chain's gas price.
IBC_SETUP_GAS = 2_256_000

# The TypeScript relayer only accepts secp256k1 keys.
REQUIRED_ALGO = ALGO_SECP256K1

# Keys are exported and decrypted in memory only, so no passphrase is needed.
EXPORT_PASSPHRASE = ""

_GAS_PRICE_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]*)?|\.[0-9]+)\s*([a-zA-Z][a-zA-Z0-9/:._-]{2,127})\s*$")


def parse_gas_price(gas_price: str) -> Coin:
    """
    Parse a gas price such as "0.025stake" into a decimal coin.

    Raises:
        GasPriceParseError: If gas_price is not <amount><denom>
    """
    match = _GAS_PRICE_RE.match(gas_price or "")
    if match is None:
        raise GasPriceParseError(gas_price)
    try:
        amount = Decimal(match.group(1))
    except InvalidOperation:
        raise GasPriceParseError(gas_price) from None
    return Coin(denom=match.group(2), amount=amount)


def has_enough_balance(balances: list[Coin], gas_price: Coin, gas: int = IBC_SETUP_GAS) -> bool:
    """True when some balance in the gas denom covers gas at gas_price."""
    if not balances:
        return False
    required = gas_price.amount * gas
    return any(coin.denom == gas_price.denom and coin.amount >= required for coin in balances)


class Preparer:
    """Resolves a chain id into the chain and its signing key."""

    def __init__(
        self,
        registry: AccountRegistry,
        chain_client_factory: Callable[[str], ChainClient] = ChainClient,
        gas: int = IBC_SETUP_GAS,
    ):
        self.registry = registry
        self.chain_client_factory = chain_client_factory
        self.gas = gas

    async def balance(self, chain: Chain) -> tuple[str, list[Coin]]:
        """Address of the chain's account and every balance it holds."""
        account = await self.registry.get_by_name(chain.account)
        address = account.address(chain.address_prefix)
        client = self.chain_client_factory(chain.rpc_address)
        return address, await client.all_balances(address)

    async def prepare(self, config: Config, chain_id: str) -> tuple[Chain, str]:
        """
        Resolve chain_id into its chain definition and hex private key.

        Funds are checked before the key is exported. The key algorithm can
        only be checked after it has been decrypted.

        Raises:
            ChainNotFoundError: If chain_id is not configured
            AccountDoesNotExistError: If the chain's account is not in the registry
            ChainQueryError: If balances cannot be fetched
            GasPriceParseError: If the chain's gas price is malformed
            InsufficientFundsError: If the account cannot pay for the action
            KeyExportError: If the registry cannot export the key
            KeyDecodeError: If the exported key cannot be decrypted
            UnsupportedAlgorithmError: If the key is not secp256k1
        """
        chain = config.chain_by_id(chain_id)

        address, coins = await self.balance(chain)
        gas_price = parse_gas_price(chain.gas_price)

        if not has_enough_balance(coins, gas_price, self.gas):
            logger.warning(
                f"Account {chain.account} ({address}) on {chain.id} cannot cover "
                f"{self.gas} gas at {chain.gas_price}"
            )
            raise InsufficientFundsError(address, chain.account, chain.id)

        armored = await self.registry.export(chain.account, EXPORT_PASSPHRASE)
        priv_key, algo = unarmor_decrypt_priv_key(armored, EXPORT_PASSPHRASE)

        if algo != REQUIRED_ALGO:
            raise UnsupportedAlgorithmError(algo, REQUIRED_ALGO)

        logger.debug(f"Prepared account {chain.account} on {chain.id}")
        return chain, priv_key.hex()
