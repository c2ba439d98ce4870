#!/usr/bin/env python3
"""Unit tests for the Preparer."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from ibc_relayer.errors import (
    AccountDoesNotExistError,
    ChainNotFoundError,
    ChainQueryError,
    GasPriceParseError,
    InsufficientFundsError,
    KeyDecodeError,
    UnsupportedAlgorithmError,
)
from ibc_relayer.models import Coin
from ibc_relayer.preparation import IBC_SETUP_GAS, Preparer, has_enough_balance, parse_gas_price
from ibc_relayer.utils.account_registry import Account

from conftest import ADDRESS_BYTES, SECP256K1_KEY


def make_client_factory(balances):
    client = MagicMock()
    client.all_balances = AsyncMock(return_value=balances)
    factory = MagicMock(return_value=client)
    return factory, client


class TestParseGasPrice:
    """Tests for gas price parsing."""

    @pytest.mark.parametrize("raw, amount, denom", [
        ("0.025stake", Decimal("0.025"), "stake"),
        ("1token", Decimal("1"), "token"),
        ("0.0000025uatom", Decimal("0.0000025"), "uatom"),
        ("2 ibc/27394FB092D2ECCD", Decimal("2"), "ibc/27394FB092D2ECCD"),
    ])
    def test_valid(self, raw, amount, denom):
        coin = parse_gas_price(raw)
        assert coin.amount == amount
        assert coin.denom == denom

    @pytest.mark.parametrize("raw", ["", "stake", "0.025", "-1stake", "1.5s", "abc123"])
    def test_invalid(self, raw):
        with pytest.raises(GasPriceParseError):
            parse_gas_price(raw)


class TestHasEnoughBalance:
    """Tests for the funding check."""

    def test_exact_amount_is_enough(self):
        price = Coin("stake", Decimal("0.025"))
        balances = [Coin("stake", Decimal("0.025") * IBC_SETUP_GAS)]
        assert has_enough_balance(balances, price)

    def test_one_below_is_not_enough(self):
        price = Coin("stake", Decimal("1"))
        balances = [Coin("stake", Decimal(IBC_SETUP_GAS - 1))]
        assert not has_enough_balance(balances, price)

    def test_no_balances(self):
        assert not has_enough_balance([], Coin("stake", Decimal("0.025")))

    def test_no_matching_denom(self):
        balances = [Coin("token", Decimal(10**12))]
        assert not has_enough_balance(balances, Coin("stake", Decimal("0.025")))

    def test_fractional_price_is_not_truncated(self):
        # 0.5 * 2,256,000 = 1,128,000
        price = Coin("stake", Decimal("0.5"))
        assert not has_enough_balance([Coin("stake", Decimal(1_000_000))], price)
        assert has_enough_balance([Coin("stake", Decimal(1_128_000))], price)


class TestPreparer:
    """Tests for Preparer.prepare."""

    @pytest.mark.asyncio
    async def test_prepare_success(self, config, mock_registry):
        factory, client = make_client_factory([Coin("stake", Decimal(10**9))])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        chain, key_hex = await preparer.prepare(config, "earth")

        assert chain is config.chain_by_id("earth")
        assert key_hex == SECP256K1_KEY.hex()
        factory.assert_called_once_with("http://localhost:26657")
        expected_address = Account(name="alice", address_bytes=ADDRESS_BYTES).address("cosmos")
        client.all_balances.assert_awaited_once_with(expected_address)
        mock_registry.export.assert_awaited_once_with("alice", "")

    @pytest.mark.asyncio
    async def test_unknown_chain(self, config, mock_registry):
        factory, client = make_client_factory([])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(ChainNotFoundError, match="venus"):
            await preparer.prepare(config, "venus")
        client.all_balances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insufficient_funds_does_not_export(self, config, mock_registry):
        factory, _ = make_client_factory([Coin("stake", Decimal(100))])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await preparer.prepare(config, "earth")

        err = exc_info.value
        assert err.account == "alice"
        assert err.chain_id == "earth"
        assert err.address.startswith("cosmos1")
        assert err.address in str(err)
        mock_registry.export.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_balances_does_not_export(self, config, mock_registry):
        factory, _ = make_client_factory([])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(InsufficientFundsError):
            await preparer.prepare(config, "earth")
        mock_registry.export.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_other_denoms_does_not_export(self, config, mock_registry):
        factory, _ = make_client_factory([Coin("token", Decimal(10**12))])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(InsufficientFundsError):
            await preparer.prepare(config, "earth")
        mock_registry.export.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_gas_price(self, config, mock_registry):
        config.chain_by_id("earth").gas_price = "cheap"
        factory, _ = make_client_factory([Coin("stake", Decimal(10**9))])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(GasPriceParseError):
            await preparer.prepare(config, "earth")
        mock_registry.export.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_algorithm_after_export(self, config, mock_registry, armored_ed25519_key):
        mock_registry.export = AsyncMock(return_value=armored_ed25519_key)
        factory, _ = make_client_factory([Coin("stake", Decimal(10**9))])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(UnsupportedAlgorithmError) as exc_info:
            await preparer.prepare(config, "earth")

        assert exc_info.value.algorithm == "ed25519"
        assert "ed25519" in str(exc_info.value)
        mock_registry.export.assert_awaited_once_with("alice", "")

    @pytest.mark.asyncio
    async def test_malformed_exported_key(self, config, mock_registry):
        mock_registry.export = AsyncMock(return_value="garbage")
        factory, _ = make_client_factory([Coin("stake", Decimal(10**9))])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(KeyDecodeError):
            await preparer.prepare(config, "earth")

    @pytest.mark.asyncio
    async def test_missing_account(self, config, mock_registry):
        mock_registry.get_by_name = AsyncMock(side_effect=AccountDoesNotExistError("alice"))
        factory, client = make_client_factory([])
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(AccountDoesNotExistError):
            await preparer.prepare(config, "earth")
        client.all_balances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_balance_query_failure(self, config, mock_registry):
        factory, client = make_client_factory([])
        client.all_balances = AsyncMock(side_effect=ChainQueryError("connection refused"))
        preparer = Preparer(mock_registry, chain_client_factory=factory)

        with pytest.raises(ChainQueryError):
            await preparer.prepare(config, "earth")
        mock_registry.export.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_gas_budget(self, config, mock_registry):
        factory, _ = make_client_factory([Coin("stake", Decimal(25))])
        preparer = Preparer(mock_registry, chain_client_factory=factory, gas=1000)

        _, key_hex = await preparer.prepare(config, "earth")
        assert key_hex == SECP256K1_KEY.hex()
