"""
Account registry backed by a Cosmos SDK chain binary.

The relayer never stores key material itself. It asks the keyring of a chain
binary (simd, gaiad, ...) for the account address and for the private key,
which is handed back ASCII armored under the caller's passphrase.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Protocol

import bech32

from ..errors import AccountDoesNotExistError, KeyExportError
from .key_armor import encrypt_armor_priv_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Account:
    """A keyring account.

    Attributes:
        name: Account name in the keyring
        address_bytes: Raw account address, independent of any bech32 prefix
        algo: Signing algorithm of the account key
    """
    name: str
    address_bytes: bytes
    algo: str = "secp256k1"

    def address(self, prefix: str) -> str:
        """Bech32 address of the account for the given prefix."""
        data = bech32.convertbits(self.address_bytes, 8, 5)
        if data is None:
            raise ValueError(f"cannot encode address of account {self.name}")
        return bech32.bech32_encode(prefix, data)


class AccountRegistry(Protocol):
    async def get_by_name(self, name: str) -> Account:
        ...

    async def export(self, name: str, passphrase: str) -> str:
        ...


def decode_address(address: str) -> bytes:
    """Raw bytes of a bech32 address."""
    hrp, data = bech32.bech32_decode(address)
    if hrp is None or data is None:
        raise ValueError(f"invalid bech32 address {address!r}")
    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None:
        raise ValueError(f"invalid bech32 address {address!r}")
    return bytes(raw)


class KeyringAccountRegistry:
    """
    Accesses accounts through the `keys` commands of a chain binary.

    The keyring backend and directory are forwarded unchanged to every call.
    """

    NOT_FOUND_MARKERS = ("not found", "does not exist")

    def __init__(
        self,
        binary: str = "simd",
        keyring_backend: str = "test",
        keyring_dir: str | os.PathLike[str] | None = None,
    ):
        self.binary = binary
        self.keyring_backend = keyring_backend
        self.keyring_dir = os.fspath(keyring_dir) if keyring_dir is not None else None

    def _keyring_flags(self) -> list[str]:
        flags = ["--keyring-backend", self.keyring_backend]
        if self.keyring_dir:
            flags += ["--keyring-dir", self.keyring_dir]
        return flags

    async def _run_keys(self, name: str, *args: str) -> str:
        """Run `<binary> keys <args>` and return stdout."""
        cmd = [self.binary, "keys", *args, *self._keyring_flags()]
        logger.debug(f"Running {self.binary} keys {args[0]} for account {name}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise KeyExportError(f"cannot run {self.binary}: {e}") from e

        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
            if any(marker in message.lower() for marker in self.NOT_FOUND_MARKERS):
                raise AccountDoesNotExistError(name)
            raise KeyExportError(f"{self.binary} keys {args[0]} {name} failed: {message}")

        return stdout.decode()

    async def get_by_name(self, name: str) -> Account:
        """
        Look up an account by name.

        Raises:
            AccountDoesNotExistError: If the keyring has no such account
            KeyExportError: If the binary fails for any other reason
        """
        output = await self._run_keys(name, "show", name, "--output", "json")
        try:
            info = json.loads(output)
            address_bytes = decode_address(info["address"])
        except (ValueError, KeyError, TypeError) as e:
            raise KeyExportError(f"unexpected keys show output for {name}: {e}") from e

        algo = "secp256k1"
        pubkey = info.get("pubkey")
        if isinstance(pubkey, str) and "ed25519" in pubkey.lower():
            algo = "ed25519"

        return Account(name=name, address_bytes=address_bytes, algo=algo)

    async def export(self, name: str, passphrase: str) -> str:
        """
        Export the account's private key armored under passphrase.

        Raises:
            AccountDoesNotExistError: If the keyring has no such account
            KeyExportError: If the key cannot be exported
        """
        account = await self.get_by_name(name)
        output = await self._run_keys(name, "export", name, "--unarmored-hex", "--unsafe", "--yes")

        try:
            priv_key = bytes.fromhex(output.strip())
        except ValueError as e:
            raise KeyExportError(f"unexpected keys export output for {name}") from e

        try:
            return encrypt_armor_priv_key(priv_key, passphrase, account.algo)
        except ValueError as e:
            raise KeyExportError(f"cannot armor key of {name}: {e}") from e
