"""
Configuration module for the IBC relayer.

Two kinds of configuration live here:

- the relayer document (chains and paths) that is loaded before every
  top-level operation and saved after every path change, and
- the runtime settings (where that document lives, which keyring and
  programs to use), loaded from environment variables.
"""

import logging
import os
import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path as FilePath
from typing import Any, ClassVar

import yaml

from .errors import (
    ChainNotFoundError,
    ConfigLoadError,
    ConfigSaveError,
    PathNotFoundError,
)
from .models import Chain, Path

logger = logging.getLogger(__name__)

SUPPORTED_VERSION = 2
DEFAULT_CONFIG_PATH = FilePath.home() / ".ignite" / "relayer" / "config.yml"
DEFAULT_KEYRING_DIR = FilePath.home() / ".ignite" / "accounts"


@dataclass
class Config:
    """Root aggregate of the relayer document: ordered chains and paths."""

    chains: list[Chain] = field(default_factory=list)
    paths: list[Path] = field(default_factory=list)
    version: int = SUPPORTED_VERSION

    def chain_by_id(self, chain_id: str) -> Chain:
        for chain in self.chains:
            if chain.id == chain_id:
                return chain
        raise ChainNotFoundError(chain_id)

    def path_by_id(self, path_id: str) -> Path:
        for path in self.paths:
            if path.id == path_id:
                return path
        raise PathNotFoundError(path_id)

    def update_path(self, path: Path) -> None:
        """Replace the stored path that has the same id. The caller saves."""
        for i, existing in enumerate(self.paths):
            if existing.id == path.id:
                self.paths[i] = path
                return
        raise PathNotFoundError(path.id)

    def add_chain(self, chain: Chain) -> None:
        """Append a chain, or replace the one with the same id in place."""
        for i, existing in enumerate(self.chains):
            if existing.id == chain.id:
                self.chains[i] = chain
                return
        self.chains.append(chain)

    def add_path(self, path: Path) -> None:
        """Append a path, or replace the one with the same id in place."""
        try:
            self.update_path(path)
        except PathNotFoundError:
            self.paths.append(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "chains": [chain.to_dict() for chain in self.chains],
            "paths": [path.to_dict() for path in self.paths],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Build a Config from a decoded document.

        Raises:
            ValueError: If the version is unsupported or ids are duplicated
            KeyError, TypeError: If required fields are missing or mistyped
        """
        version = int(data.get("version", SUPPORTED_VERSION))
        if version != SUPPORTED_VERSION:
            raise ValueError(f"unsupported config version {version}, expected {SUPPORTED_VERSION}")

        chains = [Chain.from_dict(c) for c in data.get("chains") or []]
        paths = [Path.from_dict(p) for p in data.get("paths") or []]

        for kind, ids in (("chain", [c.id for c in chains]), ("path", [p.id for p in paths])):
            seen: set[str] = set()
            for item_id in ids:
                if item_id in seen:
                    raise ValueError(f"duplicate {kind} id {item_id!r}")
                seen.add(item_id)

        return cls(
            chains=chains,
            paths=paths,
            version=version,
        )


class ConfigStore:
    """Reads and writes the relayer document as YAML, replacing it whole on save."""

    def __init__(self, path: str | os.PathLike[str] = DEFAULT_CONFIG_PATH):
        self.path = FilePath(path).expanduser()

    def get(self) -> Config:
        """
        Load the relayer document.

        Returns:
            Config parsed from disk

        Raises:
            ConfigLoadError: If the document is absent or malformed
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigLoadError(f"relayer config not found at {self.path}") from None
        except OSError as e:
            raise ConfigLoadError(f"cannot read relayer config {self.path}: {e}") from e

        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"invalid YAML in {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigLoadError(f"relayer config {self.path} must be a mapping")

        try:
            config = Config.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigLoadError(f"malformed relayer config {self.path}: {e}") from e

        logger.debug(f"Loaded {len(config.chains)} chains and {len(config.paths)} paths from {self.path}")
        return config

    def save(self, config: Config) -> None:
        """
        Write the relayer document atomically.

        Raises:
            ConfigSaveError: On any I/O failure
        """
        document = yaml.safe_dump(config.to_dict(), sort_keys=False)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, prefix=".config-", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(document)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ConfigSaveError(f"cannot write relayer config {self.path}: {e}") from e

        logger.debug(f"Saved relayer config to {self.path}")


@dataclass(frozen=True, slots=True)
class RelayerSettings:
    """Runtime settings for the relayer.

    Attributes:
        config_path: Location of the relayer YAML document
        keyring_backend: Keyring backend forwarded to the chain binary
        keyring_dir: Keyring directory forwarded to the chain binary
        chain_binary: Cosmos SDK binary used for key lookups and export
        ts_relayer_command: Command line that starts the TypeScript relayer
        relay_interval: Seconds between relay ticks
    """

    config_path: FilePath = DEFAULT_CONFIG_PATH
    keyring_backend: str = "test"
    keyring_dir: FilePath = DEFAULT_KEYRING_DIR
    chain_binary: str = "simd"
    ts_relayer_command: tuple[str, ...] = ("ts-relayer",)
    relay_interval: float = 5.0

    SUPPORTED_KEYRING_BACKENDS: ClassVar[set[str]] = {"test", "file", "os", "memory"}

    def __post_init__(self) -> None:
        """Validate runtime settings."""
        if self.keyring_backend not in self.SUPPORTED_KEYRING_BACKENDS:
            raise ValueError(
                f"Unsupported keyring backend: {self.keyring_backend}. "
                f"Supported backends: {', '.join(sorted(self.SUPPORTED_KEYRING_BACKENDS))}"
            )

        if not self.chain_binary:
            raise ValueError("Chain binary is required (CHAIN_BINARY)")

        if not self.ts_relayer_command:
            raise ValueError("TS relayer command is required (TS_RELAYER_COMMAND)")

        if self.relay_interval <= 0:
            raise ValueError(f"Relay interval must be positive, got {self.relay_interval}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "RelayerSettings":
        """
        Load settings from environment variables.

        Keyword overrides that are not None win over the environment, which
        is how command line flags take precedence.

        Raises:
            ValueError: If a value is missing or invalid
        """
        try:
            relay_interval = float(os.environ.get("RELAY_INTERVAL", "5"))
        except ValueError:
            raise ValueError(
                f"RELAY_INTERVAL must be a number, got {os.environ['RELAY_INTERVAL']!r}"
            ) from None

        values: dict[str, Any] = {
            "config_path": FilePath(os.environ.get("RELAYER_CONFIG_PATH", str(DEFAULT_CONFIG_PATH))),
            "keyring_backend": os.environ.get("KEYRING_BACKEND", "test"),
            "keyring_dir": FilePath(os.environ.get("KEYRING_DIR", str(DEFAULT_KEYRING_DIR))),
            "chain_binary": os.environ.get("CHAIN_BINARY", "simd"),
            "ts_relayer_command": os.environ.get("TS_RELAYER_COMMAND", "ts-relayer"),
            "relay_interval": relay_interval,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})

        command = values["ts_relayer_command"]
        if isinstance(command, str):
            values["ts_relayer_command"] = tuple(shlex.split(command))

        values["config_path"] = FilePath(values["config_path"]).expanduser()
        values["keyring_dir"] = FilePath(values["keyring_dir"]).expanduser()
        return cls(**values)

    def log_config(self) -> None:
        """Log the settings in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("IBC Relayer Configuration")
        logger.info("=" * 60)
        logger.info(f"  Config Path: {self.config_path}")
        logger.info(f"  Keyring Backend: {self.keyring_backend}")
        logger.info(f"  Keyring Dir: {self.keyring_dir}")
        logger.info(f"  Chain Binary: {self.chain_binary}")
        logger.info(f"  TS Relayer: {shlex.join(self.ts_relayer_command)}")
        logger.info(f"  Relay Interval: {self.relay_interval} seconds")
        logger.info("=" * 60)
