"""
IBC Relayer package.

Links Cosmos chains along configured paths and relays IBC packets between
them through an external TypeScript relayer.
"""

from .config import Config, ConfigStore, RelayerSettings
from .models import Chain, Path, PathEnd
from .relayer import Relayer

__all__ = ["Chain", "Config", "ConfigStore", "Path", "PathEnd", "Relayer", "RelayerSettings"]
__version__ = "0.1.0"
