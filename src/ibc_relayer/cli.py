"""Command line entry point for the IBC relayer."""

import argparse
import asyncio
import logging
import os
import signal
import sys

import yaml
from dotenv import load_dotenv

from .config import Config, ConfigStore, RelayerSettings
from .errors import RelayerError, handle_account_error
from .models import DEFAULT_GAS_LIMIT, DEFAULT_ORDERING, DEFAULT_PORT_ID, DEFAULT_VERSION, Chain, Path, PathEnd
from .relayer import Relayer

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _add_chain_options(parser: argparse.ArgumentParser, side: str) -> None:
    group = parser.add_argument_group(f"{side} chain")
    group.add_argument(f"--{side}-id", required=True, help=f"{side} chain id")
    group.add_argument(f"--{side}-rpc", required=True, help=f"{side} chain Tendermint RPC address")
    group.add_argument(f"--{side}-account", required=True, help=f"{side} chain relaying account name")
    group.add_argument(f"--{side}-prefix", default="cosmos", help=f"{side} chain bech32 address prefix")
    group.add_argument(f"--{side}-gas-price", required=True, help=f"{side} chain gas price, e.g. 0.025stake")
    group.add_argument(f"--{side}-gas-limit", type=int, default=DEFAULT_GAS_LIMIT, help=f"{side} chain gas limit")
    group.add_argument(f"--{side}-port", default=DEFAULT_PORT_ID, help=f"{side} IBC port")
    group.add_argument(f"--{side}-version", default=DEFAULT_VERSION, help=f"{side} channel version")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ibc-relayer",
        description="Connect blockchains with an IBC relayer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RELAYER_CONFIG_PATH  - Relayer config file (default: ~/.ignite/relayer/config.yml)
  KEYRING_BACKEND      - Keyring backend (default: test)
  KEYRING_DIR          - Keyring directory (default: ~/.ignite/accounts)
  CHAIN_BINARY         - Chain binary used for key access (default: simd)
  TS_RELAYER_COMMAND   - TypeScript relayer command (default: ts-relayer)
  RELAY_INTERVAL       - Seconds between relay ticks (default: 5)
  LOG_LEVEL            - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument("--config", dest="config_path", help="relayer config file")
    parser.add_argument("--keyring-backend", help="keyring backend to store your account keys")
    parser.add_argument("--keyring-dir", help="accounts keyring directory")
    parser.add_argument("--chain-binary", help="chain binary used to access the keyring")
    parser.add_argument("--ts-relayer", dest="ts_relayer_command", help="command that starts the TS relayer")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    link = commands.add_parser("link", help="link chains along paths (all paths when none given)")
    link.add_argument("path_ids", nargs="*", metavar="PATH_ID")

    start = commands.add_parser("start", help="relay packets on paths until interrupted (all when none given)")
    start.add_argument("path_ids", nargs="*", metavar="PATH_ID")

    connect = commands.add_parser("connect", help="link paths, then relay packets on them")
    connect.add_argument("path_ids", nargs="*", metavar="PATH_ID")

    commands.add_parser("list", help="list configured paths")

    show = commands.add_parser("show", help="show a configured path")
    show.add_argument("path_id", metavar="PATH_ID")

    configure = commands.add_parser("configure", help="add two chains and a path between them")
    _add_chain_options(configure, "source")
    _add_chain_options(configure, "target")
    configure.add_argument("--path-id", help="path id (default: <source-id>-<target-id>)")
    configure.add_argument("--ordering", default=DEFAULT_ORDERING, help="channel ordering")

    return parser


def configure(store: ConfigStore, args: argparse.Namespace) -> Path:
    """Add or replace the source and target chains and the path joining them."""
    config = store.get() if store.path.exists() else Config()

    opt = vars(args)
    ends = []
    for side in ("source", "target"):
        prefix = f"{side}_"
        config.add_chain(Chain(
            id=opt[prefix + "id"],
            account=opt[prefix + "account"],
            address_prefix=opt[prefix + "prefix"],
            rpc_address=opt[prefix + "rpc"],
            gas_price=opt[prefix + "gas_price"],
            gas_limit=opt[prefix + "gas_limit"],
        ))
        ends.append(PathEnd(chain_id=opt[prefix + "id"], port_id=opt[prefix + "port"], version=opt[prefix + "version"]))

    path = Path(
        id=args.path_id or f"{args.source_id}-{args.target_id}",
        src=ends[0],
        dst=ends[1],
        ordering=args.ordering,
    )
    config.add_path(path)
    store.save(config)
    return path


def format_path(path: Path) -> str:
    src = f"{path.src.chain_id}:{path.src.channel_id or '-'}"
    dst = f"{path.dst.chain_id}:{path.dst.channel_id or '-'}"
    status = "linked" if path.is_linked else "not linked"
    return f"{path.id}\t{src} <-> {dst}\t{status}"


async def _path_ids_or_all(relayer: Relayer, path_ids: list[str]) -> list[str]:
    if path_ids:
        return path_ids
    return [path.id for path in await relayer.list_paths()]


async def _start(relayer: Relayer, path_ids: list[str]) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    try:
        await relayer.start_paths(*path_ids, stop_event=stop_event)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the relayer command line.

    Returns:
        Process exit status
    """
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        settings = RelayerSettings.from_env(
            config_path=args.config_path,
            keyring_backend=args.keyring_backend,
            keyring_dir=args.keyring_dir,
            chain_binary=args.chain_binary,
            ts_relayer_command=args.ts_relayer_command,
        )
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        return 1

    if args.log_level == "DEBUG":
        settings.log_config()

    relayer = Relayer.from_settings(settings)

    try:
        if args.command == "configure":
            path = configure(relayer.store, args)
            print(f"Path {path.id} configured")
        elif args.command == "list":
            for path in await relayer.list_paths():
                print(format_path(path))
        elif args.command == "show":
            path = await relayer.get_path(args.path_id)
            print(yaml.safe_dump(path.to_dict(), sort_keys=False), end="")
        else:
            path_ids = await _path_ids_or_all(relayer, args.path_ids)
            if args.command in ("link", "connect"):
                linked = await relayer.link_paths(*path_ids)
                if linked:
                    print(f"Linked chains along {len(linked)} path(s): {', '.join(linked)}")
                else:
                    print("All paths already linked")
            if args.command in ("start", "connect"):
                await _start(relayer, path_ids)

    except RelayerError as e:
        err = handle_account_error(e)
        logger.error(f"{err}")
        return 1

    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
