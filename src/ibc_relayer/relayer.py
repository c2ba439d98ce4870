"""
IBC Relayer implementation.

This module contains the relayer service that links configured paths and
relays their packets, delegating the protocol work to the relay executor and
the key and funding checks to the Preparer.
"""

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable

from .config import Config, ConfigStore, RelayerSettings
from .errors import ExecutorError, PathAlreadyLinkedError
from .executor import ACTION_LINK, ACTION_START, RelayExecutor, TSRelayerExecutor
from .models import Path
from .preparation import Preparer
from .utils.account_registry import AccountRegistry, KeyringAccountRegistry
from .utils.ticker import do_now

logger = logging.getLogger(__name__)

# Seconds between two relay ticks of a path.
RELAY_INTERVAL = 5.0

PostExecute = Callable[[Config], Awaitable[None]]


def keep_channels(stored: Path, reply: Path) -> Path:
    """
    Return reply with the channel ids already stored for stored.

    A channel id is assigned once by linking. Relay replies may only fill
    in a side that has none yet.
    """
    for stored_end, reply_end in ((stored.src, reply.src), (stored.dst, reply.dst)):
        if not stored_end.channel_id:
            continue
        if reply_end.channel_id and reply_end.channel_id != stored_end.channel_id:
            logger.warning(
                f"Ignoring channel {reply_end.channel_id} for {stored.id} on {stored_end.chain_id}, "
                f"keeping {stored_end.channel_id}"
            )
        reply_end.channel_id = stored_end.channel_id
    return reply


class Relayer:
    """
    Links chains along configured paths and relays packets between them.

    The relayer document is loaded fresh by every top-level operation and
    saved after every path change.
    """

    def __init__(
        self,
        store: ConfigStore,
        registry: AccountRegistry,
        executor: RelayExecutor,
        preparer: Preparer | None = None,
        relay_interval: float = RELAY_INTERVAL,
    ):
        """
        Initialize the relayer.

        Args:
            store: Store holding the chains and paths
            registry: Account registry used to look up and export keys
            executor: External relay executor performing the IBC actions
            preparer: Endpoint preparer, built from registry when omitted
            relay_interval: Seconds between relay ticks
        """
        self.store = store
        self.registry = registry
        self.executor = executor
        self.preparer = preparer or Preparer(registry)
        self.relay_interval = relay_interval

    @classmethod
    def from_settings(cls, settings: RelayerSettings) -> "Relayer":
        """Create a Relayer wired to the keyring, config file and TS relayer in settings."""
        registry = KeyringAccountRegistry(
            binary=settings.chain_binary,
            keyring_backend=settings.keyring_backend,
            keyring_dir=settings.keyring_dir,
        )
        return cls(
            store=ConfigStore(settings.config_path),
            registry=registry,
            executor=TSRelayerExecutor(settings.ts_relayer_command),
            relay_interval=settings.relay_interval,
        )

    async def link_paths(self, *path_ids: str) -> list[str]:
        """
        Link the given paths in order.

        Already linked paths are skipped, so calling this repeatedly for the
        same paths has no further effect. Any other error stops the batch.

        Returns:
            Ids of the paths linked by this call
        """
        config = await asyncio.to_thread(self.store.get)
        linked: list[str] = []

        for path_id in path_ids:
            try:
                config = await self.link(config, path_id)
            except PathAlreadyLinkedError:
                logger.info(f"Path {path_id} already linked, skipping")
                continue
            await asyncio.to_thread(self.store.save, config)
            linked.append(path_id)
            logger.info(f"Linked path {path_id}")

        return linked

    async def link(self, config: Config, path_id: str) -> Config:
        """
        Open a channel between both sides of a path.

        Raises:
            PathNotFoundError: If path_id is not configured
            PathAlreadyLinkedError: If the path already has a channel
            ExecutorError: If the executor fails or replies without channel ids
        """
        path = config.path_by_id(path_id)

        if path.src.channel_id:
            raise PathAlreadyLinkedError(path.id)

        logger.info(f"Linking path {path_id} ({path.src.chain_id} <-> {path.dst.chain_id})")
        reply = await self._call(config, path, ACTION_LINK)
        if not reply.src.channel_id or not reply.dst.channel_id:
            raise ExecutorError(ACTION_LINK, path.id, "reply has no channel id for both sides")
        if reply.id != path.id:
            raise ExecutorError(ACTION_LINK, path.id, f"reply is for path {reply.id!r}")

        config.update_path(reply)
        return config

    async def start_paths(self, *path_ids: str, stop_event: asyncio.Event | None = None) -> None:
        """
        Relay packets on every given path until stop_event is set.

        One task runs per distinct path. The first task that fails cancels
        the others and its error is raised.
        """
        path_ids = tuple(dict.fromkeys(path_ids))
        config = await asyncio.to_thread(self.store.get)
        stop_event = stop_event or asyncio.Event()
        save_lock = asyncio.Lock()

        async def save(cfg: Config) -> None:
            async with save_lock:
                if stop_event.is_set():
                    return
                await asyncio.to_thread(self.store.save, copy.deepcopy(cfg))

        tasks = {
            path_id: asyncio.create_task(self.start(config, path_id, save, stop_event), name=f"relay-{path_id}")
            for path_id in path_ids
        }
        if not tasks:
            return

        logger.info(f"Relaying {len(tasks)} path(s) every {self.relay_interval}s")
        first_error: BaseException | None = None
        try:
            pending = set(tasks.values())
            while pending and first_error is None:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                failed = [task for task in tasks.values() if task in done and task.exception() is not None]
                if failed:
                    first_error = failed[0].exception()
                    logger.error(f"Relay task {failed[0].get_name()} failed: {first_error}")
        finally:
            await self._cancel_tasks(tasks, first_error)

        if first_error is not None:
            raise first_error

    async def _cancel_tasks(self, tasks: dict[str, asyncio.Task], reported: BaseException | None) -> None:
        for task in tasks.values():
            if not task.done():
                task.cancel()
        for task in tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
            except Exception as e:
                if e is not reported:
                    logger.warning(f"Relay task {task.get_name()} also failed: {e}")

    async def start(
        self,
        config: Config,
        path_id: str,
        post_execute: PostExecute | None,
        stop_event: asyncio.Event,
    ) -> None:
        """
        Relay packets on a linked path every relay_interval until stop_event is set.

        The first tick runs immediately. A failing tick ends the loop with its
        error; setting stop_event ends it without one.
        """
        async def tick() -> None:
            path = config.path_by_id(path_id)
            reply = await self._call(config, path, ACTION_START)
            if reply.id != path.id:
                raise ExecutorError(ACTION_START, path.id, f"reply is for path {reply.id!r}")
            config.update_path(keep_channels(path, reply))
            if post_execute is not None:
                await post_execute(config)

        logger.info(f"Starting relay loop for path {path_id}")
        await do_now(stop_event, self.relay_interval, tick)
        logger.info(f"Relay loop for path {path_id} stopped")

    async def _call(self, config: Config, path: Path, action: str) -> Path:
        src_chain, src_key = await self.preparer.prepare(config, path.src.chain_id)
        dst_chain, dst_key = await self.preparer.prepare(config, path.dst.chain_id)

        args = [
            path,
            src_chain,
            dst_chain,
            src_key,
            dst_key,
        ]
        return await self.executor.call(action, args)

    async def get_path(self, path_id: str) -> Path:
        """Return a configured path by its id."""
        config = await asyncio.to_thread(self.store.get)
        return config.path_by_id(path_id)

    async def list_paths(self) -> list[Path]:
        """Return every configured path."""
        config = await asyncio.to_thread(self.store.get)
        return config.paths
