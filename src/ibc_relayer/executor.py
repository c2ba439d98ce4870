"""
Relay executor boundary.

The IBC protocol work itself (channel handshakes, packet relay) is done by an
external TypeScript relayer. Each action is one JSON-RPC 2.0 request written
to the program's stdin, answered with one response on its stdout.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Sequence
from typing import Any, Protocol

from .errors import ExecutorError
from .models import Chain, Path

logger = logging.getLogger(__name__)

ACTION_LINK = "link"
ACTION_START = "start"


class RelayExecutor(Protocol):
    async def call(self, action: str, args: Sequence[Any]) -> Path:
        """Run action with [path, src_chain, dst_chain, src_key, dst_key] and return the updated path."""
        ...


def _serialize(arg: Any) -> Any:
    if isinstance(arg, (Path, Chain)):
        return arg.to_dict()
    return arg


class TSRelayerExecutor:
    """Runs one TypeScript relayer process per action."""

    def __init__(self, command: Sequence[str] = ("ts-relayer",)):
        if not command:
            raise ValueError("TS relayer command is required")
        self.command = list(command)

    async def call(self, action: str, args: Sequence[Any]) -> Path:
        """
        Invoke action on the TypeScript relayer.

        Args:
            action: "link" or "start"
            args: Path, source chain, destination chain and both hex keys

        Returns:
            The path as updated by the relayer

        Raises:
            ExecutorError: If the program fails or replies with an error
        """
        path_id = args[0].id if args and isinstance(args[0], Path) else ""
        request = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": action,
            "params": [_serialize(arg) for arg in args],
        }

        logger.debug(f"Calling relayer {action} for path {path_id}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExecutorError(action, path_id, f"cannot start {self.command[0]}: {e}") from e

        try:
            stdout, stderr = await proc.communicate(json.dumps(request).encode() + b"\n")
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        response = self._parse_response(stdout)
        if response is None:
            message = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
            raise ExecutorError(action, path_id, message)

        if response.get("error"):
            error = response["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise ExecutorError(action, path_id, message)

        if proc.returncode != 0:
            raise ExecutorError(action, path_id, f"exit status {proc.returncode}")

        try:
            return Path.from_dict(response["result"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ExecutorError(action, path_id, f"unexpected reply: {e}") from e

    @staticmethod
    def _parse_response(stdout: bytes) -> dict[str, Any] | None:
        # The program may log before answering; the response is the last JSON line.
        for line in reversed(stdout.decode(errors="replace").splitlines()):
            line = line.strip()
            if not line:
                continue
            try:
                decoded = json.loads(line)
            except ValueError:
                continue
            if isinstance(decoded, dict) and ("result" in decoded or "error" in decoded):
                return decoded
        return None
