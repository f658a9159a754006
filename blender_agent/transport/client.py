# FILE: blender_agent/transport/client.py
"""
Single-flight TCP client for the Blender addon socket.

- One persistent connection, owned exclusively by this class.
- At most one outstanding request; a concurrent send() fails with HOST_BUSY
  because the addon is not re-entrant.
- Per-command deadlines; a timed-out request leaves the socket open and any
  late reply is discarded as an orphan frame.
- On close/connect failure: exponential backoff reconnect (5s doubling to
  60s), abandoned after 10 attempts (EXHAUSTED until connect() is called).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from blender_agent import config
from blender_agent.errors import (
    FramingError,
    HostBusyError,
    HostExecError,
    HostUnavailableError,
    TransportTimeoutError,
)
from blender_agent.transport.framing import JsonFrameScanner, encode_command

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    EXHAUSTED = "exhausted"


# Slow host commands get a longer deadline than BLENDER_COMMAND_TIMEOUT
_SLOW_COMMAND_TIMEOUTS = {
    "download_sketchfab_model": 120.0,
    "create_rodin_job": 30.0,
    "import_generated_asset": 60.0,
    "capture_viewport": 15.0,
}


def command_timeout(command_type: str) -> float:
    """Deadline in seconds for a host command."""
    if command_type == "execute_code":
        return config.BLENDER_EXECUTE_TIMEOUT
    if command_type in _SLOW_COMMAND_TIMEOUTS:
        return _SLOW_COMMAND_TIMEOUTS[command_type]
    if command_type.startswith("download_"):
        return 60.0
    if command_type.startswith("search_"):
        return 30.0
    return config.BLENDER_COMMAND_TIMEOUT


@dataclass
class PendingRequest:
    command_type: str
    future: "asyncio.Future[Any]"
    deadline: float
    correlation: int


class BlenderConnection:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        *,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        max_idle_buffer: Optional[int] = None,
        auto_reconnect: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.host = host or config.BLENDER_TCP_HOST
        self.port = port if port is not None else config.BLENDER_TCP_PORT
        self.base_delay = base_delay if base_delay is not None else config.BLENDER_RECONNECT_BASE_DELAY
        self.max_delay = max_delay if max_delay is not None else config.BLENDER_RECONNECT_MAX_DELAY
        self.max_attempts = max_attempts if max_attempts is not None else config.BLENDER_RECONNECT_MAX_ATTEMPTS
        self.max_idle_buffer = max_idle_buffer if max_idle_buffer is not None else config.BLENDER_MAX_IDLE_BUFFER
        self.auto_reconnect = auto_reconnect
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._scanner = JsonFrameScanner()
        self._pending: Optional[PendingRequest] = None
        self._correlation = 0
        self._attempts = 0
        self._closing = False

    # ===== STATE =====

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_busy(self) -> bool:
        return self._pending is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def buffered_bytes(self) -> int:
        return len(self._scanner)

    def snapshot(self) -> dict:
        return {
            "state": self._state.value,
            "host": self.host,
            "port": self.port,
            "reconnect_attempts": self._attempts,
            "pending": self._pending.command_type if self._pending else None,
        }

    # ===== LIFECYCLE =====

    async def start(self) -> bool:
        """Connect at startup; on failure fall back to the reconnect loop."""
        try:
            await self.connect()
            return True
        except HostUnavailableError as exc:
            logger.warning("[transport] initial connect failed: %s", exc)
            self._schedule_reconnect()
            return False

    async def connect(self) -> None:
        """Open the socket now. Also the operator reset after EXHAUSTED."""
        self._closing = False
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        self._attempts = 0
        if self.is_connected:
            return
        self._state = ConnectionState.CONNECTING
        try:
            await self._open()
        except (ConnectionError, OSError) as exc:
            self._state = ConnectionState.DISCONNECTED
            raise HostUnavailableError(
                f"Cannot connect to Blender at {self.host}:{self.port}: {exc}"
            ) from exc

    async def close(self) -> None:
        self._closing = True
        for task in (self._reconnect_task, self._reader_task):
            if task and not task.done():
                task.cancel()
        self._reconnect_task = None
        self._reader_task = None
        self._fail_pending(HostUnavailableError("Connection to Blender closed"))
        await self._close_writer()
        self._scanner.clear()
        self._state = ConnectionState.DISCONNECTED
        logger.info("[transport] connection closed")

    async def _open(self) -> None:
        reader, writer = await asyncio.open_connection(self.host, self.port)
        self._reader, self._writer = reader, writer
        self._scanner.clear()
        self._attempts = 0
        self._state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(self._read_loop(reader))
        logger.info("[transport] connected to Blender at %s:%s", self.host, self.port)

    async def _close_writer(self) -> None:
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    # ===== REQUESTS =====

    async def send(self, command_type: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        """
        Send one command and wait for its reply.

        Resolves with the reply's `result` field (or the whole reply when it
        has none). Raises HostExecError when the host answers status "error".
        """
        if self._state == ConnectionState.EXHAUSTED:
            raise HostUnavailableError(
                "Blender reconnect budget exhausted; operator intervention required",
                sub_kind="exhausted",
            )
        if self._state != ConnectionState.CONNECTED or self._writer is None:
            raise HostUnavailableError("Not connected to Blender")
        if self._pending is not None:
            raise HostBusyError(
                f"Blender is busy with '{self._pending.command_type}'",
                details={"pending": self._pending.command_type, "rejected": command_type},
            )

        deadline = timeout if timeout is not None else command_timeout(command_type)
        loop = asyncio.get_running_loop()
        self._correlation += 1
        pending = PendingRequest(
            command_type=command_type,
            future=loop.create_future(),
            deadline=loop.time() + deadline,
            correlation=self._correlation,
        )
        self._pending = pending

        try:
            logger.debug("[transport] -> %s (#%d)", command_type, pending.correlation)
            self._writer.write(encode_command(command_type, params))
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            self._release(pending)
            raise HostUnavailableError(f"Failed to send {command_type}: {exc}") from exc

        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), deadline)
        except asyncio.TimeoutError:
            logger.warning("[transport] %s timed out after %gs", command_type, deadline)
            raise TransportTimeoutError(command_type, deadline) from None
        finally:
            self._release(pending)

    async def execute_code(self, code: str) -> Any:
        return await self.send("execute_code", {"code": code})

    def _release(self, pending: PendingRequest) -> None:
        if self._pending is pending:
            self._pending = None
        if not pending.future.done():
            pending.future.cancel()

    def _fail_pending(self, exc: BaseException) -> None:
        pending, self._pending = self._pending, None
        if pending and not pending.future.done():
            pending.future.set_exception(exc)

    # ===== INBOUND =====

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        reason = "closed by host"
        try:
            while True:
                chunk = await reader.read(65536)
                if not chunk:
                    break
                self._on_data(chunk)
        except asyncio.CancelledError:
            raise
        except (ConnectionError, OSError) as exc:
            reason = str(exc) or exc.__class__.__name__
        if not self._closing:
            await self._handle_disconnect(reason)

    def _on_data(self, chunk: bytes) -> None:
        try:
            frames = self._scanner.feed(chunk)
        except FramingError as exc:
            for frame in getattr(exc, "frames", []):
                self._route(frame)
            self._fail_pending(exc)
            return

        for frame in frames:
            self._route(frame)

        if self._pending is None and len(self._scanner) > self.max_idle_buffer:
            logger.warning(
                "[transport] clearing %d unconsumed bytes with no pending request", len(self._scanner)
            )
            self._scanner.clear()

    def _route(self, frame: Any) -> None:
        pending = self._pending
        if pending is None or pending.future.done():
            logger.warning("[transport] discarding orphan frame from Blender")
            return
        self._pending = None

        if isinstance(frame, dict) and frame.get("status") == "error":
            message = frame.get("message") or frame.get("error") or "Unknown Blender error"
            pending.future.set_exception(HostExecError(str(message), code=frame.get("code")))
            return

        if isinstance(frame, dict) and "result" in frame:
            pending.future.set_result(frame["result"])
        else:
            pending.future.set_result(frame)

    # ===== RECONNECT =====

    async def _handle_disconnect(self, reason: str) -> None:
        logger.warning("[transport] connection to Blender lost: %s", reason)
        self._state = ConnectionState.DISCONNECTED
        self._reader_task = None
        self._fail_pending(HostUnavailableError(f"Connection to Blender lost: {reason}"))
        await self._close_writer()
        self._scanner.clear()
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self.auto_reconnect or self._closing:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        delay = self.base_delay
        while self._attempts < self.max_attempts:
            await self._sleep(delay)
            if self._closing:
                return
            self._attempts += 1
            self._state = ConnectionState.CONNECTING
            logger.info(
                "[transport] reconnect attempt %d/%d to %s:%s",
                self._attempts, self.max_attempts, self.host, self.port,
            )
            try:
                await self._open()
                return
            except (ConnectionError, OSError) as exc:
                self._state = ConnectionState.DISCONNECTED
                logger.warning("[transport] reconnect attempt %d failed: %s", self._attempts, exc)
            delay = min(delay * 2, self.max_delay)

        self._state = ConnectionState.EXHAUSTED
        logger.error(
            "[transport] giving up after %d reconnect attempts; operator intervention required",
            self._attempts,
        )


__all__ = [
    "ConnectionState",
    "PendingRequest",
    "BlenderConnection",
    "command_timeout",
]
