"""
Restgate Client

Executes endpoint events against a restgate server over one WebSocket
connection and delivers broadcasts to registered listeners.
"""

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import websockets
from pydantic import ValidationError
from websockets.asyncio.client import connect

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

from restgate.builder import ProgressCallback, RequestBuilder
from restgate.config import RestgateConfig
from restgate.errors import ConfigurationError, EventTimeout, error_from_reply
from restgate.hooks import maybe_await
from restgate.models import EventMessage

LOG = logging.getLogger(__name__)

BroadcastListener = Callable[[Any], Awaitable[None] | None]


@dataclass
class EventClient:
    """
    Client for calling restgate endpoint events.

    Usage:
        async with EventClient("ws://127.0.0.1:8080") as client:
            user = await client.request("users").get("/user/:id").args({"id": 1}).execute()
    """

    url: str
    config: RestgateConfig = field(default_factory=RestgateConfig)
    websocket: "ClientConnection | None" = field(default=None, kw_only=True)
    pending: dict[str, asyncio.Future[Any]] = field(default_factory=dict, init=False)
    progress: dict[str, ProgressCallback] = field(default_factory=dict, init=False)
    listeners: dict[str, list[BroadcastListener]] = field(
        default_factory=lambda: defaultdict(list), init=False
    )
    _reader: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    async def __aenter__(self) -> "EventClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> None:
        if self.websocket is None:
            self.websocket = await connect(self.url)
            LOG.info("Connected to %s", self.url)
        if self._reader is None:
            self._reader = asyncio.create_task(self.read_loop())

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None
        self.fail_pending(ConnectionError("Client closed"))

    def request(self, api_name: str) -> RequestBuilder:
        """Create a request builder bound to this client."""
        return RequestBuilder(api_name, caller=self)

    def on(self, event: str, listener: BroadcastListener) -> None:
        """Listen for broadcasts of an event."""
        self.listeners[event].append(listener)

    def off(self, event: str, listener: BroadcastListener) -> bool:
        try:
            self.listeners[event].remove(listener)
        except ValueError:
            return False
        return True

    async def execute(
        self,
        event: str,
        data: dict[str, Any],
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Any:
        """
        Send an event request and wait for its reply.

        Raises:
            EventTimeout: If no reply is received within timeout
            RestgateError: The error reported by the server
        """
        if self.websocket is None:
            raise ConfigurationError("Client is not connected")

        if timeout is None:
            timeout = self.config.response_timeout_seconds

        request = EventMessage.request(event, data)
        request_id = request.id
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self.pending[request_id] = future
        if on_progress is not None:
            self.progress[request_id] = on_progress

        LOG.debug("Sending event %s (%s)", event, request_id)
        try:
            await self.websocket.send(request.model_dump_json(exclude_unset=True))
            try:
                return await asyncio.wait_for(future, timeout=timeout)
            except TimeoutError:
                LOG.warning("Timeout waiting for reply to event %s (%s)", event, request_id)
                raise EventTimeout(event, timeout) from None
        finally:
            self.pending.pop(request_id, None)
            self.progress.pop(request_id, None)

    async def read_loop(self) -> None:
        """Receive frames and route them to pending requests or listeners."""
        if self.websocket is None:
            raise ConfigurationError("Client is not connected")
        try:
            async for data in self.websocket:
                await self.handle_frame(data)
        except websockets.ConnectionClosed:
            LOG.info("Connection to %s closed", self.url)
        self.fail_pending(ConnectionError("Connection closed"))

    async def handle_frame(self, data: str | bytes) -> None:
        try:
            message = EventMessage.model_validate_json(data)
        except ValidationError:
            LOG.warning("Dropping invalid frame from server")
            return

        if message.id is None:
            for listener in list(self.listeners.get(message.event, [])):
                try:
                    await maybe_await(listener(message.data))
                except Exception:
                    LOG.exception("Broadcast listener for %s failed", message.event)
            return

        if message.progress is not None:
            callback = self.progress.get(message.id)
            if callback is not None:
                try:
                    await maybe_await(callback(message.progress))
                except Exception:
                    LOG.exception("Progress callback for %s failed", message.id)
            return

        future = self.pending.get(message.id)
        if future is None or future.done():
            LOG.debug("Dropping reply for unknown request %s", message.id)
            return
        if message.error is not None:
            error = message.error
            future.set_exception(error_from_reply(message.event, error.type, error.message, error.status))
        else:
            future.set_result(message.data)

    def fail_pending(self, error: Exception) -> None:
        for future in self.pending.values():
            if not future.done():
                future.set_exception(error)
