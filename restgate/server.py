"""
Restgate Event Server

Accepts WebSocket connections, dispatches named request events to
registered handlers and broadcasts to connected peers.

This module provides a standalone server built on ``websockets``.
For FastAPI integration, use the router module instead.
"""

import asyncio
import logging
import uuid
from contextvars import ContextVar
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import websockets
from pydantic import ValidationError
from websockets.asyncio.server import serve

if TYPE_CHECKING:
    from websockets.asyncio.server import Server, ServerConnection

from restgate.config import RestgateConfig
from restgate.errors import ConfigurationError, EventNotFound, RestgateError, UpstreamError
from restgate.hooks import BroadcastFilter
from restgate.models import ErrorInfo, EventMessage

LOG = logging.getLogger(__name__)

EventHandler = Callable[["Peer", Any], Awaitable[Any]]
Identify = Callable[[Mapping[str, str]], Awaitable[Any]]

# Request being dispatched in the current task
current_request: ContextVar[EventMessage | None] = ContextVar("current_request", default=None)


class Connection(Protocol):
    """Bidirectional text channel to one client."""

    async def send(self, message: str) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


class Plugin(Protocol):
    name: str

    async def register(self, server: "EventServer") -> None: ...

    async def close(self) -> None: ...


@dataclass
class Session:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    user: Any = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class Peer:
    """One connected client as seen by event handlers."""

    server: "EventServer"
    connection: Connection
    session: Session = field(default_factory=Session)

    @property
    def id(self) -> str:
        return self.session.id

    @property
    def user(self) -> Any:
        return self.session.user

    async def send(self, message: EventMessage) -> None:
        await self.connection.send(message.model_dump_json(exclude_unset=True))

    async def broadcast(
        self,
        event: str,
        data: Any,
        include_self: bool = False,
        filter: BroadcastFilter | None = None,
    ) -> int:
        return await self.server.broadcast(self, event, data, include_self=include_self, filter=filter)

    async def report_progress(self, fraction: float) -> None:
        """Send a progress frame for the request being handled, if it expects a reply."""
        request = current_request.get()
        if request is None or request.id is None:
            return
        try:
            await self.send(EventMessage(id=request.id, event=request.event, progress=fraction))
        except websockets.ConnectionClosed:
            LOG.debug("Connection %s closed before progress of %s", self.id, request.id)


def describe_error(error: BaseException) -> ErrorInfo:
    status = error.status if isinstance(error, UpstreamError) else None
    if isinstance(error, RestgateError):
        return ErrorInfo(type=type(error).__name__, message=str(error), status=status)
    if isinstance(error, ValidationError):
        return ErrorInfo(type="ValidationError", message=str(error))
    return ErrorInfo(type="InternalError", message=str(error) or type(error).__name__)


@dataclass
class EventServer:
    """
    Event server bridging WebSocket clients with registered handlers.

    Usage:
        server = EventServer()
        server.register_plugin(RestgatePlugin(apis))
        await server.start()
    """

    config: RestgateConfig = field(default_factory=RestgateConfig)
    identify: Identify | None = field(default=None, kw_only=True)
    on_connect: Callable[[Peer], Awaitable[None]] | None = field(default=None, kw_only=True)
    on_disconnect: Callable[[Peer], Awaitable[None]] | None = field(default=None, kw_only=True)
    handlers: dict[str, EventHandler] = field(default_factory=dict, init=False)
    peers: dict[str, Peer] = field(default_factory=dict, init=False)
    plugins: list[Plugin] = field(default_factory=list, init=False)
    _server: "Server | None" = field(default=None, init=False, repr=False)

    def register_event_handler(self, event: str, handler: EventHandler) -> None:
        if event in self.handlers:
            raise ConfigurationError(f"Event handler already registered: {event}")
        self.handlers[event] = handler
        LOG.debug("Registered event %s", event)

    def has_event_handler(self, event: str) -> bool:
        return event in self.handlers

    def register_plugin(self, plugin: Plugin) -> "EventServer":
        self.plugins.append(plugin)
        return self

    async def setup(self) -> None:
        """Let every plugin register its events."""
        for plugin in self.plugins:
            await plugin.register(self)
            LOG.info("Registered plugin %s", plugin.name)

    async def start(self) -> None:
        """Register plugins and start listening."""
        await self.setup()
        self._server = await serve(self._serve, self.config.host, self.config.port)
        LOG.info("Restgate server listening on ws://%s:%s", self.config.host, self.config.port)

    async def stop(self) -> None:
        """Stop listening and close plugins."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        for plugin in self.plugins:
            await plugin.close()
        LOG.info("Restgate server stopped")

    async def _serve(self, websocket: "ServerConnection") -> None:
        headers = websocket.request.headers if websocket.request else {}
        try:
            await self.handle_connection(websocket, headers)
        except* websockets.ConnectionClosed:
            LOG.debug("Connection closed")

    async def handle_connection(
        self,
        connection: Connection,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """
        Handle a connection lifecycle.

        This method blocks until the connection closes. Each request runs
        in its own task so a slow upstream call does not stall the others.
        """
        session = Session()
        if self.identify is not None:
            session.user = await self.identify(headers or {})
        peer = Peer(self, connection, session)
        self.peers[peer.id] = peer
        LOG.info("New connection %s (user=%s)", peer.id, session.user)

        try:
            if self.on_connect:
                await self.on_connect(peer)

            async with asyncio.TaskGroup() as tg:
                async for message in connection:
                    tg.create_task(self.handle_message(peer, message))
        finally:
            self.peers.pop(peer.id, None)
            LOG.info("Connection %s closed", peer.id)

            if self.on_disconnect:
                await self.on_disconnect(peer)

    async def handle_message(self, peer: Peer, data: str | bytes) -> None:
        """Dispatch one request frame and send the reply."""
        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            request = EventMessage.model_validate_json(data)
        except (ValidationError, UnicodeDecodeError):
            LOG.warning("Dropping invalid message from %s", peer.id)
            return

        LOG.debug("Event %s (%s) from %s", request.event, request.id, peer.id)
        reply = await self.dispatch(peer, request)
        if request.id is None:
            return

        try:
            await peer.send(reply)
        except websockets.ConnectionClosed:
            LOG.debug("Connection %s closed before reply to %s", peer.id, request.id)

    async def dispatch(self, peer: Peer, request: EventMessage) -> EventMessage:
        handler = self.handlers.get(request.event)
        token = current_request.set(request)
        try:
            if handler is None:
                raise EventNotFound(request.event)
            return request.reply(await handler(peer, request.data))
        except (RestgateError, ValidationError) as e:
            LOG.info("Event %s failed: %s", request.event, e)
            return request.fail(describe_error(e))
        except Exception as e:
            LOG.exception("Error handling event %s", request.event)
            return request.fail(describe_error(e))
        finally:
            current_request.reset(token)

    async def broadcast(
        self,
        sender: Peer | None,
        event: str,
        data: Any,
        *,
        include_self: bool = False,
        filter: BroadcastFilter | None = None,
    ) -> int:
        """
        Send an event to connected peers.

        Returns:
            Number of peers the event was delivered to
        """
        message = EventMessage(event=event, data=data)
        count = 0
        for peer in list(self.peers.values()):
            if peer is sender and not include_self:
                continue
            if filter is not None and not filter(peer):
                continue
            try:
                await peer.send(message)
                count += 1
            except websockets.ConnectionClosed:
                LOG.debug("Skipping closed connection %s", peer.id)
        return count
