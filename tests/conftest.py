"""Shared fixtures for restgate tests."""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from restgate import (
    ApiDescriptor,
    Connector,
    ConnectionOptions,
    ConnectorRegistry,
    EventServer,
    HookSet,
    Peer,
    RestgateConfig,
    Session,
)

API_URL = "http://api.test"

Route = httpx.Response | Callable[[httpx.Request], httpx.Response]


class MockApi:
    """In-memory REST API answering through httpx.MockTransport."""

    def __init__(self, routes: dict[tuple[str, str], Route] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": {"message": "Not found", "code": "ERR_NOT_FOUND"}})
        if callable(route):
            return route(request)
        return route

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def connector(self, name: str = "svc", **options: Any) -> Connector:
        return Connector(ConnectionOptions(url=API_URL, **options), name=name, transport=self.transport())

    def registry(self, config: RestgateConfig | None = None) -> ConnectorRegistry:
        return ConnectorRegistry(
            config=config or RestgateConfig(),
            factory=lambda name, options: Connector(options, name=name, transport=self.transport()),
        )


class FakeConnection:
    """Server-side connection fed from a queue; ``None`` ends the stream."""

    def __init__(self, frames: list[Any] | None = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()
        for frame in frames or []:
            self.push(frame)

    def push(self, frame: Any) -> None:
        if frame is None or isinstance(frame, str):
            self.incoming.put_nowait(frame)
        else:
            self.incoming.put_nowait(json.dumps(frame))

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


def make_peer(server: EventServer, user: Any = None) -> Peer:
    peer = Peer(server, FakeConnection(), Session(user=user))
    server.peers[peer.id] = peer
    return peer


def make_api(name: str = "svc", hooks: HookSet | None = None) -> ApiDescriptor:
    return ApiDescriptor.from_url(name, API_URL, hooks=hooks)


def ok(data: Any) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


@pytest.fixture
def config():
    return RestgateConfig(retry_delay_seconds=0.5)


@pytest.fixture
def server(config):
    return EventServer(config)


@pytest.fixture
def mock_api():
    return MockApi()
