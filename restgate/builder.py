"""
Request Builder

Fluent, single-use accumulator for one endpoint call. The builder assembles
a deterministic event key plus payload and hands them to whatever caller it
is bound to: the event client on the consumer side, or a connector on the
gateway side.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from restgate.errors import ConfigurationError
from restgate.models import METHODS, normalize_endpoint

ProgressCallback = Callable[[float], Any]
BuiltRequest = tuple[str, dict[str, Any], float | None, ProgressCallback | None]


class EventCaller(Protocol):
    def execute(
        self,
        event: str,
        data: dict[str, Any],
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Awaitable[Any]: ...


@dataclass(frozen=True)
class RequestDescriptor:
    """Snapshot of a builder's state."""

    api_name: str
    method: str | None
    version: int | str | None
    endpoint: str | None
    args: dict[str, Any] | None = None
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    timeout: float | None = None
    broadcast: bool | None = None
    auth_type: str | None = None
    on_progress: ProgressCallback | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        version = f"/{self.version}" if self.version is not None else ""
        return f"{version}{self.endpoint}"

    @property
    def key(self) -> str:
        return f"{self.api_name}.{self.method} {self.path}"


class RequestBuilder:
    """
    Builds and executes one endpoint call.

    Usage:
        result = await (
            client.request("users")
            .post("user")
            .v(1)
            .params({"name": "John"})
            .execute()
        )

    Every setter returns the builder itself. The builder is single use:
    once ``execute()`` has been awaited, setters and further executions
    raise ConfigurationError.
    """

    def __init__(self, api_name: str, caller: EventCaller | None = None) -> None:
        self.api_name = api_name
        self.caller = caller
        self.executed = False

        self._method: str | None = None
        self._version: int | str | None = None
        self._endpoint: str | None = None
        self._args: dict[str, Any] | None = None
        self._params: dict[str, Any] | None = None
        self._headers: dict[str, str] | None = None
        self._data: dict[str, Any] = {}
        self._auth_type: str | None = None
        self._timeout: float | None = None
        self._on_progress: ProgressCallback | None = None
        self._broadcast: bool | None = None

    def _check_open(self) -> None:
        if self.executed:
            raise ConfigurationError("Request builder was already executed")

    def get(self, endpoint: str) -> "RequestBuilder":
        return self.method("GET").endpoint(endpoint)

    def post(self, endpoint: str) -> "RequestBuilder":
        return self.method("POST").endpoint(endpoint)

    def put(self, endpoint: str) -> "RequestBuilder":
        return self.method("PUT").endpoint(endpoint)

    def delete(self, endpoint: str) -> "RequestBuilder":
        return self.method("DELETE").endpoint(endpoint)

    def method(self, method: str) -> "RequestBuilder":
        self._check_open()
        method = method.upper()
        if method not in METHODS:
            raise ConfigurationError(f"Unsupported method: {method}")
        self._method = method
        return self

    def version(self, version: int | str | None) -> "RequestBuilder":
        self._check_open()
        self._version = version
        return self

    v = version

    def endpoint(self, endpoint: str) -> "RequestBuilder":
        """Set the endpoint path, prefixing a missing leading slash."""
        self._check_open()
        self._endpoint = normalize_endpoint(endpoint)
        return self

    def args(self, args: dict[str, Any] | None) -> "RequestBuilder":
        self._check_open()
        self._args = args
        return self

    def params(self, params: dict[str, Any] | None) -> "RequestBuilder":
        self._check_open()
        self._params = params
        return self

    def headers(self, headers: dict[str, str] | None) -> "RequestBuilder":
        self._check_open()
        self._headers = headers
        return self

    def set_header(self, name: str, value: str) -> "RequestBuilder":
        """Add a single header, keeping the ones already set."""
        self._check_open()
        self._headers = {**(self._headers or {}), name: value}
        return self

    def data(self, data: dict[str, Any]) -> "RequestBuilder":
        """
        Set pass-through data merged into the payload.

        These keys are not sent to the API; on a collision with a reserved
        payload key the pass-through value wins.
        """
        self._check_open()
        self._data = dict(data)
        return self

    def auth_type(self, auth_type: str | None) -> "RequestBuilder":
        self._check_open()
        self._auth_type = auth_type
        return self

    def timeout(self, timeout: float | None) -> "RequestBuilder":
        """Set the timeout in seconds."""
        self._check_open()
        self._timeout = timeout
        return self

    def on_progress(self, on_progress: ProgressCallback | None) -> "RequestBuilder":
        self._check_open()
        self._on_progress = on_progress
        return self

    def broadcast(self, enabled: bool = True) -> "RequestBuilder":
        """Ask the gateway to re-publish the response to all other peers."""
        self._check_open()
        self._broadcast = enabled
        return self

    def descriptor(self) -> RequestDescriptor:
        return RequestDescriptor(
            api_name=self.api_name,
            method=self._method,
            version=self._version,
            endpoint=self._endpoint,
            args=self._args,
            params=self._params,
            headers=self._headers,
            timeout=self._timeout,
            broadcast=self._broadcast,
            auth_type=self._auth_type,
            on_progress=self._on_progress,
            data=dict(self._data),
        )

    def build(self) -> BuiltRequest:
        """Return ``(event_key, payload, timeout, on_progress)``."""
        descriptor = self.descriptor()
        if descriptor.method is None:
            raise ConfigurationError("Request method is not set")
        if descriptor.endpoint is None:
            raise ConfigurationError("Request endpoint is not set")

        payload: dict[str, Any] = {
            "args": descriptor.args,
            "params": descriptor.params,
            "headers": descriptor.headers,
            "broadcast": descriptor.broadcast,
            "authType": descriptor.auth_type,
        }
        payload.update(descriptor.data)
        return descriptor.key, payload, descriptor.timeout, descriptor.on_progress

    async def execute(self) -> Any:
        self._check_open()
        if self.caller is None:
            raise ConfigurationError(f"Request builder for {self.api_name!r} has no bound caller")
        built = self.build()
        self.executed = True
        return await self.caller.execute(*built)
