"""
Restgate Connector

HTTP client bound to one remote API. A connector can be used directly
(``get``/``post``/``put``/``delete``) or as the caller a RequestBuilder
executes against.
"""

import logging
import re
from typing import Any
from urllib.parse import quote

import httpx

from restgate.builder import ProgressCallback, RequestBuilder
from restgate.config import RestgateConfig
from restgate.errors import ConfigurationError, UpstreamError
from restgate.hooks import maybe_await
from restgate.models import ConnectionOptions, split_endpoint, split_event_key

LOG = logging.getLogger(__name__)

ARG_PATTERN = re.compile(r":(\w+)")
BODY_METHODS = ("POST", "PUT")


def substitute_args(path: str, args: dict[str, Any]) -> str:
    """Replace ``:name`` segments of ``path`` with URL-quoted values from ``args``."""

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in args or args[name] is None:
            raise ConfigurationError(f"Missing argument {name!r} for path {path}")
        return quote(str(args[name]), safe="")

    return ARG_PATTERN.sub(replace, path)


class Connector:
    """
    Client for one remote API.

    Usage:
        connector = Connector(ConnectionOptions(url="https://api.example.com"))
        docs = await connector.get("/docs")
        user = await connector.request().get("/user/:id").args({"id": 1}).execute()
    """

    def __init__(
        self,
        options: ConnectionOptions,
        *,
        name: str | None = None,
        config: RestgateConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.options = options
        self.name = name or options.url
        self.config = config or RestgateConfig()
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def default_timeout(self) -> float:
        if self.options.timeout is not None:
            return self.options.timeout
        return self.config.request_timeout_seconds

    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying HTTP client."""
        if self._client is None or self._client.is_closed:
            limits = httpx.Limits() if self.options.keep_alive else httpx.Limits(max_keepalive_connections=0)
            self._client = httpx.AsyncClient(
                base_url=self.options.url.rstrip("/"),
                timeout=httpx.Timeout(self.default_timeout),
                limits=limits,
                transport=self.transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def request(self) -> RequestBuilder:
        """Create a request builder bound to this connector."""
        return RequestBuilder(self.name, caller=self)

    async def get(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self.call("GET", path, params=params, **kwargs)

    async def post(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self.call("POST", path, params=params, **kwargs)

    async def put(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self.call("PUT", path, params=params, **kwargs)

    async def delete(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        return await self.call("DELETE", path, params=params, **kwargs)

    async def execute(
        self,
        event: str,
        data: dict[str, Any],
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Any:
        """Execute a built request; the event key carries method and versioned path."""
        prefix = f"{self.name}."
        if event.startswith(prefix):
            method, path = split_endpoint(event.removeprefix(prefix), event)
        else:
            _, method, path = split_event_key(event)
        path = substitute_args(path, data.get("args") or {})
        response = await self.call(
            method,
            path,
            params=data.get("params"),
            headers=data.get("headers"),
            timeout=timeout,
        )
        if on_progress is not None:
            await maybe_await(on_progress(1.0))
        return response

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Send one HTTP request and return the decoded response data.

        Raises:
            UpstreamError: On transport failure, timeout or non-2xx status
        """
        method = method.upper()
        query: dict[str, Any] = {}
        body: dict[str, Any] | None = None
        if method in BODY_METHODS:
            body = params or {}
        elif params:
            query.update(params)
        if self.options.api_key:
            query["api_key"] = self.options.api_key

        LOG.debug("%s %s%s", method, self.options.url, path)

        try:
            response = await self.client().request(
                method,
                path,
                params=query or None,
                json=body,
                headers=headers or None,
                timeout=httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as e:
            raise UpstreamError(
                "Request timed out", method=method, path=path, api=self.name
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(
                str(e) or e.__class__.__name__, method=method, path=path, api=self.name
            ) from e

        warning = response.headers.get("warning")
        if warning and self.options.log_warnings:
            LOG.warning("API %s %s %s: %s", self.name, method, path, warning)

        payload = self.decode(response)
        if response.is_error:
            message, code = self.error_details(payload, response)
            raise UpstreamError(
                message,
                status=response.status_code,
                method=method,
                path=path,
                api=self.name,
                code=code,
            )
        return self.unwrap(payload)

    def decode(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def unwrap(self, payload: Any) -> Any:
        data_key = self.options.data_key
        if self.options.include_meta or not data_key or not isinstance(payload, dict):
            return payload
        return payload.get(data_key, payload)

    def error_details(self, payload: Any, response: httpx.Response) -> tuple[str, str | None]:
        error_key = self.options.error_key
        error = payload.get(error_key) if error_key and isinstance(payload, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or response.reason_phrase), error.get("code")
        if isinstance(error, str):
            return error, None
        return response.reason_phrase or "HTTP error", None
