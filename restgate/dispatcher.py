"""
Proxy Dispatcher

Handler body registered for every catalog endpoint. One dispatch turns an
incoming event into one outbound HTTP call, and the side effects happen in
a fixed order: sign, modify builder, execute, transform, handle, broadcast.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol

from restgate.config import RestgateConfig
from restgate.connector import Connector
from restgate.errors import AuthenticationError, UpstreamError
from restgate.hooks import ApiDescriptor, BroadcastFilter, maybe_await
from restgate.models import AuthLevel, EndpointDoc, EventPayload, split_event_key

if TYPE_CHECKING:
    from restgate.builder import RequestBuilder

LOG = logging.getLogger(__name__)


class Caller(Protocol):
    """What the dispatcher needs from the peer that sent the event."""

    @property
    def user(self) -> Any: ...

    async def broadcast(
        self,
        event: str,
        data: Any,
        include_self: bool = False,
        filter: BroadcastFilter | None = None,
    ) -> int: ...

    async def report_progress(self, fraction: float) -> None: ...


class ProxyDispatcher:
    """
    Proxies one event key to its HTTP endpoint.

    The API, method, path and auth level are fixed when the dispatcher is
    created; only the payload and caller vary per call.
    """

    def __init__(
        self,
        api: ApiDescriptor,
        connector: Connector,
        event: str,
        doc: EndpointDoc,
        config: RestgateConfig | None = None,
    ) -> None:
        self.api = api
        self.connector = connector
        self.event = event
        self.config = config or RestgateConfig()
        _, self.method, self.path = split_event_key(event)
        self.auth_level = doc.auth

    def __repr__(self) -> str:
        return f"ProxyDispatcher({self.event!r}, auth={self.auth_level.value})"

    async def __call__(self, caller: Caller, data: dict[str, Any] | None = None) -> Any:
        payload = EventPayload.model_validate(data or {})
        if self.config.logging:
            LOG.info(
                "API: %s method: %s endpoint: %s args: %s params: json[%d]",
                self.api.name,
                self.method,
                self.path,
                json.dumps(payload.args, default=str),
                len(json.dumps(payload.params, default=str)),
            )

        try:
            return await self.dispatch(caller, payload)
        except (AuthenticationError, UpstreamError):
            raise
        except Exception as e:
            e.add_note(f"while proxying {self.api.name} {self.method} {self.path}")
            raise

    async def dispatch(self, caller: Caller, payload: EventPayload) -> Any:
        hooks = self.api.hooks
        builder = (
            self.connector.request()
            .method(self.method)
            .endpoint(self.path)
            .params(payload.params)
            .args(payload.args)
            .headers(payload.headers)
            .on_progress(caller.report_progress)
        )

        await self.authorize(caller, builder, payload)

        if hooks.modify_builder is not None:
            await maybe_await(hooks.modify_builder(caller, builder, payload))

        try:
            response = await builder.execute()
        except Exception as e:
            if hooks.on_error is not None:
                try:
                    await maybe_await(hooks.on_error(caller, e))
                except Exception:
                    LOG.exception("on_error hook for %s failed", self.event)
            raise

        if hooks.transform_response is not None:
            response = await maybe_await(hooks.transform_response(response))

        if hooks.handle_response is not None:
            await maybe_await(hooks.handle_response(caller, self.method, self.path, payload, response))

        if payload.broadcast:
            await self.broadcast(caller, response)

        return response

    async def authorize(self, caller: Caller, builder: "RequestBuilder", payload: EventPayload) -> None:
        sign = self.api.hooks.sign
        match self.auth_level:
            case AuthLevel.REQUIRED:
                if not caller.user:
                    raise AuthenticationError(f"User not logged in for {self.api.name} {self.path}")
                if sign is not None:
                    await maybe_await(sign(caller, builder, payload))
            case AuthLevel.OPTIONAL:
                if caller.user and sign is not None:
                    await maybe_await(sign(caller, builder, payload))
            case AuthLevel.DISABLED:
                pass

    async def broadcast(self, caller: Caller, response: Any) -> None:
        """Re-publish the response to every other peer the filter accepts."""
        filter: BroadcastFilter | None = None
        if self.api.hooks.get_broadcast_filter is not None:
            # None from the hook means no restriction
            filter = await maybe_await(self.api.hooks.get_broadcast_filter(caller))

        delivered = await caller.broadcast(self.event, {"data": response}, include_self=False, filter=filter)
        LOG.debug("Broadcast %s to %d peer(s)", self.event, delivered)
