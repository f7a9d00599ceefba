"""
Hook capability set of an API.

Every hook is optional. The dispatcher checks presence before invoking and
awaits the result when a hook is a coroutine function.
"""

import inspect
import string
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar, Union

from restgate.errors import ConfigurationError
from restgate.models import ConnectionOptions

if TYPE_CHECKING:
    from restgate.builder import RequestBuilder
    from restgate.models import EventPayload
    from restgate.server import Peer

T = TypeVar("T")

MaybeAwaitable = Union[T, Awaitable[T]]
BroadcastFilter = Callable[["Peer"], bool]

SignHook = Callable[["Peer", "RequestBuilder", "EventPayload"], MaybeAwaitable[None]]
ModifyBuilderHook = Callable[["Peer", "RequestBuilder", "EventPayload"], MaybeAwaitable[None]]
TransformResponseHook = Callable[[Any], MaybeAwaitable[Any]]
HandleResponseHook = Callable[["Peer", str, str, "EventPayload", Any], MaybeAwaitable[None]]
BroadcastFilterHook = Callable[["Peer"], MaybeAwaitable[BroadcastFilter | None]]
ErrorHook = Callable[["Peer", BaseException], MaybeAwaitable[None]]


async def maybe_await(value: MaybeAwaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class HookSet:
    sign: SignHook | None = None
    modify_builder: ModifyBuilderHook | None = None
    transform_response: TransformResponseHook | None = None
    handle_response: HandleResponseHook | None = None
    get_broadcast_filter: BroadcastFilterHook | None = None
    on_error: ErrorHook | None = None


INVALID_NAME_CHARS = frozenset("." + string.whitespace)


@dataclass(frozen=True)
class ApiDescriptor:
    """One remote API: its name, how to reach it and its hooks."""

    name: str
    connection_options: ConnectionOptions
    hooks: HookSet = field(default_factory=HookSet)

    def __post_init__(self) -> None:
        if not self.name or INVALID_NAME_CHARS.intersection(self.name):
            raise ConfigurationError(
                f"Invalid API name {self.name!r}: must be non-empty without dots or whitespace"
            )

    @classmethod
    def from_url(cls, name: str, url: str, hooks: HookSet | None = None, **options: Any) -> "ApiDescriptor":
        return cls(
            name=name,
            connection_options=ConnectionOptions(url=url, **options),
            hooks=hooks or HookSet(),
        )
