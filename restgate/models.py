"""
Restgate Data Model

Pydantic models for the endpoint catalog, the incoming event payload and the
JSON envelope exchanged between the event server and its clients.
"""

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from restgate.errors import ConfigurationError

METHODS = ("GET", "POST", "PUT", "DELETE")


class AuthLevel(str, Enum):
    """Per-endpoint authentication policy."""

    REQUIRED = "REQUIRED"
    OPTIONAL = "OPTIONAL"
    DISABLED = "DISABLED"


class ConnectionOptions(BaseModel):
    """Options a connector is created from."""

    model_config = ConfigDict(frozen=True)

    url: str
    data_key: str | None = "data"
    error_key: str | None = "error"
    include_meta: bool = False
    api_key: str | None = None
    keep_alive: bool = True
    log_warnings: bool = True
    timeout: float | None = None


class EndpointDoc(BaseModel):
    """One entry of an API's endpoint catalog."""

    model_config = ConfigDict(extra="ignore")

    description: str = ""
    args: Any = None
    params: Any = None
    required_params: set[str] = Field(default_factory=set)
    required_auth: bool = False
    auth: AuthLevel = AuthLevel.DISABLED
    response: Any = None
    response_type: str | None = None
    errors: Any = None
    deprecated: bool = False

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("required_params") is None:
            data.pop("required_params", None)
        # older catalogs only carry the boolean flag
        if data.get("auth") is None:
            required = bool(data.get("required_auth"))
            data["auth"] = AuthLevel.REQUIRED if required else AuthLevel.DISABLED
        return data


class EventPayload(BaseModel):
    """Data sent with an endpoint event. Unknown keys are kept as extras."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    args: dict[str, Any] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    broadcast: bool = False
    auth_type: str | None = Field(default=None, alias="authType")

    @field_validator("args", "params", "headers", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("broadcast", mode="before")
    @classmethod
    def none_as_false(cls, value: Any) -> Any:
        return False if value is None else value


class ErrorInfo(BaseModel):
    type: str
    message: str
    status: int | None = None


class EventMessage(BaseModel):
    """
    Envelope of every frame on the event channel.

    A request carries ``id``, ``event`` and ``data``. The reply echoes the
    ``id`` with either ``data`` or ``error``. Broadcasts have no ``id``.
    Progress frames carry the request ``id`` and a ``progress`` fraction.
    """

    id: str | None = None
    event: str
    data: Any = None
    error: ErrorInfo | None = None
    progress: float | None = None

    @classmethod
    def request(cls, event: str, data: Any = None) -> "EventMessage":
        return cls(id=uuid.uuid4().hex, event=event, data=data)

    def reply(self, data: Any) -> "EventMessage":
        return EventMessage(id=self.id, event=self.event, data=data)

    def fail(self, error: ErrorInfo) -> "EventMessage":
        return EventMessage(id=self.id, event=self.event, error=error)


def normalize_endpoint(endpoint: str) -> str:
    if not endpoint.startswith("/"):
        endpoint = f"/{endpoint}"
    return endpoint


def split_endpoint(endpoint: str, key: str | None = None) -> tuple[str, str]:
    """
    Split a catalog endpoint into ``(method, path)``.

    ``"POST /2/user"`` gives ``("POST", "/2/user")``. An endpoint without
    a method, such as ``"/ping"``, is a GET.
    """
    if " " in endpoint:
        method, path = endpoint.split(" ", 1)
        method = method.upper()
    else:
        method, path = "GET", endpoint

    if method not in METHODS:
        raise ConfigurationError(f"Unsupported method {method!r} in event key {key or endpoint!r}")
    return method, normalize_endpoint(path.strip())


def split_event_key(key: str) -> tuple[str, str, str]:
    """
    Split an event key into ``(api_name, method, path)``.

    ``"svc.POST /2/user"`` gives ``("svc", "POST", "/2/user")``.
    """
    api_name, sep, rest = key.partition(".")
    if not sep or not api_name or not rest:
        raise ConfigurationError(f"Malformed event key: {key!r}")
    method, path = split_endpoint(rest, key)
    return api_name, method, path
