"""Exceptions raised by restgate components."""


class RestgateError(Exception):
    """Base class for all restgate errors."""


class ConfigurationError(RestgateError):
    """Programming misuse detected at registration or build time."""


class DiscoveryError(RestgateError):
    """The endpoint catalog of an API could not be fetched."""

    def __init__(self, api: str, reason: str = "") -> None:
        self.api = api
        message = f"Endpoint discovery failed for API {api!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AuthenticationError(RestgateError):
    """An endpoint requiring authentication was invoked anonymously."""

    def __init__(self, message: str = "User not logged in") -> None:
        super().__init__(message)


class UpstreamError(RestgateError):
    """The proxied HTTP call failed (network error, timeout or non-2xx)."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        method: str | None = None,
        path: str | None = None,
        api: str | None = None,
        code: str | None = None,
    ) -> None:
        self.status = status
        self.method = method
        self.path = path
        self.api = api
        self.code = code
        target = " ".join(part for part in (api, method, path) if part)
        if status is not None:
            message = f"[{status}] {message}"
        if target:
            message = f"{target}: {message}"
        super().__init__(message)


class EventNotFound(RestgateError):
    """No handler is registered for the requested event."""

    def __init__(self, event: str) -> None:
        self.event = event
        super().__init__(f"No handler registered for event: {event}")


class EventTimeout(RestgateError):
    """No reply to an event request arrived within the timeout."""

    def __init__(self, event: str, timeout: float) -> None:
        self.event = event
        self.timeout = timeout
        super().__init__(f"Timeout after {timeout}s waiting for reply to event: {event}")


class RemoteError(RestgateError):
    """Error reported by the server that has no local exception class."""

    def __init__(self, type: str, message: str) -> None:
        self.type = type
        super().__init__(f"{type}: {message}")


def error_from_reply(
    event: str,
    type: str,
    message: str,
    status: int | None = None,
) -> RestgateError:
    """Rebuild the local exception for an error frame received from the server."""
    if type == "AuthenticationError":
        return AuthenticationError(message)
    if type == "ConfigurationError":
        return ConfigurationError(message)
    if type == "EventNotFound":
        return EventNotFound(event)
    if type == "UpstreamError":
        # message already carries the target and status as rendered by the server
        error = UpstreamError(message)
        error.status = status
        return error
    return RemoteError(type, message)
