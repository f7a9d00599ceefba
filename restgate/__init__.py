"""
restgate - WebSocket Event Gateway for REST APIs

Discovers the endpoints of remote HTTP APIs from their ``/docs`` catalog
and exposes each endpoint as a named event on a WebSocket server. Each
event is proxied to its HTTP call with optional signing, response
transformation and broadcast to the other connected peers.
"""

from restgate.builder import RequestBuilder, RequestDescriptor
from restgate.client import EventClient
from restgate.config import RestgateConfig
from restgate.connector import Connector
from restgate.discovery import DocumentationFetcher
from restgate.dispatcher import ProxyDispatcher
from restgate.errors import (
    AuthenticationError,
    ConfigurationError,
    DiscoveryError,
    EventNotFound,
    EventTimeout,
    RemoteError,
    RestgateError,
    UpstreamError,
)
from restgate.hooks import ApiDescriptor, HookSet
from restgate.models import (
    AuthLevel,
    ConnectionOptions,
    EndpointDoc,
    EventMessage,
    EventPayload,
)
from restgate.plugin import RestgatePlugin
from restgate.registry import ConnectorRegistry
from restgate.server import EventServer, Peer, Session

__all__ = [
    # Builder
    "RequestBuilder",
    "RequestDescriptor",
    # Client
    "EventClient",
    # Server
    "EventServer",
    "Peer",
    "Session",
    # Plugin
    "RestgatePlugin",
    "ApiDescriptor",
    "HookSet",
    "ConnectorRegistry",
    "Connector",
    "DocumentationFetcher",
    "ProxyDispatcher",
    "RestgateConfig",
    # Models
    "AuthLevel",
    "ConnectionOptions",
    "EndpointDoc",
    "EventMessage",
    "EventPayload",
    # Errors
    "RestgateError",
    "AuthenticationError",
    "ConfigurationError",
    "DiscoveryError",
    "EventNotFound",
    "EventTimeout",
    "RemoteError",
    "UpstreamError",
]

__version__ = "0.1.0"
