"""
Restgate Plugin

Discovers the endpoints of every configured API and registers one event
handler per endpoint with the event server.

Registration is atomic per API only: when one API fails discovery the
others are still registered, their events stay registered, and
``register`` raises afterwards.
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from restgate.config import RestgateConfig
from restgate.connector import Connector
from restgate.discovery import DocumentationFetcher
from restgate.dispatcher import ProxyDispatcher
from restgate.errors import ConfigurationError, DiscoveryError
from restgate.hooks import ApiDescriptor
from restgate.registry import ConnectorRegistry

if TYPE_CHECKING:
    from restgate.server import EventServer

LOG = logging.getLogger(__name__)


class RestgatePlugin:
    """
    Exposes remote HTTP APIs as events on an EventServer.

    Usage:
        plugin = RestgatePlugin([ApiDescriptor.from_url("users", "http://users:8080")])
        server.register_plugin(plugin)
        await server.setup()
    """

    name = "restgate"

    def __init__(
        self,
        apis: Iterable[ApiDescriptor],
        *,
        config: RestgateConfig | None = None,
        registry: ConnectorRegistry | None = None,
        fetcher: DocumentationFetcher | None = None,
    ) -> None:
        self.apis = list(apis)
        self.config = config or RestgateConfig()
        self.registry = registry or ConnectorRegistry(config=self.config)
        self.fetcher = fetcher or DocumentationFetcher(config=self.config)
        self.registered_events: list[str] = []
        self.failed_apis: list[str] = []

    def get_connector(self, name: str) -> Connector | None:
        return self.registry.get(name)

    async def register(self, server: "EventServer") -> None:
        """
        Register the endpoints of all APIs.

        Raises:
            DiscoveryError: If any API could not be discovered
            ConfigurationError: If an event key is already registered
        """
        if not self.apis:
            LOG.warning("No apis defined")

        failures: list[DiscoveryError] = []
        self.failed_apis = []
        for api in self.apis:
            try:
                await self.register_api(server, api)
            except DiscoveryError as e:
                LOG.error("API %s was not registered: %s", api.name, e)
                self.failed_apis.append(api.name)
                failures.append(e)

        if failures:
            names = ", ".join(e.api for e in failures)
            raise DiscoveryError(names, f"{len(failures)} API(s) failed discovery") from failures[0]

    async def register_api(self, server: "EventServer", api: ApiDescriptor) -> list[str]:
        connector = self.registry.get_or_create(api.name, api.connection_options)
        catalog = await self.fetcher.fetch_catalog(api.name, connector)

        keys = [self.config.event_key(api.name, endpoint) for endpoint, _ in catalog]
        taken = [key for key in keys if server.has_event_handler(key)]
        if taken:
            raise ConfigurationError(f"Event(s) already registered: {', '.join(taken)}")

        dispatchers = [
            ProxyDispatcher(api, connector, key, doc, self.config)
            for key, (_, doc) in zip(keys, catalog, strict=True)
        ]
        for key, (endpoint, doc), dispatcher in zip(keys, catalog, dispatchers, strict=True):
            if doc.deprecated:
                LOG.warning("API %s endpoint %s is deprecated", api.name, endpoint)
            server.register_event_handler(key, dispatcher)
            self.registered_events.append(key)

        LOG.info("Registered %d endpoint(s) of API %s", len(keys), api.name)
        return keys

    async def close(self) -> None:
        await self.registry.aclose()
