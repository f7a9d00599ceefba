"""Process-scoped cache of one connector per API name."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from restgate.config import RestgateConfig
from restgate.connector import Connector
from restgate.errors import ConfigurationError
from restgate.models import ConnectionOptions

LOG = logging.getLogger(__name__)

ConnectorFactory = Callable[[str, ConnectionOptions], Connector]


@dataclass
class ConnectorRegistry:
    """
    Maps API names to lazily created connectors.

    The first registration of a name wins; later calls with different
    options return the cached connector. After ``aclose()`` the registry
    cannot be reused.
    """

    config: RestgateConfig = field(default_factory=RestgateConfig)
    factory: ConnectorFactory | None = None
    connectors: dict[str, Connector] = field(default_factory=dict, init=False)
    closed: bool = field(default=False, init=False)

    def create(self, name: str, options: ConnectionOptions) -> Connector:
        if self.factory is not None:
            return self.factory(name, options)
        return Connector(options, name=name, config=self.config)

    def get_or_create(self, name: str, options: ConnectionOptions) -> Connector:
        if self.closed:
            raise ConfigurationError("Connector registry is closed")

        connector = self.connectors.get(name)
        if connector is not None:
            if connector.options != options:
                LOG.debug("Connector %s already exists, ignoring new options", name)
            return connector

        connector = self.create(name, options)
        self.connectors[name] = connector
        LOG.info("Created connector %s for %s", name, options.url)
        return connector

    def get(self, name: str) -> Connector | None:
        return self.connectors.get(name)

    def names(self) -> list[str]:
        return list(self.connectors)

    async def aclose(self) -> None:
        """Close every connector and mark the registry as torn down."""
        self.closed = True
        connectors, self.connectors = self.connectors, {}
        for name, connector in connectors.items():
            await connector.aclose()
            LOG.debug("Closed connector %s", name)
