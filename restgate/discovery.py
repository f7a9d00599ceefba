"""
Documentation Fetcher

Retrieves the endpoint catalog of a remote API. A failed fetch is retried
with a fixed delay until the per-API retry budget is spent; the budget is
counted over the whole process lifetime and is never reset.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from restgate.config import RestgateConfig
from restgate.connector import Connector
from restgate.errors import DiscoveryError
from restgate.models import EndpointDoc

LOG = logging.getLogger(__name__)

Catalog = list[tuple[str, EndpointDoc]]


def parse_catalog(api_name: str, docs: Any) -> Catalog:
    """Validate a raw ``/docs`` response into ``(endpoint, EndpointDoc)`` pairs."""
    if not isinstance(docs, dict):
        raise DiscoveryError(api_name, f"catalog must be an object, got {type(docs).__name__}")
    try:
        return [(endpoint, EndpointDoc.model_validate(doc or {})) for endpoint, doc in docs.items()]
    except ValidationError as e:
        raise DiscoveryError(api_name, "invalid catalog entry") from e


@dataclass
class DocumentationFetcher:
    config: RestgateConfig = field(default_factory=RestgateConfig)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    attempts: dict[str, int] = field(default_factory=dict, init=False)
    retries_used: dict[str, int] = field(default_factory=dict, init=False)

    async def fetch_catalog(self, api_name: str, connector: Connector) -> Catalog:
        """
        Fetch and validate the catalog of one API.

        Raises:
            DiscoveryError: When the fetch fails and no retries are left
        """
        max_retries = self.config.retries or 0
        self.retries_used.setdefault(api_name, 0)

        while True:
            self.attempts[api_name] = self.attempts.get(api_name, 0) + 1
            try:
                docs = await connector.get(self.config.docs_path)
                return parse_catalog(api_name, docs)
            except Exception as e:
                if self.retries_used[api_name] >= max_retries:
                    if isinstance(e, DiscoveryError):
                        raise
                    raise DiscoveryError(api_name, str(e)) from e

                self.retries_used[api_name] += 1
                LOG.warning(
                    "API %s error: %s. Retry attempt %d of %d in %.1fs",
                    api_name,
                    e,
                    self.retries_used[api_name],
                    max_retries,
                    self.config.retry_delay_seconds,
                )
                await self.sleep(self.config.retry_delay_seconds)
