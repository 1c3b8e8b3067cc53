"""
Provider repository — lookup from resource type to provider.

The repository is the single point of provider management. The planner
resolves every resource's provider through it; nothing resolves
providers at declaration time.
"""

from __future__ import annotations

import logging
from typing import Any

from provision.core.models.facts import FactCollection
from provision.providers.base import ResourceProvider

logger = logging.getLogger(__name__)


class ProviderRepository:
    """Registry of resource providers keyed by resource type."""

    def __init__(self, providers: list[ResourceProvider] | None = None):
        self._providers: dict[str, ResourceProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ResourceProvider) -> None:
        """Register a provider for its resource type."""
        resource_type = provider.resource_type
        if resource_type in self._providers:
            logger.warning("Overwriting existing provider: %s", resource_type)
        self._providers[resource_type] = provider
        logger.debug("Registered provider: %s", resource_type)

    def unregister(self, resource_type: str) -> None:
        self._providers.pop(resource_type, None)

    def get(self, resource_type: str) -> ResourceProvider | None:
        """Look up the provider for a resource type."""
        return self._providers.get(resource_type)

    def list_types(self) -> list[str]:
        return list(self._providers.keys())

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def provider_status(self, facts: FactCollection) -> dict[str, dict[str, Any]]:
        """Eligibility of every registered provider on this host."""
        status = {}
        for resource_type, provider in self._providers.items():
            try:
                available = provider.can_run(facts)
                admin = provider.require_administrator(facts)
            except Exception as e:
                logger.warning("Provider %s failed its status check: %s", resource_type, e)
                available, admin = False, False
            status[resource_type] = {
                "type": resource_type,
                "available": available,
                "require_administrator": admin,
                "provider": provider.__class__.__name__,
            }
        return status


def default_repository() -> ProviderRepository:
    """A repository with the built-in providers registered."""
    from provision.providers.net.download import DownloadProvider
    from provision.providers.shell.command import ExecProvider
    from provision.providers.shell.filesystem import FileProvider

    return ProviderRepository([ExecProvider(), FileProvider(), DownloadProvider()])
