"""
Provider base — the protocol contract between engine and machine state.

This defines the abstract interface that every resource provider must
implement. The engine only talks to providers through this protocol,
never directly to the registry, the file system or a shell.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from provision.core.models.facts import FactCollection
from provision.core.models.resource import Resource, ResourceState
from provision.core.services.status import NullStatus


class ExecutionContext(BaseModel):
    """Everything a provider needs besides the resource itself."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    facts: FactCollection = Field(default_factory=FactCollection)
    dry_run: bool = False
    status: Any = Field(default_factory=NullStatus)  # StatusSink


class ResourceProvider(ABC):
    """Abstract base class for all resource providers.

    Providers inspect and mutate real machine state for one resource
    type. They NEVER raise exceptions: failures are reported as
    ResourceState.ERROR. ``run`` must be idempotent: when the resource
    is already in its desired state it returns UNCHANGED.

    To create a new provider:
        1. Subclass ResourceProvider
        2. Implement resource_type, can_run, run
        3. Register it in the ProviderRepository
    """

    @property
    @abstractmethod
    def resource_type(self) -> str:
        """The resource type this provider handles (e.g. 'file', 'exec')."""

    @abstractmethod
    def can_run(self, facts: FactCollection) -> bool:
        """Whether this provider is usable on the current host.

        Must be pure and fast.
        """

    def require_administrator(self, facts: FactCollection) -> bool:
        """Whether every resource of this type needs elevated rights."""
        return False

    @abstractmethod
    async def run(self, context: ExecutionContext, resource: Resource) -> ResourceState:
        """Bring ``resource`` to its desired state.

        MUST never raise. All failures are returned as ResourceState.ERROR.
        """

    @staticmethod
    def prop(resource: Resource, key: str, default: Any = None) -> Any:
        """Read a resource property with a default."""
        return resource.properties.get(key, default)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} type={self.resource_type!r}>"
