"""
Error taxonomy — every failure the engine raises derives from ProvisionError.

Construction and resolution errors are raised before any provider runs.
Privilege errors are raised before the first provider call. Execution-time
problems (ineligible provider, provider returning ERROR) are never raised;
they halt the walk and surface in the partial Report instead.
"""

from __future__ import annotations

from typing import Sequence


class ProvisionError(Exception):
    """Base class for all provisioning failures."""


# ── Construction ────────────────────────────────────────────────


class GraphConstructionError(ProvisionError):
    """The declared resources cannot be compiled into a graph."""


class DuplicateResourceError(GraphConstructionError):
    """Two resources share the same (type, name) identity."""

    def __init__(self, ref: str):
        super().__init__(f"Resource '{ref}' is declared more than once")
        self.ref = ref


class UnknownDependencyError(GraphConstructionError):
    """An ordering constraint points at a resource that was never declared."""

    def __init__(self, resource: str, dependency: str):
        super().__init__(
            f"Resource '{resource}' depends on unknown resource '{dependency}'"
        )
        self.resource = resource
        self.dependency = dependency


class CycleError(GraphConstructionError):
    """The ordering constraints form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(
            "Dependency cycle detected: " + " -> ".join(self.cycle)
        )


# ── Resolution ──────────────────────────────────────────────────


class ResolutionError(ProvisionError):
    """A declared item could not be matched to its implementation."""


class UnresolvedResourceError(ResolutionError):
    """A graph node has no backing resource (internal consistency check)."""


class NoProviderError(ResolutionError):
    """No provider is registered for a resource type."""

    def __init__(self, resource_type: str, resource_name: str):
        super().__init__(
            f"Could not find resource provider for '{resource_name}' ({resource_type})"
        )
        self.resource_type = resource_type
        self.resource_name = resource_name


class ManifestResolutionError(ResolutionError):
    """A manifest key used by a catalog matches more than one manifest."""


# ── Privilege ───────────────────────────────────────────────────


class PrivilegeError(ProvisionError):
    """The plan needs administrator rights and the process is not elevated."""


# ── Configuration ───────────────────────────────────────────────


class ConfigError(ProvisionError):
    """Raised when the provisioning configuration is invalid or missing."""
