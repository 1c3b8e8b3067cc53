"""
Mock provider — universal test double for provider operations.

Simulates a provider without touching the machine. By default the
first run of a resource reports CHANGED and later runs report
UNCHANGED, which is exactly what an idempotent provider does.
States can be forced per resource name.
"""

from __future__ import annotations

from provision.core.models.facts import FactCollection
from provision.core.models.resource import Resource, ResourceState
from provision.providers.base import ExecutionContext, ResourceProvider


class MockProvider(ResourceProvider):
    """Universal mock provider for testing."""

    def __init__(
        self,
        resource_type: str = "mock",
        available: bool = True,
        administrator: bool = False,
    ):
        self._type = resource_type
        self._available = available
        self._administrator = administrator
        self._states: dict[str, ResourceState] = {}
        self._applied: set[str] = set()
        self._raises: dict[str, Exception] = {}
        self._call_log: list[str] = []

    @property
    def resource_type(self) -> str:
        return self._type

    @property
    def call_log(self) -> list[str]:
        """Names of all resources this mock has run, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def can_run(self, facts: FactCollection) -> bool:
        return self._available

    def require_administrator(self, facts: FactCollection) -> bool:
        return self._administrator

    def set_state(self, name: str, state: ResourceState) -> None:
        """Force the state returned for a resource name."""
        self._states[name] = state

    def set_failure(self, name: str) -> None:
        self._states[name] = ResourceState.ERROR

    def set_exception(self, name: str, error: Exception) -> None:
        """Make run() raise for a resource, breaking the provider contract."""
        self._raises[name] = error

    async def run(self, context: ExecutionContext, resource: Resource) -> ResourceState:
        self._call_log.append(resource.name)

        if resource.name in self._raises:
            raise self._raises[resource.name]

        if resource.name in self._states:
            return self._states[resource.name]

        # Default: converge once, then stay converged
        if resource.name in self._applied:
            return ResourceState.UNCHANGED
        self._applied.add(resource.name)
        return ResourceState.CHANGED

    def reset(self) -> None:
        """Clear call log, forced states and converged resources."""
        self._call_log.clear()
        self._states.clear()
        self._applied.clear()
        self._raises.clear()
