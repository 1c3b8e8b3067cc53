"""
Resource models — the declaration contract between manifests and providers.

A Resource is identified by its (type, name) pair. Manifests declare
resources through a fluent ResourceBuilder; the graph builder turns each
builder into exactly one Resource. Providers receive Resources and answer
with a ResourceState. Never exceptions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Union

from pydantic import BaseModel, ConfigDict, Field

from provision.core.models.facts import FactCollection

Guard = Union[str, Callable[[FactCollection], bool]]


class ErrorHandling(str, Enum):
    """What the engine does when a resource ends up in the ERROR state."""

    ABORT = "abort"
    IGNORE = "ignore"


class ResourceState(str, Enum):
    """Outcome of running a provider against a resource."""

    UNCHANGED = "unchanged"
    CHANGED = "changed"
    ERROR = "error"
    UNKNOWN = "unknown"   # dry-run placeholder, never tested

    def is_error(self) -> bool:
        return self is ResourceState.ERROR


class ResourceRef(BaseModel):
    """The (type, name) identity of a resource."""

    model_config = ConfigDict(frozen=True)

    type: str
    name: str

    @classmethod
    def parse(cls, value: str) -> ResourceRef:
        """Parse ``"type:name"``. Only the first colon separates the two."""
        resource_type, sep, name = value.partition(":")
        if not sep or not resource_type or not name:
            raise ValueError(f"Expected 'type:name', got {value!r}")
        return cls(type=resource_type, name=name)

    def __str__(self) -> str:
        return f"{self.type}:{self.name}"


class Resource(BaseModel):
    """A desired piece of machine state.

    ``properties`` is the type-specific bag interpreted by the provider.
    ``unless`` / ``only_if`` are side-effect-free guards: shell commands
    (exit code 0 means true) or callables receiving the run's facts.
    """

    name: str
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)
    after: list[ResourceRef] = Field(default_factory=list)
    require_administrator: bool = False
    on_error: ErrorHandling = ErrorHandling.ABORT
    unless: Guard | None = None
    only_if: Guard | None = None
    description: str = ""

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(type=self.type, name=self.name)


class ResourceBuilder:
    """Fluent declaration of a single resource.

    Example::

        ctx.resource("exec", "Install Chocolatey") \\
            .set(command="powershell ~/install-chocolatey.ps1") \\
            .require_administrator() \\
            .after("download", "https://chocolatey.org/install.ps1")
    """

    def __init__(self, resource_type: str, name: str):
        if not resource_type:
            raise ValueError("Resource type must not be empty")
        if not name:
            raise ValueError("Resource name must not be empty")
        self._type = resource_type
        self._name = name
        self._properties: dict[str, Any] = {}
        self._after: list[ResourceRef] = []
        self._before: list[ResourceRef] = []
        self._require_administrator = False
        self._on_error = ErrorHandling.ABORT
        self._unless: Guard | None = None
        self._only_if: Guard | None = None
        self._description = ""
        self._configurations: list[Callable[[Resource], None]] = []

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(type=self._type, name=self._name)

    @property
    def before_refs(self) -> list[ResourceRef]:
        """Resources that must run after this one."""
        return list(self._before)

    @property
    def configurations(self) -> list[Callable[[Resource], None]]:
        """Deferred callbacks to apply to the built resource before planning."""
        return list(self._configurations)

    # ── Fluent setters ──────────────────────────────────────────

    def set(self, **properties: Any) -> ResourceBuilder:
        self._properties.update(properties)
        return self

    def describe(self, description: str) -> ResourceBuilder:
        self._description = description
        return self

    def after(self, resource_type: str, name: str) -> ResourceBuilder:
        ref = ResourceRef(type=resource_type, name=name)
        if ref not in self._after:
            self._after.append(ref)
        return self

    def before(self, resource_type: str, name: str) -> ResourceBuilder:
        ref = ResourceRef(type=resource_type, name=name)
        if ref not in self._before:
            self._before.append(ref)
        return self

    def require_administrator(self, required: bool = True) -> ResourceBuilder:
        self._require_administrator = required
        return self

    def on_error(self, policy: ErrorHandling | str) -> ResourceBuilder:
        self._on_error = ErrorHandling(policy)
        return self

    def unless(self, guard: Guard) -> ResourceBuilder:
        self._unless = guard
        return self

    def only_if(self, guard: Guard) -> ResourceBuilder:
        self._only_if = guard
        return self

    def configure(self, callback: Callable[[Resource], None]) -> ResourceBuilder:
        """Register a callback run once against the built resource before planning."""
        self._configurations.append(callback)
        return self

    # ── Build ───────────────────────────────────────────────────

    def build(self) -> Resource:
        return Resource(
            name=self._name,
            type=self._type,
            properties=dict(self._properties),
            after=list(self._after),
            require_administrator=self._require_administrator,
            on_error=self._on_error,
            unless=self._unless,
            only_if=self._only_if,
            description=self._description,
        )

    def __repr__(self) -> str:
        return f"<ResourceBuilder {self.ref}>"
