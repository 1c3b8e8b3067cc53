"""
Report — the auditable outcome of one run.

A Report is built once, at the end of a run, from however many plan
items were processed. ``successful`` is fixed at construction: on a
dry run the UNKNOWN placeholders are left out of the check, since no
provider ever tested them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator

from provision.core.models.facts import FactCollection
from provision.core.models.resource import Resource, ResourceState

if TYPE_CHECKING:
    from provision.providers.base import ResourceProvider


@dataclass(frozen=True)
class ReportItem:
    """Outcome of a single plan item."""

    provider: ResourceProvider
    resource: Resource
    state: ResourceState
    require_administrator: bool = False

    def to_dict(self) -> dict:
        return {
            "type": self.resource.type,
            "name": self.resource.name,
            "state": self.state.value,
            "require_administrator": self.require_administrator,
        }


@dataclass(frozen=True)
class Report:
    """Result of executing a plan."""

    items: tuple[ReportItem, ...] = ()
    facts: FactCollection = field(default_factory=FactCollection)
    requires_administrator: bool = False
    dry_run: bool = False
    successful: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        considered: Iterable[ReportItem] = self.items
        if self.dry_run:
            considered = (i for i in self.items if i.state is not ResourceState.UNKNOWN)
        object.__setattr__(
            self, "successful", all(not i.state.is_error() for i in considered)
        )

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ReportItem]:
        return iter(self.items)

    def _count(self, state: ResourceState) -> int:
        return sum(1 for i in self.items if i.state is state)

    @property
    def changed(self) -> int:
        return self._count(ResourceState.CHANGED)

    @property
    def unchanged(self) -> int:
        return self._count(ResourceState.UNCHANGED)

    @property
    def errors(self) -> int:
        return self._count(ResourceState.ERROR)

    @property
    def unknown(self) -> int:
        return self._count(ResourceState.UNKNOWN)

    @property
    def status(self) -> str:
        if self.successful:
            return "ok"
        if self.changed or self.unchanged:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "successful": self.successful,
            "dry_run": self.dry_run,
            "requires_administrator": self.requires_administrator,
            "total": len(self.items),
            "changed": self.changed,
            "unchanged": self.unchanged,
            "errors": self.errors,
            "unknown": self.unknown,
            "items": [i.to_dict() for i in self.items],
        }
