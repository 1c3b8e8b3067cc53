"""
Execution plan — the ordered, provider-resolved form of the resource graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from provision.core.models.resource import Resource

if TYPE_CHECKING:
    from provision.providers.base import ResourceProvider


@dataclass(frozen=True)
class ExecutionPlanItem:
    """A resource paired with the provider that will run it."""

    provider: ResourceProvider
    resource: Resource
    require_administrator: bool = False


@dataclass(frozen=True)
class ExecutionPlan:
    """Plan items in topological order."""

    items: tuple[ExecutionPlanItem, ...] = field(default_factory=tuple)

    @property
    def requires_administrator(self) -> bool:
        return any(item.require_administrator for item in self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ExecutionPlanItem]:
        return iter(self.items)

    def to_dict(self) -> dict:
        return {
            "requires_administrator": self.requires_administrator,
            "total": len(self.items),
            "items": [
                {
                    "type": item.resource.type,
                    "name": item.resource.name,
                    "provider": item.provider.__class__.__name__,
                    "require_administrator": item.require_administrator,
                    "after": [str(ref) for ref in item.resource.after],
                }
                for item in self.items
            ],
        }
