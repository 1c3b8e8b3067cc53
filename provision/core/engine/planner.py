"""
Planner — pair every graph node with its provider.
"""

from __future__ import annotations

import logging

from provision.core.engine.graph import ResourceGraph
from provision.core.errors import NoProviderError, UnresolvedResourceError
from provision.core.models.facts import FactCollection
from provision.core.models.plan import ExecutionPlan, ExecutionPlanItem
from provision.providers.registry import ProviderRepository

logger = logging.getLogger(__name__)


def build_execution_plan(
    graph: ResourceGraph,
    repository: ProviderRepository,
    facts: FactCollection,
) -> ExecutionPlan:
    """Build an execution plan from a resource graph.

    For each node, in topological order, resolves the resource and its
    provider and decides whether the item needs administrator rights
    (the resource asks for it, or the provider does on this host).

    Raises:
        UnresolvedResourceError: A node has no resource behind it.
        NoProviderError: No provider is registered for a resource type.
    """
    items: list[ExecutionPlanItem] = []

    for node in graph.traverse():
        resource = graph.find(node)
        if resource is None:
            raise UnresolvedResourceError(
                f"Could not find resource '{node.name}' ({node.type})."
            )

        provider = repository.get(resource.type)
        if provider is None:
            raise NoProviderError(resource.type, resource.name)

        require_administrator = (
            resource.require_administrator or provider.require_administrator(facts)
        )
        items.append(ExecutionPlanItem(provider, resource, require_administrator))

    plan = ExecutionPlan(tuple(items))
    logger.debug(
        "Execution plan: %d item(s), requires administrator: %s",
        len(plan),
        plan.requires_administrator,
    )
    return plan
