"""
Resource graph — compile manifest declarations into an ordered DAG.

Flow:
    manifests → builders → resources → edges → topological order

Every ``after(type, name)`` on resource R adds the edge ``dependency → R``.
``before(type, name)`` is the inverse relation: it is materialized as an
``after`` on the target resource. The traversal is stable: when several
resources are ready at once, they come out in declaration order, so two
runs over the same manifests always produce the same plan.
"""

from __future__ import annotations

import functools
import heapq
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Iterator

from provision.core.errors import (
    CycleError,
    DuplicateResourceError,
    UnknownDependencyError,
)
from provision.core.models.facts import FactCollection
from provision.core.models.manifest import Manifest, ManifestContext
from provision.core.models.resource import Resource, ResourceBuilder, ResourceRef

if TYPE_CHECKING:
    from provision.providers.registry import ProviderRepository

logger = logging.getLogger(__name__)


class DeferredConfigurations:
    """Ordered side-effect actions collected while assembling the graph.

    ``run()`` invokes each action exactly once, in registration order.
    Running the list a second time is an error.
    """

    def __init__(self) -> None:
        self._actions: list[Callable[[], None]] = []
        self._consumed = False

    def add(self, action: Callable[[], None]) -> None:
        if self._consumed:
            raise RuntimeError("Configurations have already been run")
        self._actions.append(action)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def run(self) -> int:
        """Run every action once. Returns the number of actions run."""
        if self._consumed:
            raise RuntimeError("Configurations have already been run")
        self._consumed = True
        for action in self._actions:
            action()
        return len(self._actions)

    def __len__(self) -> int:
        return len(self._actions)


@dataclass
class ResourceGraph:
    """Resources (nodes) and ordering constraints (edges), topologically sorted."""

    resources: dict[ResourceRef, Resource] = field(default_factory=dict)
    order: list[ResourceRef] = field(default_factory=list)
    edges: list[tuple[ResourceRef, ResourceRef]] = field(default_factory=list)
    configurations: DeferredConfigurations = field(default_factory=DeferredConfigurations)

    @property
    def nodes(self) -> list[ResourceRef]:
        """Nodes in declaration order."""
        return list(self.resources.keys())

    def traverse(self) -> Iterator[ResourceRef]:
        """Nodes in topological order."""
        return iter(self.order)

    def find(self, ref: ResourceRef) -> Resource | None:
        return self.resources.get(ref)

    def dependencies_of(self, ref: ResourceRef) -> list[ResourceRef]:
        """Direct dependencies (``after`` targets) of a node."""
        return [src for src, dst in self.edges if dst == ref]

    def dependents_of(self, ref: ResourceRef) -> list[ResourceRef]:
        return [dst for src, dst in self.edges if src == ref]

    def __len__(self) -> int:
        return len(self.resources)


# ── Construction ────────────────────────────────────────────────


def collect_builders(
    manifests: Iterable[Manifest],
    facts: FactCollection,
) -> list[ResourceBuilder]:
    """Execute each manifest and return every declared builder, in order."""
    builders: list[ResourceBuilder] = []
    for manifest in manifests:
        context = ManifestContext(facts)
        manifest.execute(context)
        logger.debug(
            "Manifest %s declared %d resource(s)", manifest.name, len(context.builders)
        )
        builders.extend(context.builders)
    return builders


def build_resource_graph(
    repository: ProviderRepository | None,
    manifests: Iterable[Manifest],
    facts: FactCollection,
) -> ResourceGraph:
    """Build the resource graph for a run.

    Raises:
        DuplicateResourceError: Two resources share a (type, name).
        UnknownDependencyError: An ordering constraint has no target.
        CycleError: The ordering constraints are cyclic.
    """
    graph = ResourceGraph()
    builders = collect_builders(manifests, facts)

    # ── Nodes ──
    for builder in builders:
        ref = builder.ref
        if ref in graph.resources:
            raise DuplicateResourceError(str(ref))
        graph.resources[ref] = builder.build()

    # ── Inverse relation: before(X) on R means after(R) on X ──
    for builder in builders:
        for target in builder.before_refs:
            resource = graph.resources.get(target)
            if resource is None:
                raise UnknownDependencyError(str(builder.ref), str(target))
            if builder.ref not in resource.after:
                resource.after.append(builder.ref)

    # ── Edges ──
    for ref, resource in graph.resources.items():
        for dependency in resource.after:
            if dependency not in graph.resources:
                raise UnknownDependencyError(str(ref), str(dependency))
            graph.edges.append((dependency, ref))

    if repository is not None:
        for resource_type in sorted({ref.type for ref in graph.resources}):
            if resource_type not in repository:
                logger.warning("No provider registered for resource type '%s'", resource_type)

    graph.order = _topological_order(graph.nodes, graph.edges)

    # ── Deferred configurations, in declaration order ──
    for builder in builders:
        resource = graph.resources[builder.ref]
        for callback in builder.configurations:
            graph.configurations.add(functools.partial(callback, resource))

    logger.debug(
        "Resource graph: %d node(s), %d edge(s), %d configuration(s)",
        len(graph.resources),
        len(graph.edges),
        len(graph.configurations),
    )
    return graph


def _topological_order(
    nodes: list[ResourceRef],
    edges: list[tuple[ResourceRef, ResourceRef]],
) -> list[ResourceRef]:
    """Kahn's algorithm, ties broken by declaration index."""
    index = {ref: i for i, ref in enumerate(nodes)}
    in_degree: dict[ResourceRef, int] = {ref: 0 for ref in nodes}
    adj: dict[ResourceRef, list[ResourceRef]] = {ref: [] for ref in nodes}
    for src, dst in edges:
        in_degree[dst] += 1
        adj[src].append(dst)

    ready = [index[ref] for ref, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)
    order: list[ResourceRef] = []

    while ready:
        node = nodes[heapq.heappop(ready)]
        order.append(node)
        for successor in adj[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, index[successor])

    if len(order) < len(nodes):
        remaining = [ref for ref in nodes if in_degree[ref] > 0]
        raise CycleError([str(ref) for ref in _find_cycle(remaining, adj)])

    return order


def _find_cycle(
    remaining: list[ResourceRef],
    adj: dict[ResourceRef, list[ResourceRef]],
) -> list[ResourceRef]:
    """Return one cycle among ``remaining``, closed (first node repeated last)."""
    pending = set(remaining)
    visited: set[ResourceRef] = set()

    for start in remaining:
        if start in visited:
            continue
        path: list[ResourceRef] = []
        on_path: dict[ResourceRef, int] = {}
        stack: list[tuple[ResourceRef, Iterator[ResourceRef]]] = [(start, iter(adj[start]))]
        path.append(start)
        on_path[start] = 0
        visited.add(start)

        while stack:
            node, successors = stack[-1]
            advanced = False
            for successor in successors:
                if successor not in pending:
                    continue
                if successor in on_path:
                    return path[on_path[successor]:] + [successor]
                if successor not in visited:
                    visited.add(successor)
                    on_path[successor] = len(path)
                    path.append(successor)
                    stack.append((successor, iter(adj[successor])))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                path.pop()
                on_path.pop(node, None)

    # not reached: every remaining node has a remaining predecessor
    return list(remaining)
