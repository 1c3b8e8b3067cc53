"""
Engine executor — the central orchestration loop.

The engine takes run arguments, collects facts, lets catalogs pick
manifests, compiles the resource graph, plans it against the provider
repository and walks the plan one provider call at a time.

Flow:
    args → facts → catalogs → manifests → graph → plan → execute → report

Ordering is a correctness requirement: later resources may depend on
the state earlier ones produced, so exactly one provider call is in
flight at any time. The walk stops on the first ineligible provider,
the first ERROR whose policy is ABORT, or on cancellation. Those halts
still produce a (partial) Report; construction, resolution and privilege
failures raise before any provider runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from provision.core.engine.graph import ResourceGraph, build_resource_graph
from provision.core.engine.planner import build_execution_plan
from provision.core.errors import ManifestResolutionError, PrivilegeError
from provision.core.models.facts import FactCollection
from provision.core.models.manifest import Catalog, CatalogContext, Manifest, ManifestKey
from provision.core.models.plan import ExecutionPlan, ExecutionPlanItem
from provision.core.models.report import Report, ReportItem
from provision.core.models.resource import ErrorHandling, ResourceState
from provision.core.services.facts import FactBuilder
from provision.core.services.guards import GuardError, GuardEvaluator
from provision.core.services.security import SecurityPrincipal
from provision.core.services.status import NullStatus, ReportSubscriber, StatusSink
from provision.providers.base import ExecutionContext
from provision.providers.registry import ProviderRepository

logger = logging.getLogger(__name__)

_MARKERS = {
    ResourceState.CHANGED: "✓",
    ResourceState.UNCHANGED: "=",
    ResourceState.ERROR: "✗",
    ResourceState.UNKNOWN: "?",
}


@dataclass
class PreparedRun:
    """Everything computed before the first provider call."""

    facts: FactCollection
    catalogs: list[Catalog] = field(default_factory=list)
    manifests: list[Manifest] = field(default_factory=list)
    graph: ResourceGraph = field(default_factory=ResourceGraph)
    plan: ExecutionPlan = field(default_factory=ExecutionPlan)


class ExecutionEngine:
    """Run-scoped engine. Every collaborator is passed in explicitly."""

    def __init__(
        self,
        providers: ProviderRepository,
        fact_builder: FactBuilder,
        catalogs: Iterable[Catalog] | None = None,
        manifests: Iterable[Manifest] | None = None,
        security: SecurityPrincipal | None = None,
        subscriber: ReportSubscriber | None = None,
        guards: GuardEvaluator | None = None,
    ):
        self._providers = providers
        self._fact_builder = fact_builder
        self._catalogs = list(catalogs or [])
        self._manifests = list(manifests or [])
        self._security = security or SecurityPrincipal()
        self._subscriber = subscriber
        self._guards = guards or GuardEvaluator()

    # ── Planning ────────────────────────────────────────────────

    def select_catalogs(self, facts: FactCollection) -> tuple[list[Catalog], CatalogContext]:
        """Run every catalog whose gate passes, collecting the manifests it uses."""
        context = CatalogContext(facts)
        selected: list[Catalog] = []
        for catalog in self._catalogs:
            if catalog.can_run(facts):
                catalog.execute(context)
                selected.append(catalog)
            else:
                logger.debug("Catalog %s does not apply, skipping", catalog.name)
        return selected, context

    def resolve_manifests(self, keys: Sequence[ManifestKey]) -> list[Manifest]:
        """Match used manifest keys to registered manifest instances.

        A class matches by exact type, a string by manifest name. Keys
        without a registered manifest are dropped.
        """
        resolved: list[Manifest] = []
        for key in keys:
            if isinstance(key, type):
                matches = [m for m in self._manifests if type(m) is key]
                label = key.__name__
            else:
                matches = [m for m in self._manifests if m.name == key]
                label = key

            if not matches:
                logger.debug("Manifest %s is not registered, skipping", label)
                continue
            if len(matches) > 1:
                raise ManifestResolutionError(
                    f"Manifest '{label}' matches {len(matches)} registered manifests"
                )
            if not any(m is matches[0] for m in resolved):
                resolved.append(matches[0])
        return resolved

    def prepare(self, args: Sequence[str] = ()) -> PreparedRun:
        """Steps before execution: facts, catalogs, manifests, graph, plan."""
        facts = self._fact_builder.build(args)
        catalogs, context = self.select_catalogs(facts)
        manifests = self.resolve_manifests(context.manifests)

        graph = build_resource_graph(self._providers, manifests, facts)
        graph.configurations.run()

        plan = build_execution_plan(graph, self._providers, facts)
        return PreparedRun(
            facts=facts,
            catalogs=catalogs,
            manifests=manifests,
            graph=graph,
            plan=plan,
        )

    # ── Running ─────────────────────────────────────────────────

    async def run(
        self,
        args: Sequence[str] = (),
        status: StatusSink | None = None,
        dry_run: bool = False,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> Report:
        """Plan and execute a full run.

        Raises:
            GraphConstructionError: Resources could not be compiled.
            ResolutionError: A provider or manifest could not be resolved.
            PrivilegeError: Elevation is required and missing.
        """
        prepared = self.prepare(args)
        plan = prepared.plan

        if plan.is_empty:
            logger.info("Nothing to do: the execution plan is empty")
            return Report((), prepared.facts, plan.requires_administrator, dry_run)

        deadline = time.monotonic() + timeout if timeout is not None else None
        report = await self.execute_plan(
            plan, prepared.facts, status, dry_run, cancel=cancel, deadline=deadline
        )
        self._notify(report)
        return report

    async def execute_plan(
        self,
        plan: ExecutionPlan,
        facts: FactCollection,
        status: StatusSink | None = None,
        dry_run: bool = False,
        cancel: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> Report:
        """Walk the plan in order and collect a Report.

        Raises:
            PrivilegeError: The plan needs administrator rights, the
                process is not elevated and this is not a dry run.
        """
        if plan.requires_administrator and not dry_run:
            if not self._security.is_administrator():
                raise PrivilegeError("Not running as administrator")

        status = status or NullStatus()
        context = ExecutionContext(facts=facts, dry_run=dry_run, status=status)
        results: list[ReportItem] = []

        for item in plan:
            if dry_run:
                results.append(self._item(item, ResourceState.UNKNOWN))
                continue

            label = f"{item.resource.type}::{item.resource.name}"

            if self._halted(cancel, deadline):
                logger.warning("Run cancelled before %s", label)
                break

            status.update(f"Executing {label}")

            # Abort if we cannot run a provider
            if not item.provider.can_run(facts):
                logger.error("The resource %s cannot be run", label)
                break

            state = await self._run_item(item, context)
            results.append(self._item(item, state))
            logger.info("%s %s → %s", _MARKERS[state], label, state.value)

            if state.is_error() and item.resource.on_error is not ErrorHandling.IGNORE:
                logger.error("Aborting run due to error in %s.", item.resource.name)
                break

        logger.debug("Execution done.")
        return Report(tuple(results), facts, plan.requires_administrator, dry_run)

    async def _run_item(self, item: ExecutionPlanItem, context: ExecutionContext) -> ResourceState:
        resource = item.resource
        try:
            if not await self._guards.should_run(resource, context.facts):
                return ResourceState.UNCHANGED
        except GuardError as e:
            logger.error("Guard for %s failed: %s", resource.ref, e)
            return ResourceState.ERROR

        try:
            state = await item.provider.run(context, resource)
        except Exception as e:
            # contract violation: providers report failures as ERROR
            logger.error("Provider %s raised during execution: %s", resource.type, e)
            return ResourceState.ERROR

        if not isinstance(state, ResourceState):
            logger.error(
                "Provider %s returned %r instead of a ResourceState", resource.type, state
            )
            return ResourceState.ERROR
        return state

    @staticmethod
    def _item(item: ExecutionPlanItem, state: ResourceState) -> ReportItem:
        return ReportItem(item.provider, item.resource, state, item.require_administrator)

    @staticmethod
    def _halted(cancel: asyncio.Event | None, deadline: float | None) -> bool:
        if cancel is not None and cancel.is_set():
            return True
        return deadline is not None and time.monotonic() >= deadline

    def _notify(self, report: Report) -> None:
        if self._subscriber is None:
            return
        try:
            self._subscriber.notify(report)
        except Exception as e:
            logger.warning("Report subscriber failed: %s", e)
