"""
Tests for planning and the execution engine — orchestration, privilege
gating, abort policy, dry runs, cancellation and report subscribers.
"""

import asyncio

import pytest

from provision.core.engine.executor import ExecutionEngine
from provision.core.engine.graph import build_resource_graph
from provision.core.engine.planner import build_execution_plan
from provision.core.errors import (
    CycleError,
    ManifestResolutionError,
    NoProviderError,
    PrivilegeError,
    UnknownDependencyError,
    UnresolvedResourceError,
)
from provision.core.models.facts import FactCollection
from provision.core.models.manifest import Manifest, ManifestContext
from provision.core.models.resource import ErrorHandling, ResourceRef, ResourceState
from provision.core.services.facts import StaticFactBuilder
from provision.core.services.security import StaticSecurityPrincipal
from provision.core.services.status import RecordingStatus
from provision.providers.mock import MockProvider
from provision.providers.registry import ProviderRepository

from tests.helpers import DeclaredManifest, UseAll


def _chain(on_error_b: ErrorHandling = ErrorHandling.ABORT):
    """A → B → C, all of type 'mock'."""

    def declare(ctx):
        ctx.resource("mock", "A")
        ctx.resource("mock", "B").after("mock", "A").on_error(on_error_b)
        ctx.resource("mock", "C").after("mock", "B")

    return DeclaredManifest(declare, "chain")


def _engine(
    repository,
    manifests,
    catalogs=None,
    administrator=False,
    subscriber=None,
    facts=None,
):
    if catalogs is None:
        catalogs = [UseAll(*[m.name for m in manifests])]
    return ExecutionEngine(
        providers=repository,
        fact_builder=StaticFactBuilder(facts or {"os": {"platform": "linux"}}),
        catalogs=catalogs,
        manifests=manifests,
        security=StaticSecurityPrincipal(administrator),
        subscriber=subscriber,
    )


def _states(report) -> list[tuple[str, ResourceState]]:
    return [(i.resource.name, i.state) for i in report]


class Subscriber:
    def __init__(self, fail: bool = False):
        self.reports = []
        self._fail = fail

    def notify(self, report) -> None:
        self.reports.append(report)
        if self._fail:
            raise RuntimeError("subscriber exploded")


# ── Planner ─────────────────────────────────────────────────────────


class TestBuildExecutionPlan:
    def test_items_in_topological_order(self, repository, facts):
        graph = build_resource_graph(repository, [_chain()], facts)
        plan = build_execution_plan(graph, repository, facts)
        assert [i.resource.name for i in plan] == ["A", "B", "C"]
        assert all(isinstance(i.provider, MockProvider) for i in plan)

    def test_admin_from_resource(self, repository, facts):
        manifest = DeclaredManifest(
            lambda ctx: (ctx.resource("mock", "a"), ctx.resource("mock", "b").require_administrator())
        )
        graph = build_resource_graph(repository, [manifest], facts)
        plan = build_execution_plan(graph, repository, facts)
        assert [i.require_administrator for i in plan] == [False, True]
        assert plan.requires_administrator

    def test_admin_from_provider(self, facts):
        repository = ProviderRepository(
            [MockProvider("mock"), MockProvider("registry", administrator=True)]
        )

        def declare(ctx):
            ctx.resource("mock", "a")
            ctx.resource("registry", "policy")

        graph = build_resource_graph(repository, [DeclaredManifest(declare)], facts)
        plan = build_execution_plan(graph, repository, facts)
        assert [i.require_administrator for i in plan] == [False, True]
        assert plan.requires_administrator

    def test_no_admin_needed(self, repository, facts):
        graph = build_resource_graph(repository, [_chain()], facts)
        assert not build_execution_plan(graph, repository, facts).requires_administrator

    def test_no_provider(self, repository, facts):
        manifest = DeclaredManifest(lambda ctx: ctx.resource("registry", "key"))
        graph = build_resource_graph(repository, [manifest], facts)
        with pytest.raises(NoProviderError) as exc:
            build_execution_plan(graph, repository, facts)
        assert exc.value.resource_type == "registry"

    def test_unresolved_resource(self, repository, facts):
        graph = build_resource_graph(repository, [_chain()], facts)
        del graph.resources[ResourceRef(type="mock", name="B")]
        with pytest.raises(UnresolvedResourceError):
            build_execution_plan(graph, repository, facts)

    def test_empty_graph(self, repository, facts):
        graph = build_resource_graph(repository, [], facts)
        plan = build_execution_plan(graph, repository, facts)
        assert plan.is_empty
        assert plan.requires_administrator is False


# ── Orchestration ───────────────────────────────────────────────────


class Base(Manifest):
    def execute(self, context: ManifestContext) -> None:
        context.resource("mock", "base")


class Tools(Manifest):
    def execute(self, context: ManifestContext) -> None:
        context.resource("mock", "tools").after("mock", "base")


class SubTools(Tools):
    pass


class TestOrchestration:
    def test_only_passing_catalogs_select_manifests(self, repository):
        engine = _engine(
            repository,
            [Base(), Tools()],
            catalogs=[UseAll(Base), UseAll(Tools, applies=False)],
        )
        prepared = engine.prepare()
        assert [m.name for m in prepared.manifests] == ["Base"]
        assert [i.resource.name for i in prepared.plan] == ["base"]

    def test_union_of_manifests_across_catalogs(self, repository):
        engine = _engine(
            repository,
            [Base(), Tools()],
            catalogs=[UseAll(Tools), UseAll(Base, Tools)],
        )
        prepared = engine.prepare()
        assert [m.name for m in prepared.manifests] == ["Tools", "Base"]
        assert [i.resource.name for i in prepared.plan] == ["base", "tools"]

    def test_exact_type_match(self, repository):
        engine = _engine(repository, [SubTools(), Base()], catalogs=[UseAll(Tools, Base)])
        prepared = engine.prepare()
        # SubTools is not Tools: the used Tools key is dropped
        assert [m.name for m in prepared.manifests] == ["Base"]

    def test_unregistered_manifest_is_dropped(self, repository):
        engine = _engine(repository, [Base()], catalogs=[UseAll(Base, "missing", Tools)])
        assert [m.name for m in engine.prepare().manifests] == ["Base"]

    def test_match_by_name(self, repository):
        manifest = DeclaredManifest(lambda ctx: ctx.resource("mock", "x"), "named")
        engine = _engine(repository, [manifest], catalogs=[UseAll("named")])
        assert engine.prepare().manifests == [manifest]

    def test_ambiguous_manifest(self, repository):
        engine = _engine(repository, [Base(), Base()], catalogs=[UseAll(Base)])
        with pytest.raises(ManifestResolutionError):
            engine.prepare()

    def test_catalog_gate_sees_facts(self, repository):
        class LinuxOnly(UseAll):
            def can_run(self, facts):
                return facts["os"]["platform"] == "linux"

        engine = _engine(repository, [Base()], catalogs=[LinuxOnly(Base)])
        assert len(engine.prepare().plan) == 1

        engine = _engine(
            repository, [Base()], catalogs=[LinuxOnly(Base)], facts={"os": {"platform": "windows"}}
        )
        assert engine.prepare().plan.is_empty

    def test_skipped_catalog_manifests_are_not_executed(self, repository):
        calls = []
        manifest = DeclaredManifest(lambda ctx: calls.append("executed"), "gated")
        engine = _engine(repository, [manifest], catalogs=[UseAll("gated", applies=False)])
        engine.prepare()
        assert calls == []

    def test_run_arguments_become_facts(self, repository):
        def declare(ctx):
            if ctx.facts["args"]["profile"] == "work":
                ctx.resource("mock", "work-tools")

        engine = _engine(repository, [DeclaredManifest(declare)])
        assert engine.prepare(["--profile", "work"]).plan.items[0].resource.name == "work-tools"
        assert engine.prepare([]).plan.is_empty

    def test_configurations_run_before_planning(self, repository):
        def declare(ctx):
            ctx.resource("mock", "a").configure(lambda r: r.properties.update(bound=True))

        engine = _engine(repository, [DeclaredManifest(declare)])
        prepared = engine.prepare()
        assert prepared.graph.configurations.consumed
        assert prepared.plan.items[0].resource.properties == {"bound": True}

    def test_construction_errors_surface(self, repository):
        cyclic = DeclaredManifest(
            lambda ctx: (
                ctx.resource("mock", "A").after("mock", "B"),
                ctx.resource("mock", "B").after("mock", "A"),
            )
        )
        with pytest.raises(CycleError):
            _engine(repository, [cyclic]).prepare()

        dangling = DeclaredManifest(lambda ctx: ctx.resource("mock", "A").after("mock", "missing"))
        with pytest.raises(UnknownDependencyError):
            _engine(repository, [dangling]).prepare()


# ── Execution ───────────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_all_changed(self, repository, mock_provider):
        report = await _engine(repository, [_chain()]).run()
        assert _states(report) == [
            ("A", ResourceState.CHANGED),
            ("B", ResourceState.CHANGED),
            ("C", ResourceState.CHANGED),
        ]
        assert report.successful
        assert not report.dry_run
        assert mock_provider.call_log == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_second_run_is_unchanged(self, repository):
        engine = _engine(repository, [_chain()])
        await engine.run()
        report = await engine.run()
        assert {i.state for i in report} == {ResourceState.UNCHANGED}

    @pytest.mark.asyncio
    async def test_abort_on_error(self, repository, mock_provider):
        mock_provider.set_failure("B")
        report = await _engine(repository, [_chain()]).run()
        assert _states(report) == [("A", ResourceState.CHANGED), ("B", ResourceState.ERROR)]
        assert not report.successful
        assert mock_provider.call_log == ["A", "B"]

    @pytest.mark.asyncio
    async def test_ignore_error_continues(self, repository, mock_provider):
        mock_provider.set_failure("B")
        report = await _engine(repository, [_chain(ErrorHandling.IGNORE)]).run()
        assert _states(report) == [
            ("A", ResourceState.CHANGED),
            ("B", ResourceState.ERROR),
            ("C", ResourceState.CHANGED),
        ]
        assert not report.successful

    @pytest.mark.asyncio
    async def test_provider_exception_is_an_error(self, repository, mock_provider):
        mock_provider.set_exception("A", RuntimeError("boom"))
        report = await _engine(repository, [_chain()]).run()
        assert _states(report) == [("A", ResourceState.ERROR)]

    @pytest.mark.asyncio
    async def test_ineligible_provider_halts_without_recording(self, mock_provider):
        blocked = MockProvider("blocked", available=False)
        repository = ProviderRepository([mock_provider, blocked])

        def declare(ctx):
            ctx.resource("mock", "first")
            ctx.resource("blocked", "second")
            ctx.resource("mock", "third")

        report = await _engine(repository, [DeclaredManifest(declare)]).run()
        assert _states(report) == [("first", ResourceState.CHANGED)]
        assert blocked.call_count == 0
        assert mock_provider.call_log == ["first"]
        assert report.successful

    @pytest.mark.asyncio
    async def test_status_updates_on_real_run(self, repository):
        status = RecordingStatus()
        await _engine(repository, [_chain()]).run(status=status)
        assert status.messages == [
            "Executing mock::A",
            "Executing mock::B",
            "Executing mock::C",
        ]

    @pytest.mark.asyncio
    async def test_report_carries_facts(self, repository):
        report = await _engine(repository, [_chain()]).run(["--ci"])
        assert report.facts.get("os.platform") == "linux"
        assert report.facts.get("args.ci") is True


class TestDryRun:
    @pytest.mark.asyncio
    async def test_all_unknown_no_provider_calls(self, repository, mock_provider):
        status = RecordingStatus()
        mock_provider.set_failure("B")
        report = await _engine(repository, [_chain()]).run(status=status, dry_run=True)
        assert [i.state for i in report] == [ResourceState.UNKNOWN] * 3
        assert report.dry_run
        assert report.successful
        assert mock_provider.call_count == 0
        assert status.messages == []

    @pytest.mark.asyncio
    async def test_dry_run_ignores_ineligible_providers(self):
        repository = ProviderRepository([MockProvider("mock", available=False)])
        report = await _engine(repository, [_chain()]).run(dry_run=True)
        assert len(report) == 3


class TestPrivileges:
    def _admin_chain(self):
        def declare(ctx):
            ctx.resource("mock", "user-level")
            ctx.resource("mock", "machine-level").require_administrator()

        return DeclaredManifest(declare, "admin")

    @pytest.mark.asyncio
    async def test_not_elevated_fails_before_any_provider(self, repository, mock_provider):
        engine = _engine(repository, [self._admin_chain()], administrator=False)
        with pytest.raises(PrivilegeError):
            await engine.run()
        assert mock_provider.call_count == 0

    @pytest.mark.asyncio
    async def test_dry_run_bypasses_elevation(self, repository, mock_provider):
        engine = _engine(repository, [self._admin_chain()], administrator=False)
        report = await engine.run(dry_run=True)
        assert len(report) == 2
        assert report.requires_administrator
        assert [i.state for i in report] == [ResourceState.UNKNOWN] * 2
        assert [i.require_administrator for i in report] == [False, True]

    @pytest.mark.asyncio
    async def test_elevated_runs(self, repository):
        engine = _engine(repository, [self._admin_chain()], administrator=True)
        report = await engine.run()
        assert report.successful
        assert report.requires_administrator


class TestEmptyPlan:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("dry_run", [False, True])
    async def test_empty_report(self, repository, dry_run):
        subscriber = Subscriber()
        engine = _engine(repository, [], catalogs=[], subscriber=subscriber)
        report = await engine.run(dry_run=dry_run)
        assert len(report) == 0
        assert report.successful
        assert report.dry_run is dry_run
        assert report.requires_administrator is False
        assert subscriber.reports == []

    @pytest.mark.asyncio
    async def test_no_privilege_check(self, repository):
        class Exploding(StaticSecurityPrincipal):
            def is_administrator(self):
                raise AssertionError("privilege check performed")

        engine = ExecutionEngine(
            providers=repository,
            fact_builder=StaticFactBuilder(),
            security=Exploding(False),
        )
        report = await engine.run()
        assert report.successful


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_start(self, repository, mock_provider):
        cancel = asyncio.Event()
        cancel.set()
        report = await _engine(repository, [_chain()]).run(cancel=cancel)
        assert len(report) == 0
        assert mock_provider.call_count == 0

    @pytest.mark.asyncio
    async def test_cancel_mid_run(self, repository):
        cancel = asyncio.Event()

        class CancelAfterFirst(MockProvider):
            async def run(self, context, resource):
                cancel.set()
                return await super().run(context, resource)

        repository.register(CancelAfterFirst("mock"))
        report = await _engine(repository, [_chain()]).run(cancel=cancel)
        assert _states(report) == [("A", ResourceState.CHANGED)]

    @pytest.mark.asyncio
    async def test_expired_timeout(self, repository, mock_provider):
        report = await _engine(repository, [_chain()]).run(timeout=0)
        assert len(report) == 0
        assert mock_provider.call_count == 0


class TestGuards:
    @pytest.mark.asyncio
    async def test_unless_skips_provider(self, repository, mock_provider):
        def declare(ctx):
            ctx.resource("mock", "skipped").unless(lambda facts: True)
            ctx.resource("mock", "ran").unless(lambda facts: False)

        report = await _engine(repository, [DeclaredManifest(declare)]).run()
        assert _states(report) == [
            ("skipped", ResourceState.UNCHANGED),
            ("ran", ResourceState.CHANGED),
        ]
        assert mock_provider.call_log == ["ran"]

    @pytest.mark.asyncio
    async def test_only_if_uses_facts(self, repository, mock_provider):
        def declare(ctx):
            ctx.resource("mock", "sandbox").only_if(lambda f: bool(f["windows"]["sandbox"]))
            ctx.resource("mock", "linux").only_if(lambda f: f["os"]["platform"] == "linux")

        report = await _engine(repository, [DeclaredManifest(declare)]).run()
        assert mock_provider.call_log == ["linux"]
        assert report.successful

    @pytest.mark.asyncio
    async def test_failing_guard_is_an_error(self, repository, mock_provider):
        def broken(facts):
            raise ValueError("bad guard")

        def declare(ctx):
            ctx.resource("mock", "a").only_if(broken)
            ctx.resource("mock", "b").after("mock", "a")

        report = await _engine(repository, [DeclaredManifest(declare)]).run()
        assert _states(report) == [("a", ResourceState.ERROR)]
        assert mock_provider.call_count == 0


class TestSubscriber:
    @pytest.mark.asyncio
    async def test_notified_once(self, repository):
        subscriber = Subscriber()
        report = await _engine(repository, [_chain()], subscriber=subscriber).run()
        assert subscriber.reports == [report]

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, repository):
        subscriber = Subscriber(fail=True)
        report = await _engine(repository, [_chain()], subscriber=subscriber).run()
        assert report.successful
        assert len(subscriber.reports) == 1


class TestExecutePlan:
    @pytest.mark.asyncio
    async def test_plan_level_admin_flag_is_kept_on_partial_report(self, repository, mock_provider):
        mock_provider.set_failure("first")

        def declare(ctx):
            ctx.resource("mock", "first")
            ctx.resource("mock", "second").require_administrator()

        engine = _engine(repository, [DeclaredManifest(declare)], administrator=True)
        report = await engine.run()
        assert len(report) == 1
        assert report.requires_administrator

    @pytest.mark.asyncio
    async def test_non_state_return_is_an_error(self, facts):
        class Sloppy(MockProvider):
            async def run(self, context, resource):
                return "changed"

        repository = ProviderRepository([Sloppy("mock")])
        engine = _engine(repository, [_chain()])
        plan = engine.prepare().plan
        report = await engine.execute_plan(plan, FactCollection())
        assert _states(report) == [("A", ResourceState.ERROR)]
