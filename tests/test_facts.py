"""
Tests for fact collection, guards, security principals and status sinks.
"""

import logging
import os
import sys

import pytest

from provision.core.models.facts import FactCollection
from provision.core.models.resource import ResourceBuilder
from provision.core.services.facts import (
    FactBuilder,
    StaticFactBuilder,
    SystemFactBuilder,
    parse_args,
)
from provision.core.services.guards import GuardError, GuardEvaluator
from provision.core.services.security import SecurityPrincipal, StaticSecurityPrincipal
from provision.core.services.status import (
    LoggingStatus,
    NullStatus,
    RecordingStatus,
    ReportSubscriber,
    StatusSink,
)

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX shell semantics")

# ── Run arguments ───────────────────────────────────────────────────


class TestParseArgs:
    def test_key_value(self):
        assert parse_args(["--profile", "work"]) == {"profile": "work"}

    def test_equals(self):
        assert parse_args(["--profile=work"]) == {"profile": "work"}

    def test_flag(self):
        assert parse_args(["--skip-gui"]) == {"skip-gui": True}

    def test_flag_followed_by_option(self):
        assert parse_args(["--ci", "--jobs", "4"]) == {"ci": True, "jobs": 4}

    def test_coercion(self):
        parsed = parse_args(["--a=true", "--b=no", "--c=-3", "--d=1.5"])
        assert parsed == {"a": True, "b": False, "c": -3, "d": "1.5"}

    def test_positionals_ignored(self):
        assert parse_args(["stray", "--", "--x", "1", "--"]) == {"x": 1}

    def test_empty(self):
        assert parse_args([]) == {}


# ── Fact builders ───────────────────────────────────────────────────


class TestSystemFactBuilder:
    def test_shape(self):
        facts = SystemFactBuilder(security=StaticSecurityPrincipal(False)).build([])
        assert facts.get("os.platform")
        assert facts.get("os.family") in ("windows", "unix")
        assert facts.get("user.administrator") is False
        assert "machine.name" in facts
        assert "windows.sandbox" in facts
        assert "env.ci" in facts
        assert facts["args"] == FactCollection()

    def test_platform_family(self):
        facts = SystemFactBuilder(security=StaticSecurityPrincipal(False)).build([])
        if sys.platform.startswith("win"):
            assert facts.get("os.platform") == "windows"
        elif sys.platform == "darwin":
            assert facts.get("os.platform") == "macos"
            assert facts.get("os.family") == "unix"
        else:
            assert facts.get("os.family") == "unix"
            assert not facts["windows"]["sandbox"]

    def test_administrator_from_principal(self):
        facts = SystemFactBuilder(security=StaticSecurityPrincipal(True)).build([])
        assert facts.get("user.administrator") is True

    def test_ci_detection(self, monkeypatch):
        for var in ("CI", "GITHUB_ACTIONS", "GITLAB_CI", "TF_BUILD", "BUILDKITE"):
            monkeypatch.delenv(var, raising=False)
        builder = SystemFactBuilder(security=StaticSecurityPrincipal(False))
        assert builder.build([]).get("env.ci") is False
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        assert builder.build([]).get("env.ci") is True

    def test_args(self):
        facts = SystemFactBuilder(security=StaticSecurityPrincipal(False)).build(
            ["--profile", "work"]
        )
        assert facts["args"]["profile"] == "work"

    def test_extra_facts(self):
        builder = SystemFactBuilder(
            security=StaticSecurityPrincipal(False),
            extra={"site.region": "eu", "os.platform": "linux"},
        )
        facts = builder.build([])
        assert facts.get("site.region") == "eu"
        assert facts.get("os.platform") == "linux"

    def test_satisfies_protocol(self):
        builder: FactBuilder = SystemFactBuilder()
        assert callable(builder.build)


class TestStaticFactBuilder:
    def test_fixed(self):
        facts = StaticFactBuilder({"os": {"platform": "windows"}}).build([])
        assert facts.get("os.platform") == "windows"
        assert "args" not in facts

    def test_args_merged(self):
        builder = StaticFactBuilder({"args": {"profile": "home", "ci": False}})
        facts = builder.build(["--profile", "work"])
        assert facts.get("args.profile") == "work"
        assert facts.get("args.ci") is False

    def test_from_collection(self):
        source = FactCollection({"user": {"name": "ada"}})
        assert StaticFactBuilder(source).build([]) == source


# ── Guards ──────────────────────────────────────────────────────────


def _guarded(unless=None, only_if=None):
    builder = ResourceBuilder("exec", "x")
    if unless is not None:
        builder.unless(unless)
    if only_if is not None:
        builder.only_if(only_if)
    return builder.build()


class TestGuardEvaluator:
    @pytest.mark.asyncio
    async def test_no_guards(self, facts):
        assert await GuardEvaluator().should_run(_guarded(), facts)

    @pytest.mark.asyncio
    async def test_callable_guards(self, facts):
        evaluator = GuardEvaluator()
        linux = lambda f: f["os"]["platform"] == "linux"  # noqa: E731
        assert await evaluator.should_run(_guarded(only_if=linux), facts)
        assert not await evaluator.should_run(_guarded(unless=linux), facts)
        assert not await evaluator.should_run(
            _guarded(only_if=linux, unless=lambda f: True), facts
        )

    @pytest.mark.asyncio
    async def test_callable_raises(self, facts):
        def broken(f):
            raise KeyError("x")

        with pytest.raises(GuardError):
            await GuardEvaluator().check(broken, facts)

    @posix_only
    @pytest.mark.asyncio
    async def test_command_guards(self, facts):
        evaluator = GuardEvaluator()
        assert await evaluator.check("true", facts)
        assert not await evaluator.check("exit 1", facts)
        assert not await evaluator.should_run(_guarded(unless="true"), facts)
        assert not await evaluator.should_run(_guarded(only_if="false"), facts)

    @posix_only
    @pytest.mark.asyncio
    async def test_command_timeout(self, facts):
        with pytest.raises(GuardError, match="timed out"):
            await GuardEvaluator(timeout=0.2).check("sleep 5", facts)


# ── Security and status ─────────────────────────────────────────────


class TestSecurityPrincipal:
    def test_static(self):
        assert StaticSecurityPrincipal(True).is_administrator()
        assert not StaticSecurityPrincipal(False).is_administrator()

    @posix_only
    def test_posix_uid(self):
        assert SecurityPrincipal().is_administrator() == (os.geteuid() == 0)


class TestStatus:
    def test_protocols(self):
        for sink in (NullStatus(), LoggingStatus(), RecordingStatus()):
            assert isinstance(sink, StatusSink)
        assert not isinstance(object(), ReportSubscriber)

    def test_recording(self):
        status = RecordingStatus()
        status.update("Executing exec::x")
        assert status.messages == ["Executing exec::x"]

    def test_logging(self, caplog):
        log = logging.getLogger("provision.test.status")
        with caplog.at_level(logging.INFO, logger="provision.test.status"):
            LoggingStatus(log).update("Executing file::y")
        assert "Executing file::y" in caplog.text
