"""
Fact collection — read-only inspection of the host, plus run arguments.

Built once at the start of a run. Lookups never raise: anything that
cannot be determined is simply left out (and therefore falsy).
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
import re
from typing import Any, Mapping, Protocol, Sequence

from provision.core.models.facts import FactCollection
from provision.core.services.security import SecurityPrincipal

logger = logging.getLogger(__name__)

_SANDBOX_USER = "WDAGUtilityAccount"
_CI_VARS = ("CI", "GITHUB_ACTIONS", "GITLAB_CI", "TF_BUILD", "BUILDKITE")
_INT_RE = re.compile(r"^-?\d+$")


class FactBuilder(Protocol):
    def build(self, args: Sequence[str]) -> FactCollection: ...


def parse_args(args: Sequence[str]) -> dict[str, Any]:
    """Parse run arguments into facts.

    ``--key value`` and ``--key=value`` become ``{"key": value}``;
    a bare ``--flag`` becomes ``True``. ``true``/``false`` and integers
    are coerced. Positional arguments are ignored.
    """
    parsed: dict[str, Any] = {}
    i = 0
    items = list(args)
    while i < len(items):
        token = items[i]
        i += 1
        if not token.startswith("--") or token == "--":
            continue
        key, sep, value = token[2:].partition("=")
        if not key:
            continue
        if not sep:
            if i < len(items) and not items[i].startswith("--"):
                value = items[i]
                i += 1
            else:
                parsed[key] = True
                continue
        parsed[key] = _coerce(value)
    return parsed


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    if _INT_RE.match(value):
        return int(value)
    return value


def _platform_name() -> str:
    system = platform.system().lower()
    return {"darwin": "macos"}.get(system, system or "unknown")


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError, ImportError):
        return os.environ.get("USER") or os.environ.get("USERNAME") or ""


class SystemFactBuilder:
    """Inspects the local machine.

    Facts::

        os.platform         windows | linux | macos | ...
        os.family           windows | unix
        os.arch             x86_64, arm64, ...
        os.release          kernel / OS release string
        machine.name        host name
        user.name           current user
        user.administrator  running elevated
        windows.sandbox     running inside Windows Sandbox
        env.ci              running under a CI system
        args.*              run arguments (see parse_args)
    """

    def __init__(
        self,
        security: SecurityPrincipal | None = None,
        extra: Mapping[str, Any] | None = None,
    ):
        self._security = security or SecurityPrincipal()
        self._extra = dict(extra or {})

    def build(self, args: Sequence[str]) -> FactCollection:
        os_platform = _platform_name()
        user = _user_name()
        facts: dict[str, Any] = {
            "os": {
                "platform": os_platform,
                "family": "windows" if os_platform == "windows" else "unix",
                "arch": platform.machine().lower(),
                "release": platform.release(),
            },
            "machine": {"name": platform.node()},
            "user": {
                "name": user,
                "administrator": self._security.is_administrator(),
            },
            "windows": {
                "sandbox": os_platform == "windows" and user == _SANDBOX_USER,
            },
            "env": {"ci": any(os.environ.get(v) for v in _CI_VARS)},
            "args": parse_args(args),
        }
        for path, value in self._extra.items():
            _set_path(facts, path, value)

        collection = FactCollection(facts)
        logger.debug("Collected %d fact(s)", len(collection.paths()))
        return collection


class StaticFactBuilder:
    """Returns a fixed collection, merging run arguments under ``args``."""

    def __init__(self, facts: Mapping[str, Any] | FactCollection | None = None):
        if isinstance(facts, FactCollection):
            facts = facts.to_dict()
        self._facts = dict(facts or {})

    def build(self, args: Sequence[str]) -> FactCollection:
        data = dict(self._facts)
        parsed = parse_args(args)
        if parsed:
            data["args"] = {**dict(data.get("args", {})), **parsed}
        return FactCollection(data)


def _set_path(data: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value
