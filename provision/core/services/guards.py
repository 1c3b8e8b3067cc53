"""
Guard evaluation — decide whether a resource should be run at all.

``only_if`` must hold and ``unless`` must not hold for the provider to
be invoked. A guard is either a callable receiving the run's facts, or a
shell command whose exit code 0 means "true". Guards must not change
machine state.
"""

from __future__ import annotations

import asyncio
import logging

from provision.core.errors import ProvisionError
from provision.core.models.facts import FactCollection
from provision.core.models.resource import Guard, Resource

logger = logging.getLogger(__name__)

DEFAULT_GUARD_TIMEOUT = 60


class GuardError(ProvisionError):
    """A guard could not be evaluated."""


class GuardEvaluator:
    """Evaluates ``unless`` / ``only_if`` guards."""

    def __init__(self, timeout: float = DEFAULT_GUARD_TIMEOUT):
        self._timeout = timeout

    async def should_run(self, resource: Resource, facts: FactCollection) -> bool:
        """Whether the provider should be invoked for ``resource``."""
        if resource.only_if is not None and not await self.check(resource.only_if, facts):
            logger.debug("%s skipped: only_if guard not met", resource.ref)
            return False
        if resource.unless is not None and await self.check(resource.unless, facts):
            logger.debug("%s skipped: unless guard met", resource.ref)
            return False
        return True

    async def check(self, guard: Guard, facts: FactCollection) -> bool:
        if callable(guard):
            try:
                return bool(guard(facts))
            except Exception as e:
                raise GuardError(f"Guard {guard!r} raised: {e}") from e
        return await self._run_command(guard)

    async def _run_command(self, command: str) -> bool:
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise GuardError(f"Guard command could not be started: {command!r}: {e}") from e

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise GuardError(
                f"Guard command timed out after {self._timeout}s: {command!r}"
            ) from e

        logger.debug("Guard %r exited with %s", command, returncode)
        return returncode == 0
