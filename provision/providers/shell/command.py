"""
Exec provider — run a command to converge a resource.

A command is not idempotent by itself, so the provider honours the
``creates`` property: when that path already exists the command is
assumed to have run and the resource is UNCHANGED. Guards (``unless`` /
``only_if``) are evaluated by the engine before the provider is called.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from pathlib import Path

from provision.core.models.facts import FactCollection
from provision.core.models.resource import Resource, ResourceState
from provision.providers.base import ExecutionContext, ResourceProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


class ExecProvider(ResourceProvider):
    """Execute shell commands.

    Resource properties:
        command (str | list[str]): The command to execute.
        shell (bool): Whether to run through the shell (default: True).
        timeout (int): Timeout in seconds (default: 300).
        cwd (str): Working directory (default: current directory).
        creates (str): Skip the command when this path exists.
        env (dict): Extra environment variables.
    """

    @property
    def resource_type(self) -> str:
        return "exec"

    def can_run(self, facts: FactCollection) -> bool:
        if os.name == "nt":
            return True
        return shutil.which("sh") is not None

    async def run(self, context: ExecutionContext, resource: Resource) -> ResourceState:
        command = self.prop(resource, "command")
        if not command:
            logger.error("exec:%s is missing required property 'command'", resource.name)
            return ResourceState.ERROR

        creates = self.prop(resource, "creates")
        if creates and Path(creates).expanduser().exists():
            logger.debug("exec:%s skipped, %s exists", resource.name, creates)
            return ResourceState.UNCHANGED

        use_shell = self.prop(resource, "shell", True)
        timeout = self.prop(resource, "timeout", DEFAULT_TIMEOUT)
        cwd = self.prop(resource, "cwd")
        if cwd:
            cwd = str(Path(cwd).expanduser())
        env = None
        if self.prop(resource, "env"):
            env = {**os.environ, **{k: str(v) for k, v in self.prop(resource, "env").items()}}

        logger.debug("Executing: %s (cwd=%s)", command, cwd)
        start = time.monotonic()

        try:
            if use_shell:
                if isinstance(command, list):
                    command = " ".join(command)
                proc = await asyncio.create_subprocess_shell(
                    command,
                    cwd=cwd,
                    env=env,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            else:
                argv = command if isinstance(command, list) else command.split()
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=cwd,
                    env=env,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )

            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                logger.error("exec:%s timed out after %ss", resource.name, timeout)
                return ResourceState.ERROR

        except Exception as e:
            logger.error("exec:%s could not be started: %s", resource.name, e)
            return ResourceState.ERROR

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if proc.returncode == 0:
            logger.debug("exec:%s finished in %dms", resource.name, elapsed_ms)
            return ResourceState.CHANGED

        message = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
        logger.error(
            "exec:%s exited with code %s: %s",
            resource.name,
            proc.returncode,
            message or "(no output)",
        )
        return ResourceState.ERROR
