"""
File provider — files, directories and permissions.

Inspects the current state first and only writes when it differs, so a
second run against an unchanged machine reports UNCHANGED.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
from pathlib import Path

from provision.core.models.facts import FactCollection
from provision.core.models.resource import Resource, ResourceState
from provision.providers.base import ExecutionContext, ResourceProvider

logger = logging.getLogger(__name__)

_ENSURE_VALUES = {"file", "directory", "absent"}


def parse_mode(mode: str | int) -> int:
    """Parse a chmod-style mode: ``0o644``, ``"644"`` or ``"0644"``."""
    if isinstance(mode, int):
        return mode
    return int(str(mode), 8)


def set_permissions(path: Path, mode: int) -> bool:
    """Apply ``mode`` to ``path``. Returns True when the mode changed.

    Permissions are a no-op on Windows.
    """
    if os.name == "nt":
        return False
    current = stat.S_IMODE(path.stat().st_mode)
    if current == mode:
        return False
    path.chmod(mode)
    return True


class FileProvider(ResourceProvider):
    """Ensure a file or directory exists (or not) with the given content.

    Resource properties:
        path (str): Target path. Defaults to the resource name.
        ensure (str): One of 'file', 'directory', 'absent' (default: 'file').
        content (str): File content. Omit to only ensure existence.
        mode (str | int): Octal permissions, e.g. '0644'.
    """

    @property
    def resource_type(self) -> str:
        return "file"

    def can_run(self, facts: FactCollection) -> bool:
        return True  # filesystem is always available

    async def run(self, context: ExecutionContext, resource: Resource) -> ResourceState:
        return await asyncio.to_thread(self._converge, resource)

    def _converge(self, resource: Resource) -> ResourceState:
        ensure = self.prop(resource, "ensure", "file")
        if ensure not in _ENSURE_VALUES:
            logger.error(
                "file:%s has unknown ensure '%s'. Valid: %s",
                resource.name,
                ensure,
                ", ".join(sorted(_ENSURE_VALUES)),
            )
            return ResourceState.ERROR

        target = Path(self.prop(resource, "path", resource.name)).expanduser()

        try:
            if ensure == "absent":
                return self._absent(target)
            if ensure == "directory":
                changed = self._directory(target)
            else:
                changed = self._file(target, self.prop(resource, "content"))

            mode = self.prop(resource, "mode")
            if mode is not None and set_permissions(target, parse_mode(mode)):
                changed = True
        except (OSError, ValueError) as e:
            logger.error("file:%s failed: %s", resource.name, e)
            return ResourceState.ERROR

        return ResourceState.CHANGED if changed else ResourceState.UNCHANGED

    def _absent(self, target: Path) -> ResourceState:
        if not target.exists():
            return ResourceState.UNCHANGED
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
        return ResourceState.CHANGED

    def _directory(self, target: Path) -> bool:
        if target.is_dir():
            return False
        if target.exists():
            raise OSError(f"{target} exists and is not a directory")
        target.mkdir(parents=True)
        return True

    def _file(self, target: Path, content: str | None) -> bool:
        if target.is_dir():
            raise OSError(f"{target} is a directory")
        if target.is_file():
            if content is None or target.read_text(encoding="utf-8") == content:
                return False
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content or "", encoding="utf-8")
        return True
