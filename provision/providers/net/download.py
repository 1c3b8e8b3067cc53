"""
Download provider — fetch a URL to a local file, with checksum verification.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import urllib.request
from pathlib import Path

from provision.core.models.facts import FactCollection
from provision.core.models.resource import Resource, ResourceState
from provision.providers.base import ExecutionContext, ResourceProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
_CHUNK = 8192


def verify_checksum(path: Path, expected: str) -> bool:
    """Verify file checksum.  Format: ``algo:hex``.

    Supports every algorithm known to hashlib (sha256, sha1, md5, ...).
    """
    algo, expected_hash = expected.split(":", 1)
    h = hashlib.new(algo)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest() == expected_hash.lower()


class DownloadProvider(ResourceProvider):
    """Download a file.

    Resource properties:
        url (str): Source URL. Defaults to the resource name.
        path (str): Destination file (required).
        checksum (str): Optional ``algo:hex`` digest of the expected file.
        timeout (int): HTTP timeout in seconds (default: 60).
    """

    @property
    def resource_type(self) -> str:
        return "download"

    def can_run(self, facts: FactCollection) -> bool:
        return True

    async def run(self, context: ExecutionContext, resource: Resource) -> ResourceState:
        return await asyncio.to_thread(self._converge, resource)

    def _converge(self, resource: Resource) -> ResourceState:
        url = self.prop(resource, "url", resource.name)
        raw_path = self.prop(resource, "path")
        if not raw_path:
            logger.error("download:%s is missing required property 'path'", resource.name)
            return ResourceState.ERROR

        target = Path(raw_path).expanduser()
        checksum = self.prop(resource, "checksum")
        timeout = self.prop(resource, "timeout", DEFAULT_TIMEOUT)

        partial = target.with_name(target.name + ".part")
        try:
            if target.is_file() and (not checksum or verify_checksum(target, checksum)):
                return ResourceState.UNCHANGED

            target.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Downloading %s -> %s", url, target)

            req = urllib.request.Request(url, headers={"User-Agent": "provision-engine"})
            with urllib.request.urlopen(req, timeout=timeout) as resp, open(partial, "wb") as out:
                for chunk in iter(lambda: resp.read(_CHUNK), b""):
                    out.write(chunk)

            if checksum and not verify_checksum(partial, checksum):
                partial.unlink(missing_ok=True)
                logger.error("download:%s checksum mismatch", resource.name)
                return ResourceState.ERROR

            partial.replace(target)
        except Exception as e:
            partial.unlink(missing_ok=True)
            logger.error("download:%s failed: %s", resource.name, e)
            return ResourceState.ERROR

        return ResourceState.CHANGED
