"""
Security principal — is this process running elevated?
"""

from __future__ import annotations

import ctypes
import logging
import os

logger = logging.getLogger(__name__)


class SecurityPrincipal:
    """Answers whether the current process has administrator rights.

    POSIX: effective uid 0. Windows: member of the Administrators group
    with an elevated token.
    """

    def is_administrator(self) -> bool:
        if os.name == "nt":
            try:
                return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
            except (AttributeError, OSError) as e:
                logger.debug("Elevation check failed: %s", e)
                return False
        return os.geteuid() == 0


class StaticSecurityPrincipal(SecurityPrincipal):
    """A principal with a fixed answer, for tests and planning tools."""

    def __init__(self, administrator: bool):
        self._administrator = administrator

    def is_administrator(self) -> bool:
        return self._administrator
