"""
Status sinks and report subscribers — the engine's outward-facing hooks.

A status sink receives human-readable progress lines during real runs.
A report subscriber is notified once with the finished Report.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from provision.core.models.report import Report

logger = logging.getLogger(__name__)


@runtime_checkable
class StatusSink(Protocol):
    def update(self, message: str) -> None: ...


@runtime_checkable
class ReportSubscriber(Protocol):
    def notify(self, report: Report) -> None: ...


class NullStatus:
    """Discards every update."""

    def update(self, message: str) -> None:
        return None


class LoggingStatus:
    """Forwards updates to a logger at INFO."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def update(self, message: str) -> None:
        self._log.info("%s", message)


class RecordingStatus:
    """Keeps every update in memory. Handy for tests and JSON output."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def update(self, message: str) -> None:
        self.messages.append(message)
