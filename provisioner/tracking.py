from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Dict, Protocol, runtime_checkable

LOGGER = logging.getLogger("Provisioner.Tracking")


class ProvisionerError(Exception):
    """Base class for errors raised inside the provisioner."""


@runtime_checkable
class ExceptionTracker(Protocol):
    """Sink for exceptions that were handled but should still be reported."""

    def track_exception(self, exc: BaseException) -> None: ...


class CountingExceptionTracker:
    """Keeps per-type counts of tracked exceptions for the readiness payload."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def track_exception(self, exc: BaseException) -> None:
        name = type(exc).__name__
        with self._lock:
            self._counts[name] += 1
        LOGGER.debug("Tracked %s: %s", name, exc)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)
