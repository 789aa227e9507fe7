from __future__ import annotations

import logging
import threading

from .admission import AdmissionControl
from .capabilities import CHROME, FIREFOX
from .launcher import WorkerLauncher
from .runtime import ContainerRuntimeError
from .tracking import ExceptionTracker

LOGGER = logging.getLogger("Provisioner.Fleet")

ATTEMPTS_PER_WORKER = 20
_RETRY_INTERVAL = 0.5


class StartupFleetManager:
    """Pre-warm Chrome and Firefox workers in the background on proxy startup."""

    def __init__(
        self,
        launcher: WorkerLauncher,
        admission: AdmissionControl,
        *,
        chrome_count: int,
        firefox_count: int,
        max_workers: int,
        max_attempts: int | None = None,
        retry_interval: float = _RETRY_INTERVAL,
        tracker: ExceptionTracker | None = None,
    ) -> None:
        self._launcher = launcher
        self._admission = admission
        self._chrome_count = chrome_count
        self._firefox_count = firefox_count
        self._max_workers = max_workers
        self._target = min(chrome_count + firefox_count, max_workers)
        self._max_attempts = (
            max_attempts if max_attempts is not None else self._target * ATTEMPTS_PER_WORKER
        )
        self._retry_interval = retry_interval
        self._tracker = tracker
        self._created = 0
        self._completed = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def containers_to_create(self) -> int:
        return self._target

    @property
    def created(self) -> int:
        return self._created

    @property
    def setup_completed(self) -> bool:
        return self._completed.is_set()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._completed.clear()
            self._thread = threading.Thread(
                target=self.run, name="StartupFleet", daemon=True
            )
            self._thread.start()

    def wait(self, timeout: float | None = None) -> bool:
        return self._completed.wait(timeout)

    def run(self) -> int:
        LOGGER.info(
            "Setting up %s nodes...", self._chrome_count + self._firefox_count
        )
        attempts = 0
        try:
            while (
                self._created < self._target
                and attempts < self._max_attempts
                and self._live_count() <= self._max_workers
            ):
                attempts += 1
                browser = CHROME if self._created < self._chrome_count else FIREFOX
                if self._launcher.launch(browser):
                    self._created += 1
                elif self._retry_interval > 0:
                    self._completed.wait(self._retry_interval)
            if self._created < self._target:
                LOGGER.warning(
                    "Startup fleet stopped after %s attempt(s) with %s of %s workers.",
                    attempts,
                    self._created,
                    self._target,
                )
            LOGGER.info(
                "%s containers were created, it will take a bit more until all get registered.",
                self._created,
            )
        finally:
            self._completed.set()
        return self._created

    def _live_count(self) -> int:
        try:
            return self._admission.running_workers()
        except ContainerRuntimeError as exc:
            LOGGER.exception("Unable to count running workers: %s", exc)
            if self._tracker is not None:
                self._tracker.track_exception(exc)
            return 0
