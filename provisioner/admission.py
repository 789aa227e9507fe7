from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .runtime import ContainerRuntime, ContainerRuntimeError
from .tracking import ExceptionTracker

LOGGER = logging.getLogger("Provisioner.Admission")

TOLERATED_SLACK = 4
BACKPRESSURE_DELAY = 0.5


class ProxyRegistry:
    """Thread-safe set of proxies currently registered with the grid."""

    def __init__(self) -> None:
        self._proxies: set[str] = set()
        self._lock = threading.Lock()

    def register(self, proxy_id: str) -> int:
        with self._lock:
            self._proxies.add(proxy_id)
            return len(self._proxies)

    def unregister(self, proxy_id: str) -> int:
        with self._lock:
            self._proxies.discard(proxy_id)
            return len(self._proxies)

    def count(self) -> int:
        with self._lock:
            return len(self._proxies)


def count_running_workers(runtime: ContainerRuntime, image_name: str) -> int:
    return sum(
        1
        for container in runtime.list_containers(all=True)
        if image_name in container.image and container.state.lower() != "exited"
    )


class AdmissionControl:
    """Decide whether a new worker may be created right now."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        proxies: ProxyRegistry,
        *,
        max_workers: int,
        image_name: str,
        tolerated_slack: int = TOLERATED_SLACK,
        backpressure_delay: float = BACKPRESSURE_DELAY,
        tracker: ExceptionTracker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runtime = runtime
        self._proxies = proxies
        self._max_workers = max_workers
        self._image_name = image_name
        self._tolerated_slack = tolerated_slack
        self._backpressure_delay = backpressure_delay
        self._tracker = tracker
        self._sleep = sleep

    def running_workers(self) -> int:
        return count_running_workers(self._runtime, self._image_name)

    def may_launch(self) -> bool:
        try:
            running = self.running_workers()
        except ContainerRuntimeError as exc:
            LOGGER.exception("Unable to count running workers: %s", exc)
            if self._tracker is not None:
                self._tracker.track_exception(exc)
            return False

        # Too many launched containers have not registered yet; the hub cannot
        # keep up with that many concurrent registrations.
        allowed = self._proxies.count() + self._tolerated_slack
        if running > allowed:
            LOGGER.debug(
                "More workers running than registered proxies allow, %s vs. %s",
                running,
                allowed,
            )
            self._sleep(self._backpressure_delay)
            return False

        LOGGER.debug("%s workers running", running)
        if running >= self._max_workers:
            LOGGER.debug(
                "Max. number of workers has been reached, no more will be created "
                "until the number decreases below %s.",
                self._max_workers,
            )
            return False
        return True
