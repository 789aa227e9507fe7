from __future__ import annotations

import logging
import socket
import threading

from .tracking import ProvisionerError

LOGGER = logging.getLogger("Provisioner.Ports")

LOWER_PORT_BOUNDARY = 40000
UPPER_PORT_BOUNDARY = 49999
VIEWER_PORT_OFFSET = 10000


class PortExhaustedError(ProvisionerError):
    """Raised when no port in the configured range can be bound."""

    def __init__(self, lower: int, upper: int) -> None:
        super().__init__(f"No free port available in range {lower}-{upper}.")
        self.lower = lower
        self.upper = upper


def viewer_port_for(node_port: int) -> int:
    return node_port + VIEWER_PORT_OFFSET


class PortAllocator:
    """Hand out unique TCP ports for worker services.

    Ports stay allocated for the lifetime of the allocator unless a caller
    explicitly releases them, so a port freed by the OS moments ago is never
    handed to a second worker.
    """

    def __init__(
        self,
        lower: int = LOWER_PORT_BOUNDARY,
        upper: int = UPPER_PORT_BOUNDARY,
        *,
        bind_host: str = "",
    ) -> None:
        if lower > upper:
            raise ValueError("Lower port boundary must not exceed the upper one.")
        self._lower = lower
        self._upper = upper
        self._bind_host = bind_host
        self._allocated: set[int] = set()
        self._lock = threading.Lock()

    def find_free_port(self, lower: int | None = None, upper: int | None = None) -> int:
        lower = self._lower if lower is None else lower
        upper = self._upper if upper is None else upper
        with self._lock:
            for port in range(lower, upper + 1):
                if port in self._allocated:
                    continue
                if self._try_bind(port):
                    self._allocated.add(port)
                    LOGGER.debug("Allocated port %s.", port)
                    return port
        raise PortExhaustedError(lower, upper)

    def release(self, port: int) -> None:
        with self._lock:
            self._allocated.discard(port)

    def allocated(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._allocated)

    def _try_bind(self, port: int) -> bool:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((self._bind_host, port))
                sock.listen(1)
        except OSError as exc:
            LOGGER.debug("Port %s unavailable: %s", port, exc)
            return False
        return True
