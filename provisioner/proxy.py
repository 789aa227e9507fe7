from __future__ import annotations

"""
Starter proxy: a grid node that never runs sessions itself.

The proxy receives a session request, launches a worker container for the
requested browser, and rejects the request. When the grid re-queues the
request it finds the freshly registered worker and routes the session there.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from .admission import AdmissionControl, ProxyRegistry
from .capabilities import CapabilityCatalog
from .config import DEFAULT_CAPABILITIES_URL, ProvisioningConfig
from .launcher import WORKER_IMAGE, WorkerLauncher
from .manager import StartupFleetManager
from .ports import PortAllocator
from .runtime import ContainerRuntime
from .tracking import CountingExceptionTracker, ExceptionTracker
from .types import Capability, Platform, RegistrationRequest

LOGGER = logging.getLogger("Provisioner.Proxy")

BROWSER_NAME = "browserName"
PLATFORM = "platform"
RESOURCE_USAGE_PERCENT = 98.0
_WILDCARDS = {"", "any", "*"}


@dataclass
class ProvisioningContext:
    """Shared collaborators built once at startup and injected into the proxy."""

    config: ProvisioningConfig
    catalog: CapabilityCatalog
    runtime: ContainerRuntime
    proxies: ProxyRegistry = field(default_factory=ProxyRegistry)
    tracker: ExceptionTracker = field(default_factory=CountingExceptionTracker)
    ports: PortAllocator | None = None

    @classmethod
    def create(
        cls,
        config: ProvisioningConfig,
        runtime: ContainerRuntime,
        *,
        capabilities_url: str = DEFAULT_CAPABILITIES_URL,
    ) -> "ProvisioningContext":
        tracker = CountingExceptionTracker()
        return cls(
            config=config,
            catalog=CapabilityCatalog(capabilities_url, tracker=tracker),
            runtime=runtime,
            tracker=tracker,
        )


def _is_wildcard(value: Any) -> bool:
    return value is None or str(value).strip().lower() in _WILDCARDS


def capability_matches(capability: Capability, requested: Mapping[str, Any]) -> bool:
    browser = requested.get(BROWSER_NAME)
    if not _is_wildcard(browser) and str(browser).lower() != capability.browser_name.lower():
        return False

    platform = requested.get(PLATFORM)
    if _is_wildcard(platform):
        return True
    try:
        return capability.platform.matches(Platform.from_string(str(platform)))
    except ValueError:
        return False


class StarterProxy:
    """Provision workers on demand and always answer "no session"."""

    def __init__(
        self,
        context: ProvisioningContext,
        registration: RegistrationRequest | None = None,
        *,
        image_name: str = WORKER_IMAGE,
        fleet_retry_interval: float = 0.5,
    ) -> None:
        self._context = context
        self._registration = context.catalog.update_registration(
            registration or RegistrationRequest()
        )
        self._ports = context.ports or PortAllocator()
        self._admission = AdmissionControl(
            context.runtime,
            context.proxies,
            max_workers=context.config.max_workers,
            image_name=image_name,
            tracker=context.tracker,
        )
        self._launcher = WorkerLauncher(
            context.runtime,
            self._admission,
            self._ports,
            context.config,
            image_name=image_name,
            tracker=context.tracker,
        )
        self._fleet_retry_interval = fleet_retry_interval
        self._fleet: StartupFleetManager | None = None

    @property
    def registration(self) -> RegistrationRequest:
        return self._registration

    @property
    def admission(self) -> AdmissionControl:
        return self._admission

    @property
    def fleet(self) -> StartupFleetManager | None:
        return self._fleet

    @property
    def setup_completed(self) -> bool:
        return self._fleet is not None and self._fleet.setup_completed

    def has_capability(self, requested: Mapping[str, Any]) -> bool:
        return any(
            capability_matches(capability, requested)
            for capability in self._registration.capabilities
        )

    def get_new_session(self, requested: Mapping[str, Any]) -> None:
        """Launch a worker for the request, then reject it so the grid re-queues."""

        if not self.has_capability(requested):
            LOGGER.debug("Capability not supported %s", dict(requested))
            return None

        if _is_wildcard(requested.get(BROWSER_NAME)):
            LOGGER.info(
                "Capability %s does not name a browser in %s.", dict(requested), BROWSER_NAME
            )
            return None

        LOGGER.info("Starting new node for %s.", dict(requested))
        self._launcher.launch(str(requested[BROWSER_NAME]))
        return None

    def before_registration(self) -> StartupFleetManager:
        """Start pre-warming workers without delaying registration with the grid."""

        config = self._context.config
        self._fleet = StartupFleetManager(
            self._launcher,
            self._admission,
            chrome_count=config.chrome_containers_on_startup,
            firefox_count=config.firefox_containers_on_startup,
            max_workers=config.max_workers,
            retry_interval=self._fleet_retry_interval,
            tracker=self._context.tracker,
        )
        self._fleet.start()
        return self._fleet

    def resource_usage_percent(self) -> float:
        # Reported as heavily used so the grid prefers idle registered workers.
        return RESOURCE_USAGE_PERCENT
