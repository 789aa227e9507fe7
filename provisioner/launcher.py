from __future__ import annotations

import logging
from typing import List

from .admission import AdmissionControl
from .capabilities import CHROME, FIREFOX
from .config import ProvisioningConfig
from .ports import PortAllocator, PortExhaustedError, viewer_port_for
from .runtime import ContainerRuntime, ContainerRuntimeError
from .tracking import ExceptionTracker
from .types import HostConfig, WorkerLaunchSpec

LOGGER = logging.getLogger("Provisioner.Launcher")

WORKER_IMAGE = "elgalu/selenium"
WORKER_NAME_PREFIX = "zalenium"
HUB_HOST = "localhost"
HUB_PORT = 4445
SHM_SIZE_BYTES = 1024 * 1024 * 1024
NODE_PROXY_CLASS = "de.zalando.tip.zalenium.proxy.DockerSeleniumRemoteProxy"
_UNTAGGED = "<none>:<none>"


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_environment(
    browser: str,
    node_port: int,
    viewer_port: int,
    config: ProvisioningConfig,
) -> List[str]:
    """Return the ordered KEY=value manifest that configures one worker."""

    env = [
        f"SELENIUM_HUB_HOST={HUB_HOST}",
        f"SELENIUM_HUB_PORT={HUB_PORT}",
        f"SELENIUM_NODE_HOST={HUB_HOST}",
        "GRID=false",
        "RC_CHROME=false",
        "RC_FIREFOX=false",
        "WAIT_TIMEOUT=120s",
        # Both spellings are read by different worker image releases.
        "PICK_ALL_RANDMON_PORTS=true",
        "PICK_ALL_RANDOM_PORTS=true",
        "VIDEO_STOP_SLEEP_SECS=6",
        "WAIT_TIME_OUT_VIDEO_STOP=20s",
        f"SEND_ANONYMOUS_USAGE_INFO={_flag(config.send_anonymous_usage_info)}",
        f"BUILD_URL={config.build_url}",
        "NOVNC=true",
        f"NOVNC_PORT={viewer_port}",
        f"SCREEN_WIDTH={config.screen_width}",
        f"SCREEN_HEIGHT={config.screen_height}",
        f"TZ={config.time_zone}",
        "SELENIUM_NODE_REGISTER_CYCLE=0",
        f"SELENIUM_NODE_PROXY_PARAMS={NODE_PROXY_CLASS}",
    ]
    if browser.lower() == CHROME:
        env.append(f"SELENIUM_NODE_CH_PORT={node_port}")
        env.append("CHROME=true")
    else:
        env.append("CHROME=false")
    if browser.lower() == FIREFOX:
        env.append(f"SELENIUM_NODE_FF_PORT={node_port}")
        env.append("FIREFOX=true")
    else:
        env.append("FIREFOX=false")
    return env


class WorkerLauncher:
    """Create and start worker containers that self-register with the grid."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        admission: AdmissionControl,
        ports: PortAllocator,
        config: ProvisioningConfig,
        *,
        image_name: str = WORKER_IMAGE,
        tracker: ExceptionTracker | None = None,
    ) -> None:
        self._runtime = runtime
        self._admission = admission
        self._ports = ports
        self._config = config
        self._image_name = image_name
        self._tracker = tracker

    def build_launch_spec(self, browser: str, node_port: int, image: str) -> WorkerLaunchSpec:
        viewer_port = viewer_port_for(node_port)
        owner = self._config.owner_container_id
        return WorkerLaunchSpec(
            browser=browser,
            node_port=node_port,
            viewer_port=viewer_port,
            environment=build_environment(browser, node_port, viewer_port, self._config),
            host_config=HostConfig(
                shm_size_bytes=SHM_SIZE_BYTES,
                network_mode=f"container:{owner}",
                auto_remove=True,
            ),
            image=image,
            container_name=f"{WORKER_NAME_PREFIX}_{owner}_{node_port}",
        )

    def latest_image(self) -> str:
        """Pick the newest tagged local image, or the bare image name."""

        images = [
            image
            for image in self._runtime.list_images(self._image_name)
            if any(tag != _UNTAGGED for tag in image.tags)
        ]
        if not images:
            LOGGER.error("A downloaded %s image was not found!", self._image_name)
            return self._image_name
        newest = max(images, key=lambda image: image.created)
        return next(tag for tag in newest.tags if tag != _UNTAGGED)

    def launch(self, browser: str) -> bool:
        if browser.lower() not in (CHROME, FIREFOX):
            LOGGER.info("No worker image browser matches '%s'; not launching.", browser)
            return False

        if not self._admission.may_launch():
            return False

        try:
            node_port = self._ports.find_free_port()
        except PortExhaustedError as exc:
            LOGGER.error("Cannot launch %s worker: %s", browser, exc)
            self._track(exc)
            return False

        try:
            spec = self.build_launch_spec(browser, node_port, self.latest_image())
            container_id = self._runtime.create_container(spec)
            self._runtime.start_container(container_id)
        except ContainerRuntimeError as exc:
            LOGGER.exception("Failed to launch %s worker: %s", browser, exc)
            self._track(exc)
            return False

        LOGGER.info(
            "Launched %s worker '%s' from %s on ports node=%s viewer=%s",
            browser,
            spec.container_name,
            spec.image,
            spec.node_port,
            spec.viewer_port,
        )
        return True

    def _track(self, exc: BaseException) -> None:
        if self._tracker is not None:
            self._tracker.track_exception(exc)
