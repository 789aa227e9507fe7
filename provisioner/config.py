from __future__ import annotations

import logging
import zoneinfo
from dataclasses import dataclass
from typing import Mapping

LOGGER = logging.getLogger("Provisioner.Config")

DEFAULT_CHROME_CONTAINERS = 0
DEFAULT_FIREFOX_CONTAINERS = 0
DEFAULT_MAX_WORKERS = 10
DEFAULT_TIME_ZONE = "Europe/Berlin"
DEFAULT_SCREEN_WIDTH = 1900
DEFAULT_SCREEN_HEIGHT = 1880
DEFAULT_OWNER_CONTAINER_ID = "zalenium"
DEFAULT_CAPABILITIES_URL = (
    "https://raw.githubusercontent.com/elgalu/docker-selenium/latest/capabilities.json"
)
DEFAULT_DOCKER_URL = "unix:///var/run/docker.sock"
DEFAULT_PROVISIONER_HOST = "0.0.0.0"
DEFAULT_PROVISIONER_PORT = 4446

ENV_CHROME_CONTAINERS = "ZALENIUM_CHROME_CONTAINERS"
ENV_FIREFOX_CONTAINERS = "ZALENIUM_FIREFOX_CONTAINERS"
ENV_MAX_WORKERS = "ZALENIUM_MAX_DOCKER_SELENIUM_CONTAINERS"
ENV_TIME_ZONE = "ZALENIUM_TZ"
ENV_SCREEN_WIDTH = "ZALENIUM_SCREEN_WIDTH"
ENV_SCREEN_HEIGHT = "ZALENIUM_SCREEN_HEIGHT"
ENV_OWNER_CONTAINER_ID = "HOSTNAME"
ENV_SEND_ANONYMOUS_USAGE_INFO = "ZALENIUM_SEND_ANONYMOUS_USAGE_INFO"
ENV_BUILD_URL = "BUILD_URL"

_TRUTHY = {"1", "true", "yes", "on"}


def read_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        LOGGER.warning("%s=%r is not an integer; using %s.", key, raw, default)
        return default


def read_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _non_negative(value: int, default: int) -> int:
    return default if value < 0 else value


def _positive(value: int, default: int) -> int:
    return default if value <= 0 else value


def _valid_time_zone(value: str) -> str:
    if value in zoneinfo.available_timezones():
        return value
    LOGGER.warning("%s is not a real time zone; using %s.", value, DEFAULT_TIME_ZONE)
    return DEFAULT_TIME_ZONE


@dataclass(frozen=True)
class ProvisioningConfig:
    """Sanitized settings that drive worker provisioning."""

    chrome_containers_on_startup: int = DEFAULT_CHROME_CONTAINERS
    firefox_containers_on_startup: int = DEFAULT_FIREFOX_CONTAINERS
    max_workers: int = DEFAULT_MAX_WORKERS
    time_zone: str = DEFAULT_TIME_ZONE
    screen_width: int = DEFAULT_SCREEN_WIDTH
    screen_height: int = DEFAULT_SCREEN_HEIGHT
    owner_container_id: str = DEFAULT_OWNER_CONTAINER_ID
    send_anonymous_usage_info: bool = False
    build_url: str = ""

    @classmethod
    def build(
        cls,
        *,
        chrome_containers_on_startup: int = DEFAULT_CHROME_CONTAINERS,
        firefox_containers_on_startup: int = DEFAULT_FIREFOX_CONTAINERS,
        max_workers: int = DEFAULT_MAX_WORKERS,
        time_zone: str = DEFAULT_TIME_ZONE,
        screen_width: int = DEFAULT_SCREEN_WIDTH,
        screen_height: int = DEFAULT_SCREEN_HEIGHT,
        owner_container_id: str = DEFAULT_OWNER_CONTAINER_ID,
        send_anonymous_usage_info: bool = False,
        build_url: str = "",
    ) -> "ProvisioningConfig":
        """Create a config, replacing each out-of-range value with its default."""

        return cls(
            chrome_containers_on_startup=_non_negative(
                chrome_containers_on_startup, DEFAULT_CHROME_CONTAINERS
            ),
            firefox_containers_on_startup=_non_negative(
                firefox_containers_on_startup, DEFAULT_FIREFOX_CONTAINERS
            ),
            max_workers=_positive(max_workers, DEFAULT_MAX_WORKERS),
            time_zone=_valid_time_zone(time_zone),
            screen_width=_positive(screen_width, DEFAULT_SCREEN_WIDTH),
            screen_height=_positive(screen_height, DEFAULT_SCREEN_HEIGHT),
            owner_container_id=owner_container_id or DEFAULT_OWNER_CONTAINER_ID,
            send_anonymous_usage_info=send_anonymous_usage_info,
            build_url=build_url,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "ProvisioningConfig":
        return cls.build(
            chrome_containers_on_startup=read_int(
                environ, ENV_CHROME_CONTAINERS, DEFAULT_CHROME_CONTAINERS
            ),
            firefox_containers_on_startup=read_int(
                environ, ENV_FIREFOX_CONTAINERS, DEFAULT_FIREFOX_CONTAINERS
            ),
            max_workers=read_int(environ, ENV_MAX_WORKERS, DEFAULT_MAX_WORKERS),
            time_zone=environ.get(ENV_TIME_ZONE, DEFAULT_TIME_ZONE),
            screen_width=read_int(environ, ENV_SCREEN_WIDTH, DEFAULT_SCREEN_WIDTH),
            screen_height=read_int(environ, ENV_SCREEN_HEIGHT, DEFAULT_SCREEN_HEIGHT),
            owner_container_id=environ.get(
                ENV_OWNER_CONTAINER_ID, DEFAULT_OWNER_CONTAINER_ID
            ),
            send_anonymous_usage_info=read_bool(
                environ, ENV_SEND_ANONYMOUS_USAGE_INFO, False
            ),
            build_url=environ.get(ENV_BUILD_URL, ""),
        )


@dataclass(frozen=True)
class ProvisionerCLIArgs:
    """Typed representation of CLI arguments used to boot the provisioner."""

    provisioning: ProvisioningConfig
    capabilities_url: str = DEFAULT_CAPABILITIES_URL
    docker_url: str = DEFAULT_DOCKER_URL
    host: str = DEFAULT_PROVISIONER_HOST
    port: int = DEFAULT_PROVISIONER_PORT
