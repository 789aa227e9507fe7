from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List


class Platform(enum.Enum):
    """Operating systems a worker capability can advertise."""

    LINUX = "LINUX"
    UNIX = "UNIX"
    WINDOWS = "WINDOWS"
    MAC = "MAC"
    ANY = "ANY"

    @classmethod
    def from_string(cls, value: str) -> "Platform":
        normalized = value.strip().upper()
        for platform in cls:
            if platform.value == normalized:
                return platform
        raise ValueError(f"Unknown platform '{value}'.")

    def matches(self, other: "Platform") -> bool:
        return Platform.ANY in (self, other) or self is other


@dataclass(frozen=True)
class Capability:
    """A browser/platform/version combination a single worker can satisfy."""

    browser_name: str
    platform: Platform
    version: str = ""
    max_instances: int = 1

    def as_dict(self) -> Dict[str, Any]:
        return {
            "browserName": self.browser_name,
            "platform": self.platform.value,
            "version": self.version,
            "maxInstances": self.max_instances,
        }


@dataclass(frozen=True)
class HostConfig:
    """Container host settings applied to every launched worker."""

    shm_size_bytes: int
    network_mode: str
    auto_remove: bool = True


@dataclass(frozen=True)
class WorkerLaunchSpec:
    """Everything needed to create one worker container."""

    browser: str
    node_port: int
    viewer_port: int
    environment: List[str]
    host_config: HostConfig
    image: str
    container_name: str


@dataclass(frozen=True)
class ImageInfo:
    """Locally available image as reported by the container runtime."""

    tags: List[str]
    created: int


@dataclass(frozen=True)
class ContainerInfo:
    """Container summary as reported by the container runtime."""

    image: str
    state: str


@dataclass
class RegistrationRequest:
    """Descriptor the proxy announces to the grid when it registers."""

    capabilities: List[Capability] = field(default_factory=list)
    configuration: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "capabilities": [cap.as_dict() for cap in self.capabilities],
            "configuration": dict(self.configuration),
        }
