from __future__ import annotations

from typing import List

import pytest

from provisioner.ports import PortAllocator
from provisioner.runtime import ContainerRuntimeError
from provisioner.types import ContainerInfo, ImageInfo, WorkerLaunchSpec


class FakeRuntime:
    """In-memory container runtime; started workers count as running."""

    def __init__(
        self,
        *,
        running: int = 0,
        images: List[ImageInfo] | None = None,
        image: str = "elgalu/selenium:latest",
    ) -> None:
        self.image = image
        self.containers: List[ContainerInfo] = [
            ContainerInfo(image=image, state="running") for _ in range(running)
        ]
        self.images = images if images is not None else [
            ImageInfo(tags=[image], created=1)
        ]
        self.created: List[WorkerLaunchSpec] = []
        self.started: List[str] = []
        self.fail_create = False
        self.fail_list = False

    def create_container(self, spec: WorkerLaunchSpec) -> str:
        if self.fail_create:
            raise ContainerRuntimeError("create failed")
        self.created.append(spec)
        return f"container-{len(self.created)}"

    def start_container(self, container_id: str) -> None:
        self.started.append(container_id)
        self.containers.append(ContainerInfo(image=self.image, state="running"))

    def list_images(self, name: str) -> List[ImageInfo]:
        return list(self.images)

    def list_containers(self, all: bool = True) -> List[ContainerInfo]:
        if self.fail_list:
            raise ContainerRuntimeError("list failed")
        return list(self.containers)

    def browsers(self) -> List[str]:
        return [spec.browser for spec in self.created]


class SequentialPorts(PortAllocator):
    """Allocator that treats every port in range as bindable."""

    def __init__(self, lower: int = 40000, upper: int = 40099) -> None:
        super().__init__(lower, upper)

    def _try_bind(self, port: int) -> bool:
        return True


@pytest.fixture
def make_ports():
    return SequentialPorts


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def make_runtime():
    return FakeRuntime


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
