from __future__ import annotations

import logging
from typing import Any, List, Protocol, runtime_checkable

import docker
from docker.errors import DockerException

from .tracking import ProvisionerError
from .types import ContainerInfo, ImageInfo, WorkerLaunchSpec

LOGGER = logging.getLogger("Provisioner.Runtime")


class ContainerRuntimeError(ProvisionerError):
    """Raised when a call to the container runtime fails."""


@runtime_checkable
class ContainerRuntime(Protocol):
    """The subset of container-runtime calls the provisioner depends on."""

    def create_container(self, spec: WorkerLaunchSpec) -> str: ...

    def start_container(self, container_id: str) -> None: ...

    def list_images(self, name: str) -> List[ImageInfo]: ...

    def list_containers(self, all: bool = True) -> List[ContainerInfo]: ...


class DockerRuntime:
    """ContainerRuntime backed by the Docker Engine API."""

    def __init__(self, client: Any | None = None, *, base_url: str | None = None) -> None:
        if client is None:
            try:
                client = (
                    docker.APIClient(base_url=base_url)
                    if base_url
                    else docker.from_env().api
                )
            except DockerException as exc:
                raise ContainerRuntimeError(
                    f"Unable to connect to Docker: {exc}"
                ) from exc
        self._api = client

    def create_container(self, spec: WorkerLaunchSpec) -> str:
        try:
            host_config = self._api.create_host_config(
                shm_size=spec.host_config.shm_size_bytes,
                network_mode=spec.host_config.network_mode,
                auto_remove=spec.host_config.auto_remove,
            )
            created = self._api.create_container(
                image=spec.image,
                name=spec.container_name,
                environment=list(spec.environment),
                host_config=host_config,
            )
        except (DockerException, OSError) as exc:
            raise ContainerRuntimeError(
                f"Creating container '{spec.container_name}' failed: {exc}"
            ) from exc
        container_id = created["Id"]
        LOGGER.debug("Created container %s (%s).", spec.container_name, container_id)
        return container_id

    def start_container(self, container_id: str) -> None:
        try:
            self._api.start(container=container_id)
        except (DockerException, OSError) as exc:
            raise ContainerRuntimeError(
                f"Starting container '{container_id}' failed: {exc}"
            ) from exc

    def list_images(self, name: str) -> List[ImageInfo]:
        try:
            images = self._api.images(name=name)
        except (DockerException, OSError) as exc:
            raise ContainerRuntimeError(f"Listing images '{name}' failed: {exc}") from exc
        return [
            ImageInfo(tags=list(image.get("RepoTags") or []), created=int(image.get("Created", 0)))
            for image in images
        ]

    def list_containers(self, all: bool = True) -> List[ContainerInfo]:
        try:
            containers = self._api.containers(all=all)
        except (DockerException, OSError) as exc:
            raise ContainerRuntimeError(f"Listing containers failed: {exc}") from exc
        return [
            ContainerInfo(image=str(entry.get("Image", "")), state=str(entry.get("State", "")))
            for entry in containers
        ]
