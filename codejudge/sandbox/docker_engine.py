"""Docker implementation of ``ContainerEngine`` using the docker SDK."""

from __future__ import annotations

import logging
from pathlib import Path

import docker
import requests
from docker.errors import APIError, BuildError, DockerException, ImageNotFound, NotFound

from ..constants import SANDBOX_LABEL
from ..core.exceptions import ContainerEngineError
from .container_engine import ContainerEngine, ContainerSpec

logger = logging.getLogger(__name__)

# Seconds for ordinary API calls (builds run without this limit)
_DOCKER_CLIENT_TIMEOUT = 60


class DockerContainerEngine(ContainerEngine):
    """Talks to a Docker daemon through ``docker.DockerClient``.

    The client is created lazily so constructing the engine never touches
    the daemon.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        base_url: str | None = None,
    ):
        self._client = client
        self._base_url = base_url

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                if self._base_url:
                    self._client = docker.DockerClient(
                        base_url=self._base_url, timeout=_DOCKER_CLIENT_TIMEOUT
                    )
                else:
                    self._client = docker.from_env(timeout=_DOCKER_CLIENT_TIMEOUT)
            except DockerException as e:
                raise ContainerEngineError(f"Docker daemon unavailable: {e}") from e
        return self._client

    def ping(self) -> bool:
        """Return ``True`` when the daemon answers."""
        try:
            return bool(self.client.ping())
        except (ContainerEngineError, DockerException, requests.exceptions.RequestException):
            return False

    def build_image(self, context_dir: Path, tag: str, labels: dict[str, str]) -> None:
        try:
            self.client.images.build(
                path=str(context_dir),
                tag=tag,
                labels=labels,
                rm=True,
                forcerm=True,
            )
        except BuildError as e:
            tail = "".join(
                chunk.get("stream", "") for chunk in list(e.build_log)[-5:]
                if isinstance(chunk, dict)
            ).strip()
            raise ContainerEngineError(f"{e.msg}{': ' + tail if tail else ''}") from e
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Image build failed: {e}") from e

    def create_container(self, spec: ContainerSpec) -> str:
        limits = spec.limits
        try:
            container = self.client.containers.create(
                spec.image,
                name=spec.name,
                detach=True,
                network_mode=limits.network_mode,
                mem_limit=f"{limits.memory_mb}m",
                memswap_limit=f"{limits.memory_mb}m",
                nano_cpus=limits.nano_cpus,
                pids_limit=limits.pids_limit,
                init=limits.init,
                cap_drop=["ALL"],
                security_opt=["no-new-privileges"],
                labels=spec.labels,
            )
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Container create failed: {e}") from e
        return container.id

    def start_container(self, name: str) -> None:
        try:
            self.client.containers.get(name).start()
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Container start failed: {e}") from e

    def wait_container(self, name: str, timeout: float) -> int:
        try:
            result = self.client.containers.get(name).wait(timeout=timeout)
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Container wait failed: {e}") from e
        except requests.exceptions.RequestException as e:
            # docker-py surfaces the wait deadline as a read timeout; APIError
            # is also a RequestException and is handled above
            raise TimeoutError(f"container {name} still running after {timeout}s") from e
        return int(result.get("StatusCode", -1))

    def container_logs(self, name: str) -> bytes:
        try:
            return self.client.containers.get(name).logs(stdout=True, stderr=True) or b""
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Reading container logs failed: {e}") from e

    def oom_killed(self, name: str) -> bool:
        try:
            state = self.client.containers.get(name).attrs.get("State") or {}
        except NotFound:
            return False
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Container inspect failed: {e}") from e
        return bool(state.get("OOMKilled"))

    def kill_container(self, name: str) -> None:
        try:
            self.client.containers.get(name).kill()
        except NotFound:
            pass
        except APIError as e:
            # Already exited
            logger.debug(f"Kill of {name} ignored: {e}")

    def remove_container(self, name: str) -> None:
        try:
            self.client.containers.get(name).remove(force=True)
        except NotFound:
            logger.debug(f"Container {name} already removed")
        except APIError as e:
            raise ContainerEngineError(f"Container remove failed: {e}") from e

    def remove_image(self, tag: str) -> None:
        try:
            self.client.images.remove(tag, force=True, noprune=False)
        except ImageNotFound:
            logger.debug(f"Image {tag} already removed")
        except APIError as e:
            raise ContainerEngineError(f"Image remove failed: {e}") from e

    def find_resources(self, label_value: str) -> list[str]:
        label_filter = {"label": f"{SANDBOX_LABEL}={label_value}"}
        try:
            containers = self.client.containers.list(all=True, filters=label_filter)
            images = self.client.images.list(filters=label_filter)
        except (APIError, DockerException) as e:
            raise ContainerEngineError(f"Listing sandbox resources failed: {e}") from e
        return [c.name for c in containers] + [tag for image in images for tag in image.tags]
