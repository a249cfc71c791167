"""
Container engine interface: the contract for sandbox backends.

The orchestrator talks to containers only through ``ContainerEngine``.
``DockerContainerEngine`` is the production implementation; tests use an
in-memory fake.

Integration contract:
  - calls are synchronous; the orchestrator moves them off the event loop
  - failures raise ``ContainerEngineError`` (or ``TimeoutError`` from
    ``wait_container``)
  - removing a resource that no longer exists is not an error
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from ..constants import SANDBOX_MEMORY_LIMIT_MB, SANDBOX_NANO_CPUS, SANDBOX_NETWORK_MODE


@dataclass(frozen=True)
class ResourceLimits:
    """Caps applied to every sandbox container."""

    memory_mb: int = SANDBOX_MEMORY_LIMIT_MB
    nano_cpus: int = SANDBOX_NANO_CPUS
    network_mode: str = SANDBOX_NETWORK_MODE
    pids_limit: int = 128
    # Run an init process as PID 1 so signals reach the timeout wrapper
    init: bool = True


SANDBOX_LIMITS = ResourceLimits()


@dataclass
class ContainerSpec:
    """Everything needed to create one sandbox container."""

    image: str
    name: str
    limits: ResourceLimits = SANDBOX_LIMITS
    labels: dict[str, str] = field(default_factory=dict)


class ContainerEngine(ABC):
    """Abstract interface for container backends."""

    @abstractmethod
    def build_image(self, context_dir: Path, tag: str, labels: dict[str, str]) -> None:
        """Build an image from *context_dir* and tag it *tag*."""
        ...

    @abstractmethod
    def create_container(self, spec: ContainerSpec) -> str:
        """Create (not start) a container; returns its id."""
        ...

    @abstractmethod
    def start_container(self, name: str) -> None:
        ...

    @abstractmethod
    def wait_container(self, name: str, timeout: float) -> int:
        """Block until the container exits and return its exit status.

        Raises:
            TimeoutError: If the container is still running after *timeout*.
        """
        ...

    @abstractmethod
    def container_logs(self, name: str) -> bytes:
        """Combined stdout and stderr of the container."""
        ...

    @abstractmethod
    def oom_killed(self, name: str) -> bool:
        """Whether the container was stopped by the memory limit."""
        ...

    @abstractmethod
    def kill_container(self, name: str) -> None:
        ...

    @abstractmethod
    def remove_container(self, name: str) -> None:
        """Force-remove a container; a missing container is ignored."""
        ...

    @abstractmethod
    def remove_image(self, tag: str) -> None:
        """Remove an image; a missing image is ignored."""
        ...

    @abstractmethod
    def find_resources(self, label_value: str) -> list[str]:
        """Names of containers and image tags labelled with *label_value*."""
        ...
