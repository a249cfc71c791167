"""Isolated execution of code units in throwaway containers."""

from .container_engine import SANDBOX_LIMITS, ContainerEngine, ContainerSpec, ResourceLimits
from .docker_engine import DockerContainerEngine
from .orchestrator import SandboxOrchestrator, new_execution_id
from .result_decoder import ResultDecoder, demultiplex, extract_result_payload

__all__ = [
    "ContainerEngine",
    "ContainerSpec",
    "ResourceLimits",
    "SANDBOX_LIMITS",
    "DockerContainerEngine",
    "SandboxOrchestrator",
    "new_execution_id",
    "ResultDecoder",
    "demultiplex",
    "extract_result_payload",
]
