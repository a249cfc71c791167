"""Shared fixtures for codejudge tests."""

import pytest
from fakes import FakeContainerEngine

from codejudge.sandbox.orchestrator import SandboxOrchestrator


@pytest.fixture
def fake_engine():
    """A container engine that succeeds with empty output."""
    return FakeContainerEngine()


@pytest.fixture
def orchestrator(fake_engine):
    """Orchestrator bound to the fake engine, with a short outer timeout."""
    return SandboxOrchestrator(fake_engine, outer_timeout=1.0)
