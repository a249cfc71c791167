"""
Integration test configuration and fixtures.
These tests build and run real sandbox containers and should be run
separately from unit tests.
"""

import pytest

from codejudge.sandbox.docker_engine import DockerContainerEngine


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires Docker)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(scope="module")
def docker_engine():
    """Docker engine; skips the test when no daemon is reachable."""
    engine = DockerContainerEngine()
    if not engine.ping():
        pytest.skip("Docker daemon required for integration tests")
    return engine
