"""Tests for the Docker container engine, with a mocked docker client."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests
from docker.errors import APIError, BuildError, DockerException, ImageNotFound, NotFound

from codejudge.constants import SANDBOX_LABEL
from codejudge.core.exceptions import ContainerEngineError
from codejudge.sandbox.container_engine import ContainerSpec
from codejudge.sandbox.docker_engine import DockerContainerEngine


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def engine(client):
    return DockerContainerEngine(client=client)


class TestClientCreation:
    """Tests for lazy client creation."""

    def test_client_is_created_lazily(self):
        with patch("codejudge.sandbox.docker_engine.docker.from_env") as from_env:
            engine = DockerContainerEngine()
            from_env.assert_not_called()
            assert engine.client is from_env.return_value
            from_env.assert_called_once()

    def test_base_url_uses_docker_client(self):
        with patch("codejudge.sandbox.docker_engine.docker.DockerClient") as docker_client:
            engine = DockerContainerEngine(base_url="tcp://docker:2375")
            assert engine.client is docker_client.return_value
            assert docker_client.call_args.kwargs["base_url"] == "tcp://docker:2375"

    def test_unavailable_daemon(self):
        with patch(
            "codejudge.sandbox.docker_engine.docker.from_env",
            side_effect=DockerException("no socket"),
        ):
            with pytest.raises(ContainerEngineError, match="unavailable"):
                DockerContainerEngine().client

    def test_ping_false_when_unavailable(self, engine, client):
        client.ping.side_effect = DockerException("down")
        assert engine.ping() is False


class TestImagesAndContainers:
    """Tests for the individual engine operations."""

    def test_build_image(self, engine, client):
        engine.build_image(Path("/tmp/ctx"), "codejudge-sandbox:x", {SANDBOX_LABEL: "x"})
        kwargs = client.images.build.call_args.kwargs
        assert kwargs["path"] == "/tmp/ctx"
        assert kwargs["tag"] == "codejudge-sandbox:x"
        assert kwargs["labels"] == {SANDBOX_LABEL: "x"}
        assert kwargs["forcerm"] is True

    def test_build_error_includes_log_tail(self, engine, client):
        client.images.build.side_effect = BuildError(
            "npm install failed", [{"stream": "step 1\n"}, {"stream": "ERR! 404\n"}]
        )
        with pytest.raises(ContainerEngineError, match="ERR! 404"):
            engine.build_image(Path("/tmp/ctx"), "t", {})

    def test_create_container_applies_limits(self, engine, client):
        client.containers.create.return_value.id = "abc123"
        spec = ContainerSpec(image="img", name="c1", labels={SANDBOX_LABEL: "x"})

        assert engine.create_container(spec) == "abc123"

        kwargs = client.containers.create.call_args.kwargs
        assert kwargs["network_mode"] == "none"
        assert kwargs["mem_limit"] == "512m"
        assert kwargs["memswap_limit"] == "512m"
        assert kwargs["nano_cpus"] == 1_000_000_000
        assert kwargs["cap_drop"] == ["ALL"]
        assert kwargs["security_opt"] == ["no-new-privileges"]
        assert kwargs["init"] is True
        assert kwargs["labels"] == {SANDBOX_LABEL: "x"}

    def test_create_failure(self, engine, client):
        client.containers.create.side_effect = APIError("conflict")
        with pytest.raises(ContainerEngineError):
            engine.create_container(ContainerSpec(image="img", name="c1"))

    def test_wait_returns_status_code(self, engine, client):
        client.containers.get.return_value.wait.return_value = {"StatusCode": 124}
        assert engine.wait_container("c1", 40) == 124
        client.containers.get.return_value.wait.assert_called_once_with(timeout=40)

    def test_wait_deadline_raises_timeout_error(self, engine, client):
        client.containers.get.return_value.wait.side_effect = (
            requests.exceptions.ReadTimeout("read timed out")
        )
        with pytest.raises(TimeoutError):
            engine.wait_container("c1", 40)

    def test_container_logs(self, engine, client):
        client.containers.get.return_value.logs.return_value = b"output"
        assert engine.container_logs("c1") == b"output"
        client.containers.get.return_value.logs.assert_called_once_with(stdout=True, stderr=True)

    def test_oom_killed_reads_container_state(self, engine, client):
        client.containers.get.return_value.attrs = {"State": {"OOMKilled": True}}
        assert engine.oom_killed("c1") is True

    def test_oom_killed_false_by_default(self, engine, client):
        client.containers.get.return_value.attrs = {"State": {"ExitCode": 137}}
        assert engine.oom_killed("c1") is False

    def test_oom_killed_missing_container(self, engine, client):
        client.containers.get.side_effect = NotFound("gone")
        assert engine.oom_killed("c1") is False

    def test_oom_killed_api_error(self, engine, client):
        client.containers.get.side_effect = APIError("daemon down")
        with pytest.raises(ContainerEngineError):
            engine.oom_killed("c1")


class TestIdempotentCleanup:
    """Removing missing resources is not an error."""

    def test_remove_missing_container(self, engine, client):
        client.containers.get.side_effect = NotFound("gone")
        engine.remove_container("c1")

    def test_remove_missing_image(self, engine, client):
        client.images.remove.side_effect = ImageNotFound("gone")
        engine.remove_image("t")

    def test_kill_exited_container(self, engine, client):
        client.containers.get.return_value.kill.side_effect = APIError("not running")
        engine.kill_container("c1")

    def test_remove_api_error_is_reported(self, engine, client):
        client.images.remove.side_effect = APIError("in use")
        with pytest.raises(ContainerEngineError):
            engine.remove_image("t")

    def test_find_resources_by_label(self, engine, client):
        container = MagicMock()
        container.name = "codejudge-exec-x"
        image = MagicMock(tags=["codejudge-sandbox:x"])
        client.containers.list.return_value = [container]
        client.images.list.return_value = [image]

        assert engine.find_resources("x") == ["codejudge-exec-x", "codejudge-sandbox:x"]
        expected_filter = {"label": f"{SANDBOX_LABEL}=x"}
        client.containers.list.assert_called_once_with(all=True, filters=expected_filter)
        client.images.list.assert_called_once_with(filters=expected_filter)
