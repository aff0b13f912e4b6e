from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest

from backend.app.errors import ClusterError
from backend.app.services.kubectl import KubectlClient


class _RecordingRunner:
    def __init__(self, *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.calls: list[tuple[list[str], dict[str, Any]]] = []
        self._returncode = returncode
        self._stdout = stdout
        self._stderr = stderr

    def __call__(self, command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append((command, kwargs))
        return subprocess.CompletedProcess(command, self._returncode, self._stdout, self._stderr)


def test_apply_manifest_pipes_manifest_to_stdin() -> None:
    runner = _RecordingRunner(stdout="deployment.apps/hello configured\n")
    client = KubectlClient(kubeconfig=Path("/tmp/kube.yaml"), runner=runner)

    output = client.apply_manifest("kind: Deployment\n", "apps")

    assert output == "deployment.apps/hello configured"
    [(command, kwargs)] = runner.calls
    assert command == [
        "kubectl",
        "--kubeconfig=/tmp/kube.yaml",
        "apply",
        "-f",
        "-",
        "-n",
        "apps",
    ]
    assert kwargs["input"] == "kind: Deployment\n"
    assert kwargs["check"] is False


def test_delete_manifest_ignores_missing_resources() -> None:
    runner = _RecordingRunner()
    KubectlClient(runner=runner).delete_manifest("kind: Service\n", None)

    [(command, _)] = runner.calls
    assert command == ["kubectl", "delete", "--ignore-not-found=true", "-f", "-"]


def test_delete_by_label() -> None:
    runner = _RecordingRunner()
    KubectlClient(binary="/usr/local/bin/kubectl", runner=runner).delete_by_label(
        "secret", "owner=hwdeploy,name=hello", "apps"
    )

    [(command, _)] = runner.calls
    assert command == [
        "/usr/local/bin/kubectl",
        "delete",
        "secret",
        "-l",
        "owner=hwdeploy,name=hello",
        "--ignore-not-found=true",
        "-n",
        "apps",
    ]


def test_get_json_parses_output() -> None:
    runner = _RecordingRunner(stdout='{"items": [{"metadata": {"name": "a"}}]}')
    payload = KubectlClient(runner=runner).get_json(["get", "secrets"])

    assert payload == {"items": [{"metadata": {"name": "a"}}]}
    assert runner.calls[0][0][-2:] == ["-o", "json"]


def test_get_json_empty_output() -> None:
    assert KubectlClient(runner=_RecordingRunner()).get_json(["get", "secrets"]) == {}


def test_failure_surfaces_stderr() -> None:
    runner = _RecordingRunner(returncode=1, stderr="error: resource quota exceeded\n")

    with pytest.raises(ClusterError) as exc_info:
        KubectlClient(runner=runner).apply_manifest("kind: Deployment\n", "apps")

    assert str(exc_info.value) == "error: resource quota exceeded"
    assert exc_info.value.stderr == "error: resource quota exceeded"
    assert exc_info.value.command[:2] == ["kubectl", "apply"]


def test_missing_binary_raises_cluster_error() -> None:
    def _runner(command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(command[0])

    with pytest.raises(ClusterError, match="not found"):
        KubectlClient(binary="no-such-kubectl", runner=_runner).apply_manifest("x: 1\n", None)


@pytest.mark.parametrize(("method", "verb"), [("create_manifest", "create"), ("replace_manifest", "replace")])
def test_create_and_replace_pipe_manifest(method: str, verb: str) -> None:
    runner = _RecordingRunner()
    getattr(KubectlClient(runner=runner), method)('{"kind": "Secret"}', "apps")

    [(command, kwargs)] = runner.calls
    assert command == ["kubectl", verb, "-f", "-", "-n", "apps"]
    assert kwargs["input"] == '{"kind": "Secret"}'
