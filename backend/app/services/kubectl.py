"""Service helpers for talking to a Kubernetes cluster through kubectl."""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Optional, Protocol

from backend.app.errors import ClusterError

logger = logging.getLogger("helloworld.kubectl")

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


class ClusterClient(Protocol):
    def apply_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        ...

    def delete_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        ...

    def create_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        ...

    def replace_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        ...

    def get_json(self, args: Sequence[str]) -> dict[str, Any]:
        ...

    def delete_by_label(self, kind: str, selector: str, namespace: Optional[str]) -> str:
        ...


class KubectlClient:
    """Thin wrapper around kubectl; every failure surfaces as ClusterError."""

    def __init__(
        self,
        *,
        kubeconfig: Path | None = None,
        binary: str = "kubectl",
        runner: CommandRunner = subprocess.run,
    ) -> None:
        self.kubeconfig_path = kubeconfig
        self.binary = binary
        self._runner = runner

    def apply_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        """Apply a (multi-document) manifest to the cluster."""
        return self._from_stdin(["apply", "-f", "-"], manifest, namespace)

    def delete_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        """Delete every resource named in a manifest; missing ones are skipped."""
        return self._from_stdin(["delete", "--ignore-not-found=true", "-f", "-"], manifest, namespace)

    def create_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        """Create resources, failing if any already exists.

        Unlike `apply`, no last-applied-configuration annotation is written,
        so large payloads (release records) stay within annotation limits.
        """
        return self._from_stdin(["create", "-f", "-"], manifest, namespace)

    def replace_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        return self._from_stdin(["replace", "-f", "-"], manifest, namespace)

    def delete_by_label(self, kind: str, selector: str, namespace: Optional[str]) -> str:
        args = ["delete", kind, "-l", selector, "--ignore-not-found=true"]
        if namespace:
            args.extend(["-n", namespace])
        return self._run_kubectl(args)

    def get_json(self, args: Sequence[str]) -> dict[str, Any]:
        output = self._run_kubectl([*args, "-o", "json"])
        return json.loads(output) if output else {}

    def _from_stdin(self, args: list[str], manifest: str, namespace: Optional[str]) -> str:
        if namespace:
            args = [*args, "-n", namespace]
        return self._run_kubectl(args, input_data=manifest)

    def _run_kubectl(self, args: list[str], input_data: Optional[str] = None) -> str:
        command = [self.binary]
        if self.kubeconfig_path is not None:
            command.append(f"--kubeconfig={self.kubeconfig_path}")
        command.extend(args)
        logger.debug("running kubectl args=%s", " ".join(args))
        try:
            result = self._runner(
                command,
                input=input_data,
                text=True,
                capture_output=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ClusterError(f"kubectl executable not found: {self.binary}", command=command) from exc
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise ClusterError(stderr or "kubectl command failed", command=command, stderr=stderr)
        return result.stdout.strip()
