from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import reset_cached_dependencies
from backend.app.errors import ClusterError
from backend.app.main import create_app
from backend.app.repositories.chart_repository import Chart, load_chart

CHART_DIR = Path(__file__).resolve().parent.parent / "charts" / "helloworld"


class FakeCluster:
    """Records what would have been sent to kubectl."""

    def __init__(self) -> None:
        self.applied: list[tuple[str, Optional[str]]] = []
        self.deleted: list[tuple[str, Optional[str]]] = []
        self.fail_next_apply = False

    def apply_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        if self.fail_next_apply:
            self.fail_next_apply = False
            raise ClusterError(
                "The Deployment \"hello\" is invalid",
                stderr="The Deployment \"hello\" is invalid",
            )
        self.applied.append((manifest, namespace))
        return "configured"

    def delete_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        self.deleted.append((manifest, namespace))
        return "deleted"

    def create_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        return "created"

    def replace_manifest(self, manifest: str, namespace: Optional[str]) -> str:
        return "replaced"

    def get_json(self, args: Sequence[str]) -> dict[str, Any]:
        return {"items": []}

    def delete_by_label(self, kind: str, selector: str, namespace: Optional[str]) -> str:
        return ""


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    for name in ("HELLOWORLD_GREETING", "HELLOWORLD_INFO_MESSAGE", "HELLOWORLD_NAMESPACE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HELLOWORLD_DATA_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.setenv("HELLOWORLD_RELEASE_STORAGE", "memory")
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()


@pytest.fixture
def client() -> Iterator[TestClient]:
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def chart() -> Chart:
    return load_chart(CHART_DIR)


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()
