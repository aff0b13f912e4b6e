from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

import pytest
from fastapi.testclient import TestClient

from backend.app.config import DEFAULT_GREETING, DEFAULT_INFO_MESSAGE
from backend.app.dependencies import reset_cached_dependencies
from backend.app.main import create_app
from backend.app.scripts.export_openapi import main as export_openapi


def test_hello_returns_fixed_greeting(client: TestClient) -> None:
    response = client.get("/hello")
    assert response.status_code == 200
    assert response.text == DEFAULT_GREETING
    assert response.headers["content-type"].startswith("text/plain")
    assert "charset=utf-8" in response.headers["content-type"]


def test_hello_is_stable_across_requests(client: TestClient) -> None:
    bodies = {client.get("/hello").text for _ in range(5)}
    assert bodies == {DEFAULT_GREETING}


def test_root_returns_info_message(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == DEFAULT_INFO_MESSAGE


def test_health(client: TestClient) -> None:
    response = client.get("/actuator/health")
    assert response.status_code == 200
    assert response.json() == {"status": "UP"}
    assert response.headers.get("X-Request-ID")


def test_request_id_is_propagated(client: TestClient) -> None:
    response = client.get("/hello", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_unknown_path_is_404(client: TestClient) -> None:
    response = client.get("/nope")
    assert response.status_code == 404


def test_post_to_hello_is_not_allowed(client: TestClient) -> None:
    response = client.post("/hello")
    assert response.status_code == 405


def test_greeting_is_configurable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HELLOWORLD_GREETING", "Salut!")
    reset_cached_dependencies()

    with TestClient(create_app()) as test_client:
        response = test_client.get("/hello")

    assert response.status_code == 200
    assert response.text == "Salut!"


def test_export_openapi_writes_schema(tmp_path: Path) -> None:
    export_openapi([str(tmp_path / "openapi")])

    schema = cast(dict[str, Any], json.loads((tmp_path / "openapi" / "openapi.json").read_text(encoding="utf-8")))
    assert schema["info"]["title"] == "Hello World API"
    assert {"/hello", "/", "/actuator/health"} <= set(schema["paths"])
