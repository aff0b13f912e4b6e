from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from backend.app.config import DEFAULT_GREETING, load_settings


def test_load_settings_defaults_under_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("HELLOWORLD_DATA_DIR", str(data_dir))

    settings = load_settings()

    assert settings.data_dir == data_dir.resolve()
    assert settings.log_dir == data_dir.resolve() / "logs"
    assert settings.release_db_path == data_dir.resolve() / "releases.db"
    assert settings.port == 8080
    assert settings.greeting == DEFAULT_GREETING
    assert settings.kubeconfig is None


def test_load_settings_parses_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HELLOWORLD_PORT", "9090")
    monkeypatch.setenv("HELLOWORLD_RELEASE_STORAGE", " SQLite ")
    monkeypatch.setenv("HELLOWORLD_TELEMETRY_ENABLED", "off")
    monkeypatch.setenv("HELLOWORLD_NAMESPACE", " demo ")
    monkeypatch.setenv("HELLOWORLD_KUBECONFIG", str(tmp_path / "kube.yaml"))
    monkeypatch.setenv("HELLOWORLD_LOG_DIR", str(tmp_path / "elsewhere"))

    settings = load_settings()

    assert settings.port == 9090
    assert settings.release_storage == "sqlite"
    assert settings.telemetry_enabled is False
    assert settings.namespace == "demo"
    assert settings.kubeconfig == (tmp_path / "kube.yaml").resolve()
    assert settings.log_dir == (tmp_path / "elsewhere").resolve()


def test_explicit_overrides_beat_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HELLOWORLD_NAMESPACE", "from-env")
    assert load_settings(namespace="from-flag").namespace == "from-flag"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("HELLOWORLD_RELEASE_STORAGE", "etcd"),
        ("HELLOWORLD_TELEMETRY_SINK", "otlp"),
        ("HELLOWORLD_PORT", "70000"),
        ("HELLOWORLD_NAMESPACE", "  "),
    ],
)
def test_invalid_settings_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        load_settings()
