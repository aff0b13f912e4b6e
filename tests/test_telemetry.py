from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from backend.app.telemetry import TelemetryClient, build_telemetry_client


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def test_telemetry_client_redacts_sensitive_fields() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    client.emit(
        "release.install.start",
        release_name="hello",
        manifest="kind: Secret\ndata: {password: aHVudGVyMg==}",
        values={"image": {"tag": "1.0.0"}},
        kubeconfig_path="/home/me/.kube/config",
        revision=3,
    )

    assert len(sink.events) == 1
    event_name, attributes = sink.events[0]
    assert event_name == "release.install.start"
    assert attributes["release_name"] == "hello"
    assert attributes["revision"] == 3
    assert attributes["manifest"] == "[redacted]"
    assert attributes["values"] == "[redacted]"
    assert attributes["kubeconfig_path"] == "[redacted]"


def test_telemetry_client_compacts_long_strings_and_collections() -> None:
    sink = _CaptureSink()
    TelemetryClient(enabled=True, sink=sink).emit(
        "http.request.finish",
        path="/hello   " + "x" * 400,
        descriptors=["deployment.yaml", "service.yaml"],
    )

    _, attributes = sink.events[0]
    assert attributes["path"].startswith("/hello x")
    assert attributes["path"].endswith("...")
    assert attributes["descriptors"] == 2


def test_disabled_telemetry_client_does_not_emit() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=False, sink=sink)

    client.emit("release.install.start", release_name="hello")
    assert sink.events == []


def test_build_telemetry_client_none_sink_is_disabled() -> None:
    client = build_telemetry_client(enabled=True, sink="none")
    assert client.enabled is False


def test_span_reports_outcome_on_finish() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    with client.span("release.upgrade", release_name="hello") as outcome:
        outcome["revision"] = 2

    assert [name for name, _ in sink.events] == ["release.upgrade.start", "release.upgrade.finish"]
    assert "revision" not in sink.events[0][1]
    finished = sink.events[1][1]
    assert finished["release_name"] == "hello"
    assert finished["revision"] == 2
    assert isinstance(finished["duration_ms"], int)


def test_span_reports_error_type_and_reraises() -> None:
    sink = _CaptureSink()
    client = TelemetryClient(enabled=True, sink=sink)

    with pytest.raises(RuntimeError, match="kubectl exited 1"):
        with client.span("release.rollback", release_name="hello"):
            raise RuntimeError("kubectl exited 1")

    event_name, attributes = sink.events[-1]
    assert event_name == "release.rollback.error"
    assert attributes["error_type"] == "RuntimeError"
    assert attributes["release_name"] == "hello"
