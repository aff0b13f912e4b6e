"""Lightweight telemetry: named events with sanitised attributes.

Work is reported as spans: `<scope>.start`, then `<scope>.finish` or
`<scope>.error` carrying `duration_ms`. Release operations use
`release.<operation>` scopes, HTTP requests use `http.request`.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import PurePath
from time import perf_counter
from typing import Any, Literal, Protocol

import structlog

AttributeValue = bool | int | float | str | None

# Rendered manifests and values can carry image pull secrets or env payloads.
_REDACTED_ATTRIBUTE_TOKENS: frozenset[str] = frozenset(
    {
        "authorization",
        "cookie",
        "kubeconfig",
        "manifest",
        "password",
        "secret",
        "token",
        "values",
    }
)
_MAX_STRING_LENGTH = 160


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, AttributeValue]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, AttributeValue]) -> None:
        return None


class StructuredLogTelemetrySink:
    def __init__(self, logger_name: str = "helloworld.telemetry") -> None:
        self._logger = structlog.get_logger(logger_name)

    def emit(self, *, event_name: str, attributes: Mapping[str, AttributeValue]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **attributes)


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=_sanitize_attributes(attributes))

    @contextmanager
    def span(self, scope: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Report the enclosed block as one unit of work.

        The yielded dict collects attributes only known at the end (the
        revision written, the HTTP status); they go on the closing event.
        Exceptions are reported with their type and re-raised.
        """
        outcome: dict[str, Any] = {}
        started_at = perf_counter()
        self.emit(f"{scope}.start", **attributes)
        try:
            yield outcome
        except Exception as exc:
            self.emit(
                f"{scope}.error",
                **{**attributes, **outcome},
                duration_ms=_elapsed_ms(started_at),
                error_type=type(exc).__name__,
            )
            raise
        self.emit(
            f"{scope}.finish",
            **{**attributes, **outcome},
            duration_ms=_elapsed_ms(started_at),
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())
    return TelemetryClient.disabled()


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


def _sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, AttributeValue]:
    sanitized: dict[str, AttributeValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(token in key for token in _REDACTED_ATTRIBUTE_TOKENS):
            sanitized[key] = "[redacted]"
        else:
            sanitized[key] = _sanitize_value(raw_value)
    return sanitized


def _sanitize_value(value: Any) -> AttributeValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, PurePath):
        value = str(value)
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    # Collections are reported by size only: descriptor lists, value maps.
    if isinstance(value, Mapping | list | tuple | set | frozenset):
        return len(value)
    return type(value).__name__
