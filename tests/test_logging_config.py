from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from backend.app.config import load_settings
from backend.app.logging_config import (
    LOGGER_NAME,
    SERVER_LOGGER_NAME,
    TELEMETRY_LOGGER_NAME,
    configure_application_logging,
    configure_cli_logging,
)


@pytest.fixture(autouse=True)
def _detach_handlers() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    yield
    clear_contextvars()
    for name in (LOGGER_NAME, TELEMETRY_LOGGER_NAME, SERVER_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def _json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def test_cli_console_prefixes_release_context(capsys: pytest.CaptureFixture[str]) -> None:
    log_file = configure_cli_logging(load_settings())
    bind_contextvars(release_operation="install", release_name="hello", release_namespace="apps")

    structlog.get_logger(f"{LOGGER_NAME}.release_manager").info("manifest applied", revision=1)

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "[install apps/hello] manifest applied" in captured.err
    assert "release_name=" not in captured.err

    [entry] = [line for line in _json_lines(log_file) if line["event"] == "manifest applied"]
    assert entry["release_operation"] == "install"
    assert entry["release_name"] == "hello"
    assert entry["release_namespace"] == "apps"
    assert entry["revision"] == 1
    assert entry["level"] == "info"


def test_console_without_release_context_is_unprefixed(capsys: pytest.CaptureFixture[str]) -> None:
    configure_cli_logging(load_settings())

    logging.getLogger(f"{LOGGER_NAME}.commands").warning("chart %s has no templates", "empty")

    err = capsys.readouterr().err
    assert "chart empty has no templates" in err
    assert "[install" not in err


def test_reconfiguring_does_not_duplicate_handlers() -> None:
    settings = load_settings()
    configure_cli_logging(settings)
    configure_cli_logging(settings)

    assert len(logging.getLogger(LOGGER_NAME).handlers) == 2
    assert len(logging.getLogger(TELEMETRY_LOGGER_NAME).handlers) == 1


def test_service_logging_captures_server_records(capsys: pytest.CaptureFixture[str]) -> None:
    log_file = configure_application_logging(load_settings())

    logging.getLogger("uvicorn.error").info("Application startup complete.")

    assert "Application startup complete." in capsys.readouterr().out
    entries = _json_lines(log_file)
    assert any(
        entry["event"] == "Application startup complete." and entry["logger"] == "uvicorn.error"
        for entry in entries
    )


def test_telemetry_events_go_to_their_own_file() -> None:
    settings = load_settings(telemetry_enabled=True)
    configure_cli_logging(settings)

    structlog.get_logger(TELEMETRY_LOGGER_NAME).info(
        "telemetry", telemetry_event="release.install.finish", revision=1
    )

    entries = _json_lines(settings.log_dir / "helloworld-telemetry.log")
    assert entries[-1]["telemetry_event"] == "release.install.finish"
    assert entries[-1]["revision"] == 1
