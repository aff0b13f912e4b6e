"""Logging for the service process and the deploy CLI.

Both send JSON lines to a file under `log_dir` and readable lines to a console
stream. Release operations bind `release_operation`, `release_name` and
`release_namespace` to structlog contextvars; on the console they collapse
into a `[install apps/hello]` prefix, in the file they stay separate keys.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from backend.app.config import AppSettings

LOGGER_NAME = "helloworld"
TELEMETRY_LOGGER_NAME = f"{LOGGER_NAME}.telemetry"
SERVICE_LOG_FILE_NAME = "helloworld.log"
DEPLOY_LOG_FILE_NAME = "helloworld-deploy.log"
TELEMETRY_LOG_FILE_NAME = "helloworld-telemetry.log"
# uvicorn runs with log_config=None; `uvicorn.error` and `uvicorn.access` propagate here.
SERVER_LOGGER_NAME = "uvicorn"


def configure_application_logging(settings: AppSettings) -> Path:
    """Service process: console on stdout, uvicorn's records included."""
    return _configure(
        settings,
        log_file_name=SERVICE_LOG_FILE_NAME,
        console_stream=sys.stdout,
        server_logs=True,
    )


def configure_cli_logging(settings: AppSettings) -> Path:
    """Deploy CLI: console on stderr, stdout carries rendered manifests."""
    return _configure(
        settings,
        log_file_name=DEPLOY_LOG_FILE_NAME,
        console_stream=sys.stderr,
        server_logs=False,
    )


def _configure(
    settings: AppSettings,
    *,
    log_file_name: str,
    console_stream: TextIO,
    server_logs: bool,
) -> Path:
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / log_file_name
    _configure_structlog()

    console_handler = logging.StreamHandler(stream=console_stream)
    console_handler.setLevel(_resolve_log_level(settings.log_level))
    console_handler.setFormatter(_console_formatter(colors=_is_tty(console_stream)))
    handlers: list[logging.Handler] = [console_handler, _json_file_handler(log_file, logging.DEBUG)]

    _install(logging.getLogger(LOGGER_NAME), handlers, level=logging.DEBUG)
    if server_logs:
        _install(logging.getLogger(SERVER_LOGGER_NAME), handlers, level=logging.INFO)
    _install(
        logging.getLogger(TELEMETRY_LOGGER_NAME),
        [_json_file_handler(settings.log_dir / TELEMETRY_LOG_FILE_NAME, logging.INFO)],
        level=logging.INFO,
    )

    logging.getLogger(LOGGER_NAME).debug(
        "logging configured console_level=%s path=%s", settings.log_level.upper(), log_file
    )
    return log_file


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _install(logger: logging.Logger, handlers: Sequence[logging.Handler], *, level: int) -> None:
    """Replace the logger's handlers; reconfiguring never stacks duplicates."""
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def _console_formatter(*, colors: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_foreign_pre_chain(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _prefix_release_context,
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
    )


def _json_file_handler(path: Path, level: int) -> logging.FileHandler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_foreign_pre_chain(),
            processors=[
                _add_source_location,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _foreign_pre_chain() -> list[Processor]:
    # Records from plain `logging` calls (ours and uvicorn's).
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _prefix_release_context(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    operation = event_dict.get("release_operation")
    name = event_dict.get("release_name")
    if not operation or not name:
        return event_dict
    namespace = event_dict.pop("release_namespace", None)
    target = f"{namespace}/{name}" if namespace else name
    del event_dict["release_operation"], event_dict["release_name"]
    event_dict["event"] = f"[{operation} {target}] {event_dict.get('event', '')}"
    return event_dict


def _add_source_location(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["source"] = f"{record.module}:{record.lineno}"
    return event_dict


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, OSError, ValueError):
        return False
