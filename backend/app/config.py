from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".helloworld"
DEFAULT_GREETING = "Hello, World! 🌍 — Running inside Kubernetes via Helm"
DEFAULT_INFO_MESSAGE = "Hello World App is running! Try GET /hello"
RELEASE_STORAGE_DRIVERS: frozenset[str] = frozenset({"secret", "sqlite", "memory"})
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("log_dir", Path("logs")),
    ("release_db_path", Path("releases.db")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    "chart_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{HELLOWORLD_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Shared by the HTTP service and the deployment CLI. Every option comes
    from a `HELLOWORLD_*` environment variable (or `.env`) and falls back to
    the default declared here.
    """

    model_config = SettingsConfigDict(
        env_prefix="HELLOWORLD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Service process.
    host: str = Field(default="0.0.0.0", description="Interface the HTTP service binds to.")
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port the HTTP service binds to.",
    )
    greeting: str = Field(
        default=DEFAULT_GREETING,
        description="Fixed body returned by `GET /hello`.",
    )
    info_message: str = Field(
        default=DEFAULT_INFO_MESSAGE,
        description="Fixed body returned by `GET /`.",
    )

    # Local state.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for logs and local release storage.",
    )

    # Deployment.
    chart_dir: Path = Field(
        default=Path("charts") / "helloworld",
        description="Chart directory used when a command does not name one.",
    )
    namespace: str = Field(
        default="default",
        description="Kubernetes namespace releases are installed into.",
    )
    kubeconfig: Path | None = Field(
        default=None,
        description="Kubeconfig passed to kubectl. Uses kubectl's own default when unset.",
    )
    kubectl_binary: str = Field(
        default="kubectl",
        description="kubectl executable name or path.",
    )
    release_storage: Literal["secret", "sqlite", "memory"] = Field(
        default="secret",
        description=(
            "Release history backend. `secret` stores revisions in the cluster, "
            "`sqlite` in a local file, `memory` only for the current process."
        ),
    )
    release_db_path: Path = Field(
        default=_default_in_data_dir(Path("releases.db")),
        description=(
            "SQLite release history path for the `sqlite` driver. "
            f"{_data_dir_default_note(Path('releases.db'))}"
        ),
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("release_storage", mode="before")
    @classmethod
    def _normalize_release_storage(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("HELLOWORLD_RELEASE_STORAGE must be a string.")
        normalized = value.strip().lower()
        if normalized in RELEASE_STORAGE_DRIVERS:
            return normalized
        raise ValueError("HELLOWORLD_RELEASE_STORAGE must be set to: memory, secret, sqlite.")

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("HELLOWORLD_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("HELLOWORLD_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("namespace", mode="before")
    @classmethod
    def _normalize_namespace(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("HELLOWORLD_NAMESPACE must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("HELLOWORLD_NAMESPACE must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator("kubeconfig", mode="before")
    @classmethod
    def _normalize_kubeconfig(cls, value: Any) -> Path | None:
        normalized = _normalize_optional_text(value) if not isinstance(value, Path) else value
        if normalized is None:
            return None
        return _resolve_path(normalized)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings(**overrides: Any) -> AppSettings:
    settings = AppSettings(**overrides)
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
