from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from backend.app.errors import ChartLoadError

CHART_FILE_NAME = "Chart.yaml"
VALUES_FILE_NAME = "values.yaml"
TEMPLATES_DIR_NAME = "templates"
_TEMPLATE_SUFFIXES: frozenset[str] = frozenset({".yaml", ".yml"})


@dataclass(frozen=True)
class Chart:
    name: str
    version: str
    app_version: str | None
    description: str | None
    default_values: dict[str, Any]
    templates: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    path: Path | None = None


class ChartRepository:
    """Reads chart directories laid out as `Chart.yaml`, `values.yaml`, `templates/`."""

    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    def load(self, chart_ref: str | Path) -> Chart:
        path = Path(chart_ref)
        if not path.is_absolute() and self._root is not None and not path.exists():
            path = self._root / path
        return load_chart(path)


def load_chart(path: Path) -> Chart:
    if not path.is_dir():
        raise ChartLoadError(f"chart directory not found: {path}")

    chart_file = path / CHART_FILE_NAME
    if not chart_file.is_file():
        raise ChartLoadError(f"missing {CHART_FILE_NAME} in {path}")
    metadata = _read_yaml_mapping(chart_file)

    name = metadata.get("name")
    version = metadata.get("version")
    if not isinstance(name, str) or not name.strip():
        raise ChartLoadError(f"{chart_file}: `name` is required")
    if version is None or not str(version).strip():
        raise ChartLoadError(f"{chart_file}: `version` is required")

    values_file = path / VALUES_FILE_NAME
    default_values = _read_yaml_mapping(values_file) if values_file.is_file() else {}

    templates: dict[str, str] = {}
    templates_dir = path / TEMPLATES_DIR_NAME
    if templates_dir.is_dir():
        for template_path in sorted(templates_dir.iterdir()):
            if template_path.suffix not in _TEMPLATE_SUFFIXES or not template_path.is_file():
                continue
            templates[template_path.name] = template_path.read_text(encoding="utf-8")
    if not templates:
        raise ChartLoadError(f"chart {name} has no templates under {templates_dir}")

    app_version = metadata.get("appVersion")
    description = metadata.get("description")
    return Chart(
        name=name.strip(),
        version=str(version).strip(),
        app_version=str(app_version) if app_version is not None else None,
        description=str(description) if description is not None else None,
        default_values=default_values,
        templates=MappingProxyType(templates),
        path=path,
    )


def load_values_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ChartLoadError(f"values file not found: {path}")
    return _read_yaml_mapping(path)


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ChartLoadError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ChartLoadError(f"{path}: expected a mapping at the top level")
    return data
