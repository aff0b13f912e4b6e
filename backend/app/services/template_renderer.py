"""Chart rendering: merge configuration overrides, then substitute placeholders.

Templates are plain YAML with `{{ .Values.some.path }}` tokens. Supported roots
are `.Values`, `.Release` (`Name`, `Namespace`, `Revision`, `Service`) and
`.Chart` (`Name`, `Version`, `AppVersion`). Rendering is all-or-nothing: any
unresolved token aborts the whole render. String values are quoted whenever a
bare scalar would read back as something else (`yes`, `007`, `a #b`).
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import yaml

from backend.app.errors import OverrideError, RenderError
from backend.app.repositories.chart_repository import Chart

RELEASE_SERVICE = "hwdeploy"
PLACEHOLDER_PATTERN = re.compile(r"\{\{-?\s*\.([A-Za-z][A-Za-z0-9_.\-]*)\s*-?\}\}")
_ASSIGNMENT_SEPARATOR = re.compile(r"(?<!\\),")
_LEFTOVER_TOKEN = re.compile(r"\{\{.*?(?:\}\}|$)", re.MULTILINE)


@dataclass(frozen=True)
class ReleaseInfo:
    name: str
    namespace: str = "default"
    revision: int = 1


@dataclass(frozen=True)
class RenderedDescriptor:
    template: str
    content: str

    def documents(self) -> list[dict[str, Any]]:
        return [doc for doc in yaml.safe_load_all(self.content) if isinstance(doc, dict)]


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return `base` with `override` layered on top; neither input is mutated.

    Nested mappings merge key by key. Everything else, lists included, is
    replaced wholesale by the override.
    """
    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        existing = merged.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def parse_set_assignments(assignments: Iterable[str]) -> dict[str, Any]:
    """Turn `a.b=1,c=x` style assignments into a nested override mapping."""
    overrides: dict[str, Any] = {}
    for assignment in assignments:
        for part in _ASSIGNMENT_SEPARATOR.split(assignment):
            part = part.strip()
            if not part:
                continue
            key_path, separator, raw_value = part.partition("=")
            if not separator:
                raise OverrideError(f"invalid assignment {part!r}: expected key.path=value")
            segments = key_path.strip().split(".")
            if any(not segment for segment in segments):
                raise OverrideError(f"invalid key path {key_path!r} in assignment {part!r}")
            _set_path(overrides, segments, _parse_scalar(raw_value.replace("\\,", ",")))
    return overrides


def resolve_values(
    defaults: Mapping[str, Any],
    value_files: Sequence[Mapping[str, Any]] = (),
    set_assignments: Iterable[str] = (),
) -> dict[str, Any]:
    """Defaults, then each values file in order, then `--set` assignments."""
    resolved = deep_merge(defaults, {})
    for file_values in value_files:
        resolved = deep_merge(resolved, file_values)
    return deep_merge(resolved, parse_set_assignments(set_assignments))


def render_templates(
    chart: Chart,
    values: Mapping[str, Any],
    release: ReleaseInfo,
) -> list[RenderedDescriptor]:
    context = {
        "Values": values,
        "Release": {
            "Name": release.name,
            "Namespace": release.namespace,
            "Revision": release.revision,
            "Service": RELEASE_SERVICE,
        },
        "Chart": {
            "Name": chart.name,
            "Version": chart.version,
            "AppVersion": chart.app_version,
        },
    }

    descriptors: list[RenderedDescriptor] = []
    for template_name in sorted(chart.templates):
        content = _render_one(template_name, chart.templates[template_name], context)
        if not content.strip():
            continue
        descriptors.append(RenderedDescriptor(template=template_name, content=content))
    return descriptors


def combine_manifest(chart_name: str, descriptors: Sequence[RenderedDescriptor]) -> str:
    parts = [
        f"---\n# Source: {chart_name}/templates/{descriptor.template}\n"
        f"{descriptor.content.strip()}\n"
        for descriptor in descriptors
    ]
    return "".join(parts)


def format_value(value: Any, *, quoted: bool = False) -> str:
    """Render a value so YAML reads it back unchanged.

    `quoted` means the token already sits inside a `"..."` scalar, so only
    escaping is applied.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return json.dumps(value)
    if isinstance(value, str):
        if quoted:
            return json.dumps(value, ensure_ascii=False)[1:-1]
        if _reads_back_as(value):
            return value
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def _reads_back_as(text: str) -> bool:
    if not text or text != text.strip() or "\n" in text:
        return False
    try:
        return yaml.safe_load(text) == text
    except yaml.YAMLError:
        return False


def _inside_double_quotes(text: str, position: int) -> bool:
    line_start = text.rfind("\n", 0, position) + 1
    prefix = text[line_start:position].replace('\\"', "")
    return prefix.count('"') % 2 == 1


def _render_one(template_name: str, text: str, context: Mapping[str, Any]) -> str:
    def _substitute(match: re.Match[str]) -> str:
        value = _lookup(context, match.group(1), template_name)
        return format_value(value, quoted=_inside_double_quotes(text, match.start()))

    leftover = _LEFTOVER_TOKEN.search(PLACEHOLDER_PATTERN.sub("", text))
    if leftover is not None:
        raise RenderError(
            f"template {template_name}: unsupported template expression {leftover.group(0)!r}",
            template=template_name,
        )
    rendered = PLACEHOLDER_PATTERN.sub(_substitute, text)
    try:
        list(yaml.safe_load_all(rendered))
    except yaml.YAMLError as exc:
        raise RenderError(
            f"template {template_name} rendered to invalid YAML: {exc}",
            template=template_name,
        ) from exc
    return rendered


def _lookup(context: Mapping[str, Any], dotted_path: str, template_name: str) -> Any:
    current: Any = context
    for segment in dotted_path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            raise RenderError(
                f"template {template_name}: no value for .{dotted_path}",
                template=template_name,
                key=dotted_path,
            )
        current = current[segment]
    return current


def _set_path(target: dict[str, Any], segments: Sequence[str], value: Any) -> None:
    current = target
    for segment in segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[segments[-1]] = value


def _parse_scalar(raw: str) -> Any:
    text = raw.strip()
    if not text:
        return ""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError:
        return text
    if isinstance(parsed, dict | list):
        return text
    return parsed
