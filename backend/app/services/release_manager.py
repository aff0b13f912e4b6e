from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.errors import (
    DeployError,
    InvalidReleaseNameError,
    ReleaseExistsError,
    ReleaseNotFoundError,
)
from backend.app.models.chart_contracts import validate_chart_values
from backend.app.repositories.chart_repository import Chart
from backend.app.repositories.release_repository import (
    ReleaseRecord,
    ReleaseRepository,
    find_revision,
    latest_revision,
    utc_now_iso,
)
from backend.app.services.kubectl import ClusterClient
from backend.app.services.template_renderer import (
    ReleaseInfo,
    RenderedDescriptor,
    combine_manifest,
    render_templates,
    resolve_values,
)
from backend.app.telemetry import TelemetryClient

ValuesValidator = Callable[[dict[str, Any]], dict[str, Any]]

# DNS-1123 label; 53 leaves room for suffixes on generated resource names.
RELEASE_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_RELEASE_NAME_LENGTH = 53

logger = structlog.get_logger("helloworld.release")


@dataclass(frozen=True)
class RenderResult:
    values: dict[str, Any]
    descriptors: list[RenderedDescriptor]
    manifest: str


class ReleaseManager:
    """Install, upgrade, roll back and uninstall chart releases.

    Every operation that changes the cluster appends a revision; history is
    only ever removed by a full uninstall. A failed render, validation or
    kubectl call leaves the stored history untouched.
    """

    def __init__(
        self,
        *,
        cluster: ClusterClient,
        repository: ReleaseRepository,
        namespace: str = "default",
        telemetry: TelemetryClient | None = None,
        values_validator: ValuesValidator = validate_chart_values,
    ) -> None:
        self._cluster = cluster
        self._repository = repository
        self._namespace = namespace
        self._telemetry = telemetry or TelemetryClient.disabled()
        self._validate_values = values_validator

    @property
    def namespace(self) -> str:
        return self._namespace

    def template(
        self,
        chart: Chart,
        *,
        name: str,
        value_files: Sequence[Mapping[str, Any]] = (),
        set_values: Sequence[str] = (),
        revision: int = 1,
    ) -> RenderResult:
        values = resolve_values(chart.default_values, value_files, set_values)
        return self._render(chart, name=name, values=values, revision=revision)

    def install(
        self,
        name: str,
        chart: Chart,
        *,
        value_files: Sequence[Mapping[str, Any]] = (),
        set_values: Sequence[str] = (),
        description: str = "Install complete",
    ) -> ReleaseRecord:
        with self._operation("install", name) as outcome:
            current = latest_revision(self._repository, name)
            if current is not None and current.status != "uninstalled":
                raise ReleaseExistsError(f"cannot re-use a name that is still in use: {name}")
            revision = 1 if current is None else current.revision + 1

            values = resolve_values(chart.default_values, value_files, set_values)
            result = self._render(chart, name=name, values=values, revision=revision)
            self._cluster.apply_manifest(result.manifest, self._namespace)

            record = self._new_record(name, revision, chart, result, description)
            outcome.update(revision=revision, chart=chart.name, chart_version=chart.version)
            self._repository.create(record)
            logger.info("release installed", revision=revision, chart=chart.name)
            return record

    def upgrade(
        self,
        name: str,
        chart: Chart,
        *,
        value_files: Sequence[Mapping[str, Any]] = (),
        set_values: Sequence[str] = (),
        reuse_values: bool = False,
        install: bool = False,
        description: str = "Upgrade complete",
    ) -> ReleaseRecord:
        current = latest_revision(self._repository, name)
        if current is None or current.status == "uninstalled":
            if install:
                return self.install(name, chart, value_files=value_files, set_values=set_values)
            raise ReleaseNotFoundError(f"release {name} has no deployed revisions")

        with self._operation("upgrade", name) as outcome:
            base = current.values if reuse_values else chart.default_values
            values = resolve_values(base, value_files, set_values)
            revision = current.revision + 1
            result = self._render(chart, name=name, values=values, revision=revision)
            self._cluster.apply_manifest(result.manifest, self._namespace)

            record = self._new_record(name, revision, chart, result, description)
            outcome.update(revision=revision, chart=chart.name, chart_version=chart.version)
            self._commit(record, previous=current)
            logger.info("release upgraded", revision=revision, chart=chart.name)
            return record

    def rollback(self, name: str, revision: int | None = None) -> ReleaseRecord:
        with self._operation("rollback", name) as outcome:
            current = latest_revision(self._repository, name)
            if current is None:
                raise ReleaseNotFoundError(f"release not found: {name}")
            target_revision = revision if revision is not None else current.revision - 1
            if target_revision < 1:
                raise DeployError(f"release {name} has no revision to roll back to")
            target = find_revision(self._repository, name, target_revision)
            if target is None:
                raise ReleaseNotFoundError(f"release {name} has no revision {target_revision}")

            self._cluster.apply_manifest(target.manifest, self._namespace)

            record = ReleaseRecord(
                name=name,
                namespace=self._namespace,
                revision=current.revision + 1,
                status="deployed",
                chart_name=target.chart_name,
                chart_version=target.chart_version,
                app_version=target.app_version,
                values=target.values,
                manifest=target.manifest,
                description=f"Rollback to {target_revision}",
                updated_at=utc_now_iso(),
            )
            outcome.update(revision=record.revision, rollback_target=target_revision)
            self._commit(record, previous=current)
            logger.info("release rolled back", revision=record.revision, target=target_revision)
            return record

    def uninstall(self, name: str, *, keep_history: bool = False) -> ReleaseRecord:
        with self._operation("uninstall", name) as outcome:
            current = latest_revision(self._repository, name)
            if current is None or current.status == "uninstalled":
                raise ReleaseNotFoundError(f"release not found: {name}")

            self._cluster.delete_manifest(current.manifest, self._namespace)

            uninstalled = current.with_status("uninstalled")
            outcome.update(revision=current.revision, keep_history=keep_history)
            if keep_history:
                self._repository.update(uninstalled)
            else:
                removed = self._repository.delete_all(name)
                logger.info("release history purged", revisions=removed)
            logger.info("release uninstalled", revision=current.revision)
            return uninstalled

    def history(self, name: str) -> list[ReleaseRecord]:
        revisions = self._repository.list_revisions(name)
        if not revisions:
            raise ReleaseNotFoundError(f"release not found: {name}")
        return revisions

    def status(self, name: str) -> ReleaseRecord:
        current = latest_revision(self._repository, name)
        if current is None:
            raise ReleaseNotFoundError(f"release not found: {name}")
        return current

    def _render(
        self,
        chart: Chart,
        *,
        name: str,
        values: dict[str, Any],
        revision: int,
    ) -> RenderResult:
        _check_release_name(name)
        canonical = self._validate_values(values)
        descriptors = render_templates(
            chart,
            canonical,
            ReleaseInfo(name=name, namespace=self._namespace, revision=revision),
        )
        return RenderResult(
            values=canonical,
            descriptors=descriptors,
            manifest=combine_manifest(chart.name, descriptors),
        )

    def _new_record(
        self,
        name: str,
        revision: int,
        chart: Chart,
        result: RenderResult,
        description: str,
    ) -> ReleaseRecord:
        return ReleaseRecord(
            name=name,
            namespace=self._namespace,
            revision=revision,
            status="deployed",
            chart_name=chart.name,
            chart_version=chart.version,
            app_version=chart.app_version,
            values=result.values,
            manifest=result.manifest,
            description=description,
            updated_at=utc_now_iso(),
        )

    def _commit(self, record: ReleaseRecord, *, previous: ReleaseRecord) -> None:
        self._repository.create(record)
        if previous.status == "deployed":
            self._repository.update(previous.with_status("superseded"))

    @contextmanager
    def _operation(self, operation: str, name: str) -> Iterator[dict[str, Any]]:
        context_tokens = bind_contextvars(
            release_operation=operation,
            release_name=name,
            release_namespace=self._namespace,
        )
        try:
            with self._telemetry.span(
                f"release.{operation}",
                release_name=name,
                release_namespace=self._namespace,
            ) as outcome:
                yield outcome
        except DeployError as exc:
            logger.warning("release operation failed", error=str(exc))
            raise
        finally:
            reset_contextvars(**context_tokens)


def _check_release_name(name: str) -> None:
    if len(name) > MAX_RELEASE_NAME_LENGTH or RELEASE_NAME_PATTERN.match(name) is None:
        raise InvalidReleaseNameError(
            f"invalid release name {name!r}: use at most {MAX_RELEASE_NAME_LENGTH} lowercase "
            "letters, digits or '-', starting and ending with a letter or digit"
        )
