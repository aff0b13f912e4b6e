from __future__ import annotations

import base64
import gzip
import json
import sqlite3
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

from backend.app.errors import ClusterError, DeployError
from backend.app.repositories.database import Database
from backend.app.services.kubectl import ClusterClient

ReleaseStatus = Literal["deployed", "superseded", "uninstalled"]

STORAGE_OWNER = "hwdeploy"
SECRET_TYPE = "hwdeploy.io/release.v1"
_SECRET_PAYLOAD_KEY = "release"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class ReleaseRecord:
    name: str
    namespace: str
    revision: int
    status: ReleaseStatus
    chart_name: str
    chart_version: str
    app_version: str | None
    values: dict[str, Any]
    manifest: str
    description: str
    updated_at: str

    def with_status(self, status: ReleaseStatus) -> ReleaseRecord:
        return replace(self, status=status, updated_at=utc_now_iso())

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ReleaseRecord:
        return cls(
            name=str(payload["name"]),
            namespace=str(payload["namespace"]),
            revision=int(payload["revision"]),
            status=payload["status"],
            chart_name=str(payload["chart_name"]),
            chart_version=str(payload["chart_version"]),
            app_version=payload.get("app_version"),
            values=dict(payload.get("values") or {}),
            manifest=str(payload["manifest"]),
            description=str(payload.get("description") or ""),
            updated_at=str(payload["updated_at"]),
        )


class ReleaseRepository(Protocol):
    def list_revisions(self, name: str) -> list[ReleaseRecord]:
        ...

    def create(self, record: ReleaseRecord) -> None:
        ...

    def update(self, record: ReleaseRecord) -> None:
        ...

    def delete_all(self, name: str) -> int:
        ...


def latest_revision(repository: ReleaseRepository, name: str) -> ReleaseRecord | None:
    revisions = repository.list_revisions(name)
    return revisions[-1] if revisions else None


def find_revision(repository: ReleaseRepository, name: str, revision: int) -> ReleaseRecord | None:
    for record in repository.list_revisions(name):
        if record.revision == revision:
            return record
    return None


class InMemoryReleaseRepository:
    def __init__(self, namespace: str = "default") -> None:
        self._namespace = namespace
        self._records: dict[str, dict[int, ReleaseRecord]] = {}

    def list_revisions(self, name: str) -> list[ReleaseRecord]:
        revisions = self._records.get(name, {})
        return [revisions[number] for number in sorted(revisions)]

    def create(self, record: ReleaseRecord) -> None:
        revisions = self._records.setdefault(record.name, {})
        if record.revision in revisions:
            raise DeployError(f"release {record.name} revision {record.revision} already stored")
        revisions[record.revision] = record

    def update(self, record: ReleaseRecord) -> None:
        revisions = self._records.get(record.name, {})
        if record.revision not in revisions:
            raise DeployError(f"release {record.name} revision {record.revision} not stored")
        revisions[record.revision] = record

    def delete_all(self, name: str) -> int:
        return len(self._records.pop(name, {}))


class SqliteReleaseRepository:
    def __init__(self, db: Database, namespace: str = "default") -> None:
        self._db = db
        self._namespace = namespace

    def list_revisions(self, name: str) -> list[ReleaseRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM release_revisions
                WHERE namespace = ? AND name = ?
                ORDER BY revision ASC
                """,
                (self._namespace, name),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def create(self, record: ReleaseRecord) -> None:
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO release_revisions
                    (namespace, name, revision, status, chart_name, chart_version, app_version,
                     values_json, manifest, description, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    _record_to_row(record),
                )
        except sqlite3.IntegrityError as exc:
            raise DeployError(
                f"release {record.name} revision {record.revision} already stored"
            ) from exc

    def update(self, record: ReleaseRecord) -> None:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE release_revisions
                SET status = ?, description = ?, updated_at = ?
                WHERE namespace = ? AND name = ? AND revision = ?
                """,
                (
                    record.status,
                    record.description,
                    record.updated_at,
                    record.namespace,
                    record.name,
                    record.revision,
                ),
            )
            if cursor.rowcount == 0:
                raise DeployError(f"release {record.name} revision {record.revision} not stored")

    def delete_all(self, name: str) -> int:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM release_revisions WHERE namespace = ? AND name = ?",
                (self._namespace, name),
            )
            return cursor.rowcount


class SecretReleaseRepository:
    """Keeps one Kubernetes Secret per revision, next to the release itself."""

    def __init__(self, cluster: ClusterClient, namespace: str = "default") -> None:
        self._cluster = cluster
        self._namespace = namespace

    def list_revisions(self, name: str) -> list[ReleaseRecord]:
        payload = self._cluster.get_json(
            ["get", "secrets", "-n", self._namespace, "-l", _selector(name)]
        )
        records = [_decode_secret(item) for item in payload.get("items", [])]
        return sorted(records, key=lambda record: record.revision)

    def create(self, record: ReleaseRecord) -> None:
        self._cluster.create_manifest(json.dumps(_encode_secret(record)), self._namespace)

    def update(self, record: ReleaseRecord) -> None:
        self._cluster.replace_manifest(json.dumps(_encode_secret(record)), self._namespace)

    def delete_all(self, name: str) -> int:
        count = len(self.list_revisions(name))
        self._cluster.delete_by_label("secret", _selector(name), self._namespace)
        return count


def secret_name(name: str, revision: int) -> str:
    return f"{STORAGE_OWNER}.release.v1.{name}.v{revision}"


def _selector(name: str) -> str:
    return f"owner={STORAGE_OWNER},name={name}"


def _encode_secret(record: ReleaseRecord) -> dict[str, Any]:
    raw = json.dumps(record.to_payload(), sort_keys=True).encode("utf-8")
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": SECRET_TYPE,
        "metadata": {
            "name": secret_name(record.name, record.revision),
            "namespace": record.namespace,
            "labels": {
                "owner": STORAGE_OWNER,
                "name": record.name,
                "version": str(record.revision),
                "status": record.status,
            },
        },
        "data": {_SECRET_PAYLOAD_KEY: base64.b64encode(gzip.compress(raw)).decode("ascii")},
    }


def _decode_secret(item: dict[str, Any]) -> ReleaseRecord:
    encoded = item.get("data", {}).get(_SECRET_PAYLOAD_KEY)
    secret = item.get("metadata", {}).get("name", "<unknown>")
    if not encoded:
        raise ClusterError(f"release secret {secret} has no payload")
    try:
        payload = json.loads(gzip.decompress(base64.b64decode(encoded)))
    except (OSError, ValueError) as exc:
        raise ClusterError(f"release secret {secret} is corrupt: {exc}") from exc
    return ReleaseRecord.from_payload(payload)


def _record_to_row(record: ReleaseRecord) -> tuple[Any, ...]:
    return (
        record.namespace,
        record.name,
        record.revision,
        record.status,
        record.chart_name,
        record.chart_version,
        record.app_version,
        json.dumps(record.values, sort_keys=True),
        record.manifest,
        record.description,
        record.updated_at,
    )


def _row_to_record(row: sqlite3.Row) -> ReleaseRecord:
    return ReleaseRecord(
        name=row["name"],
        namespace=row["namespace"],
        revision=int(row["revision"]),
        status=row["status"],
        chart_name=row["chart_name"],
        chart_version=row["chart_version"],
        app_version=row["app_version"],
        values=json.loads(row["values_json"]),
        manifest=row["manifest"],
        description=row["description"],
        updated_at=row["updated_at"],
    )
