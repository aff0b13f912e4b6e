from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.repositories.database import Database
from backend.app.repositories.release_repository import (
    InMemoryReleaseRepository,
    ReleaseRepository,
    SecretReleaseRepository,
    SqliteReleaseRepository,
)
from backend.app.services.kubectl import ClusterClient, KubectlClient
from backend.app.services.release_manager import ReleaseManager
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def build_cluster_client(settings: AppSettings) -> KubectlClient:
    return KubectlClient(kubeconfig=settings.kubeconfig, binary=settings.kubectl_binary)


def build_release_repository(settings: AppSettings, cluster: ClusterClient) -> ReleaseRepository:
    if settings.release_storage == "memory":
        return InMemoryReleaseRepository(settings.namespace)
    if settings.release_storage == "sqlite":
        database = Database(settings.release_db_path)
        database.initialize()
        return SqliteReleaseRepository(database, settings.namespace)
    return SecretReleaseRepository(cluster, settings.namespace)


def build_release_manager(
    settings: AppSettings,
    *,
    cluster: ClusterClient | None = None,
    telemetry: TelemetryClient | None = None,
) -> ReleaseManager:
    cluster = cluster or build_cluster_client(settings)
    return ReleaseManager(
        cluster=cluster,
        repository=build_release_repository(settings, cluster),
        namespace=settings.namespace,
        telemetry=telemetry,
    )


def reset_cached_dependencies() -> None:
    get_telemetry.cache_clear()
    get_settings.cache_clear()
