"""
Process-wide service wiring.

Built once per process (API or worker) and handed to routers through
``app.state`` so tests can swap in fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from missmatch.core.config import Settings, get_settings
from missmatch.core.rate_limit import RateLimiter
from missmatch.services.catalog import CatalogStore, SessionFactory
from missmatch.services.drivers.registry import DriverRegistry, build_default_registry
from missmatch.services.job_store import JobStore
from missmatch.services.moderation import ModerationService, NsfwClassifier
from missmatch.services.orchestrator import CompletionScheduler, CompletionSignal, TryOnOrchestrator
from missmatch.services.retention import RetentionSweeper
from missmatch.services.storage import ArtifactStore, LocalArtifactStore


@dataclass
class Container:
    settings: Settings
    jobs: JobStore
    catalog: CatalogStore
    artifacts: ArtifactStore
    registry: DriverRegistry
    orchestrator: TryOnOrchestrator
    moderation: ModerationService
    sweeper: RetentionSweeper
    upload_limiter: RateLimiter
    generation_limiter: RateLimiter
    api_limiter: RateLimiter


def enqueue_completion(signal: CompletionSignal) -> None:
    from missmatch.workers.tasks import finalize_job

    finalize_job.delay(signal.to_payload())


def build_container(
    settings: Settings | None = None,
    *,
    session_factory: SessionFactory | None = None,
    artifacts: ArtifactStore | None = None,
    registry: DriverRegistry | None = None,
    classifier: NsfwClassifier | None = None,
    scheduler: CompletionScheduler | None = None,
) -> Container:
    settings = settings or get_settings()
    if session_factory is None:
        from missmatch.db.session import SessionLocal

        session_factory = SessionLocal
    if scheduler is None and not settings.celery_task_always_eager:
        scheduler = enqueue_completion

    jobs = JobStore(session_factory)
    catalog = CatalogStore(session_factory)
    artifacts = artifacts or LocalArtifactStore.from_settings(settings)
    registry = registry or build_default_registry(settings)
    orchestrator = TryOnOrchestrator(
        jobs=jobs,
        catalog=catalog,
        registry=registry,
        artifacts=artifacts,
        scheduler=scheduler,
        retention=timedelta(days=settings.retention_days),
        processing_timeout=timedelta(seconds=settings.processing_timeout_seconds),
        result_thumbnail_size=settings.result_thumbnail_size,
        max_retries=settings.max_retries,
    )
    return Container(
        settings=settings,
        jobs=jobs,
        catalog=catalog,
        artifacts=artifacts,
        registry=registry,
        orchestrator=orchestrator,
        moderation=ModerationService(catalog, jobs, artifacts, classifier or NsfwClassifier.from_settings(settings)),
        sweeper=RetentionSweeper(
            jobs=jobs,
            catalog=catalog,
            artifacts=artifacts,
            orchestrator=orchestrator,
            retention_days=settings.retention_days,
            failed_job_retention=timedelta(hours=settings.failed_job_retention_hours),
        ),
        upload_limiter=RateLimiter(settings.upload_rate_limit, settings.upload_rate_window_seconds),
        generation_limiter=RateLimiter(settings.generation_rate_limit, settings.generation_rate_window_seconds),
        api_limiter=RateLimiter(settings.rate_limit_per_minute, 60),
    )


@lru_cache(maxsize=1)
def get_container() -> Container:
    return build_container(get_settings())
