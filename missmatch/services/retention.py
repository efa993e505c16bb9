"""
Retention sweep.

Runs in phases so that a failure in one never blocks the others: time out
stuck jobs, drop expired records, delete their artifacts, then collect
stored files no record points to.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from missmatch.models.common import utcnow
from missmatch.services.catalog import CatalogStore
from missmatch.services.job_store import JobStore
from missmatch.services.orchestrator import TryOnOrchestrator
from missmatch.services.storage import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepResult:
    timed_out_jobs: int = 0
    deleted_jobs: int = 0
    deleted_uploads: int = 0
    deleted_artifacts: int = 0
    deleted_orphans: int = 0
    deleted_failed_jobs: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class RetentionSweeper:
    def __init__(
        self,
        *,
        jobs: JobStore,
        catalog: CatalogStore,
        artifacts: ArtifactStore,
        orchestrator: TryOnOrchestrator | None = None,
        retention_days: int = 30,
        failed_job_retention: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = jobs
        self._catalog = catalog
        self._artifacts = artifacts
        self._orchestrator = orchestrator
        self._retention_days = retention_days
        self._failed_job_retention = failed_job_retention
        self._clock = clock

    def run(self, now: datetime | None = None) -> SweepResult:
        now = now or self._clock()
        result = SweepResult()

        if self._orchestrator is not None:
            try:
                result.timed_out_jobs = self._orchestrator.fail_timed_out_jobs()
            except Exception as exc:  # noqa: BLE001
                logger.exception("retention_timeout_phase_failed")
                result.errors.append(f"timeouts: {exc}")

        urls: list[str] = []
        try:
            urls = self._delete_expired_records(now, result)
        except Exception as exc:  # noqa: BLE001
            logger.exception("retention_records_phase_failed")
            result.errors.append(f"records: {exc}")

        if urls:
            report = self._artifacts.delete_many(urls)
            result.deleted_artifacts = len(report.succeeded)
            result.errors.extend(f"artifact: {url}" for url in report.failed)

        try:
            result.deleted_orphans = self._delete_orphans(result)
        except Exception as exc:  # noqa: BLE001
            logger.exception("retention_orphan_phase_failed")
            result.errors.append(f"orphans: {exc}")

        try:
            result.deleted_failed_jobs = self._jobs.delete_failed_before(now - self._failed_job_retention)
        except Exception as exc:  # noqa: BLE001
            logger.exception("retention_failed_jobs_phase_failed")
            result.errors.append(f"failed_jobs: {exc}")

        logger.info(
            "retention_sweep_finished",
            extra={
                "timed_out_jobs": result.timed_out_jobs,
                "deleted_jobs": result.deleted_jobs,
                "deleted_uploads": result.deleted_uploads,
                "deleted_artifacts": result.deleted_artifacts,
                "deleted_orphans": result.deleted_orphans,
                "deleted_failed_jobs": result.deleted_failed_jobs,
                "errors": len(result.errors),
            },
        )
        return result

    def _delete_expired_records(self, now: datetime, result: SweepResult) -> list[str]:
        urls: list[str] = []
        expired_jobs = {job.id: job for job in self._jobs.list_expired_jobs(now)}
        expired_uploads = self._catalog.list_expired_uploads(now)

        # Jobs go with their upload even if they have time left.
        for upload in expired_uploads:
            for job in self._jobs.list_jobs_for_upload(upload.id):
                expired_jobs.setdefault(job.id, job)

        for job in expired_jobs.values():
            urls.extend(url for url in (job.result_url, job.result_thumbnail_url) if url)
            if self._jobs.delete_job(job.id):
                result.deleted_jobs += 1

        for upload in expired_uploads:
            urls.extend(url for url in (upload.blob_url, upload.thumbnail_url) if url)
            if self._catalog.delete_upload(upload.id):
                result.deleted_uploads += 1
        return urls

    def _delete_orphans(self, result: SweepResult) -> int:
        candidates = self._artifacts.list_older_than(self._retention_days)
        if not candidates:
            return 0
        referenced = self._jobs.referenced_urls() | self._catalog.referenced_urls()
        orphans = [url for url in candidates if url not in referenced]
        if not orphans:
            return 0
        report = self._artifacts.delete_many(orphans)
        result.errors.extend(f"orphan: {url}" for url in report.failed)
        return len(report.succeeded)
