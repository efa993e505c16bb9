"""
Persistence for try-on job records.

Every state change that matters for correctness is a single conditional
UPDATE keyed on the job's expected pre-state, so concurrent requests in
different processes cannot both win the same transition.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from missmatch.models.common import utcnow
from missmatch.models.job import JobStatus, TryOnJob, inflight_key_for
from missmatch.services.errors import DuplicateInFlight

SessionFactory = Callable[[], Session]


class JobStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def create_job(
        self,
        *,
        upload_id: str,
        garment_id: str,
        driver_name: str,
        options: dict[str, Any] | None = None,
        session_ref: str | None = None,
        retention: timedelta,
        max_retries: int = 3,
    ) -> TryOnJob:
        """Insert a QUEUED job, or raise ``DuplicateInFlight`` carrying the live one."""
        key = inflight_key_for(upload_id, garment_id)
        job = TryOnJob(
            upload_id=upload_id,
            garment_id=garment_id,
            driver_name=driver_name,
            processing_params=options or {},
            session_ref=session_ref,
            status=JobStatus.QUEUED,
            inflight_key=key,
            max_retries=max_retries,
            expires_at=utcnow() + retention,
        )
        with self._session_factory() as session:
            session.add(job)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = session.scalar(select(TryOnJob).where(TryOnJob.inflight_key == key))
                if existing is None:
                    raise
                raise DuplicateInFlight(existing) from None
            return job

    def get_job(self, job_id: str) -> TryOnJob | None:
        with self._session_factory() as session:
            return session.get(TryOnJob, job_id)

    def find_job_by_external_id(self, external_job_id: str) -> TryOnJob | None:
        with self._session_factory() as session:
            return session.scalar(select(TryOnJob).where(TryOnJob.external_job_id == external_job_id).limit(1))

    def list_jobs_for_upload(self, upload_id: str) -> list[TryOnJob]:
        with self._session_factory() as session:
            return list(session.scalars(select(TryOnJob).where(TryOnJob.upload_id == upload_id)).all())

    def update_job(self, job_id: str, **values: Any) -> TryOnJob | None:
        """Unconditional update for diagnostic fields; never use it to change ``status``."""
        if "status" in values:
            raise ValueError("status changes must go through a conditional transition")
        return self._update(job_id, [], values)

    def mark_dispatched(self, job_id: str, external_job_id: str) -> TryOnJob | None:
        return self._update(
            job_id,
            [TryOnJob.status == JobStatus.QUEUED, TryOnJob.external_job_id.is_(None)],
            {"status": JobStatus.PROCESSING, "external_job_id": external_job_id, "dispatched_at": utcnow()},
        )

    def claim_completion(self, job_id: str) -> str | None:
        """Reserve the right to ingest the provider result. Only one caller gets a token."""
        token = str(uuid.uuid4())
        claimed = self._update(
            job_id,
            [TryOnJob.status.in_(JobStatus.NON_TERMINAL), TryOnJob.completion_token.is_(None)],
            {"completion_token": token},
        )
        return token if claimed is not None else None

    def mark_completed(
        self,
        job_id: str,
        token: str,
        *,
        result_url: str,
        result_thumbnail_url: str | None,
        processing_time_ms: int | None,
    ) -> TryOnJob | None:
        return self._update(
            job_id,
            [TryOnJob.status.in_(JobStatus.NON_TERMINAL), TryOnJob.completion_token == token],
            {
                "status": JobStatus.COMPLETED,
                "result_url": result_url,
                "result_thumbnail_url": result_thumbnail_url,
                "processing_time_ms": processing_time_ms,
                "error_detail": None,
                "inflight_key": None,
            },
        )

    def mark_failed(self, job_id: str, reason: str, *, token: str | None = None) -> TryOnJob | None:
        conditions = [TryOnJob.status.in_(JobStatus.NON_TERMINAL)]
        if token is not None:
            conditions.append(TryOnJob.completion_token == token)
        return self._update(
            job_id,
            conditions,
            {
                "status": JobStatus.FAILED,
                "error_detail": reason,
                "result_url": None,
                "result_thumbnail_url": None,
                "inflight_key": None,
            },
        )

    def list_expired_jobs(self, before: datetime) -> list[TryOnJob]:
        with self._session_factory() as session:
            return list(session.scalars(select(TryOnJob).where(TryOnJob.expires_at < before)).all())

    def list_stale_jobs(self, started_before: datetime) -> list[TryOnJob]:
        """Non-terminal jobs dispatched (or created, if never dispatched) before the cutoff."""
        started = func.coalesce(TryOnJob.dispatched_at, TryOnJob.created_at)
        with self._session_factory() as session:
            stmt = select(TryOnJob).where(TryOnJob.status.in_(JobStatus.NON_TERMINAL), started < started_before)
            return list(session.scalars(stmt).all())

    def delete_job(self, job_id: str) -> bool:
        with self._session_factory() as session:
            result = session.execute(delete(TryOnJob).where(TryOnJob.id == job_id))
            session.commit()
            return result.rowcount == 1

    def delete_failed_before(self, cutoff: datetime) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(TryOnJob).where(TryOnJob.status == JobStatus.FAILED, TryOnJob.updated_at < cutoff)
            )
            session.commit()
            return result.rowcount or 0

    def referenced_urls(self) -> set[str]:
        with self._session_factory() as session:
            rows = session.execute(
                select(TryOnJob.result_url, TryOnJob.result_thumbnail_url).where(
                    or_(TryOnJob.result_url.is_not(None), TryOnJob.result_thumbnail_url.is_not(None))
                )
            ).all()
        return {url for row in rows for url in row if url}

    def _update(self, job_id: str, conditions: list, values: dict[str, Any]) -> TryOnJob | None:
        stmt = (
            update(TryOnJob)
            .where(TryOnJob.id == job_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            if result.rowcount != 1:
                return None
            return session.get(TryOnJob, job_id, populate_existing=True)
