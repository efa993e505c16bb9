"""
Try-on job lifecycle.

QUEUED -> PROCESSING -> COMPLETED | FAILED. A job can be completed by the
dispatch response, a provider webhook or a client status poll, in any
order and from any process. Terminal transitions are conditional updates
in the job store, and the result fetch is guarded by a completion claim,
so exactly one signal ingests the result and nothing overwrites a
terminal job.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from missmatch.models.common import as_utc, utcnow
from missmatch.models.garment import Garment
from missmatch.models.job import JobStatus, TryOnJob
from missmatch.models.upload import Upload, UploadStatus
from missmatch.services.catalog import CatalogStore
from missmatch.services.drivers.base import PROVIDER_REQUEST_FAILED
from missmatch.services.drivers.prompts import category_for_catalog
from missmatch.services.drivers.registry import DriverRegistry
from missmatch.services.drivers.types import GarmentMeta, TryOnOptions, TryOnRequest, seconds_to_ms
from missmatch.services.errors import (
    DriverConfigError,
    DriverTransientError,
    DuplicateInFlight,
    ModerationRejected,
    NotFoundError,
    PostProcessingError,
    ValidationError,
)
from missmatch.services.imaging import create_thumbnail
from missmatch.services.job_store import JobStore
from missmatch.services.storage import ArtifactStore
from missmatch.services.webhooks import WebhookEvent, provider_key

logger = logging.getLogger(__name__)

POST_PROCESSING_REASON = "Post-processing failed: could not store the generated image"
TIMEOUT_REASON = "Processing timed out"
DRIVER_CONFIG_REASON = "Try-on provider is not configured"
PROVIDER_UNAVAILABLE_REASON = PROVIDER_REQUEST_FAILED
MAX_ERROR_DETAIL = 500

Thumbnailer = Callable[[bytes, int], bytes]


@dataclass(slots=True)
class CompletionSignal:
    job_id: str
    result_url: str | None
    thumbnail_url: str | None = None
    processing_time_ms: int | None = None
    source: str = "poll"

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CompletionSignal":
        return cls(**payload)


CompletionScheduler = Callable[[CompletionSignal], None]


@dataclass(slots=True)
class JobSubmission:
    job: TryOnJob
    estimated_seconds: int
    duplicate: bool = False


def _short(reason: str) -> str:
    reason = (reason or "Processing failed").strip()
    return reason[:MAX_ERROR_DETAIL]


class TryOnOrchestrator:
    def __init__(
        self,
        *,
        jobs: JobStore,
        catalog: CatalogStore,
        registry: DriverRegistry,
        artifacts: ArtifactStore,
        scheduler: CompletionScheduler | None = None,
        thumbnailer: Thumbnailer = create_thumbnail,
        retention: timedelta = timedelta(days=30),
        processing_timeout: timedelta = timedelta(minutes=5),
        result_thumbnail_size: int = 400,
        max_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = jobs
        self._catalog = catalog
        self._registry = registry
        self._artifacts = artifacts
        self._scheduler = scheduler
        self._thumbnailer = thumbnailer
        self._retention = retention
        self._processing_timeout = processing_timeout
        self._result_thumbnail_size = result_thumbnail_size
        self._max_retries = max_retries
        self._clock = clock

    # create

    def create_job(
        self,
        *,
        upload_id: str,
        garment_id: str,
        session_ref: str = "anonymous",
        options: TryOnOptions | None = None,
        driver_name: str | None = None,
        user_id: str | None = None,
    ) -> JobSubmission:
        upload = self._require_approved_upload(upload_id)
        garment = self._catalog.get_garment(garment_id)
        if garment is None or not garment.is_active:
            raise NotFoundError("Garment not found or unavailable")

        name = (driver_name or "").strip().lower() or self._registry.resolve()
        options = options or TryOnOptions()
        job, duplicate = self._insert(upload.id, garment.id, name, options, session_ref)
        if duplicate:
            logger.info("tryon_job_duplicate", extra={"job_id": job.id, "upload_id": upload_id, "garment_id": garment_id})
            return JobSubmission(job=job, estimated_seconds=self._estimate(job.driver_name), duplicate=True)

        # Moderation may have settled between the first read and the insert.
        current = self._catalog.get_upload(upload_id)
        if current is None or current.status != UploadStatus.APPROVED:
            self._jobs.delete_job(job.id)
            if current is not None and current.status == UploadStatus.REJECTED:
                raise ModerationRejected()
            raise NotFoundError("Upload not found")

        logger.info("tryon_job_created", extra={"job_id": job.id, "driver": name})
        dispatched = self._dispatch(job, upload, garment, user_id) or job
        return JobSubmission(job=dispatched, estimated_seconds=self._estimate(name))

    def _require_approved_upload(self, upload_id: str) -> Upload:
        upload = self._catalog.get_upload(upload_id)
        if upload is None:
            raise NotFoundError("Upload not found")
        if upload.status == UploadStatus.REJECTED:
            raise ModerationRejected()
        if upload.status != UploadStatus.APPROVED:
            raise ValidationError("upload_id", "Upload is still being processed. Please try again in a moment.")
        return upload

    def _insert(
        self, upload_id: str, garment_id: str, driver_name: str, options: TryOnOptions, session_ref: str
    ) -> tuple[TryOnJob, bool]:
        def attempt() -> TryOnJob:
            return self._jobs.create_job(
                upload_id=upload_id,
                garment_id=garment_id,
                driver_name=driver_name,
                options=options.as_dict(),
                session_ref=session_ref,
                retention=self._retention,
                max_retries=self._max_retries,
            )

        try:
            return attempt(), False
        except DuplicateInFlight as dup:
            if not self._is_stale(dup.existing):
                return dup.existing, True
            self.fail(dup.existing.id, TIMEOUT_REASON)
        try:
            return attempt(), False
        except DuplicateInFlight as dup:
            return dup.existing, True

    def _estimate(self, driver_name: str) -> int:
        try:
            return self._registry.estimated_processing_time(driver_name)
        except DriverConfigError:
            return 0

    # dispatch

    def dispatch(self, job_id: str, user_id: str | None = None) -> TryOnJob | None:
        job = self._jobs.get_job(job_id)
        if job is None or job.status != JobStatus.QUEUED:
            return job
        upload = self._catalog.get_upload(job.upload_id)
        garment = self._catalog.get_garment(job.garment_id)
        if upload is None or garment is None:
            return self.fail(job.id, "Source image or garment is no longer available")
        return self._dispatch(job, upload, garment, user_id)

    def _dispatch(self, job: TryOnJob, upload: Upload, garment: Garment, user_id: str | None) -> TryOnJob | None:
        try:
            driver = self._registry.create(job.driver_name)
        except DriverConfigError as exc:
            logger.error("tryon_driver_config_error", extra={"job_id": job.id, "driver": job.driver_name, "error": str(exc)})
            return self.fail(job.id, DRIVER_CONFIG_REASON)

        request = TryOnRequest(
            person_image_url=upload.blob_url,
            garment_image_url=garment.image_url,
            session_id=job.session_ref or "anonymous",
            user_id=user_id,
            options=TryOnOptions(**job.processing_params) if job.processing_params else TryOnOptions(),
            garment_meta=GarmentMeta(sku=garment.id, name=garment.name, category=category_for_catalog(garment.category)),
        )
        with driver:
            validation = driver.validate_request(request)
            if not validation.is_valid:
                return self.fail(job.id, f"Invalid request: {'; '.join(validation.errors)}")
            try:
                response = driver.generate(request)
            except DriverConfigError as exc:
                logger.error(
                    "tryon_driver_config_error", extra={"job_id": job.id, "driver": job.driver_name, "error": str(exc)}
                )
                return self.fail(job.id, DRIVER_CONFIG_REASON)
            except DriverTransientError as exc:
                logger.warning("tryon_generate_failed", extra={"job_id": job.id, "driver": job.driver_name, "error": str(exc)})
                return self.fail(job.id, PROVIDER_UNAVAILABLE_REASON)

        if response.status == "failed" or response.error:
            return self.fail(job.id, response.error or "Processing failed")
        if not response.job_id:
            return self.fail(job.id, "Provider did not return a job id")

        dispatched = self._jobs.mark_dispatched(job.id, response.job_id)
        if dispatched is None:
            return self._jobs.get_job(job.id)
        logger.info(
            "tryon_job_dispatched",
            extra={"job_id": job.id, "driver": job.driver_name, "external_job_id": response.job_id},
        )

        if response.status == "completed" and response.result_url:
            self._schedule(
                CompletionSignal(
                    job_id=job.id,
                    result_url=response.result_url,
                    thumbnail_url=response.thumbnail_url,
                    processing_time_ms=response.processing_time_ms,
                    source="dispatch",
                )
            )
            return self._jobs.get_job(job.id)
        return dispatched

    # complete / fail

    def _schedule(self, signal: CompletionSignal) -> None:
        if self._scheduler is None:
            self.run_completion(signal)
            return
        try:
            self._scheduler(signal)
        except Exception:  # noqa: BLE001
            logger.exception("tryon_completion_enqueue_failed", extra={"job_id": signal.job_id})
            self.run_completion(signal)

    def run_completion(self, signal: CompletionSignal) -> TryOnJob | None:
        """Entry point for background completion. Never raises."""
        try:
            return self.complete(signal)
        except Exception:  # noqa: BLE001
            logger.exception("tryon_completion_crashed", extra={"job_id": signal.job_id, "source": signal.source})
            try:
                return self._jobs.mark_failed(signal.job_id, POST_PROCESSING_REASON) or self._jobs.get_job(signal.job_id)
            except Exception:  # noqa: BLE001
                logger.exception("tryon_completion_fail_unrecorded", extra={"job_id": signal.job_id})
                return None

    def complete(self, signal: CompletionSignal) -> TryOnJob | None:
        job = self._jobs.get_job(signal.job_id)
        if job is None:
            logger.warning("tryon_completion_unknown_job", extra={"job_id": signal.job_id})
            return None
        if job.is_terminal:
            logger.info("tryon_completion_ignored_terminal", extra={"job_id": job.id, "source": signal.source})
            return job
        if not signal.result_url:
            return self.fail(job.id, "Provider reported success without a result")

        token = self._jobs.claim_completion(job.id)
        if token is None:
            logger.info("tryon_completion_already_claimed", extra={"job_id": job.id, "source": signal.source})
            return self._jobs.get_job(job.id)

        try:
            result_url, thumbnail_url = self._ingest(job, signal)
        except PostProcessingError:
            logger.exception("tryon_post_processing_failed", extra={"job_id": job.id, "source": signal.source})
            return self._jobs.mark_failed(job.id, POST_PROCESSING_REASON, token=token) or self._jobs.get_job(job.id)

        completed = self._jobs.mark_completed(
            job.id,
            token,
            result_url=result_url,
            result_thumbnail_url=thumbnail_url,
            processing_time_ms=signal.processing_time_ms,
        )
        if completed is None:
            logger.info("tryon_completion_lost_race", extra={"job_id": job.id, "source": signal.source})
            self._artifacts.delete_many([result_url, thumbnail_url])
            return self._jobs.get_job(job.id)
        logger.info("tryon_job_completed", extra={"job_id": job.id, "source": signal.source})
        return completed

    def _ingest(self, job: TryOnJob, signal: CompletionSignal) -> tuple[str, str]:
        created: list[str] = []
        try:
            stored = self._artifacts.put_from_url(signal.result_url, "results", f"result_{job.id}")
            created.append(stored.url)
            if signal.thumbnail_url:
                thumb = self._artifacts.put_from_url(signal.thumbnail_url, "thumbnails", f"result_thumb_{job.id}")
            else:
                data = self._artifacts.get(stored.url)
                thumb_bytes = self._thumbnailer(data, self._result_thumbnail_size)
                thumb = self._artifacts.put(thumb_bytes, "image/jpeg", "thumbnails", f"result_thumb_{job.id}")
            created.append(thumb.url)
        except Exception as exc:
            if created:
                self._artifacts.delete_many(created)
            raise PostProcessingError(str(exc)) from exc
        return stored.url, thumb.url

    def fail(self, job_id: str, reason: str) -> TryOnJob | None:
        failed = self._jobs.mark_failed(job_id, _short(reason))
        if failed is None:
            return self._jobs.get_job(job_id)
        logger.info("tryon_job_failed", extra={"job_id": job_id, "reason": failed.error_detail})
        return failed

    # status poll

    def refresh_status(self, job_id: str) -> TryOnJob:
        job = self._jobs.get_job(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        if job.is_terminal:
            return job
        if self._is_timed_out(job):
            return self.fail(job.id, TIMEOUT_REASON) or job
        if not job.external_job_id:
            return job

        try:
            driver = self._registry.create(job.driver_name)
        except DriverConfigError as exc:
            logger.error("tryon_driver_config_error", extra={"job_id": job.id, "driver": job.driver_name, "error": str(exc)})
            return self.fail(job.id, DRIVER_CONFIG_REASON) or job
        try:
            with driver:
                status = driver.get_status(job.external_job_id)
        except DriverTransientError as exc:
            logger.warning("tryon_status_check_failed", extra={"job_id": job.id, "error": str(exc)})
            return job

        if status.status == "completed" and status.result_url:
            signal = CompletionSignal(
                job_id=job.id,
                result_url=status.result_url,
                thumbnail_url=status.thumbnail_url,
                processing_time_ms=status.processing_time_ms,
                source="poll",
            )
            return self.run_completion(signal) or job
        if status.status == "failed":
            return self.fail(job.id, status.error or "Processing failed") or job
        return job

    # webhook

    def handle_webhook(self, provider: str, event: WebhookEvent) -> TryOnJob | None:
        job = self._jobs.find_job_by_external_id(event.external_job_id)
        if job is None:
            logger.warning("webhook_unknown_job", extra={"provider": provider, "external_job_id": event.external_job_id})
            return None
        if provider_key(provider) != provider_key(job.driver_name):
            logger.warning(
                "webhook_provider_mismatch",
                extra={"provider": provider, "driver": job.driver_name, "job_id": job.id},
            )
            return job

        try:
            return self._apply_webhook(job, event)
        except Exception:  # noqa: BLE001
            logger.exception("webhook_processing_failed", extra={"job_id": job.id, "outcome": event.outcome})
            if event.outcome != "completed":
                raise
            # A success we could not act on must not leave the job waiting forever.
            return self.fail(job.id, POST_PROCESSING_REASON)

    def _apply_webhook(self, job: TryOnJob, event: WebhookEvent) -> TryOnJob | None:
        job = self._jobs.update_job(job.id, webhook_received=True) or job
        if job.is_terminal:
            logger.info("webhook_ignored_terminal", extra={"job_id": job.id, "outcome": event.outcome})
            return job

        if event.outcome == "completed":
            self._schedule(
                CompletionSignal(
                    job_id=job.id,
                    result_url=event.result_url,
                    thumbnail_url=event.thumbnail_url,
                    processing_time_ms=seconds_to_ms(event.processing_seconds),
                    source="webhook",
                )
            )
            return self._jobs.get_job(job.id)
        if event.outcome == "failed":
            return self.fail(job.id, event.error_text or "Processing failed")
        return job

    # timeouts

    def fail_timed_out_jobs(self) -> int:
        cutoff = self._clock() - self._processing_timeout
        failed = 0
        for job in self._jobs.list_stale_jobs(cutoff):
            if self._jobs.mark_failed(job.id, TIMEOUT_REASON) is not None:
                failed += 1
        if failed:
            logger.info("tryon_jobs_timed_out", extra={"count": failed})
        return failed

    def _is_timed_out(self, job: TryOnJob) -> bool:
        started = as_utc(job.dispatched_at or job.created_at)
        return started is not None and self._clock() - started > self._processing_timeout

    def _is_stale(self, job: TryOnJob) -> bool:
        expires_at = as_utc(job.expires_at)
        return self._is_timed_out(job) or (expires_at is not None and expires_at < self._clock())
