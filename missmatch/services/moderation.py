import logging
from dataclasses import dataclass

import httpx

from missmatch.core.config import Settings
from missmatch.models.upload import Upload
from missmatch.services.catalog import CatalogStore
from missmatch.services.job_store import JobStore
from missmatch.services.storage import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NsfwResult:
    is_nsfw: bool
    score: float


class NsfwClassifier:
    """Remote NSFW scoring. Fails open when unconfigured or unreachable."""

    def __init__(self, api_key: str, api_url: str, threshold: float = 0.7, client: httpx.Client | None = None) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.threshold = threshold
        self._client = client or httpx.Client(timeout=30.0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "NsfwClassifier":
        return cls(settings.nsfw_api_key, settings.nsfw_api_url, settings.nsfw_threshold)

    def check(self, image_url: str) -> NsfwResult:
        if not self.api_key:
            logger.warning("nsfw_check_skipped_unconfigured")
            return NsfwResult(is_nsfw=False, score=0.0)
        try:
            response = self._client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"image_url": image_url, "categories": ["explicit", "suggestive", "safe"]},
            )
            response.raise_for_status()
            score = float(response.json().get("score", 0.0))
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            logger.error("nsfw_check_failed", extra={"error": str(exc)})
            return NsfwResult(is_nsfw=False, score=0.0)
        return NsfwResult(is_nsfw=score > self.threshold, score=score)


class ModerationService:
    def __init__(self, catalog: CatalogStore, jobs: JobStore, artifacts: ArtifactStore, classifier: NsfwClassifier) -> None:
        self._catalog = catalog
        self._jobs = jobs
        self._artifacts = artifacts
        self._classifier = classifier

    def moderate_upload(self, upload_id: str) -> Upload | None:
        """Score an upload and settle it as APPROVED or REJECTED.

        A rejected upload keeps its row (so later job requests see the
        rejection) but loses its images and every job created against it.
        """
        upload = self._catalog.get_upload(upload_id)
        if upload is None:
            logger.warning("moderation_upload_missing", extra={"upload_id": upload_id})
            return None
        result = self._classifier.check(upload.blob_url)
        settled = self._catalog.record_moderation(upload_id, score=result.score, approved=not result.is_nsfw)
        if settled is None:
            return self._catalog.get_upload(upload_id)
        if result.is_nsfw:
            logger.info("upload_rejected_by_moderation", extra={"upload_id": upload_id, "score": result.score})
            self._purge(settled)
        return settled

    def _purge(self, upload: Upload) -> None:
        urls = [upload.blob_url, upload.thumbnail_url]
        for job in self._jobs.list_jobs_for_upload(upload.id):
            urls.extend([job.result_url, job.result_thumbnail_url])
            self._jobs.delete_job(job.id)
        report = self._artifacts.delete_many([url for url in urls if url])
        if report.failed:
            logger.warning("moderation_purge_partial", extra={"upload_id": upload.id, "failed": len(report.failed)})
