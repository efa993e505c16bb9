from datetime import timedelta

import httpx

from missmatch.models.upload import UploadStatus
from missmatch.services.moderation import ModerationService, NsfwClassifier


def _classifier(score=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer nsfw-key"
        return httpx.Response(status_code, json={"score": score})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return NsfwClassifier("nsfw-key", "https://nsfw.example/v1/analyze", threshold=0.7, client=client)


def _service(container, artifacts, classifier):
    return ModerationService(container.catalog, container.jobs, artifacts, classifier)


def test_safe_image_is_approved(container, artifacts, make_upload):
    upload = make_upload(status=UploadStatus.PROCESSING)

    settled = _service(container, artifacts, _classifier(score=0.12)).moderate_upload(upload.id)

    assert settled.status == UploadStatus.APPROVED
    assert settled.nsfw_checked is True
    assert settled.nsfw_score == 0.12
    assert artifacts.deleted == []


def test_rejection_purges_images_and_jobs(container, artifacts, make_upload, make_garment):
    upload = make_upload(status=UploadStatus.PROCESSING)
    # A job that slipped in before moderation settled.
    job = container.jobs.create_job(
        upload_id=upload.id, garment_id=make_garment().id, driver_name="mock", retention=timedelta(days=30)
    )

    settled = _service(container, artifacts, _classifier(score=0.93)).moderate_upload(upload.id)

    assert settled.status == UploadStatus.REJECTED
    assert container.catalog.get_upload(upload.id).status == UploadStatus.REJECTED
    assert container.jobs.get_job(job.id) is None
    assert set(artifacts.deleted) == {upload.blob_url, upload.thumbnail_url}


def test_classifier_outage_fails_open(container, artifacts, make_upload):
    upload = make_upload(status=UploadStatus.PROCESSING)

    settled = _service(container, artifacts, _classifier(status_code=502)).moderate_upload(upload.id)

    assert settled.status == UploadStatus.APPROVED
    assert settled.nsfw_score == 0.0


def test_unconfigured_classifier_skips_check():
    result = NsfwClassifier("", "https://nsfw.example").check("https://cdn.example/me.jpg")
    assert (result.is_nsfw, result.score) == (False, 0.0)


def test_settled_upload_is_not_rescored(container, artifacts, make_upload):
    upload = make_upload(status=UploadStatus.APPROVED)

    settled = _service(container, artifacts, _classifier(score=0.99)).moderate_upload(upload.id)

    assert settled.status == UploadStatus.APPROVED
    assert settled.nsfw_checked is False
    assert artifacts.deleted == []


def test_missing_upload_is_ignored(container, artifacts):
    assert _service(container, artifacts, _classifier(score=0.99)).moderate_upload("missing") is None
