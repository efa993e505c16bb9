from datetime import timedelta

import pytest

from conftest import PROVIDER_RESULT_URL
from missmatch.models.job import JobStatus
from missmatch.models.upload import UploadStatus
from missmatch.services.orchestrator import CompletionSignal
from missmatch.workers import tasks
from missmatch.workers.celery_app import celery_app


@pytest.fixture()
def worker_container(container, monkeypatch):
    monkeypatch.setattr(tasks, "get_container", lambda: container)
    return container


def test_finalize_job_completes_dispatched_job(worker_container, artifacts, make_upload, make_garment):
    submission = worker_container.orchestrator.create_job(
        upload_id=make_upload().id, garment_id=make_garment().id, driver_name="scripted"
    )
    payload = CompletionSignal(submission.job.id, PROVIDER_RESULT_URL, processing_time_ms=900).to_payload()

    assert tasks.finalize_job(payload) == JobStatus.COMPLETED
    job = worker_container.jobs.get_job(submission.job.id)
    assert job.result_url in artifacts.objects
    assert job.processing_time_ms == 900


def test_finalize_job_for_missing_job_returns_none(worker_container):
    assert tasks.finalize_job(CompletionSignal("missing", PROVIDER_RESULT_URL).to_payload()) is None


def test_moderate_upload_task_settles_upload(worker_container, make_upload):
    upload = make_upload(status=UploadStatus.PROCESSING)

    assert tasks.moderate_upload(upload.id) == UploadStatus.APPROVED


def test_moderate_upload_task_logs_failures(worker_container, monkeypatch, caplog):
    def explode(upload_id):
        raise RuntimeError("classifier crashed")

    monkeypatch.setattr(worker_container.moderation, "moderate_upload", explode)

    assert tasks.moderate_upload("u-1") is None
    assert "moderation_task_failed" in caplog.text


def test_retention_sweep_task_reports_counts(worker_container, make_upload):
    make_upload(expires_in=timedelta(days=-1))

    result = tasks.retention_sweep()

    assert result["deleted_uploads"] == 1
    assert result["errors"] == []


def test_retention_sweep_is_scheduled_nightly():
    entry = celery_app.conf.beat_schedule["retention-sweep-daily"]
    assert entry["task"] == "missmatch.workers.tasks.retention_sweep"
    assert entry["schedule"].hour == {2}
    assert entry["schedule"].minute == {0}
