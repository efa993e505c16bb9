import json

import pytest

from conftest import PROVIDER_RESULT_URL, PROVIDER_THUMB_URL
from missmatch.core.security import sign_payload, verify_cron_authorization, verify_webhook_signature
from missmatch.models.job import JobStatus
from missmatch.services.errors import NotFoundError, ValidationError
from missmatch.services.webhooks import NORMALIZERS, WebhookEvent, normalize, register_normalizer


def _job_for(container, scripted, provider, make_upload, make_garment):
    container.registry.register_driver(provider, lambda: scripted)
    submission = container.orchestrator.create_job(
        upload_id=make_upload().id, garment_id=make_garment().id, driver_name=provider
    )
    assert submission.job.status == JobStatus.PROCESSING
    return submission.job


def test_flux_payload_normalization():
    event = normalize(
        "flux",
        {
            "job_id": "f-1",
            "status": "completed",
            "result_url": "https://r/1.png",
            "thumbnail_url": "https://r/1t.png",
            "processing_time": 4.2,
        },
    )
    assert (event.external_job_id, event.outcome) == ("f-1", "completed")
    assert (event.result_url, event.thumbnail_url, event.processing_seconds) == ("https://r/1.png", "https://r/1t.png", 4.2)

    assert normalize("flux", {"job_id": "f-1", "status": "completed"}).outcome == "intermediate"
    assert normalize("flux", {"job_id": "f-1", "status": "running"}).outcome == "intermediate"
    failed = normalize("flux", {"job_id": "f-1", "status": "error", "error": "gpu oom"})
    assert (failed.outcome, failed.error_text) == ("failed", "gpu oom")


def test_nanobanana_payload_normalization():
    event = normalize("nano-banana", {"id": "p-1", "status": "succeeded", "output": ["https://r/a.png", "https://r/b.png"]})
    assert (event.external_job_id, event.outcome, event.result_url) == ("p-1", "completed", "https://r/a.png")

    canceled = normalize("Nano_Banana", {"id": "p-1", "status": "canceled"})
    assert (canceled.outcome, canceled.error_text) == ("failed", "Processing failed or canceled")


def test_normalize_rejects_bad_payloads():
    with pytest.raises(ValidationError) as excinfo:
        normalize("flux", {"status": "completed"})
    assert excinfo.value.field == "job_id"
    with pytest.raises(ValidationError):
        normalize("nanobanana", {"status": "succeeded"})
    with pytest.raises(ValidationError):
        normalize("flux", ["not", "an", "object"])
    with pytest.raises(NotFoundError):
        normalize("somebody-else", {"id": "x"})


def test_registered_normalizer_handles_new_provider(monkeypatch):
    monkeypatch.setattr("missmatch.services.webhooks.NORMALIZERS", dict(NORMALIZERS))
    register_normalizer(
        "Acme-Fit", lambda payload: WebhookEvent(external_job_id=payload["ref"], outcome="intermediate")
    )

    assert normalize("acme_fit", {"ref": "a-1"}).external_job_id == "a-1"


def test_signature_helpers():
    body = b'{"job_id": "f-1"}'
    signature = sign_payload(body, "s3cret")

    assert signature.startswith("sha256=")
    assert verify_webhook_signature(body, signature, "s3cret")
    assert not verify_webhook_signature(body + b" ", signature, "s3cret")
    assert not verify_webhook_signature(body, None, "s3cret")
    assert verify_webhook_signature(body, None, "")
    assert verify_cron_authorization("Bearer abc", "abc")
    assert not verify_cron_authorization("Bearer abc", "")
    assert not verify_cron_authorization(None, "abc")


def test_flux_webhook_failure_reaches_job(client, container, scripted, make_upload, make_garment):
    job = _job_for(container, scripted, "flux", make_upload, make_garment)

    response = client.post(
        "/api/webhooks/tryon/flux", json={"job_id": "ext-1", "status": "failed", "error": "provider timeout"}
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    failed = container.jobs.get_job(job.id)
    assert failed.status == JobStatus.FAILED
    assert failed.error_detail == "provider timeout"


def test_flux_webhook_signature_is_enforced(client, container, monkeypatch, scripted, make_upload, make_garment):
    job = _job_for(container, scripted, "flux", make_upload, make_garment)
    monkeypatch.setattr(container.settings, "webhook_secret", "s3cret")
    body = json.dumps(
        {"job_id": "ext-1", "status": "completed", "result_url": PROVIDER_RESULT_URL, "thumbnail_url": PROVIDER_THUMB_URL}
    ).encode()

    unsigned = client.post("/api/webhooks/tryon/flux", content=body)
    forged = client.post("/api/webhooks/tryon/flux", content=body, headers={"x-flux-signature": "sha256=00"})
    assert (unsigned.status_code, forged.status_code) == (401, 401)
    assert container.jobs.get_job(job.id).status == JobStatus.PROCESSING

    signed = client.post(
        "/api/webhooks/tryon/flux",
        content=body,
        headers={"x-flux-signature": sign_payload(body, "s3cret"), "content-type": "application/json"},
    )
    assert signed.status_code == 200
    completed = container.jobs.get_job(job.id)
    assert completed.status == JobStatus.COMPLETED
    assert completed.webhook_received is True


def test_nanobanana_webhook_completes_job(client, container, artifacts, scripted, make_upload, make_garment):
    job = _job_for(container, scripted, "nanobanana", make_upload, make_garment)

    response = client.post(
        "/api/webhooks/tryon/nano-banana",
        json={"id": "ext-1", "status": "succeeded", "output": [PROVIDER_RESULT_URL], "metrics": {"predict_time": 7.25}},
    )

    assert response.status_code == 200
    completed = container.jobs.get_job(job.id)
    assert completed.status == JobStatus.COMPLETED
    assert completed.processing_time_ms == 7250
    assert completed.result_thumbnail_url in artifacts.objects


def test_webhook_for_unknown_job_still_acknowledged(client):
    response = client.post("/api/webhooks/tryon/flux", json={"job_id": "nobody", "status": "completed"})
    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_rejects_malformed_requests(client):
    assert client.post("/api/webhooks/tryon/flux", json={"status": "completed"}).status_code == 400
    assert client.post("/api/webhooks/tryon/flux", content=b"{not json").status_code == 400
    assert client.post("/api/webhooks/tryon/unheard-of", json={"id": "x"}).status_code == 404


def test_webhook_internal_errors_are_swallowed(client, container, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(container.orchestrator, "handle_webhook", explode)

    response = client.post("/api/webhooks/tryon/flux", json={"job_id": "ext-1", "status": "completed"})
    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.parametrize(
    ("provider", "payload"),
    [
        ("flux", {"job_id": "ext-1", "status": 7}),
        ("flux", {"job_id": "ext-1", "status": "completed", "result_url": ["https://r/1.png"], "error": {"code": 1}}),
        ("nanobanana", {"id": "ext-1", "status": "succeeded", "output": [PROVIDER_RESULT_URL], "metrics": "fast"}),
        ("nanobanana", {"id": "ext-1", "status": None, "output": {"url": "https://r/a.png"}}),
    ],
)
def test_odd_payload_shapes_are_still_acknowledged(client, container, scripted, make_upload, make_garment, provider, payload):
    job = _job_for(container, scripted, provider, make_upload, make_garment)

    response = client.post(f"/api/webhooks/tryon/{provider}", json=payload)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert container.jobs.get_job(job.id).status in (JobStatus.PROCESSING, JobStatus.COMPLETED)


def test_infinite_duration_webhook_completes_job(client, container, scripted, make_upload, make_garment):
    job = _job_for(container, scripted, "flux", make_upload, make_garment)
    body = b'{"job_id": "ext-1", "status": "completed", "result_url": "%s", "processing_time": 1e400}' % (
        PROVIDER_RESULT_URL.encode()
    )

    response = client.post("/api/webhooks/tryon/flux", content=body, headers={"content-type": "application/json"})

    assert response.status_code == 200
    completed = container.jobs.get_job(job.id)
    assert completed.status == JobStatus.COMPLETED
    assert completed.processing_time_ms is None


def test_non_string_fields_are_dropped_by_normalizers():
    event = normalize("flux", {"job_id": "f-1", "status": 3, "result_url": 42, "error": ["x"]})
    assert (event.outcome, event.result_url, event.error_text) == ("intermediate", None, None)

    nano = normalize("nanobanana", {"id": "p-1", "status": "succeeded", "output": [7], "metrics": [1, 2]})
    assert (nano.outcome, nano.result_url, nano.processing_seconds) == ("intermediate", None, None)
