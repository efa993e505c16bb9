"""Translate provider webhook payloads into a single event shape."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from missmatch.services.drivers.flux import FLUX_STATUS
from missmatch.services.drivers.nanobanana import NANOBANANA_STATUS, first_output
from missmatch.services.drivers.types import map_status, provider_text
from missmatch.services.errors import NotFoundError, ValidationError

Outcome = Literal["completed", "failed", "intermediate"]


@dataclass(slots=True)
class WebhookEvent:
    external_job_id: str
    outcome: Outcome
    result_url: str | None = None
    thumbnail_url: str | None = None
    processing_seconds: float | None = None
    error_text: str | None = None


def _outcome(status: str, has_result: bool) -> Outcome:
    if status == "completed" and has_result:
        return "completed"
    if status == "failed":
        return "failed"
    return "intermediate"


def normalize_flux(payload: dict[str, Any]) -> WebhookEvent:
    job_id = payload.get("job_id")
    if not job_id:
        raise ValidationError("job_id", "Missing job_id")
    result_url = provider_text(payload.get("result_url"))
    status = map_status(payload.get("status"), FLUX_STATUS)
    return WebhookEvent(
        external_job_id=str(job_id),
        outcome=_outcome(status, bool(result_url)),
        result_url=result_url,
        thumbnail_url=provider_text(payload.get("thumbnail_url")),
        processing_seconds=payload.get("processing_time"),
        error_text=provider_text(payload.get("error")),
    )


def normalize_nanobanana(payload: dict[str, Any]) -> WebhookEvent:
    prediction_id = payload.get("id")
    if not prediction_id:
        raise ValidationError("id", "Missing prediction id")
    result_url = first_output(payload.get("output"))
    status = map_status(payload.get("status"), NANOBANANA_STATUS)
    metrics = payload.get("metrics")
    if not isinstance(metrics, dict):
        metrics = {}
    error_text = provider_text(payload.get("error"))
    if status == "failed" and not error_text:
        error_text = "Processing failed or canceled"
    return WebhookEvent(
        external_job_id=str(prediction_id),
        outcome=_outcome(status, bool(result_url)),
        result_url=result_url,
        processing_seconds=metrics.get("predict_time"),
        error_text=error_text,
    )


Normalizer = Callable[[dict[str, Any]], WebhookEvent]

NORMALIZERS: dict[str, Normalizer] = {
    "flux": normalize_flux,
    "nanobanana": normalize_nanobanana,
}


def provider_key(provider: str) -> str:
    return provider.strip().lower().replace("-", "").replace("_", "")


def register_normalizer(provider: str, normalizer: Normalizer) -> None:
    NORMALIZERS[provider_key(provider)] = normalizer


def normalize(provider: str, payload: Any) -> WebhookEvent:
    normalizer = NORMALIZERS.get(provider_key(provider))
    if normalizer is None:
        raise NotFoundError(f"No webhook handler for provider '{provider}'")
    if not isinstance(payload, dict):
        raise ValidationError("body", "Webhook body must be a JSON object")
    return normalizer(payload)
