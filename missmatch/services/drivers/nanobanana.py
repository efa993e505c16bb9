import httpx

from missmatch.core.config import Settings
from missmatch.services.drivers.base import HttpTryOnDriver
from missmatch.services.drivers.types import (
    DriverStatus,
    TryOnRequest,
    TryOnResponse,
    map_status,
    provider_text,
    seconds_to_ms,
)
from missmatch.services.errors import DriverTransientError

NANOBANANA_STATUS: dict[str, DriverStatus] = {
    "starting": "queued",
    "queued": "queued",
    "running": "processing",
    "processing": "processing",
    "succeeded": "completed",
    "completed": "completed",
    "failed": "failed",
    "canceled": "failed",
}


def first_output(output: object) -> str | None:
    if isinstance(output, list):
        output = output[0] if output else None
    return provider_text(output)


class NanoBananaTryOnDriver(HttpTryOnDriver):
    """Prediction-style API: ``POST /predictions`` with a webhook, ``GET /predictions/{id}``."""

    name = "nanobanana"
    api_key_setting = "NANOBANANA_API_KEY"
    supported_formats = ("image/jpeg", "image/png")
    max_image_size = 8 * 1024 * 1024
    estimated_processing_time = 30

    def __init__(self, api_key: str, base_url: str, webhook_url: str, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        super().__init__(api_key, base_url, timeout=timeout, client=client)
        self.webhook_url = webhook_url

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.Client | None = None) -> "NanoBananaTryOnDriver":
        return cls(
            settings.nanobanana_api_key,
            settings.nanobanana_api_url,
            webhook_url=settings.webhook_url("nanobanana"),
            timeout=settings.provider_http_timeout_seconds,
            client=client,
        )

    def generate(self, request: TryOnRequest) -> TryOnResponse:
        validation = self.validate_request(request)
        if not validation.is_valid:
            return TryOnResponse(job_id="", status="failed", error=f"Validation failed: {', '.join(validation.errors)}")

        payload = {
            "input": {
                "person_image_url": request.person_image_url,
                "garment_image_url": request.garment_image_url,
                "preserve_background": request.options.preserve_background,
                "fit_adjustment": request.options.fit_adjustment,
            },
            "webhook": self.webhook_url,
            "webhook_events_filter": ["output", "completed"],
        }
        try:
            data = self._request("POST", "/predictions", payload)
        except DriverTransientError:
            return self.request_failed()

        return TryOnResponse(
            job_id=str(data.get("id") or ""),
            status=map_status(data.get("status"), NANOBANANA_STATUS),
            result_url=first_output(data.get("output")),
            metadata={"driver": self.name},
        )

    def get_status(self, job_id: str) -> TryOnResponse:
        data = self._request("GET", f"/predictions/{job_id}")
        metrics = data.get("metrics")
        if not isinstance(metrics, dict):
            metrics = {}
        return TryOnResponse(
            job_id=str(data.get("id") or job_id),
            status=map_status(data.get("status"), NANOBANANA_STATUS),
            result_url=first_output(data.get("output")),
            processing_time_ms=seconds_to_ms(metrics.get("predict_time")),
            error=provider_text(data.get("error")),
        )

    def cancel(self, job_id: str) -> bool:
        try:
            self._request("POST", f"/predictions/{job_id}/cancel")
        except DriverTransientError:
            return False
        return True
