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

FLUX_STATUS: dict[str, DriverStatus] = {
    "pending": "queued",
    "queued": "queued",
    "running": "processing",
    "processing": "processing",
    "completed": "completed",
    "success": "completed",
    "failed": "failed",
    "error": "failed",
}


class FluxTryOnDriver(HttpTryOnDriver):
    """Flux job API: submit, then receive a callback or poll ``/tryon/status``."""

    name = "flux"
    api_key_setting = "FLUX_API_KEY"
    estimated_processing_time = 45

    def __init__(self, api_key: str, base_url: str, callback_url: str, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        super().__init__(api_key, base_url, timeout=timeout, client=client)
        self.callback_url = callback_url

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.Client | None = None) -> "FluxTryOnDriver":
        return cls(
            settings.flux_api_key,
            settings.flux_api_url,
            callback_url=settings.webhook_url("flux"),
            timeout=settings.provider_http_timeout_seconds,
            client=client,
        )

    def generate(self, request: TryOnRequest) -> TryOnResponse:
        validation = self.validate_request(request)
        if not validation.is_valid:
            return TryOnResponse(job_id="", status="failed", error=f"Validation failed: {', '.join(validation.errors)}")

        payload = {
            "person_image": request.person_image_url,
            "garment_image": request.garment_image_url,
            "preserve_background": request.options.preserve_background,
            "quality": request.options.quality,
            "style": request.options.style,
            "callback_url": self.callback_url,
            "metadata": {"session_id": request.session_id, "user_id": request.user_id},
        }
        try:
            data = self._request("POST", "/tryon/generate", payload)
        except DriverTransientError:
            return self.request_failed()

        return TryOnResponse(
            job_id=str(data.get("job_id") or ""),
            status=map_status(data.get("status"), FLUX_STATUS),
            result_url=provider_text(data.get("result_url")),
            thumbnail_url=provider_text(data.get("thumbnail_url")),
            processing_time_ms=seconds_to_ms(data.get("processing_time")),
            metadata={"driver": self.name, "estimated_time": data.get("estimated_time")},
        )

    def get_status(self, job_id: str) -> TryOnResponse:
        data = self._request("GET", f"/tryon/status/{job_id}")
        return TryOnResponse(
            job_id=str(data.get("job_id") or job_id),
            status=map_status(data.get("status"), FLUX_STATUS),
            result_url=provider_text(data.get("result_url")),
            thumbnail_url=provider_text(data.get("thumbnail_url")),
            processing_time_ms=seconds_to_ms(data.get("processing_time")),
            error=provider_text(data.get("error")),
        )

    def cancel(self, job_id: str) -> bool:
        try:
            self._request("POST", f"/tryon/cancel/{job_id}")
        except DriverTransientError:
            return False
        return True
