import httpx

from missmatch.core.config import Settings
from missmatch.services.drivers.base import HttpTryOnDriver
from missmatch.services.drivers.prompts import build_edit_prompt
from missmatch.services.drivers.types import DriverStatus, TryOnRequest, TryOnResponse, map_status, provider_text
from missmatch.services.errors import DriverTransientError

KONTEXT_STATUS: dict[str, DriverStatus] = {
    "pending": "processing",
    "ready": "completed",
    "error": "failed",
    "failed": "failed",
    "content moderated": "failed",
    "request moderated": "failed",
}

OUTPUT_WIDTH = 1024
OUTPUT_HEIGHT = 1536


def _sample_url(result: object) -> str | None:
    if isinstance(result, dict):
        return provider_text(result.get("sample")) or provider_text(result.get("output"))
    return provider_text(result)


class KontextTryOnDriver(HttpTryOnDriver):
    """Prompt-driven image edit backend.

    The edit instruction comes from the garment's catalog category and name.
    """

    name = "kontext"
    api_key_setting = "KONTEXT_API_KEY"
    estimated_processing_time = 60

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.Client | None = None) -> "KontextTryOnDriver":
        return cls(
            settings.kontext_api_key,
            settings.kontext_api_url,
            timeout=settings.provider_http_timeout_seconds,
            client=client,
        )

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-api-key": self.api_key}

    def generate(self, request: TryOnRequest) -> TryOnResponse:
        validation = self.validate_request(request)
        if not validation.is_valid:
            return TryOnResponse(job_id="", status="failed", error=f"Validation failed: {', '.join(validation.errors)}")

        prompt = build_edit_prompt(request.garment_meta)
        payload = {
            "prompt": prompt,
            "input_image": request.person_image_url,
            "width": OUTPUT_WIDTH,
            "height": OUTPUT_HEIGHT,
            "output_format": "jpeg",
        }
        try:
            data = self._request("POST", "/v1/flux-kontext-pro", payload)
        except DriverTransientError:
            return self.request_failed()

        task_id = str(data.get("id") or "")
        if not task_id:
            return TryOnResponse(job_id="", status="failed", error="Provider did not return a task id")
        return TryOnResponse(job_id=task_id, status="processing", metadata={"driver": self.name, "prompt": prompt})

    def get_status(self, job_id: str) -> TryOnResponse:
        data = self._request("GET", f"/v1/get_result?id={job_id}")
        status = map_status(data.get("status"), KONTEXT_STATUS)
        result_url = _sample_url(data.get("result")) if status == "completed" else None
        error = None
        if status == "failed":
            error = provider_text(data.get("error")) or provider_text(data.get("status")) or "Unknown error"
        return TryOnResponse(job_id=job_id, status=status, result_url=result_url, error=error)
