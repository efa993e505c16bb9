"""Driver contract shared by every image-generation backend."""

import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

import httpx

from missmatch.services.drivers.types import TryOnRequest, TryOnResponse, ValidationResult
from missmatch.services.errors import DriverConfigError, DriverTransientError

logger = logging.getLogger(__name__)

# Shown to users in place of provider response bodies, which stay in the logs.
PROVIDER_REQUEST_FAILED = "Try-on provider request failed"


def _is_http_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class TryOnDriver(ABC):
    """Uniform interface over a third-party try-on backend.

    ``generate`` reports provider failures through the returned status and only
    raises for configuration problems. ``get_status`` raises
    ``DriverTransientError`` when the provider cannot be reached so callers can
    retry on the next poll.

    Drivers are context managers; leaving the block releases any connection
    pool the driver opened for itself.
    """

    name: str = ""
    version: str = "1.0"
    supported_formats: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp")
    max_image_size: int = 10 * 1024 * 1024
    estimated_processing_time: int = 30

    @abstractmethod
    def generate(self, request: TryOnRequest) -> TryOnResponse: ...

    @abstractmethod
    def get_status(self, job_id: str) -> TryOnResponse: ...

    def cancel(self, job_id: str) -> bool:
        return False

    def close(self) -> None:
        pass

    def __enter__(self) -> "TryOnDriver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def validate_request(self, request: TryOnRequest) -> ValidationResult:
        errors: list[str] = []
        if not request.person_image_url:
            errors.append("Person image URL is required")
        elif not _is_http_url(request.person_image_url):
            errors.append("Invalid person image URL")
        if not request.garment_image_url:
            errors.append("Garment image URL is required")
        elif not _is_http_url(request.garment_image_url):
            errors.append("Invalid garment image URL")
        if not request.session_id:
            errors.append("Session ID is required")
        fit = request.options.fit_adjustment
        if fit < -1 or fit > 1:
            errors.append("Fit adjustment must be between -1 and 1")
        return ValidationResult(is_valid=not errors, errors=errors)


class HttpTryOnDriver(TryOnDriver):
    """Base for drivers that talk JSON over HTTP with a bearer API key."""

    api_key_setting = ""

    def __init__(self, api_key: str, base_url: str, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        if not api_key:
            raise DriverConfigError(f"{self.api_key_setting or self.name} is not configured")
        if not base_url:
            raise DriverConfigError(f"API URL for driver '{self.name}' is not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def request_failed(self) -> TryOnResponse:
        return TryOnResponse(job_id="", status="failed", error=PROVIDER_REQUEST_FAILED)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _request(self, method: str, endpoint: str, payload: dict | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._client.request(method, url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("tryon_provider_unreachable", extra={"driver": self.name, "endpoint": endpoint, "error": str(exc)})
            raise DriverTransientError(f"{self.name} request failed") from exc
        if response.status_code >= 400:
            logger.warning(
                "tryon_provider_error_response",
                extra={
                    "driver": self.name,
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "body": response.text[:200],
                },
            )
            raise DriverTransientError(f"{self.name} returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise DriverTransientError(f"{self.name} returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise DriverTransientError(f"{self.name} returned an unexpected response shape")
        return data
