import logging
import time
import uuid

from missmatch.core.config import Settings
from missmatch.services.drivers.base import TryOnDriver
from missmatch.services.drivers.types import TryOnRequest, TryOnResponse

logger = logging.getLogger(__name__)


class MockTryOnDriver(TryOnDriver):
    """Completes immediately and returns the person image as the result."""

    name = "mock"
    estimated_processing_time = 2

    def __init__(self, delay_seconds: float = 0.0) -> None:
        self.delay_seconds = delay_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "MockTryOnDriver":
        return cls(delay_seconds=settings.mock_delay_seconds)

    def generate(self, request: TryOnRequest) -> TryOnResponse:
        logger.info("mock_driver_generate", extra={"session_id": request.session_id})
        started = time.monotonic()
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)
        return TryOnResponse(
            job_id=f"mock-{uuid.uuid4()}",
            status="completed",
            result_url=request.person_image_url,
            processing_time_ms=int(round((time.monotonic() - started) * 1000)),
            metadata={"driver": self.name},
        )

    def get_status(self, job_id: str) -> TryOnResponse:
        # The result is delivered by generate(); a poll never has anything newer.
        return TryOnResponse(job_id=job_id, status="processing")
