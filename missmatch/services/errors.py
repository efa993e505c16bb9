"""
Domain exceptions for the try-on workflow.
"""

from __future__ import annotations

from typing import Any


class TryOnError(Exception):
    """Base exception for try-on workflow failures."""


class ValidationError(TryOnError):
    """Raised when request input is malformed or references an ineligible upload."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(TryOnError):
    """Raised when a referenced upload, garment or job does not exist or is inactive."""


class ModerationRejected(ValidationError):
    """Raised when a job is requested against an upload rejected by moderation."""

    def __init__(self, message: str = "Image contains inappropriate content") -> None:
        super().__init__("upload_id", message)


class DriverConfigError(TryOnError):
    """Raised when a driver is unknown or lacks credentials. Not retryable."""


class DriverTransientError(TryOnError):
    """Raised on network or provider-side failures talking to a driver backend."""


class PostProcessingError(TryOnError):
    """Raised when ingesting a successful provider result fails locally."""


class ArtifactStoreError(TryOnError):
    """Raised when the artifact store cannot read or write an object."""


class DuplicateInFlight(TryOnError):
    """Raised by the job store when the upload/garment pair already has an in-flight job."""

    def __init__(self, existing: Any) -> None:
        super().__init__(f"job {existing.id} already in flight")
        self.existing = existing
