import math
from dataclasses import dataclass, field
from typing import Literal

DriverStatus = Literal["queued", "processing", "completed", "failed"]
Quality = Literal["standard", "high", "ultra"]
Style = Literal["realistic", "artistic"]
PromptCategory = Literal["top", "bottom", "dress", "set", "other"]


@dataclass(slots=True)
class TryOnOptions:
    preserve_background: bool = True
    quality: Quality = "high"
    style: Style = "realistic"
    fit_adjustment: float = 0.0

    def as_dict(self) -> dict:
        return {
            "preserve_background": self.preserve_background,
            "quality": self.quality,
            "style": self.style,
            "fit_adjustment": self.fit_adjustment,
        }


@dataclass(slots=True)
class GarmentMeta:
    sku: str
    name: str | None = None
    category: PromptCategory = "other"


@dataclass(slots=True)
class TryOnRequest:
    person_image_url: str
    garment_image_url: str
    session_id: str
    user_id: str | None = None
    options: TryOnOptions = field(default_factory=TryOnOptions)
    garment_meta: GarmentMeta | None = None


@dataclass(slots=True)
class TryOnResponse:
    job_id: str
    status: DriverStatus
    result_url: str | None = None
    thumbnail_url: str | None = None
    processing_time_ms: int | None = None
    error: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def map_status(raw: object, table: dict[str, DriverStatus]) -> DriverStatus:
    """Translate a provider state into one of the four job states.

    Unrecognised states map to ``queued`` so a recoverable job is never failed early.
    """
    if not isinstance(raw, str) or not raw:
        return "queued"
    return table.get(raw.strip().lower(), "queued")


def seconds_to_ms(seconds: float | int | None) -> int | None:
    """Convert provider seconds to whole milliseconds, rounding half up.

    A positive duration never collapses to 0 ms.
    """
    if seconds is None:
        return None
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    millis = int(math.floor(value * 1000 + 0.5))
    if value > 0 and millis == 0:
        return 1
    return millis


def provider_text(value: object) -> str | None:
    """Keep a provider-supplied field only if it is a non-empty string."""
    return value if isinstance(value, str) and value else None
