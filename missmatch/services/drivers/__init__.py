from missmatch.services.drivers.base import HttpTryOnDriver, TryOnDriver
from missmatch.services.drivers.registry import DriverRegistry, build_default_registry
from missmatch.services.drivers.types import (
    GarmentMeta,
    TryOnOptions,
    TryOnRequest,
    TryOnResponse,
    ValidationResult,
    map_status,
    seconds_to_ms,
)

__all__ = [
    "TryOnDriver",
    "HttpTryOnDriver",
    "DriverRegistry",
    "build_default_registry",
    "GarmentMeta",
    "TryOnOptions",
    "TryOnRequest",
    "TryOnResponse",
    "ValidationResult",
    "map_status",
    "seconds_to_ms",
]
