"""Name-to-constructor registry for try-on drivers."""

import logging
from collections.abc import Callable
from threading import Lock

from missmatch.core.config import Settings
from missmatch.services.drivers.base import TryOnDriver
from missmatch.services.drivers.flux import FluxTryOnDriver
from missmatch.services.drivers.kontext import KontextTryOnDriver
from missmatch.services.drivers.mock import MockTryOnDriver
from missmatch.services.drivers.nanobanana import NanoBananaTryOnDriver
from missmatch.services.errors import DriverConfigError

logger = logging.getLogger(__name__)

FALLBACK_DRIVER = "mock"

DriverFactory = Callable[[], TryOnDriver]


class DriverRegistry:
    """Resolves driver names case-insensitively to fresh driver instances.

    An explicit name that is not registered raises ``DriverConfigError``. Only
    the implicit path (no name, configured default) falls back to the mock
    driver, with a warning.
    """

    def __init__(self, default_name: str = "") -> None:
        self._factories: dict[str, DriverFactory] = {}
        self._estimates: dict[str, int] = {}
        self._default_name = default_name.strip().lower()
        self._lock = Lock()

    def register_driver(self, name: str, factory: DriverFactory, estimated_seconds: int | None = None) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError("Driver name must not be empty")
        if estimated_seconds is None:
            estimated_seconds = getattr(factory, "estimated_processing_time", TryOnDriver.estimated_processing_time)
        with self._lock:
            self._factories[key] = factory
            self._estimates[key] = estimated_seconds

    def get_supported_drivers(self) -> list[str]:
        return sorted(self._factories)

    def resolve(self, name: str | None = None) -> str:
        if name:
            key = name.strip().lower()
            if key not in self._factories:
                raise DriverConfigError(f"Unknown try-on driver: {name}")
            return key

        if self._default_name in self._factories:
            return self._default_name
        logger.warning(
            "tryon_driver_fallback",
            extra={"configured": self._default_name or None, "fallback": FALLBACK_DRIVER},
        )
        if FALLBACK_DRIVER not in self._factories:
            raise DriverConfigError("No default try-on driver is configured")
        return FALLBACK_DRIVER

    def create(self, name: str | None = None) -> TryOnDriver:
        return self._factories[self.resolve(name)]()

    def estimated_processing_time(self, name: str | None = None) -> int:
        """Look up the estimate without building a driver."""
        return self._estimates[self.resolve(name)]


def build_default_registry(settings: Settings) -> DriverRegistry:
    registry = DriverRegistry(default_name=settings.tryon_driver)
    registry.register_driver(
        "flux", lambda: FluxTryOnDriver.from_settings(settings), FluxTryOnDriver.estimated_processing_time
    )
    registry.register_driver(
        "nanobanana", lambda: NanoBananaTryOnDriver.from_settings(settings), NanoBananaTryOnDriver.estimated_processing_time
    )
    registry.register_driver(
        "kontext", lambda: KontextTryOnDriver.from_settings(settings), KontextTryOnDriver.estimated_processing_time
    )
    registry.register_driver(
        "mock", lambda: MockTryOnDriver.from_settings(settings), MockTryOnDriver.estimated_processing_time
    )
    return registry
