"""Location acquisition for contributions.

Consumer GPS accuracy varies a lot between readings, so besides a plain
one-shot request the acquirer can fire several requests at once and keep the
reading with the smallest accuracy radius.
"""
import asyncio
import contextlib
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Protocol

from .errors import (
    GeolocationError,
    GeoTimeout,
    PermissionDenied,
    PositionUnavailable,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

# W3C GeolocationPositionError codes as reported by the browser
BROWSER_ERROR_CODES = {
    1: PermissionDenied,
    2: PositionUnavailable,
    3: GeoTimeout,
}


@dataclass(frozen=True)
class Reading:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None  # metres; None for a manual map pick
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp,
        }


def _check_coordinates(latitude, longitude):
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise ValidationFailed("Latitude and longitude must be numbers.")
    if math.isnan(lat) or math.isnan(lon) or not (-90.0 <= lat <= 90.0) or not (-180.0 <= lon <= 180.0):
        raise ValidationFailed("Latitude/longitude out of range.", latitude=latitude, longitude=longitude)
    return lat, lon


def manual_reading(latitude, longitude) -> Reading:
    """Reading for a location the user picked on the map."""
    lat, lon = _check_coordinates(latitude, longitude)
    return Reading(latitude=lat, longitude=lon)


class PositionSource(Protocol):
    async def current_position(self, timeout: float) -> Reading:
        ...


class ReportedPositionSource:
    """Serves position samples the browser already collected.

    Each sample is either a reading ``{"latitude", "longitude", "accuracy"}``
    or a failure ``{"error": <GeolocationPositionError code>}``. Every call to
    ``current_position`` consumes one sample.
    """

    def __init__(self, samples: Iterable):
        self._samples = list(samples)
        self._next = 0

    @classmethod
    def from_payload(cls, payload) -> "ReportedPositionSource":
        if not isinstance(payload, list) or not payload:
            raise ValidationFailed("readings must be a non-empty list.")
        samples = []
        for raw in payload:
            if not isinstance(raw, dict):
                raise ValidationFailed("Each reading must be an object.")
            if "error" in raw:
                try:
                    code = int(raw.get("error"))
                except (TypeError, ValueError):
                    code = None
                error_cls = BROWSER_ERROR_CODES.get(code, PositionUnavailable)
                samples.append(error_cls(raw.get("message")))
                continue
            lat, lon = _check_coordinates(raw.get("latitude"), raw.get("longitude"))
            accuracy = raw.get("accuracy")
            try:
                accuracy = float(accuracy) if accuracy is not None else None
            except (TypeError, ValueError):
                raise ValidationFailed("accuracy must be a number.")
            timestamp = raw.get("timestamp")
            try:
                timestamp = float(timestamp) if timestamp is not None else time.time()
            except (TypeError, ValueError):
                raise ValidationFailed("timestamp must be a number.")
            samples.append(Reading(lat, lon, accuracy, timestamp))
        return cls(samples)

    async def current_position(self, timeout: float) -> Reading:
        if self._next >= len(self._samples):
            raise PositionUnavailable()
        sample = self._samples[self._next]
        self._next += 1
        if isinstance(sample, Exception):
            raise sample
        return sample


class WatchHandle:
    """Running location watch; call ``stop()`` to end it."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    async def stop(self):
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class GeolocationAcquirer:
    def __init__(self, source: PositionSource, samples: int = 3, per_request_timeout: float = 10.0):
        self.source = source
        self.samples = samples
        self.per_request_timeout = per_request_timeout

    async def acquire(self) -> Reading:
        """One position request; raises the typed failure on denial/timeout."""
        try:
            return await asyncio.wait_for(
                self.source.current_position(self.per_request_timeout),
                timeout=self.per_request_timeout,
            )
        except asyncio.TimeoutError:
            raise GeoTimeout()

    async def acquire_best(self, samples: Optional[int] = None) -> Reading:
        """Fire ``samples`` concurrent requests and keep the most accurate reading."""
        count = samples or self.samples
        results = await asyncio.gather(*(self.acquire() for _ in range(count)), return_exceptions=True)

        readings: List[Reading] = []
        failures: List[GeolocationError] = []
        for result in results:
            if isinstance(result, Reading):
                readings.append(result)
            elif isinstance(result, GeolocationError):
                failures.append(result)
            else:
                raise result

        if not readings:
            logger.info("No location readings out of %d requests", count)
            if failures and all(isinstance(f, PermissionDenied) for f in failures):
                raise PermissionDenied()
            raise PositionUnavailable()

        best = min(readings, key=lambda r: r.accuracy if r.accuracy is not None else math.inf)
        logger.debug("Picked reading with accuracy %s from %d/%d readings", best.accuracy, len(readings), count)
        return best

    def watch(
        self,
        on_reading: Callable[[Reading], None],
        interval: float = 5.0,
        on_error: Optional[Callable[[GeolocationError], None]] = None,
    ) -> WatchHandle:
        """Poll the source until the returned handle is stopped.

        Must be called from a running event loop.
        """
        async def _poll():
            while True:
                try:
                    reading = await self.acquire()
                except GeolocationError as exc:
                    if on_error is not None:
                        on_error(exc)
                else:
                    on_reading(reading)
                await asyncio.sleep(interval)

        task = asyncio.get_running_loop().create_task(_poll())
        return WatchHandle(task)
