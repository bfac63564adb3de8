import asyncio

import pytest

from plastic_watch.errors import GeoTimeout, PermissionDenied, PositionUnavailable, ValidationFailed
from plastic_watch.geolocation import (
    GeolocationAcquirer,
    Reading,
    ReportedPositionSource,
    manual_reading,
)

from .fakes import FakePositionSource


def _reading(accuracy, lat=13.05, lon=80.28):
    return Reading(latitude=lat, longitude=lon, accuracy=accuracy)


@pytest.mark.asyncio
async def test_acquire_best_keeps_smallest_accuracy():
    source = FakePositionSource([_reading(50, lat=1.0), _reading(5, lat=2.0), _reading(20, lat=3.0)])
    acquirer = GeolocationAcquirer(source, samples=3)

    best = await acquirer.acquire_best()

    assert best.accuracy == 5
    assert best.latitude == 2.0
    assert source.calls == 3


@pytest.mark.asyncio
async def test_acquire_best_tolerates_partial_failures():
    source = FakePositionSource([PositionUnavailable(), _reading(30), GeoTimeout()])
    acquirer = GeolocationAcquirer(source, samples=3)

    best = await acquirer.acquire_best()

    assert best.accuracy == 30


@pytest.mark.asyncio
async def test_acquire_best_prefers_readings_with_accuracy():
    source = FakePositionSource([_reading(None, lat=9.0), _reading(40, lat=4.0)])
    acquirer = GeolocationAcquirer(source, samples=2)

    best = await acquirer.acquire_best()

    assert best.latitude == 4.0


@pytest.mark.asyncio
async def test_acquire_best_all_denied():
    source = FakePositionSource([PermissionDenied()])
    acquirer = GeolocationAcquirer(source, samples=3)

    with pytest.raises(PermissionDenied):
        await acquirer.acquire_best()


@pytest.mark.asyncio
async def test_acquire_best_mixed_failures_report_unavailable():
    source = FakePositionSource([PermissionDenied(), GeoTimeout()])
    acquirer = GeolocationAcquirer(source, samples=2)

    with pytest.raises(PositionUnavailable):
        await acquirer.acquire_best()


@pytest.mark.asyncio
async def test_acquire_times_out_slow_source():
    source = FakePositionSource([(1.0, _reading(5))])
    acquirer = GeolocationAcquirer(source, samples=1, per_request_timeout=0.05)

    with pytest.raises(GeoTimeout):
        await acquirer.acquire()


@pytest.mark.asyncio
async def test_watch_delivers_readings_until_stopped():
    source = FakePositionSource([_reading(10), PositionUnavailable()])
    acquirer = GeolocationAcquirer(source)
    readings, errors = [], []

    handle = acquirer.watch(readings.append, interval=0.01, on_error=errors.append)
    await asyncio.sleep(0.1)
    await handle.stop()
    delivered = len(readings)
    await asyncio.sleep(0.05)

    assert not handle.active
    assert delivered >= 1
    assert len(readings) == delivered
    assert all(isinstance(e, PositionUnavailable) for e in errors)


@pytest.mark.asyncio
async def test_reported_source_maps_browser_error_codes():
    source = ReportedPositionSource.from_payload([
        {"error": 1, "message": "User denied Geolocation"},
        {"latitude": 13.05, "longitude": 80.28, "accuracy": 8},
    ])

    with pytest.raises(PermissionDenied):
        await source.current_position(timeout=1)
    reading = await source.current_position(timeout=1)
    assert reading.accuracy == 8.0
    # samples are consumed, never replayed
    with pytest.raises(PositionUnavailable):
        await source.current_position(timeout=1)


@pytest.mark.asyncio
async def test_reported_source_accepts_string_error_codes():
    source = ReportedPositionSource.from_payload([{"error": "1"}, {"error": "3"}, {"error": "later"}])

    with pytest.raises(PermissionDenied):
        await source.current_position(timeout=1)
    with pytest.raises(GeoTimeout):
        await source.current_position(timeout=1)
    with pytest.raises(PositionUnavailable):
        await source.current_position(timeout=1)


@pytest.mark.parametrize("payload", [
    [],
    "nope",
    [{"latitude": 91, "longitude": 0}],
    ["x"],
    [{"latitude": 1, "longitude": 2, "accuracy": 5, "timestamp": "now"}],
    [{"latitude": 1, "longitude": 2, "accuracy": "close"}],
])
def test_reported_source_rejects_bad_payload(payload):
    with pytest.raises(ValidationFailed):
        ReportedPositionSource.from_payload(payload)


def test_manual_reading():
    reading = manual_reading("13.05", 80.28)
    assert (reading.latitude, reading.longitude, reading.accuracy) == (13.05, 80.28, None)

    with pytest.raises(ValidationFailed):
        manual_reading(12, 200)
    with pytest.raises(ValidationFailed):
        manual_reading("north", 0)
