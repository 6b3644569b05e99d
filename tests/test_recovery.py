from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from bustrack.data.bus_client import BusNetworkError, BusRejectedError
from bustrack.data.models import IN_PROGRESS, Route, Trip
from bustrack.logic.recovery import (
    FAILED,
    LOADING,
    READY,
    InitialLoadFailed,
    RefreshFailed,
    RouteDirectory,
    TripSync,
)


def _trip(trip_id: str = "t1") -> Trip:
    return Trip(id=trip_id, route_id="r1", date=date(2026, 10, 18), status=IN_PROGRESS)


def test_trip_sync_records_success() -> None:
    client = MagicMock()
    client.get_trip.return_value = _trip()
    sync = TripSync(client, "t1")

    trip = sync.fetch()

    assert trip.id == "t1"
    status = sync.get_status()
    assert status.last_error is None
    assert status.last_success_at is not None


def test_trip_sync_wraps_client_errors() -> None:
    client = MagicMock()
    client.get_trip.side_effect = BusNetworkError("offline")
    sync = TripSync(client, "t1")

    with pytest.raises(RefreshFailed) as exc_info:
        sync.fetch()

    assert isinstance(exc_info.value.__cause__, BusNetworkError)
    assert sync.get_status().last_error == "offline"
    assert sync.get_status().last_success_at is None


def test_trip_sync_rejects_foreign_trip() -> None:
    client = MagicMock()
    client.get_trip.return_value = _trip("t2")
    sync = TripSync(client, "t1")

    with pytest.raises(RefreshFailed):
        sync.fetch()


def test_directory_starts_loading() -> None:
    directory = RouteDirectory(MagicMock())

    assert directory.get_state().phase == LOADING


def test_directory_load_success() -> None:
    client = MagicMock()
    client.list_routes.return_value = [Route(id="r1", name="North Loop")]
    directory = RouteDirectory(client)

    routes = directory.load()

    assert [route.id for route in routes] == ["r1"]
    state = directory.get_state()
    assert state.phase == READY
    assert state.error is None


def test_directory_load_failure_then_retry() -> None:
    client = MagicMock()
    client.list_routes.side_effect = [BusNetworkError("offline"), [Route(id="r1", name="North Loop")]]
    directory = RouteDirectory(client)

    with pytest.raises(InitialLoadFailed):
        directory.load()
    assert directory.get_state().phase == FAILED
    assert directory.get_state().error == "offline"

    directory.retry()

    assert directory.get_state().phase == READY
    assert client.list_routes.call_count == 2


def test_open_active_trip_returns_trip_or_none() -> None:
    client = MagicMock()
    client.get_active_trip.side_effect = [_trip(), None]
    directory = RouteDirectory(client)

    assert directory.open_active_trip("r1").id == "t1"
    assert directory.open_active_trip("r2") is None


def test_open_active_trip_failure_is_initial_load_failure() -> None:
    client = MagicMock()
    client.get_active_trip.side_effect = BusRejectedError(500, "boom")
    directory = RouteDirectory(client)

    with pytest.raises(InitialLoadFailed):
        directory.open_active_trip("r1")
