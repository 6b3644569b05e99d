"""Snapshot refresh and initial-load recovery for the supervisor client.

Two failure families are kept apart here. A refresh failure happens after
a trip is open and leaves the last confirmed snapshot on screen. An initial
load failure happens before any trip exists, so there is nothing to protect
and a plain retry is enough. Neither path retries on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import time

from bustrack.data.bus_client import BusClient, BusClientError
from bustrack.data.models import Route, Trip

logger = logging.getLogger(__name__)

LOADING = "LOADING"
READY = "READY"
FAILED = "FAILED"


class RefreshFailed(Exception):
    """The trip snapshot could not be re-fetched from the server."""


class InitialLoadFailed(Exception):
    """The route list or a route's active trip could not be loaded."""


@dataclass(frozen=True)
class SyncStatus:
    """Outcome bookkeeping for the most recent trip fetches."""

    last_success_at: float | None
    last_error: str | None


class TripSync:
    """Fetches full trip snapshots for one trip id."""

    def __init__(self, client: BusClient, trip_id: str) -> None:
        self._client = client
        self._trip_id = trip_id
        self._lock = threading.Lock()
        self._status = SyncStatus(last_success_at=None, last_error=None)

    @property
    def trip_id(self) -> str:
        return self._trip_id

    def get_status(self) -> SyncStatus:
        with self._lock:
            return self._status

    def fetch(self) -> Trip:
        """Fetch the whole trip; raises RefreshFailed on any client error."""
        try:
            trip = self._client.get_trip(self._trip_id)
        except BusClientError as exc:
            with self._lock:
                self._status = SyncStatus(self._status.last_success_at, str(exc))
            logger.warning("Refresh of trip %s failed: %s", self._trip_id, exc)
            raise RefreshFailed(f"Could not sync trip {self._trip_id}: {exc}") from exc

        if trip.id != self._trip_id:
            message = f"Server returned trip {trip.id} when {self._trip_id} was requested"
            with self._lock:
                self._status = SyncStatus(self._status.last_success_at, message)
            raise RefreshFailed(message)

        with self._lock:
            self._status = SyncStatus(last_success_at=time.time(), last_error=None)
        return trip


@dataclass(frozen=True)
class DirectoryState:
    """Route list as seen by the route selection screen."""

    phase: str
    routes: tuple[Route, ...]
    error: str | None


class RouteDirectory:
    """Loads assigned routes and opens the active trip of a route."""

    def __init__(self, client: BusClient) -> None:
        self._client = client
        self._lock = threading.Lock()
        self._state = DirectoryState(phase=LOADING, routes=(), error=None)

    def get_state(self) -> DirectoryState:
        with self._lock:
            return self._state

    def load(self) -> tuple[Route, ...]:
        """Fetch the route list, replacing whatever was loaded before."""
        with self._lock:
            self._state = DirectoryState(phase=LOADING, routes=self._state.routes, error=None)
        try:
            routes = tuple(self._client.list_routes())
        except BusClientError as exc:
            with self._lock:
                self._state = DirectoryState(phase=FAILED, routes=(), error=str(exc))
            logger.error("Route list load failed: %s", exc)
            raise InitialLoadFailed("No assigned routes found or server error.") from exc

        with self._lock:
            self._state = DirectoryState(phase=READY, routes=routes, error=None)
        logger.info("Loaded %d routes", len(routes))
        return routes

    def retry(self) -> tuple[Route, ...]:
        return self.load()

    def open_active_trip(self, route_id: str) -> Trip | None:
        """Return the route's active trip, or None when nothing is scheduled."""
        try:
            trip = self._client.get_active_trip(route_id)
        except BusClientError as exc:
            logger.error("Active trip load for route %s failed: %s", route_id, exc)
            raise InitialLoadFailed("Could not load active trip for this route.") from exc
        if trip is None:
            logger.info("Route %s has no active trip", route_id)
        return trip


__all__ = [
    "DirectoryState",
    "FAILED",
    "InitialLoadFailed",
    "LOADING",
    "READY",
    "RefreshFailed",
    "RouteDirectory",
    "SyncStatus",
    "TripSync",
]
