"""Mutation coordinator owning the authoritative snapshot of one open trip.

Only one call may be in flight at a time. Requests that arrive while a call
is outstanding are rejected with CoordinatorBusy rather than queued. After
every successful write the whole trip is fetched again and replaces the
snapshot; nothing the server computes is patched in locally.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Any, Callable

from bustrack.data.bus_client import BusClient, BusClientError
from bustrack.data.models import COMPLETED, WAITING, Trip
from bustrack.logic.recovery import RefreshFailed, TripSync
from bustrack.logic.transitions import (
    END,
    START,
    IllegalTransition,
    check_entry_target,
    next_entry_status,
    next_trip_status,
)

logger = logging.getLogger(__name__)

IDLE = "IDLE"
MUTATING = "MUTATING"
REFRESHING = "REFRESHING"
STALE_AFTER_SUCCESS = "STALE_AFTER_SUCCESS"
CLOSED = "CLOSED"


@dataclass(frozen=True)
class CoordinatorState:
    """Immutable view of the coordinator at one instant."""

    phase: str
    snapshot: Trip | None
    error: str | None = None

    @property
    def busy(self) -> bool:
        return self.phase in (MUTATING, REFRESHING)

    @property
    def stale(self) -> bool:
        return self.phase == STALE_AFTER_SUCCESS

    @property
    def closed(self) -> bool:
        return self.phase == CLOSED

    @property
    def writable(self) -> bool:
        return self.phase == IDLE

    @property
    def trip_status(self) -> str | None:
        if self.snapshot is not None:
            return self.snapshot.status
        return COMPLETED if self.phase == CLOSED else None


class CoordinatorUnavailable(Exception):
    """The coordinator cannot accept a request in its current phase."""


class CoordinatorBusy(CoordinatorUnavailable):
    """Another call is still in flight."""


class SnapshotStale(CoordinatorUnavailable):
    """The last write succeeded but its refresh did not; retry the refresh first."""


class TripClosed(CoordinatorUnavailable):
    """The trip has been ended and is no longer writable."""


class MutationRejected(Exception):
    """The server refused a mutation, or the mutation call itself failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


StateListener = Callable[[CoordinatorState], None]


class MutationCoordinator:
    """Serializes writes against one trip and keeps its snapshot server-true."""

    def __init__(
        self,
        client: BusClient,
        trip: Trip,
        listener: StateListener | None = None,
        waiting_target_supported: bool = False,
    ) -> None:
        if trip.status == COMPLETED:
            raise TripClosed(f"Trip {trip.id} is already completed")
        self._client = client
        self._sync = TripSync(client, trip.id)
        self._listener = listener
        self._waiting_target_supported = waiting_target_supported
        self._lock = threading.Lock()
        self._state = CoordinatorState(phase=IDLE, snapshot=trip)

    @property
    def trip_id(self) -> str:
        return self._sync.trip_id

    @property
    def waiting_target_supported(self) -> bool:
        return self._waiting_target_supported

    @property
    def sync(self) -> TripSync:
        return self._sync

    def get_state(self) -> CoordinatorState:
        with self._lock:
            return self._state

    def request_entry_action(self, entry_id: str, action: str) -> CoordinatorState:
        """Apply ADVANCE or MARK_ABSENT to an entry of the current snapshot."""
        state = self.get_state()
        entry = state.snapshot.find_entry(entry_id) if state.snapshot is not None else None
        if entry is None:
            self._check_phase(state)
            raise IllegalTransition("UNKNOWN", action, f"Trip has no entry {entry_id}")
        target = next_entry_status(entry.status, action)
        return self.request_entry_transition(entry.id, entry.student_id, target)

    def request_entry_transition(
        self, entry_id: str, student_id: str, target_status: str
    ) -> CoordinatorState:
        with self._lock:
            snapshot = self._check_phase(self._state)
            entry = snapshot.find_entry(entry_id)
            if entry is None:
                raise IllegalTransition("UNKNOWN", target_status, f"Trip has no entry {entry_id}")
            if entry.student_id != student_id:
                raise IllegalTransition(
                    entry.status,
                    target_status,
                    f"Entry {entry_id} belongs to student {entry.student_id}, not {student_id}",
                )
            if snapshot.status == COMPLETED:
                raise IllegalTransition(entry.status, target_status, "Trip is already completed")
            check_entry_target(entry.status, target_status)
            if target_status == WAITING and not self._waiting_target_supported:
                raise IllegalTransition(
                    entry.status, target_status, "Server does not accept corrections back to WAITING"
                )
            in_flight = self._enter(MUTATING, snapshot)

        logger.info(
            "Trip %s: student %s %s -> %s", snapshot.id, student_id, entry.status, target_status
        )
        return self._perform(
            in_flight,
            lambda: self._client.set_entry_status(snapshot.id, student_id, target_status),
        )

    def request_trip_start(self) -> CoordinatorState:
        return self._request_trip_action(START)

    def request_trip_end(self) -> CoordinatorState:
        """End the trip; a successful end discards the snapshot and closes the coordinator."""
        return self._request_trip_action(END)

    def retry_refresh(self) -> CoordinatorState:
        """Re-issue only the snapshot fetch, never the write that preceded it."""
        with self._lock:
            state = self._state
            if state.busy:
                logger.debug("Refresh of trip %s rejected: busy", self.trip_id)
                raise CoordinatorBusy("A request is already in flight")
            if state.closed:
                raise TripClosed(f"Trip {self.trip_id} is closed")
            previous_phase = state.phase
            in_flight = self._enter(REFRESHING, state.snapshot, state.error)

        try:
            self._notify(in_flight)
            trip = self._sync.fetch()
        except RefreshFailed as exc:
            self._publish(CoordinatorState(previous_phase, in_flight.snapshot, str(exc)))
            raise
        except Exception:
            self._publish(CoordinatorState(previous_phase, in_flight.snapshot, in_flight.error))
            raise
        if previous_phase == STALE_AFTER_SUCCESS:
            logger.info("Trip %s re-synchronized after stale refresh", self.trip_id)
        return self._publish(CoordinatorState(IDLE, trip))

    def _request_trip_action(self, action: str) -> CoordinatorState:
        with self._lock:
            snapshot = self._check_phase(self._state)
            target = next_trip_status(snapshot.status, action)
            in_flight = self._enter(MUTATING, snapshot)

        logger.info("Trip %s: %s -> %s", snapshot.id, snapshot.status, target)
        if action == START:
            return self._perform(in_flight, lambda: self._client.start_trip(snapshot.id))
        return self._perform(in_flight, lambda: self._client.end_trip(snapshot.id), closing=True)

    def _check_phase(self, state: CoordinatorState) -> Trip:
        if state.busy:
            logger.debug("Request on trip %s rejected: busy", self.trip_id)
            raise CoordinatorBusy("A request is already in flight")
        if state.stale:
            raise SnapshotStale("Trip data is out of date; retry the refresh first")
        if state.closed or state.snapshot is None:
            raise TripClosed(f"Trip {self.trip_id} is closed")
        return state.snapshot

    def _enter(self, phase: str, snapshot: Trip | None, error: str | None = None) -> CoordinatorState:
        # Caller holds the lock.
        self._state = CoordinatorState(phase, snapshot, error)
        return self._state

    def _perform(
        self, in_flight: CoordinatorState, call: Callable[[], Any], closing: bool = False
    ) -> CoordinatorState:
        snapshot = in_flight.snapshot
        try:
            # A failing listener must not leave the phase stuck in flight.
            self._notify(in_flight)
            call()
        except BusClientError as exc:
            logger.warning("Trip %s: mutation rejected: %s", snapshot.id, exc)
            self._publish(CoordinatorState(IDLE, snapshot, str(exc)))
            raise MutationRejected(str(exc), getattr(exc, "status_code", None)) from exc
        except Exception:
            self._publish(CoordinatorState(IDLE, snapshot))
            raise

        if closing:
            logger.info("Trip %s ended; snapshot discarded", snapshot.id)
            return self._publish(CoordinatorState(CLOSED, None))

        try:
            trip = self._sync.fetch()
        except RefreshFailed as exc:
            logger.warning("Trip %s is stale after a successful write", snapshot.id)
            self._publish(CoordinatorState(STALE_AFTER_SUCCESS, snapshot, str(exc)))
            raise
        except Exception as exc:
            self._publish(CoordinatorState(STALE_AFTER_SUCCESS, snapshot, str(exc)))
            raise RefreshFailed(f"Could not sync trip {snapshot.id}: {exc}") from exc
        return self._publish(CoordinatorState(IDLE, trip))

    def _publish(self, state: CoordinatorState) -> CoordinatorState:
        with self._lock:
            self._state = state
        self._notify(state)
        return state

    def _notify(self, state: CoordinatorState) -> None:
        if self._listener is not None:
            self._listener(state)


__all__ = [
    "CLOSED",
    "CoordinatorBusy",
    "CoordinatorState",
    "CoordinatorUnavailable",
    "IDLE",
    "MUTATING",
    "MutationCoordinator",
    "MutationRejected",
    "REFRESHING",
    "STALE_AFTER_SUCCESS",
    "SnapshotStale",
    "StateListener",
    "TripClosed",
]
