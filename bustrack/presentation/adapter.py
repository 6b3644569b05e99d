"""Projection of coordinator state into views, and routing of taps into calls."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

from bustrack.data.bus_client import BusClient
from bustrack.data.models import (
    ABSENT,
    BOARDED,
    COMPLETED,
    DROPPED_OFF,
    IN_PROGRESS,
    SCHEDULED,
    WAITING,
    TripEntry,
)
from bustrack.logic.coordinator import (
    CoordinatorBusy,
    CoordinatorState,
    MutationCoordinator,
    MutationRejected,
    SnapshotStale,
    TripClosed,
)
from bustrack.logic.recovery import (
    FAILED,
    LOADING,
    DirectoryState,
    InitialLoadFailed,
    RefreshFailed,
    RouteDirectory,
)
from bustrack.logic.transitions import ADVANCE, MARK_ABSENT, IllegalTransition, available_entry_actions
from bustrack.presentation.view_state import (
    EntryRow,
    RouteListView,
    RouteRow,
    TripSummary,
    TripView,
)

logger = logging.getLogger(__name__)

ACCEPTED = "ACCEPTED"
BUSY = "BUSY"
REJECTED = "REJECTED"
STALE = "STALE"
CLOSED = "CLOSED"
IGNORED = "IGNORED"

SCREEN_ROUTES = "ROUTES"
SCREEN_TRIP = "TRIP"

SHORT_ID_LENGTH = 6
NO_TIME = "N/A"

ADVANCE_LABELS = {
    WAITING: "BOARD",
    BOARDED: "DROP OFF",
    DROPPED_OFF: "RESET",
    ABSENT: "RESET",
}

NOTICE_BUSY = "Please wait for the current update to finish."
NOTICE_STALE = "Connection lost. Could not sync with the server."
NOTICE_CLOSED = "This trip has ended."


@dataclass(frozen=True)
class TapResult:
    """What happened to a single gesture."""

    outcome: str
    notice: str | None = None


def _status_label(status: str | None) -> str:
    return status.replace("_", " ") if status else ""


def _entry_row(entry: TripEntry, locked: bool, waiting_target_supported: bool) -> EntryRow:
    actions = available_entry_actions(entry.status, waiting_target_supported)
    name = entry.student_name.strip()
    can_advance = not locked and ADVANCE in actions
    return EntryRow(
        entry_id=entry.id,
        student_id=entry.student_id,
        student_name=entry.student_name,
        short_id=entry.student_id[:SHORT_ID_LENGTH],
        initial=name[0].upper() if name else "?",
        photo_url=entry.student_photo_url,
        status=entry.status,
        status_label=_status_label(entry.status),
        advance_label=ADVANCE_LABELS[entry.status] if ADVANCE in actions else None,
        can_advance=can_advance,
        can_mark_absent=not locked and MARK_ABSENT in actions,
    )


def project_trip(
    state: CoordinatorState,
    waiting_target_supported: bool = False,
    notice: str | None = None,
) -> TripView:
    """Project coordinator state into a trip view.

    Every mutating control shares one lock: while a call is in flight, while
    the snapshot is stale, or once the trip is closed, nothing is offered.
    """
    snapshot = state.snapshot
    completed = snapshot is None or snapshot.status == COMPLETED
    locked = not state.writable or completed

    rows = (
        [_entry_row(entry, locked, waiting_target_supported) for entry in snapshot.entries]
        if snapshot is not None
        else []
    )
    summary = TripSummary(
        total=len(snapshot.entries) if snapshot is not None else 0,
        on_bus=snapshot.count(BOARDED) if snapshot is not None else 0,
        dropped=snapshot.count(DROPPED_OFF) if snapshot is not None else 0,
        absent=snapshot.count(ABSENT) if snapshot is not None else 0,
    )

    if notice is None and state.stale:
        notice = NOTICE_STALE
    elif notice is None and state.closed:
        notice = NOTICE_CLOSED

    return TripView(
        trip_id=snapshot.id if snapshot is not None else None,
        status=state.trip_status,
        status_label=_status_label(state.trip_status),
        rows=rows,
        summary=summary,
        can_start=not locked and snapshot.status == SCHEDULED,
        can_end=not locked and snapshot.status == IN_PROGRESS,
        busy=state.busy,
        stale=state.stale,
        can_retry=state.stale,
        closed=state.closed,
        notice=notice,
    )


def project_routes(state: DirectoryState, notice: str | None = None) -> RouteListView:
    rows = [
        RouteRow(
            route_id=route.id,
            name=route.name,
            vehicle_plate=route.vehicle_plate or "",
            time=route.time or NO_TIME,
        )
        for route in state.routes
    ]
    failed = state.phase == FAILED
    empty = not failed and state.phase != LOADING and not rows
    return RouteListView(
        loading=state.phase == LOADING,
        error="No assigned routes found or server error." if failed else None,
        can_retry=failed,
        rows=rows,
        empty_message="No routes assigned to you." if empty else None,
        notice=notice,
    )


class TripScreen:
    """Turns each gesture on the trip view into exactly one coordinator call."""

    def __init__(self, coordinator: MutationCoordinator) -> None:
        self._coordinator = coordinator
        self._notice: str | None = None

    @property
    def coordinator(self) -> MutationCoordinator:
        return self._coordinator

    @property
    def closed(self) -> bool:
        return self._coordinator.get_state().closed

    def view(self) -> TripView:
        return project_trip(
            self._coordinator.get_state(),
            self._coordinator.waiting_target_supported,
            self._notice,
        )

    def tap_advance(self, entry_id: str) -> TapResult:
        return self._dispatch(
            lambda: self._coordinator.request_entry_action(entry_id, ADVANCE),
            "Failed to update student status",
        )

    def tap_mark_absent(self, entry_id: str) -> TapResult:
        return self._dispatch(
            lambda: self._coordinator.request_entry_action(entry_id, MARK_ABSENT),
            "Failed to update student status",
        )

    def tap_start(self) -> TapResult:
        return self._dispatch(self._coordinator.request_trip_start, "Failed to start trip")

    def tap_end(self) -> TapResult:
        return self._dispatch(self._coordinator.request_trip_end, "Failed to end trip")

    def tap_retry(self) -> TapResult:
        return self._dispatch(self._coordinator.retry_refresh, "Could not sync with the server")

    def _dispatch(self, call: Callable[[], CoordinatorState], failure: str) -> TapResult:
        try:
            state = call()
        except CoordinatorBusy:
            return self._result(BUSY, NOTICE_BUSY)
        except SnapshotStale:
            return self._result(STALE, NOTICE_STALE)
        except TripClosed:
            return self._result(CLOSED, NOTICE_CLOSED)
        except IllegalTransition as exc:
            # The control for this transition is not offered; nothing to show.
            logger.debug("Ignored tap: %s", exc)
            return self._result(IGNORED, None)
        except MutationRejected as exc:
            return self._result(REJECTED, f"{failure}: {exc}. Please try again.")
        except RefreshFailed:
            if self._coordinator.get_state().stale:
                return self._result(STALE, NOTICE_STALE)
            return self._result(REJECTED, f"{failure}. Please try again.")

        if state.closed:
            return self._result(CLOSED, None)
        return self._result(ACCEPTED, None)

    def _result(self, outcome: str, notice: str | None) -> TapResult:
        self._notice = notice
        return TapResult(outcome=outcome, notice=notice)


class SupervisorSession:
    """Navigation between the route list and the active trip of one route."""

    def __init__(
        self,
        client: BusClient,
        waiting_target_supported: bool = False,
        on_change: Callable[[CoordinatorState], None] | None = None,
    ) -> None:
        self._client = client
        self._directory = RouteDirectory(client)
        self._waiting_target_supported = waiting_target_supported
        self._on_change = on_change
        self._trip_screen: TripScreen | None = None
        self._notice: str | None = None

    @property
    def directory(self) -> RouteDirectory:
        return self._directory

    @property
    def screen(self) -> str:
        return SCREEN_TRIP if self._trip_screen is not None else SCREEN_ROUTES

    @property
    def trip_screen(self) -> TripScreen | None:
        return self._trip_screen

    def load_routes(self) -> RouteListView:
        try:
            self._directory.load()
        except InitialLoadFailed as exc:
            logger.warning("%s", exc)
        return self.route_view()

    def retry_routes(self) -> RouteListView:
        return self.load_routes()

    def route_view(self) -> RouteListView:
        return project_routes(self._directory.get_state(), self._notice)

    def select_route(self, route_id: str) -> TapResult:
        """Open the active trip of a route in a fresh coordinator."""
        if self.screen == SCREEN_TRIP:
            return TapResult(IGNORED)
        try:
            trip = self._directory.open_active_trip(route_id)
        except InitialLoadFailed as exc:
            return self._route_result(REJECTED, str(exc))
        if trip is None:
            return self._route_result(REJECTED, "No active trip for this route.")
        try:
            coordinator = MutationCoordinator(
                self._client,
                trip,
                listener=self._on_coordinator_state,
                waiting_target_supported=self._waiting_target_supported,
            )
        except TripClosed:
            return self._route_result(REJECTED, "This trip is already completed.")
        self._trip_screen = TripScreen(coordinator)
        logger.info("Opened trip %s for route %s", trip.id, route_id)
        return self._route_result(ACCEPTED, None)

    def back(self) -> TapResult:
        """Leave the trip view without writing anything."""
        screen = self.trip_screen
        if screen is None:
            return TapResult(IGNORED)
        if screen.coordinator.get_state().busy:
            return TapResult(BUSY, NOTICE_BUSY)
        self._trip_screen = None
        return self._route_result(ACCEPTED, None)

    def _on_coordinator_state(self, state: CoordinatorState) -> None:
        # Only the coordinator behind the open screen may navigate away from it.
        if state.closed and self._trip_screen is not None and self._trip_screen.closed:
            logger.info("Trip closed; returning to route list")
            self._trip_screen = None
            self._notice = "Trip ended."
        if self._on_change is not None:
            self._on_change(state)

    def _route_result(self, outcome: str, notice: str | None) -> TapResult:
        self._notice = notice
        return TapResult(outcome=outcome, notice=notice)


__all__ = [
    "ACCEPTED",
    "BUSY",
    "CLOSED",
    "IGNORED",
    "REJECTED",
    "SCREEN_ROUTES",
    "SCREEN_TRIP",
    "STALE",
    "SupervisorSession",
    "TapResult",
    "TripScreen",
    "project_routes",
    "project_trip",
]
