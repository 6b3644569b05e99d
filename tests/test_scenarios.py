from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
import threading

from bustrack.data.bus_client import BusNetworkError
from bustrack.data.models import (
    ABSENT,
    BOARDED,
    COMPLETED,
    DROPPED_OFF,
    IN_PROGRESS,
    SCHEDULED,
    WAITING,
    Trip,
    TripEntry,
)
from bustrack.logic.coordinator import MutationCoordinator
from bustrack.presentation import TripScreen
from bustrack.presentation.adapter import ACCEPTED, BUSY, CLOSED, STALE

CHECK_TIME = datetime(2026, 10, 18, 7, 45, tzinfo=timezone.utc)


class FakeBusServer:
    """In-memory stand-in for the school API that counts every call."""

    def __init__(self, trip: Trip) -> None:
        self.trip = trip
        self.calls: list[tuple] = []
        self.fail_fetches = 0
        self.scan_gate: threading.Event | None = None
        self.scan_started = threading.Event()

    def get_trip(self, trip_id: str) -> Trip:
        self.calls.append(("get_trip", trip_id))
        if self.fail_fetches:
            self.fail_fetches -= 1
            raise BusNetworkError("network unreachable")
        return self.trip

    def set_entry_status(self, trip_id: str, student_id: str, status: str) -> None:
        self.calls.append(("scan", student_id, status))
        self.scan_started.set()
        if self.scan_gate is not None:
            self.scan_gate.wait(timeout=5)
        entries = []
        for entry in self.trip.entries:
            if entry.student_id == student_id:
                entry = replace(
                    entry,
                    status=status,
                    check_in_time=CHECK_TIME if status == BOARDED else entry.check_in_time,
                    check_out_time=CHECK_TIME if status == DROPPED_OFF else entry.check_out_time,
                )
            entries.append(entry)
        self.trip = replace(self.trip, entries=tuple(entries))

    def start_trip(self, trip_id: str) -> None:
        self.calls.append(("start", trip_id))
        self.trip = replace(self.trip, status=IN_PROGRESS)

    def end_trip(self, trip_id: str) -> None:
        self.calls.append(("end", trip_id))
        self.trip = replace(self.trip, status=COMPLETED)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


def _server(status: str = IN_PROGRESS) -> FakeBusServer:
    entry = TripEntry(id="e1", student_id="s1", student_name="Ada", status=WAITING)
    return FakeBusServer(
        Trip(id="t1", route_id="r1", date=date(2026, 10, 18), status=status, entries=(entry,))
    )


def _screen(server: FakeBusServer, **kwargs) -> TripScreen:
    coordinator = MutationCoordinator(server, server.trip, waiting_target_supported=True, **kwargs)
    return TripScreen(coordinator)


def _status(screen: TripScreen) -> str:
    return screen.view().rows[0].status


def test_scenario_a_board_drop_and_loop_back() -> None:
    server = _server()
    screen = _screen(server)

    assert screen.tap_advance("e1").outcome == ACCEPTED
    assert _status(screen) == BOARDED
    assert screen.tap_advance("e1").outcome == ACCEPTED
    assert _status(screen) == DROPPED_OFF
    assert screen.tap_advance("e1").outcome == ACCEPTED
    assert _status(screen) == WAITING

    assert [call[2] for call in server.calls if call[0] == "scan"] == [BOARDED, DROPPED_OFF, WAITING]
    assert server.count("get_trip") == 3


def test_scenario_b_absent_and_back_to_waiting() -> None:
    server = _server()
    screen = _screen(server)

    assert screen.tap_mark_absent("e1").outcome == ACCEPTED
    row = screen.view().rows[0]
    assert row.status == ABSENT
    assert not row.can_mark_absent

    assert screen.tap_advance("e1").outcome == ACCEPTED
    assert _status(screen) == WAITING


def test_scenario_c_rapid_taps_send_one_mutation() -> None:
    server = _server()
    server.scan_gate = threading.Event()
    screen = _screen(server)
    first: list = []

    worker = threading.Thread(target=lambda: first.append(screen.tap_advance("e1")))
    worker.start()
    assert server.scan_started.wait(timeout=5)

    in_flight_view = screen.view()
    second = screen.tap_advance("e1")

    server.scan_gate.set()
    worker.join(timeout=5)

    assert second.outcome == BUSY
    assert in_flight_view.busy
    assert all(not row.can_advance and not row.can_mark_absent for row in in_flight_view.rows)
    assert not in_flight_view.can_end
    assert first[0].outcome == ACCEPTED
    assert server.count("scan") == 1
    assert _status(screen) == BOARDED


def test_scenario_d_refresh_drop_then_retry() -> None:
    server = _server()
    server.fail_fetches = 1
    screen = _screen(server)

    result = screen.tap_advance("e1")

    assert result.outcome == STALE
    view = screen.view()
    assert view.stale and view.can_retry
    assert view.rows[0].status == WAITING
    assert not view.rows[0].can_advance and not view.rows[0].can_mark_absent
    assert not view.can_end

    assert screen.tap_retry().outcome == ACCEPTED

    view = screen.view()
    assert not view.stale
    assert view.rows[0].status == BOARDED
    assert server.count("scan") == 1
    assert server.count("get_trip") == 2


def test_scenario_e_start_then_end() -> None:
    server = _server(SCHEDULED)
    observed: list[str] = []

    def _record(state) -> None:
        if state.trip_status and (not observed or observed[-1] != state.trip_status):
            observed.append(state.trip_status)

    coordinator = MutationCoordinator(server, server.trip, listener=_record)
    _record(coordinator.get_state())
    screen = TripScreen(coordinator)

    assert screen.tap_start().outcome == ACCEPTED
    assert screen.tap_end().outcome == CLOSED

    assert observed == [SCHEDULED, IN_PROGRESS, COMPLETED]
    assert screen.view().closed


def test_snapshot_equals_fetched_payload_after_each_mutation() -> None:
    server = _server()
    coordinator = MutationCoordinator(server, server.trip, waiting_target_supported=True)

    state = coordinator.request_entry_transition("e1", "s1", BOARDED)

    assert state.snapshot == server.trip
    assert state.snapshot.entries[0].check_in_time == CHECK_TIME
