"""Data structures for rendering the supervisor screens."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EntryRow:
    """Single student row in the trip view."""

    entry_id: str
    student_id: str
    student_name: str
    short_id: str
    initial: str
    photo_url: str | None
    status: str
    status_label: str
    advance_label: str | None
    can_advance: bool
    can_mark_absent: bool


@dataclass(frozen=True)
class TripSummary:
    """Footer counts for the trip view."""

    total: int
    on_bus: int
    dropped: int
    absent: int


@dataclass(frozen=True)
class TripView:
    """Everything the trip screen needs to draw itself."""

    trip_id: str | None
    status: str | None
    status_label: str
    rows: list[EntryRow]
    summary: TripSummary
    can_start: bool
    can_end: bool
    busy: bool
    stale: bool
    can_retry: bool
    closed: bool
    notice: str | None = None


@dataclass(frozen=True)
class RouteRow:
    """Single route card in the route list."""

    route_id: str
    name: str
    vehicle_plate: str
    time: str


@dataclass(frozen=True)
class RouteListView:
    """Route selection screen."""

    loading: bool
    error: str | None
    can_retry: bool
    rows: list[RouteRow]
    empty_message: str | None
    notice: str | None = None


__all__ = ["EntryRow", "RouteListView", "RouteRow", "TripSummary", "TripView"]
