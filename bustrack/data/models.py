"""Snapshot data model for routes, trips and per-student trip entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

SCHEDULED = "SCHEDULED"
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"
TRIP_STATUSES = (SCHEDULED, IN_PROGRESS, COMPLETED)

WAITING = "WAITING"
BOARDED = "BOARDED"
DROPPED_OFF = "DROPPED_OFF"
ABSENT = "ABSENT"
ENTRY_STATUSES = (WAITING, BOARDED, DROPPED_OFF, ABSENT)


@dataclass(frozen=True)
class Route:
    """Display metadata for a bus route."""

    id: str
    name: str
    description: str | None = None
    driver_name: str | None = None
    vehicle_plate: str | None = None
    time: str | None = None


@dataclass(frozen=True)
class TripEntry:
    """One student's attendance record within a trip."""

    id: str
    student_id: str
    student_name: str
    status: str
    student_photo_url: str | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None


@dataclass(frozen=True)
class Trip:
    """One dated run of a route, owning its entries as a single value."""

    id: str
    route_id: str
    date: date
    status: str
    entries: tuple[TripEntry, ...] = ()

    def find_entry(self, entry_id: str) -> TripEntry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def count(self, status: str) -> int:
        return sum(1 for entry in self.entries if entry.status == status)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp, treating a trailing Z and naive values as UTC."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be an ISO string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(payload: dict[str, Any], key: str, context: str) -> Any:
    if not isinstance(payload, dict):
        raise ValueError(f"{context} payload must be an object")
    value = payload.get(key)
    if value is None:
        raise ValueError(f"{context} payload is missing '{key}'")
    return value


def route_from_json(payload: dict[str, Any]) -> Route:
    return Route(
        id=str(_require(payload, "id", "Route")),
        name=str(_require(payload, "name", "Route")),
        description=payload.get("description"),
        driver_name=payload.get("driverName"),
        vehicle_plate=payload.get("vehiclePlate"),
        time=payload.get("time"),
    )


def entry_from_json(payload: dict[str, Any]) -> TripEntry:
    status = _require(payload, "status", "Entry")
    if status not in ENTRY_STATUSES:
        raise ValueError(f"Unknown entry status: {status!r}")
    return TripEntry(
        id=str(_require(payload, "id", "Entry")),
        student_id=str(_require(payload, "studentId", "Entry")),
        student_name=str(_require(payload, "studentName", "Entry")),
        status=status,
        student_photo_url=payload.get("studentPhotoUrl") or None,
        check_in_time=parse_timestamp(payload.get("checkInTime")),
        check_out_time=parse_timestamp(payload.get("checkOutTime")),
    )


def trip_from_json(payload: dict[str, Any]) -> Trip:
    """Decode a full trip payload; raises ValueError on any malformed field."""
    status = _require(payload, "status", "Trip")
    if status not in TRIP_STATUSES:
        raise ValueError(f"Unknown trip status: {status!r}")
    raw_entries = payload.get("entries") or []
    if not isinstance(raw_entries, list):
        raise ValueError("Trip 'entries' must be a list")
    return Trip(
        id=str(_require(payload, "id", "Trip")),
        route_id=str(_require(payload, "routeId", "Trip")),
        date=date.fromisoformat(str(_require(payload, "date", "Trip"))[:10]),
        status=status,
        entries=tuple(entry_from_json(item) for item in raw_entries),
    )


__all__ = [
    "SCHEDULED",
    "IN_PROGRESS",
    "COMPLETED",
    "TRIP_STATUSES",
    "WAITING",
    "BOARDED",
    "DROPPED_OFF",
    "ABSENT",
    "ENTRY_STATUSES",
    "Route",
    "Trip",
    "TripEntry",
    "entry_from_json",
    "parse_timestamp",
    "route_from_json",
    "trip_from_json",
]
