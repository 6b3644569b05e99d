"""Lifecycle rules for trips and per-student trip entries."""

from __future__ import annotations

from bustrack.data.models import (
    ABSENT,
    BOARDED,
    COMPLETED,
    DROPPED_OFF,
    IN_PROGRESS,
    SCHEDULED,
    WAITING,
)

ADVANCE = "ADVANCE"
MARK_ABSENT = "MARK_ABSENT"
START = "START"
END = "END"

# Successor for the single primary control on each row. DROPPED_OFF and
# ABSENT loop back to WAITING as corrections.
ADVANCE_SUCCESSOR = {
    WAITING: BOARDED,
    BOARDED: DROPPED_OFF,
    DROPPED_OFF: WAITING,
    ABSENT: WAITING,
}

ENTRY_TRANSITIONS = frozenset(
    [
        (WAITING, BOARDED),
        (BOARDED, DROPPED_OFF),
        (WAITING, ABSENT),
        (ABSENT, WAITING),
        (DROPPED_OFF, WAITING),
    ]
)

TRIP_TRANSITIONS = {
    (SCHEDULED, START): IN_PROGRESS,
    (IN_PROGRESS, END): COMPLETED,
}


class IllegalTransition(ValueError):
    """A requested status change is not reachable from the current status."""

    def __init__(self, current: str, requested: str, reason: str | None = None) -> None:
        detail = reason or f"{requested} is not allowed from {current}"
        super().__init__(detail)
        self.current = current
        self.requested = requested


def next_entry_status(current: str, action: str) -> str:
    """Return the entry status reached by applying action to current."""
    if action == ADVANCE:
        successor = ADVANCE_SUCCESSOR.get(current)
        if successor is None:
            raise IllegalTransition(current, action)
        return successor
    if action == MARK_ABSENT:
        if current != WAITING:
            raise IllegalTransition(current, action, f"Only a waiting student can be marked absent, not {current}")
        return ABSENT
    raise IllegalTransition(current, action, f"Unknown entry action: {action}")


def check_entry_target(current: str, target: str) -> str:
    """Validate an explicit target status; returns it unchanged when legal."""
    if (current, target) not in ENTRY_TRANSITIONS:
        raise IllegalTransition(current, target)
    return target


def next_trip_status(current: str, action: str) -> str:
    try:
        return TRIP_TRANSITIONS[(current, action)]
    except KeyError:
        raise IllegalTransition(current, action) from None


def available_entry_actions(current: str, waiting_target_supported: bool = True) -> tuple[str, ...]:
    """Actions a row offers for its current status.

    When the server cannot take WAITING as a target, the loop-back corrections
    are not offered at all.
    """
    actions: list[str] = []
    successor = ADVANCE_SUCCESSOR.get(current)
    if successor is not None and (successor != WAITING or waiting_target_supported):
        actions.append(ADVANCE)
    if current == WAITING:
        actions.append(MARK_ABSENT)
    return tuple(actions)


__all__ = [
    "ADVANCE",
    "ADVANCE_SUCCESSOR",
    "END",
    "ENTRY_TRANSITIONS",
    "IllegalTransition",
    "MARK_ABSENT",
    "START",
    "TRIP_TRANSITIONS",
    "available_entry_actions",
    "check_entry_target",
    "next_entry_status",
    "next_trip_status",
]
