"""View projection and gesture routing for the supervisor screens."""

from bustrack.presentation.adapter import (
    SupervisorSession,
    TapResult,
    TripScreen,
    project_routes,
    project_trip,
)
from bustrack.presentation.view_state import EntryRow, RouteListView, RouteRow, TripSummary, TripView

__all__ = [
    "EntryRow",
    "RouteListView",
    "RouteRow",
    "SupervisorSession",
    "TapResult",
    "TripScreen",
    "TripSummary",
    "TripView",
    "project_routes",
    "project_trip",
]
