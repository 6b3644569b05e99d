"""School bus API client."""

from __future__ import annotations

import logging
from typing import Any

import requests

from bustrack.config import ApiConfig
from bustrack.data.models import (
    ABSENT,
    BOARDED,
    DROPPED_OFF,
    WAITING,
    Route,
    Trip,
    route_from_json,
    trip_from_json,
)

logger = logging.getLogger(__name__)

SCAN_TARGETS = (BOARDED, DROPPED_OFF, ABSENT)
MASKED_TOKEN = "Bearer [MASKED]"


class BusClientError(Exception):
    """Raised when a bus API request fails or returns an unusable response."""


class BusNetworkError(BusClientError):
    """The server could not be reached, or the request timed out."""


class BusRejectedError(BusClientError):
    """The server answered with a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Status {status_code}: {message}" if message else f"Status {status_code}")
        self.status_code = status_code
        self.message = message


class SessionExpiredError(BusRejectedError):
    """The server no longer accepts the configured token (HTTP 401)."""


class UnsupportedTargetError(BusClientError):
    """The requested scan target cannot be expressed on the wire."""


class BusClient:
    """Thin wrapper around the school bus endpoints using requests."""

    def __init__(self, config: ApiConfig) -> None:
        self._base_url = config.base_url.rstrip("/")
        self._token = config.token
        self._school_id = config.school_id
        self._timeout_seconds = config.timeout_seconds
        self._debug = config.debug_http
        self._waiting_target_supported = config.waiting_target_supported

    @property
    def waiting_target_supported(self) -> bool:
        return self._waiting_target_supported

    def list_routes(self) -> list[Route]:
        """Fetch the routes assigned to the current supervisor."""
        payload = self._request("GET", "/bus/routes")
        if not isinstance(payload, list):
            raise BusClientError("Route list response was not a JSON array")
        return [self._decode(route_from_json, item) for item in payload]

    def get_active_trip(self, route_id: str) -> Trip | None:
        """Fetch today's active trip for a route; None when the route has none."""
        try:
            payload = self._request("GET", f"/bus/routes/{route_id}/active-trip")
        except BusRejectedError as exc:
            if exc.status_code == 404:
                return None
            raise
        if payload is None:
            return None
        return self._decode(trip_from_json, payload)

    def get_trip(self, trip_id: str) -> Trip:
        payload = self._request("GET", f"/bus/trip/{trip_id}")
        return self._decode(trip_from_json, payload)

    def set_entry_status(self, trip_id: str, student_id: str, status: str) -> Any:
        """Record a boarding status for one student on a trip."""
        allowed = SCAN_TARGETS + ((WAITING,) if self._waiting_target_supported else ())
        if status not in allowed:
            raise UnsupportedTargetError(f"Status {status!r} cannot be sent to /bus/scan")
        body = {"tripId": trip_id, "studentId": student_id, "status": status}
        return self._request("POST", "/bus/scan", json_body=body)

    def start_trip(self, trip_id: str) -> Any:
        return self._request("POST", f"/bus/trip/{trip_id}/start")

    def end_trip(self, trip_id: str) -> Any:
        return self._request("POST", f"/bus/trip/{trip_id}/end")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if self._school_id:
            headers["x-school-id"] = self._school_id
        return headers

    def _request(self, method: str, path: str, json_body: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        headers = self._headers()
        if self._debug:
            masked = dict(headers)
            if "Authorization" in masked:
                masked["Authorization"] = MASKED_TOKEN
            logger.debug("-> %s %s headers=%s body=%s", method, url, masked, json_body)

        try:
            if method == "GET":
                response = requests.get(url, headers=headers, timeout=self._timeout_seconds)
            else:
                response = requests.post(
                    url, headers=headers, json=json_body, timeout=self._timeout_seconds
                )
        except requests.RequestException as exc:
            raise BusNetworkError(f"Bus API request failed: {exc}") from exc

        if self._debug:
            logger.debug("<- %s %s %s", response.status_code, method, url)

        if not 200 <= response.status_code < 300:
            message = _error_message(response)
            if response.status_code == 401:
                raise SessionExpiredError(response.status_code, message)
            raise BusRejectedError(response.status_code, message)

        if response.status_code == 204 or not response.text.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BusClientError("Bus API response was not valid JSON") from exc

    @staticmethod
    def _decode(decoder, payload: Any) -> Any:
        try:
            return decoder(payload)
        except (TypeError, ValueError) as exc:
            raise BusClientError(f"Malformed bus API payload: {exc}") from exc


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text.strip()


__all__ = [
    "BusClient",
    "BusClientError",
    "BusNetworkError",
    "BusRejectedError",
    "SCAN_TARGETS",
    "SessionExpiredError",
    "UnsupportedTargetError",
]
