from __future__ import annotations

import math

from ..models import Team
from ..shared.errors import InvalidInputError, NotFoundError
from .directory import TeamDirectory

EARTH_RADIUS_METERS = 6371e3


class AttendanceValidationError(InvalidInputError):
    """Raised when attendance cannot be marked for the given request."""


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance between two coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coordinate(value, field: str) -> float:
    if isinstance(value, bool):
        raise AttendanceValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise AttendanceValidationError(f"{field} must be a number") from None
    if math.isnan(number) or math.isinf(number):
        raise AttendanceValidationError(f"{field} must be a number")
    return number


def mark_attendance(
    directory: TeamDirectory,
    att_code,
    latitude,
    longitude,
    *,
    center: tuple[float, float],
    radius_meters: float,
) -> Team:
    """Flip the team's attendance flag when the caller is inside the geofence.

    The caller owns the transaction.
    """
    code = att_code.strip() if isinstance(att_code, str) else ""
    if not code or latitude is None or longitude is None:
        raise AttendanceValidationError(
            "Parameters missing (att_code, latitude, longitude)"
        )
    lat = _coordinate(latitude, "latitude")
    lng = _coordinate(longitude, "longitude")

    if distance_meters(lat, lng, center[0], center[1]) > radius_meters:
        raise AttendanceValidationError(
            "User is out of allowed range. Attendance not marked."
        )

    team = directory.find_team(code)
    if team is None:
        raise NotFoundError("Team not found")
    if team.attendance:
        raise AttendanceValidationError("Attendance is already marked for this team")
    return directory.mark_attended(code)
