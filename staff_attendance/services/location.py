from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

from sqlalchemy.orm import Session

from staff_attendance.models import Institution
from staff_attendance.settings import get_settings

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True, slots=True)
class GeofenceConfig:
    institution_id: int
    latitude: float | None
    longitude: float | None
    radius_m: float
    check_in_time: str
    check_out_time: str
    normal_working_hours: float

    @property
    def has_coordinate(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True, slots=True)
class GeofenceCheck:
    distance_m: float
    radius_m: float
    validated: bool


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return EARTH_RADIUS_M * c


def evaluate_geofence(config: GeofenceConfig, lat: float, lon: float) -> GeofenceCheck:
    """Distance of a reported position from the institution and whether it is inside the radius.

    The distance is rounded to centimetres before comparison so that the stored
    distance and the validated flag never disagree.
    """
    if not config.has_coordinate:
        raise ValueError(f"institution {config.institution_id} has no GPS coordinate")
    if config.radius_m < 0:
        raise ValueError("attendance radius must be >= 0")

    distance_value = round(
        distance_m(config.latitude, config.longitude, lat, lon),  # type: ignore[arg-type]
        2,
    )
    return GeofenceCheck(
        distance_m=distance_value,
        radius_m=config.radius_m,
        validated=distance_value <= config.radius_m,
    )


def geofence_config_from_institution(institution: Institution) -> GeofenceConfig:
    settings = get_settings()
    radius = institution.attendance_radius_m
    if radius is None:
        radius = settings.default_attendance_radius_m
    normal_hours = institution.normal_working_hours
    if not normal_hours:
        normal_hours = settings.default_normal_working_hours
    return GeofenceConfig(
        institution_id=institution.id,
        latitude=institution.gps_latitude,
        longitude=institution.gps_longitude,
        radius_m=float(radius),
        check_in_time=institution.check_in_time or settings.default_check_in_time,
        check_out_time=institution.check_out_time or settings.default_check_out_time,
        normal_working_hours=float(normal_hours),
    )


def get_institution_geofence_config(db: Session, institution_id: int) -> GeofenceConfig | None:
    institution = db.get(Institution, institution_id)
    if institution is None:
        return None
    return geofence_config_from_institution(institution)
