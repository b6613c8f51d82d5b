"""
Reference Frame Transformations

SGP4 output is expressed in TEME (True Equator, Mean Equinox). Map and sky
views need Earth-fixed and geodetic coordinates:

    TEME --(rotate by GMST, subtract w x r)--> ECEF --(Bowring)--> WGS-84 geodetic

Polar motion and the equation of the equinoxes are below the resolution of
the element sets and are not applied.

References:
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications, sec. 3.7
    Bowring, B. R. (1976). "Transformation from spatial to geographical coordinates"
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import NamedTuple, Optional, Tuple

import numpy as np

from orbit_tracker.constants import (
    EARTH_ROTATION_RAD_S,
    WGS84_A_KM,
    WGS84_B_KM,
    WGS84_E2,
)
from orbit_tracker.propagator import PropagatorState, StateVector, orbital_period
from orbit_tracker.time_scales import DynamicTime

# Second eccentricity squared
_EP2 = WGS84_E2 / (1.0 - WGS84_E2)

_MAX_ITERATIONS = 10
_TOLERANCE_RAD = 1e-12


class Observer(NamedTuple):
    """Ground station location (degrees, km above the WGS-84 ellipsoid)."""

    latitude: float
    longitude: float
    altitude_km: float = 0.0


@dataclass(frozen=True, eq=False)
class EarthFixedVector:
    """Position (km) and velocity (km/s) in the rotating Earth-fixed frame."""

    epoch: DynamicTime
    position: np.ndarray
    velocity: np.ndarray


@dataclass(frozen=True)
class GeodeticPosition:
    """
    Sub-satellite point and motion summary at one instant.

    Attributes:
        epoch: UTC instant of the sample
        latitude: Geodetic latitude (deg)
        longitude: Longitude in [-180, 180) (deg)
        altitude_km: Height above the WGS-84 ellipsoid
        ground_speed_km_s: Speed relative to the rotating Earth
        speed_km_s: Inertial (TEME) speed
        period: Orbital period from the mean motion
    """

    epoch: datetime
    latitude: float
    longitude: float
    altitude_km: float
    ground_speed_km_s: float = 0.0
    speed_km_s: float = 0.0
    period: Optional[timedelta] = None


def wrap_longitude(degrees: float) -> float:
    """Normalize a longitude to [-180, 180)."""
    wrapped = math.fmod(degrees + 180.0, 360.0)
    if wrapped < 0.0:
        wrapped += 360.0
    return wrapped - 180.0


def to_earth_fixed(state: StateVector, epoch: Optional[DynamicTime] = None) -> EarthFixedVector:
    """
    Rotate a TEME state into the Earth-fixed frame.

    Args:
        state: TEME state vector
        epoch: Instant of the rotation (default: the state's own epoch)

    Returns:
        EarthFixedVector
    """
    epoch = epoch or state.epoch
    theta = epoch.gmst
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    rotation = np.array([
        [cos_t, sin_t, 0.0],
        [-sin_t, cos_t, 0.0],
        [0.0, 0.0, 1.0],
    ])

    r_ecef = rotation @ state.position
    # Transport term: v_ecef = R v_teme - w x r_ecef
    v_ecef = rotation @ state.velocity + np.array([
        EARTH_ROTATION_RAD_S * r_ecef[1],
        -EARTH_ROTATION_RAD_S * r_ecef[0],
        0.0,
    ])
    return EarthFixedVector(epoch=epoch, position=r_ecef, velocity=v_ecef)


def to_geodetic(vector) -> Tuple[float, float, float]:
    """
    Earth-fixed position to WGS-84 geodetic coordinates (Bowring iteration).

    Args:
        vector: EarthFixedVector, or a position [x, y, z] in km

    Returns:
        Tuple of (latitude_deg, longitude_deg, altitude_km)
    """
    position = vector.position if isinstance(vector, EarthFixedVector) else vector
    x, y, z = (float(c) for c in position)

    a = WGS84_A_KM
    b = WGS84_B_KM
    p = math.hypot(x, y)

    # On the polar axis longitude is undefined; report 0
    if p < 1e-9:
        lat = math.copysign(math.pi / 2.0, z) if z != 0.0 else 0.0
        return math.degrees(lat), 0.0, abs(z) - b

    lon = math.atan2(y, x)

    # Iterate on the reduced latitude
    beta = math.atan2(a * z, b * p)
    lat = beta
    for _ in range(_MAX_ITERATIONS):
        sin_b = math.sin(beta)
        cos_b = math.cos(beta)
        lat = math.atan2(z + _EP2 * b * sin_b ** 3, p - WGS84_E2 * a * cos_b ** 3)
        new_beta = math.atan2(b * math.sin(lat), a * math.cos(lat))
        if abs(new_beta - beta) < _TOLERANCE_RAD:
            break
        beta = new_beta

    sin_lat = math.sin(lat)
    cos_lat = math.cos(lat)
    # Valid at all latitudes, unlike p / cos(lat) - N
    alt = p * cos_lat + z * sin_lat - a * math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)

    return math.degrees(lat), wrap_longitude(math.degrees(lon)), alt


def geodetic_to_ecef(latitude: float, longitude: float, altitude_km: float = 0.0) -> np.ndarray:
    """
    WGS-84 geodetic coordinates to an Earth-fixed position.

    Args:
        latitude: Geodetic latitude (deg)
        longitude: Longitude (deg)
        altitude_km: Height above the ellipsoid

    Returns:
        Position [x, y, z] in km
    """
    lat = math.radians(latitude)
    lon = math.radians(longitude)
    sin_lat = math.sin(lat)
    cos_lat = math.cos(lat)
    n = WGS84_A_KM / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    return np.array([
        (n + altitude_km) * cos_lat * math.cos(lon),
        (n + altitude_km) * cos_lat * math.sin(lon),
        (n * (1.0 - WGS84_E2) + altitude_km) * sin_lat,
    ])


def to_geodetic_position(state: StateVector, propagator_state: Optional[PropagatorState] = None,
                         epoch: Optional[DynamicTime] = None) -> GeodeticPosition:
    """
    Full geodetic summary of a propagated state.

    Args:
        state: TEME state vector
        propagator_state: Source of the orbital period, if wanted
        epoch: Instant of the rotation (default: the state's own epoch)

    Returns:
        GeodeticPosition
    """
    fixed = to_earth_fixed(state, epoch)
    lat, lon, alt = to_geodetic(fixed)
    return GeodeticPosition(
        epoch=fixed.epoch.utc,
        latitude=lat,
        longitude=lon,
        altitude_km=alt,
        ground_speed_km_s=float(np.linalg.norm(fixed.velocity)),
        speed_km_s=state.speed_km_s,
        period=orbital_period(propagator_state) if propagator_state is not None else None,
    )


def look_angles(target, observer: Observer) -> Tuple[float, float]:
    """
    Azimuth and elevation of a target seen from a ground observer.

    Args:
        target: EarthFixedVector or Earth-fixed position [x, y, z] (km)
        observer: Observer location

    Returns:
        Tuple of (azimuth_deg in [0, 360), elevation_deg)
    """
    position = target.position if isinstance(target, EarthFixedVector) else np.asarray(target)
    site = geodetic_to_ecef(observer.latitude, observer.longitude, observer.altitude_km)
    los = position - site

    lat = math.radians(observer.latitude)
    lon = math.radians(observer.longitude)
    sin_lat, cos_lat = math.sin(lat), math.cos(lat)
    sin_lon, cos_lon = math.sin(lon), math.cos(lon)

    # Local East-North-Up basis
    east = -sin_lon * los[0] + cos_lon * los[1]
    north = -sin_lat * cos_lon * los[0] - sin_lat * sin_lon * los[1] + cos_lat * los[2]
    up = cos_lat * cos_lon * los[0] + cos_lat * sin_lon * los[1] + sin_lat * los[2]

    azimuth = math.degrees(math.atan2(east, north)) % 360.0
    elevation = math.degrees(math.atan2(up, math.hypot(east, north)))
    return azimuth, elevation
