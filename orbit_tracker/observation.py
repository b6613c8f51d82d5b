"""
Observation Geometry

Helpers behind the auxiliary views of a tracker: the day/night line on
the world map, satellite footprints, and the sky track and pass timeline
of a ground observer.

The solar position uses the low-precision almanac formulas (about 0.01
degrees between 1950 and 2050), which is well below map resolution.
"""

import math
from datetime import datetime, timedelta
from typing import Iterator, List, NamedTuple, Tuple

from orbit_tracker.constants import J2000_JD, MEAN_EARTH_RADIUS_KM
from orbit_tracker.errors import PropagationError
from orbit_tracker.frames import GeodeticPosition, Observer, look_angles, to_earth_fixed, wrap_longitude
from orbit_tracker.logging_config import get_logger
from orbit_tracker.propagator import PropagatorState, propagate_batch
from orbit_tracker.time_scales import as_utc, gmst, julian_date, to_dynamic_time

logger = get_logger(__name__)

_OBLIQUITY_DEG = 23.439


class SkySample(NamedTuple):
    epoch: datetime
    azimuth: float
    elevation: float


def subsolar_point(utc: datetime) -> Tuple[float, float]:
    """
    Point on the Earth where the Sun is at the zenith.

    Args:
        utc: UTC instant

    Returns:
        Tuple of (latitude_deg, longitude_deg)
    """
    jd, fraction = julian_date(utc)
    n = (jd - J2000_JD) + fraction

    mean_longitude = math.radians((280.460 + 0.9856474 * n) % 360.0)
    mean_anomaly = math.radians((357.528 + 0.9856003 * n) % 360.0)
    ecliptic_longitude = (
        mean_longitude
        + math.radians(1.915) * math.sin(mean_anomaly)
        + math.radians(0.020) * math.sin(2.0 * mean_anomaly)
    )
    obliquity = math.radians(_OBLIQUITY_DEG)

    declination = math.asin(math.sin(obliquity) * math.sin(ecliptic_longitude))
    right_ascension = math.atan2(
        math.cos(obliquity) * math.sin(ecliptic_longitude),
        math.cos(ecliptic_longitude),
    )
    longitude = wrap_longitude(math.degrees(right_ascension - gmst(jd, fraction)))
    return math.degrees(declination), longitude


def terminator(utc: datetime, step_deg: int = 5) -> List[Tuple[float, float]]:
    """
    Day/night boundary as a polyline.

    Args:
        utc: UTC instant
        step_deg: Longitude spacing of the points

    Returns:
        List of (longitude_deg, latitude_deg) from -180 to 180. Empty at an
        exact equinox, where the line degenerates to a meridian pair.
    """
    sub_lat, sub_lon = subsolar_point(utc)
    tan_decl = math.tan(math.radians(sub_lat))
    if tan_decl == 0.0:
        return []

    points = []
    for lon in range(-180, 181, step_deg):
        lat = math.atan(-math.cos(math.radians(lon - sub_lon)) / tan_decl)
        points.append((float(lon), math.degrees(lat)))
    return points


def visibility_area(position: GeodeticPosition, step_deg: int = 10) -> List[Tuple[float, float]]:
    """
    Footprint of a satellite: ground points that see it on the horizon.

    Args:
        position: Sub-satellite point
        step_deg: Azimuth spacing of the points

    Returns:
        Closed polyline of (longitude_deg, latitude_deg)
    """
    lat0 = math.radians(position.latitude)
    lon0 = math.radians(position.longitude)
    # Central angle between the sub-satellite point and the horizon circle
    central = math.acos(MEAN_EARTH_RADIUS_KM / (MEAN_EARTH_RADIUS_KM + max(position.altitude_km, 0.1)))

    points = []
    for azimuth_deg in range(-180, 181, step_deg):
        azimuth = math.radians(azimuth_deg)
        lat = math.asin(
            math.sin(lat0) * math.cos(central)
            + math.cos(lat0) * math.sin(central) * math.cos(azimuth)
        )
        y = math.sin(azimuth) * math.sin(central) * math.cos(lat0)
        x = math.cos(central) - math.sin(lat0) * math.sin(lat)
        lon = lon0 + math.atan2(y, x)
        points.append((wrap_longitude(math.degrees(lon)), math.degrees(lat)))
    return points


def _time_grid(start: datetime, end: datetime, step: timedelta) -> Iterator[datetime]:
    if step <= timedelta(0):
        raise ValueError("step must be positive")
    current = as_utc(start)
    end = as_utc(end)
    while current <= end:
        yield current
        current += step


def _elevations(state: PropagatorState, observer: Observer, start: datetime,
                end: datetime, step: timedelta) -> List[SkySample]:
    times = [to_dynamic_time(t) for t in _time_grid(start, end, step)]
    samples = []
    for epoch, result in zip(times, propagate_batch(state, times)):
        if isinstance(result, PropagationError):
            if result.decayed:
                logger.debug("sky_track_truncated", norad_id=state.elements.norad_id,
                             at=epoch.utc.isoformat())
                break
            continue
        azimuth, elevation = look_angles(to_earth_fixed(result), observer)
        samples.append(SkySample(epoch.utc, azimuth, elevation))
    return samples


def sky_track(state: PropagatorState, observer: Observer, start: datetime,
              end: datetime, step: timedelta = timedelta(minutes=1)) -> List[SkySample]:
    """
    Azimuth/elevation samples of an object while it is above the horizon.

    Args:
        state: Initialized propagator state
        observer: Ground location
        start: First sample time
        end: Last sample time (inclusive)
        step: Sample spacing

    Returns:
        SkySample list, only samples with elevation >= 0
    """
    return [s for s in _elevations(state, observer, start, end, step) if s.elevation >= 0.0]


def pass_windows(state: PropagatorState, observer: Observer, start: datetime,
                 end: datetime, step: timedelta = timedelta(seconds=30),
                 min_elevation: float = 0.0) -> List[Tuple[datetime, datetime]]:
    """
    Intervals during which an object is above an elevation mask.

    Crossing times are interpolated linearly between samples. A pass
    already in progress at ``start`` (or still in progress at ``end``) is
    clipped to the search interval.

    Args:
        state: Initialized propagator state
        observer: Ground location
        start: Start of the search interval
        end: End of the search interval
        step: Sample spacing; passes shorter than this can be missed
        min_elevation: Elevation mask in degrees

    Returns:
        List of (rise, set) UTC datetimes in chronological order
    """
    samples = _elevations(state, observer, start, end, step)
    windows = []
    rise = None
    previous = None
    for sample in samples:
        above = sample.elevation >= min_elevation
        if above and rise is None:
            rise = sample.epoch if previous is None else _crossing(previous, sample, min_elevation)
        elif not above and rise is not None:
            windows.append((rise, _crossing(previous, sample, min_elevation)))
            rise = None
        previous = sample

    if rise is not None and previous is not None:
        windows.append((rise, previous.epoch))
    return windows


def _crossing(before: SkySample, after: SkySample, threshold: float) -> datetime:
    span = after.elevation - before.elevation
    if span == 0.0:
        return after.epoch
    ratio = (threshold - before.elevation) / span
    return before.epoch + (after.epoch - before.epoch) * min(max(ratio, 0.0), 1.0)
