"""
Time Scale Conversion

Converts civil UTC timestamps into the scales used by propagation and
frame rotation:

    UTC --(leap seconds)--> TAI --(+32.184 s)--> TT

SGP4 element epochs are UTC, so propagation offsets are measured in UTC
Julian dates. Greenwich Mean Sidereal Time is driven by Universal Time; UT1
is approximated by UTC (|UT1 - UTC| < 0.9 s, about 0.4 km at the equator).

The leap-second table is static and read-only. All functions here are pure.

References:
    IERS Bulletin C 70 (no leap second introduced through mid-2026)
    Vallado, D. A. (2013). Fundamentals of Astrodynamics and Applications, sec. 3.5
"""

import bisect
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Tuple

from sgp4.api import jday

from orbit_tracker.constants import (
    DAYS_PER_JULIAN_CENTURY,
    J2000_JD,
    SECONDS_PER_DAY,
    TT_MINUS_TAI,
    TWOPI,
)

LEAP_SECONDS_VERSION = "IERS Bulletin C 70"

# (effective UTC date, TAI - UTC in seconds)
LEAP_SECONDS: Tuple[Tuple[datetime, float], ...] = tuple(
    (datetime(year, month, 1, tzinfo=timezone.utc), float(offset))
    for year, month, offset in (
        (1972, 1, 10), (1972, 7, 11), (1973, 1, 12), (1974, 1, 13),
        (1975, 1, 14), (1976, 1, 15), (1977, 1, 16), (1978, 1, 17),
        (1979, 1, 18), (1980, 1, 19), (1981, 7, 20), (1982, 7, 21),
        (1983, 7, 22), (1985, 7, 23), (1988, 1, 24), (1990, 1, 25),
        (1991, 1, 26), (1992, 7, 27), (1993, 7, 28), (1994, 7, 29),
        (1996, 1, 30), (1997, 7, 31), (1999, 1, 32), (2006, 1, 33),
        (2009, 1, 34), (2012, 7, 35), (2015, 7, 36), (2017, 1, 37),
    )
)

_EFFECTIVE_DATES = tuple(date for date, _ in LEAP_SECONDS)

_J2000 = datetime(2000, 1, 1, 12, tzinfo=timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime; naive values are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def tai_minus_utc(utc: datetime) -> float:
    """
    Cumulative leap-second offset valid at a UTC instant.

    Instants after the last table entry use the last known offset and
    instants before 1972 use the first one; neither raises.

    Args:
        utc: UTC instant

    Returns:
        TAI - UTC in seconds
    """
    index = bisect.bisect_right(_EFFECTIVE_DATES, as_utc(utc)) - 1
    return LEAP_SECONDS[max(index, 0)][1]


def julian_date(dt: datetime) -> Tuple[float, float]:
    """
    Convert a datetime to a two-part Julian date.

    Args:
        dt: Datetime (naive values are UTC)

    Returns:
        Tuple of (julian_day, fraction), the split the sgp4 library expects
    """
    dt = as_utc(dt)
    return jday(dt.year, dt.month, dt.day, dt.hour, dt.minute,
                dt.second + dt.microsecond / 1e6)


def datetime_from_julian(jd: float, fraction: float = 0.0) -> datetime:
    """Convert a two-part Julian date back to an aware UTC datetime."""
    return _J2000 + timedelta(days=(jd - J2000_JD) + fraction)


@dataclass(frozen=True)
class DynamicTime:
    """
    One instant expressed in every scale the core needs.

    Attributes:
        utc: Aware UTC datetime
        jd: Whole part of the UTC Julian date
        fraction: Fractional part of the UTC Julian date
        tai_minus_utc: Leap-second offset applied (seconds)
    """

    utc: datetime
    jd: float
    fraction: float
    tai_minus_utc: float

    @property
    def jd_utc(self) -> float:
        return self.jd + self.fraction

    @property
    def tai(self) -> datetime:
        # Civil representation of the TAI reading; datetimes have no leap seconds.
        return self.utc + timedelta(seconds=self.tai_minus_utc)

    @property
    def tt(self) -> datetime:
        return self.tai + timedelta(seconds=TT_MINUS_TAI)

    @property
    def jd_tt(self) -> float:
        return self.jd + self.fraction + (self.tai_minus_utc + TT_MINUS_TAI) / SECONDS_PER_DAY

    @property
    def gmst(self) -> float:
        """Greenwich Mean Sidereal Time in radians."""
        return gmst(self.jd, self.fraction)

    def minutes_since(self, jd: float, fraction: float) -> float:
        """Minutes elapsed (UTC) since another two-part Julian date."""
        return ((self.jd - jd) + (self.fraction - fraction)) * 1440.0


def to_dynamic_time(utc: datetime) -> DynamicTime:
    """
    Convert a civil timestamp into atomic and dynamical time.

    Args:
        utc: UTC instant (naive datetimes are taken to be UTC)

    Returns:
        DynamicTime carrying UTC Julian date, TAI offset and TT
    """
    utc = as_utc(utc)
    jd, fraction = julian_date(utc)
    return DynamicTime(utc=utc, jd=jd, fraction=fraction,
                       tai_minus_utc=tai_minus_utc(utc))


def gmst(jd_ut: float, fraction: float = 0.0) -> float:
    """
    Greenwich Mean Sidereal Time (IAU-82), the angle SGP4 uses for TEME.

    Args:
        jd_ut: Julian date in Universal Time (whole part, or the full value)
        fraction: Fractional part of the Julian date

    Returns:
        GMST in radians, normalized to [0, 2*pi)
    """
    tut1 = ((jd_ut - J2000_JD) + fraction) / DAYS_PER_JULIAN_CENTURY
    seconds = (
        -6.2e-6 * tut1 * tut1 * tut1
        + 0.093104 * tut1 * tut1
        + (876600.0 * 3600.0 + 8640184.812866) * tut1
        + 67310.54841
    )
    # 240 seconds of time per degree
    angle = math.fmod(math.radians(seconds / 240.0), TWOPI)
    if angle < 0.0:
        angle += TWOPI
    return angle
