"""
Physical and Time Constants

Gravity model constants follow WGS-72 as required by SGP4 (Vallado et al.
2006, AAS 06-675). Geodetic conversions use the WGS-84 ellipsoid, which is
what map coordinates are expressed in.
"""

import math

# WGS-72 (SGP4 gravity model)
WGS72_EARTH_RADIUS_KM: float = 6378.135
WGS72_MU: float = 398600.8  # km^3/s^2

# WGS-84 ellipsoid (geodetic conversion)
WGS84_A_KM: float = 6378.137
WGS84_F: float = 1.0 / 298.257223563
WGS84_B_KM: float = WGS84_A_KM * (1.0 - WGS84_F)
WGS84_E2: float = WGS84_F * (2.0 - WGS84_F)

# Mean Earth radius used for footprint geometry (km)
MEAN_EARTH_RADIUS_KM: float = 6371.0088

# Earth rotation rate (rad/s)
EARTH_ROTATION_RAD_S: float = 7.292115146706979e-5

TWOPI: float = 2.0 * math.pi
MINUTES_PER_DAY: float = 1440.0
SECONDS_PER_DAY: float = 86400.0
XPDOTP: float = MINUTES_PER_DAY / TWOPI  # rev/day per rad/min

# TT - TAI (seconds)
TT_MINUS_TAI: float = 32.184

# Julian dates
J2000_JD: float = 2451545.0
SGP4_EPOCH_JD: float = 2433281.5  # 1949-12-31 00:00 UT, origin of sgp4init epochs
DAYS_PER_JULIAN_CENTURY: float = 36525.0

# SGP4 switches to the deep-space branch at this period (minutes)
DEEP_SPACE_PERIOD_MIN: float = 225.0

# Altitude above the ellipsoid under which an object is considered re-entered (km)
DECAY_ALTITUDE_KM: float = 80.0
