"""
Tests for Time Scale Conversion

Run with:
    python -m pytest tests/test_time_scales.py -v
"""

import math
import unittest
from datetime import datetime, timedelta, timezone

from orbit_tracker.constants import SECONDS_PER_DAY, TT_MINUS_TAI
from orbit_tracker.time_scales import (
    LEAP_SECONDS,
    as_utc,
    datetime_from_julian,
    gmst,
    julian_date,
    tai_minus_utc,
    to_dynamic_time,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestLeapSeconds(unittest.TestCase):
    """Cumulative TAI - UTC offsets."""

    def test_offsets_before_2017(self):
        self.assertEqual(tai_minus_utc(utc(2016, 6, 1)), 36.0)
        self.assertEqual(tai_minus_utc(utc(2000, 1, 1)), 32.0)
        self.assertEqual(tai_minus_utc(utc(1990, 6, 1)), 25.0)
        self.assertEqual(tai_minus_utc(utc(1972, 3, 1)), 10.0)

    def test_offset_changes_at_effective_date(self):
        self.assertEqual(tai_minus_utc(utc(2016, 12, 31, 23, 59, 59)), 36.0)
        self.assertEqual(tai_minus_utc(utc(2017, 1, 1)), 37.0)

    def test_after_table_uses_last_offset(self):
        self.assertEqual(tai_minus_utc(utc(2035, 1, 1)), LEAP_SECONDS[-1][1])

    def test_before_table_uses_first_offset(self):
        self.assertEqual(tai_minus_utc(utc(1965, 1, 1)), 10.0)

    def test_naive_datetime_is_utc(self):
        self.assertEqual(tai_minus_utc(datetime(2010, 1, 1)), 34.0)

    def test_table_is_ordered(self):
        dates = [date for date, _ in LEAP_SECONDS]
        self.assertEqual(dates, sorted(dates))
        offsets = [offset for _, offset in LEAP_SECONDS]
        self.assertEqual(offsets, sorted(offsets))


class TestJulianDate(unittest.TestCase):

    def test_j2000(self):
        jd, fr = julian_date(utc(2000, 1, 1, 12))
        self.assertAlmostEqual(jd + fr, 2451545.0, places=9)

    def test_roundtrip(self):
        when = utc(2024, 2, 29, 17, 45, 12, 250000)
        jd, fr = julian_date(when)
        back = datetime_from_julian(jd, fr)
        self.assertLess(abs(back - when), timedelta(milliseconds=1))

    def test_as_utc_converts_offsets(self):
        cest = timezone(timedelta(hours=2))
        self.assertEqual(as_utc(datetime(2024, 6, 1, 14, tzinfo=cest)), utc(2024, 6, 1, 12))


class TestDynamicTime(unittest.TestCase):

    def test_terrestrial_time_offset(self):
        t = to_dynamic_time(utc(2020, 5, 17, 8, 30))
        self.assertEqual(t.tai_minus_utc, 37.0)
        self.assertEqual(t.tai - t.utc, timedelta(seconds=37))
        self.assertEqual(t.tt - t.utc, timedelta(seconds=37 + TT_MINUS_TAI))
        self.assertAlmostEqual((t.jd_tt - t.jd_utc) * SECONDS_PER_DAY, 37 + TT_MINUS_TAI, places=3)

    def test_naive_input_becomes_aware(self):
        t = to_dynamic_time(datetime(2021, 1, 1))
        self.assertEqual(t.utc.tzinfo, timezone.utc)

    def test_minutes_since(self):
        start = to_dynamic_time(utc(2024, 1, 1))
        later = to_dynamic_time(utc(2024, 1, 2, 1))
        self.assertAlmostEqual(later.minutes_since(start.jd, start.fraction), 1500.0, places=6)


class TestSiderealTime(unittest.TestCase):

    def test_gmst_at_j2000(self):
        # 280.46061837 degrees at 2000-01-01 12:00 UT
        self.assertAlmostEqual(gmst(2451545.0), math.radians(280.46061837), places=6)

    def test_gmst_range(self):
        for day in range(0, 400, 37):
            theta = to_dynamic_time(utc(2023, 1, 1) + timedelta(days=day, hours=day % 24)).gmst
            self.assertGreaterEqual(theta, 0.0)
            self.assertLess(theta, 2 * math.pi)

    def test_sidereal_day(self):
        # Earth turns once relative to the stars in 23h 56m 4.0905s
        start = to_dynamic_time(utc(2024, 3, 1))
        later = to_dynamic_time(utc(2024, 3, 1) + timedelta(hours=23, minutes=56, seconds=4.0905))
        diff = (later.gmst - start.gmst + math.pi) % (2 * math.pi) - math.pi
        self.assertAlmostEqual(diff, 0.0, places=5)


if __name__ == "__main__":
    unittest.main()
