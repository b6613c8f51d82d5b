"""
Tests for Tracker Configuration

Run with:
    python -m pytest tests/test_config.py -v
"""

import unittest
from datetime import timedelta

from pydantic import ValidationError

from orbit_tracker.config import DEFAULT_GROUPS, GroupSource, TrackerConfig


class TestGroupSource(unittest.TestCase):

    def test_cospar_group(self):
        source = GroupSource(label="ISS", cospar_id="1998-067A")
        self.assertEqual(source.key, "1998-067A")
        self.assertEqual(source.query, {"INTDES": "1998-067A"})

    def test_named_group(self):
        source = GroupSource(label="GPS", group="gps-ops")
        self.assertEqual(source.key, "gps-ops")
        self.assertEqual(source.query, {"GROUP": "gps-ops"})

    def test_exactly_one_identifier(self):
        with self.assertRaises(ValidationError):
            GroupSource(label="Both", cospar_id="1998-067A", group="stations")
        with self.assertRaises(ValidationError):
            GroupSource(label="Neither")

    def test_default_group_keys_unique(self):
        keys = [g.key for g in DEFAULT_GROUPS]
        self.assertEqual(len(keys), len(set(keys)))


class TestTrackerConfig(unittest.TestCase):

    def test_defaults(self):
        config = TrackerConfig()
        self.assertEqual(config.cache_lifetime, timedelta(minutes=120))
        self.assertEqual(config.refresh_interval, timedelta(minutes=120))
        self.assertEqual(config.max_propagation_days, 30.0)
        self.assertIsNone(config.trajectory_horizon_min)
        self.assertIsNone(config.redis_url)
        self.assertTrue(config.cache_dir.endswith("tracker"))

    def test_frozen(self):
        config = TrackerConfig()
        with self.assertRaises(ValidationError):
            config.history_length = 10

    def test_rejects_invalid_values(self):
        with self.assertRaises(ValidationError):
            TrackerConfig(trajectory_step_sec=0)
        with self.assertRaises(ValidationError):
            TrackerConfig(follow_smoothing=1.5)
        with self.assertRaises(ValidationError):
            TrackerConfig(unknown_option=1)

    def test_find_group(self):
        config = TrackerConfig()
        self.assertEqual(config.find_group("iss").key, "1998-067A")
        self.assertEqual(config.find_group("1998-067a").label, "ISS")
        self.assertEqual(config.find_group("GPS-OPS").label, "GPS")
        self.assertIsNone(config.find_group("starlink"))

    def test_from_env(self):
        environ = {
            "ORBIT_TRACKER_CACHE_LIFETIME_MIN": "30",
            "ORBIT_TRACKER_TRAJECTORY_HORIZON_MIN": "45.5",
            "ORBIT_TRACKER_SHOW_TERMINATOR": "false",
            "ORBIT_TRACKER_REDIS_URL": "",
            "ORBIT_TRACKER_INITIAL_GROUPS": "ISS, gps-ops,,",
            "UNRELATED": "1",
        }
        config = TrackerConfig.from_env(environ)
        self.assertEqual(config.cache_lifetime_min, 30)
        self.assertEqual(config.trajectory_horizon_min, 45.5)
        self.assertFalse(config.show_terminator)
        self.assertIsNone(config.redis_url)
        self.assertEqual(config.initial_groups, ["ISS", "gps-ops"])

    def test_from_env_overrides(self):
        config = TrackerConfig.from_env({"ORBIT_TRACKER_HISTORY_LENGTH": "50"}, history_length=7)
        self.assertEqual(config.history_length, 7)

    def test_from_env_invalid(self):
        with self.assertRaises(ValidationError):
            TrackerConfig.from_env({"ORBIT_TRACKER_HISTORY_LENGTH": "many"})


if __name__ == "__main__":
    unittest.main()
