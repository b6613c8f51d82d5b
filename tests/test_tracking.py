"""
Tests for the Tracking Session

Tests trajectories, per-object tracking state and the session's group
and element handling.

Run with:
    python -m pytest tests/test_tracking.py -v
"""

import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from orbit_tracker.catalog import FetchResult
from orbit_tracker.clock import SimulationClock
from orbit_tracker.config import TrackerConfig
from orbit_tracker.errors import FetchError, InitializationError
from orbit_tracker.frames import GeodeticPosition
from orbit_tracker.propagator import initialize, orbital_period
from orbit_tracker.tle_parser import parse_tle
from orbit_tracker.tracking import (
    ObjectStatus,
    TrackedObject,
    TrackingSession,
    Trajectory,
    forecast_positions,
)

from tle_fixtures import (
    DECAYING_LINE1,
    DECAYING_LINE2,
    DRAG_FREE_LINE1,
    DRAG_FREE_LINE2,
    ISS_LINE1,
    ISS_LINE2,
    MOLNIYA_LINE1,
    MOLNIYA_LINE2,
    VANGUARD_LINE1,
    VANGUARD_LINE2,
    tle_text,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def sample(minutes):
    return GeodeticPosition(epoch=T0 + timedelta(minutes=minutes), latitude=0.0,
                            longitude=float(minutes), altitude_km=400.0)


def make_config(**overrides):
    values = dict(history_length=5, trajectory_horizon_min=10, trajectory_step_sec=60,
                  recompute_threshold_sec=60)
    values.update(overrides)
    return TrackerConfig(**values)


class TestTrajectory(unittest.TestCase):

    def test_append_in_order(self):
        trajectory = Trajectory()
        for m in range(3):
            trajectory.append(sample(m))
        self.assertEqual(len(trajectory), 3)
        self.assertEqual(trajectory.first.epoch, T0)
        self.assertEqual(trajectory.points(), [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)])

    def test_rejects_non_monotonic(self):
        trajectory = Trajectory()
        trajectory.append(sample(5))
        with self.assertRaises(ValueError):
            trajectory.append(sample(5))
        with self.assertRaises(ValueError):
            trajectory.append(sample(4))
        self.assertEqual(len(trajectory), 1)

    def test_bounded(self):
        trajectory = Trajectory(maxlen=3)
        for m in range(10):
            trajectory.append(sample(m))
        self.assertEqual([s.longitude for s in trajectory], [7.0, 8.0, 9.0])

    def test_drop_before_and_after(self):
        trajectory = Trajectory()
        for m in range(6):
            trajectory.append(sample(m))
        self.assertEqual(trajectory.drop_before(T0 + timedelta(minutes=2)), 2)
        self.assertEqual(trajectory.drop_after(T0 + timedelta(minutes=4)), 2)
        self.assertEqual([s.longitude for s in trajectory], [2.0, 3.0])
        trajectory.clear()
        self.assertIsNone(trajectory.last)


class TestForecast(unittest.TestCase):

    def setUp(self):
        self.elements = parse_tle(ISS_LINE1, ISS_LINE2)
        self.state = initialize(self.elements)

    def test_bounded_by_horizon(self):
        samples = list(forecast_positions(self.state, self.elements.epoch,
                                          timedelta(minutes=30), timedelta(minutes=1)))
        self.assertEqual(len(samples), 30)
        self.assertEqual(samples[0].epoch, self.elements.epoch + timedelta(minutes=1))
        self.assertEqual(samples[-1].epoch, self.elements.epoch + timedelta(minutes=30))

    def test_restartable(self):
        args = (self.state, self.elements.epoch, timedelta(minutes=15), timedelta(minutes=5))
        first = list(forecast_positions(*args))
        second = list(forecast_positions(*args))
        self.assertEqual(first, second)

    def test_stops_at_decay(self):
        elements = parse_tle(DECAYING_LINE1, DECAYING_LINE2)
        state = initialize(elements)
        samples = list(forecast_positions(state, elements.epoch, timedelta(days=20),
                                          timedelta(hours=6)))
        self.assertGreater(len(samples), 0)
        self.assertLess(len(samples), 80)

    def test_step_must_be_positive(self):
        with self.assertRaises(ValueError):
            list(forecast_positions(self.state, self.elements.epoch, timedelta(minutes=5),
                                    timedelta(0)))


class TestTrackedObject(unittest.TestCase):

    def setUp(self):
        self.elements = parse_tle(ISS_LINE1, ISS_LINE2, "ISS (ZARYA)")
        self.epoch = self.elements.epoch
        self.obj = TrackedObject(self.elements, make_config(), groups=["stations"])

    def at(self, **offset):
        return self.epoch + timedelta(**offset)

    def test_identity(self):
        self.assertEqual(self.obj.norad_id, 25544)
        self.assertEqual(self.obj.label, "ISS (ZARYA)")
        self.assertEqual(self.obj.groups, {"stations"})

    def test_advance(self):
        position = self.obj.advance(self.at(minutes=5))
        self.assertIs(self.obj.position, position)
        self.assertEqual(position.epoch, self.at(minutes=5))
        self.assertEqual(self.obj.status, ObjectStatus.OK)
        self.assertIsNone(self.obj.status_reason)
        self.assertEqual(len(self.obj.history), 1)
        self.assertEqual(len(self.obj.forecast), 10)

    def test_forecast_regenerated_on_jump(self):
        self.obj.advance(self.at(minutes=0))
        first = self.obj.forecast
        self.obj.advance(self.at(seconds=30))
        self.assertIs(self.obj.forecast, first)
        self.obj.advance(self.at(minutes=2))
        self.assertIsNot(self.obj.forecast, first)
        self.assertEqual(self.obj.forecast[0].epoch, self.at(minutes=3))

    def test_history_bounded(self):
        for m in range(8):
            self.obj.advance(self.at(minutes=m))
        self.assertEqual(len(self.obj.history), 5)
        self.assertEqual(self.obj.history.first.epoch, self.at(minutes=3))

    def test_rewind_discards_abandoned_samples(self):
        for m in range(3):
            self.obj.advance(self.at(minutes=m))
        self.obj.advance(self.at(seconds=30))
        self.assertEqual([s.epoch for s in self.obj.history], [self.at(minutes=0)])
        self.obj.advance(self.at(seconds=90))
        self.assertEqual([s.epoch for s in self.obj.history],
                         [self.at(minutes=0), self.at(seconds=90)])

    def test_history_spacing_follows_step(self):
        obj = TrackedObject(self.elements, make_config(history_length=180))
        for s in range(300):
            obj.advance(self.at(seconds=s))

        epochs = [p.epoch for p in obj.history]
        self.assertEqual(len(epochs), 5)
        self.assertEqual(epochs[0], self.at(seconds=0))
        self.assertEqual(epochs[-1], self.at(seconds=240))
        for earlier, later in zip(epochs, epochs[1:]):
            self.assertGreaterEqual(later - earlier, timedelta(seconds=60))
        self.assertEqual(obj.position.epoch, self.at(seconds=299))

    def test_refresh_clears_stale_samples(self):
        for m in (1, 2, 3):
            self.obj.advance(self.at(minutes=m))
        newer = self.elements.model_copy(update={"epoch": self.at(seconds=150)})
        self.obj.refresh_elements(newer)

        self.assertIs(self.obj.elements, newer)
        self.assertEqual([s.epoch for s in self.obj.history], [self.at(minutes=3)])
        self.assertEqual(self.obj.forecast, ())

        self.obj.advance(self.at(minutes=4))
        self.assertEqual(len(self.obj.forecast), 10)

    def test_refresh_with_degenerate_elements(self):
        bad = self.elements.model_copy(update={"eccentricity": 1.5})
        with self.assertRaises(InitializationError):
            self.obj.refresh_elements(bad)
        self.assertIs(self.obj.elements, self.elements)

    def test_stale_until_refreshed(self):
        self.obj.mark_stale("refresh failed")
        self.assertEqual(self.obj.status, ObjectStatus.STALE)
        self.obj.advance(self.at(minutes=1))
        self.assertEqual(self.obj.status, ObjectStatus.STALE)
        self.obj.refresh_elements(self.elements.model_copy(update={"epoch": self.at(minutes=1)}))
        self.obj.advance(self.at(minutes=2))
        self.assertEqual(self.obj.status, ObjectStatus.OK)

    def test_decay_keeps_last_position(self):
        elements = parse_tle(DECAYING_LINE1, DECAYING_LINE2)
        obj = TrackedObject(elements, make_config())
        good = obj.advance(elements.epoch + timedelta(hours=1))
        self.assertIsNotNone(good)
        self.assertEqual(obj.status, ObjectStatus.OK)
        result = obj.advance(elements.epoch + timedelta(days=30))

        self.assertIs(result, good)
        self.assertIs(obj.position, good)
        self.assertEqual(obj.status, ObjectStatus.DECAYED)
        self.assertIn("decayed", obj.status_reason)
        self.assertEqual(obj.forecast, ())

    def test_out_of_range(self):
        elements = parse_tle(DRAG_FREE_LINE1, DRAG_FREE_LINE2)
        obj = TrackedObject(elements, make_config())
        self.assertIsNone(obj.advance(elements.epoch + timedelta(days=31)))
        self.assertEqual(obj.status, ObjectStatus.OUT_OF_RANGE)

    def test_default_horizon_is_one_period(self):
        obj = TrackedObject(self.elements, make_config(trajectory_horizon_min=None))
        self.assertEqual(obj.horizon, orbital_period(obj.propagator))


class TestTrackingSession(unittest.TestCase):

    def setUp(self):
        self.clock = SimulationClock(now=lambda: T0 + timedelta(days=5))
        self.session = TrackingSession(make_config(), self.clock)
        self.decaying = parse_tle(DECAYING_LINE1, DECAYING_LINE2, "DEBRIS")
        self.drag_free = parse_tle(DRAG_FREE_LINE1, DRAG_FREE_LINE2, "CALSAT")

    def tearDown(self):
        self.session.close()

    def test_group_activation(self):
        self.assertTrue(self.session.activate_group("stations"))
        self.assertFalse(self.session.activate_group("stations"))
        self.assertEqual(self.session.active_groups, {"stations"})
        self.assertFalse(self.session.deactivate_group("gps-ops"))

    def test_elements_for_inactive_group_ignored(self):
        self.assertEqual(self.session.apply_elements("stations", [self.drag_free]), 0)
        self.assertEqual(self.session.objects, [])

    def test_objects_are_independent(self):
        self.session.activate_group("test")
        self.session.apply_elements("test", [self.decaying, self.drag_free])
        self.session.advance(T0 + timedelta(days=20))

        self.assertEqual(self.session.get(99999).status, ObjectStatus.DECAYED)
        self.assertEqual(self.session.get(99998).status, ObjectStatus.OK)
        self.assertIsNotNone(self.session.get(99998).position)

    def test_exclusions_recorded(self):
        bad = self.drag_free.model_copy(update={"norad_id": 99000, "eccentricity": 1.5})
        self.session.activate_group("test")
        count = self.session.apply_elements("test", [bad, self.drag_free])
        self.assertEqual(count, 1)
        self.assertIsNone(self.session.get(99000))
        self.assertIn(99000, self.session.exclusions)

    def test_membership_follows_groups(self):
        self.session.activate_group("a")
        self.session.activate_group("b")
        self.session.apply_elements("a", [self.decaying, self.drag_free])
        self.session.apply_elements("b", [self.drag_free])
        self.assertEqual(self.session.get(99998).groups, {"a", "b"})

        self.session.deactivate_group("a")
        self.assertIsNone(self.session.get(99999))
        self.assertEqual(self.session.get(99998).groups, {"b"})

        self.session.deactivate_group("b")
        self.assertEqual(self.session.objects, [])

    def test_objects_leave_group_when_absent_from_update(self):
        self.session.activate_group("a")
        self.session.apply_elements("a", [self.decaying, self.drag_free])
        self.session.apply_elements("a", [self.drag_free])
        self.assertIsNone(self.session.get(99999))
        self.assertIsNotNone(self.session.get(99998))

    def test_newer_elements_refresh_object(self):
        self.session.activate_group("a")
        self.session.apply_elements("a", [self.drag_free])
        obj = self.session.get(99998)
        newer = self.drag_free.model_copy(update={"epoch": self.drag_free.epoch + timedelta(hours=6)})
        self.session.apply_elements("a", [newer])
        self.assertIs(self.session.get(99998), obj)
        self.assertEqual(obj.elements.epoch, newer.epoch)

    def test_older_elements_do_not_replace_newer(self):
        newer = self.drag_free.model_copy(update={"epoch": self.drag_free.epoch + timedelta(days=1)})
        self.session.activate_group("a")
        self.session.activate_group("b")
        self.session.apply_elements("a", [newer])
        self.session.apply_elements("b", [self.drag_free])

        obj = self.session.get(99998)
        self.assertIs(obj.elements, newer)
        self.assertEqual(obj.groups, {"a", "b"})

    def test_result_from_earlier_activation_discarded(self):
        raw = tle_text((DRAG_FREE_LINE1, DRAG_FREE_LINE2))
        self.session.activate_group("a")
        self.assertEqual(self.session.generation("a"), 1)
        queued = FetchResult(group_id="a", raw=raw, generation=1)

        self.session.deactivate_group("a")
        self.assertIsNone(self.session.generation("a"))
        self.session.activate_group("a")
        self.assertEqual(self.session.generation("a"), 2)

        self.assertFalse(self.session.apply_fetch_result(queued))
        self.assertEqual(self.session.objects, [])
        self.assertTrue(self.session.apply_fetch_result(
            FetchResult(group_id="a", raw=raw, generation=2)))
        self.assertIsNotNone(self.session.get(99998))

    def test_fetch_result_for_inactive_group_discarded(self):
        result = FetchResult(group_id="stations", raw=tle_text((DRAG_FREE_LINE1, DRAG_FREE_LINE2)))
        self.assertFalse(self.session.apply_fetch_result(result))
        self.assertEqual(self.session.objects, [])

    def test_fetch_result_applied(self):
        broken = ISS_LINE1[:68] + str((int(ISS_LINE1[68]) + 1) % 10)
        raw = tle_text((DRAG_FREE_LINE1, DRAG_FREE_LINE2), (broken, ISS_LINE2),
                       (DECAYING_LINE1, DECAYING_LINE2))
        self.session.activate_group("stations")
        self.assertTrue(self.session.apply_fetch_result(FetchResult(group_id="stations", raw=raw)))
        self.assertEqual(sorted(o.norad_id for o in self.session.objects), [99998, 99999])

    def test_failed_fetch_keeps_stale_data(self):
        self.session.activate_group("stations")
        self.session.apply_elements("stations", [self.drag_free])
        result = FetchResult(group_id="stations", error=FetchError("HTTP 503", status_code=503))
        self.assertFalse(self.session.apply_fetch_result(result))
        obj = self.session.get(99998)
        self.assertIs(obj.elements, self.drag_free)
        self.session.advance()
        self.assertEqual(obj.status, ObjectStatus.STALE)

    def test_advance_uses_clock(self):
        self.session.activate_group("a")
        self.session.apply_elements("a", [self.drag_free])
        epoch = self.session.advance()
        self.assertEqual(epoch, T0 + timedelta(days=5))
        self.assertEqual(self.session.get(99998).position.epoch, epoch)

    def test_parallel_advance_matches_serial(self):
        objects = [self.decaying, self.drag_free, parse_tle(ISS_LINE1, ISS_LINE2),
                   parse_tle(VANGUARD_LINE1, VANGUARD_LINE2), parse_tle(MOLNIYA_LINE1, MOLNIYA_LINE2)]
        to = T0 + timedelta(days=2)

        serial = self.session
        serial.activate_group("all")
        serial.apply_elements("all", objects)
        serial.advance(to)

        with ThreadPoolExecutor(max_workers=3) as pool:
            parallel = TrackingSession(make_config(parallel_threshold=1), self.clock, executor=pool)
            parallel.activate_group("all")
            parallel.apply_elements("all", objects)
            parallel.advance(to)

        for obj in serial.objects:
            other = parallel.get(obj.norad_id)
            self.assertEqual(other.status, obj.status)
            self.assertEqual(other.position, obj.position)

    def test_snapshot(self):
        self.session.activate_group("a")
        self.session.apply_elements("a", [self.decaying, self.drag_free])
        self.session.advance(T0 + timedelta(days=20))
        snapshot = self.session.snapshot()

        self.assertEqual(snapshot.epoch, T0 + timedelta(days=20))
        self.assertEqual([v.norad_id for v in snapshot.objects], [99998, 99999])
        calsat, debris = snapshot.objects
        self.assertEqual(calsat.name, "CALSAT")
        self.assertIsNone(calsat.annotation)
        self.assertEqual(len(calsat.history), 1)
        self.assertEqual(len(calsat.forecast), 10)
        self.assertEqual(debris.annotation, "decayed")
        self.assertEqual(debris.groups, ("a",))

    def test_owned_pool_closed(self):
        session = TrackingSession(make_config(parallel_threshold=1), self.clock)
        session.activate_group("a")
        session.apply_elements("a", [self.decaying, self.drag_free])
        session.advance(T0 + timedelta(hours=1))
        session.close()
        self.assertEqual(session.get(99998).status, ObjectStatus.OK)


if __name__ == "__main__":
    unittest.main()
