"""
Tracking Session

Owns the set of tracked objects and keeps their positions current under
the simulation clock.

- Trajectory: bounded, time-ordered history of geodetic samples
- TrackedObject: one object's elements, propagator state, current
  position, status, history and forecast
- TrackingSession: group activation, element application, fan-out of
  propagation over objects and read-only snapshots for rendering

Failures never stop the session. An object whose elements cannot be
initialized is excluded with a recorded reason; an object that cannot be
propagated keeps its last good position and carries a status annotation.
"""

import threading
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import (Deque, Dict, Iterable, Iterator, List, Optional, Set,
                    Tuple)

from orbit_tracker.catalog import FetchResult
from orbit_tracker.clock import SimulationClock
from orbit_tracker.config import TrackerConfig
from orbit_tracker.elements import OrbitalElementSet
from orbit_tracker.errors import InitializationError, PropagationError
from orbit_tracker.frames import GeodeticPosition, to_geodetic_position
from orbit_tracker.logging_config import get_logger
from orbit_tracker.propagator import (PropagatorState, initialize, orbital_period,
                                      propagate)
from orbit_tracker.time_scales import as_utc, to_dynamic_time
from orbit_tracker.tle_parser import parse_batch

logger = get_logger(__name__)


class ObjectStatus(Enum):
    OK = "ok"
    STALE = "stale"  # element refresh failed, older elements in use
    DECAYED = "decayed"
    OUT_OF_RANGE = "out of range"


class Trajectory:
    """
    Bounded sequence of samples, strictly increasing in time.

    Args:
        maxlen: Number of samples kept; the oldest are evicted first
    """

    def __init__(self, maxlen: Optional[int] = None):
        self._samples: Deque[GeodeticPosition] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[GeodeticPosition]:
        return iter(self._samples)

    @property
    def first(self) -> Optional[GeodeticPosition]:
        return self._samples[0] if self._samples else None

    @property
    def last(self) -> Optional[GeodeticPosition]:
        return self._samples[-1] if self._samples else None

    def append(self, sample: GeodeticPosition) -> None:
        """
        Add a sample at the end.

        Raises:
            ValueError: If the sample is not later than the last one
        """
        if self._samples and sample.epoch <= self._samples[-1].epoch:
            raise ValueError(
                f"sample at {sample.epoch.isoformat()} is not after "
                f"{self._samples[-1].epoch.isoformat()}"
            )
        self._samples.append(sample)

    def drop_before(self, epoch: datetime) -> int:
        """Discard samples earlier than ``epoch``; returns how many were dropped."""
        dropped = 0
        while self._samples and self._samples[0].epoch < epoch:
            self._samples.popleft()
            dropped += 1
        return dropped

    def drop_after(self, epoch: datetime) -> int:
        """Discard samples at or after ``epoch``; returns how many were dropped."""
        dropped = 0
        while self._samples and self._samples[-1].epoch >= epoch:
            self._samples.pop()
            dropped += 1
        return dropped

    def clear(self) -> None:
        self._samples.clear()

    def points(self) -> List[Tuple[float, float]]:
        """(longitude, latitude) pairs for drawing."""
        return [(s.longitude, s.latitude) for s in self._samples]


def forecast_positions(state: PropagatorState, start: datetime, horizon: timedelta,
                       step: timedelta, max_days: float = 30.0) -> Iterator[GeodeticPosition]:
    """
    Future samples of an object, produced lazily.

    Sampling starts one step after ``start`` and ends at ``start + horizon``.
    The sequence stops early at the first instant that cannot be propagated.

    Args:
        state: Initialized propagator state
        start: Anchor time
        horizon: How far ahead to sample
        step: Sample spacing

    Yields:
        GeodeticPosition samples in increasing time order
    """
    if step <= timedelta(0):
        raise ValueError("step must be positive")
    start = as_utc(start)
    end = start + horizon
    current = start + step
    while current <= end:
        try:
            vector = propagate(state, to_dynamic_time(current), max_days)
        except PropagationError:
            return
        yield to_geodetic_position(vector, state)
        current += step


class TrackedObject:
    """
    One object under tracking.

    Args:
        elements: Initial element set
        config: Session configuration
        groups: Group keys the object belongs to

    Raises:
        InitializationError: If the element set cannot be initialized
    """

    def __init__(self, elements: OrbitalElementSet, config: TrackerConfig,
                 groups: Iterable[str] = ()):
        self._config = config
        self._lock = threading.Lock()
        self.elements = elements
        self.propagator = initialize(elements)
        self.groups: Set[str] = set(groups)

        self.position: Optional[GeodeticPosition] = None
        self.status = ObjectStatus.OK
        self.status_reason: Optional[str] = None
        self._stale_reason: Optional[str] = None

        self.history = Trajectory(maxlen=config.history_length)
        self.forecast: Tuple[GeodeticPosition, ...] = ()
        self._forecast_anchor: Optional[datetime] = None

    @property
    def norad_id(self) -> int:
        return self.elements.norad_id

    @property
    def label(self) -> str:
        return self.elements.label()

    @property
    def horizon(self) -> timedelta:
        if self._config.trajectory_horizon_min is not None:
            return timedelta(minutes=self._config.trajectory_horizon_min)
        return orbital_period(self.propagator)

    def advance(self, to: datetime) -> Optional[GeodeticPosition]:
        """
        Move the object to a new instant.

        Args:
            to: Target instant (UTC)

        Returns:
            The current position; the previous one if propagation failed
        """
        to = as_utc(to)
        with self._lock:
            try:
                vector = propagate(self.propagator, to_dynamic_time(to),
                                   self._config.max_propagation_days)
            except PropagationError as e:
                self._set_failure(e)
                return self.position

            position = to_geodetic_position(vector, self.propagator)
            self.position = position
            if self._stale_reason is not None:
                self.status, self.status_reason = ObjectStatus.STALE, self._stale_reason
            else:
                self.status, self.status_reason = ObjectStatus.OK, None

            # A clock rewind invalidates samples from the abandoned future
            if self.history.last is not None and position.epoch <= self.history.last.epoch:
                self.history.drop_after(position.epoch)
            last = self.history.last
            if last is None or position.epoch - last.epoch >= self._config.trajectory_step:
                self.history.append(position)

            if self._forecast_stale(to):
                self.forecast = tuple(forecast_positions(
                    self.propagator, to, self.horizon, self._config.trajectory_step,
                    self._config.max_propagation_days,
                ))
                self._forecast_anchor = to
            return position

    def refresh_elements(self, elements: OrbitalElementSet) -> None:
        """
        Swap in a newer element set.

        History samples older than the new epoch are dropped and the
        forecast is cleared so that the next advance regenerates it.

        Raises:
            InitializationError: If the new element set cannot be initialized;
                the object keeps its previous elements
        """
        state = initialize(elements)
        with self._lock:
            self.elements = elements
            self.propagator = state
            self.history.drop_before(elements.epoch)
            self.forecast = ()
            self._forecast_anchor = None
            self._stale_reason = None
            self.status, self.status_reason = ObjectStatus.OK, None
        logger.debug("elements_refreshed", norad_id=elements.norad_id,
                     epoch=elements.epoch.isoformat())

    def mark_stale(self, reason: str) -> None:
        with self._lock:
            self._stale_reason = reason
            if self.status is ObjectStatus.OK:
                self.status, self.status_reason = ObjectStatus.STALE, reason

    def _forecast_stale(self, to: datetime) -> bool:
        if self._forecast_anchor is None:
            return True
        return abs(to - self._forecast_anchor) > self._config.recompute_threshold

    def _set_failure(self, error: PropagationError) -> None:
        if error.decayed:
            if self.status is not ObjectStatus.DECAYED:
                logger.info("object_decayed", norad_id=self.norad_id, reason=str(error))
            self.status = ObjectStatus.DECAYED
            self.forecast = ()
            self._forecast_anchor = None
        else:
            self.status = ObjectStatus.OUT_OF_RANGE
        self.status_reason = str(error)


@dataclass(frozen=True)
class ObjectView:
    """Read-only view of one object for the rendering collaborator."""

    norad_id: int
    name: str
    groups: Tuple[str, ...]
    position: Optional[GeodeticPosition]
    status: ObjectStatus
    status_reason: Optional[str]
    history: Tuple[Tuple[float, float], ...]
    forecast: Tuple[Tuple[float, float], ...]

    @property
    def annotation(self) -> Optional[str]:
        if self.status is ObjectStatus.OK:
            return None
        return self.status.value


@dataclass(frozen=True)
class SessionSnapshot:
    epoch: Optional[datetime]
    objects: Tuple[ObjectView, ...]


class TrackingSession:
    """
    The set of tracked objects.

    Args:
        config: Session configuration
        clock: Simulation clock (default: wall-clock time)
        executor: Pool for parallel advance; one is created on demand
    """

    def __init__(self, config: Optional[TrackerConfig] = None,
                 clock: Optional[SimulationClock] = None,
                 executor: Optional[Executor] = None):
        self.config = config or TrackerConfig()
        self.clock = clock or SimulationClock()
        self._executor = executor
        self._owns_executor = False
        self._lock = threading.RLock()
        self._objects: Dict[int, TrackedObject] = {}
        self._active_groups: Set[str] = set()
        self._generations: Dict[str, int] = {}
        self.exclusions: Dict[int, str] = {}
        self.epoch: Optional[datetime] = None

    @property
    def active_groups(self) -> Set[str]:
        with self._lock:
            return set(self._active_groups)

    @property
    def objects(self) -> List[TrackedObject]:
        with self._lock:
            return list(self._objects.values())

    def get(self, norad_id: int) -> Optional[TrackedObject]:
        with self._lock:
            return self._objects.get(norad_id)

    def activate_group(self, group_id: str) -> bool:
        """Mark a group active; returns False if it already was."""
        with self._lock:
            if group_id in self._active_groups:
                return False
            self._active_groups.add(group_id)
            self._generations[group_id] = self._generations.get(group_id, 0) + 1
        logger.info("group_activated", group=group_id)
        return True

    def generation(self, group_id: str) -> Optional[int]:
        """Activation count of an active group, or None if it is inactive."""
        with self._lock:
            if group_id not in self._active_groups:
                return None
            return self._generations[group_id]

    def deactivate_group(self, group_id: str) -> bool:
        """
        Mark a group inactive and destroy objects that belong to no active group.

        Returns:
            False if the group was not active
        """
        with self._lock:
            if group_id not in self._active_groups:
                return False
            self._active_groups.discard(group_id)
            removed = 0
            for norad_id, obj in list(self._objects.items()):
                obj.groups.discard(group_id)
                if not obj.groups & self._active_groups:
                    del self._objects[norad_id]
                    removed += 1
        logger.info("group_deactivated", group=group_id, removed=removed)
        return True

    def apply_elements(self, group_id: str, elements: Iterable[OrbitalElementSet]) -> int:
        """
        Create or refresh the objects of a group.

        Objects that were in the group but are absent from ``elements``
        leave it (and are destroyed if no other active group holds them).
        Element sets that cannot be initialized are recorded in
        ``exclusions``.

        Args:
            group_id: Group key
            elements: Complete element sets of the group

        Returns:
            Number of objects now in the group
        """
        with self._lock:
            if group_id not in self._active_groups:
                logger.warning("elements_for_inactive_group", group=group_id)
                return 0

            members: Set[int] = set()
            for element_set in elements:
                norad_id = element_set.norad_id
                obj = self._objects.get(norad_id)
                try:
                    if obj is None:
                        obj = TrackedObject(element_set, self.config, groups=(group_id,))
                        self._objects[norad_id] = obj
                    elif element_set.epoch > obj.elements.epoch:
                        obj.refresh_elements(element_set)
                    elif element_set.epoch < obj.elements.epoch:
                        logger.debug("older_elements_ignored", norad_id=norad_id,
                                     group=group_id)
                except InitializationError as e:
                    self.exclusions[norad_id] = str(e)
                    logger.warning("object_excluded", norad_id=norad_id,
                                   group=group_id, reason=str(e))
                    if obj is None:
                        continue
                else:
                    self.exclusions.pop(norad_id, None)
                obj.groups.add(group_id)
                members.add(norad_id)

            for norad_id, obj in list(self._objects.items()):
                if group_id in obj.groups and norad_id not in members:
                    obj.groups.discard(group_id)
                    if not obj.groups & self._active_groups:
                        del self._objects[norad_id]

        logger.info("elements_applied", group=group_id, objects=len(members))
        return len(members)

    def apply_fetch_result(self, result: FetchResult) -> bool:
        """
        Apply one message from the element refresher.

        Results for groups deactivated since the fetch began are discarded,
        including results tagged with an earlier activation of a group that
        has since been reactivated.
        A failed fetch keeps the group's current elements and marks its
        objects stale.

        Returns:
            True if new elements were applied
        """
        current = self.generation(result.group_id)
        if current is None or (result.generation is not None and result.generation != current):
            logger.debug("fetch_result_discarded", group=result.group_id,
                         generation=result.generation)
            return False

        if result.error is not None:
            logger.warning("fetch_failed", group=result.group_id, error=str(result.error))
            for obj in self.objects:
                if result.group_id in obj.groups:
                    obj.mark_stale(f"refresh failed: {result.error}")
            return False

        elements, errors = parse_batch(result.raw or "")
        for error in errors:
            logger.warning("element_set_skipped", group=result.group_id, error=str(error))
        self.apply_elements(result.group_id, elements)
        return True

    def advance(self, to: Optional[datetime] = None) -> datetime:
        """
        Advance every object to ``to`` (default: the clock's current time).

        Returns:
            The instant advanced to
        """
        to = as_utc(to) if to is not None else self.clock.time()
        objects = self.objects
        if len(objects) > self.config.parallel_threshold:
            list(self._pool().map(lambda obj: obj.advance(to), objects))
        else:
            for obj in objects:
                obj.advance(to)
        with self._lock:
            self.epoch = to
        return to

    def snapshot(self) -> SessionSnapshot:
        """Read-only view of every object at the last advanced instant."""
        with self._lock:
            epoch = self.epoch
            objects = sorted(self._objects.values(), key=lambda o: o.norad_id)
        views = []
        for obj in objects:
            forecast = tuple((s.longitude, s.latitude) for s in obj.forecast
                             if epoch is None or s.epoch > epoch)
            views.append(ObjectView(
                norad_id=obj.norad_id,
                name=obj.label,
                groups=tuple(sorted(obj.groups)),
                position=obj.position,
                status=obj.status,
                status_reason=obj.status_reason,
                history=tuple(obj.history.points()),
                forecast=forecast,
            ))
        return SessionSnapshot(epoch=epoch, objects=tuple(views))

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._owns_executor = False

    def _pool(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
            self._owns_executor = True
        return self._executor
