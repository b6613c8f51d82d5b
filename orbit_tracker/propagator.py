"""
SGP4 Orbit Propagator

Initializes the SGP4/SDP4 model from a normalized element set and
propagates it to arbitrary epochs, past or future. The perturbation model
itself is the sgp4 library (Vallado's reference code, WGS-72, improved
mode); this module owns the pieces around it:

- One-time initialization into an immutable PropagatorState, whose branch
  (near-Earth vs deep-space) is fixed at that moment
- Classification of library failures into Decayed vs OutOfValidityRange
- A validity window on time since epoch
- Batch propagation over numpy arrays for trajectory sampling

Branch selection follows the published algorithm: orbits with a period of
225 minutes or more use the deep-space (SDP4) terms, including lunar/solar
perturbations and 12h/24h resonance integration.

References:
    Hoots, F. R., & Roehrich, R. L. (1980). "Spacetrack Report No. 3"
    Vallado, D. A., et al. (2006). "Revisiting Spacetrack Report #3." AIAA 2006-6753
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np
from sgp4.api import WGS72, Satrec
from sgp4.earth_gravity import wgs72

from orbit_tracker.constants import (
    DECAY_ALTITUDE_KM,
    DEEP_SPACE_PERIOD_MIN,
    SGP4_EPOCH_JD,
    TWOPI,
    WGS84_A_KM,
    WGS84_B_KM,
    XPDOTP,
)
from orbit_tracker.elements import OrbitalElementSet
from orbit_tracker.errors import (
    InitializationError,
    PropagationError,
    PropagationErrorKind,
)
from orbit_tracker.logging_config import get_logger
from orbit_tracker.time_scales import DynamicTime

logger = get_logger(__name__)

DEFAULT_MAX_PROPAGATION_DAYS = 30.0

# SGP4 error code meanings
SGP4_ERROR_CODES = {
    0: "No error",
    1: "Mean eccentricity < 0.0 or > 1.0",
    2: "Mean motion < 0.0",
    3: "Perturbed eccentricity < 0.0 or > 1.0",
    4: "Semi-latus rectum < 0.0",
    5: "Epoch elements are sub-orbital",
    6: "Satellite has decayed",
}

# Mean-element failures that drag can cause when propagating forward
_DRAG_DRIVEN_ERRORS = (1, 2, 3, 4)

_SGP4_EPOCH = datetime(1949, 12, 31, tzinfo=timezone.utc)

# Resonance windows of the deep-space initialization (rad/min)
_SYNCHRONOUS_BAND = (0.0034906585, 0.0052359877)
_HALF_DAY_BAND = (8.26e-3, 9.24e-3)


class Resonance(Enum):
    NONE = 0
    ONE_DAY = 1  # geosynchronous
    HALF_DAY = 2  # Molniya-type, 12 hour


@dataclass(frozen=True)
class NearEarthBranch:
    """Period under 225 minutes: secular gravity and drag terms only."""

    simplified_drag: bool  # perigee below 220 km truncates the drag series
    perigee_km: float


@dataclass(frozen=True)
class DeepSpaceBranch:
    """Period of 225 minutes or more: adds lunar/solar and resonance terms."""

    resonance: Resonance
    perigee_km: float


Branch = Union[NearEarthBranch, DeepSpaceBranch]


@dataclass(frozen=True, eq=False)
class PropagatorState:
    """
    Coefficients derived once from an element set.

    Attributes:
        elements: Source element set
        satrec: Initialized sgp4 model
        branch: NearEarthBranch or DeepSpaceBranch, fixed for this state
        epoch_jd: Whole part of the epoch Julian date used by the model
        epoch_fraction: Fractional part of the epoch Julian date
        mean_motion: Brouwer (un-Kozai'd) mean motion in rad/min
        semi_major_axis_km: Brouwer mean semi-major axis
        drag_c1: Secular drag coefficient C1 (1/min); zero without drag
    """

    elements: OrbitalElementSet
    satrec: Satrec
    branch: Branch
    epoch_jd: float
    epoch_fraction: float
    mean_motion: float
    semi_major_axis_km: float
    drag_c1: float

    @property
    def deep_space(self) -> bool:
        return isinstance(self.branch, DeepSpaceBranch)

    @property
    def period(self) -> timedelta:
        return orbital_period(self)

    @property
    def decay_horizon(self) -> Optional[timedelta]:
        """
        Upper bound on the lifetime after epoch: 1/C1, where the secular drag
        factor on the semi-major axis reaches zero. Propagation normally reports
        decay well before this, once the eccentricity or altitude gives out.
        None without drag.
        """
        if self.drag_c1 <= 0.0:
            return None
        return timedelta(minutes=1.0 / self.drag_c1)


@dataclass(frozen=True, eq=False)
class StateVector:
    """
    Position and velocity in the TEME frame.

    Attributes:
        epoch: Instant of the state
        position: TEME position [x, y, z] (km)
        velocity: TEME velocity [vx, vy, vz] (km/s)
        minutes_since_epoch: Offset from the element set epoch
    """

    epoch: DynamicTime
    position: np.ndarray
    velocity: np.ndarray
    minutes_since_epoch: float

    @property
    def radius_km(self) -> float:
        return float(np.linalg.norm(self.position))

    @property
    def speed_km_s(self) -> float:
        return float(np.linalg.norm(self.velocity))


def initialize(elements: OrbitalElementSet) -> PropagatorState:
    """
    Build the SGP4 model for an element set.

    Args:
        elements: Normalized element set (from TLE or OMM)

    Returns:
        PropagatorState ready for propagate()

    Raises:
        InitializationError: If the element set yields degenerate coefficients
    """
    norad_id = elements.norad_id
    if elements.eccentricity >= 1.0:
        raise InitializationError(
            f"eccentricity {elements.eccentricity} is not a closed orbit", norad_id)

    no_kozai = elements.mean_motion / XPDOTP  # rad/min
    epoch_days = (elements.epoch - _SGP4_EPOCH).total_seconds() / 86400.0

    satrec = Satrec()
    satrec.sgp4init(
        WGS72,
        "i",
        norad_id,
        epoch_days,
        elements.bstar,
        elements.mean_motion_dot / (XPDOTP * 1440.0),
        elements.mean_motion_ddot / (XPDOTP * 1440.0 * 1440.0),
        elements.eccentricity,
        math.radians(elements.arg_of_perigee),
        math.radians(elements.inclination),
        math.radians(elements.mean_anomaly),
        no_kozai,
        math.radians(elements.raan),
    )
    if satrec.error != 0:
        raise InitializationError(
            f"sgp4 initialization failed: "
            f"{SGP4_ERROR_CODES.get(satrec.error, f'error {satrec.error}')}", norad_id)

    # Brouwer mean motion from the initialized semi-major axis (Earth radii)
    mean_motion = wgs72.xke / satrec.a ** 1.5
    if not mean_motion > 0.0:
        raise InitializationError("Brouwer mean motion is not positive", norad_id)

    # Semi-major axis in Earth radii
    ao = (wgs72.xke / mean_motion) ** (2.0 / 3.0)
    if ao < 1.0:
        raise InitializationError(
            f"semi-major axis {ao * wgs72.radiusearthkm:.1f} km is inside the Earth", norad_id)

    perigee_km = (ao * (1.0 - elements.eccentricity) - 1.0) * wgs72.radiusearthkm
    if TWOPI / mean_motion >= DEEP_SPACE_PERIOD_MIN:
        branch = DeepSpaceBranch(
            resonance=_resonance(mean_motion, elements.eccentricity),
            perigee_km=perigee_km,
        )
    else:
        branch = NearEarthBranch(simplified_drag=perigee_km < 220.0, perigee_km=perigee_km)

    state = PropagatorState(
        elements=elements,
        satrec=satrec,
        branch=branch,
        epoch_jd=satrec.jdsatepoch,
        epoch_fraction=satrec.jdsatepochF,
        mean_motion=mean_motion,
        semi_major_axis_km=ao * wgs72.radiusearthkm,
        drag_c1=_drag_c1(ao, mean_motion, elements),
    )
    logger.debug("propagator_initialized", norad_id=norad_id,
                 branch=type(branch).__name__, perigee_km=round(perigee_km, 1))
    return state


def propagate(state: PropagatorState, target: DynamicTime,
              max_days: float = DEFAULT_MAX_PROPAGATION_DAYS) -> StateVector:
    """
    Propagate to a target epoch.

    Args:
        state: Initialized propagator state
        target: Target instant
        max_days: Validity window on |time since epoch|

    Returns:
        StateVector in TEME

    Raises:
        PropagationError: DECAYED when the orbit has collapsed, or
            OUT_OF_VALIDITY_RANGE when the model's assumptions no longer hold
    """
    tsince = target.minutes_since(state.epoch_jd, state.epoch_fraction)
    error, position, velocity = state.satrec.sgp4(target.jd, target.fraction)
    return _classify(state, target, tsince, error, position, velocity, max_days)


def propagate_batch(state: PropagatorState, targets: Sequence[DynamicTime],
                    max_days: float = DEFAULT_MAX_PROPAGATION_DAYS
                    ) -> List[Union[StateVector, PropagationError]]:
    """
    Propagate to many epochs in one vectorized library call.

    Args:
        state: Initialized propagator state
        targets: Target instants
        max_days: Validity window on |time since epoch|

    Returns:
        One StateVector or PropagationError per target, in order
    """
    if not targets:
        return []
    jd = np.array([t.jd for t in targets])
    fr = np.array([t.fraction for t in targets])
    errors, positions, velocities = state.satrec.sgp4_array(jd, fr)

    results: List[Union[StateVector, PropagationError]] = []
    for i, target in enumerate(targets):
        tsince = target.minutes_since(state.epoch_jd, state.epoch_fraction)
        try:
            results.append(_classify(state, target, tsince, int(errors[i]),
                                     positions[i], velocities[i], max_days))
        except PropagationError as e:
            results.append(e)
    return results


def orbital_period(state: PropagatorState) -> timedelta:
    """Orbital period from the Brouwer mean motion."""
    return timedelta(minutes=TWOPI / state.mean_motion)


def ellipsoid_altitude(position) -> float:
    """Height above the WGS-84 ellipsoid, measured along the geocentric radius (km)."""
    radius = float(np.linalg.norm(position))
    sin_lat = float(position[2]) / radius
    cos_sq = 1.0 - sin_lat * sin_lat
    surface = WGS84_A_KM * WGS84_B_KM / math.sqrt(
        WGS84_B_KM * WGS84_B_KM * cos_sq + WGS84_A_KM * WGS84_A_KM * sin_lat * sin_lat)
    return radius - surface


def _classify(state: PropagatorState, target: DynamicTime, tsince: float, error: int,
              position, velocity, max_days: float) -> StateVector:
    norad_id = state.elements.norad_id
    drag_forward = tsince > 0.0 and state.elements.bstar > 0.0

    if error == 6 or (error in _DRAG_DRIVEN_ERRORS and drag_forward):
        raise PropagationError(
            PropagationErrorKind.DECAYED,
            f"object {norad_id}: {SGP4_ERROR_CODES.get(error)} at {tsince:.1f} min",
            sgp4_error=error, minutes_since_epoch=tsince)

    # 1 - C1 t is the secular drag factor on the semi-major axis
    if tsince > 0.0 and state.drag_c1 * tsince >= 1.0:
        raise PropagationError(
            PropagationErrorKind.DECAYED,
            f"object {norad_id}: drag term exhausted after {1.0 / state.drag_c1:.1f} min",
            sgp4_error=error, minutes_since_epoch=tsince)

    if error != 0:
        raise PropagationError(
            PropagationErrorKind.OUT_OF_VALIDITY_RANGE,
            f"object {norad_id}: {SGP4_ERROR_CODES.get(error, f'error {error}')}",
            sgp4_error=error, minutes_since_epoch=tsince)

    r = np.array(position, dtype=float)
    v = np.array(velocity, dtype=float)
    if not (np.all(np.isfinite(r)) and np.all(np.isfinite(v))):
        raise PropagationError(
            PropagationErrorKind.OUT_OF_VALIDITY_RANGE,
            f"object {norad_id}: non-finite state at {tsince:.1f} min",
            minutes_since_epoch=tsince)

    vector = StateVector(epoch=target, position=r, velocity=v, minutes_since_epoch=tsince)

    altitude = ellipsoid_altitude(r)
    if altitude < DECAY_ALTITUDE_KM:
        raise PropagationError(
            PropagationErrorKind.DECAYED,
            f"object {norad_id}: altitude {altitude:.1f} km is below re-entry",
            minutes_since_epoch=tsince)

    if abs(tsince) > max_days * 1440.0:
        raise PropagationError(
            PropagationErrorKind.OUT_OF_VALIDITY_RANGE,
            f"object {norad_id}: {abs(tsince) / 1440.0:.1f} days from epoch exceeds "
            f"{max_days:g} day window",
            minutes_since_epoch=tsince, degraded=vector)

    return vector


def _resonance(mean_motion: float, eccentricity: float) -> Resonance:
    if _SYNCHRONOUS_BAND[0] < mean_motion < _SYNCHRONOUS_BAND[1]:
        return Resonance.ONE_DAY
    if _HALF_DAY_BAND[0] <= mean_motion <= _HALF_DAY_BAND[1] and eccentricity >= 0.5:
        return Resonance.HALF_DAY
    return Resonance.NONE


def _drag_c1(ao: float, mean_motion: float, elements: OrbitalElementSet) -> float:
    """
    Secular drag coefficient C1 as computed by sgp4init.

    Args:
        ao: Brouwer semi-major axis (Earth radii)
        mean_motion: Brouwer mean motion (rad/min)
        elements: Element set (eccentricity, inclination, B*)

    Returns:
        C1 in 1/min
    """
    if elements.bstar == 0.0:
        return 0.0

    radius = wgs72.radiusearthkm
    ecc = elements.eccentricity
    cosio = math.cos(math.radians(elements.inclination))
    con41 = 3.0 * cosio * cosio - 1.0
    omeosq = 1.0 - ecc * ecc

    # Atmospheric density parameters, lowered for perigees under 156 km
    perigee = (ao * (1.0 - ecc) - 1.0) * radius
    sfour = 78.0 / radius + 1.0
    qzms24 = ((120.0 - 78.0) / radius) ** 4
    if perigee < 156.0:
        sfour = perigee - 78.0
        if perigee < 98.0:
            sfour = 20.0
        qzms24 = ((120.0 - sfour) / radius) ** 4
        sfour = sfour / radius + 1.0

    if ao <= sfour or omeosq <= 0.0:
        raise InitializationError(
            f"perigee {perigee:.1f} km is below the drag model floor", elements.norad_id)

    tsi = 1.0 / (ao - sfour)
    eta = ao * ecc * tsi
    etasq = eta * eta
    eeta = ecc * eta
    psisq = abs(1.0 - etasq)
    coef1 = qzms24 * tsi ** 4 / psisq ** 3.5
    cc2 = coef1 * mean_motion * (
        ao * (1.0 + 1.5 * etasq + eeta * (4.0 + etasq))
        + 0.375 * wgs72.j2 * tsi / psisq * con41 * (8.0 + 3.0 * etasq * (8.0 + etasq))
    )
    return elements.bstar * cc2
