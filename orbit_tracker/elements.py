"""
Orbital Element Set

Normalized, immutable record of one object's mean orbital elements. Both
textual encodings (TLE and OMM) are parsed into this shape; nothing
downstream knows which encoding an element set came from.

Units follow the catalog conventions: angles in degrees, mean motion in
revolutions per day, B* in inverse Earth radii.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orbit_tracker.constants import SECONDS_PER_DAY


class OrbitalElementSet(BaseModel):
    """Mean elements of one object at one epoch."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    norad_id: int = Field(ge=0, le=339999)
    international_designator: str = ""
    classification: str = "U"
    epoch: datetime

    mean_motion: float = Field(gt=0)  # rev/day
    mean_motion_dot: float = 0.0  # rev/day^2 (first derivative / 2 in TLE terms)
    mean_motion_ddot: float = 0.0  # rev/day^3 (second derivative / 6)
    bstar: float = 0.0  # 1/earth radii

    inclination: float = Field(ge=0, le=180)
    raan: float
    eccentricity: float = Field(ge=0)
    arg_of_perigee: float
    mean_anomaly: float

    element_set_number: int = 0
    revolution_number: int = 0
    ephemeris_type: int = 0

    @field_validator("epoch")
    @classmethod
    def _epoch_is_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("epoch must be timezone-aware")
        return value.astimezone(timezone.utc)

    @field_validator("classification")
    @classmethod
    def _single_character(cls, value: str) -> str:
        value = value.strip() or "U"
        if len(value) != 1:
            raise ValueError("classification must be a single character")
        return value

    @property
    def period(self) -> timedelta:
        """Orbital period from the catalog (Kozai) mean motion."""
        return timedelta(seconds=SECONDS_PER_DAY / self.mean_motion)

    def age(self, at: Optional[datetime] = None) -> timedelta:
        """Time elapsed since epoch (negative for epochs in the future)."""
        at = at or datetime.now(timezone.utc)
        return at - self.epoch

    def label(self) -> str:
        return self.name or f"SAT_{self.norad_id}"
