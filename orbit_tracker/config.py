"""
Tracker Configuration

Options consumed by the tracking core. Values are fixed for the lifetime of
a session; reloading configuration means building a new session.

Defaults mirror the CelesTrak group list of the terminal tracker. Any option
can be overridden from the environment with an ``ORBIT_TRACKER_`` prefix,
e.g. ``ORBIT_TRACKER_CACHE_LIFETIME_MIN=30``.
"""

import os
import tempfile
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

ENV_PREFIX = "ORBIT_TRACKER_"

CELESTRAK_GP_URL = "https://celestrak.org/NORAD/elements/gp.php"


class GroupSource(BaseModel):
    """A selectable group of objects, addressed by COSPAR ID or CelesTrak group name."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str
    cospar_id: Optional[str] = None
    group: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_identifier(self):
        if (self.cospar_id is None) == (self.group is None):
            raise ValueError(
                f"group '{self.label}' needs exactly one of 'cospar_id' or 'group'"
            )
        return self

    @property
    def key(self) -> str:
        """CelesTrak identifier; unique across groups."""
        return self.cospar_id if self.cospar_id is not None else self.group

    @property
    def query(self) -> dict:
        """Query parameters selecting this group on the GP endpoint."""
        if self.cospar_id is not None:
            return {"INTDES": self.cospar_id}
        return {"GROUP": self.group}


DEFAULT_GROUPS: List[GroupSource] = [
    GroupSource(label="ISS", cospar_id="1998-067A"),
    GroupSource(label="CSS", cospar_id="2021-035A"),
    GroupSource(label="Weather", group="weather"),
    GroupSource(label="NOAA", group="noaa"),
    GroupSource(label="GOES", group="goes"),
    GroupSource(label="Earth resources", group="resource"),
    GroupSource(label="Search & rescue", group="sarsat"),
    GroupSource(label="Disaster monitoring", group="dmc"),
    GroupSource(label="GPS", group="gps-ops"),
    GroupSource(label="GLONASS", group="glo-ops"),
    GroupSource(label="Galileo", group="galileo"),
    GroupSource(label="Beidou", group="beidou"),
    GroupSource(label="Space & Earth Science", group="science"),
    GroupSource(label="Geodetic", group="geodetic"),
    GroupSource(label="Engineering", group="engineering"),
    GroupSource(label="Education", group="education"),
    GroupSource(label="Military", group="military"),
    GroupSource(label="Radar calibration", group="radar"),
    GroupSource(label="CubeSats", group="cubesat"),
]


class TrackerConfig(BaseModel):
    """Session configuration (immutable)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Element sets
    cache_lifetime_min: int = Field(default=120, ge=0)
    refresh_interval_min: float = Field(default=120.0, gt=0)
    celestrak_url: str = CELESTRAK_GP_URL
    fetch_timeout_sec: float = Field(default=30.0, gt=0)
    cache_dir: str = Field(default_factory=lambda: os.path.join(tempfile.gettempdir(), "tracker"))
    redis_url: Optional[str] = None

    # Trajectories
    trajectory_horizon_min: Optional[float] = Field(default=None, gt=0)
    trajectory_step_sec: float = Field(default=60.0, gt=0)
    history_length: int = Field(default=180, ge=1)
    recompute_threshold_sec: float = Field(default=60.0, ge=0)

    # Propagation
    max_propagation_days: float = Field(default=30.0, gt=0)
    parallel_threshold: int = Field(default=200, ge=1)
    max_workers: Optional[int] = Field(default=None, ge=1)

    # Display toggles passed through to the renderer
    follow_object: bool = True
    follow_smoothing: float = Field(default=0.3, ge=0, le=1)
    show_terminator: bool = True
    time_delta_min: int = Field(default=1, ge=1)

    groups: List[GroupSource] = Field(default_factory=lambda: list(DEFAULT_GROUPS))
    initial_groups: List[str] = Field(default_factory=list)

    @property
    def cache_lifetime(self) -> timedelta:
        return timedelta(minutes=self.cache_lifetime_min)

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(minutes=self.refresh_interval_min)

    @property
    def trajectory_step(self) -> timedelta:
        return timedelta(seconds=self.trajectory_step_sec)

    @property
    def recompute_threshold(self) -> timedelta:
        return timedelta(seconds=self.recompute_threshold_sec)

    def find_group(self, name: str) -> Optional[GroupSource]:
        """Look a group up by key (group name / COSPAR ID) or label, case-insensitively."""
        wanted = name.lower()
        for source in self.groups:
            if source.key.lower() == wanted or source.label.lower() == wanted:
                return source
        return None

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "TrackerConfig":
        """
        Build a configuration from ``ORBIT_TRACKER_*`` environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)
            **overrides: Explicit values, taking precedence over the environment

        Returns:
            Validated TrackerConfig
        """
        environ = os.environ if environ is None else environ
        values = {}

        scalar_fields = (
            "cache_lifetime_min", "refresh_interval_min", "celestrak_url",
            "fetch_timeout_sec", "cache_dir", "redis_url",
            "trajectory_horizon_min", "trajectory_step_sec", "history_length",
            "recompute_threshold_sec", "max_propagation_days",
            "parallel_threshold", "max_workers", "follow_object",
            "follow_smoothing", "show_terminator", "time_delta_min",
        )
        for name in scalar_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw

        groups = environ.get(ENV_PREFIX + "INITIAL_GROUPS")
        if groups:
            values["initial_groups"] = [g.strip() for g in groups.split(",") if g.strip()]

        values.update(overrides)
        return cls(**values)
