"""
Orbit Tracker Core

Real-time tracking of orbital objects: element set ingestion (TLE/OMM),
SGP4/SDP4 propagation, TEME to geodetic conversion and a tracking session
that keeps per-object positions and trajectories under a shiftable
simulation clock.

Modules:
    time_scales: UTC/TAI/TT conversion, leap seconds, sidereal time
    elements: Normalized orbital element record
    tle_parser: TLE and OMM parsing and re-serialization
    propagator: SGP4 initialization and propagation with error classification
    frames: TEME to ECEF to geodetic transformations
    observation: Terminator, footprint, sky track and pass windows
    clock: Simulation clock with time shift
    tracking: Tracked objects, trajectories and the tracking session
    catalog: CelesTrak element fetching
    cache: Element text caching (file system or Redis)
    refresh: Periodic asynchronous element refresh

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

__version__ = "0.2.0"
