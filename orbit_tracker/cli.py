"""
Command Line Entry Point

Loads one or more groups (or a local element file), advances a tracking
session to the simulation time and prints one line per object:

    orbit-tracker --group ISS --group gps-ops
    orbit-tracker --tle-file stations.txt --offset-min 90 --json
"""

import argparse
import json
import logging
import os
import sys
from datetime import timedelta
from typing import List, Optional

from orbit_tracker import __version__
from orbit_tracker.cache import build_cache
from orbit_tracker.catalog import CelestrakClient, FetchResult, load_group
from orbit_tracker.clock import SimulationClock
from orbit_tracker.config import TrackerConfig
from orbit_tracker.errors import CacheError, FetchError
from orbit_tracker.logging_config import configure_logging, get_logger
from orbit_tracker.tracking import ObjectView, TrackingSession

logger = get_logger(__name__)

DEFAULT_GROUP = "ISS"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orbit-tracker",
        description="Print current positions of tracked orbital objects",
    )
    parser.add_argument(
        "--group", action="append", default=[],
        help="Group label, CelesTrak group name or COSPAR ID (repeatable)",
    )
    parser.add_argument("--tle-file", help="Read element sets (TLE, OMM JSON/CSV) from a file")
    parser.add_argument(
        "--offset-min", type=float, default=0.0,
        help="Shift the simulation clock by this many minutes",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _format_line(view: ObjectView) -> str:
    status = view.annotation or ""
    if view.position is None:
        return f"{view.name:<24} {view.norad_id:>6}  {'-':>8} {'-':>9} {'-':>9} {'-':>7}  {status}"
    p = view.position
    return (
        f"{view.name:<24} {view.norad_id:>6}  {p.latitude:8.3f} {p.longitude:9.3f} "
        f"{p.altitude_km:9.1f} {p.speed_km_s:7.3f}  {status}"
    ).rstrip()


def _as_dict(view: ObjectView) -> dict:
    p = view.position
    return {
        "norad_id": view.norad_id,
        "name": view.name,
        "groups": list(view.groups),
        "status": view.status.value,
        "status_reason": view.status_reason,
        "latitude": p.latitude if p else None,
        "longitude": p.longitude if p else None,
        "altitude_km": p.altitude_km if p else None,
        "speed_km_s": p.speed_km_s if p else None,
        "ground_speed_km_s": p.ground_speed_km_s if p else None,
    }


def _load_file(session: TrackingSession, path: str) -> None:
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()
    group_id = f"file:{os.path.basename(path)}"
    session.activate_group(group_id)
    session.apply_fetch_result(FetchResult(group_id=group_id, raw=raw))


def _load_groups(session: TrackingSession, config: TrackerConfig, names: List[str]) -> int:
    client = CelestrakClient.from_config(config)
    try:
        cache = build_cache(config)
    except (CacheError, ValueError) as e:
        logger.warning("cache_unavailable", error=str(e))
        cache = None

    failures = 0
    for name in names:
        source = config.find_group(name)
        if source is None:
            logger.error("unknown_group", group=name)
            failures += 1
            continue
        try:
            raw = load_group(source, client, cache, config.cache_lifetime)
        except FetchError as e:
            logger.error("group_unavailable", group=source.key, error=str(e))
            failures += 1
            continue
        session.activate_group(source.key)
        session.apply_fetch_result(FetchResult(group_id=source.key, raw=raw))
    return failures


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    config = TrackerConfig.from_env()
    clock = SimulationClock(offset=timedelta(minutes=args.offset_min))
    session = TrackingSession(config, clock)

    try:
        if args.tle_file:
            _load_file(session, args.tle_file)
        names = args.group or list(config.initial_groups)
        if not names and not args.tle_file:
            names = [DEFAULT_GROUP]
        failures = _load_groups(session, config, names)

        epoch = session.advance()
        snapshot = session.snapshot()
    finally:
        session.close()

    if args.json:
        json.dump({"epoch": epoch.isoformat(), "objects": [_as_dict(v) for v in snapshot.objects]},
                  sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        print(f"# {epoch.isoformat()}  {len(snapshot.objects)} objects")
        for view in snapshot.objects:
            print(_format_line(view))

    if not snapshot.objects:
        return 1
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
