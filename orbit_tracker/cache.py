"""
Element Set Cache

Stores raw element text per group so that restarts and repeated
activations do not hit the network. Two backends:

- FileElementCache: one file per group under the system temp directory,
  aged by modification time
- RedisElementCache: SETEX entries expiring after the cache lifetime

Both raise CacheError on storage failures; callers treat that as a miss.
"""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import redis

from orbit_tracker.errors import CacheError
from orbit_tracker.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    raw: str
    stored_at: datetime

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or datetime.now(timezone.utc)) - self.stored_at

    def is_fresh(self, lifetime: timedelta, now: Optional[datetime] = None) -> bool:
        return self.age(now) <= lifetime


class ElementCache(Protocol):
    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    def put(self, key: str, raw: str) -> None:
        ...


class FileElementCache:
    """
    File system cache.

    Args:
        directory: Cache directory, created on first write
        extension: File extension of the stored text
    """

    def __init__(self, directory: str, extension: str = "json"):
        self.directory = directory
        self.extension = extension

    def path(self, key: str) -> str:
        filename = key.lower().replace(os.sep, "_").replace("/", "_")
        return os.path.join(self.directory, f"{filename}.{self.extension}")

    def get(self, key: str) -> Optional[CacheEntry]:
        path = self.path(key)
        try:
            mtime = os.path.getmtime(path)
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheError(f"cannot read {path}: {e}") from e
        return CacheEntry(raw=raw, stored_at=datetime.fromtimestamp(mtime, timezone.utc))

    def put(self, key: str, raw: str) -> None:
        path = self.path(key)
        tmp_path = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(raw)
            os.replace(tmp_path, path)
        except OSError as e:
            raise CacheError(f"cannot write {path}: {e}") from e


class RedisElementCache:
    """
    Redis cache.

    Args:
        client: Redis client, or None to connect to ``url``
        url: Redis URL used when no client is given
        lifetime: Entry time-to-live
        prefix: Key namespace
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: Optional[str] = None,
                 lifetime: timedelta = timedelta(minutes=120), prefix: str = "tle_data:"):
        if client is None:
            if url is None:
                raise ValueError("either a Redis client or a URL is required")
            client = redis.from_url(url, decode_responses=True)
        self.client = client
        self.lifetime = lifetime
        self.prefix = prefix

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            payload = self.client.get(self.prefix + key)
        except redis.exceptions.RedisError as e:
            raise CacheError(f"redis read failed for {key}: {e}") from e
        if payload is None:
            return None
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            record = json.loads(payload)
            return CacheEntry(raw=record["raw"],
                              stored_at=datetime.fromisoformat(record["stored_at"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("cache_entry_corrupt", key=key, error=str(e))
            return None

    def put(self, key: str, raw: str) -> None:
        record = {"raw": raw, "stored_at": datetime.now(timezone.utc).isoformat()}
        try:
            self.client.setex(self.prefix + key, max(int(self.lifetime.total_seconds()), 1),
                              json.dumps(record))
        except redis.exceptions.RedisError as e:
            raise CacheError(f"redis write failed for {key}: {e}") from e


def build_cache(config) -> ElementCache:
    """Cache backend for a TrackerConfig: Redis when a URL is configured."""
    if config.redis_url:
        return RedisElementCache(url=config.redis_url, lifetime=config.cache_lifetime)
    return FileElementCache(config.cache_dir)
