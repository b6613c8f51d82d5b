"""
CelesTrak Element Catalog

Fetches current element sets for a group from the CelesTrak GP endpoint
and combines the fetch with the element cache:

    cache hit (within lifetime) -> cached text
    cache miss / expired        -> fetch, store, return
    fetch failed                -> expired cached text if any, else FetchError

Network calls are blocking (requests); the async variants run them in the
event loop's default executor.
"""

import asyncio
import functools
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import requests

from orbit_tracker.cache import ElementCache
from orbit_tracker.config import CELESTRAK_GP_URL, GroupSource
from orbit_tracker.errors import CacheError, FetchError
from orbit_tracker.logging_config import get_logger

logger = get_logger(__name__)

# CelesTrak answers unknown groups with 200 and this text
_NO_DATA = "No GP data found"


@dataclass(frozen=True)
class FetchResult:
    """
    Message from the refresh task to the tracking session.

    Exactly one of ``raw`` (element text) or ``error`` is set. ``generation``
    is the group's activation count when the fetch started; untagged results
    apply to any activation.
    """

    group_id: str
    raw: Optional[str] = None
    error: Optional[Exception] = None
    generation: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CelestrakClient:
    """
    HTTP client for the GP endpoint.

    Args:
        base_url: GP endpoint URL
        timeout: Request timeout in seconds
        session: requests session to reuse connections (created if omitted)
    """

    def __init__(self, base_url: str = CELESTRAK_GP_URL, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "CelestrakClient":
        return cls(base_url=config.celestrak_url, timeout=config.fetch_timeout_sec)

    def fetch(self, source: GroupSource, fmt: str = "json") -> str:
        """
        Download the element sets of one group.

        Args:
            source: Group to fetch
            fmt: CelesTrak FORMAT parameter (json, csv, tle, 3le)

        Returns:
            Raw response text

        Raises:
            FetchError: On network failure, HTTP error status or empty result
        """
        params = dict(source.query, FORMAT=fmt)
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(f"HTTP {status} fetching {source.key}",
                             source=source.key, status_code=status) from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"failed to fetch {source.key}: {e}", source=source.key) from e

        text = response.text
        if not text.strip() or text.strip().startswith(_NO_DATA):
            raise FetchError(f"no element sets for {source.key}", source=source.key,
                             status_code=response.status_code)

        logger.info("elements_fetched", group=source.key, bytes=len(text))
        return text

    async def fetch_async(self, source: GroupSource, fmt: str = "json") -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.fetch, source, fmt))


def load_group(source: GroupSource, client: CelestrakClient, cache: Optional[ElementCache],
               lifetime: timedelta = timedelta(minutes=120), fmt: str = "json") -> str:
    """
    Element text of a group, from the cache when fresh.

    Args:
        source: Group to load
        client: Catalog client
        cache: Element cache (None disables caching)
        lifetime: Age under which a cached entry is used without fetching
        fmt: CelesTrak FORMAT parameter

    Returns:
        Raw element text

    Raises:
        FetchError: If the fetch failed and nothing is cached
    """
    entry = None
    if cache is not None:
        try:
            entry = cache.get(source.label)
        except CacheError as e:
            logger.warning("cache_read_failed", group=source.key, error=str(e))

    if entry is not None and entry.is_fresh(lifetime):
        logger.debug("cache_hit", group=source.key)
        return entry.raw
    logger.debug("cache_miss", group=source.key, expired=entry is not None)

    try:
        raw = client.fetch(source, fmt)
    except FetchError as e:
        if entry is None:
            raise
        logger.warning("using_expired_cache", group=source.key, error=str(e),
                       age_min=round(entry.age().total_seconds() / 60.0, 1))
        return entry.raw

    if cache is not None:
        try:
            cache.put(source.label, raw)
        except CacheError as e:
            logger.warning("cache_write_failed", group=source.key, error=str(e))
    return raw


async def load_group_async(source: GroupSource, client: CelestrakClient,
                           cache: Optional[ElementCache],
                           lifetime: timedelta = timedelta(minutes=120),
                           fmt: str = "json") -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, functools.partial(load_group, source, client, cache, lifetime, fmt))
