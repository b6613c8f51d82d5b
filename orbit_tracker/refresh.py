"""
Periodic Element Refresh

One asyncio task per active group reloads its element sets every
``refresh_interval_min`` and posts a FetchResult into a queue. The render
loop calls ``drain(session)`` between frames; it never waits on the
network.

Deactivating a group cancels its task. Results carry the activation
generation of their group, so a result queued before a deactivation is
discarded by the session when drained, even if the group was reactivated
in between.
"""

import asyncio
from typing import Dict, Optional

from orbit_tracker.cache import ElementCache
from orbit_tracker.catalog import CelestrakClient, FetchResult, load_group_async
from orbit_tracker.config import GroupSource, TrackerConfig
from orbit_tracker.errors import FetchError
from orbit_tracker.logging_config import get_logger

logger = get_logger(__name__)


class ElementRefresher:
    """
    Background element refresh.

    Args:
        config: Session configuration (interval, cache lifetime)
        client: Catalog client
        cache: Element cache, or None
        queue: Queue receiving FetchResult messages (created if omitted)
    """

    def __init__(self, config: TrackerConfig, client: CelestrakClient,
                 cache: Optional[ElementCache] = None,
                 queue: Optional[asyncio.Queue] = None):
        self.config = config
        self.client = client
        self.cache = cache
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def groups(self):
        return set(self._tasks)

    def start(self, source: GroupSource, generation: Optional[int] = None) -> bool:
        """
        Start refreshing a group. Must be called from a running event loop.

        Args:
            source: Group to refresh
            generation: Activation tag copied into every result

        Returns:
            False if the group is already being refreshed
        """
        if source.key in self._tasks and not self._tasks[source.key].done():
            return False
        self._tasks[source.key] = asyncio.get_running_loop().create_task(
            self._run(source, generation), name=f"refresh-{source.key}")
        logger.debug("refresh_started", group=source.key)
        return True

    def cancel(self, group_id: str) -> bool:
        task = self._tasks.pop(group_id, None)
        if task is None:
            return False
        task.cancel()
        logger.debug("refresh_cancelled", group=group_id)
        return True

    async def stop(self) -> None:
        """Cancel every task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def activate(self, session, source: GroupSource) -> None:
        if session.activate_group(source.key):
            # A task left over from an earlier activation carries an old tag
            self.cancel(source.key)
        self.start(source, session.generation(source.key))

    def deactivate(self, session, group_id: str) -> None:
        self.cancel(group_id)
        session.deactivate_group(group_id)

    def drain(self, session) -> int:
        """
        Apply every queued result to the session without waiting.

        Returns:
            Number of messages consumed
        """
        consumed = 0
        while True:
            try:
                result = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return consumed
            session.apply_fetch_result(result)
            self.queue.task_done()
            consumed += 1

    async def refresh_once(self, source: GroupSource,
                           generation: Optional[int] = None) -> FetchResult:
        try:
            raw = await load_group_async(source, self.client, self.cache,
                                         self.config.cache_lifetime)
        except FetchError as e:
            logger.warning("refresh_failed", group=source.key, error=str(e))
            return FetchResult(group_id=source.key, error=e, generation=generation)
        return FetchResult(group_id=source.key, raw=raw, generation=generation)

    async def _run(self, source: GroupSource, generation: Optional[int]) -> None:
        interval = self.config.refresh_interval.total_seconds()
        while True:
            await self.queue.put(await self.refresh_once(source, generation))
            await asyncio.sleep(interval)
