# archiver.py — Background archival of completed tasks
"""
Periodic sweep that archives tasks which have sat in Done long enough.

A task is archivable when::

    status == Done and not is_archived and now - updated_at >= delay_seconds

Every sweep captures a single ``now`` and evaluates the whole batch against
it. Matched tasks get ``is_archived=True`` and ``archived_at=now`` and are
persisted with one conditional UPDATE that re-checks the rule, so a task
edited between listing and writing is left alone. ``updated_at`` is never
touched. A failed sweep is logged and the next scheduled sweep acts as the
retry.

Usage:
    archiver = TaskArchiver(task_repository_scope(async_session_maker))
    archiver.start()
    # ... app runs ...
    await archiver.stop()
"""
import os
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, AsyncContextManager, Optional, List

from cache import TaskCache, task_cache_key
from models import utcnow

logger = logging.getLogger("taskboard.archiver")

ARCHIVE_ENABLED = os.getenv("ARCHIVE_ENABLED", "true").lower() == "true"
ARCHIVE_INTERVAL_SECONDS = int(os.getenv("ARCHIVE_INTERVAL_SECONDS", "2"))
ARCHIVE_DELAY_SECONDS = int(os.getenv("ARCHIVE_DELAY_SECONDS", "5"))


class ArchiverState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class TaskArchiver:
    """Runs archival sweeps every interval_seconds until stopped.

    ``repository_scope`` is a zero-argument callable returning an async
    context manager that yields a store with ``list_archivable(now,
    delay_seconds)`` and ``mark_archived(tasks, now, delay_seconds)``, the
    latter returning the ids it actually archived.
    """

    def __init__(
        self,
        repository_scope: Callable[[], AsyncContextManager],
        *,
        interval_seconds: int = ARCHIVE_INTERVAL_SECONDS,
        delay_seconds: int = ARCHIVE_DELAY_SECONDS,
        cache: Optional[TaskCache] = None,
        notifier=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be >= 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self._repository_scope = repository_scope
        self.interval_seconds = interval_seconds
        self.delay_seconds = delay_seconds
        self._cache = cache
        self._notifier = notifier
        self._clock = clock
        self._state = ArchiverState.STOPPED
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ArchiverState:
        return self._state

    async def sweep_once(self) -> int:
        """Archive every eligible task. Returns the number archived.

        Store errors propagate to the caller; ``run`` logs them.
        """
        now = self._clock()
        async with self._repository_scope() as repo:
            candidates = await repo.list_archivable(now, self.delay_seconds)
            if not candidates:
                return 0
            archived_ids = set(await repo.mark_archived(candidates, now, self.delay_seconds))

        # Rows edited since they were listed fail the write-time check
        tasks = [t for t in candidates if t.id in archived_ids]
        if not tasks:
            return 0

        for task in tasks:
            logger.info(f"Archived task {task.id}: {task.title}")
        logger.info(f"Archived {len(tasks)} tasks")

        await self._after_archive([t.id for t in tasks])
        return len(tasks)

    async def _after_archive(self, task_ids: List[str]):
        if self._cache is not None:
            for task_id in task_ids:
                try:
                    self._cache.remove(task_cache_key(task_id))
                except Exception as e:
                    logger.warning(f"Cache eviction failed for task {task_id}: {e}")
        if self._notifier is not None:
            try:
                await self._notifier.tasks_archived(task_ids)
            except Exception as e:
                logger.warning(f"Archive notification failed: {e}")

    async def run(self):
        """Sweep, then sleep, until stop() is called"""
        self._state = ArchiverState.RUNNING
        logger.info(
            f"TaskArchiver started (interval={self.interval_seconds}s, delay={self.delay_seconds}s)"
        )
        try:
            while not self._stop_event.is_set():
                try:
                    await self.sweep_once()
                except Exception as e:
                    logger.error(f"Error archiving tasks: {e}", exc_info=True)

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._state = ArchiverState.STOPPED
            logger.info("TaskArchiver stopped")

    def start(self) -> asyncio.Task:
        """Start the archiver as a background task"""
        if self._task is not None and not self._task.done():
            logger.warning("TaskArchiver already running")
            return self._task
        self._stop_event.clear()
        self._state = ArchiverState.RUNNING
        self._task = asyncio.create_task(self.run(), name="task-archiver")
        return self._task

    async def stop(self):
        """Signal the loop and wait for it to exit. No sweep starts after this."""
        if self._task is None or self._task.done():
            self._state = ArchiverState.STOPPED
            return
        self._state = ArchiverState.STOPPING
        self._stop_event.set()
        await self._task
        self._task = None
