"""
Autosave debouncer — coalesces bursts of edits into one write per entity.

Each entity id owns at most one pending asyncio task. Scheduling again for
the same id cancels the pending task and starts the quiet period over, so
only the last edit in a burst is persisted. ``flush`` runs pending edits
immediately, for callers that must see them stored (saving a version,
shutting down).

    debouncer.schedule(version_id, 1.0, lambda: store.update_version(...))

The pricing core never touches this module.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger("scopeworks-autosave")

Action = Callable[[], Awaitable[None]]


class Debouncer:
    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}
        self._wake: Dict[str, asyncio.Event] = {}

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    def is_pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def schedule(self, key: str, delay: float, action: Action) -> asyncio.Task:
        """Cancel any pending run for ``key`` and run ``action`` after ``delay`` seconds."""
        self.cancel(key)
        wake = asyncio.Event()
        task = asyncio.get_running_loop().create_task(self._run_later(key, delay, action, wake))
        self._tasks[key] = task
        self._wake[key] = wake
        return task

    def cancel(self, key: str) -> bool:
        """Drop a pending run without executing it."""
        task = self._tasks.pop(key, None)
        self._wake.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for key in list(self._tasks):
            if self.cancel(key):
                cancelled += 1
        return cancelled

    async def flush(self, key: Optional[str] = None) -> None:
        """
        Run pending actions (one key, or all) now instead of waiting out
        their delay, and wait for them to finish.
        """
        keys = [key] if key is not None else list(self._tasks)
        tasks = []
        for k in keys:
            task = self._tasks.get(k)
            if task is None:
                continue
            wake = self._wake.get(k)
            if wake is not None:
                wake.set()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self, timeout: float) -> int:
        """
        Flush every pending action, waiting at most ``timeout`` seconds.
        Returns how many were still unfinished and had to be cancelled.
        """
        tasks = [t for t in self._tasks.values() if not t.done()]
        for wake in self._wake.values():
            wake.set()
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        return self.cancel_all()

    async def _run_later(self, key: str, delay: float, action: Action, wake: asyncio.Event) -> None:
        try:
            try:
                await asyncio.wait_for(wake.wait(), delay)
            except asyncio.TimeoutError:
                pass
            await action()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Debounced save failed for %s", key)
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
                self._wake.pop(key, None)
