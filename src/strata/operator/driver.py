import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from strata.config.settings import config
from strata.operator.models import Directory, Record
from strata.operator.reconciler import REQUEUE_ERROR, Reconciler
from strata.operator.store import DELETED, STATUS, RecordStore, Secret, SecretStore

logger = logging.getLogger(__name__)

Key = Tuple[str, str, str]


class Reaper:
    """Deletes derived records whose owner no longer exists."""

    def __init__(self, store: RecordStore):
        self.store = store

    def sweep(self) -> List[Key]:
        removed: List[Key] = []
        while True:
            orphans = []
            for kind in self.store.kinds():
                for record in self.store.list(kind):
                    ref = record.metadata.owner_reference
                    if ref is None or record.deleting:
                        continue
                    if self.store.get(ref.kind, record.namespace, ref.name) is None:
                        orphans.append(record)
            if not orphans:
                return removed
            for record in orphans:
                logger.info(f"reaping {record.kind} {record.namespace}/{record.name}: owner {record.metadata.owner_reference.name} is gone")
                self.store.delete(record.kind, record.namespace, record.name)
                removed.append(record.key)


class Driver:
    """
    Feeds store events to reconcilers through a deduplicated work queue.

    A key is queued at most once; a key whose reconcile is in flight is
    marked dirty and requeued when that pass finishes, so the same record
    is never reconciled concurrently with itself.
    """

    def __init__(self, store: RecordStore, reconcilers: Dict[str, Reconciler],
                 secrets: Optional[SecretStore] = None, workers: Optional[int] = None,
                 resync_interval: Optional[float] = None):
        self.store = store
        self.reconcilers = reconcilers
        self.secrets = secrets
        self.workers = workers or config.workers
        self.resync_interval = resync_interval if resync_interval is not None else config.resync_interval
        self.reaper = Reaper(store)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._queued: Set[Key] = set()
        self._processing: Set[Key] = set()
        self._dirty: Set[Key] = set()
        self._timers: Dict[Key, asyncio.TimerHandle] = {}
        self.reconcile_count = 0

    def enqueue(self, key: Key):
        if key[0] not in self.reconcilers:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def enqueue_after(self, key: Key, delay: float):
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._timers[key] = self._loop.call_later(delay, self._fire, key)

    def _fire(self, key: Key):
        self._timers.pop(key, None)
        self.enqueue(key)

    def _on_event(self, event: str, record: Record):
        self._loop.call_soon_threadsafe(self._handle_event, event, record)

    def _handle_event(self, event: str, record: Record):
        if event != STATUS:
            self.enqueue(record.key)
        ref = record.metadata.owner_reference
        if ref is not None:
            self.enqueue((ref.kind, record.namespace, ref.name))
        if event == DELETED:
            self.reaper.sweep()

    def _on_secret(self, secret: Secret):
        self._loop.call_soon_threadsafe(self._handle_secret, secret)

    def _handle_secret(self, secret: Secret):
        for directory in self.store.list(Directory, secret.namespace):
            if directory.spec.uses_secret(secret.name):
                self.enqueue(directory.key)

    def resync(self):
        self.reaper.sweep()
        for kind in self.reconcilers:
            for record in self.store.list(kind):
                self.enqueue(record.key)

    async def _worker(self, index: int):
        while True:
            key = await self._queue.get()
            self._queued.discard(key)
            self._processing.add(key)
            kind, namespace, name = key
            try:
                result = await asyncio.to_thread(self.reconcilers[kind].reconcile, namespace, name)
                delay = result.requeue_after
            except Exception:
                logger.exception(f"worker {index}: reconcile {kind} {namespace}/{name} failed")
                delay = REQUEUE_ERROR
            finally:
                self._processing.discard(key)
                self.reconcile_count += 1
                self._queue.task_done()

            if key in self._dirty:
                self._dirty.discard(key)
                self.enqueue(key)
            elif delay:
                self.enqueue_after(key, delay)

    async def _resync_loop(self):
        while True:
            await asyncio.sleep(self.resync_interval)
            self.resync()

    async def start(self) -> List[asyncio.Task]:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self.store.watch(self._on_event)
        if self.secrets is not None:
            self.secrets.watch(self._on_secret)
        self.resync()
        tasks = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        if self.resync_interval > 0:
            tasks.append(asyncio.create_task(self._resync_loop()))
        return tasks

    async def run(self, stop: Optional[asyncio.Event] = None):
        tasks = await self.start()
        try:
            if stop is None:
                await asyncio.gather(*tasks)
            else:
                await stop.wait()
        finally:
            for task in tasks:
                task.cancel()
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self):
        """Wait until no reconcile is queued or in flight. Delayed requeues are not waited for."""
        while True:
            await self._queue.join()
            await asyncio.sleep(0)
            if not self._queued and not self._processing:
                return

    def run_once(self) -> int:
        """Reconcile every record once, in order, without the event loop."""
        self.reaper.sweep()
        count = 0
        for kind, reconciler in self.reconcilers.items():
            for record in self.store.list(kind):
                reconciler.reconcile(record.namespace, record.name)
                count += 1
        return count
