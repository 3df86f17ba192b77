import asyncio
import threading
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable

from ..errors import TaskNotFoundError
from ..logger import logger
from .models import CancelRequest, DeployProgress
from .store import InMemoryTaskStore, ProgressCallback, TaskStore
from .types import DeployStage

_MUTABLE_FIELDS = frozenset(
    {"stage", "message", "percent", "done", "error", "container_id"}
)


class DeployTaskTracker:
    """Progress and cancellation bookkeeping for deployment tasks.

    Each deployment is driven by a single coroutine, so updates for one task
    arrive in order. The lock only protects the shared table against reports
    and subscriptions for different tasks interleaving with each other.
    Subscribers are called synchronously, in registration order, while the lock
    is held; they must not block.
    """

    def __init__(self, store: TaskStore | None = None):
        self._store: TaskStore = store if store is not None else InMemoryTaskStore()
        self._lock = threading.RLock()

    def init(
        self,
        task_id: str,
        stage: DeployStage | str = DeployStage.INIT,
        message: str = "",
        percent: float | None = None,
    ) -> DeployProgress:
        """Create or overwrite the initial snapshot of a task."""
        stage_value = stage.value if isinstance(stage, DeployStage) else stage
        if percent is None:
            percent = stage.percent if isinstance(stage, DeployStage) else 0
        progress = DeployProgress(
            task_id=task_id, stage=stage_value, message=message, percent=percent
        )
        with self._lock:
            self._store.set(progress)
            self._notify(progress)
        return progress

    def report(self, task_id: str, **changes) -> DeployProgress:
        """Merge ``changes`` into the current snapshot and publish the result.

        Unknown tasks start from an empty ``init`` snapshot.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown progress fields: {', '.join(sorted(unknown))}")
        if isinstance(changes.get("stage"), DeployStage):
            changes["stage"] = changes["stage"].value

        with self._lock:
            current = self._store.get(task_id) or DeployProgress(task_id=task_id)
            progress = current.model_copy(
                update={**changes, "updated_at": datetime.now()}
            )
            self._store.set(progress)
            self._notify(progress)
        return progress

    def report_stage(
        self, task_id: str, stage: DeployStage, message: str, **changes
    ) -> DeployProgress:
        """Report entering ``stage`` at its nominal percentage."""
        fields = {"stage": stage, "message": message, "percent": stage.percent}
        if stage.terminal:
            fields["done"] = True
            fields["error"] = stage is not DeployStage.DONE
        fields.update(changes)
        return self.report(task_id, **fields)

    def get_snapshot(self, task_id: str) -> DeployProgress | None:
        with self._lock:
            return self._store.get(task_id)

    def require_snapshot(self, task_id: str) -> DeployProgress:
        progress = self.get_snapshot(task_id)
        if progress is None:
            raise TaskNotFoundError(f"Deploy task '{task_id}' not found")
        return progress

    def subscribe(
        self, task_id: str, callback: ProgressCallback
    ) -> Callable[[], None]:
        """Register ``callback`` for every future snapshot of ``task_id``.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            unsubscribe = self._store.subscribe(task_id, callback)

        def locked_unsubscribe() -> None:
            with self._lock:
                unsubscribe()

        return locked_unsubscribe

    def request_cancel(self, task_id: str, delete_on_cancel: bool = False) -> None:
        """Record the intent to cancel. Running stages honor it at their next checkpoint."""
        with self._lock:
            self._store.set_cancel(
                task_id, CancelRequest(cancel=True, delete_on_cancel=delete_on_cancel)
            )
        logger.info(
            f"Cancel requested for deploy task {task_id} (delete_on_cancel={delete_on_cancel})"
        )

    def cancel_request(self, task_id: str) -> CancelRequest | None:
        with self._lock:
            return self._store.get_cancel(task_id)

    def is_cancelled(self, task_id: str | None) -> bool:
        if task_id is None:
            return False
        request = self.cancel_request(task_id)
        return request is not None and request.cancel

    def discard(self, task_id: str) -> None:
        """Forget a consumed or superseded task."""
        with self._lock:
            self._store.delete(task_id)

    def prune_finished(
        self, max_age_seconds: float, now: datetime | None = None
    ) -> list[str]:
        """Discard finished tasks whose last update is older than ``max_age_seconds``.

        Running tasks are never pruned, however old their last report is.

        Returns:
            Ids of the discarded tasks
        """
        cutoff = (now or datetime.now()) - timedelta(seconds=max_age_seconds)
        pruned = []
        with self._lock:
            for task_id in self._store.task_ids():
                progress = self._store.get(task_id)
                if progress is None or not progress.done:
                    continue
                if progress.updated_at <= cutoff:
                    self._store.delete(task_id)
                    pruned.append(task_id)
        return pruned

    def close(self) -> None:
        with self._lock:
            self._store.clear()

    async def watch(self, task_id: str) -> AsyncIterator[DeployProgress]:
        """Yield the current snapshot and every later one until a terminal snapshot.

        Adapter from ``subscribe`` to an async stream, used by the
        server-sent events endpoint and by in-process waiters.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[DeployProgress] = asyncio.Queue()

        def enqueue(progress: DeployProgress) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, progress)

        with self._lock:
            current = self._store.get(task_id)
            unsubscribe = self.subscribe(task_id, enqueue)

        try:
            if current is not None:
                yield current
                if current.done:
                    return
            while True:
                progress = await queue.get()
                yield progress
                if progress.done:
                    return
        finally:
            unsubscribe()

    def _notify(self, progress: DeployProgress) -> None:
        for callback in self._store.subscribers(progress.task_id):
            try:
                callback(progress)
            except Exception as e:
                logger.error(
                    f"Progress subscriber failed for task {progress.task_id}: {e}",
                    exc_info=True,
                )
