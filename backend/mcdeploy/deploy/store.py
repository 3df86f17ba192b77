"""
Storage behind the deploy task tracker.

The tracker never touches a module level table; it is handed a ``TaskStore``
owned by the process, which keeps tests isolated and leaves room for a shared
backend when several engine instances run side by side.
"""

from typing import Callable, Protocol

from .models import CancelRequest, DeployProgress

ProgressCallback = Callable[[DeployProgress], None]


class TaskStore(Protocol):
    def get(self, task_id: str) -> DeployProgress | None: ...

    def set(self, progress: DeployProgress) -> None: ...

    def delete(self, task_id: str) -> None: ...

    def task_ids(self) -> list[str]: ...

    def subscribe(self, task_id: str, callback: ProgressCallback) -> Callable[[], None]: ...

    def subscribers(self, task_id: str) -> list[ProgressCallback]: ...

    def get_cancel(self, task_id: str) -> CancelRequest | None: ...

    def set_cancel(self, task_id: str, request: CancelRequest) -> None: ...

    def clear(self) -> None: ...


class InMemoryTaskStore:
    """Process local ``TaskStore``. Not thread safe on its own; the tracker locks."""

    def __init__(self):
        self._progress: dict[str, DeployProgress] = {}
        self._subscribers: dict[str, list[ProgressCallback]] = {}
        self._cancel: dict[str, CancelRequest] = {}

    def get(self, task_id: str) -> DeployProgress | None:
        return self._progress.get(task_id)

    def set(self, progress: DeployProgress) -> None:
        self._progress[progress.task_id] = progress

    def delete(self, task_id: str) -> None:
        self._progress.pop(task_id, None)
        self._cancel.pop(task_id, None)

    def task_ids(self) -> list[str]:
        return list(self._progress)

    def subscribe(self, task_id: str, callback: ProgressCallback) -> Callable[[], None]:
        self._subscribers.setdefault(task_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(task_id)
            if not callbacks:
                return
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                del self._subscribers[task_id]

        return unsubscribe

    def subscribers(self, task_id: str) -> list[ProgressCallback]:
        return list(self._subscribers.get(task_id, ()))

    def get_cancel(self, task_id: str) -> CancelRequest | None:
        return self._cancel.get(task_id)

    def set_cancel(self, task_id: str, request: CancelRequest) -> None:
        self._cancel[task_id] = request

    def clear(self) -> None:
        self._progress.clear()
        self._subscribers.clear()
        self._cancel.clear()
