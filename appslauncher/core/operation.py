"""Background operation handle.

Long-running work (download, install, update) runs on its own daemon thread.
Callers get an ``Operation`` back: they can subscribe to progress events,
request cancellation, and wait for the single terminal result or error.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Any], None]


class Operation:
    def __init__(self, name: str, cancel: Optional[Callable[[], bool]] = None):
        self.name = name
        self._future: Future = Future()
        self._cancel = cancel
        self._subscribers: List[ProgressCallback] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: ProgressCallback) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def emit(self, event: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                # A broken sink must not kill the operation it observes.
                logger.exception("Progress subscriber failed for %s", self.name)

    def add_done_callback(self, callback: Callable[["Operation"], None]) -> None:
        self._future.add_done_callback(lambda _f: callback(self))

    def cancel(self) -> bool:
        if self._cancel is None or self.done():
            return False
        return bool(self._cancel())

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Any:
        return self._future.result(timeout=timeout)

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout=timeout)

    def _set_result(self, value: Any) -> None:
        self._future.set_result(value)

    def _set_exception(self, error: BaseException) -> None:
        self._future.set_exception(error)


def run_in_background(
    name: str,
    target: Callable[[Operation], Any],
    *,
    cancel: Optional[Callable[[], bool]] = None,
) -> Operation:
    operation = Operation(name, cancel=cancel)

    def _worker():
        try:
            operation._set_result(target(operation))
        except Exception as e:
            logger.error("Operation %s failed: %s", name, e)
            operation._set_exception(e)

    threading.Thread(target=_worker, name=f"op-{name}", daemon=True).start()
    return operation
