from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Generic, List, Optional, TypeVar

I = TypeVar("I")  # noqa: E741 - identity type
E = TypeVar("E")

Listener = Callable[[I, Optional[E], Optional[E]], None]
ErrorCallback = Callable[[Exception], None]

logger = logging.getLogger(__name__)


class ChangeNotifier(Generic[I, E]):
    """Deliver ``(identity, old, new)`` changes to registered listeners.

    - Notifications run on one background worker thread, in submission order,
      after the mutation that caused them has been committed.
    - A change whose old and new values compare equal is not reported.
    - A failing listener is logged and handed to ``on_error``; the remaining
      listeners still run.
    """

    def __init__(self, name: str, on_error: Optional[ErrorCallback] = None) -> None:
        self._name = name
        self._on_error = on_error
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._closed = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}-notify")

    def add_listener(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> bool:
        with self._listeners_lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    @property
    def listener_count(self) -> int:
        with self._listeners_lock:
            return len(self._listeners)

    def notify(self, identity: I, old: Optional[E], new: Optional[E]) -> bool:
        """Schedule delivery of a change; return ``False`` if it was dropped."""
        if old == new:
            return False
        with self._state_lock:
            if self._closed:
                logger.debug("%s: notifier closed, dropping change for %s", self._name, identity)
                return False
            self._executor.submit(self._dispatch, identity, old, new)
        return True

    def _dispatch(self, identity: I, old: Optional[E], new: Optional[E]) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(identity, old, new)
            except Exception as exc:
                logger.error(
                    "%s: error in change listener for %s",
                    self._name,
                    identity,
                    exc_info=True,
                )
                if self._on_error is not None:
                    try:
                        self._on_error(exc)
                    except Exception:
                        logger.exception("%s: error handler failed", self._name)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every change scheduled so far has been delivered."""
        with self._state_lock:
            if self._closed:
                return True
            marker: Future[None] = self._executor.submit(lambda: None)
        try:
            marker.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    def close(self) -> None:
        """Deliver pending changes and refuse new ones."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        # A listener closing its own repository cannot wait for itself.
        on_worker = threading.current_thread().name.startswith(f"{self._name}-notify")
        self._executor.shutdown(wait=not on_worker)
