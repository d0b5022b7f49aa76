"""Filesystem watch loop.

A watchdog observer pushes raw events into a queue; a dedicated thread turns
batches of those events into reload and evict callbacks. Create/modify events
are debounced so that an editor's create-then-modify burst (or several quick
rewrites) results in one reload of the final content.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from watchstore.domain.entities import FileEvent
from watchstore.domain.value_objects.enums import ChangeKind

logger = logging.getLogger(__name__)

PathCallback = Callable[[Path], None]

_STOP = object()
_QueueItem = Union[FileEvent, object]


class _EventForwarder(FileSystemEventHandler):
    """Translate watchdog events into :class:`FileEvent` values."""

    def __init__(self, events: "queue.Queue[_QueueItem]") -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        src = Path(os.fsdecode(event.src_path))
        if event.event_type == "created":
            self._events.put(FileEvent(ChangeKind.CREATED, src))
        elif event.event_type == "modified":
            self._events.put(FileEvent(ChangeKind.MODIFIED, src))
        elif event.event_type == "deleted":
            self._events.put(FileEvent(ChangeKind.DELETED, src))
        elif event.event_type == "moved":
            # Atomic saves arrive as a move of a temporary file onto the target.
            self._events.put(FileEvent(ChangeKind.DELETED, src))
            dest = getattr(event, "dest_path", None)
            if dest:
                self._events.put(FileEvent(ChangeKind.CREATED, Path(os.fsdecode(dest))))


class WatchLoop:
    """Background task folding filesystem changes of one directory into callbacks.

    :param directory: Directory to observe (non-recursively).
    :param accept: Filter applied to every event path.
    :param on_change: Called with the path of a created or modified file.
    :param on_delete: Called with the path of a deleted file.
    :param debounce_seconds: Delay between the first create/modify event of a
        batch and the reload.
    :param poll_seconds: Idle interval after which the watch registration is
        re-checked.
    """

    def __init__(
        self,
        directory: Path,
        *,
        accept: Callable[[Path], bool],
        on_change: PathCallback,
        on_delete: PathCallback,
        debounce_seconds: float,
        poll_seconds: float,
        name: str = "watch",
    ) -> None:
        self._directory = Path(directory).resolve()
        self._accept = accept
        self._on_change = on_change
        self._on_delete = on_delete
        self._debounce_seconds = float(debounce_seconds)
        self._poll_seconds = float(poll_seconds)
        self._name = name

        self._events: "queue.Queue[_QueueItem]" = queue.Queue()
        self._stop = threading.Event()
        self._dispatch_lock = threading.Lock()
        self._observer: Optional[Observer] = None  # type: ignore[valid-type]
        self._thread: Optional[threading.Thread] = None
        self._degraded = False

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def degraded(self) -> bool:
        """``True`` once the loop ended because its watch registration became invalid."""
        return self._degraded

    def start(self) -> None:
        """Register the watch and start the loop thread.

        Raises ``OSError`` when the directory cannot be watched.
        """
        if self._thread is not None:
            raise RuntimeError(f"{self._name}: watch loop already started")

        observer = Observer()
        observer.schedule(_EventForwarder(self._events), str(self._directory), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

        self._thread = threading.Thread(target=self._run, name=f"{self._name}-watch", daemon=True)
        self._thread.start()
        logger.debug("%s: watching %s", self._name, self._directory)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the loop and release the observer.

        Once this returns no further callback is started.
        """
        self._stop.set()
        self._events.put(_STOP)
        # Wait for a callback that is already running.
        with self._dispatch_lock:
            pass

        observer = self._observer
        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=timeout)
            self._observer = None

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    first = self._events.get(timeout=self._poll_seconds)
                except queue.Empty:
                    if not self._rearm():
                        break
                    continue

                batch = self._collect(first)
                if batch is None:
                    break
                batch = [event for event in batch if self._wanted(event)]
                if not batch:
                    if not self._rearm():
                        break
                    continue

                if any(not event.is_removal for event in batch):
                    # Let the writer finish flushing before reading the file.
                    if self._stop.wait(self._debounce_seconds):
                        break
                    more = self._drain()
                    if more is None:
                        break
                    batch.extend(event for event in more if self._wanted(event))

                self._dispatch(self._coalesce(batch))
                if not self._rearm():
                    break
        finally:
            logger.debug("%s: watch loop stopped", self._name)

    def _collect(self, first: _QueueItem) -> Optional[List[FileEvent]]:
        if first is _STOP:
            return None
        rest = self._drain()
        if rest is None:
            return None
        return [first, *rest]  # type: ignore[list-item]

    def _drain(self) -> Optional[List[FileEvent]]:
        drained: List[FileEvent] = []
        while True:
            try:
                item = self._events.get_nowait()
            except queue.Empty:
                return drained
            if item is _STOP:
                return None
            drained.append(item)  # type: ignore[arg-type]

    def _wanted(self, event: FileEvent) -> bool:
        return event.path.parent == self._directory and self._accept(event.path)

    def _coalesce(self, batch: List[FileEvent]) -> List[FileEvent]:
        """Keep the latest event per path, ordered by its arrival."""
        latest: Dict[Path, FileEvent] = {}
        for event in batch:
            latest.pop(event.path, None)
            latest[event.path] = event
        return list(latest.values())

    def _dispatch(self, events: List[FileEvent]) -> None:
        for event in events:
            with self._dispatch_lock:
                if self._stop.is_set():
                    return
                try:
                    if event.is_removal:
                        self._on_delete(event.path)
                    else:
                        self._on_change(event.path)
                except Exception:
                    logger.exception(
                        "%s: failed to handle %s of %s",
                        self._name,
                        event.kind.value.lower(),
                        event.path.name,
                    )

    def _rearm(self) -> bool:
        if self._stop.is_set():
            return False
        observer = self._observer
        if observer is not None and observer.is_alive() and self._directory.is_dir():
            return True
        logger.warning(
            "%s: watch on %s is no longer valid, automatic reload stopped",
            self._name,
            self._directory,
        )
        self._degraded = True
        return False
