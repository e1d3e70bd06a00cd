"""Directory change notifications backed by watchdog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

PathCallback = Callable[[str], None]


class _PathEventHandler(FileSystemEventHandler):
    """Forwards every path touched by an event; runs on the observer thread."""

    def __init__(self, callback: PathCallback) -> None:
        super().__init__()
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            path = raw.decode() if isinstance(raw, bytes) else str(raw)
            self._callback(path)


class DirectoryWatcher:
    """One observer thread, many non-recursive directory watches.

    Callbacks fire on the observer thread; callers marshal them onto their
    own loop.
    """

    def __init__(self, observer_factory: Callable[[], Any] = Observer) -> None:
        self._observer_factory = observer_factory
        self._observer: Any = None

    def _ensure_observer(self) -> Any:
        if self._observer is None:
            observer = self._observer_factory()
            observer.daemon = True
            observer.start()
            self._observer = observer
        return self._observer

    def watch(self, directory: Path, callback: PathCallback) -> Any:
        observer = self._ensure_observer()
        return observer.schedule(_PathEventHandler(callback), str(directory), recursive=False)

    def unwatch(self, handle: Any) -> None:
        if self._observer is None or handle is None:
            return
        try:
            self._observer.unschedule(handle)
        except (KeyError, OSError) as exc:
            logger.debug("unschedule failed: %s", exc)

    def close(self) -> None:
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        observer.join(timeout=1.0)
