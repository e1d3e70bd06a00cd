"""
Live tailing of a single agent's log file.

One ``LogTailStreamer`` follows at most one file. Attaching emits the last
``tail_lines`` non-empty lines; afterwards only appended content is
delivered, in file order, as line batches.

Change notifications come from a watch on the file's parent directory, so
the watch survives the file being replaced, and an absent file can be picked
up when it is created. Each notification (re)arms a short debounce timer
and only the timer firing reads the file, so a burst of writes costs one
read. The cursor moves through ``idle -> armed -> reading -> idle``.

Every watch and timer is tagged with the generation it was created for;
``start`` and ``stop`` bump the generation, so callbacks belonging to an
earlier target are ignored even if they were already queued on the loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable

from dash_core.watch import DirectoryWatcher

logger = logging.getLogger(__name__)

TAIL_LINES = 100
DEBOUNCE_SECONDS = 0.1

NO_LOGS_PLACEHOLDER = "No logs yet. Watching..."
WAITING_PLACEHOLDER = "Waiting for output..."
PLACEHOLDERS = frozenset({NO_LOGS_PLACEHOLDER, WAITING_PLACEHOLDER})

LinesCallback = Callable[[list[str]], None]

IDLE = "idle"
ARMED = "armed"
READING = "reading"


def split_lines(data: bytes) -> list[str]:
    text = data.decode("utf-8", errors="replace")
    return [line for line in text.splitlines() if line]


def _present(check: Callable[[], bool]) -> bool:
    # EACCES from exists/is_dir on older interpreters counts as absent
    try:
        return check()
    except OSError:
        return False


class LogTailStreamer:
    """Follow one growing, rotating or not-yet-existing log file."""

    def __init__(
        self,
        watcher: DirectoryWatcher | None = None,
        *,
        tail_lines: int = TAIL_LINES,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._watcher = watcher or DirectoryWatcher()
        self._tail_lines = tail_lines
        self._debounce = debounce_seconds
        self._loop = loop

        self._generation = 0
        self._path: Path | None = None
        self._on_lines: LinesCallback | None = None
        self._offset = 0
        self._inode: int | None = None
        self._awaiting_creation = False
        self._watch_handle: Any = None
        self._timer: asyncio.TimerHandle | None = None
        self.state = IDLE

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def offset(self) -> int:
        return self._offset

    def start(self, path: Path | str, on_lines: LinesCallback) -> None:
        self.stop()
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        self._generation += 1
        generation = self._generation
        self._path = Path(os.path.abspath(path))
        self._on_lines = on_lines

        if not _present(self._path.exists):
            self._awaiting_creation = True
            on_lines([NO_LOGS_PLACEHOLDER])
            if _present(self._path.parent.is_dir):
                self._watch(generation)
            return

        self._awaiting_creation = False
        lines = self._seed()
        on_lines(lines[-self._tail_lines :] if lines else [WAITING_PLACEHOLDER])
        self._watch(generation)

    def stop(self) -> None:
        self._generation += 1
        if self._watch_handle is not None:
            self._watcher.unwatch(self._watch_handle)
            self._watch_handle = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._path = None
        self._on_lines = None
        self._offset = 0
        self._inode = None
        self._awaiting_creation = False
        self.state = IDLE

    def close(self) -> None:
        self.stop()
        self._watcher.close()

    def _seed(self) -> list[str]:
        assert self._path is not None
        try:
            with self._path.open("rb") as handle:
                data = handle.read()
                self._inode = os.fstat(handle.fileno()).st_ino
        except OSError as exc:
            logger.debug("initial read of %s failed: %s", self._path, exc)
            return []
        self._offset = len(data)
        return split_lines(data)

    def _watch(self, generation: int) -> None:
        assert self._path is not None
        try:
            self._watch_handle = self._watcher.watch(
                self._path.parent,
                lambda changed: self._notify(generation, changed),
            )
        except OSError as exc:
            logger.debug("watch on %s unavailable: %s", self._path.parent, exc)
            self._watch_handle = None

    def _notify(self, generation: int, changed: str) -> None:
        # observer thread
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._on_change, generation, changed)
        except RuntimeError:
            # loop shut down between the check and the call
            pass

    def _on_change(self, generation: int, changed: str) -> None:
        if generation != self._generation or self._path is None:
            return
        if os.path.abspath(changed) != str(self._path):
            return

        if self._awaiting_creation:
            if _present(self._path.exists) and self._on_lines is not None:
                self.start(self._path, self._on_lines)
            return

        self._arm(generation)

    def _arm(self, generation: int) -> None:
        if self._timer is not None:
            self._timer.cancel()
        assert self._loop is not None
        self._timer = self._loop.call_later(self._debounce, self._fire, generation)
        self.state = ARMED

    def _fire(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self.state = READING
        try:
            lines = self.read_new()
        finally:
            if generation == self._generation:
                self.state = IDLE
        if lines and self._on_lines is not None:
            self._on_lines(lines)

    def read_new(self) -> list[str]:
        """Read whatever was appended since the last delivery."""
        if self._path is None:
            return []
        try:
            stat = self._path.stat()
        except OSError:
            return []

        if stat.st_size < self._offset or (self._inode is not None and stat.st_ino != self._inode):
            logger.debug("%s truncated or replaced, rereading from start", self._path)
            self._offset = 0
        self._inode = stat.st_ino

        if stat.st_size <= self._offset:
            return []

        try:
            with self._path.open("rb") as handle:
                handle.seek(self._offset)
                data = handle.read(stat.st_size - self._offset)
        except OSError as exc:
            logger.debug("read of %s failed: %s", self._path, exc)
            return []

        self._offset += len(data)
        return split_lines(data)
