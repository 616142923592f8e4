"""File watcher that reports artifact changes to the scheduler.

This module provides:
- ArtifactWatcher: Watches the source files of targets using watchdog
- Settling: Coalesces bursts of events for one file (250ms window)

Only targets with a source_path are watched. The watcher reads the whole
file and reports its bytes; debouncing across reports is the scheduler's
job, the settle window only avoids reading a file mid-write.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from watchdog.observers.api import BaseObserver

    from artifactsync.client.sync.types import SyncTarget

logger = logging.getLogger(__name__)


def _event_path(raw: str | bytes) -> Path:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return Path(raw).resolve()


class SettlingEventHandler(FileSystemEventHandler):
    """Event handler that waits for a file to settle before reporting it."""

    def __init__(
        self,
        watcher: ArtifactWatcher,
        settle_s: float = 0.25,
    ) -> None:
        """Initialize the handler.

        Args:
            watcher: Watcher that owns the target mapping.
            settle_s: Quiet time after the last event before reading the file.
        """
        super().__init__()
        self._watcher = watcher
        self._settle_s = settle_s
        self._timers: dict[Path, threading.Timer] = {}
        self._lock = threading.Lock()

    def _schedule(self, path: Path) -> None:
        if not self._watcher.is_watched(path):
            return

        with self._lock:
            timer = self._timers.pop(path, None)
            if timer:
                timer.cancel()
            timer = threading.Timer(self._settle_s, self._flush, args=(path,))
            timer.daemon = True
            self._timers[path] = timer
            timer.start()

    def _flush(self, path: Path) -> None:
        with self._lock:
            self._timers.pop(path, None)
        self._watcher.report_path(path)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if isinstance(event, FileCreatedEvent):
            self._schedule(_event_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event."""
        if isinstance(event, FileModifiedEvent):
            self._schedule(_event_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event (atomic replace via rename)."""
        if isinstance(event, FileMovedEvent):
            self._schedule(_event_path(event.dest_path))

    def stop(self) -> None:
        """Cancel pending timers."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()


class ArtifactWatcher:
    """Watches target source files and reports their content.

    Usage:
        with ArtifactWatcher(targets, scheduler.report_change):
            ...
    """

    def __init__(
        self,
        targets: Iterable[SyncTarget],
        reporter: Callable[[SyncTarget, bytes], object],
        settle_s: float = 0.25,
    ) -> None:
        """Initialize the watcher.

        Args:
            targets: Targets; those without a source_path are skipped.
            reporter: Called with (target, content) for each change.
            settle_s: Quiet time before a changed file is read.
        """
        self._reporter = reporter
        self._sources: dict[Path, SyncTarget] = {}
        for target in targets:
            if target.source_path:
                self._sources[Path(target.source_path).expanduser().resolve()] = target

        self._handler = SettlingEventHandler(self, settle_s=settle_s)
        self._observer: BaseObserver = Observer()
        self._running = False

    @property
    def sources(self) -> dict[Path, SyncTarget]:
        """Get watched files and their targets."""
        return dict(self._sources)

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def is_watched(self, path: Path) -> bool:
        """Check if a path is the source of a target."""
        return path in self._sources

    def report_path(self, path: Path) -> bool:
        """Read a source file and report it.

        Returns:
            True if the content was reported
        """
        target = self._sources.get(path)
        if target is None:
            return False

        try:
            content = path.read_bytes()
        except FileNotFoundError:
            logger.debug("Source %s vanished before it could be read", path)
            return False
        except OSError as e:
            logger.warning(f"Cannot read source of {target.name} at {path}: {e}")
            return False

        self._reporter(target, content)
        logger.debug("Watcher reported %s (%d bytes)", target.name, len(content))
        return True

    def scan(self) -> int:
        """Report every existing source file once.

        Returns:
            Number of targets reported
        """
        return sum(1 for path in self._sources if self.report_path(path))

    def start(self) -> None:
        """Start watching for changes."""
        if self._running:
            return

        directories = {path.parent for path in self._sources}
        for directory in sorted(directories):
            if not directory.is_dir():
                logger.warning("Not watching %s: directory does not exist", directory)
                continue
            self._observer.schedule(self._handler, str(directory), recursive=False)

        self._observer.start()
        self._running = True
        logger.info("Watching %d source files", len(self._sources))

    def stop(self) -> None:
        """Stop watching for changes."""
        if not self._running:
            return

        self._handler.stop()
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._running = False

    def __enter__(self) -> ArtifactWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
