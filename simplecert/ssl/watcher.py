"""Reload the certificate when another process rewrites the cache."""

import logging
import os
import threading
import time
from typing import Callable, Optional

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from ..utils.errors import CacheError
from .store import CERT_RESOURCE_FILE_NAME

logger = logging.getLogger(__name__)


class CacheFileHandler(FileSystemEventHandler):
    """Calls ``reload_callback`` when the resource record changes."""

    def __init__(self, cache_dir: str, reload_callback: Callable[[], object], debounce: float = 1.0):
        """
        Initialize the event handler.

        Args:
            cache_dir: Cache directory being observed
            reload_callback: Function to call when the record changes
            debounce: Seconds during which further events are ignored
        """
        self.cache_dir = cache_dir
        self.reload_callback = reload_callback
        self.reload_debounce = debounce
        self.last_reload_time = 0.0

    def on_any_event(self, event):
        """Handle any file system event."""
        if event.is_directory:
            return

        if isinstance(event, FileMovedEvent):
            # Atomic saves rename a temporary file onto the record
            path = event.dest_path
        elif isinstance(event, (FileCreatedEvent, FileModifiedEvent)):
            path = event.src_path
        else:
            return

        if os.path.basename(os.fsdecode(path)) != CERT_RESOURCE_FILE_NAME:
            return

        current_time = time.monotonic()
        if current_time - self.last_reload_time < self.reload_debounce:
            return
        self.last_reload_time = current_time

        logger.info("%s changed on disk, reloading certificate", CERT_RESOURCE_FILE_NAME)
        try:
            self.reload_callback()
        except Exception:
            logger.exception("Error in reload callback")


class CacheWatcher:
    """Observes a cache directory and triggers reloads on change."""

    def __init__(self, cache_dir: str, reload_callback: Callable[[], object], debounce: float = 1.0):
        self.cache_dir = cache_dir
        self.handler = CacheFileHandler(cache_dir, reload_callback, debounce)
        self._observer: Optional[Observer] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """
        Start observing the cache directory.

        Raises:
            CacheError: If the directory cannot be watched
        """
        with self._lock:
            if self._observer is not None:
                return

            observer = Observer()
            try:
                observer.schedule(self.handler, self.cache_dir, recursive=False)
                observer.start()
            except OSError as e:
                raise CacheError(f"Failed to watch {self.cache_dir}: {e}") from e

            self._observer = observer

        logger.info("Watching %s for certificate changes", self.cache_dir)

    def stop(self) -> None:
        """Stop observing; safe to call more than once."""
        with self._lock:
            observer, self._observer = self._observer, None

        if observer is None:
            return

        observer.stop()
        observer.join(timeout=5)
        logger.debug("Stopped watching %s", self.cache_dir)

    @property
    def running(self) -> bool:
        return self._observer is not None
