"""Tests for the cache directory watcher."""

import os
import threading
from unittest.mock import MagicMock, patch

from watchdog.events import FileCreatedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from simplecert.ssl.store import CertificateStore
from simplecert.ssl.watcher import CacheFileHandler, CacheWatcher
from simplecert.utils.files import ensure_directory


class TestCacheFileHandler:
    """Test event filtering and debouncing."""

    def setup_method(self):
        """Setup test environment."""
        self.callback = MagicMock()
        self.handler = CacheFileHandler("/cache", self.callback)

    def test_record_modified_triggers(self):
        self.handler.on_any_event(FileModifiedEvent("/cache/CertResource.json"))
        self.callback.assert_called_once_with()

    def test_record_moved_into_place_triggers(self):
        self.handler.on_any_event(FileMovedEvent("/cache/.CertResource.json.abc.tmp", "/cache/CertResource.json"))
        self.callback.assert_called_once_with()

    def test_pem_changes_ignored(self):
        self.handler.on_any_event(FileModifiedEvent("/cache/cert.pem"))
        self.handler.on_any_event(FileCreatedEvent("/cache/.CertResource.json.abc.tmp"))
        self.callback.assert_not_called()

    def test_deletion_ignored(self):
        self.handler.on_any_event(FileDeletedEvent("/cache/CertResource.json"))
        self.callback.assert_not_called()

    def test_debounce(self):
        with patch("time.monotonic", side_effect=[100.0, 100.5, 101.6]):
            for _ in range(3):
                self.handler.on_any_event(FileModifiedEvent("/cache/CertResource.json"))

        assert self.callback.call_count == 2

    def test_callback_errors_are_contained(self):
        self.callback.side_effect = RuntimeError("boom")
        self.handler.on_any_event(FileCreatedEvent("/cache/CertResource.json"))


class TestCacheWatcher:
    """Test the observer lifecycle."""

    def test_save_triggers_reload(self, cache_dir, make_resource):
        ensure_directory(cache_dir, 0o700)
        reloaded = threading.Event()
        watcher = CacheWatcher(cache_dir, reloaded.set)

        watcher.start()
        try:
            CertificateStore(cache_dir).save(make_resource())
            assert reloaded.wait(5)
        finally:
            watcher.stop()

        assert not watcher.running

    def test_stop_twice(self, cache_dir):
        os.makedirs(cache_dir)
        watcher = CacheWatcher(cache_dir, MagicMock())
        watcher.start()

        watcher.stop()
        watcher.stop()
