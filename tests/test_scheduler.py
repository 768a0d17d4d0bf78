"""Tests for the renewal scheduler."""

import dataclasses
import threading
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from simplecert.ssl.reloader import CertReloader
from simplecert.ssl.scheduler import RenewalScheduler
from simplecert.ssl.store import CertificateStore
from simplecert.utils.errors import AcquisitionError, CacheError, ReloadError
from simplecert.utils.files import ensure_directory


class TestRenewalScheduler:
    """Test renewal decisions and failure handling."""

    @pytest.fixture(autouse=True)
    def _setup(self, sample_config, fake_adapter, fake_clock, make_resource):
        """Setup test environment with a cached 40-day certificate."""
        ensure_directory(sample_config.cache_dir, 0o700)
        self.config = sample_config.with_overrides(renew_before=720)
        self.adapter = fake_adapter
        self.clock = fake_clock
        self.make_resource = make_resource
        self.store = CertificateStore(self.config.cache_dir)
        self.store.save(make_resource(self.config.domains, validity=timedelta(days=40)))
        self.reloader = CertReloader(self.store.cert_path, self.store.key_path)
        yield
        self.reloader.close()

    def _scheduler(self, config=None, fatal_handler=None):
        return RenewalScheduler(
            config or self.config,
            self.adapter,
            self.store,
            self.reloader,
            clock=self.clock,
            fatal_handler=fatal_handler,
        )

    def test_no_renewal_outside_window(self):
        scheduler = self._scheduler()

        assert scheduler.check_once() is False
        assert self.adapter.call_count == 0

    def test_no_renewal_at_window_boundary(self):
        """Test that exactly renew_before remaining is not yet due."""
        self.clock.advance(days=10)
        scheduler = self._scheduler()

        assert scheduler.remaining_validity() == timedelta(days=30)
        assert scheduler.check_once() is False
        assert self.adapter.call_count == 0

    def test_renews_inside_window(self):
        """Test a 40-day certificate with a 30-day window renews after day 10."""
        scheduler = self._scheduler()
        old = self.reloader.get_certificate()

        self.clock.advance(days=9)
        assert scheduler.check_once() is False

        self.clock.advance(days=2)
        assert scheduler.check_once() is True

        assert self.adapter.calls == [self.config.domains]
        current = self.reloader.get_certificate()
        assert current is not old
        assert current.not_after == self.clock() + timedelta(days=90)
        assert self.store.load().certificate == current.certificate_pem

    def test_renewed_certificate_not_renewed_again(self):
        scheduler = self._scheduler()
        self.clock.advance(days=11)
        scheduler.check_once()

        assert scheduler.check_once() is False
        assert self.adapter.call_count == 1

    def test_lifecycle_hooks_called_in_order(self):
        events = []
        config = self.config.with_overrides(
            will_renew_certificate=lambda: events.append("will"),
            did_renew_certificate=lambda: events.append("did"),
        )
        self.reloader.did_reload = lambda: events.append("reloaded")
        self.clock.advance(days=20)

        assert self._scheduler(config).check_once() is True
        assert events == ["will", "reloaded", "did"]

    def test_failure_hook_called_once(self):
        failures = []
        config = self.config.with_overrides(failed_to_renew_certificate=failures.append)
        self.adapter.fail_with = AcquisitionError("rate limited")
        old = self.reloader.get_certificate()
        self.clock.advance(days=20)

        assert self._scheduler(config).check_once() is False

        assert len(failures) == 1
        assert isinstance(failures[0], AcquisitionError)
        assert self.reloader.get_certificate() is old

    def test_failure_without_hook_raises(self):
        self.adapter.fail_with = AcquisitionError("rate limited")
        self.clock.advance(days=20)

        with pytest.raises(AcquisitionError, match="rate limited"):
            self._scheduler().check_once()

    def test_save_failure_reported_as_acquisition_error(self):
        self.clock.advance(days=20)
        scheduler = self._scheduler()
        scheduler.store = MagicMock()
        scheduler.store.save.side_effect = CacheError("disk full")

        with pytest.raises(AcquisitionError) as exc_info:
            scheduler.check_once()
        assert exc_info.value.suggestions

    def _mismatched_bundle(self):
        issued = self.make_resource(self.config.domains)
        return dataclasses.replace(issued, private_key=self.make_resource(self.config.domains).private_key)

    def test_mismatched_bundle_keeps_cache(self):
        """Test that a bundle whose key does not fit its cert is not committed."""
        events = []
        failures = []
        config = self.config.with_overrides(
            did_renew_certificate=lambda: events.append("did"),
            failed_to_renew_certificate=failures.append,
        )
        committed = self.store.load()
        old = self.reloader.get_certificate()
        self.clock.advance(days=20)

        with patch.object(self.adapter, "obtain", return_value=self._mismatched_bundle()):
            assert self._scheduler(config).check_once() is False

        assert len(failures) == 1
        assert isinstance(failures[0], CacheError)
        assert events == []
        assert self.reloader.get_certificate() is old
        assert self.store.load() == committed
        assert self.store.reconcile(committed) is False

    def test_mismatched_bundle_without_hook_raises(self):
        self.clock.advance(days=20)

        with patch.object(self.adapter, "obtain", return_value=self._mismatched_bundle()):
            with pytest.raises(AcquisitionError, match="Refusing to cache"):
                self._scheduler().check_once()

    def test_failed_reload_is_a_renewal_failure(self):
        """Test that a renewal the reloader cannot publish is not reported as done."""
        events = []
        failures = []
        config = self.config.with_overrides(
            did_renew_certificate=lambda: events.append("did"),
            failed_to_renew_certificate=failures.append,
        )
        old = self.reloader.get_certificate()
        self.clock.advance(days=20)

        with patch("simplecert.ssl.reloader.load_active_certificate", side_effect=ReloadError("unreadable key")):
            assert self._scheduler(config).check_once() is False

        assert len(failures) == 1
        assert isinstance(failures[0], ReloadError)
        assert events == []
        assert self.reloader.get_certificate() is old

    def test_failed_reload_without_hook_raises(self):
        self.clock.advance(days=20)

        with patch("simplecert.ssl.reloader.load_active_certificate", side_effect=ReloadError("unreadable key")):
            with pytest.raises(AcquisitionError, match="unreadable key"):
                self._scheduler().check_once()

    def test_failing_hook_is_logged_not_raised(self):
        config = self.config.with_overrides(did_renew_certificate=MagicMock(side_effect=RuntimeError("boom")))
        self.clock.advance(days=20)

        assert self._scheduler(config).check_once() is True

    def test_renew_now_ignores_window(self):
        scheduler = self._scheduler()

        assert scheduler.renew_now() is True
        assert self.adapter.call_count == 1

    def test_background_loop_renews(self):
        config = self.config.with_overrides(check_interval=0.01)
        renewed = threading.Event()
        config = config.with_overrides(did_renew_certificate=renewed.set)
        self.clock.advance(days=20)
        scheduler = self._scheduler(config)

        scheduler.start()
        try:
            assert renewed.wait(5)
        finally:
            scheduler.stop(timeout=5)

        assert not scheduler.running

    def test_background_loop_fatal_handler(self):
        config = self.config.with_overrides(check_interval=0.01)
        fatal = []
        called = threading.Event()

        def fatal_handler(error):
            fatal.append(error)
            called.set()

        self.adapter.fail_with = AcquisitionError("CA unreachable")
        self.clock.advance(days=20)
        scheduler = self._scheduler(config, fatal_handler=fatal_handler)

        scheduler.start()
        try:
            assert called.wait(5)
        finally:
            scheduler.stop(timeout=5)

        assert len(fatal) == 1
        assert isinstance(fatal[0], AcquisitionError)

    def test_stop_before_first_tick(self):
        scheduler = self._scheduler()
        scheduler.start()
        assert scheduler.running

        scheduler.stop(timeout=5)

        assert not scheduler.running
        assert self.adapter.call_count == 0
