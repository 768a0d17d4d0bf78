"""Pytest configuration and shared fixtures."""

import os
import shutil
import tempfile
import threading
from datetime import datetime, timedelta, timezone

import pytest

from simplecert.config.manager import Config
from simplecert.ssl.acme import AcmeAdapter
from simplecert.ssl.certificate import EC256
from simplecert.ssl.local import SelfSignedAdapter

START_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeAdapter(AcmeAdapter):
    """Self-signed adapter that counts calls and can be told to fail."""

    def __init__(self, clock=None, validity: timedelta = timedelta(days=90)):
        self.signer = SelfSignedAdapter(key_type=EC256, validity=validity, clock=clock)
        self.calls = []
        self.fail_with = None
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def obtain(self, domains):
        with self._lock:
            self.calls.append(tuple(domains))
        if self.fail_with is not None:
            raise self.fail_with
        return self.signer.obtain(domains)


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def cache_dir(temp_directory):
    """Cache directory path inside the temporary directory (not created)."""
    return os.path.join(temp_directory, "letsencrypt")


@pytest.fixture
def fake_clock():
    """Clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def fake_adapter(fake_clock):
    """Certificate source issuing 90-day EC certificates on the fake clock."""
    return FakeAdapter(clock=fake_clock)


@pytest.fixture
def make_resource(fake_clock):
    """Factory for certificate resources with a given domain set and validity."""

    def _make(domains=("example.com",), validity=timedelta(days=90)):
        return SelfSignedAdapter(key_type=EC256, validity=validity, clock=fake_clock).obtain(domains)

    return _make


@pytest.fixture
def sample_config(cache_dir):
    """Valid configuration writing to the temporary cache directory."""
    return Config(
        domains=("example.com", "www.example.com"),
        ssl_email="admin@example.com",
        cache_dir=cache_dir,
        key_type=EC256,
    )


@pytest.fixture
def sample_config_dict():
    """Sample YAML configuration contents."""
    return {
        "domains": ["Example.com", "www.example.com"],
        "ssl_email": "admin@example.com",
        "directory_url": "https://acme-staging-v02.api.letsencrypt.org/directory",
        "http_address": ":8080",
        "renew_before": 480,
        "check_interval": 3600,
        "cache_dir": "certs",
        "cache_dir_perm": "0750",
        "key_type": "P256",
    }


@pytest.fixture(autouse=True)
def isolate_filesystem(temp_directory, monkeypatch):
    """Isolate filesystem operations to temporary directory."""
    monkeypatch.chdir(temp_directory)
    return temp_directory
