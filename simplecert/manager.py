"""Certificate lifecycle for a long-running TLS service.

``init`` brings a service from "no certificate" (or a stale cache) to a
running reloader with background renewal:

1. validate the configuration,
2. prepare the cache directory and its log file,
3. obtain a certificate when nothing usable is cached,
4. load it into a :class:`~simplecert.ssl.reloader.CertReloader`,
5. renew right away if the cached certificate is already due,
6. keep checking in the background.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from .config.manager import Config
from .config.validator import ConfigValidator
from .ssl.acme import AcmeAdapter, CertbotAdapter
from .ssl.certificate import CertificateResource
from .ssl.local import LOCAL_SUBDIR, SelfSignedAdapter, update_hosts
from .ssl.reloader import ActiveCertificate, CertReloader, ReloaderState
from .ssl.scheduler import RenewalScheduler
from .ssl.store import CertificateStore
from .ssl.watcher import CacheWatcher
from .utils.errors import CacheError, SimplecertError, create_error_suggestions
from .utils.files import ensure_directory
from .utils.logging import attach_cache_log, detach_cache_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertStatus:
    """Point-in-time view of the served certificate."""

    domains: Tuple[str, ...]
    not_after: datetime
    remaining: timedelta
    renewal_due: bool
    local: bool
    state: ReloaderState
    fingerprint: str

    @property
    def days_remaining(self) -> int:
        return self.remaining.days


class CertificateManager:
    """Owns the store, reloader, scheduler and watcher of one cache directory."""

    def __init__(
        self,
        config: Config,
        adapter: Optional[AcmeAdapter] = None,
        cleanup: Optional[Callable[[], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        fatal_handler: Optional[Callable[[Exception], None]] = None,
        install_signal: bool = True,
        hosts_path: Optional[str] = None,
    ):
        """
        Initialize the manager; nothing happens on disk until start().

        Args:
            config: Service configuration
            adapter: Certificate source (certbot, or self-signed in local mode)
            cleanup: Called exactly once when the manager shuts down or fails to start
            clock: Returns the current UTC time
            fatal_handler: Receives renewal failures that no hook handled
            install_signal: Reload on SIGHUP when started from the main thread
            hosts_path: Hosts file updated in local mode
        """
        self.config = config
        self.adapter = adapter
        self.cleanup = cleanup
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.fatal_handler = fatal_handler
        self.install_signal = install_signal
        self.hosts_path = hosts_path

        self.validator = ConfigValidator()
        self.store: Optional[CertificateStore] = None
        self.reloader: Optional[CertReloader] = None
        self.scheduler: Optional[RenewalScheduler] = None
        self.watcher: Optional[CacheWatcher] = None

    @property
    def cert_dir(self) -> str:
        """Directory holding the certificate set; ``local/`` in local mode."""
        if self.config.local:
            return os.path.join(self.config.cache_dir, LOCAL_SUBDIR)
        return self.config.cache_dir

    def start(self) -> "CertificateManager":
        """
        Bring the certificate online.

        Returns:
            CertificateManager: self, serving a certificate

        Raises:
            ConfigurationError: If the configuration is invalid
            CacheError: If the cache cannot be created, read or written
            AcquisitionError: If no certificate could be obtained
        """
        log_handler = None
        try:
            self.validator.check(self.config)
            self._ensure_dir(self.config.cache_dir)
            log_handler = attach_cache_log(self.config.cache_dir)

            if self.config.local:
                self._prepare_local()
            elif self.adapter is None:
                self.adapter = CertbotAdapter(self.config)

            self.store = CertificateStore(self.cert_dir, self.config.cache_dir_perm)
            self._ensure_cached()
        except BaseException:
            self._abort(log_handler)
            raise

        # From here on the reloader owns the log handler and the cleanup callback
        cleanup, self.cleanup = self.cleanup, None
        self.reloader = CertReloader(
            self.store.cert_path,
            self.store.key_path,
            log_handler=log_handler,
            cleanup=cleanup,
        )

        try:
            self.scheduler = RenewalScheduler(
                self.config,
                self.adapter,
                self.store,
                self.reloader,
                clock=self.clock,
                fatal_handler=self.fatal_handler,
            )
            self.scheduler.check_once()

            self.scheduler.start()
            if self.config.watch_cache_dir:
                self.watcher = CacheWatcher(self.cert_dir, self.reloader.trigger_reload)
                self.watcher.start()
            if self.install_signal:
                self.reloader.install_signal_handler()
        except BaseException:
            self.shutdown()
            raise

        logger.info("simplecert started for %s", ", ".join(self.config.domains))
        return self

    def _prepare_local(self) -> None:
        self._ensure_dir(self.cert_dir)
        if self.adapter is None:
            self.adapter = SelfSignedAdapter(key_type=self.config.key_type, clock=self.clock)
        if self.config.update_hosts:
            if self.hosts_path:
                update_hosts(self.config.domains, self.hosts_path)
            else:
                update_hosts(self.config.domains)

    def _ensure_dir(self, path: str) -> None:
        try:
            ensure_directory(path, self.config.cache_dir_perm)
        except OSError as e:
            raise CacheError(
                f"Failed to create cache directory {path}",
                details=str(e),
                suggestions=create_error_suggestions("cache_unreadable", cache_dir=path),
            )

    def _ensure_cached(self) -> None:
        if not self.store.is_cached():
            logger.info("No cached certificate in %s, obtaining one", self.store.cache_dir)
            self.acquire_and_persist()
            return

        # Drift is judged on the PEM files as restored from the committed record
        resource = self.store.load()
        self.store.reconcile(resource)

        if self.store.domains_changed(self.config.domains):
            logger.info("Domain set changed, obtaining a new certificate")
            self.acquire_and_persist()

    def _abort(self, log_handler: Optional[logging.Handler]) -> None:
        detach_cache_log(log_handler)
        cleanup, self.cleanup = self.cleanup, None
        if cleanup is not None:
            cleanup()

    def acquire_and_persist(self) -> CertificateResource:
        """
        Obtain a certificate for the configured domains and write it to the cache.

        Raises:
            AcquisitionError: If the adapter fails
            CacheError: If the key does not match or the files cannot be written
        """
        resource = self.adapter.obtain(self.config.domains)
        self.store.save(resource)
        return resource

    def get_certificate(self) -> ActiveCertificate:
        return self._require_reloader().get_certificate()

    def sni_callback(self, ssl_socket, server_name, ssl_context) -> None:
        self._require_reloader().sni_callback(ssl_socket, server_name, ssl_context)

    def create_server_context(self):
        return self._require_reloader().create_server_context()

    def trigger_reload(self) -> bool:
        return self._require_reloader().trigger_reload()

    def status(self) -> CertStatus:
        """Describe the certificate currently served."""
        reloader = self._require_reloader()
        active = reloader.get_certificate()
        remaining = active.not_after - self.clock()
        return CertStatus(
            domains=active.domains,
            not_after=active.not_after,
            remaining=remaining,
            renewal_due=remaining < self.config.renew_before_delta,
            local=self.config.local,
            state=reloader.state,
            fingerprint=active.fingerprint,
        )

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop background work and release the certificate; idempotent."""
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        if self.scheduler is not None:
            self.scheduler.stop(timeout)
            self.scheduler = None
        if self.reloader is not None:
            self.reloader.close()

    def _require_reloader(self) -> CertReloader:
        if self.reloader is None:
            raise SimplecertError("Certificate manager has not been started")
        return self.reloader

    def __enter__(self) -> "CertificateManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


def init(
    config: Config,
    cleanup: Optional[Callable[[], None]] = None,
    adapter: Optional[AcmeAdapter] = None,
    **kwargs,
) -> CertificateManager:
    """
    Start certificate management for ``config``.

    Args:
        config: Service configuration
        cleanup: Called exactly once on shutdown or failed startup
        adapter: Certificate source overriding the default
        **kwargs: Further CertificateManager options (clock, fatal_handler, ...)

    Returns:
        CertificateManager: Started manager serving a certificate
    """
    return CertificateManager(config, adapter=adapter, cleanup=cleanup, **kwargs).start()
