"""Background renewal of the active certificate."""

import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from ..utils.errors import AcquisitionError, CacheError, create_error_suggestions
from .acme import AcmeAdapter
from .reloader import CertReloader
from .store import CertificateStore

if TYPE_CHECKING:
    from ..config.manager import Config

logger = logging.getLogger(__name__)


def exit_process(error: Exception) -> None:
    """Default fatal handler: log the failure and terminate the process with status 1."""
    logger.critical("simplecert: renewal failed and no failed_to_renew_certificate handler is configured: %s", error)
    logging.shutdown()
    os._exit(1)


class RenewalScheduler:
    """Periodically checks the active certificate and renews it when due."""

    def __init__(
        self,
        config: "Config",
        adapter: AcmeAdapter,
        store: CertificateStore,
        reloader: CertReloader,
        clock: Optional[Callable[[], datetime]] = None,
        fatal_handler: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            config: Validated configuration (domains, windows, hooks)
            adapter: Certificate source
            store: Cache the renewed certificate is persisted to
            reloader: Reloader swapped after a successful renewal
            clock: Returns the current UTC time
            fatal_handler: Called from the background thread with an
                           unhandled renewal failure; exits the process by default
        """
        self.config = config
        self.adapter = adapter
        self.store = store
        self.reloader = reloader
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.fatal_handler = fatal_handler or exit_process

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def remaining_validity(self) -> timedelta:
        """Time until the active certificate expires."""
        return self.reloader.get_certificate().not_after - self.clock()

    def renewal_due(self) -> bool:
        return self.remaining_validity() < self.config.renew_before_delta

    def check_once(self) -> bool:
        """
        Run one scheduler tick.

        Returns:
            bool: True if a new certificate was obtained and published

        Raises:
            AcquisitionError: If renewal failed and no failure hook is configured
        """
        remaining = self.remaining_validity()
        if remaining >= self.config.renew_before_delta:
            logger.debug("Certificate valid for another %s, no renewal needed", remaining)
            return False

        logger.info("Certificate expires in %s, renewing", remaining)
        return self.renew_now()

    def renew_now(self) -> bool:
        """
        Obtain, persist and publish a new certificate regardless of expiry.

        Returns:
            bool: True on success, False if the failure hook handled an error

        Raises:
            AcquisitionError: If renewal failed and no failure hook is configured
        """
        self._call_hook(self.config.will_renew_certificate)

        try:
            resource = self.adapter.obtain(self.config.domains)
            self.store.save(resource)
        except (AcquisitionError, CacheError) as e:
            self._handle_failure(e)
            return False

        if not self.reloader.trigger_reload() and self.reloader.last_error is not None:
            self._handle_failure(self.reloader.last_error)
            return False
        logger.info("Renewed certificate for %s", ", ".join(resource.domains))

        self._call_hook(self.config.did_renew_certificate)
        return True

    def _handle_failure(self, error: Exception) -> None:
        logger.error("Failed to renew certificate: %s", error)

        hook = self.config.failed_to_renew_certificate
        if hook is None:
            if isinstance(error, AcquisitionError):
                raise error
            raise AcquisitionError(
                f"Failed to renew certificate: {error}",
                suggestions=create_error_suggestions("renewal_unhandled"),
            ) from error

        self._call_hook(hook, error)

    def _call_hook(self, hook: Optional[Callable], *args) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.exception("Renewal hook %s raised", getattr(hook, "__name__", hook))

    def start(self) -> None:
        """Start the background check loop."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="simplecert-renewal", daemon=True)
        self._thread.start()
        logger.info("Renewal check scheduled every %s", timedelta(seconds=self.config.check_interval_seconds))

    def _run(self) -> None:
        while not self._stop_event.wait(self.config.check_interval_seconds):
            try:
                self.check_once()
            except AcquisitionError as e:
                self.fatal_handler(e)
                return
            except Exception:
                logger.exception("Unexpected error in renewal check")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the loop; a renewal in progress is allowed to finish.

        Args:
            timeout: Seconds to wait for the thread to end (None waits indefinitely)
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
