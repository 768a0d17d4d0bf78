"""Hot-swappable certificate served to the TLS layer.

The active certificate is an immutable snapshot. Readers take a reference
to the current snapshot without locking; a reload builds a complete new
snapshot and publishes it by replacing one attribute, so a handshake sees
either the old or the new certificate, never a mix.
"""

import logging
import os
import signal
import ssl
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Tuple

from ..utils.errors import CacheError, ReloadError
from ..utils.files import read_bytes
from ..utils.logging import detach_cache_log
from .certificate import inspect_certificate, key_matches_certificate

logger = logging.getLogger(__name__)


class ReloaderState(Enum):
    """Lifecycle states of a CertReloader."""

    LOADING = "loading"
    ACTIVE = "active"
    RELOADING = "reloading"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True)
class ActiveCertificate:
    """One consistent certificate/key pair plus the SSL context built from it."""

    certificate_pem: bytes
    private_key_pem: bytes
    domains: Tuple[str, ...]
    not_after: datetime
    fingerprint: str
    loaded_at: datetime
    context: ssl.SSLContext = field(compare=False, repr=False)


def build_server_context(cert_pem: bytes, key_pem: bytes) -> ssl.SSLContext:
    """
    Create a server-side SSL context from PEM material.

    SSLContext.load_cert_chain only accepts paths, so the material is
    written to a private temporary directory that is removed right after.
    """
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)

    with tempfile.TemporaryDirectory(prefix="simplecert-") as tmp_dir:
        cert_file = os.path.join(tmp_dir, "cert.pem")
        key_file = os.path.join(tmp_dir, "key.pem")
        for path, content in ((cert_file, cert_pem), (key_file, key_pem)):
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(content)
        context.load_cert_chain(cert_file, key_file)

    return context


def load_active_certificate(cert_path: str, key_path: str) -> ActiveCertificate:
    """
    Read, verify and wrap a certificate/key pair from disk.

    Raises:
        ReloadError: If a file is unreadable, unparsable, or the key does
                     not belong to the certificate
    """
    try:
        cert_pem = read_bytes(cert_path)
        key_pem = read_bytes(key_path)
    except OSError as e:
        raise ReloadError(f"Failed to read certificate files: {e}")

    try:
        info = inspect_certificate(cert_pem)
        matches = key_matches_certificate(cert_pem, key_pem)
    except (ValueError, TypeError) as e:
        raise ReloadError(f"Failed to parse certificate files: {e}")

    if not matches:
        raise ReloadError(f"Private key {key_path} does not match certificate {cert_path}")

    try:
        context = build_server_context(cert_pem, key_pem)
    except (ssl.SSLError, OSError) as e:
        raise ReloadError(f"Failed to load certificate into SSL context: {e}")

    return ActiveCertificate(
        certificate_pem=cert_pem,
        private_key_pem=key_pem,
        domains=info.domains,
        not_after=info.not_after,
        fingerprint=info.fingerprint,
        loaded_at=datetime.now(timezone.utc),
        context=context,
    )


class CertReloader:
    """Holds the certificate served to new TLS connections and swaps it on reload."""

    def __init__(
        self,
        cert_path: str,
        key_path: str,
        log_handler: Optional[logging.Handler] = None,
        cleanup: Optional[Callable[[], None]] = None,
        will_reload: Optional[Callable[[], None]] = None,
        did_reload: Optional[Callable[[], None]] = None,
        reload_failed: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Load the initial certificate.

        Args:
            cert_path: Certificate file to serve
            key_path: Private key file to serve
            log_handler: Cache-dir log handler owned by this reloader until close()
            cleanup: Called exactly once, on close() or failed construction
            will_reload: Called before a reload re-reads the files
            did_reload: Called after a new certificate has been published
            reload_failed: Called with the error when a reload keeps the old certificate

        Raises:
            CacheError: If the initial certificate cannot be loaded
        """
        self.cert_path = cert_path
        self.key_path = key_path
        self.will_reload = will_reload
        self.did_reload = did_reload
        self.reload_failed = reload_failed
        self.last_error: Optional[Exception] = None

        self._log_handler = log_handler
        self._cleanup = cleanup
        self._closed = False
        self._lock = threading.Lock()
        self._reloading = False
        self._pending = False
        self._signum: Optional[int] = None
        self._previous_handler = None
        self.state = ReloaderState.LOADING

        try:
            self._active = load_active_certificate(cert_path, key_path)
        except ReloadError as e:
            self._closed = True
            self.state = ReloaderState.CLOSED
            self._release()
            raise CacheError(f"Failed to load certificate from {cert_path}", details=e.message) from e

        self.state = ReloaderState.ACTIVE
        logger.info(
            "Serving certificate for %s (expires %s)",
            ", ".join(self._active.domains),
            self._active.not_after.isoformat(),
        )

    def get_certificate(self) -> ActiveCertificate:
        """Return the certificate currently served; never blocks on a reload."""
        return self._active

    def sni_callback(self, ssl_socket, server_name: Optional[str], ssl_context) -> None:
        """SNI hook: hand every new connection the active SSL context."""
        ssl_socket.context = self._active.context

    def create_server_context(self) -> ssl.SSLContext:
        """
        Create an SSL context for a listener.

        The context starts with the active certificate and switches each
        handshake to whatever certificate is active at that moment.
        """
        active = self._active
        context = build_server_context(active.certificate_pem, active.private_key_pem)
        context.sni_callback = self.sni_callback
        return context

    def trigger_reload(self) -> bool:
        """
        Re-read the certificate files and publish them if valid.

        Only one reload runs at a time. A trigger arriving during a reload
        is coalesced into a single extra pass once the current one ends.

        Returns:
            bool: True if this call published a new certificate
        """
        with self._lock:
            if self._closed:
                logger.warning("Ignoring reload request on closed reloader")
                return False
            if self._reloading:
                self._pending = True
                logger.debug("Reload in progress, coalescing request")
                return False
            self._reloading = True

        swapped = False
        try:
            while True:
                swapped = self._reload_once()
                with self._lock:
                    if not self._pending or self._closed:
                        self._reloading = False
                        self._pending = False
                        return swapped
                    self._pending = False
        except BaseException:
            with self._lock:
                self._reloading = False
                self._pending = False
            raise

    def _reload_once(self) -> bool:
        self._set_state(ReloaderState.RELOADING)
        self._call_hook(self.will_reload)

        try:
            new_active = load_active_certificate(self.cert_path, self.key_path)
        except ReloadError as e:
            self.last_error = e
            self._set_state(ReloaderState.FAILED)
            logger.error("Certificate reload failed, keeping previous certificate: %s", e.message)
            self._set_state(ReloaderState.ACTIVE)
            self._call_hook(self.reload_failed, e)
            return False

        self._active = new_active
        self.last_error = None
        self._set_state(ReloaderState.ACTIVE)
        logger.info(
            "Reloaded certificate for %s (expires %s)",
            ", ".join(new_active.domains),
            new_active.not_after.isoformat(),
        )
        self._call_hook(self.did_reload)
        return True

    def _set_state(self, state: ReloaderState) -> None:
        with self._lock:
            if not self._closed:
                self.state = state

    def _call_hook(self, hook: Optional[Callable], *args) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.exception("Reload hook %s raised", getattr(hook, "__name__", hook))

    def install_signal_handler(self, signum: Optional[int] = None) -> bool:
        """
        Reload whenever ``signum`` (SIGHUP by default) is received.

        The reload runs in a worker thread so the signal handler returns at
        once. Signal handlers can only be installed from the main thread.

        Returns:
            bool: True if the handler was installed
        """
        if signum is None:
            signum = getattr(signal, "SIGHUP", None)
        if signum is None:
            logger.debug("Platform has no SIGHUP, reload signal not installed")
            return False
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, reload signal not installed")
            return False

        self._previous_handler = signal.signal(signum, self._on_signal)
        self._signum = signum
        logger.info("Reloading certificate on signal %s", signal.Signals(signum).name)
        return True

    def _on_signal(self, signum, frame) -> None:
        logger.info("Received %s, reloading certificate", signal.Signals(signum).name)
        threading.Thread(target=self.trigger_reload, name="simplecert-reload", daemon=True).start()

    def close(self) -> None:
        """Release the signal handler, the log file and run cleanup; idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.state = ReloaderState.CLOSED

        if self._signum is not None and threading.current_thread() is threading.main_thread():
            signal.signal(self._signum, self._previous_handler or signal.SIG_DFL)
            self._signum = None

        self._release()
        logger.info("Certificate reloader closed")

    def _release(self) -> None:
        detach_cache_log(self._log_handler)
        self._log_handler = None

        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            cleanup()

    def __enter__(self) -> "CertReloader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
