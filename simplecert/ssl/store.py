"""On-disk certificate cache.

Layout of a cache directory:

    cert.pem            certificate, bundled with the CA chain
    key.pem             private key
    CertResource.json   resource record (domains, registration metadata, expiry)

``CertResource.json`` is written last and is the authoritative copy: a
crash between the individual renames can leave PEM files that disagree
with it, and :meth:`CertificateStore.reconcile` repairs them from the record.
"""

import json
import logging
import os
from typing import Sequence

from ..utils.errors import CacheError, create_error_suggestions
from ..utils.files import atomic_write, file_mode, read_bytes
from .certificate import CertificateResource, inspect_certificate, key_matches_certificate, same_domain_set

logger = logging.getLogger(__name__)

CERT_FILE_NAME = "cert.pem"
KEY_FILE_NAME = "key.pem"
CERT_RESOURCE_FILE_NAME = "CertResource.json"


def is_cached(cache_dir: str) -> bool:
    """True iff cert.pem, key.pem and CertResource.json all exist in ``cache_dir``."""
    return all(
        os.path.isfile(os.path.join(cache_dir, name))
        for name in (CERT_FILE_NAME, KEY_FILE_NAME, CERT_RESOURCE_FILE_NAME)
    )


def domains_changed(cert_path: str, key_path: str, requested: Sequence[str]) -> bool:
    """
    Report whether the cached certificate covers a different domain set.

    Args:
        cert_path: Path to the cached certificate
        key_path: Path to the cached private key (must exist)
        requested: Domains currently requested

    Returns:
        bool: True when a domain was added or removed, or the cached files
              cannot be read
    """
    if not os.path.isfile(key_path):
        logger.warning("Cached key %s is missing, treating domains as changed", key_path)
        return True

    try:
        info = inspect_certificate(read_bytes(cert_path))
    except (OSError, ValueError) as e:
        logger.warning("Could not parse cached certificate %s: %s", cert_path, e)
        return True

    changed = not same_domain_set(info.domains, requested)
    if changed:
        logger.info(
            "Cached certificate covers %s, requested %s",
            sorted(info.domains),
            sorted(d.lower() for d in requested),
        )
    return changed


class CertificateStore:
    """Reads and writes the certificate set of one cache directory."""

    def __init__(self, cache_dir: str, dir_mode: int = 0o700):
        """
        Initialize the store.

        Args:
            cache_dir: Directory holding the cached files (must exist for writes)
            dir_mode: Permission mode of the cache directory; file modes derive from it
        """
        self.cache_dir = cache_dir
        self.dir_mode = dir_mode

    @property
    def cert_path(self) -> str:
        return os.path.join(self.cache_dir, CERT_FILE_NAME)

    @property
    def key_path(self) -> str:
        return os.path.join(self.cache_dir, KEY_FILE_NAME)

    @property
    def resource_path(self) -> str:
        return os.path.join(self.cache_dir, CERT_RESOURCE_FILE_NAME)

    def is_cached(self) -> bool:
        return is_cached(self.cache_dir)

    def domains_changed(self, requested: Sequence[str]) -> bool:
        return domains_changed(self.cert_path, self.key_path, requested)

    def load(self) -> CertificateResource:
        """
        Deserialize the resource record.

        Returns:
            CertificateResource: The cached resource

        Raises:
            CacheError: If the record is missing, unreadable or malformed
        """
        try:
            with open(self.resource_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise CacheError(f"Certificate resource not found: {self.resource_path}")
        except (OSError, ValueError) as e:
            raise CacheError(
                f"Failed to read {CERT_RESOURCE_FILE_NAME} from disk",
                details=str(e),
                suggestions=create_error_suggestions("cache_unreadable", cache_dir=self.cache_dir),
            )

        if not isinstance(data, dict):
            raise CacheError(f"Malformed certificate resource in {self.resource_path}")

        return CertificateResource.from_dict(data)

    def save(self, resource: CertificateResource) -> None:
        """
        Atomically persist certificate, key and resource record.

        Raises:
            CacheError: If the key does not belong to the certificate, or if
                        any file cannot be written
        """
        self._check_usable(resource)

        try:
            atomic_write(self.cert_path, resource.certificate, mode=file_mode(self.dir_mode))
            atomic_write(self.key_path, resource.private_key, mode=file_mode(self.dir_mode, private=True))
            atomic_write(
                self.resource_path,
                json.dumps(resource.to_dict(), indent=2),
                mode=file_mode(self.dir_mode, private=True),
            )
        except OSError as e:
            raise CacheError(
                f"Failed to write certificate to {self.cache_dir}",
                details=str(e),
                suggestions=create_error_suggestions("cache_unreadable", cache_dir=self.cache_dir),
            )

        logger.info("Wrote certificate for %s to %s", ", ".join(resource.domains), self.cache_dir)

    def _check_usable(self, resource: CertificateResource) -> None:
        # Nothing is written unless cert and key form a loadable pair
        try:
            matches = key_matches_certificate(resource.certificate, resource.private_key)
        except (TypeError, ValueError) as e:
            raise CacheError(
                f"Refusing to cache unreadable certificate material for {', '.join(resource.domains)}",
                details=str(e),
            )
        if not matches:
            raise CacheError(
                f"Refusing to cache certificate for {', '.join(resource.domains)}",
                details="private key does not match the certificate",
            )

    def reconcile(self, resource: CertificateResource) -> bool:
        """
        Rewrite the PEM files from ``resource`` if they disagree with it.

        Returns:
            bool: True if a repair was necessary
        """
        try:
            in_sync = (
                read_bytes(self.cert_path) == resource.certificate
                and read_bytes(self.key_path) == resource.private_key
            )
        except OSError:
            in_sync = False

        if in_sync:
            return False

        logger.warning("Cached PEM files disagree with %s, restoring them", CERT_RESOURCE_FILE_NAME)
        try:
            atomic_write(self.cert_path, resource.certificate, mode=file_mode(self.dir_mode))
            atomic_write(self.key_path, resource.private_key, mode=file_mode(self.dir_mode, private=True))
        except OSError as e:
            raise CacheError(f"Failed to repair certificate files in {self.cache_dir}", details=str(e))
        return True
