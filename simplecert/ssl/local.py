"""Self-signed certificates and hosts entries for local development."""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from ..utils.errors import AcquisitionError
from .acme import AcmeAdapter
from .certificate import RSA2048, CertificateResource, generate_private_key, private_key_to_pem

logger = logging.getLogger(__name__)

LOCAL_SUBDIR = "local"
DEFAULT_HOSTS_PATH = "/etc/hosts"


class SelfSignedAdapter(AcmeAdapter):
    """Issues self-signed certificates instead of contacting a CA."""

    def __init__(
        self,
        key_type: str = RSA2048,
        validity: timedelta = timedelta(days=365),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the self-signed adapter.

        Args:
            key_type: Key algorithm for generated certificates
            validity: Lifetime of generated certificates
            clock: Returns the current UTC time (for tests)
        """
        self.key_type = key_type
        self.validity = validity
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def obtain(self, domains: Sequence[str]) -> CertificateResource:
        if not domains:
            raise AcquisitionError("No domains given for self-signed certificate")

        try:
            private_key = generate_private_key(self.key_type)
        except ValueError as e:
            raise AcquisitionError(str(e))

        now = self.clock()
        subject = issuer = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, "simplecert local"),
                x509.NameAttribute(NameOID.COMMON_NAME, domains[0]),
            ]
        )

        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(private_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + self.validity)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(domain) for domain in domains]),
                critical=False,
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(private_key, hashes.SHA256())
        )

        logger.info("Generated self-signed certificate for %s", ", ".join(domains))

        return CertificateResource(
            domains=tuple(domains),
            certificate=cert.public_bytes(serialization.Encoding.PEM),
            private_key=private_key_to_pem(private_key),
            not_after=cert.not_valid_after_utc,
        )


def update_hosts(domains: Sequence[str], hosts_path: str = DEFAULT_HOSTS_PATH) -> List[str]:
    """
    Point ``domains`` at 127.0.0.1 in the hosts file.

    Entries that already exist are left alone. A hosts file that cannot be
    written is logged and skipped.

    Args:
        domains: Domains to map to localhost
        hosts_path: Hosts file to update

    Returns:
        List[str]: Domains that were added
    """
    existing_content = ""
    if os.path.exists(hosts_path):
        with open(hosts_path, encoding="utf-8") as f:
            existing_content = f.read()

    known = set()
    for line in existing_content.splitlines():
        fields = line.split("#", 1)[0].split()
        known.update(fields[1:])

    missing_entries = [domain for domain in domains if domain not in known]
    if not missing_entries:
        return []

    try:
        with open(hosts_path, "a", encoding="utf-8") as f:
            if existing_content and not existing_content.endswith("\n"):
                f.write("\n")
            for domain in missing_entries:
                f.write(f"127.0.0.1 {domain} # simplecert\n")
    except PermissionError as e:
        logger.warning("Could not update %s: %s", hosts_path, e)
        return []

    logger.info("Added %s to %s", ", ".join(missing_entries), hosts_path)
    return missing_entries
