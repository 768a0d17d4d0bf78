"""Certificate acquisition through an ACME client."""

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Sequence

from ..utils.errors import AcquisitionError, create_error_suggestions
from ..utils.files import ensure_directory, read_bytes
from .certificate import EC256, EC384, CertificateResource, inspect_certificate

if TYPE_CHECKING:
    from ..config.manager import Config

logger = logging.getLogger(__name__)

CERTBOT_CERT_NAME = "simplecert"


class AcmeAdapter(ABC):
    """Obtains a certificate for a domain set.

    Implementations may block for a long time on network round trips and
    must not retry internally; retry policy belongs to the caller.
    """

    @abstractmethod
    def obtain(self, domains: Sequence[str]) -> CertificateResource:
        """
        Obtain a fresh certificate covering ``domains``.

        Raises:
            AcquisitionError: If the certificate could not be issued
        """


class CertbotAdapter(AcmeAdapter):
    """Obtains certificates by running ``certbot certonly``."""

    def __init__(self, config: "Config", certbot_path: str = "certbot"):
        """
        Initialize the certbot adapter.

        Args:
            config: Validated configuration (email, directory URL, challenge, key type)
            certbot_path: certbot executable
        """
        self.config = config
        self.certbot_path = certbot_path

        # certbot state lives under the cache dir, outside /etc/letsencrypt
        self.base_dir = os.path.join(config.cache_dir, "certbot")
        self.config_dir = os.path.join(self.base_dir, "config")
        self.work_dir = os.path.join(self.base_dir, "work")
        self.logs_dir = os.path.join(self.base_dir, "logs")

    def check_certbot_available(self) -> bool:
        """Check if certbot is available."""
        return shutil.which(self.certbot_path) is not None

    def build_command(self, domains: Sequence[str]) -> List[str]:
        """Assemble the certbot command line for ``domains``."""
        cmd = [
            self.certbot_path,
            "certonly",
            "--non-interactive",
            "--agree-tos",
            "--force-renewal",
            "--cert-name",
            CERTBOT_CERT_NAME,
            "--server",
            self.config.directory_url,
            "--config-dir",
            self.config_dir,
            "--work-dir",
            self.work_dir,
            "--logs-dir",
            self.logs_dir,
        ]

        if self.config.ssl_email:
            cmd.extend(["--email", self.config.ssl_email])
        else:
            cmd.append("--register-unsafely-without-email")

        cmd.extend(self._key_arguments())
        cmd.extend(self._challenge_arguments())

        for domain in domains:
            cmd.extend(["--domains", domain])

        return cmd

    def _key_arguments(self) -> List[str]:
        key_type = self.config.key_type
        if key_type == EC256:
            return ["--key-type", "ecdsa", "--elliptic-curve", "secp256r1"]
        if key_type == EC384:
            return ["--key-type", "ecdsa", "--elliptic-curve", "secp384r1"]
        return ["--key-type", "rsa", "--rsa-key-size", key_type]

    def _challenge_arguments(self) -> List[str]:
        if self.config.dns_provider:
            return [f"--dns-{self.config.dns_provider}"]

        if self.config.http_address:
            host, _, port = self.config.http_address.rpartition(":")
            args = ["--standalone", "--preferred-challenges", "http"]
            if port:
                args.extend(["--http-01-port", port])
            if host:
                args.extend(["--http-01-address", host])
            return args

        raise AcquisitionError(
            "certbot supports no TLS-ALPN-01 challenge",
            suggestions=["Configure http_address or dns_provider"],
        )

    def obtain(self, domains: Sequence[str]) -> CertificateResource:
        """
        Obtain a certificate from the configured CA.

        Args:
            domains: Domain names for the certificate (first one is primary)

        Returns:
            CertificateResource: The issued certificate

        Raises:
            AcquisitionError: If certbot is missing, fails or produces no files
        """
        if not self.check_certbot_available():
            raise AcquisitionError(
                f"certbot not found: {self.certbot_path}",
                suggestions=["Install certbot or provide a custom AcmeAdapter"],
            )

        for directory in (self.config_dir, self.work_dir, self.logs_dir):
            ensure_directory(directory, self.config.cache_dir_perm)

        cmd = self.build_command(domains)
        logger.info("Obtaining certificate for %s", ", ".join(domains))
        logger.debug("Running: %s", " ".join(cmd))

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise AcquisitionError(f"Failed to run certbot: {e}")

        if result.returncode != 0:
            raise AcquisitionError(
                "Certbot failed to obtain certificate",
                details=result.stderr.strip() or result.stdout.strip(),
                suggestions=create_error_suggestions("acquisition_failed"),
            )

        return self._read_lineage(domains)

    def _read_lineage(self, domains: Sequence[str]) -> CertificateResource:
        live_dir = os.path.join(self.config_dir, "live", CERTBOT_CERT_NAME)
        try:
            fullchain = read_bytes(os.path.join(live_dir, "fullchain.pem"))
            private_key = read_bytes(os.path.join(live_dir, "privkey.pem"))
            chain = read_bytes(os.path.join(live_dir, "chain.pem"))
        except OSError as e:
            raise AcquisitionError(f"Certbot output missing in {live_dir}", details=str(e))

        try:
            info = inspect_certificate(fullchain)
        except ValueError as e:
            raise AcquisitionError("Certbot produced an unreadable certificate", details=str(e))

        return CertificateResource(
            domains=tuple(domains),
            certificate=fullchain,
            private_key=private_key,
            issuer_certificate=chain,
            not_after=info.not_after,
            account_email=self.config.ssl_email,
            directory_url=self.config.directory_url,
        )
