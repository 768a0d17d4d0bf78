"""Certificate resource model and inspection helpers."""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtensionOID, NameOID

from ..utils.errors import CacheError

EC256 = "P256"
EC384 = "P384"
RSA2048 = "2048"
RSA4096 = "4096"
RSA8192 = "8192"

SUPPORTED_KEY_TYPES = frozenset({EC256, EC384, RSA2048, RSA4096, RSA8192})


@dataclass(frozen=True)
class CertificateResource:
    """The authoritative record of one issued certificate."""

    domains: Tuple[str, ...]
    certificate: bytes
    private_key: bytes
    not_after: datetime
    issuer_certificate: bytes = b""
    csr: bytes = b""
    cert_url: str = ""
    cert_stable_url: str = ""
    account_email: str = ""
    directory_url: str = ""

    def __post_init__(self):
        if not isinstance(self.domains, tuple):
            object.__setattr__(self, "domains", tuple(self.domains))
        if not self.domains:
            raise ValueError("certificate resource needs at least one domain")

    @property
    def domain(self) -> str:
        """The primary domain (subject common name)."""
        return self.domains[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "domains": list(self.domains),
            "certUrl": self.cert_url,
            "certStableUrl": self.cert_stable_url,
            "accountEmail": self.account_email,
            "directoryUrl": self.directory_url,
            "notAfter": self.not_after.isoformat(),
            "privateKey": self.private_key.decode("ascii"),
            "certificate": self.certificate.decode("ascii"),
            "issuerCertificate": self.issuer_certificate.decode("ascii"),
            "csr": self.csr.decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CertificateResource":
        """
        Rebuild a resource from its JSON record.

        Raises:
            CacheError: If required fields are missing or malformed
        """
        try:
            if not isinstance(data["domains"], list):
                raise ValueError("domains must be a list")
            not_after = datetime.fromisoformat(data["notAfter"])
            if not_after.tzinfo is None:
                raise ValueError("notAfter carries no timezone")
            return cls(
                domains=tuple(data["domains"]),
                certificate=data["certificate"].encode("ascii"),
                private_key=data["privateKey"].encode("ascii"),
                not_after=not_after,
                issuer_certificate=data.get("issuerCertificate", "").encode("ascii"),
                csr=data.get("csr", "").encode("ascii"),
                cert_url=data.get("certUrl", ""),
                cert_stable_url=data.get("certStableUrl", ""),
                account_email=data.get("accountEmail", ""),
                directory_url=data.get("directoryUrl", ""),
            )
        except (KeyError, TypeError, ValueError, AttributeError, UnicodeEncodeError) as e:
            raise CacheError(f"Malformed certificate resource: {e}")


@dataclass(frozen=True)
class CertificateInfo:
    """Metadata decoded from a PEM certificate."""

    common_name: Optional[str]
    san_domains: Tuple[str, ...]
    not_before: datetime
    not_after: datetime
    fingerprint: str

    @property
    def domains(self) -> Tuple[str, ...]:
        """The names the certificate covers; the subject CN only counts without SANs."""
        if self.san_domains:
            return self.san_domains
        return (self.common_name,) if self.common_name else ()


def load_certificate(cert_pem: bytes) -> x509.Certificate:
    """Load the leaf (first) certificate of a PEM bundle."""
    return x509.load_pem_x509_certificate(cert_pem)


def inspect_certificate(cert_pem: bytes) -> CertificateInfo:
    """
    Decode subject, SAN list and validity from PEM certificate material.

    Args:
        cert_pem: PEM bytes; for a bundle only the leaf is inspected

    Returns:
        CertificateInfo: Decoded metadata

    Raises:
        ValueError: If the PEM data cannot be parsed
    """
    cert = load_certificate(cert_pem)

    common_name = None
    for attribute in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME):
        common_name = str(attribute.value).lower()
        break

    try:
        san_ext = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
        san_domains = tuple(name.lower() for name in san_ext.value.get_values_for_type(x509.DNSName))
    except x509.ExtensionNotFound:
        san_domains = ()

    return CertificateInfo(
        common_name=common_name,
        san_domains=san_domains,
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        fingerprint=fingerprint(cert_pem),
    )


def fingerprint(cert_pem: bytes) -> str:
    """SHA-256 fingerprint of the leaf certificate, hex encoded."""
    cert = load_certificate(cert_pem)
    return hashlib.sha256(cert.public_bytes(serialization.Encoding.DER)).hexdigest()


def key_matches_certificate(cert_pem: bytes, key_pem: bytes) -> bool:
    """
    Check that a private key belongs to the leaf certificate.

    Raises:
        ValueError: If either PEM blob cannot be parsed
    """
    cert = load_certificate(cert_pem)
    private_key = serialization.load_pem_private_key(key_pem, password=None)

    public_format = serialization.PublicFormat.SubjectPublicKeyInfo
    cert_public = cert.public_key().public_bytes(serialization.Encoding.DER, public_format)
    key_public = private_key.public_key().public_bytes(serialization.Encoding.DER, public_format)
    return cert_public == key_public


def same_domain_set(covered: Sequence[str], requested: Sequence[str]) -> bool:
    """Compare domain lists as case-insensitive, unordered sets."""
    return {d.lower() for d in covered} == {d.lower() for d in requested}


def generate_private_key(key_type: str):
    """
    Generate a private key for one of the supported key types.

    Args:
        key_type: P256, P384, 2048, 4096 or 8192
    """
    if key_type == EC256:
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == EC384:
        return ec.generate_private_key(ec.SECP384R1())
    if key_type in (RSA2048, RSA4096, RSA8192):
        return rsa.generate_private_key(public_exponent=65537, key_size=int(key_type))
    raise ValueError(f"Unsupported key type: {key_type}")


def private_key_to_pem(private_key) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
