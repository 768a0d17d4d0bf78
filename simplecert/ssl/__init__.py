"""Certificate storage, acquisition, hot reload and renewal."""

from .certificate import CertificateInfo, CertificateResource, inspect_certificate
from .acme import AcmeAdapter, CertbotAdapter
from .local import SelfSignedAdapter, update_hosts
from .store import CertificateStore
from .reloader import ActiveCertificate, CertReloader, ReloaderState
from .scheduler import RenewalScheduler
from .watcher import CacheWatcher

__all__ = [
    "ActiveCertificate",
    "AcmeAdapter",
    "CacheWatcher",
    "CertbotAdapter",
    "CertificateInfo",
    "CertificateResource",
    "CertificateStore",
    "CertReloader",
    "ReloaderState",
    "RenewalScheduler",
    "SelfSignedAdapter",
    "inspect_certificate",
    "update_hosts",
]
