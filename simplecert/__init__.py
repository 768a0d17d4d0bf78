"""simplecert - TLS certificate caching, hot reload and renewal for long-running services."""

__version__ = "0.1.0"
__author__ = "simplecert contributors"

from .config import Config, ConfigManager, ConfigValidator
from .manager import CertificateManager, CertStatus, init
from .ssl import ActiveCertificate, AcmeAdapter, CertificateResource, CertReloader, ReloaderState
from .utils.errors import (
    AcquisitionError,
    CacheError,
    ConfigurationError,
    ReloadError,
    SimplecertError,
)

__all__ = [
    "AcmeAdapter",
    "AcquisitionError",
    "ActiveCertificate",
    "CacheError",
    "CertificateManager",
    "CertificateResource",
    "CertReloader",
    "CertStatus",
    "Config",
    "ConfigManager",
    "ConfigValidator",
    "ConfigurationError",
    "ReloadError",
    "ReloaderState",
    "SimplecertError",
    "init",
]
