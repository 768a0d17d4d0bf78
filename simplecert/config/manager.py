"""Configuration management for simplecert."""

import dataclasses
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import jsonschema
import yaml

from ..utils.errors import ConfigurationError, create_error_suggestions
from .schemas import CONFIG_SCHEMA

LETSENCRYPT_DIRECTORY_URL = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING_DIRECTORY_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"


@dataclass(frozen=True)
class Config:
    """Validated, immutable configuration for one certificate-managed service."""

    domains: Tuple[str, ...] = ()
    ssl_email: str = ""
    directory_url: str = LETSENCRYPT_DIRECTORY_URL
    # Challenge endpoints; the CA reaches them on ports 80 and 443
    http_address: str = ":80"
    tls_address: str = ":443"
    dns_provider: str = ""
    # Hours before expiry at which renewal is due; CA certs last 90 days
    renew_before: int = 30 * 24
    # Seconds between renewal checks
    check_interval: float = 2 * 24 * 60 * 60
    cache_dir: str = "letsencrypt"
    cache_dir_perm: int = 0o700
    key_type: str = "2048"
    local: bool = False
    update_hosts: bool = True
    watch_cache_dir: bool = False

    will_renew_certificate: Optional[Callable[[], None]] = field(default=None, compare=False, repr=False)
    did_renew_certificate: Optional[Callable[[], None]] = field(default=None, compare=False, repr=False)
    failed_to_renew_certificate: Optional[Callable[[Exception], None]] = field(
        default=None, compare=False, repr=False
    )

    def __post_init__(self):
        # Domains are always stored as a tuple
        if not isinstance(self.domains, tuple):
            object.__setattr__(self, "domains", tuple(self.domains))

    @property
    def renew_before_delta(self) -> timedelta:
        return timedelta(hours=self.renew_before)

    @property
    def check_interval_seconds(self) -> float:
        return float(self.check_interval)

    def with_overrides(self, **changes: Any) -> "Config":
        """Return a copy of this config with ``changes`` applied."""
        return dataclasses.replace(self, **changes)


DEFAULT_CONFIG = Config()


def parse_permission(value: Any) -> int:
    """Parse a permission given as int or octal string ("0700", "700", "0o700")."""
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.startswith("0o"):
        text = text[2:]
    try:
        return int(text, 8)
    except ValueError:
        raise ConfigurationError(f"Invalid cache_dir_perm: {value!r}")


class ConfigManager:
    """Loads simplecert configuration from YAML files."""

    def __init__(self, path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            path: Optional base directory for relative cache_dir values
                  (defaults to the config file's directory)
        """
        self.path = path

    def load_config_file(self, config_path: str, **hooks: Callable) -> Config:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to configuration file
            **hooks: will_renew_certificate, did_renew_certificate and
                     failed_to_renew_certificate callables

        Returns:
            Config: Parsed configuration (not yet validated against invariants)

        Raises:
            ConfigurationError: If the file is missing, unparsable or malformed
        """
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}",
                details=str(e),
                suggestions=create_error_suggestions("configuration_invalid"),
            )

        base_dir = self.path or os.path.dirname(os.path.abspath(config_path))
        return self.from_dict(data, base_dir=base_dir, **hooks)

    def from_dict(self, data: Dict[str, Any], base_dir: Optional[str] = None, **hooks: Callable) -> Config:
        """
        Build a Config from a plain dictionary.

        Args:
            data: Configuration mapping as found in a YAML file
            base_dir: Directory that relative cache_dir paths resolve against
            **hooks: Lifecycle hook callables

        Returns:
            Config: Parsed configuration
        """
        try:
            jsonschema.validate(data, CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(
                f"Schema validation failed: {e.message}",
                suggestions=create_error_suggestions("configuration_invalid"),
            )

        unknown_hooks = set(hooks) - {
            "will_renew_certificate",
            "did_renew_certificate",
            "failed_to_renew_certificate",
        }
        if unknown_hooks:
            raise ConfigurationError(f"Unknown lifecycle hooks: {', '.join(sorted(unknown_hooks))}")

        values = dict(data)
        if "domains" in values:
            values["domains"] = tuple(d.strip().lower() for d in values["domains"])
        if "cache_dir_perm" in values:
            values["cache_dir_perm"] = parse_permission(values["cache_dir_perm"])
        if "key_type" in values:
            values["key_type"] = str(values["key_type"])

        cache_dir = values.get("cache_dir")
        if cache_dir and base_dir and not os.path.isabs(cache_dir):
            values["cache_dir"] = os.path.join(base_dir, cache_dir)

        values.update(hooks)
        return DEFAULT_CONFIG.with_overrides(**values)
