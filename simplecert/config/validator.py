"""Configuration validation for simplecert."""

import logging
from typing import List

from ..ssl.certificate import SUPPORTED_KEY_TYPES
from ..utils.errors import ConfigurationError, create_error_suggestions
from .manager import Config, ConfigManager

logger = logging.getLogger(__name__)


class ConfigValidator:
    """Checks that a Config can be used to obtain a certificate.

    Validation is pure: nothing here touches the filesystem or the network.
    """

    def validate(self, config: Config) -> List[str]:
        """
        Collect every violated invariant, in priority order.

        Args:
            config: Configuration to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        if not config.cache_dir:
            errors.append("no cache directory specified in config")
        if len(config.domains) == 0:
            errors.append("no domains specified in config")
        if not config.local and not config.ssl_email:
            errors.append("no ssl_email specified in config")
        if not config.directory_url:
            errors.append("no directory url specified in config")
        if not config.dns_provider and not config.http_address and not config.tls_address:
            errors.append("no challenge method specified in config")
        if config.renew_before <= 0:
            errors.append("no renew before value set in config")
        if config.check_interval <= 0:
            errors.append("no check interval set in config")
        if config.cache_dir_perm == 0:
            errors.append("no cache directory permission specified in config")
        if config.key_type not in SUPPORTED_KEY_TYPES:
            errors.append(f"unsupported key type specified in config: {config.key_type!r}")

        return errors

    def check(self, config: Config) -> None:
        """
        Fail on the first violated invariant, otherwise warn about missing hooks.

        Raises:
            ConfigurationError: With the first violation as message
        """
        errors = self.validate(config)
        if errors:
            raise ConfigurationError(
                f"simplecert: {errors[0]}",
                details="; ".join(errors[1:]) or None,
                suggestions=create_error_suggestions("configuration_invalid"),
            )

        for warning in self.warnings(config):
            logger.warning(warning)

    def warnings(self, config: Config) -> List[str]:
        """Advisory messages about hooks the host did not provide."""
        warnings = []
        serves_challenges = bool(config.http_address or config.tls_address)

        if config.will_renew_certificate is None and serves_challenges:
            warnings.append(
                "no will_renew_certificate handler specified, to handle graceful server shutdown!"
            )
        if config.did_renew_certificate is None and serves_challenges:
            warnings.append(
                "no did_renew_certificate handler specified, to bring the service back up after renewing the certificate!"
            )
        if config.failed_to_renew_certificate is None:
            warnings.append("no failed_to_renew_certificate handler specified! renewal errors will be fatal!")

        return warnings

    def validate_config_file(self, file_path: str) -> List[str]:
        """
        Validate configuration file.

        Args:
            file_path: Path to configuration file

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        try:
            config = ConfigManager().load_config_file(file_path)
        except ConfigurationError as e:
            return [e.message + (f": {e.details}" if e.details else "")]

        return self.validate(config)
