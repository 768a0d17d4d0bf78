"""Operator CLI for simplecert.

This module provides commands to validate a configuration file, inspect the
certificate cached for it, and renew that certificate out of band. A running
service picks up a renewed certificate on SIGHUP (or automatically when it
watches its cache directory).
"""

from datetime import datetime, timezone
from typing import Optional

import click

from simplecert import __version__
from simplecert.config import ConfigManager, ConfigValidator
from simplecert.config.manager import LETSENCRYPT_STAGING_DIRECTORY_URL
from simplecert.manager import CertificateManager
from simplecert.ssl.acme import AcmeAdapter, CertbotAdapter
from simplecert.ssl.certificate import inspect_certificate
from simplecert.ssl.local import SelfSignedAdapter
from simplecert.ssl.store import CertificateStore
from simplecert.utils.errors import CacheError, ConfigurationError, ErrorHandler, format_validation_errors
from simplecert.utils.files import ensure_directory, read_bytes
from simplecert.utils.logging import setup_logging


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--dry-run", is_flag=True, help="Show what would be done without executing")
@click.option("--log-file", help="Log to file in addition to console")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, dry_run: bool, log_file: Optional[str]) -> None:
    """simplecert - TLS certificate cache and renewal tool.

    Args:
        ctx: Click context object containing shared state
        verbose: Enable verbose output for detailed logging
        dry_run: Show what would be done without executing commands
        log_file: Optional path to log file for additional logging
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["dry_run"] = dry_run
    ctx.obj["log_file"] = log_file
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    setup_logging(verbose=verbose, log_file=log_file)


def _load_config(config_path: str):
    config = ConfigManager().load_config_file(config_path)
    ConfigValidator().check(config)
    return config


def _create_adapter(config) -> AcmeAdapter:
    if config.local:
        return SelfSignedAdapter(key_type=config.key_type)
    return CertbotAdapter(config)


@cli.command()
@click.argument("config_path", type=click.Path())
@click.pass_context
def validate(ctx: click.Context, config_path: str) -> None:
    """Validate a simplecert configuration file."""
    validator = ConfigValidator()
    errors = validator.validate_config_file(config_path)

    if errors:
        click.echo(f"✗ {config_path} is invalid", err=True)
        click.echo(format_validation_errors(errors), err=True)
        ctx.exit(1)

    click.echo(f"✓ {config_path} is valid")

    if ctx.obj["verbose"]:
        config = ConfigManager().load_config_file(config_path)
        for warning in validator.warnings(config):
            click.echo(f"  ! {warning}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def status(ctx: click.Context, config_path: str) -> None:
    """Show the certificate cached for a configuration."""
    try:
        config = _load_config(config_path)
        store = CertificateStore(CertificateManager(config).cert_dir, config.cache_dir_perm)

        if not store.is_cached():
            raise CacheError(
                f"No certificate cached in {store.cache_dir}",
                suggestions=["Run 'simplecert renew' or start the service to obtain one"],
            )

        try:
            info = inspect_certificate(read_bytes(store.cert_path))
        except (OSError, ValueError) as e:
            raise CacheError(f"Failed to read {store.cert_path}", details=str(e))

        remaining = info.not_after - datetime.now(timezone.utc)
        renewal_due = remaining < config.renew_before_delta
        drifted = store.domains_changed(config.domains)

        click.echo(f"Certificate: {store.cert_path}")
        click.echo(f"  Domains:      {', '.join(info.domains)}")
        click.echo(f"  Expires:      {info.not_after.isoformat()}")
        click.echo(f"  Remaining:    {remaining.days} days")
        click.echo(f"  Renewal due:  {'yes' if renewal_due else 'no'}")
        click.echo(f"  Domains drift: {'yes' if drifted else 'no'}")
        if ctx.obj["verbose"]:
            click.echo(f"  Fingerprint:  {info.fingerprint}")
            click.echo(f"  Local mode:   {'yes' if config.local else 'no'}")

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Status check")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--force", is_flag=True, help="Renew even if the certificate is not due")
@click.option("--staging", is_flag=True, help="Use the Let's Encrypt staging directory")
@click.pass_context
def renew(ctx: click.Context, config_path: str, force: bool, staging: bool) -> None:
    """Obtain a new certificate and write it to the cache."""
    try:
        config = _load_config(config_path)
        if staging:
            config = config.with_overrides(directory_url=LETSENCRYPT_STAGING_DIRECTORY_URL)
        store = CertificateStore(CertificateManager(config).cert_dir, config.cache_dir_perm)

        if not force and store.is_cached() and not store.domains_changed(config.domains):
            info = inspect_certificate(read_bytes(store.cert_path))
            remaining = info.not_after - datetime.now(timezone.utc)
            if remaining >= config.renew_before_delta:
                click.echo(f"Certificate valid for {remaining.days} more days, renewal not due")
                click.echo("Use --force to renew anyway")
                return

        adapter = _create_adapter(config)

        if ctx.obj["dry_run"]:
            click.echo(f"Would obtain a certificate for {', '.join(config.domains)}")
            if isinstance(adapter, CertbotAdapter):
                click.echo(f"  Command: {' '.join(adapter.build_command(config.domains))}")
            click.echo(f"  Cache:   {store.cache_dir}")
            return

        try:
            ensure_directory(store.cache_dir, config.cache_dir_perm)
        except OSError as e:
            raise CacheError(f"Failed to create cache directory {store.cache_dir}", details=str(e))

        click.echo(f"Obtaining certificate for {', '.join(config.domains)}...")
        resource = adapter.obtain(config.domains)
        store.save(resource)

        click.echo(f"✓ Certificate renewed, expires {resource.not_after.isoformat()}")
        click.echo("Send SIGHUP to the running service to load it")

    except ConfigurationError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration")
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Certificate renewal")


if __name__ == "__main__":
    cli()
