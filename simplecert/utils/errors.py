"""Error handling utilities for simplecert."""

import sys
import traceback
from typing import Optional

import click


class SimplecertError(Exception):
    """Base exception for simplecert errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(SimplecertError):
    """Raised when the configuration violates an invariant."""

    pass


class CacheError(SimplecertError):
    """Raised when the cache directory cannot be read, written or parsed."""

    pass


class AcquisitionError(SimplecertError):
    """Raised when obtaining a certificate from the CA fails."""

    pass


class ReloadError(SimplecertError):
    """Raised when a reload finds unreadable or inconsistent files on disk."""

    pass


class ErrorHandler:
    """Handles and formats errors for user-friendly display."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Handle and display error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Optional context about when/where error occurred
        """
        if isinstance(error, SimplecertError):
            self._handle_simplecert_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_simplecert_error(self, error: SimplecertError, context: Optional[str]) -> None:
        """Handle simplecert-specific errors."""
        click.echo(f"✗ {error.message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if error.details:
            click.echo(f"Details: {error.details}", err=True)

        if error.suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in error.suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def _handle_generic_error(self, error: Exception, context: Optional[str]) -> None:
        """Handle generic Python exceptions."""
        error_type = type(error).__name__

        if isinstance(error, FileNotFoundError):
            message = f"File not found: {error}"
            suggestions = [
                "Check that the file path is correct",
                "Ensure the file exists and is readable",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check file/directory permissions",
                "Try running with appropriate privileges",
            ]
        else:
            message = f"{error_type}: {error}"
            suggestions = []

        click.echo(f"✗ {message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Handle error and exit with specified code."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type and context.

    Args:
        error_type: Type of error
        **kwargs: Additional context information (``cache_dir``)

    Returns:
        list: List of suggestion strings
    """
    cache_dir = kwargs.get("cache_dir", "the cache directory")

    suggestions = {
        "configuration_invalid": [
            "Check YAML syntax in configuration file",
            "Verify all required fields are present",
            "Validate configuration values are correct",
        ],
        "cache_unreadable": [
            f"Check permissions on {cache_dir}",
            f"Remove {cache_dir} to force a fresh certificate",
        ],
        "acquisition_failed": [
            "Check that the domains resolve to this machine",
            "Verify that the challenge ports are reachable from the internet",
            "Try the staging directory URL to avoid rate limits",
        ],
        "renewal_unhandled": [
            "Configure a failed_to_renew_certificate handler to keep serving on failure",
        ],
    }

    return suggestions.get(error_type, [])


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
