"""CLI module for the CMP consent engine.

This package provides the ``cmp-consent`` command for listing and validating
descriptors and for accepting the CMP on a live page.
"""

from .main import (
    # Exit codes
    ExitCode,

    # Typer application
    app,
    cli_main,
)

__all__ = [
    'ExitCode',
    'app',
    'cli_main',
]
