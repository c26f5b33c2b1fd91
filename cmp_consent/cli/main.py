#!/usr/bin/env python3
"""Command-line interface for the CMP consent engine using Typer.

Commands:

    cmp-consent descriptors            List registered descriptors
    cmp-consent validate FILE...       Validate declarative descriptor files
    cmp-consent parse URL              Accept the CMP on a page, print the record
"""

import asyncio
import json
import logging
from enum import IntEnum
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..browser import BrowserSession
from ..config import CMPSettings, ConfigLoadError, load_settings
from ..descriptors import DeclarativeDescriptor
from ..errors import CMPError, MalformedDescriptorSource, UnknownDescriptor
from ..manager import CMPManager
from ..models import ConsentRecord, ParsePageOptions

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """CLI exit codes for scripting and CI/CD integration."""
    SUCCESS = 0           # Consent handled, or all descriptors valid
    NO_CMP = 1            # No registered descriptor matched an active CMP
    CONFIG_ERROR = 3      # Settings, descriptor source or argument error
    RUNTIME_ERROR = 4     # Browser or page failure while handling consent


app = typer.Typer(
    name="cmp-consent",
    help="Detect and accept consent management platform banners",
    add_completion=False,
)


def _configure_logging(settings: CMPSettings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings_or_exit(config: Optional[Path], overrides: Optional[dict] = None) -> CMPSettings:
    try:
        return load_settings(config, overrides=overrides)
    except ConfigLoadError as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


def version_callback(value: bool):
    """Show version information."""
    if value:
        typer.echo(f"cmp-consent v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit")
    ] = None,
):
    """
    Detect consent management platform (CMP) banners, accept them, and report
    the consent data they record.
    """
    pass


@app.command(name="descriptors")
def list_descriptors(
    paths: Annotated[
        Optional[List[str]],
        typer.Argument(help="Additional descriptor files or glob patterns")
    ] = None,

    builtin: Annotated[
        bool,
        typer.Option("--builtin/--no-builtin", help="Include the built-in descriptors")
    ] = True,

    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to settings file")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
):
    """List the descriptors a manager would register, in detection order."""
    settings = _load_settings_or_exit(config)
    _configure_logging(settings, verbose)

    manager = asyncio.run(CMPManager.create_manager(paths, builtin, settings))

    for descriptor in manager.descriptors:
        origin = getattr(descriptor, "origin", None)
        line = f"{descriptor.name}  cookies/keys: {', '.join(descriptor.consent_keys) or '-'}"
        if verbose and origin:
            line += f"  ({origin})"
        typer.echo(line)

    for path, error in manager.load_errors.items():
        typer.echo(f"❌ {path}: {error}", err=True)

    if manager.load_errors:
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


@app.command()
def validate(
    files: Annotated[
        List[Path],
        typer.Argument(help="Declarative descriptor files to validate")
    ],

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose validation output")
    ] = False,
):
    """
    Validate declarative descriptor files without opening a browser.

    Exits with code 3 if any file is missing required fields, cannot be
    parsed, or carries an invalid storage spec.
    """
    failures = 0

    for path in files:
        try:
            descriptor = DeclarativeDescriptor.create_from_path_sync(path)
        except MalformedDescriptorSource as e:
            failures += 1
            typer.echo(f"❌ {e}", err=True)
            continue

        typer.echo(f"✅ {path}: {descriptor.name}")
        if verbose:
            typer.echo(f"   Consent keys: {', '.join(descriptor.consent_keys) or '-'}")
            typer.echo(f"   Presence selectors: {', '.join(descriptor.presence_selectors)}")
            typer.echo(f"   Timeout: {descriptor.timeout_ms}ms")
            typer.echo(f"   Reject all: {'yes' if descriptor.has_capability('reject_all') else 'no'}")

    if failures:
        typer.echo(f"{failures} of {len(files)} descriptor file(s) failed validation", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


async def _parse_url(
    url: str,
    settings: CMPSettings,
    options: ParsePageOptions,
    src_globs: Optional[List[str]],
    headless: bool,
    navigation_timeout_ms: int
) -> Optional[ConsentRecord]:
    manager = await CMPManager.create_manager(src_globs, settings=settings)

    async with BrowserSession(headless=headless) as session:
        async with session.page() as page:
            logger.info(f"Navigating to {url}")
            await page.goto(url, wait_until="load", timeout=navigation_timeout_ms)
            return await manager.parse_page(page, options)


@app.command()
def parse(
    url: Annotated[
        str,
        typer.Argument(help="URL of the page to handle")
    ],

    descriptor: Annotated[
        Optional[str],
        typer.Option("--descriptor", "-d", help="Only try this descriptor")
    ] = None,

    descriptors: Annotated[
        Optional[List[str]],
        typer.Option("--descriptors", help="Additional descriptor files or glob patterns")
    ] = None,

    fail_on_missing: Annotated[
        bool,
        typer.Option("--fail-on-missing", help="Fail if consent data is missing after acceptance")
    ] = False,

    headful: Annotated[
        bool,
        typer.Option("--headful", help="Run browser with GUI (for debugging)")
    ] = False,

    timeout: Annotated[
        float,
        typer.Option("--timeout", help="Page load timeout in seconds")
    ] = 30.0,

    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to settings file")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
):
    """
    Load a page, accept its CMP banner and print the consent record as JSON.

    Examples:

        cmp-consent parse https://example.com

        cmp-consent parse --descriptor onetrust --fail-on-missing https://example.com
    """
    overrides = {"fail_on_missing": True} if fail_on_missing else None
    settings = _load_settings_or_exit(config, overrides)
    _configure_logging(settings, verbose)

    options = ParsePageOptions(descriptor=descriptor, fail_on_missing=settings.fail_on_missing)

    try:
        record = asyncio.run(_parse_url(
            url,
            settings,
            options,
            descriptors,
            headless=not headful,
            navigation_timeout_ms=int(timeout * 1000),
        ))
    except UnknownDescriptor as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)
    except KeyboardInterrupt:
        typer.echo("❌ Operation interrupted by user", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)
    except CMPError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)
    except Exception as e:
        typer.echo(f"❌ Runtime error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    if record is None:
        typer.echo("No registered descriptor matched an active CMP", err=True)
        raise typer.Exit(code=ExitCode.NO_CMP.value)

    typer.echo(json.dumps(record.to_dict(), indent=2))


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
