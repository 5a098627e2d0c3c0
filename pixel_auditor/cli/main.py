"""Command-line interface for Pixel Auditor using Typer."""

import json
import logging
from enum import IntEnum
from pathlib import Path
from typing import Annotated, Optional

import typer

from .. import __version__
from ..audit.detectors.config import ConfigManager, ConfigurationError
from ..audit.engine import run_pixel_audit_sync
from ..audit.errors import AuditError


class ExitCode(IntEnum):
    """CLI exit codes."""
    SUCCESS = 0
    AUDIT_FAILED = 2    # The page could not be audited
    CONFIG_ERROR = 3    # Configuration or input file error


app = typer.Typer(
    name="pixel-auditor",
    help="Pixel Auditor - audit GA4, GTM, Meta Pixel and Google Ads tracking on a page",
    add_completion=False,
)


@app.callback()
def main():
    """
    Pixel Auditor - tracking pixel audits from the command line.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"Pixel Auditor v{__version__}")


@app.command()
def run(
    url: Annotated[str, typer.Argument(help="Page URL to audit")],

    details: Annotated[
        bool,
        typer.Option("--details", help="Include fetched scripts and raw event findings")
    ] = False,

    deadline: Annotated[
        Optional[float],
        typer.Option("--deadline", help="Overall audit budget in seconds")
    ] = None,

    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration file")
    ] = None,

    html_file: Annotated[
        Optional[Path],
        typer.Option("--html-file", help="Audit this HTML file instead of fetching the URL")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose logging")
    ] = False,
):
    """
    Audit a single page and print the JSON report.

    Examples:

        pixel-auditor run https://example.com

        pixel-auditor run --details --deadline 20 https://shop.example.com

        pixel-auditor run --html-file saved.html https://example.com
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        audit_config = ConfigManager(config).load_config()
    except ConfigurationError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    html = None
    if html_file is not None:
        try:
            html = html_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            typer.echo(f"❌ Cannot read HTML file {html_file}: {e}", err=True)
            raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    try:
        report = run_pixel_audit_sync(url, details, config=audit_config, html=html, deadline=deadline)
    except AuditError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.AUDIT_FAILED.value)

    typer.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app()
