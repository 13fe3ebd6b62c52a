"""Shared console output and error handling for tokensale commands."""

from __future__ import annotations

import json
import logging
import sys

import click
from rich import box
from rich.console import Console
from rich.table import Table

from tokensale.core.sale_exceptions import SaleError

logger = logging.getLogger(__name__)
console = Console()


def cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    if isinstance(exc, SaleError):
        console.print(f"[bold red]Error ({exc.code}):[/] {exc.message}")
    else:
        console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def emit(ctx: click.Context, payload: dict, title: str) -> None:
    """Print ``payload`` as JSON or as a rich key/value table."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(payload, indent=2))
        return

    table = Table(title=title, show_header=False, box=box.ROUNDED)
    for key, value in payload.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, indent=2)
        table.add_row(f"[bold cyan]{key}", str(value))
    console.print(table)
