"""
Main CLI entry point for tokensale.

Off-system tooling for sale operators and investors: key generation, bid
sealing and unsealing, eligibility signing, merkle tree construction and
configuration inspection.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from tokensale.cli.common import cli_fail, console, emit
from tokensale.cli.sale_commands import register_sale_commands
from tokensale.config_manager import ConfigManager
from tokensale.core.logging_config import setup_logging
from tokensale.core.sale_exceptions import SaleError

logger = logging.getLogger(__name__)


@click.group()
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.option(
    '--environment',
    type=click.Choice(['development', 'testnet', 'production']),
    default=None,
    help='Configuration environment (defaults to TOKENSALE_ENVIRONMENT or development)',
)
@click.option(
    '--config-dir',
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help='Directory holding default.yaml and environment overrides',
)
@click.option('--verbose', '-v', is_flag=True, help='Log to stderr')
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    environment: Optional[str],
    config_dir: Optional[Path],
    verbose: bool,
):
    """
    tokensale CLI - tooling for token sale operators and investors.
    """
    ctx.ensure_object(dict)
    try:
        manager = ConfigManager(
            environment=environment,
            config_dir=str(config_dir) if config_dir else None,
        )
    except (ValueError, OSError) as exc:
        cli_fail(exc)

    setup_logging(
        name="tokensale",
        log_file=manager.logging.log_file or None,
        level="DEBUG" if verbose else manager.logging.level,
        environment=manager.environment.value,
        json_format=manager.logging.json_format,
        enable_console=verbose,
    )

    ctx.obj['config'] = manager
    ctx.obj['json_output'] = json_output


@cli.group()
def config():
    """Inspect the resolved configuration"""


@config.command('show')
@click.option('--section', type=click.Choice(['sale_limits', 'fees', 'logging']), default=None)
@click.pass_context
def config_show(ctx: click.Context, section: Optional[str]):
    """Show the configuration after all overrides are applied"""
    manager: ConfigManager = ctx.obj['config']
    if section:
        payload = {"section": section, "config": manager.get_section(section)}
    else:
        payload = manager.to_dict()
    emit(ctx, payload, f"Configuration ({manager.environment.value})")


register_sale_commands(cli)


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)
    except (click.ClickException, SaleError, ValueError) as exc:
        cli_fail(exc)


if __name__ == '__main__':
    main()
