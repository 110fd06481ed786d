"""CLI error handling helpers."""

from datetime import date
from typing import Optional

import click

from arrears.domain.errors import DomainError
from arrears.utils.date_parser import parse_date


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def parse_date_option(ctx: click.Context, label: str, value: Optional[str]) -> Optional[date]:
    """Parse an optional date option, exiting with an error when invalid."""
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)
