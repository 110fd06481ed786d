"""Main CLI entry point."""

import click

from arrears.cli.error_handling import handle_domain_error
from arrears.domain.config import load_config
from arrears.domain.errors import ValidationError
from arrears.logging_setup import configure_logging

# Import and register all commands at module level
from arrears.cli.commands import calculate, classify, columns, parse


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides ARREARS_LOG_LEVEL environment variable)",
    envvar="ARREARS_LOG_LEVEL",
)
@click.pass_context
def cli(ctx, log_level: str | None):
    """Arrears - rent arrears from tenant ledgers.

    Read rental ledger statements (plain text or CSV), classify every
    transaction and work out how much of the balance due is unpaid rent.
    """
    ctx.ensure_object(dict)
    configure_logging(log_level)

    # Thresholds are only needed when actually running a command
    if ctx.invoked_subcommand is not None:
        try:
            ctx.obj["config"] = load_config()
        except ValidationError as e:
            handle_domain_error(ctx, e)


# Register all commands
parse.register_commands(cli)
calculate.register_commands(cli)
classify.register_commands(cli)
columns.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
