"""Ledger parsing command."""

import click

from arrears.cli.error_handling import handle_domain_error
from arrears.domain.errors import DomainError
from arrears.domain.ledger_import import LedgerImportService


def _amount(value) -> str:
    return f"{value:,.2f}" if value is not None else ""


@click.command("parse")
@click.argument("ledger_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--verbose", "-v", is_flag=True, help="Show rejected lines and duplicate count")
@click.pass_context
def parse_ledger(ctx, ledger_file: str, verbose: bool):
    """Parse a ledger file and list its entries.

    Accepts plain text statements (.txt) and spreadsheet exports (.csv, .tsv).
    """
    service = LedgerImportService(ctx.obj["config"])

    try:
        parsed = service.parse_file(ledger_file)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if parsed.tenant_name:
        click.echo(f"Tenant: {parsed.tenant_name}")
    if parsed.property_name:
        click.echo(f"Property: {parsed.property_name}")
    if parsed.issue_date:
        click.echo(f"Issue date: {parsed.issue_date.isoformat()}")
    if parsed.period:
        click.echo(f"Period: {parsed.period}")
    click.echo(f"Format: {parsed.format_tag}")
    click.echo(f"Opening balance: {_amount(parsed.opening_balance)}")

    if not parsed.entries:
        click.echo("No ledger entries found.")
    else:
        click.echo(f"\nFound {len(parsed.entries)} ledger entry(ies):")
        click.echo(
            f"{'Date':<12} {'Code':<8} {'Description':<40} {'Debit':>12} {'Credit':>12} {'Balance':>12}"
        )
        click.echo("-" * 101)
        for entry in parsed.entries:
            description = entry.description
            if len(description) > 40:
                description = description[:37] + "..."
            click.echo(
                f"{entry.date.isoformat():<12} {entry.charge_code or '':<8} {description:<40} "
                f"{_amount(entry.debit):>12} {_amount(entry.credit):>12} {_amount(entry.balance):>12}"
            )

    click.echo(f"\nRental charges: {len(parsed.rental_charges)}")
    click.echo(f"Non-rental charges: {len(parsed.non_rental_charges)}")
    if parsed.final_balance is not None:
        click.echo(f"Final balance: {_amount(parsed.final_balance)}")

    if verbose:
        click.echo(f"\nDuplicates skipped: {parsed.duplicates}")
        if parsed.rejected:
            click.echo(f"Rejected lines (sample of {len(parsed.rejected)}):")
            for line in parsed.rejected:
                click.echo(f"  {line}")


def register_commands(cli):
    """Register parse command with main CLI."""
    cli.add_command(parse_ledger)
