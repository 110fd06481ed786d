"""Arrears calculation command."""

import json

import click

from arrears.cli.error_handling import handle_domain_error, parse_date_option
from arrears.domain.config import load_config
from arrears.domain.calculator import ArrearsCalculator, validate_result
from arrears.domain.errors import DomainError
from arrears.domain.ledger_import import LedgerImportService


def _money(value) -> str:
    return f"${value:,.2f}"


def _echo_trace(result) -> None:
    trace = result.trace
    click.echo("\nCalculation trace:")
    click.echo(f"  As-of date: {trace.as_of_date.isoformat()}")

    step1 = trace.step1
    if step1.found:
        click.echo(
            f"  Step 1: last zero/negative balance {_money(step1.balance)} on {step1.date.isoformat()}"
        )
    else:
        click.echo("  Step 1: no zero/negative balance found")

    step2 = trace.step2
    click.echo(f"  Step 2: {len(step2.items)} non-rent item(s) via {step2.method}, total {_money(step2.total)}")
    for item in step2.items:
        click.echo(f"    {item.date.isoformat()}  {item.description}  {_money(item.amount)}")
    if step2.deposits_excluded:
        click.echo("    (security deposit rows excluded)")

    step3 = trace.step3
    click.echo(f"  Step 3: rule {step3.rule}, target month {step3.target_month}")
    if step3.selected is not None:
        click.echo(
            f"    Selected {step3.selected.date.isoformat()} {step3.selected.description} "
            f"balance {_money(step3.selected.balance)}"
        )
    for note in step3.notes:
        click.echo(f"    Note: {note}")

    click.echo(f"  Step 4: {trace.step4.formula_human}")


@click.command("calculate")
@click.argument("ledger_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--as-of", help="Calculation date (YYYY-MM-DD, default today)")
@click.option("--issue-date", help="Statement issue date (overrides the date found in the file)")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option(
    "--max-issue-lag-days",
    type=int,
    envvar="ARREARS_ISSUE_DATE_MAX_LAG_DAYS",
    help="Ignore an issue date this many days behind the newest row",
)
@click.option(
    "--backdating-window-days",
    type=int,
    envvar="ARREARS_BACKDATING_WINDOW_DAYS",
    help="Days after the issue date a backdated charge may be posted",
)
@click.option(
    "--cutoff-day",
    type=int,
    envvar="ARREARS_BILLING_CYCLE_CUTOFF_DAY",
    help="Days 1..N of a month use the previous month's balance",
)
@click.pass_context
def calculate_arrears(
    ctx,
    ledger_file: str,
    as_of: str | None,
    issue_date: str | None,
    as_json: bool,
    max_issue_lag_days: int | None,
    backdating_window_days: int | None,
    cutoff_day: int | None,
):
    """Calculate rent arrears for a ledger file.

    Rent arrears are the balance currently due less the non-rent charges
    posted since the tenant's balance was last at or below zero.
    """
    as_of_date = parse_date_option(ctx, "as-of date", as_of)
    issue = parse_date_option(ctx, "issue date", issue_date)

    try:
        config = load_config(
            {
                "issue_date_max_lag_days": max_issue_lag_days,
                "backdating_window_days": backdating_window_days,
                "billing_cycle_cutoff_day": cutoff_day,
            }
        )
        parsed = LedgerImportService(config).parse_file(ledger_file)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    result = ArrearsCalculator(config).calculate(
        parsed.entries,
        issue_date=issue or parsed.issue_date,
        as_of=as_of_date,
        non_rental_charges=parsed.non_rental_charges,
        opening_balance=parsed.opening_balance,
        final_balance=parsed.final_balance,
    )
    problems = validate_result(result)

    if as_json:
        payload = result.to_dict()
        payload["tenant_name"] = parsed.tenant_name
        payload["property_name"] = parsed.property_name
        payload["period"] = parsed.period
        payload["problems"] = problems
        click.echo(json.dumps(payload, indent=2))
        return

    if parsed.tenant_name:
        click.echo(f"Tenant: {parsed.tenant_name}")
    if parsed.property_name:
        click.echo(f"Property: {parsed.property_name}")
    if result.issue_date_used:
        click.echo(f"Issue date: {result.issue_date_used.isoformat()}")

    click.echo(f"Opening balance: {_money(result.opening_balance)}")
    click.echo(f"Total non-rental charges: {_money(result.total_non_rent_overall)}")
    if result.settlement_date:
        click.echo(f"Last zero/negative balance: {result.settlement_date.isoformat()}")
    click.echo(f"Non-rental charges since then: {_money(result.total_non_rent_since_settlement)}")
    click.echo(f"Latest balance: {_money(result.latest_balance)}")
    click.echo(f"Rent arrears: {_money(result.rent_arrears)}")

    _echo_trace(result)

    for problem in problems:
        click.echo(f"Warning: {problem}", err=True)


def register_commands(cli):
    """Register calculate command with main CLI."""
    cli.add_command(calculate_arrears)
