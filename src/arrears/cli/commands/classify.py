"""Description classification command."""

import click

from arrears.domain.classifier import classify_description


def _kind(result) -> str:
    if result.is_payment:
        return "payment"
    if result.is_balance_forward:
        return "balance-forward"
    if result.is_rental_charge:
        return "rent"
    return "non-rent"


@click.command("classify")
@click.argument("descriptions", nargs=-1, required=True)
@click.option("--code", help="Charge code printed next to the description")
def classify(descriptions: tuple[str, ...], code: str | None):
    """Classify ledger descriptions as rent, non-rent, payment or balance forward."""
    for text in descriptions:
        result = classify_description(text, code)
        category = result.category.value if result.category else "-"
        click.echo(f"{text}: {_kind(result)} [{category}] (rule: {result.rule})")


def register_commands(cli):
    """Register classify command with main CLI."""
    cli.add_command(classify)
