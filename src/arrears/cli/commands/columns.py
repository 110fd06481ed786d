"""Header analysis command."""

import click

from arrears.domain.column_mapper import analyze_headers


@click.command("columns")
@click.argument("headers", nargs=-1, required=True)
def columns(headers: tuple[str, ...]):
    """Show how spreadsheet column headers map to ledger fields."""
    analysis = analyze_headers(list(headers))

    click.echo(f"Format: {analysis.format_tag}")
    click.echo(f"{'#':<4} {'Header':<30} {'Type':<14} {'Confidence':>10}")
    click.echo("-" * 61)
    for mapping in analysis.columns:
        click.echo(
            f"{mapping.index:<4} {mapping.header:<30} {mapping.column_type.value:<14} "
            f"{mapping.confidence:>10.2f}"
        )

    if analysis.has_all_required:
        click.echo("\nAll required columns present.")
    else:
        click.echo(f"\nMissing required columns: {', '.join(analysis.missing_columns)}")


def register_commands(cli):
    """Register columns command with main CLI."""
    cli.add_command(columns)
