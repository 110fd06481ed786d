"""Shared pytest fixtures for arrears tests."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from arrears.domain.calculator import ArrearsCalculator
from arrears.domain.config import DEFAULT_CONFIG
from arrears.domain.entities import LedgerEntry
from arrears.domain.ledger_import import LedgerImportService


def make_entry(
    when: str,
    description: str,
    balance: str,
    debit: str | None = None,
    credit: str | None = None,
    is_rental: bool | None = None,
    row_index: int = 0,
    charge_code: str | None = None,
) -> LedgerEntry:
    """Build a LedgerEntry from short string arguments."""
    return LedgerEntry(
        date=date.fromisoformat(when),
        description=description,
        debit=Decimal(debit) if debit is not None else None,
        credit=Decimal(credit) if credit is not None else None,
        balance=Decimal(balance),
        is_rental=is_rental,
        charge_code=charge_code,
        row_index=row_index,
    )


@pytest.fixture
def entry():
    """Return the LedgerEntry factory."""
    return make_entry


@pytest.fixture
def calculator():
    """Create an ArrearsCalculator with default thresholds."""
    return ArrearsCalculator(DEFAULT_CONFIG)


@pytest.fixture
def import_service():
    """Create a LedgerImportService with default thresholds."""
    return LedgerImportService(DEFAULT_CONFIG)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
