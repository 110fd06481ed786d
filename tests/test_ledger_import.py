"""Tests for the ledger import service."""

from datetime import date
from decimal import Decimal

import pytest

from arrears.domain.entities import ChargeCategory
from arrears.domain.errors import NotFoundError, ValidationError
from arrears.domain.ledger_import import (
    extract_final_balance,
    extract_issue_date,
    extract_opening_balance,
    extract_property_name,
    extract_tenant_name,
)

BASIC_TEXT = """07/01/2015 1 BASE RENT 1525.00 1525.00
07/01/2015 25 AIR CONDITIONER 10.00 1535.00
07/23/2015 PAYMENT 1525.00 10.00
"""


def test_extract_issue_date_prefers_strong_labels():
    """Test the highest scoring label wins."""
    text = "Statement Date: 08/01/2025\nCreated on 08/14/2025\n"
    assert extract_issue_date(text) == date(2025, 8, 14)


def test_extract_issue_date_standalone_label():
    """Test a bare 'Date:' line near the top."""
    assert extract_issue_date("Date: 03/05/25\nRent 100.00") == date(2025, 3, 5)


def test_extract_issue_date_missing():
    """Test no label means no issue date."""
    assert extract_issue_date("01/01/2025 Rent 100.00 100.00") is None


def test_extract_opening_balance():
    """Test an opening balance on the label line or the line above."""
    assert extract_opening_balance(["YEAR STARTING BALANCE 1,200.00"]) == Decimal("1200.00")
    assert extract_opening_balance(["1,200.00", "Starting Balance"]) == Decimal("1200.00")
    assert extract_opening_balance(["01/01/2025 Rent 100.00 100.00"]) is None


def test_extract_final_balance_from_total_line():
    """Test the last amount of the last TOTAL line."""
    lines = ["01/01/2025 Rent 100.00 100.00", "TOTAL 3,050.00 1,500.00 1,550.00"]
    assert extract_final_balance(lines) == Decimal("1550.00")
    assert extract_final_balance(lines[:1]) is None


def test_extract_tenant_name():
    """Test tenant names from TO: and labelled lines."""
    assert extract_tenant_name(["TO: John Smith"]) == "John Smith"
    assert extract_tenant_name(["TO:", "John Smith", "123 Main Street"]) == "John Smith"
    assert extract_tenant_name(["Property Name: Sunset Towers", "Tenant: Jane Doe"]) == "Jane Doe"


def test_extract_property_name():
    """Test the address under TO: picks up the apartment."""
    lines = ["TO: John Smith", "123 Main Street", "Apt 4B"]
    assert extract_property_name(lines) == "123 Main Street 4B"
    assert extract_property_name(["Unit: 12C"]) == "12C"


def test_parse_text_basic_statement(import_service):
    """Test rental and non-rental charges from a short statement."""
    parsed = import_service.parse_text(BASIC_TEXT)

    assert len(parsed.entries) == 3
    assert [c.amount for c in parsed.rental_charges] == [Decimal("1525.00")]
    (charge,) = parsed.non_rental_charges
    assert charge.amount == Decimal("10.00")
    assert charge.category == ChargeCategory.AIR_CONDITIONER
    assert parsed.final_balance == Decimal("10.00")
    assert parsed.opening_balance == Decimal("0.00")
    assert parsed.period == "2015-07-01 to 2015-07-23"


def test_parse_statement_file(import_service, fixtures_dir):
    """Test header facts and rows from a text statement."""
    parsed = import_service.parse_file(str(fixtures_dir / "statement.txt"))

    assert len(parsed.entries) == 7
    assert parsed.issue_date == date(2025, 8, 14)
    assert parsed.tenant_name == "John Smith"
    assert parsed.property_name == "123 Main Street 4B"
    assert parsed.entries[1].credit == Decimal("1500.00")
    assert parsed.entries[1].balance == Decimal("0.00")
    assert len(parsed.rental_charges) == 4
    assert len(parsed.non_rental_charges) == 2


def test_parse_csv_resident_ledger(import_service, fixtures_dir):
    """Test a CSV export with title rows above the header."""
    parsed = import_service.parse_csv(str(fixtures_dir / "resident_ledger.csv"))

    assert len(parsed.entries) == 7
    assert parsed.issue_date == date(2025, 5, 3)
    assert parsed.tenant_name == "Jane Doe"
    assert parsed.entries[0].charge_code == "rent"
    assert parsed.entries[1].credit == Decimal("1500.00")
    categories = [c.category for c in parsed.non_rental_charges]
    assert categories == [ChargeCategory.LATE_FEE, ChargeCategory.OTHER]
    assert parsed.final_balance == Decimal("2125.00")


def test_parse_rows_without_date_column_uses_text(import_service):
    """Test rows without a usable header fall back to text rules."""
    parsed = import_service.parse_rows(
        ["Col 1", "Col 2", "Col 3"],
        [["07/01/2015 1 BASE RENT", "1525.00", "1525.00"]],
    )
    assert len(parsed.entries) == 1
    assert parsed.entries[0].debit == Decimal("1525.00")


def test_parse_text_header_fallback(import_service):
    """Test header-driven splitting when the text rules find no rows."""
    text = "Date  Description  Charges  Credits  Balance\n01/02/2025 | Rent | 1500 | | 1500\n"
    parsed = import_service.parse_text(text)
    assert len(parsed.entries) == 1
    assert parsed.entries[0].debit == Decimal("1500.00")


def test_parse_file_missing(import_service, tmp_path):
    """Test a missing file raises NotFoundError."""
    with pytest.raises(NotFoundError):
        import_service.parse_file(str(tmp_path / "missing.txt"))


def test_parse_file_unsupported_type(import_service, tmp_path):
    """Test an unsupported extension raises ValidationError."""
    path = tmp_path / "ledger.pdf"
    path.write_bytes(b"%PDF-1.4")
    with pytest.raises(ValidationError):
        import_service.parse_file(str(path))


def test_parse_file_empty(import_service, tmp_path):
    """Test an empty text file raises ValidationError."""
    path = tmp_path / "ledger.txt"
    path.write_text("   \n")
    with pytest.raises(ValidationError):
        import_service.parse_file(str(path))


def test_parse_file_basic_statement(import_service, fixtures_dir):
    """Test the three-row statement read from disk."""
    parsed = import_service.parse_file(str(fixtures_dir / "basic_statement.txt"))

    assert len(parsed.entries) == 3
    assert [c.amount for c in parsed.rental_charges] == [Decimal("1525.00")]
    assert [c.category for c in parsed.non_rental_charges] == [ChargeCategory.AIR_CONDITIONER]
    assert parsed.final_balance == Decimal("10.00")
