"""Tests for the arrears calculator."""

import dataclasses
from datetime import date
from decimal import Decimal

from arrears.domain.calculator import (
    METHOD_ALL_NON_RENTAL,
    METHOD_DATE_ONLY,
    METHOD_LEDGER_ORDER,
    ArrearsCalculator,
    deposits_settled,
    parse_referenced_date,
    validate_result,
)
from arrears.domain.config import ArrearsConfig
from arrears.domain.entities import ChargeCategory, NonRentalCharge, RentalCharge
from arrears.domain.ledger_import import LedgerImportService

BASIC_TEXT = """07/01/2015 1 BASE RENT 1525.00 1525.00
07/01/2015 25 AIR CONDITIONER 10.00 1535.00
07/23/2015 PAYMENT 1525.00 10.00
"""


def _settled_ledger(entry):
    return [
        entry("2025-01-01", "Rent", "1000.00", debit="1000.00", row_index=0),
        entry("2025-01-03", "Late Fee", "1025.00", debit="25.00", row_index=1),
        entry("2025-01-05", "Payment", "0.00", credit="1025.00", row_index=2),
        entry("2025-01-05", "Water", "30.00", debit="30.00", row_index=3),
        entry("2025-02-01", "Rent", "1030.00", debit="1000.00", row_index=4),
        entry("2025-02-06", "Late Fee", "1055.00", debit="25.00", row_index=5),
        entry("2025-02-07", "Payment", "955.00", credit="100.00", row_index=6),
    ]


def test_parse_referenced_month_year():
    """Test a (MM/YYYY) reference is the first of that month."""
    assert parse_referenced_date("Late Fee (08/2025)") == date(2025, 8, 1)


def test_parse_referenced_month_name():
    """Test month-name references with loose punctuation."""
    assert parse_referenced_date("Mar 13, 2025 Lockout") == date(2025, 3, 13)
    assert parse_referenced_date("Lockout Mar 13th.2025") == date(2025, 3, 13)


def test_parse_referenced_numeric_date():
    """Test a full numeric date is not mistaken for a month reference."""
    assert parse_referenced_date("Repair 03/13/2025") == date(2025, 3, 13)


def test_parse_referenced_none():
    """Test text without a reference."""
    assert parse_referenced_date("Rent") is None
    assert parse_referenced_date("Fee (13/2025)") is None


def test_settlement_point_and_non_rent_total(calculator, entry):
    """Test step 1 finds the last zero balance and step 2 sums later non-rent debits."""
    result = calculator.calculate(_settled_ledger(entry))
    trace = result.trace

    assert trace.step1.found
    assert trace.step1.index == 2
    assert trace.step1.date == date(2025, 1, 5)
    assert trace.step1.balance == Decimal("0.00")

    assert trace.step2.method == METHOD_LEDGER_ORDER
    assert [item.description for item in trace.step2.items] == ["Water", "Late Fee"]
    assert trace.step2.total == Decimal("55.00")
    assert result.total_non_rent_since_settlement == Decimal("55.00")
    assert result.settlement_date == date(2025, 1, 5)


def test_latest_balance_and_arrears(calculator, entry):
    """Test the latest non-rent row of the month drives the balance."""
    result = calculator.calculate(_settled_ledger(entry))

    assert result.trace.as_of_date == date(2025, 2, 7)
    assert result.trace.step3.rule == "current-month-if-day-6+"
    assert result.trace.step3.target_month == "2025-02"
    assert result.latest_balance == Decimal("1055.00")
    assert result.rent_arrears == Decimal("1000.00")
    assert result.trace.step4.formula_human == "1055.00 - 55.00 = 1000.00"


def test_entries_are_sorted_stably(calculator, entry):
    """Test out-of-order input is sorted by date keeping same-day order."""
    ledger = _settled_ledger(entry)
    shuffled = ledger[4:] + ledger[:4]
    result = calculator.calculate(shuffled)
    assert [e.row_index for e in result.entries] == list(range(7))


def test_billing_cycle_rule(calculator):
    """Test day 1-5 targets the previous month and later days the current month."""
    assert calculator.target_month(date(2025, 3, 3)) == ("prev-month-if-day-1-5", date(2025, 2, 1))
    assert calculator.target_month(date(2025, 3, 19)) == ("current-month-if-day-6+", date(2025, 3, 1))
    assert calculator.target_month(date(2025, 1, 2)) == ("prev-month-if-day-1-5", date(2024, 12, 1))


def test_early_month_uses_previous_month_balance(calculator, entry):
    """Test an issue date on the 3rd selects last month's balance."""
    ledger = [
        entry("2025-02-01", "Rent", "1000.00", debit="1000.00", row_index=0),
        entry("2025-02-10", "Late Fee", "1050.00", debit="50.00", row_index=1),
        entry("2025-03-01", "Rent", "2050.00", debit="1000.00", row_index=2),
    ]
    result = calculator.calculate(ledger, issue_date=date(2025, 3, 3))
    assert result.trace.step3.target_month == "2025-02"
    assert result.latest_balance == Decimal("1050.00")

    result = calculator.calculate(ledger, issue_date=date(2025, 3, 19))
    assert result.trace.step3.target_month == "2025-03"
    assert result.latest_balance == Decimal("2050.00")
    assert any("only rent rows" in note for note in result.trace.step3.notes)


def test_backdated_charge_after_issue_date(calculator, entry):
    """Test a fee posted after the issue date for an earlier month sets the balance."""
    ledger = [
        entry("2025-08-01", "Rent", "12031.73", debit="1500.00", is_rental=True, row_index=0),
        entry("2025-09-01", "Late Fee (08/2025)", "12081.73", debit="50.00", row_index=1),
        entry("2025-09-01", "Rent", "13581.73", debit="1500.00", is_rental=True, row_index=2),
    ]
    result = calculator.calculate(ledger, issue_date=date(2025, 8, 14))
    step3 = result.trace.step3

    assert result.latest_balance == Decimal("12081.73")
    assert step3.selected.date == date(2025, 9, 1)
    assert step3.selected.description == "Late Fee (08/2025)"
    assert any("Ignored 1 future-dated" in note for note in step3.notes)
    assert any("post-issue backdated" in note for note in step3.notes)


def test_backdating_window_is_bounded(entry):
    """Test a backdated fee outside the window is not used."""
    ledger = [
        entry("2025-08-01", "Rent", "12031.73", debit="1500.00", is_rental=True, row_index=0),
        entry("2025-09-01", "Late Fee (08/2025)", "12081.73", debit="50.00", row_index=1),
    ]
    calculator = ArrearsCalculator(ArrearsConfig(backdating_window_days=10))
    result = calculator.calculate(ledger, issue_date=date(2025, 8, 14))
    assert result.latest_balance == Decimal("12081.73")
    assert not any("post-issue backdated" in note for note in result.trace.step3.notes)
    assert any("backdated non-rent row posted on 2025-09-01" in note for note in result.trace.step3.notes)


def test_settled_deposits_excluded(calculator, entry):
    """Test a refunded deposit is left out of the non-rent totals."""
    ledger = [
        entry("2025-01-01", "Payment", "-200.00", credit="200.00", row_index=0),
        entry("2025-01-02", "Security Deposit", "800.00", debit="1000.00", row_index=1),
        entry("2025-01-03", "Rent", "2800.00", debit="2000.00", row_index=2),
        entry("2025-01-10", "Late Fee", "2850.00", debit="50.00", row_index=3),
        entry("2025-01-20", "Security Deposit Refund", "1850.00", credit="1000.00", row_index=4),
    ]
    result = calculator.calculate(ledger)

    assert result.trace.step2.deposits_excluded
    assert result.trace.step2.total == Decimal("50.00")
    assert result.total_non_rent_overall == Decimal("50.00")
    assert all(c.category != ChargeCategory.SECURITY_DEPOSIT for c in result.non_rental_charges)


def test_zeroed_deposit_row_settles(entry):
    """Test an all-zero second deposit row counts as settlement."""
    ledger = [
        entry("2025-01-01", "Security Deposit", "1000.00", debit="1000.00", row_index=0),
        entry("2025-01-15", "Late Fee", "1050.00", debit="50.00", row_index=1),
        entry("2025-02-01", "Security Deposit", "0.00", row_index=2),
    ]
    assert deposits_settled(ledger)
    result = ArrearsCalculator().calculate(ledger)
    assert result.trace.step2.deposits_excluded
    assert result.total_non_rent_overall == Decimal("50.00")


def test_single_deposit_row_is_counted(calculator, entry):
    """Test one deposit row alone is a normal non-rent charge."""
    ledger = [
        entry("2025-01-01", "Payment", "-200.00", credit="200.00", row_index=0),
        entry("2025-01-02", "Security Deposit", "800.00", debit="1000.00", row_index=1),
        entry("2025-01-03", "Rent", "2800.00", debit="2000.00", row_index=2),
        entry("2025-01-10", "Late Fee", "2850.00", debit="50.00", row_index=3),
    ]
    result = calculator.calculate(ledger)
    assert not result.trace.step2.deposits_excluded
    assert result.trace.step2.total == Decimal("1050.00")


def test_no_settlement_uses_all_non_rental(calculator, entry):
    """Test the global fallback when the balance never reached zero."""
    ledger = [
        entry("2025-01-01", "Rent", "1000.00", debit="1000.00", row_index=0),
        entry("2025-01-10", "Late Fee", "1050.00", debit="50.00", row_index=1),
        entry("2025-01-12", "Lockout", "1125.00", debit="75.00", row_index=2),
    ]
    result = calculator.calculate(ledger)
    step2 = result.trace.step2

    assert not result.trace.step1.found
    assert step2.method == METHOD_ALL_NON_RENTAL
    assert step2.total == Decimal("125.00")
    messages = [event.message for event in result.trace.events]
    assert "No zero/negative balance found in ledger." in messages
    assert any("using all non-rental charges" in m for m in messages)


def test_balance_only_ledger_uses_date_filter(calculator, entry):
    """Test ledgers without charge amounts filter extracted charges by date."""
    ledger = [
        entry("2025-01-01", "Statement", "500.00", row_index=0),
        entry("2025-01-10", "Statement", "0.00", row_index=1),
        entry("2025-02-01", "Statement", "80.00", row_index=2),
    ]
    charges = [
        NonRentalCharge("Old fee", Decimal("20.00"), date(2024, 12, 1), ChargeCategory.OTHER),
        NonRentalCharge("Late Fee", Decimal("50.00"), date(2025, 1, 10), ChargeCategory.LATE_FEE),
        NonRentalCharge("Water", Decimal("30.00"), date(2025, 2, 1), ChargeCategory.UTILITIES),
    ]
    result = calculator.calculate(ledger, non_rental_charges=charges)

    assert result.trace.step2.method == METHOD_DATE_ONLY
    assert result.trace.step2.total == Decimal("80.00")
    assert result.total_non_rent_overall == Decimal("100.00")


def test_stale_issue_date_is_ignored(calculator, entry):
    """Test an issue date far behind the newest row is discarded."""
    ledger = _settled_ledger(entry)
    result = calculator.calculate(ledger, issue_date=date(2024, 1, 1))

    assert result.issue_date_used is None
    assert result.trace.as_of_date == date(2025, 2, 7)
    assert result.trace.events[0].step == "step0"


def test_skips_empty_months(calculator, entry):
    """Test step 3 walks back over months without rows."""
    ledger = [
        entry("2025-01-02", "Rent", "1000.00", debit="1000.00", row_index=0),
        entry("2025-01-09", "Late Fee", "1050.00", debit="50.00", row_index=1),
    ]
    result = calculator.calculate(ledger, issue_date=date(2025, 3, 10))
    assert result.trace.step3.target_month == "2025-01"
    assert result.latest_balance == Decimal("1050.00")
    assert "Skipped 2 empty month(s) with no ledger rows." in result.trace.step3.notes


def test_month_search_is_bounded(entry):
    """Test the most recent known balance when no searched month has rows."""
    ledger = [
        entry("2025-01-02", "Rent", "1000.00", debit="1000.00", row_index=0),
        entry("2025-01-09", "Late Fee", "1050.00", debit="50.00", row_index=1),
    ]
    calculator = ArrearsCalculator(ArrearsConfig(max_month_steps=1))
    result = calculator.calculate(ledger, issue_date=date(2025, 3, 10))
    assert result.latest_balance == Decimal("1050.00")
    assert any("most recent known balance" in n for n in result.trace.step3.notes)


def test_no_entries_uses_final_then_opening(calculator):
    """Test the balance fallbacks without any ledger rows."""
    result = calculator.calculate([], final_balance=Decimal("300.00"), as_of=date(2025, 5, 20))
    assert result.latest_balance == Decimal("300.00")
    assert result.trace.as_of_date == date(2025, 5, 20)
    assert result.trace.step2.method == METHOD_ALL_NON_RENTAL

    result = calculator.calculate([], opening_balance=Decimal("120.00"), as_of=date(2025, 5, 20))
    assert result.latest_balance == Decimal("120.00")
    assert result.rent_arrears == Decimal("120.00")


def test_basic_statement_end_to_end():
    """Test parsing and calculating a short statement."""
    parsed = LedgerImportService().parse_text(BASIC_TEXT)
    result = ArrearsCalculator().calculate(
        parsed.entries,
        non_rental_charges=parsed.non_rental_charges,
        opening_balance=parsed.opening_balance,
        final_balance=parsed.final_balance,
    )

    assert parsed.final_balance == Decimal("10.00")
    assert [c.amount for c in result.rental_charges] == [Decimal("1525.00")]
    assert result.non_rental_charges[0].category == ChargeCategory.AIR_CONDITIONER
    assert result.total_non_rent_overall == Decimal("10.00")
    assert result.final_total_non_rent_since == Decimal("10.00")
    # Latest non-rent row of July carries the balance.
    assert result.latest_balance == Decimal("1535.00")
    assert result.rent_arrears == Decimal("1525.00")


def test_dotted_service_date_backdates_charge():
    """Test a post-issue charge naming a dotted service date sets the balance."""
    parsed = LedgerImportService().parse_text(
        "08/01/2025 Rent 1,500.00 1,500.00\n09/01/2025 Lockout 08.10.2025 75.00 1,575.00\n"
    )
    result = ArrearsCalculator().calculate(parsed.entries, issue_date=date(2025, 8, 14))

    assert result.trace.step3.selected.description == "Lockout 08.10.2025"
    assert result.latest_balance == Decimal("1575.00")


def test_validate_result(calculator, entry):
    """Test charge problems are reported."""
    result = calculator.calculate(_settled_ledger(entry))
    assert validate_result(result) == []

    broken = dataclasses.replace(
        result, rental_charges=(RentalCharge("", Decimal("-5.00"), date(2025, 1, 1)),)
    )
    assert validate_result(broken) == [
        "Rental charge 1 has invalid amount",
        "Rental charge 1 missing description",
    ]
