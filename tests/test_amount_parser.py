"""Tests for money token parsing."""

from decimal import Decimal

import pytest

from arrears.utils.amount_parser import (
    coerce_cell_amount,
    find_money_tokens,
    parse_amount,
    parse_money,
    quantize,
)


def test_parse_money_grouped():
    """Test comma-grouped amounts."""
    assert parse_money("1,525.00") == Decimal("1525.00")


def test_parse_money_dollar_sign():
    """Test amounts with a leading dollar sign."""
    assert parse_money("$10.00") == Decimal("10.00")


def test_parse_money_parentheses_negative():
    """Test parentheses mean a negative amount."""
    assert parse_money("(25.00)") == Decimal("-25.00")


def test_parse_money_minus_sign():
    """Test a leading minus sign."""
    assert parse_money("-558.80") == Decimal("-558.80")


@pytest.mark.parametrize("token", ["1525", "123456", "10.5", "abc", "", None])
def test_parse_money_rejects_non_money(token):
    """Test bare integers, control numbers and odd precision are not money."""
    assert parse_money(token) is None


def test_find_money_tokens_in_order():
    """Test tokens are returned left to right."""
    assert find_money_tokens("BASE RENT 1,525.00 1,535.00") == ["1,525.00", "1,535.00"]


def test_find_money_tokens_ignores_three_decimals():
    """Test a number with three decimals is not split into money."""
    assert find_money_tokens("ref 12.345") == []


def test_parse_amount_plain_number():
    """Test the lenient parser accepts plain numbers."""
    assert parse_amount("1525") == Decimal("1525")


def test_parse_amount_parentheses():
    """Test the lenient parser handles parentheses."""
    assert parse_amount("(123.45)") == Decimal("-123.45")


def test_parse_amount_invalid():
    """Test the lenient parser raises on garbage."""
    with pytest.raises(ValueError):
        parse_amount("abc")
    with pytest.raises(ValueError):
        parse_amount("")


def test_coerce_cell_amount_numeric_cells():
    """Test numeric cells are quantized to cents."""
    assert coerce_cell_amount(1525) == Decimal("1525.00")
    assert coerce_cell_amount(10.5) == Decimal("10.50")


def test_coerce_cell_amount_text_cells():
    """Test text cells accept short plain numbers but not control numbers."""
    assert coerce_cell_amount("1525") == Decimal("1525.00")
    assert coerce_cell_amount("$1,525.00") == Decimal("1525.00")
    assert coerce_cell_amount("12345") is None
    assert coerce_cell_amount("") is None
    assert coerce_cell_amount(None) is None
    assert coerce_cell_amount(True) is None


def test_quantize_rounds_half_up():
    """Test rounding to cents."""
    assert quantize(Decimal("1.005")) == Decimal("1.01")


@pytest.mark.parametrize(
    "text,expected",
    [
        ("25.00-", Decimal("-25.00")),
        ("25.00 CR", Decimal("-25.00")),
        ("$1,525.00 DR", Decimal("1525.00")),
        ("-$123.45", Decimal("-123.45")),
    ],
)
def test_parse_amount_ledger_signs(text, expected):
    """Test trailing minus and CR/DR suffixes."""
    assert parse_amount(text) == expected
