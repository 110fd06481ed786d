"""Utility functions for arrears."""

from arrears.utils.date_parser import parse_date, parse_ledger_date
from arrears.utils.amount_parser import parse_amount, parse_money

__all__ = ["parse_date", "parse_ledger_date", "parse_amount", "parse_money"]
