"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional
import re

CENTS = Decimal("0.01")

# A money token must carry exactly two decimal digits. Comma grouping,
# a leading "$" and parentheses (negative) are optional.
MONEY_PATTERN = r"\(?-?\$?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}\)?"
MONEY_TOKEN_RE = re.compile(rf"(?<![\d.]){MONEY_PATTERN}(?!\d|\.\d)")

_STRICT_MONEY_RE = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}$")
_CONTROL_NUMBER_RE = re.compile(r"^\d{5,}$")


def quantize(amount: Decimal) -> Decimal:
    """Round an amount to cents."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_money(token: Optional[str]) -> Optional[Decimal]:
    """Parse a ledger money token.

    Only tokens with exactly two decimal digits are money. Bare integers are
    never amounts; five or more digits without a decimal point are control or
    reference numbers printed next to real charges.

    Args:
        token: Raw token such as "1,525.00", "$10.00" or "(25.00)"

    Returns:
        Decimal amount, or None if the token is not money
    """
    if token is None:
        return None

    s = token.strip().replace("$", "").replace(" ", "")
    if not s:
        return None

    is_negative = False
    if s.startswith("(") and s.endswith(")"):
        is_negative = True
        s = s[1:-1]
    s = s.strip("()")

    if _CONTROL_NUMBER_RE.match(s):
        return None
    if not _STRICT_MONEY_RE.match(s):
        return None

    if s.startswith("-"):
        is_negative = True
        s = s[1:]

    try:
        amount = Decimal(s.replace(",", ""))
    except InvalidOperation:
        return None
    return -amount if is_negative else amount


def find_money_tokens(text: str) -> list[str]:
    """Return money-looking substrings of text in left-to-right order."""
    return [m.group(0) for m in MONEY_TOKEN_RE.finditer(text)]


def parse_amount(amount_str: str) -> Decimal:
    """Parse a free-form amount into a Decimal.

    Lenient counterpart of parse_money for spreadsheet cells. Accepts plain
    numbers ("1525"), currency symbols, comma grouping, and the ledger
    negative forms "(25.00)", "25.00-" and "25.00 CR".

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    text = re.sub(r"[$€£¥,\s]", "", amount_str)
    is_negative = False
    if text.upper().endswith("CR"):
        is_negative, text = True, text[:-2]
    elif text.upper().endswith("DR"):
        text = text[:-2]
    if text.startswith("(") and text.endswith(")"):
        is_negative, text = True, text[1:-1]
    if text.endswith("-"):
        is_negative, text = True, text[:-1]

    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str.strip()}': {e}")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str.strip()}'")
    return -amount if is_negative else amount


def coerce_cell_amount(value: object) -> Optional[Decimal]:
    """Read an amount from a spreadsheet cell.

    Numeric cells are trusted as-is; text cells go through parse_money first
    and fall back to parse_amount for short plain numbers such as "1525".
    Control numbers (five or more bare digits) are still rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return quantize(Decimal(str(value)))

    text = str(value).strip()
    if not text:
        return None
    money = parse_money(text)
    if money is not None:
        return money

    bare = text.strip("()").replace("$", "").replace(",", "").lstrip("-")
    if _CONTROL_NUMBER_RE.match(bare):
        return None
    try:
        return quantize(parse_amount(text))
    except ValueError:
        return None
