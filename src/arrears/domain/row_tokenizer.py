"""Row tokenizer.

Turns raw ledger rows into LedgerEntry objects. Input layouts are handled by
RowSource adapters that only locate fields (date, code, description,
amounts); the tokenizer owns everything shared: debit/credit resolution,
running-balance synthesis, description cleanup, de-duplication and ordering.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, Optional, Sequence, Union

from arrears.domain.classifier import classify_description, lookup_charge_code
from arrears.domain.column_mapper import analyze_headers, column_index
from arrears.domain.config import DEFAULT_CONFIG, ArrearsConfig
from arrears.domain.entities import ColumnType, HeaderAnalysis, LedgerEntry
from arrears.logging_setup import get_logger
from arrears.utils.amount_parser import (
    MONEY_TOKEN_RE,
    coerce_cell_amount,
    parse_money,
    quantize,
)
from arrears.utils.date_parser import find_date_token, parse_ledger_date

logger = get_logger(__name__)

ZERO = Decimal("0")
DESCRIPTION_PREFIX_LENGTH = 50
MAX_WRAPPED_LINES = 5
MAX_WRAPPED_LENGTH = 200

# Lines that never carry a ledger row.
SKIP_LINE_PATTERNS = (
    re.compile(r"^page\b", re.IGNORECASE),
    re.compile(r"\bpage\s+\d+\s+of\s+\d+\b", re.IGNORECASE),
    re.compile(r"^\d+\s*/\s*\d+$"),
    re.compile(r"^total", re.IGNORECASE),
    re.compile(
        r"^(created on|create date|printed|print date|run date|as of|statement date|report date)\b",
        re.IGNORECASE,
    ),
)

# Text glued together by PDF text extraction.
_LINE_FIXES = (
    # "07/01/20251,525.00" -> "07/01/2025 1,525.00"
    (re.compile(r"(\d{1,2}/\d{1,2}/\d{4})(?=[-\d])"), r"\1 "),
    # "1,400.00-558.80" -> "1,400.00 -558.80"
    (re.compile(r"(\d\.\d{2})(-)(?=\d)"), r"\1 \2"),
    # "50.00942.12" -> "50.00 942.12"; never inside a dotted date "14.08.2025"
    (re.compile(r"(?<!\.)(?<!\.\d)(\d\.\d{2})(?=\d)"), r"\1 "),
    # "Rent2,050.92" -> "Rent 2,050.92"
    (re.compile(r"([A-Za-z])(-?(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2})"), r"\1 \2"),
)

# Amounts that describe a row rather than being one of its columns.
DESCRIPTION_AMOUNT_PATTERNS = (
    re.compile(r"\$?[\d,]+(?:\.\d{1,2})?\s*\(\d{1,2}/\d{4}\s*-\s*\d{1,2}/\d{4}\)"),
    re.compile(r"\$?[\d,]+\.\d{2}\s*/\s*(?:mth|month|mo)\b", re.IGNORECASE),
    re.compile(r"\$?[\d,]+\.\d{2}\s*per\s*(?:mth|month|mo)\b", re.IGNORECASE),
    re.compile(
        r"(?:charges?\s+)?(?:shd|should)\s+(?:have\s+)?be(?:en)?\s+\$?[\d,]+\.\d{2}",
        re.IGNORECASE,
    ),
    re.compile(r"\bbeen\s+\$?[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"(?:@|\bat)\s*\$[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"\brate\s*(?:of\s*)?\$?[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"\bfrom\s+\$?[\d,]+\.\d{2}\s+to\s+\$?[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"\brenewal[^$\n]*\$[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*%\s*of\s*\$?[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"\bmax(?:imum)?\s*\$?[\d,]+\.\d{2}", re.IGNORECASE),
    re.compile(r"\b(?:amount|salestax|usage)\s*=\s*\$?[\d,.]+", re.IGNORECASE),
    re.compile(r"\breadings?:\s*[\d,.\s-]+", re.IGNORECASE),
)

_FISCAL_PERIOD_RE = re.compile(r"^\s*(\d{6})(?!\d)")
_NUMERIC_CODE_RE = re.compile(r"^\s*(\d{1,2})(?=\s+[A-Za-z(])")
_ALPHA_CODE_RE = re.compile(r"^\s*([A-Za-z]+#?)(?=\s|$)")
_CONTROL_NUMBER_RE = re.compile(r"(?<![\d.,])\d{5,}(?![\d.,])")
_PAYER_NAME_RE = re.compile(
    r"^([A-Z][a-z]+\s+[A-Z][a-z]+)\s+"
    r"(?=(?:ACH\s+Payment|Credit\s+Card\s+Payment|Payment|EFT|Wire|Check|Chk)\b)"
)


@dataclass(frozen=True)
class RowFields:
    """Fields located in one source row, before resolution.

    amount is a signed movement whose side (debit or credit) is still open.
    """

    row_index: int
    date: date
    description: str
    charge_code: Optional[str] = None
    debit: Optional[Decimal] = None
    credit: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    raw: str = ""


@dataclass(frozen=True)
class RejectedRow:
    """A row that looked like a ledger row but could not be used."""

    row_index: int
    raw: str
    reason: str


@dataclass(frozen=True)
class TokenizeResult:
    entries: tuple[LedgerEntry, ...]
    rejected: tuple[str, ...]
    duplicates: int
    format_tag: str


class RowSource(ABC):
    """Adapter locating row fields in one input layout."""

    format_tag = "text"
    opening_balance: Decimal = ZERO

    @abstractmethod
    def rows(self) -> Iterator[Union[RowFields, RejectedRow]]:
        """Yield located fields (or rejections) in document order."""


def normalize_ledger_line(line: str) -> str:
    """Split tokens that text extraction glued together."""
    for pattern, replacement in _LINE_FIXES:
        line = pattern.sub(replacement, line)
    return line


def mask_description_amounts(text: str) -> str:
    """Blank out descriptive amounts ("$1,525.00/mth") keeping positions."""
    for pattern in DESCRIPTION_AMOUNT_PATTERNS:
        text = pattern.sub(lambda m: " " * len(m.group(0)), text)
    return text


def clean_description(text: str) -> str:
    """Collapse whitespace and trim separator debris around a description."""
    text = _CONTROL_NUMBER_RE.sub(" ", text)
    text = re.sub(r"\s+", " ", text).strip(" :;,-|$")
    text = _PAYER_NAME_RE.sub("", text)
    return text.strip()


def is_skip_line(line: str) -> bool:
    return any(p.search(line) for p in SKIP_LINE_PATTERNS)


def count_money_tokens(line: str) -> int:
    masked = mask_description_amounts(line)
    return sum(1 for m in MONEY_TOKEN_RE.finditer(masked) if parse_money(m.group(0)) is not None)


class TextLineSource(RowSource):
    """Rows from the plain text of a statement or ledger.

    Wrapped rows are coalesced first: a dated line with fewer than two money
    tokens absorbs the following undated lines until it has two, stopping at
    the next dated line.
    """

    format_tag = "text"

    def __init__(self, text: str, opening_balance: Optional[Decimal] = None):
        self.text = text or ""
        self.opening_balance = opening_balance if opening_balance is not None else ZERO

    def logical_lines(self) -> list[tuple[int, str]]:
        """Return (line index, text) for each coalesced candidate row."""
        lines = [normalize_ledger_line(l.strip()) for l in self.text.splitlines()]
        out = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if not line or is_skip_line(line) or find_date_token(line) is None:
                i += 1
                continue

            buffer = line
            j = i + 1
            while j < len(lines) and j - i <= MAX_WRAPPED_LINES:
                if count_money_tokens(buffer) >= 2:
                    break
                nxt = lines[j]
                if not nxt:
                    j += 1
                    continue
                if is_skip_line(nxt) or find_date_token(nxt) is not None:
                    break
                if count_money_tokens(nxt) > 0:
                    buffer = f"{buffer} {nxt}"
                elif count_money_tokens(buffer) == 0 and len(buffer) < MAX_WRAPPED_LENGTH:
                    # Description continued on the next line.
                    buffer = f"{buffer} {nxt}"
                else:
                    break
                j += 1
            out.append((i, buffer))
            i = j
        return out

    def rows(self) -> Iterator[Union[RowFields, RejectedRow]]:
        for index, line in self.logical_lines():
            yield self.split_line(index, line)

    def split_line(self, index: int, line: str) -> Union[RowFields, RejectedRow]:
        """Locate date, charge code and amounts in one logical line."""
        found = find_date_token(line)
        if found is None:
            return RejectedRow(index, line, "no date")
        token, row_date = found
        start = line.index(token)
        before, rest = line[:start], line[start + len(token):]

        charge_code = None
        fiscal = _FISCAL_PERIOD_RE.match(rest)
        if fiscal:
            rest = rest[fiscal.end():]
            alpha = _ALPHA_CODE_RE.match(rest)
            if alpha and lookup_charge_code(alpha.group(1)) is not None:
                charge_code = alpha.group(1).lower()
                rest = rest[alpha.end():]
        else:
            numeric = _NUMERIC_CODE_RE.match(rest)
            if numeric:
                charge_code = numeric.group(1)
                rest = rest[numeric.end():]

        masked = mask_description_amounts(rest)
        amounts = []
        pieces = []
        last = 0
        for match in MONEY_TOKEN_RE.finditer(masked):
            value = parse_money(match.group(0))
            if value is None:
                continue
            amounts.append(value)
            pieces.append(rest[last:match.start()])
            last = match.end()
        pieces.append(rest[last:])

        if not amounts:
            return RejectedRow(index, line, "no amount")

        description = clean_description(" ".join(pieces))
        if not description and before.strip():
            description = clean_description(before)

        balance = amounts[-1]
        movements = amounts[:-1]
        fields = dict(
            row_index=index,
            date=row_date,
            description=description,
            charge_code=charge_code,
            balance=balance,
            raw=line,
        )
        if len(movements) >= 2:
            fields["debit"] = movements[0]
            fields["credit"] = movements[-1]
        elif len(movements) == 1:
            fields["amount"] = movements[0]
        return RowFields(**fields)


class StructuredRowSource(RowSource):
    """Rows from spreadsheet cells with a header mapping."""

    def __init__(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        analysis: Optional[HeaderAnalysis] = None,
        opening_balance: Optional[Decimal] = None,
    ):
        self.headers = list(headers)
        self.raw_rows = [list(r) for r in rows]
        if analysis is None:
            sample = [[("" if c is None else str(c)) for c in r] for r in self.raw_rows[:10]]
            analysis = analyze_headers(self.headers, sample)
        self.analysis = analysis
        self.format_tag = analysis.format_tag
        self.opening_balance = opening_balance if opening_balance is not None else ZERO

    def _cell(self, row: Sequence[object], column_type: ColumnType) -> Optional[object]:
        index = column_index(self.analysis, column_type)
        if index is None or index >= len(row):
            return None
        value = row[index]
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @staticmethod
    def _cell_date(value: object) -> Optional[date]:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if value is None:
            return None
        text = str(value).strip()
        parsed = parse_ledger_date(text.split(" ")[0])
        if parsed is None:
            found = find_date_token(text)
            parsed = found[1] if found else None
        return parsed

    def rows(self) -> Iterator[Union[RowFields, RejectedRow]]:
        for index, row in enumerate(self.raw_rows):
            raw = "  ".join("" if c is None else str(c) for c in row).strip()
            if not raw:
                continue
            row_date = self._cell_date(self._cell(row, ColumnType.DATE))
            if row_date is None:
                if find_date_token(raw) is not None:
                    yield RejectedRow(index, raw, "no date in date column")
                continue

            code = self._cell(row, ColumnType.CHARGE_CODE)
            description = self._cell(row, ColumnType.DESCRIPTION)
            debit = coerce_cell_amount(self._cell(row, ColumnType.DEBIT))
            credit = coerce_cell_amount(self._cell(row, ColumnType.CREDIT))
            amount = coerce_cell_amount(self._cell(row, ColumnType.AMOUNT))
            balance = coerce_cell_amount(self._cell(row, ColumnType.BALANCE))
            if debit is None and credit is None and amount is None and balance is None:
                yield RejectedRow(index, raw, "no amount")
                continue

            code_text = str(code).strip() if code is not None else None
            text = clean_description(str(description)) if description is not None else ""
            yield RowFields(
                row_index=index,
                date=row_date,
                description=text or (code_text or ""),
                charge_code=code_text,
                debit=debit,
                credit=credit,
                amount=amount,
                balance=balance,
                raw=raw,
            )


class RowTokenizer:
    """Resolve located row fields into sorted, de-duplicated ledger entries."""

    def __init__(self, source: RowSource, config: ArrearsConfig = DEFAULT_CONFIG):
        """Initialize tokenizer.

        Args:
            source: Input adapter
            config: Rejected-sample size and amount plausibility limits
        """
        self.source = source
        self.config = config

    def tokenize(self) -> TokenizeResult:
        """Tokenize every row of the source.

        Returns:
            TokenizeResult with entries sorted by (date, document order), a
            bounded sample of rejected lines and the duplicate count
        """
        entries = []
        rejected = []
        seen = set()
        duplicates = 0
        running = self.source.opening_balance

        max_balance = Decimal(self.config.max_balance_amount)
        max_charge = Decimal(self.config.max_charge_amount)

        for item in self.source.rows():
            # A balance this large is a control or reference number.
            if (
                isinstance(item, RowFields)
                and item.balance is not None
                and abs(item.balance) > max_balance
            ):
                item = RejectedRow(item.row_index, item.raw, "balance out of range")

            if isinstance(item, RejectedRow):
                if len(rejected) < self.config.rejected_sample_limit:
                    rejected.append(item.raw)
                logger.debug("Rejected row %d (%s): %s", item.row_index, item.reason, item.raw)
                continue

            entry = self.resolve(item, running, max_charge)
            running = entry.balance

            key = (
                entry.date,
                entry.charge_code,
                entry.description[:DESCRIPTION_PREFIX_LENGTH].lower(),
                entry.debit,
                entry.credit,
                entry.balance,
            )
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            entries.append(entry)

        entries.sort(key=lambda e: (e.date, e.row_index))
        logger.debug(
            "Tokenized %d entries (%d rejected, %d duplicates)",
            len(entries),
            len(rejected),
            duplicates,
        )
        return TokenizeResult(
            entries=tuple(entries),
            rejected=tuple(rejected),
            duplicates=duplicates,
            format_tag=self.source.format_tag,
        )

    @staticmethod
    def resolve(
        fields: RowFields, running: Decimal, max_charge: Optional[Decimal] = None
    ) -> LedgerEntry:
        """Build a LedgerEntry from located fields.

        Args:
            fields: Located row fields
            running: Balance after the previous row, used when the row has no
                balance of its own
            max_charge: Charges above this are glued control numbers and are
                dropped

        Returns:
            LedgerEntry
        """
        classified = classify_description(fields.description, fields.charge_code)

        debit = ZERO
        credit = ZERO
        if fields.debit is not None:
            if fields.debit < 0:
                credit += -fields.debit
            else:
                debit += fields.debit
        if fields.credit is not None:
            credit += abs(fields.credit)
        if fields.amount is not None:
            if fields.amount < 0 or classified.is_payment:
                credit += abs(fields.amount)
            else:
                debit += fields.amount

        if max_charge is not None and debit > max_charge:
            logger.debug("Dropped implausible charge %s on row %d", debit, fields.row_index)
            debit = ZERO

        balance = fields.balance
        if classified.is_balance_forward:
            # Restates a carried balance; never a movement.
            if balance is None:
                balance = fields.amount if fields.amount is not None else running
            debit = credit = ZERO

        balance_sourced = balance is not None
        if balance is None:
            balance = quantize(running + debit - credit)

        if classified.is_rental_charge:
            is_rental = True
        elif classified.is_non_rental_charge:
            is_rental = False
        else:
            is_rental = None

        return LedgerEntry(
            date=fields.date,
            description=fields.description or "Unknown",
            debit=debit if debit > 0 else None,
            credit=credit if credit > 0 else None,
            balance=balance,
            is_rental=is_rental,
            charge_code=fields.charge_code,
            balance_sourced=balance_sourced,
            row_index=fields.row_index,
        )
