"""Ledger import domain service."""

import csv
import re
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional, Sequence

from arrears.domain.charges import charges_from_entries, infer_opening_balance
from arrears.domain.column_mapper import analyze_headers, column_index, detect_header_row
from arrears.domain.config import DEFAULT_CONFIG, ArrearsConfig
from arrears.domain.entities import ColumnType, ParsedLedger
from arrears.domain.errors import (
    NotFoundError,
    ValidationError,
    empty_ledger,
    ledger_file_not_found,
    unsupported_ledger_type,
)
from arrears.domain.row_tokenizer import (
    RowTokenizer,
    StructuredRowSource,
    TextLineSource,
    TokenizeResult,
    normalize_ledger_line,
)
from arrears.logging_setup import get_logger
from arrears.utils.amount_parser import find_money_tokens, parse_money
from arrears.utils.date_parser import expand_year, parse_ledger_date

logger = get_logger(__name__)

TEXT_SUFFIXES = {".txt", ".text", ""}
CSV_SUFFIXES = {".csv", ".tsv"}

HEADER_SCAN_WINDOW = 6000
OPENING_SCAN_LINES = 80
NAME_SCAN_LINES = 30

_DATE = r"(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})(?=\D|$)"

# (pattern, score) - higher score wins.
ISSUE_DATE_LABELS = (
    (re.compile(rf"\bCreated\s+on[:\s]*{_DATE}", re.IGNORECASE), 100),
    (re.compile(rf"\bCreated?\s*Date[:\s]*{_DATE}", re.IGNORECASE), 98),
    (re.compile(rf"\bPrinted[:\s]+{_DATE}", re.IGNORECASE), 98),
    (re.compile(rf"\bPrint\s*Date[:\s]+{_DATE}", re.IGNORECASE), 97),
    (re.compile(rf"\bRun\s*Date[:\s]+{_DATE}", re.IGNORECASE), 96),
    (re.compile(rf"\bAs\s*Of\s*Property\s*Date:\s*{_DATE}", re.IGNORECASE), 95),
    (re.compile(rf"\bAs\s*Of\s*Date:\s*{_DATE}", re.IGNORECASE), 90),
    (re.compile(rf"\bStatement\s*Date:\s*{_DATE}", re.IGNORECASE), 85),
    (re.compile(rf"\bReport\s*Date:\s*{_DATE}", re.IGNORECASE), 80),
)
STANDALONE_DATE_LABEL = re.compile(rf"(?:^|\n)\s*Date:\s*{_DATE}", re.IGNORECASE)
STANDALONE_DATE_SCORE = 60

OPENING_BALANCE_LABELS = re.compile(
    r"(year\s+starting|starting|opening|beginning)\s+balance", re.IGNORECASE
)
TOTAL_LINE = re.compile(r"^\s*total\b", re.IGNORECASE)

_STREET = r"(?:STREET|ST|AVENUE|AVE|PARKWAY|PKWY|ROAD|RD|BOULEVARD|BLVD|LANE|LN|DRIVE|DR|PLACE|PL|COURT|CT)\b"
_ADDRESS_LINE = re.compile(rf"^\d+\s+.*{_STREET}", re.IGNORECASE)
_APT = re.compile(r"Apt[/\s]*Unit\s+No[.:]\s*(\w+)|\bApt\.?[:#\s]*(\w+)", re.IGNORECASE)


def _match_to_date(match: re.Match) -> Optional[date]:
    month, day, year = match.group(1), match.group(2), match.group(3)
    return parse_ledger_date(f"{month}/{day}/{expand_year(int(year))}")


def extract_issue_date(text: str) -> Optional[date]:
    """Find the statement's issue date from header/footer labels.

    Strong labels ("Created on", "Printed", "As Of Date") are searched in the
    whole text; a bare "Date:" line only near the top or bottom.

    Args:
        text: Full document text

    Returns:
        Best-scoring date, or None when no label is present
    """
    candidates = []
    for pattern, score in ISSUE_DATE_LABELS:
        match = pattern.search(text)
        if match:
            parsed = _match_to_date(match)
            if parsed is not None:
                candidates.append((score, parsed))

    head = text[:HEADER_SCAN_WINDOW]
    tail = text[-HEADER_SCAN_WINDOW:]
    for part in (head, tail):
        match = STANDALONE_DATE_LABEL.search(part)
        if match:
            parsed = _match_to_date(match)
            if parsed is not None:
                candidates.append((STANDALONE_DATE_SCORE, parsed))

    if not candidates:
        return None
    return max(candidates, key=lambda c: c[0])[1]


def _money_tokens(line: str) -> list[Decimal]:
    values = (parse_money(token) for token in find_money_tokens(normalize_ledger_line(line)))
    return [value for value in values if value is not None]


def extract_opening_balance(lines: Sequence[str]) -> Optional[Decimal]:
    """Return an explicitly stated opening balance, if any.

    The amount may sit on the label line or, in some exports, on the line
    just above it.
    """
    for i, line in enumerate(lines[:OPENING_SCAN_LINES]):
        if not OPENING_BALANCE_LABELS.search(line):
            continue
        amounts = _money_tokens(line)
        if amounts:
            return amounts[0]
        if i > 0:
            previous = _money_tokens(lines[i - 1])
            if previous:
                return previous[0]
    return None


def extract_final_balance(lines: Sequence[str]) -> Optional[Decimal]:
    """Return the last amount of the last TOTAL line, if any."""
    final = None
    for line in lines:
        if TOTAL_LINE.search(line):
            amounts = _money_tokens(line)
            if amounts:
                final = amounts[-1]
    return final


def extract_tenant_name(lines: Sequence[str]) -> Optional[str]:
    """Find the tenant's name in the document header."""
    head = list(lines[:NAME_SCAN_LINES])
    for i, line in enumerate(head[:20]):
        match = re.match(r"^TO:\s*(.*)$", line, re.IGNORECASE)
        if not match:
            continue
        if match.group(1).strip():
            return match.group(1).strip()
        if i + 1 < len(lines):
            candidate = lines[i + 1].strip()
            if candidate and not _ADDRESS_LINE.match(candidate):
                return candidate

    for line in head:
        match = re.search(
            r"(?<!Property )\b(?:Tenants?|Resident|Name):\s*(.+?)(?:\s+Phone|\s+Unit|$)",
            line,
            re.IGNORECASE,
        )
        if match:
            return match.group(1).strip()

    for line in head[:10]:
        match = re.search(r"\bName\s+(\w+\s+\w+)", line, re.IGNORECASE)
        if match:
            return match.group(1).strip()
    return None


def _with_apartment(address: str, following: Optional[str]) -> str:
    if _APT.search(address) or not following:
        return address
    match = _APT.search(following)
    if match:
        return f"{address} {match.group(1) or match.group(2)}"
    return address


def extract_property_name(lines: Sequence[str]) -> Optional[str]:
    """Find the rented property's address in the document header."""
    head = list(lines[:NAME_SCAN_LINES])
    in_to_section = False
    for i, line in enumerate(head):
        if re.match(r"^TO:", line, re.IGNORECASE):
            in_to_section = True
            continue
        if re.search(r"Re:\s*STATEMENT", line, re.IGNORECASE) and i + 1 < len(lines):
            candidate = lines[i + 1].strip()
            if _ADDRESS_LINE.match(candidate):
                following = lines[i + 2] if i + 2 < len(lines) else None
                return _with_apartment(candidate, following)
        if in_to_section and _ADDRESS_LINE.match(line):
            following = lines[i + 1] if i + 1 < len(lines) else None
            return _with_apartment(line.strip(), following)

    for line in head:
        match = re.search(r"\bAddress\s+(.+?)(?:\s+Status|\s+UNIT|$)", line, re.IGNORECASE)
        if match:
            name = match.group(1).strip()
            unit = re.search(r"\bUNIT\s+(\w+)", line, re.IGNORECASE)
            return f"{name} {unit.group(1)}" if unit else name

    for line in head:
        match = re.search(
            r"(?:Unit|Property):\s*(.+?)(?:\s+Status|\s+Move|\s+Lease|$)", line, re.IGNORECASE
        )
        if match:
            return match.group(1).strip()
    return None


class LedgerImportService:
    """Service for reading ledgers into entries and header facts."""

    def __init__(self, config: ArrearsConfig = DEFAULT_CONFIG):
        """Initialize ledger import service.

        Args:
            config: Thresholds passed on to the tokenizer
        """
        self.config = config

    def parse_text(self, text: str) -> ParsedLedger:
        """Parse the plain text of a ledger document.

        Falls back to header-driven splitting when the free-text rules find
        no rows but the text has a recognizable header row.

        Args:
            text: Document text

        Returns:
            ParsedLedger
        """
        lines = [line.strip() for line in (text or "").splitlines()]
        lines = [line for line in lines if line]
        opening = extract_opening_balance(lines)

        result = RowTokenizer(TextLineSource(text, opening), self.config).tokenize()
        if not result.entries:
            header = detect_header_row(lines)
            if header is not None:
                header_index, headers = header
                rows = [re.split(r"\t|\s{2,}|\|", line) for line in lines[header_index + 1:]]
                source = StructuredRowSource(headers, rows, opening_balance=opening)
                if column_index(source.analysis, ColumnType.DATE) is not None:
                    logger.debug("Free-text rules found no rows; using header columns")
                    result = RowTokenizer(source, self.config).tokenize()

        return self._build(result, text, lines, opening)

    def parse_rows(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        preamble: Sequence[str] = (),
    ) -> ParsedLedger:
        """Parse spreadsheet rows with a header row.

        When the header lacks a usable date column or any amount column the
        rows are joined back into text and parsed as free text.

        Args:
            headers: Header cells
            rows: Data rows
            preamble: Title lines above the header (tenant, issue date, ...)

        Returns:
            ParsedLedger
        """
        row_lines = ["  ".join("" if c is None else str(c) for c in row).strip() for row in rows]
        text_lines = [line for line in list(preamble) + row_lines if line]
        text = "\n".join(text_lines)

        sample = [["" if c is None else str(c) for c in row] for row in rows[:10]]
        analysis = analyze_headers(headers, sample)
        has_amounts = any(
            column_index(analysis, t) is not None
            for t in (ColumnType.DEBIT, ColumnType.CREDIT, ColumnType.AMOUNT, ColumnType.BALANCE)
        )
        if column_index(analysis, ColumnType.DATE) is None or not has_amounts:
            logger.debug(
                "Header lacks %s; parsing rows as text", ", ".join(analysis.missing_columns) or "amounts"
            )
            return self.parse_text(text)

        opening = extract_opening_balance(text_lines)
        source = StructuredRowSource(headers, rows, analysis, opening)
        result = RowTokenizer(source, self.config).tokenize()
        return self._build(result, text, text_lines, opening)

    def parse_csv(self, csv_file_path: str) -> ParsedLedger:
        """Parse a CSV export of a ledger.

        Args:
            csv_file_path: Path to CSV file

        Returns:
            ParsedLedger

        Raises:
            NotFoundError: If the file doesn't exist
            ValidationError: If the file is empty
        """
        csv_path = Path(csv_file_path)
        if not csv_path.exists():
            raise NotFoundError(ledger_file_not_found(csv_file_path))

        with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
            # Try to detect delimiter
            sample = f.read(4096)
            f.seek(0)
            try:
                delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
            except csv.Error:
                delimiter = ","
            all_rows = [row for row in csv.reader(f, delimiter=delimiter)]

        all_rows = [row for row in all_rows if any(cell.strip() for cell in row)]
        if not all_rows:
            raise ValidationError(empty_ledger(csv_file_path))

        # Title rows may precede the header row.
        for index, row in enumerate(all_rows[:20]):
            cells = [cell for cell in row if cell.strip()]
            if len(cells) < 3:
                continue
            analysis = analyze_headers(row)
            if column_index(analysis, ColumnType.DATE) is not None:
                preamble = ["  ".join(r).strip() for r in all_rows[:index]]
                return self.parse_rows(row, all_rows[index + 1:], preamble)

        return self.parse_text("\n".join("  ".join(row) for row in all_rows))

    def parse_file(self, path: str) -> ParsedLedger:
        """Parse a ledger file, choosing the reader by file extension.

        Raises:
            NotFoundError: If the file doesn't exist
            ValidationError: If the type is unsupported or the file is empty
        """
        file_path = Path(path)
        if not file_path.exists():
            raise NotFoundError(ledger_file_not_found(path))

        suffix = file_path.suffix.lower()
        if suffix in CSV_SUFFIXES:
            return self.parse_csv(path)
        if suffix not in TEXT_SUFFIXES:
            raise ValidationError(unsupported_ledger_type(path, suffix))

        text = file_path.read_text(encoding="utf-8-sig", errors="replace")
        if not text.strip():
            raise ValidationError(empty_ledger(path))
        return self.parse_text(text)

    def _build(
        self,
        result: TokenizeResult,
        text: str,
        lines: Sequence[str],
        opening: Optional[Decimal],
    ) -> ParsedLedger:
        entries = result.entries
        rental, non_rental = charges_from_entries(entries)

        if opening is None:
            opening = infer_opening_balance(entries)

        final_balance = extract_final_balance(lines)
        if final_balance is None and entries:
            final_balance = entries[-1].balance

        period = None
        if entries:
            period = f"{entries[0].date.isoformat()} to {entries[-1].date.isoformat()}"

        parsed = ParsedLedger(
            entries=entries,
            rental_charges=rental,
            non_rental_charges=non_rental,
            opening_balance=opening,
            final_balance=final_balance,
            issue_date=extract_issue_date(text),
            tenant_name=extract_tenant_name(lines),
            property_name=extract_property_name(lines),
            period=period,
            format_tag=result.format_tag,
            rejected=result.rejected,
            duplicates=result.duplicates,
        )
        logger.info(
            "Parsed %d entries (%d rental, %d non-rental charges), issue date %s",
            len(entries),
            len(rental),
            len(non_rental),
            parsed.issue_date,
        )
        return parsed
