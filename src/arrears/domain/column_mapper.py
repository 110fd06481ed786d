"""Header analysis for tabular ledgers.

Maps spreadsheet or fixed-width header cells to semantic column types using
synonym lists, with a second pass over sample values for headers that say
nothing useful ("Col 3", "Amt").
"""

import re
from typing import Optional, Sequence

from arrears.domain.entities import ColumnMapping, ColumnType, HeaderAnalysis
from arrears.logging_setup import get_logger

logger = get_logger(__name__)

MIN_CONFIDENCE = 0.5
SIMILARITY_THRESHOLD = 0.7
CONTAINMENT_CONFIDENCE = 0.85
RESCUE_CONFIDENCE = 0.7

REQUIRED_COLUMNS = (ColumnType.DATE, ColumnType.BALANCE)

COLUMN_SYNONYMS: dict[ColumnType, tuple[str, ...]] = {
    ColumnType.DATE: (
        "date", "transaction date", "trans date", "txn date", "entry date",
        "posting date", "post date", "effective date", "eff date", "value date",
        "invoice date", "bill date", "statement date", "activity date",
        "ledger date", "record date", "trx date", "tran date", "dt",
        "doc date", "document date", "charge date", "payment date",
        "created date", "applied date", "gl date", "accounting date",
        "transaction dt", "trans dt",
    ),
    ColumnType.CHARGE_CODE: (
        "chg code", "charge code", "transaction code", "trans code", "txn code",
        "type", "code", "trans type", "transaction type", "txn type",
        "charge type", "entry type", "item code", "item type", "acct code",
        "account code", "gl code", "ledger code", "activity code",
        "activity type", "chgcode", "chg", "tcode", "trx code", "billing code",
        "bill code", "fee code", "fee type", "service code", "tran code",
        "posting code", "entry code",
    ),
    ColumnType.DESCRIPTION: (
        "description", "desc", "details", "memo", "notes", "narrative",
        "particulars", "remarks", "comment", "comments", "explanation",
        "transaction description", "trans desc", "item description",
        "item desc", "charge description", "payment description", "activity",
        "line item", "detail", "descr", "note", "narration",
        "transaction detail", "trans detail", "line description",
        "entry description",
    ),
    ColumnType.DEBIT: (
        "debit", "charge", "charges", "amount due", "dr", "debits",
        "charge amount", "debit amount", "amount charged", "billed",
        "billed amount", "chg amt", "charge amt", "debit amt", "dr amt",
        "increase", "additions", "amount billed", "billing amount",
        "new charges", "current charges", "fee amount", "fees",
        "assessment", "assessments", "debit total", "charge total",
        "bill amount",
    ),
    ColumnType.CREDIT: (
        "credit", "payment", "payments", "credits", "cr", "amount paid",
        "credit amount", "payment amount", "paid", "received", "receipts",
        "pmt", "pmt amt", "payment amt", "credit amt", "cr amt", "decrease",
        "deductions", "applied", "amount received", "receipt amount",
        "collected", "paid amount", "payment received", "credit total",
        "payment total", "concession",
    ),
    ColumnType.AMOUNT: (
        "amount", "amt", "transaction amount", "trans amount", "txn amount",
        "net amount", "value",
    ),
    ColumnType.BALANCE: (
        "balance", "running balance", "bal", "account balance", "acct balance",
        "ending balance", "end balance", "current balance", "curr balance",
        "running total", "total", "cumulative", "net balance", "balance due",
        "amount owed", "outstanding", "remaining", "total due",
        "total balance", "ledger balance", "resident balance",
        "tenant balance", "owing", "closing balance", "new balance",
        "updated balance", "final balance",
    ),
    ColumnType.UNIT: (
        "unit", "bldg unit", "building unit", "apt", "apartment", "suite",
        "space", "unit no", "unit number", "property", "location", "bldg",
        "building", "unit id", "property id", "apt no", "apartment number",
        "suite no",
    ),
    ColumnType.FISCAL_PERIOD: (
        "fiscal period", "period", "fiscal", "accounting period",
        "acct period", "billing period", "month", "fy", "fiscal year",
    ),
    ColumnType.REFERENCE: (
        "ref", "reference", "ref no", "reference number", "ref number",
        "transaction no", "invoice no", "receipt no", "check no", "check",
        "ctrl", "control", "control no", "doc no", "document number",
    ),
}

_MONEY_VALUE = re.compile(r"^\$?-?[\d,]+\.\d{2}$|^\(\$?[\d,]+\.\d{2}\)$")

VALUE_PATTERNS: dict[ColumnType, tuple[re.Pattern, ...]] = {
    ColumnType.DATE: (
        re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$"),
        re.compile(r"^\d{4}-\d{2}-\d{2}$"),
        re.compile(r"^\d{1,2}-\d{1,2}-\d{2,4}$"),
        re.compile(r"^[A-Za-z]{3}\s+\d{1,2},?\s+\d{4}$"),
    ),
    ColumnType.DEBIT: (_MONEY_VALUE,),
    ColumnType.CREDIT: (_MONEY_VALUE,),
    ColumnType.BALANCE: (_MONEY_VALUE,),
    ColumnType.FISCAL_PERIOD: (
        re.compile(r"^\d{6}$"),
        re.compile(r"^\d{4}-\d{2}$"),
    ),
    ColumnType.REFERENCE: (
        re.compile(r"^\d{5,}$"),
        re.compile(r"^(?=.*\d)[A-Z0-9]{6,}$", re.IGNORECASE),
    ),
    ColumnType.UNIT: (
        re.compile(r"^\d{1,4}-?\d{0,4}[A-Z]?$", re.IGNORECASE),
        re.compile(r"^[A-Z]\d{1,4}$", re.IGNORECASE),
    ),
    ColumnType.CHARGE_CODE: (
        re.compile(r"^[A-Z]{2,10}$", re.IGNORECASE),
        re.compile(r"^PMT[A-Z]*$", re.IGNORECASE),
    ),
    ColumnType.DESCRIPTION: (
        re.compile(r"^[A-Za-z][A-Za-z\s/&().#-]{9,}$"),
        re.compile(r"payment|charge|fee|rent", re.IGNORECASE),
    ),
}

HEADER_KEYWORDS = (
    "date", "description", "debit", "credit", "balance", "charge", "payment",
    "amount", "code", "type", "memo", "reference",
)

KNOWN_HEADERS = (
    "Transaction Date", "Trans Date", "Date", "Bldg/Unit", "Building/Unit",
    "Fiscal Period", "Period", "Transaction Code", "Chg Code", "Charge Code",
    "Description", "Desc", "Details", "Charges", "Charge", "Debit", "Dr",
    "Credits", "Credit", "Payment", "Cr", "Running Balance", "Balance", "Bal",
    "Reference", "Ref", "Unit", "Memo", "Notes", "Amount",
)

_CREDIT_HINT = re.compile(r"\b(payment|credit|cr|paid)", re.IGNORECASE)
_DEBIT_HINT = re.compile(r"\b(charge|debit|dr|due)", re.IGNORECASE)


def normalize_header(cell: str) -> str:
    """Lowercase, turn punctuation into spaces and collapse whitespace."""
    s = re.sub(r"[^a-z0-9\s]", " ", (cell or "").lower())
    return re.sub(r"\s+", " ", s).strip()


def _contains_words(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(needle)}(?![a-z0-9])", haystack) is not None


def _word_overlap(a: str, b: str) -> float:
    words_a = a.split()
    words_b = b.split()
    if not words_a or not words_b:
        return 0.0
    common = [w for w in words_a if w in words_b]
    return len(common) / max(len(words_a), len(words_b))


def identify_column_type(header: str) -> tuple[ColumnType, float]:
    """Score a header cell against the synonym lists.

    Exact synonym match scores 1.0, whole-word containment either way 0.85,
    otherwise the shared-word fraction when it exceeds 0.7.

    Args:
        header: Raw header cell

    Returns:
        Tuple of (column type, confidence); (UNKNOWN, 0.0) when nothing fits
    """
    normalized = normalize_header(header)
    if not normalized:
        return ColumnType.UNKNOWN, 0.0

    best_type = ColumnType.UNKNOWN
    best_confidence = 0.0
    for column_type, synonyms in COLUMN_SYNONYMS.items():
        for synonym in synonyms:
            if normalized == synonym:
                return column_type, 1.0
            if _contains_words(normalized, synonym) or _contains_words(synonym, normalized):
                if CONTAINMENT_CONFIDENCE > best_confidence:
                    best_type, best_confidence = column_type, CONTAINMENT_CONFIDENCE
            similarity = _word_overlap(normalized, synonym)
            if similarity > SIMILARITY_THRESHOLD and similarity > best_confidence:
                best_type, best_confidence = column_type, similarity
    return best_type, best_confidence


def identify_column_type_from_data(values: Sequence[str]) -> tuple[ColumnType, float]:
    """Guess a column type from its values.

    Confidence is the share of non-empty values matching the winning type's
    patterns. Ties go to the type listed first in VALUE_PATTERNS.
    """
    present = [str(v).strip() for v in values if v is not None and str(v).strip()]
    if not present:
        return ColumnType.UNKNOWN, 0.0

    scores = {column_type: 0 for column_type in VALUE_PATTERNS}
    for value in present:
        for column_type, patterns in VALUE_PATTERNS.items():
            if any(p.search(value) for p in patterns):
                scores[column_type] += 1

    best_type = ColumnType.UNKNOWN
    best_score = 0
    for column_type, score in scores.items():
        if score > best_score:
            best_type, best_score = column_type, score
    return best_type, best_score / len(present)


def _resolve_conflicts(columns: list[ColumnMapping]) -> list[ColumnMapping]:
    winners: dict[ColumnType, ColumnMapping] = {}
    for col in columns:
        if col.column_type == ColumnType.UNKNOWN:
            continue
        current = winners.get(col.column_type)
        if current is None or col.confidence > current.confidence:
            winners[col.column_type] = col

    resolved = []
    for col in columns:
        if col.column_type != ColumnType.UNKNOWN and winners[col.column_type] is not col:
            logger.debug(
                "Column %d %r demoted: %s already mapped", col.index, col.header, col.column_type.value
            )
            col = ColumnMapping(col.index, col.header, ColumnType.UNKNOWN, 0.0)
        resolved.append(col)
    return resolved


def _rescue_complement(columns: list[ColumnMapping]) -> list[ColumnMapping]:
    types = {c.column_type for c in columns}
    if ColumnType.DEBIT in types and ColumnType.CREDIT not in types:
        missing, hint = ColumnType.CREDIT, _CREDIT_HINT
    elif ColumnType.CREDIT in types and ColumnType.DEBIT not in types:
        missing, hint = ColumnType.DEBIT, _DEBIT_HINT
    else:
        return columns

    for i, col in enumerate(columns):
        if col.column_type == ColumnType.UNKNOWN and hint.search(col.header):
            columns[i] = ColumnMapping(col.index, col.header, missing, RESCUE_CONFIDENCE)
            break
    return columns


def _format_tag(columns: list[ColumnMapping], headers: Sequence[str]) -> str:
    text = " ".join(normalize_header(h) for h in headers)
    if (
        _contains_words(text, "bldg")
        or _contains_words(text, "unit")
        or any(c.column_type == ColumnType.UNIT for c in columns)
    ):
        return "bldg_unit"
    if "tenant ledger" in text or "tenant statement" in text:
        return "tenant_ledger"
    if "resident" in text or "ledger" in text:
        return "standard"
    return "custom"


def analyze_headers(
    headers: Sequence[str], sample_rows: Optional[Sequence[Sequence[str]]] = None
) -> HeaderAnalysis:
    """Map every header cell to a column type.

    Missing required columns are reported on the result, never raised;
    callers fall back to free-text tokenizing when has_all_required is False.

    Args:
        headers: Header row cells
        sample_rows: Optional data rows used for headers that could not be
            identified by name

    Returns:
        HeaderAnalysis
    """
    columns = []
    for index, header in enumerate(headers):
        header = "" if header is None else str(header)
        column_type, confidence = identify_column_type(header)
        columns.append(ColumnMapping(index, header, column_type, confidence))

    columns = _resolve_conflicts(columns)

    if sample_rows:
        used = {c.column_type for c in columns if c.column_type != ColumnType.UNKNOWN}
        for i, col in enumerate(columns):
            if col.column_type != ColumnType.UNKNOWN and col.confidence >= MIN_CONFIDENCE:
                continue
            values = [
                str(row[col.index]) if col.index < len(row) and row[col.index] is not None else ""
                for row in sample_rows
            ]
            data_type, data_confidence = identify_column_type_from_data(values)
            if (
                data_type != ColumnType.UNKNOWN
                and data_type not in used
                and data_confidence > col.confidence
            ):
                columns[i] = ColumnMapping(col.index, col.header, data_type, data_confidence)
                used.add(data_type)

    columns = _rescue_complement(columns)

    missing = tuple(
        t.value
        for t in REQUIRED_COLUMNS
        if not any(c.column_type == t and c.confidence >= MIN_CONFIDENCE for c in columns)
    )
    analysis = HeaderAnalysis(
        columns=tuple(columns),
        format_tag=_format_tag(columns, headers),
        has_all_required=not missing,
        missing_columns=missing,
    )
    logger.debug(
        "Header analysis: format=%s required=%s mapping=%s",
        analysis.format_tag,
        analysis.has_all_required,
        [(c.header, c.column_type.value, round(c.confidence, 2)) for c in analysis.columns],
    )
    return analysis


def column_index(analysis: HeaderAnalysis, column_type: ColumnType) -> Optional[int]:
    """Return the index of the column mapped to column_type with usable confidence."""
    mapping = analysis.mapping_for(column_type)
    if mapping is None or mapping.confidence < MIN_CONFIDENCE:
        return None
    return mapping.index


def parse_header_line(line: str) -> list[str]:
    """Split a plain-text header row into cells.

    Tries tab, runs of 2+ spaces, comma and pipe delimiters in turn; when none
    yields three cells, scans for known header words in left-to-right order.
    """
    for splitter in (
        lambda s: s.split("\t"),
        lambda s: re.split(r"\s{2,}", s),
        lambda s: s.split(","),
        lambda s: s.split("|"),
    ):
        cells = [c.strip() for c in splitter(line) if c.strip()]
        if len(cells) >= 3:
            return cells

    found = []
    remaining = line
    for header in sorted(KNOWN_HEADERS, key=len, reverse=True):
        pattern = re.compile(rf"(?<![A-Za-z]){re.escape(header)}(?![A-Za-z])", re.IGNORECASE)
        match = pattern.search(remaining)
        if match:
            found.append((match.start(), match.group(0)))
            remaining = remaining[: match.start()] + "#" * len(match.group(0)) + remaining[match.end():]
    return [text for _, text in sorted(found)]


def detect_header_row(lines: Sequence[str], max_lines: int = 20) -> Optional[tuple[int, list[str]]]:
    """Find the header row among the first lines of a text ledger.

    A line qualifies when it mentions at least three header keywords and
    splits into at least three cells.

    Returns:
        Tuple of (line index, header cells) or None
    """
    for index, line in enumerate(lines[:max_lines]):
        lowered = line.lower()
        hits = sum(1 for keyword in HEADER_KEYWORDS if keyword in lowered)
        if hits < 3:
            continue
        headers = parse_header_line(line)
        if len(headers) >= 3:
            return index, headers
    return None
