"""Domain model entities for arrears.

These are pure data classes describing a parsed rental ledger and the figures
derived from it. Everything is created fresh per document and never mutated;
a computation only reads entries or builds new ones.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class ChargeCategory(str, Enum):
    """Closed set of charge purposes."""

    RENT = "rent"
    LATE_FEE = "late_fee"
    LEGAL_FEES = "legal_fees"
    BAD_CHECK = "bad_check"
    SECURITY_DEPOSIT = "security_deposit"
    MAINTENANCE = "maintenance"
    UTILITIES = "utilities"
    INTERNET = "internet"
    AIR_CONDITIONER = "air_conditioner"
    PARKING = "parking"
    ADMIN_FEE = "admin_fee"
    OTHER = "other"


class ColumnType(str, Enum):
    """Semantic type of a tabular ledger column."""

    DATE = "date"
    CHARGE_CODE = "chargeCode"
    DESCRIPTION = "description"
    DEBIT = "debit"
    CREDIT = "credit"
    AMOUNT = "amount"
    BALANCE = "balance"
    UNIT = "unit"
    FISCAL_PERIOD = "fiscalPeriod"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LedgerEntry:
    """One dated ledger transaction with its stated running balance.

    debit and credit are unsigned. is_rental is tri-state: True, False or
    None when the source gives no hint. row_index is the position in the
    source document and breaks ties between same-day rows.
    """

    date: date
    description: str
    debit: Optional[Decimal]
    credit: Optional[Decimal]
    balance: Decimal
    is_rental: Optional[bool]
    charge_code: Optional[str] = None
    balance_sourced: bool = True
    row_index: int = 0


@dataclass(frozen=True)
class ClassifiedDescription:
    """Outcome of one classification pass; exactly one flag is set."""

    is_payment: bool
    is_rental_charge: bool
    is_non_rental_charge: bool
    is_balance_forward: bool
    category: Optional[ChargeCategory]
    rule: str


@dataclass(frozen=True)
class RentalCharge:
    """Rent charge summary."""

    description: str
    amount: Decimal
    date: date


@dataclass(frozen=True)
class NonRentalCharge:
    """Non-rent charge summary."""

    description: str
    amount: Decimal
    date: date
    category: ChargeCategory


@dataclass(frozen=True)
class ColumnMapping:
    """Semantic type assigned to one header cell."""

    index: int
    header: str
    column_type: ColumnType
    confidence: float


@dataclass(frozen=True)
class HeaderAnalysis:
    """Result of mapping a header row to column types."""

    columns: tuple[ColumnMapping, ...]
    format_tag: str
    has_all_required: bool
    missing_columns: tuple[str, ...]

    def mapping_for(self, column_type: ColumnType) -> Optional[ColumnMapping]:
        """Return the mapping assigned to column_type, if any."""
        for mapping in self.columns:
            if mapping.column_type == column_type:
                return mapping
        return None


@dataclass(frozen=True)
class TraceEvent:
    """Structured diagnostic attached to a calculation."""

    step: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Step1Trace:
    found: bool
    index: Optional[int] = None
    date: Optional[date] = None
    balance: Optional[Decimal] = None


@dataclass(frozen=True)
class NonRentItem:
    date: date
    description: str
    amount: Decimal


@dataclass(frozen=True)
class Step2Trace:
    method: str
    items: tuple[NonRentItem, ...]
    total: Decimal
    deposits_excluded: bool = False


@dataclass(frozen=True)
class SelectedEntry:
    date: date
    description: str
    balance: Decimal
    row_index: int


@dataclass(frozen=True)
class Step3Trace:
    rule: str
    target_month: Optional[str]
    selected: Optional[SelectedEntry]
    balance: Decimal
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Step4Trace:
    formula: str
    formula_human: str
    arrears: Decimal


@dataclass(frozen=True)
class CalculationTrace:
    """Audit record of every decision taken by the calculator."""

    as_of_date: date
    system_as_of_date: date
    issue_date: Optional[date]
    step1: Step1Trace
    step2: Step2Trace
    step3: Step3Trace
    step4: Step4Trace
    events: tuple[TraceEvent, ...] = ()


@dataclass(frozen=True)
class ArrearsResult:
    """Final figures for one ledger."""

    entries: tuple[LedgerEntry, ...]
    rental_charges: tuple[RentalCharge, ...]
    non_rental_charges: tuple[NonRentalCharge, ...]
    opening_balance: Decimal
    latest_balance: Decimal
    total_non_rent_overall: Decimal
    total_non_rent_since_settlement: Decimal
    rent_arrears: Decimal
    settlement_date: Optional[date]
    issue_date_used: Optional[date]
    trace: CalculationTrace

    @property
    def final_total_non_rent_since(self) -> Decimal:
        """Since-settlement total when positive, else the overall total."""
        if self.total_non_rent_since_settlement > 0:
            return self.total_non_rent_since_settlement
        return self.total_non_rent_overall

    @property
    def final_rental_amount(self) -> Decimal:
        """Legacy figure: opening balance less every non-rent charge."""
        return self.opening_balance - self.total_non_rent_overall

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation (amounts as strings)."""
        return _to_jsonable(
            {
                "opening_balance": self.opening_balance,
                "latest_balance": self.latest_balance,
                "total_non_rent_overall": self.total_non_rent_overall,
                "total_non_rent_since_settlement": self.total_non_rent_since_settlement,
                "final_total_non_rent_since": self.final_total_non_rent_since,
                "final_rental_amount": self.final_rental_amount,
                "rent_arrears": self.rent_arrears,
                "settlement_date": self.settlement_date,
                "issue_date_used": self.issue_date_used,
                "rental_charges": self.rental_charges,
                "non_rental_charges": self.non_rental_charges,
                "entries": self.entries,
                "trace": self.trace,
            }
        )


@dataclass(frozen=True)
class ParsedLedger:
    """Entries and header facts extracted from one document."""

    entries: tuple[LedgerEntry, ...]
    rental_charges: tuple[RentalCharge, ...]
    non_rental_charges: tuple[NonRentalCharge, ...]
    opening_balance: Decimal
    final_balance: Optional[Decimal] = None
    issue_date: Optional[date] = None
    tenant_name: Optional[str] = None
    property_name: Optional[str] = None
    period: Optional[str] = None
    format_tag: str = "text"
    rejected: tuple[str, ...] = ()
    duplicates: int = 0


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    if hasattr(value, "__dataclass_fields__"):
        return {
            name: _to_jsonable(getattr(value, name)) for name in value.__dataclass_fields__
        }
    return value
