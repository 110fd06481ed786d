"""Arrears calculation domain service.

The calculation runs in four steps over the full, date-sorted entry set:

1. Find the settlement point: the last row whose running balance is zero or
   negative.
2. Total the non-rent charges posted after that row.
3. Pick the balance that is "currently due" using the billing-cycle rule.
4. Rent arrears = the step 3 balance less the step 2 total.

Every fallback is recorded as a note and a TraceEvent on the result; the
calculator does not raise for sparse or malformed ledgers.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from dateutil.relativedelta import relativedelta

from arrears.domain.charges import charges_from_entries, infer_opening_balance
from arrears.domain.classifier import classify_description, is_security_deposit_like
from arrears.domain.config import DEFAULT_CONFIG, ArrearsConfig
from arrears.domain.entities import (
    ArrearsResult,
    CalculationTrace,
    ChargeCategory,
    LedgerEntry,
    NonRentalCharge,
    NonRentItem,
    SelectedEntry,
    Step1Trace,
    Step2Trace,
    Step3Trace,
    Step4Trace,
    TraceEvent,
)
from arrears.logging_setup import get_logger
from arrears.utils.amount_parser import quantize
from arrears.utils.date_parser import (
    MONTH_ABBREVIATIONS,
    MONTH_NAME_PATTERN,
    month_label,
    month_start,
    previous_month,
    safe_date,
    same_month,
)

logger = get_logger(__name__)

ZERO = Decimal("0.00")

METHOD_LEDGER_ORDER = "ledger-order"
METHOD_DATE_ONLY = "date-only"
METHOD_ALL_NON_RENTAL = "all-nonrental-fallback"

SETTLEMENT_WORDS = ("refund", "return", "reversal", "reversed", "reclass")

# Month references inside a description, tried in this order.
_REF_MONTH_YEAR_RE = re.compile(r"(?<![\d/.])\(?(\d{1,2})/(\d{4})\)?(?![\d/])")
_REF_MONTH_NAME_RE = re.compile(
    rf"\b{MONTH_NAME_PATTERN}\s+(\d{{1,2}})(?:st|nd|rd|th)?\D{{0,4}}(\d{{4}})\b",
    re.IGNORECASE,
)
_REF_NUMERIC_RE = re.compile(r"\b(\d{1,2})[/.](\d{1,2})[/.](\d{4})\b")

# Loose hint used when punctuation is too mangled for the patterns above.
_MONTH_WORD_RE = re.compile(
    r"\b(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)\b", re.IGNORECASE
)
_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
_DAY_RE = re.compile(r"\b\d{1,2}\b")


def parse_referenced_date(description: str) -> Optional[date]:
    """Find the service date or month a description refers to.

    Recognizes "(MM/YYYY)" (first of that month), "Mon D, YYYY" with loose
    punctuation between day and year, and a bare MM/DD/YYYY or MM.DD.YYYY.

    Args:
        description: Ledger row description

    Returns:
        Referenced date, or None when the text names no date
    """
    text = description or ""

    match = _REF_MONTH_YEAR_RE.search(text)
    if match:
        month, year = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            return date(year, month, 1)

    match = _REF_MONTH_NAME_RE.search(text)
    if match:
        month = MONTH_ABBREVIATIONS[match.group(1).lower()[:3]]
        found = safe_date(int(match.group(3)), month, int(match.group(2)))
        if found is not None:
            return found

    match = _REF_NUMERIC_RE.search(text)
    if match:
        found = safe_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))
        if found is not None:
            return found

    return None


def has_loose_date_hint(description: str) -> bool:
    """True when text holds a month word, a year and a day number."""
    text = description or ""
    return bool(
        _MONTH_WORD_RE.search(text) and _YEAR_RE.search(text) and _DAY_RE.search(text)
    )


def is_rent_entry(entry: LedgerEntry) -> bool:
    if entry.is_rental is True:
        return True
    return classify_description(entry.description, entry.charge_code).is_rental_charge


def is_payment_entry(entry: LedgerEntry) -> bool:
    if classify_description(entry.description, entry.charge_code).is_payment:
        return True
    return (entry.credit or ZERO) > 0


def is_deposit_entry(entry: LedgerEntry) -> bool:
    classified = classify_description(entry.description, entry.charge_code)
    return is_security_deposit_like(entry.description, classified.category)


def deposits_settled(entries: Sequence[LedgerEntry], min_rows: int = 2) -> bool:
    """Decide whether security deposit rows were later settled.

    Fires when at least min_rows rows look like deposit rows and any of them
    after the first shows refund/reversal wording, a credit, or an explicit
    all-zero row.

    Args:
        entries: Date-sorted ledger entries
        min_rows: Deposit rows required before the check applies

    Returns:
        True if every deposit row should be left out of non-rent totals
    """
    deposit_rows = [entry for entry in entries if is_deposit_entry(entry)]
    if len(deposit_rows) < min_rows:
        return False

    for entry in deposit_rows[1:]:
        text = entry.description.lower()
        if any(word in text for word in SETTLEMENT_WORDS):
            return True
        debit = entry.debit or ZERO
        credit = entry.credit or ZERO
        if credit > 0:
            return True
        if debit == 0 and credit == 0 and entry.balance == 0:
            return True
    return False


@dataclass
class _Notes:
    """Notes and events gathered during one calculation."""

    events: list[TraceEvent] = field(default_factory=list)

    def add(self, step: str, message: str, **data) -> str:
        logger.debug("%s: %s", step, message)
        self.events.append(TraceEvent(step, message, data))
        return message


@dataclass(frozen=True)
class _Pick:
    rule: str
    target_month: Optional[str]
    selected: Optional[LedgerEntry]
    notes: tuple[str, ...] = ()


class ArrearsCalculator:
    """Service computing rent arrears from ledger entries."""

    def __init__(self, config: ArrearsConfig = DEFAULT_CONFIG):
        """Initialize arrears calculator.

        Args:
            config: Calculation thresholds
        """
        self.config = config

    def calculate(
        self,
        entries: Sequence[LedgerEntry],
        issue_date: Optional[date] = None,
        as_of: Optional[date] = None,
        non_rental_charges: Optional[Sequence[NonRentalCharge]] = None,
        opening_balance: Optional[Decimal] = None,
        final_balance: Optional[Decimal] = None,
    ) -> ArrearsResult:
        """Run the four-step arrears calculation.

        Args:
            entries: Ledger entries in document order
            issue_date: Statement issue date, if one was extracted
            as_of: Calculation date (defaults to today)
            non_rental_charges: Non-rent charges extracted alongside the
                entries; derived from the entries when omitted
            opening_balance: Statement opening balance; inferred when omitted
            final_balance: Statement closing balance, used only when there
                are no entries

        Returns:
            ArrearsResult with figures and the full calculation trace
        """
        notes = _Notes()
        system_as_of = as_of or date.today()

        # Stable sort keeps document order between same-day rows.
        ordered = tuple(sorted(entries, key=lambda entry: entry.date))

        rental, derived_non_rental = charges_from_entries(ordered)
        if non_rental_charges is None:
            non_rental_charges = derived_non_rental
        if opening_balance is None:
            opening_balance = infer_opening_balance(ordered)

        exclude_deposits = deposits_settled(ordered, self.config.deposit_settlement_min_rows)
        if exclude_deposits:
            notes.add(
                "step2",
                "Security deposit rows were settled later; excluded from non-rent totals.",
            )
            non_rental_charges = tuple(
                charge
                for charge in non_rental_charges
                if not is_security_deposit_like(charge.description, charge.category)
            )
        else:
            non_rental_charges = tuple(non_rental_charges)

        total_overall = quantize(
            sum((abs(charge.amount) for charge in non_rental_charges), ZERO)
        )

        issue_used = self.resolve_issue_date(ordered, issue_date, notes)
        effective = self.effective_as_of(ordered, issue_used, system_as_of)

        step1 = self.find_settlement(ordered, notes)
        step2 = self.total_non_rent_since(
            ordered, step1, non_rental_charges, total_overall, exclude_deposits, notes
        )
        step3 = self.select_latest_balance(
            ordered, effective, issue_used, opening_balance, final_balance, notes
        )

        arrears = quantize(step3.balance - step2.total)
        step4 = Step4Trace(
            formula="latest_balance - total_non_rent_since_settlement",
            formula_human=f"{step3.balance} - {step2.total} = {arrears}",
            arrears=arrears,
        )

        trace = CalculationTrace(
            as_of_date=effective,
            system_as_of_date=system_as_of,
            issue_date=issue_used,
            step1=step1,
            step2=step2,
            step3=step3,
            step4=step4,
            events=tuple(notes.events),
        )
        logger.debug("Rent arrears %s", step4.formula_human)

        return ArrearsResult(
            entries=ordered,
            rental_charges=rental,
            non_rental_charges=non_rental_charges,
            opening_balance=opening_balance,
            latest_balance=step3.balance,
            total_non_rent_overall=total_overall,
            total_non_rent_since_settlement=step2.total,
            rent_arrears=arrears,
            settlement_date=step1.date,
            issue_date_used=issue_used,
            trace=trace,
        )

    def resolve_issue_date(
        self,
        entries: Sequence[LedgerEntry],
        issue_date: Optional[date],
        notes: _Notes,
    ) -> Optional[date]:
        """Drop an issue date that lags far behind the newest entry.

        Such a date is usually a transaction date picked up by mistake.
        """
        if issue_date is None or not entries:
            return issue_date

        newest = entries[-1].date
        lag = (newest - issue_date).days
        if lag > self.config.issue_date_max_lag_days:
            notes.add(
                "step0",
                f"Ignored issue date {issue_date.isoformat()}: {lag} days behind "
                f"the newest ledger row ({newest.isoformat()}).",
                issue_date=issue_date.isoformat(),
                lag_days=lag,
            )
            return None
        return issue_date

    @staticmethod
    def effective_as_of(
        entries: Sequence[LedgerEntry], issue_date: Optional[date], system_as_of: date
    ) -> date:
        """Issue date, else the newest entry date, else the supplied date."""
        if issue_date is not None:
            return issue_date
        if entries:
            return entries[-1].date
        return system_as_of

    @staticmethod
    def find_settlement(entries: Sequence[LedgerEntry], notes: _Notes) -> Step1Trace:
        """Find the last row with a zero or negative balance."""
        for index in range(len(entries) - 1, -1, -1):
            entry = entries[index]
            if entry.balance <= 0:
                return Step1Trace(
                    found=True, index=index, date=entry.date, balance=entry.balance
                )

        if entries:
            notes.add("step1", "No zero/negative balance found in ledger.")
        else:
            notes.add("step1", "Ledger entries were not available.")
        return Step1Trace(found=False)

    def total_non_rent_since(
        self,
        entries: Sequence[LedgerEntry],
        step1: Step1Trace,
        non_rental_charges: Sequence[NonRentalCharge],
        total_overall: Decimal,
        exclude_deposits: bool,
        notes: _Notes,
    ) -> Step2Trace:
        """Total non-rent charges posted after the settlement point.

        Args:
            entries: Date-sorted ledger entries
            step1: Settlement point
            non_rental_charges: Extracted non-rent charges used by fallbacks
            total_overall: Total of non_rental_charges
            exclude_deposits: Leave security deposit rows out
            notes: Trace collector

        Returns:
            Step2Trace with the method used, included items and total
        """
        has_debits = any(entry.debit is not None for entry in entries)

        if step1.found and has_debits:
            items = []
            for entry in entries[step1.index + 1:]:
                if self._counts_as_non_rent(entry, exclude_deposits):
                    items.append(NonRentItem(entry.date, entry.description, abs(entry.debit)))
            total = quantize(sum((item.amount for item in items), ZERO))
            return Step2Trace(METHOD_LEDGER_ORDER, tuple(items), total, exclude_deposits)

        if step1.found:
            notes.add(
                "step2",
                "Ledger rows carry no charge amounts; used date-only filter (inclusive).",
                settlement_date=step1.date.isoformat(),
            )
            included = [
                charge for charge in non_rental_charges if charge.date >= step1.date
            ]
            items = tuple(
                NonRentItem(charge.date, charge.description, abs(charge.amount))
                for charge in included
            )
            total = quantize(sum((item.amount for item in items), ZERO))
            return Step2Trace(METHOD_DATE_ONLY, items, total, exclude_deposits)

        notes.add(
            "step2",
            "No ledger entries / no last-zero date; using all non-rental charges.",
        )
        items = tuple(
            NonRentItem(charge.date, charge.description, abs(charge.amount))
            for charge in non_rental_charges
        )
        return Step2Trace(METHOD_ALL_NON_RENTAL, items, total_overall, exclude_deposits)

    @staticmethod
    def _counts_as_non_rent(entry: LedgerEntry, exclude_deposits: bool) -> bool:
        if entry.debit is None or entry.debit <= 0:
            return False

        classified = classify_description(entry.description, entry.charge_code)
        if classified.is_payment or classified.is_balance_forward:
            return False
        if (entry.credit or ZERO) > 0:
            return False
        if entry.is_rental is True or classified.is_rental_charge:
            return False
        if exclude_deposits and (
            classified.category == ChargeCategory.SECURITY_DEPOSIT
            or is_security_deposit_like(entry.description)
        ):
            return False
        return True

    def select_latest_balance(
        self,
        entries: Sequence[LedgerEntry],
        as_of: date,
        issue_date: Optional[date],
        opening_balance: Decimal,
        final_balance: Optional[Decimal],
        notes: _Notes,
    ) -> Step3Trace:
        """Pick the balance currently due using the billing-cycle rule.

        Rent rows posted after the issue date are left out, so next cycle's
        rent does not become the balance of a statement issued before it.
        Non-rent and payment rows after the issue date stay in; they may be
        charges backdated to an earlier period.

        Args:
            entries: Date-sorted ledger entries
            as_of: Effective as-of date from step 0
            issue_date: Issue date that survived step 0, if any
            opening_balance: Used when there is nothing else
            final_balance: Used when there are no entries
            notes: Trace collector

        Returns:
            Step3Trace describing the selection
        """
        rule, target = self.target_month(as_of)

        if not entries:
            if final_balance is not None:
                message = notes.add(
                    "step3", "No ledger entries; using finalBalance as latest balance."
                )
                balance = final_balance
            else:
                message = notes.add(
                    "step3",
                    "No ledger entries and no finalBalance; using openingBalance as latest balance.",
                )
                balance = opening_balance or ZERO
            return Step3Trace(rule, month_label(target), None, balance, (message,))

        messages = []
        candidates = list(entries)
        if issue_date is not None:
            candidates = [
                entry
                for entry in entries
                if entry.date <= issue_date or not is_rent_entry(entry)
            ]
            omitted = len(entries) - len(candidates)
            if omitted:
                messages.append(
                    notes.add(
                        "step3",
                        f"Ignored {omitted} future-dated ledger row(s) after Issue Date "
                        f"({issue_date.isoformat()}) for latest-balance selection.",
                        omitted=omitted,
                    )
                )

        if not candidates:
            newest = entries[-1]
            messages.append(
                notes.add(
                    "step3",
                    "Every ledger row is future-dated rent; used the most recent known balance.",
                )
            )
            return Step3Trace(
                rule, month_label(target), _selected(newest), newest.balance, tuple(messages)
            )

        pick = self.pick_balance_entry(candidates, as_of)
        for message in pick.notes:
            messages.append(notes.add("step3", message))

        selected = pick.selected
        return Step3Trace(
            pick.rule, pick.target_month, _selected(selected), selected.balance, tuple(messages)
        )

    def target_month(self, as_of: date) -> tuple[str, date]:
        """Return the billing-cycle rule name and the first day of its month."""
        cutoff = self.config.billing_cycle_cutoff_day
        if as_of.day <= cutoff:
            return f"prev-month-if-day-1-{cutoff}", previous_month(as_of)
        return f"current-month-if-day-{cutoff + 1}+", month_start(as_of)

    def pick_balance_entry(self, entries: Sequence[LedgerEntry], as_of: date) -> _Pick:
        """Choose the ledger row whose balance is currently due.

        Args:
            entries: Non-empty, date-sorted candidate rows
            as_of: Effective as-of date

        Returns:
            The selected row with the rule, searched month and notes
        """
        rule, target = self.target_month(as_of)
        # Newest first; the later row wins between same-day rows.
        newest = list(reversed(entries))

        backdated = self._post_issue_backdated(newest, as_of)
        if backdated is not None:
            ref = parse_referenced_date(backdated.description)
            ref_label = ref.isoformat() if ref else "unknown"
            return _Pick(
                rule,
                month_label(target),
                backdated,
                (
                    f"Used post-issue backdated non-rent row ({backdated.date.isoformat()}) "
                    f"referencing {ref_label} for latest balance.",
                ),
            )

        month = target
        skipped = 0
        for _ in range(self.config.max_month_steps):
            latest_any = next((e for e in newest if same_month(e.date, month)), None)
            if latest_any is not None:
                latest_non_rent = next(
                    (e for e in newest if self._non_rent_for_month(e, month, as_of)), None
                )
                selected = latest_non_rent or latest_any
                messages = []
                if skipped:
                    messages.append(f"Skipped {skipped} empty month(s) with no ledger rows.")
                if latest_non_rent is None and is_rent_entry(latest_any):
                    messages.append(
                        "Target month had only rent rows; used the latest rent balance for that month."
                    )
                ref = parse_referenced_date(selected.description)
                if ref is not None and not same_month(ref, selected.date):
                    messages.append(
                        f"Used a backdated non-rent row posted on {selected.date.isoformat()} "
                        f"that references {ref.month:02d}/{ref.year}."
                    )
                return _Pick(rule, month_label(month), selected, tuple(messages))

            skipped += 1
            month = month - relativedelta(months=1)

        fallback = next((e for e in newest if not is_rent_entry(e)), newest[0])
        return _Pick(
            rule,
            month_label(month),
            fallback,
            ("No non-rent balance found in target/previous months; used the most recent known balance.",),
        )

    def _post_issue_backdated(
        self, newest: Sequence[LedgerEntry], as_of: date
    ) -> Optional[LedgerEntry]:
        for entry in newest:
            if is_rent_entry(entry) or is_payment_entry(entry):
                continue
            if (entry.debit or ZERO) <= 0:
                continue
            days_after = (entry.date - as_of).days
            if days_after <= 0 or days_after > self.config.backdating_window_days:
                continue
            ref = parse_referenced_date(entry.description)
            if ref is not None:
                if ref > as_of:
                    continue
            elif not has_loose_date_hint(entry.description):
                continue
            return entry
        return None

    def _non_rent_for_month(self, entry: LedgerEntry, month: date, as_of: date) -> bool:
        if is_rent_entry(entry) or is_payment_entry(entry):
            return False
        if same_month(entry.date, month):
            return True
        if (entry.debit or ZERO) <= 0:
            return False

        ref = parse_referenced_date(entry.description)
        if ref is None:
            return False
        if same_month(ref, month):
            return True

        # Posted shortly after the as-of date, attributed to this month or earlier.
        days_after = (entry.date - as_of).days
        if days_after <= 0 or days_after > self.config.backdating_month_window_days:
            return False
        return month_start(ref) <= month and ref <= as_of


def _selected(entry: LedgerEntry) -> SelectedEntry:
    return SelectedEntry(entry.date, entry.description, entry.balance, entry.row_index)


def validate_result(result: ArrearsResult) -> list[str]:
    """Check charge summaries for obvious problems.

    Args:
        result: Calculation result

    Returns:
        Human-readable problems; empty when the result looks sound
    """
    errors = []
    for number, charge in enumerate(result.rental_charges, start=1):
        if charge.amount is None or charge.amount < 0:
            errors.append(f"Rental charge {number} has invalid amount")
        if not (charge.description or "").strip():
            errors.append(f"Rental charge {number} missing description")

    for number, charge in enumerate(result.non_rental_charges, start=1):
        if charge.amount is None or charge.amount < 0:
            errors.append(f"Non-rental charge {number} has invalid amount")
        if not (charge.description or "").strip():
            errors.append(f"Non-rental charge {number} missing description")

    return errors
