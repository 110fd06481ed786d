"""Charge summaries derived from ledger entries."""

from decimal import Decimal
from typing import Iterable, Sequence

from arrears.domain.classifier import classify_description
from arrears.domain.entities import (
    ChargeCategory,
    LedgerEntry,
    NonRentalCharge,
    RentalCharge,
)


def charges_from_entries(
    entries: Iterable[LedgerEntry],
) -> tuple[tuple[RentalCharge, ...], tuple[NonRentalCharge, ...]]:
    """Split charged rows into rental and non-rental summaries.

    Only rows with a positive debit count. Payments and balance-forward rows
    are skipped; anything not clearly rent is non-rental.

    Args:
        entries: Ledger entries in any order

    Returns:
        Tuple of (rental charges, non-rental charges) in input order
    """
    rental = []
    non_rental = []
    for entry in entries:
        if entry.debit is None or entry.debit <= 0:
            continue

        classified = classify_description(entry.description, entry.charge_code)
        if classified.is_payment or classified.is_balance_forward:
            continue

        if entry.is_rental is True or classified.is_rental_charge:
            rental.append(RentalCharge(entry.description, entry.debit, entry.date))
            continue

        category = classified.category
        if category is None or category == ChargeCategory.RENT:
            category = ChargeCategory.OTHER
        non_rental.append(NonRentalCharge(entry.description, entry.debit, entry.date, category))

    return tuple(rental), tuple(non_rental)


def infer_opening_balance(entries: Sequence[LedgerEntry]) -> Decimal:
    """Balance before the first entry: its balance less its own movement."""
    if not entries:
        return Decimal("0.00")
    first = entries[0]
    return first.balance - (first.debit or 0) + (first.credit or 0)
