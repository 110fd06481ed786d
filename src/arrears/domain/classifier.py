"""Description classifier.

Maps ledger description text (and a charge code when the source printed one)
to exactly one of payment, rent, non-rent charge or balance-forward row.

Rules are evaluated in the order of ``RULES`` and the first match wins. The
keyword families overlap ("legal rent" vs "legal", "NSF payment" vs
"payment"), so the order is part of the contract.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

from arrears.domain.entities import ChargeCategory, ClassifiedDescription

PAYMENT_KEYWORDS = (
    "payment",
    "paid",
    "receipt",
    "ach",
    "eft",
    "wire",
    "check",
    "money order",
    "clickpay",
    "refund",
    "reversal",
    "reversed",
    "void",
)

BALANCE_FORWARD_KEYWORDS = (
    "balance forward",
    "brought forward",
    "carried forward",
    "starting balance",
    "beginning balance",
    "opening balance",
    "previous balance",
    "prior balance",
    "forward balance",
)

BAD_CHECK_KEYWORDS = (
    "returned check",
    "return check",
    "returned payment",
    "returned item",
    "bad check",
    "nsf",
    "insufficient funds",
    "dishonored",
    "dishonoured",
)

NON_RENT_KEYWORDS = (
    ("late fee", ChargeCategory.LATE_FEE),
    ("late charge", ChargeCategory.LATE_FEE),
    ("legal", ChargeCategory.LEGAL_FEES),
    ("attorney", ChargeCategory.LEGAL_FEES),
    ("court", ChargeCategory.LEGAL_FEES),
    ("security deposit", ChargeCategory.SECURITY_DEPOSIT),
    ("deposit", ChargeCategory.SECURITY_DEPOSIT),
    ("maintenance", ChargeCategory.MAINTENANCE),
    ("repair", ChargeCategory.MAINTENANCE),
    ("work order", ChargeCategory.MAINTENANCE),
    ("damage", ChargeCategory.MAINTENANCE),
    ("cleaning", ChargeCategory.MAINTENANCE),
    ("water", ChargeCategory.UTILITIES),
    ("sewer", ChargeCategory.UTILITIES),
    ("trash", ChargeCategory.UTILITIES),
    ("electric", ChargeCategory.UTILITIES),
    ("gas", ChargeCategory.UTILITIES),
    ("utility", ChargeCategory.UTILITIES),
    ("utilities", ChargeCategory.UTILITIES),
    ("internet", ChargeCategory.INTERNET),
    ("wifi", ChargeCategory.INTERNET),
    ("broadband", ChargeCategory.INTERNET),
    ("cable", ChargeCategory.INTERNET),
    ("air conditioner", ChargeCategory.AIR_CONDITIONER),
    ("air conditioning", ChargeCategory.AIR_CONDITIONER),
    ("a/c", ChargeCategory.AIR_CONDITIONER),
    ("ac", ChargeCategory.AIR_CONDITIONER),
    ("parking", ChargeCategory.PARKING),
    ("garage", ChargeCategory.PARKING),
    ("admin", ChargeCategory.ADMIN_FEE),
    ("administrative", ChargeCategory.ADMIN_FEE),
    ("service fee", ChargeCategory.ADMIN_FEE),
    ("processing fee", ChargeCategory.ADMIN_FEE),
    ("lockout", ChargeCategory.OTHER),
    ("fee", ChargeCategory.OTHER),
)

RENT_KEYWORDS = (
    "base rent",
    "monthly rent",
    "residential rent",
    "resident rent",
    "contract rent",
    "legal rent",
    "tenant rent",
    "rent",
    "rental",
    "rental charge",
    "affrent",
    "use and occupancy",
    "tenant portion",
    "section 8",
    "hap",
    "housing assistance",
    "subsidy",
    "fheps",
    "scrie",
    "drie",
)

# "rent" next to any of these is an add-on charge, not base rent.
RENT_OVERRIDE_NON_RENT = (
    "parking",
    "garage",
    "storage",
    "pet",
    "utility",
    "utilities",
    "water",
    "sewer",
    "trash",
    "electric",
    "gas",
    "internet",
    "wifi",
    "cable",
)

# Whole-token abbreviations expanded before matching.
ABBREVIATIONS = {
    "pmt": "payment",
    "pymt": "payment",
    "pymnt": "payment",
    "paymt": "payment",
    "rcpt": "receipt",
    "recpt": "receipt",
    "chk": "check",
    "chk#": "check",
    "chg": "charge",
    "chrg": "charge",
    "dep": "deposit",
    "elec": "electric",
    "util": "utility",
    "utils": "utilities",
    "maint": "maintenance",
    "adm": "admin",
    "svc": "service",
    "atty": "attorney",
    "bal": "balance",
    "fwd": "forward",
    "rev": "reversal",
    "ret": "returned",
    "w/o": "work order",
    "secdep": "security deposit",
    "latefee": "late fee",
    "latefees": "late fees",
    "utilele": "utility electric",
    "keyinc": "lockout",
    "uao": "use and occupancy",
    "baserent": "base rent",
    "u&o": "use and occupancy",
}

_PHRASES = (
    (re.compile(r"\bsec(?:urity)?\.? ?dep(?:osit)?\b"), "security deposit"),
    (re.compile(r"\buse ?& ?occupancy\b"), "use and occupancy"),
    (re.compile(r"\bsec(?:tion)?\.? ?8\b"), "section 8"),
)


@dataclass(frozen=True)
class NormalizedText:
    """Description prepared for keyword lookup."""

    spaced: str
    compact: str


@dataclass(frozen=True)
class ClassifierRule:
    """One ordered classification rule."""

    name: str
    predicate: Callable[[NormalizedText], bool]
    result: ClassifiedDescription


def normalize_description(text: str) -> NormalizedText:
    """Lowercase text, split camelCase and digit joins, expand abbreviations."""
    s = re.sub(r"([a-z])([A-Z])", r"\1 \2", text or "")
    s = re.sub(r"([A-Za-z])(\d)|(\d)([A-Za-z])", _split_alnum, s)
    s = s.lower()
    s = re.sub(r"[^a-z0-9/&#]+", " ", s)
    tokens = [ABBREVIATIONS.get(token, token) for token in s.split()]
    spaced = " ".join(tokens)
    for pattern, replacement in _PHRASES:
        spaced = pattern.sub(replacement, spaced)
    return NormalizedText(spaced=spaced, compact=spaced.replace(" ", ""))


def _split_alnum(match: re.Match) -> str:
    if match.group(1):
        return f"{match.group(1)} {match.group(2)}"
    return f"{match.group(3)} {match.group(4)}"


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?:s|es)?(?![a-z0-9])")


def has_keyword(text: NormalizedText, keyword: str) -> bool:
    """Return True if keyword occurs as a word (or merged phrase) in text."""
    if _keyword_pattern(keyword).search(text.spaced):
        return True
    # Merged words: "LATEFEE", "BASERENT", "RENTPAYMENT". Short single words
    # are too ambiguous inside other words to match this way.
    if " " in keyword or len(keyword) >= 7:
        return keyword.replace(" ", "") in text.compact
    return False


def _any_keyword(keywords: tuple[str, ...]) -> Callable[[NormalizedText], bool]:
    return lambda text: any(has_keyword(text, k) for k in keywords)


def _payment(rule: str) -> ClassifiedDescription:
    return ClassifiedDescription(
        is_payment=True,
        is_rental_charge=False,
        is_non_rental_charge=False,
        is_balance_forward=False,
        category=None,
        rule=rule,
    )


def _rent(rule: str) -> ClassifiedDescription:
    return ClassifiedDescription(
        is_payment=False,
        is_rental_charge=True,
        is_non_rental_charge=False,
        is_balance_forward=False,
        category=ChargeCategory.RENT,
        rule=rule,
    )


def _non_rent(category: ChargeCategory, rule: str) -> ClassifiedDescription:
    return ClassifiedDescription(
        is_payment=False,
        is_rental_charge=False,
        is_non_rental_charge=True,
        is_balance_forward=False,
        category=category,
        rule=rule,
    )


def _balance_forward(rule: str) -> ClassifiedDescription:
    return ClassifiedDescription(
        is_payment=False,
        is_rental_charge=False,
        is_non_rental_charge=False,
        is_balance_forward=True,
        category=None,
        rule=rule,
    )


def _build_rules() -> tuple[ClassifierRule, ...]:
    rules = [
        ClassifierRule("legal-rent", _any_keyword(("legal rent",)), _rent("legal-rent")),
        ClassifierRule(
            "balance-forward",
            _any_keyword(BALANCE_FORWARD_KEYWORDS),
            _balance_forward("balance-forward"),
        ),
        ClassifierRule(
            "bad-check",
            _any_keyword(BAD_CHECK_KEYWORDS),
            _non_rent(ChargeCategory.BAD_CHECK, "bad-check"),
        ),
        ClassifierRule("payment", _any_keyword(PAYMENT_KEYWORDS), _payment("payment")),
    ]
    for keyword, category in NON_RENT_KEYWORDS:
        name = f"non-rent:{keyword}"
        rules.append(ClassifierRule(name, _any_keyword((keyword,)), _non_rent(category, name)))

    has_rent = _any_keyword(RENT_KEYWORDS)
    overridden = _any_keyword(RENT_OVERRIDE_NON_RENT)
    rules.append(
        ClassifierRule(
            "rent-overridden",
            lambda text: has_rent(text) and overridden(text),
            _non_rent(ChargeCategory.OTHER, "rent-overridden"),
        )
    )
    rules.append(ClassifierRule("rent", has_rent, _rent("rent")))
    return tuple(rules)


RULES = _build_rules()

DEFAULT_RESULT = _non_rent(ChargeCategory.OTHER, "default")

# Charge codes printed by property-management systems. Numeric codes come
# from free-text statements, the rest from resident ledgers.
CHARGE_CODES = {
    "1": _rent("code:1"),
    "25": _non_rent(ChargeCategory.AIR_CONDITIONER, "code:25"),
    "51": _non_rent(ChargeCategory.LEGAL_FEES, "code:51"),
    "52": _non_rent(ChargeCategory.SECURITY_DEPOSIT, "code:52"),
    "55": _non_rent(ChargeCategory.BAD_CHECK, "code:55"),
    "59": _non_rent(ChargeCategory.LATE_FEE, "code:59"),
    "rent": _rent("code:rent"),
    "affrent": _rent("code:affrent"),
    "resid": _rent("code:resid"),
    "resrent": _rent("code:resrent"),
    "latefee": _non_rent(ChargeCategory.LATE_FEE, "code:latefee"),
    "latefees": _non_rent(ChargeCategory.LATE_FEE, "code:latefees"),
    "secdep": _non_rent(ChargeCategory.SECURITY_DEPOSIT, "code:secdep"),
    "nsf": _non_rent(ChargeCategory.BAD_CHECK, "code:nsf"),
    "keyinc": _non_rent(ChargeCategory.OTHER, "code:keyinc"),
    "uao": _non_rent(ChargeCategory.OTHER, "code:uao"),
    "utilele": _non_rent(ChargeCategory.UTILITIES, "code:utilele"),
    "legal": _non_rent(ChargeCategory.LEGAL_FEES, "code:legal"),
    "chk#": _payment("code:chk#"),
    "pmt": _payment("code:pmt"),
}


def lookup_charge_code(code: Optional[str]) -> Optional[ClassifiedDescription]:
    """Return the fixed classification for a known charge code, else None."""
    if not code:
        return None
    key = code.strip().lower()
    if key in CHARGE_CODES:
        return CHARGE_CODES[key]
    if key.startswith("pmt"):
        return CHARGE_CODES["pmt"]
    return None


@lru_cache(maxsize=4096)
def classify_description(
    text: str, charge_code: Optional[str] = None
) -> ClassifiedDescription:
    """Classify a ledger description.

    A known charge code decides the outcome outright. Otherwise rules are
    tried in priority order; unmatched text is a non-rent charge of category
    "other" so a real charge is never silently dropped.

    Args:
        text: Description text
        charge_code: Charge code printed next to the row, if any

    Returns:
        ClassifiedDescription with exactly one flag set
    """
    by_code = lookup_charge_code(charge_code)
    if by_code is not None:
        return by_code

    normalized = normalize_description(text)
    for rule in RULES:
        if rule.predicate(normalized):
            return rule.result
    return DEFAULT_RESULT


def is_security_deposit_like(
    text: str, category: Optional[ChargeCategory] = None
) -> bool:
    """Return True for security deposit rows, including refunds and reversals."""
    if category == ChargeCategory.SECURITY_DEPOSIT:
        return True
    normalized = normalize_description(text)
    return has_keyword(normalized, "security deposit")
