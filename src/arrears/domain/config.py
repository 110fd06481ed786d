"""Calculation thresholds.

The values are empirical and kept overridable. Resolution order for each
field is explicit override, then ARREARS_<FIELD> environment variable, then
the default below.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

from arrears.domain.errors import ValidationError, invalid_config_value

ENV_PREFIX = "ARREARS_"


@dataclass(frozen=True)
class ArrearsConfig:
    """Named thresholds used by the tokenizer and calculator."""

    # An issue date further than this behind the newest entry is discarded.
    issue_date_max_lag_days: int = 120
    # Post-issue rows inside this window may be backdated to an earlier period.
    backdating_window_days: int = 60
    # Narrower window for rows backdated into the target month itself.
    backdating_month_window_days: int = 45
    # Deposit rows needed before the settlement heuristic can fire.
    deposit_settlement_min_rows: int = 2
    # Months step 3 may walk back looking for rows.
    max_month_steps: int = 24
    # Days 1..N of a month still bill against the previous month.
    billing_cycle_cutoff_day: int = 5
    # Size of the rejected-line diagnostic sample.
    rejected_sample_limit: int = 20
    # A single charge above this is a control number glued to an amount.
    max_charge_amount: int = 100_000
    # Rows stating a balance above this are rejected as misread.
    max_balance_amount: int = 1_000_000


DEFAULT_CONFIG = ArrearsConfig()


def _coerce(name: str, value: Any) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(invalid_config_value(name, value))
    if number < 0:
        raise ValidationError(invalid_config_value(name, value))
    return number


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ArrearsConfig:
    """Build a config from overrides and the environment.

    Args:
        overrides: Field name to value; None values are ignored
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ArrearsConfig instance

    Raises:
        ValidationError: If a value is not a non-negative integer or a
            field name is unknown
    """
    environ = os.environ if environ is None else environ
    overrides = dict(overrides or {})

    known = {f.name for f in fields(ArrearsConfig)}
    unknown = set(overrides) - known
    if unknown:
        raise ValidationError(f"Unknown config field(s): {', '.join(sorted(unknown))}")

    values = {}
    for name in known:
        explicit = overrides.get(name)
        if explicit is not None:
            values[name] = _coerce(name, explicit)
            continue
        env_name = f"{ENV_PREFIX}{name.upper()}"
        if environ.get(env_name):
            values[name] = _coerce(env_name, environ[env_name])

    return replace(DEFAULT_CONFIG, **values)
