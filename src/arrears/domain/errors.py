"""Shared domain error messages and error types.

The parsing and calculation core never raises these; they are used where
user input enters the system (files, command line options).
"""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation at the input boundary."""


class NotFoundError(DomainError):
    """Requested ledger file does not exist."""


def ledger_file_not_found(path: str) -> str:
    """Return message for a missing ledger file."""
    return f"Ledger file '{path}' not found"


def unsupported_ledger_type(path: str, suffix: str) -> str:
    """Return message for a file type the importer cannot read."""
    return f"Cannot read '{path}': unsupported ledger type '{suffix or '(none)'}'"


def invalid_config_value(name: str, value: object) -> str:
    """Return message for a bad configuration override."""
    return f"Invalid value for {name}: {value!r} (expected a non-negative integer)"


def empty_ledger(path: str) -> str:
    """Return message when a ledger file contains no readable text."""
    return f"Ledger file '{path}' is empty"
