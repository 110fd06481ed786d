"""arrears - rent arrears from tenant ledger statements."""

__version__ = "0.1.0"


def __getattr__(name):
    # Deferred so importing the domain layer does not pull in click.
    if name == "main":
        from arrears.cli.main import main
        return main
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
