"""Utility functions for handling ticker symbols."""


def normalize_ticker(ticker: str) -> str:
    """Canonical form of a ticker: stripped and upper-cased.

    Lot pools and holdings are keyed on the normalized ticker, so every
    entry point (form, manual lot, CSV import) must pass through here.
    """
    return ticker.strip().upper()


def pool_key(ticker: str, account_id: str | None) -> tuple[str, str | None]:
    """Key identifying a lot pool: (normalized ticker, account id)."""
    return normalize_ticker(ticker), account_id
