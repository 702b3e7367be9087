"""API route handlers."""
from . import accounts, holdings, imports, lots, transactions

__all__ = ["accounts", "holdings", "imports", "lots", "transactions"]
