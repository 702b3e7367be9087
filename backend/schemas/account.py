"""Pydantic schemas for accounts and holdings."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional
from decimal import Decimal


class AccountType(str, Enum):
    """Valid account types."""

    taxable = "taxable"
    traditional_ira = "traditional_ira"
    roth_ira = "roth_ira"
    four_01k = "401k"
    hsa = "hsa"
    exchange = "exchange"
    wallet = "wallet"
    other = "other"


class AccountBase(BaseModel):
    """Base schema for Account."""

    name: str = Field(min_length=1)
    institution_name: str | None = None
    account_type: AccountType = AccountType.taxable


class AccountCreate(AccountBase):
    """Schema for creating an Account."""

    pass


class AccountResponse(AccountBase):
    """Schema for Account API response."""

    id: str
    account_type: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HoldingResponse(BaseModel):
    """Cached holding of a ticker in an account."""

    id: str
    account_id: Optional[str] = None
    ticker: str
    quantity: Decimal
    cost_basis_total: Decimal
    last_reconciled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HoldingDriftResponse(BaseModel):
    """Cached holding values next to the values derived from its lots."""

    ticker: str
    account_id: Optional[str] = None
    holding_id: Optional[str] = None
    stored_quantity: Decimal
    lot_quantity: Decimal
    drift: Decimal
    stored_cost_basis: Decimal
    lot_cost_basis: Decimal
    cost_basis_drift: Decimal
    has_drift: bool

    model_config = ConfigDict(from_attributes=True)


class HoldingReassignRequest(BaseModel):
    """Move a holding (with its lots and sales) to another account."""

    account_id: str
