"""Pydantic schemas for lot-based cost basis tracking."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.ticker import normalize_ticker


class HoldingLotCreate(BaseModel):
    """Schema for creating a manual holding lot."""

    ticker: str = Field(min_length=1)
    purchase_date: date
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    venue: str | None = None
    notes: str | None = None

    @field_validator("ticker")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_ticker(v)


class HoldingLotUpdate(BaseModel):
    """Schema for updating a holding lot.

    ``quantity`` is the new original quantity; the already-disposed amount
    is preserved.
    """

    purchase_date: date | None = None
    quantity: Decimal | None = Field(default=None, gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    fees: Decimal | None = Field(default=None, ge=0)
    venue: str | None = None
    notes: str | None = None


class LotDisposalResponse(BaseModel):
    """Schema for LotDisposal API response."""

    id: str
    sale_id: str
    holding_lot_id: str
    quantity: Decimal
    cost_basis: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HoldingLotResponse(BaseModel):
    """Schema for HoldingLot API response."""

    id: str
    account_id: str | None
    ticker: str
    purchase_date: date
    original_quantity: Decimal
    remaining_quantity: Decimal
    unit_price: Decimal
    fees: Decimal
    cost_basis: Decimal
    remaining_cost_basis: Decimal
    is_closed: bool
    source: str
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    created_at: datetime
    updated_at: datetime
    disposals: list[LotDisposalResponse] = []

    model_config = ConfigDict(from_attributes=True)


class LotSummaryResponse(BaseModel):
    """Aggregated lot summary for a ticker within an account."""

    ticker: str
    account_id: str | None
    holding_quantity: Decimal | None = None
    lotted_quantity: Decimal
    unallocated_quantity: Decimal | None = None
    open_lot_count: int
    remaining_cost_basis: Decimal
    realized_gain_loss: Decimal
