"""Pydantic schemas for interactive buy/sell entry and recorded sales."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import LOT_METHODS
from schemas.account import HoldingResponse
from schemas.lot import HoldingLotResponse, LotDisposalResponse
from utils.ticker import normalize_ticker


class TradeBase(BaseModel):
    ticker: str = Field(min_length=1)
    trade_date: date
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    fees: Decimal = Field(default=Decimal("0"), ge=0)
    venue: str | None = None
    notes: str | None = None

    @field_validator("ticker")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_ticker(v)


class BuyRequest(TradeBase):
    """Schema for recording a buy; mints one lot."""

    pass


class SellRequest(TradeBase):
    """Schema for recording a sell.

    ``lot_method`` defaults to the configured DEFAULT_LOT_METHOD.
    """

    lot_method: str | None = None

    @field_validator("lot_method")
    @classmethod
    def validate_lot_method(cls, v: str | None) -> str | None:
        if v is None:
            return v
        upper = v.upper()
        if upper not in LOT_METHODS:
            raise ValueError(f"lot_method must be one of {', '.join(LOT_METHODS)}")
        return upper


class SaleRecordResponse(BaseModel):
    """Schema for SaleRecord API response."""

    id: str
    account_id: str | None
    ticker: str
    sale_date: date
    quantity: Decimal
    unit_price: Decimal
    fees: Decimal
    cost_basis: Decimal
    realized_gain_loss: Decimal
    holding_period: str
    lot_method: str
    unmatched_quantity: Decimal
    needs_review: bool
    source: str
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    created_at: datetime
    disposals: list[LotDisposalResponse] = []

    model_config = ConfigDict(from_attributes=True)


class BuyResponse(BaseModel):
    lot: HoldingLotResponse
    holding: HoldingResponse | None = None


class SellResponse(BaseModel):
    sale: SaleRecordResponse
    holding: HoldingResponse | None = None
