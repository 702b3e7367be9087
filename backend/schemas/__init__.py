"""Pydantic schemas for API request/response validation."""

from schemas.account import (
    AccountCreate,
    AccountResponse,
    AccountType,
    HoldingDriftResponse,
    HoldingReassignRequest,
    HoldingResponse,
)
from schemas.imports import (
    ImportCommitRequest,
    ImportPreviewRequest,
    ImportPreviewResponse,
    ImportResultResponse,
)
from schemas.lot import (
    HoldingLotCreate,
    HoldingLotResponse,
    HoldingLotUpdate,
    LotDisposalResponse,
    LotSummaryResponse,
)
from schemas.transaction import (
    BuyRequest,
    BuyResponse,
    SaleRecordResponse,
    SellRequest,
    SellResponse,
)

__all__ = [
    "AccountCreate",
    "AccountResponse",
    "AccountType",
    "BuyRequest",
    "BuyResponse",
    "HoldingDriftResponse",
    "HoldingLotCreate",
    "HoldingLotResponse",
    "HoldingLotUpdate",
    "HoldingReassignRequest",
    "HoldingResponse",
    "ImportCommitRequest",
    "ImportPreviewRequest",
    "ImportPreviewResponse",
    "ImportResultResponse",
    "LotDisposalResponse",
    "LotSummaryResponse",
    "SaleRecordResponse",
    "SellRequest",
    "SellResponse",
]
