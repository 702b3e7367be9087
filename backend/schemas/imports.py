"""Pydantic schemas for CSV import preview and commit."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config import LOT_METHODS


class ImportPreviewRequest(BaseModel):
    """Raw CSV text plus an optional field -> column mapping.

    When ``mapping`` is omitted the columns are guessed from the header.
    """

    csv_text: str
    mapping: dict[str, str | None] | None = None
    filename: str | None = None
    limit: int | None = Field(default=None, gt=0)


class ImportCommitRequest(BaseModel):
    csv_text: str
    mapping: dict[str, str | None]
    lot_method: str | None = None
    filename: str | None = None

    @field_validator("lot_method")
    @classmethod
    def validate_lot_method(cls, v: str | None) -> str | None:
        if v is None:
            return v
        upper = v.upper()
        if upper not in LOT_METHODS:
            raise ValueError(f"lot_method must be one of {', '.join(LOT_METHODS)}")
        return upper


class PreviewRowResponse(BaseModel):
    row_number: int
    type: str | None = None
    ticker: str | None = None
    quantity: Decimal | None = None
    price: Decimal | None = None
    date: str | None = None
    fee: Decimal | None = None
    venue: str | None = None
    notes: str | None = None
    external_id: str | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ImportPreviewResponse(BaseModel):
    headers: list[str]
    mapping: dict[str, str]
    missing_fields: list[str]
    rows_total: int
    rows: list[PreviewRowResponse]


class RowErrorResponse(BaseModel):
    row_number: int
    reason: str
    kind: str

    model_config = ConfigDict(from_attributes=True)


class ImportResultResponse(BaseModel):
    """Outcome of an import commit."""

    import_run_id: str | None = None
    account_id: str
    lot_method: str
    status: str
    rows_total: int
    committed_count: int
    invalid_rows_dropped: int
    duplicates_skipped: int
    persistence_failures: int
    buys: int
    sells: int
    total_gains: Decimal
    total_losses: Decimal
    short_term: int
    long_term: int
    flagged_sales: int
    row_errors: list[RowErrorResponse] = []
    warnings: list[str] = []

    model_config = ConfigDict(from_attributes=True)
