"""Shared API helpers for route handlers."""

from typing import TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from database import Base
from models import HoldingLot
from services.exceptions import LedgerImportError
from services.lot_ledger_service import LotLedgerService

T = TypeVar("T", bound=Base)


def get_or_404(db: Session, model: type[T], entity_id: str, detail: str = "Not found") -> T:
    """Fetch a single entity by primary key or raise 404.

    Args:
        db: Database session.
        model: SQLAlchemy model class.
        entity_id: Primary key value.
        detail: Error message for the 404 response.

    Returns:
        The entity instance.

    Raises:
        HTTPException: 404 if the entity doesn't exist.
    """
    entity = db.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise HTTPException(status_code=404, detail=detail)
    return entity


def get_account_lot_or_404(db: Session, account_id: str, lot_id: str) -> HoldingLot:
    """Fetch a lot, treating a lot from another account as missing."""
    lot = LotLedgerService.get_lot(db, lot_id)
    if not lot or lot.account_id != account_id:
        raise HTTPException(status_code=404, detail="Lot not found")
    return lot


def import_error_to_http(error: LedgerImportError) -> HTTPException:
    """Translate an import pipeline error to its HTTP status."""
    return HTTPException(status_code=error.status_code, detail=str(error))
