"""CSV import API endpoints.

The pipeline is stateless over HTTP: each request carries the CSV text and
walks the state machine as far as it needs to.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_or_404, import_error_to_http
from database import get_db
from models import Account
from schemas import (
    ImportCommitRequest,
    ImportPreviewRequest,
    ImportPreviewResponse,
    ImportResultResponse,
)
from services.csv_import_service import CsvImportPipeline, suggest_mapping
from services.exceptions import LedgerImportError, PersistenceError
from services.lot_ledger_service import LotLedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["imports"])


@router.post("/{account_id}/imports/preview", response_model=ImportPreviewResponse)
def preview_import(
    account_id: str,
    request: ImportPreviewRequest,
    db: Session = Depends(get_db),
):
    """Parse an upload, map its columns and preview the first rows.

    Rows are not previewed while a required field is still unmapped; the
    response lists the missing fields instead.
    """
    get_or_404(db, Account, account_id, "Account not found")
    try:
        pipeline = CsvImportPipeline(account_id, request.csv_text, request.filename)
        mapping = request.mapping if request.mapping is not None else suggest_mapping(pipeline.headers)
        pipeline.map_columns(mapping)
        rows = []
        if not pipeline.missing_required_fields:
            rows = [asdict(row) for row in pipeline.preview(request.limit)]
    except LedgerImportError as e:
        raise import_error_to_http(e)

    return {
        "headers": pipeline.headers,
        "mapping": pipeline.mapping,
        "missing_fields": pipeline.missing_required_fields,
        "rows_total": len(pipeline.parsed.rows),
        "rows": rows,
    }


@router.post("/{account_id}/imports/commit", response_model=ImportResultResponse)
def commit_import(
    account_id: str,
    request: ImportCommitRequest,
    db: Session = Depends(get_db),
):
    """Import every row: validate, replay against existing lots, persist, reconcile."""
    with LotLedgerService.pool_lock(account_id):
        get_or_404(db, Account, account_id, "Account not found")
        try:
            pipeline = CsvImportPipeline(account_id, request.csv_text, request.filename)
            pipeline.map_columns(request.mapping)
            pipeline.preview()
            result = pipeline.commit(db, request.lot_method)
            db.commit()
        except PersistenceError as e:
            db.rollback()
            logger.error("Import into account %s failed: %s", account_id, e)
            raise import_error_to_http(e)
        except LedgerImportError as e:
            raise import_error_to_http(e)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    response = asdict(result)
    response["status"] = result.status
    return response
