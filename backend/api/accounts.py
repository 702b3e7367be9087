"""Accounts API endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.helpers import get_or_404
from database import get_db
from models import Account
from schemas import AccountCreate, AccountResponse
from services.account_service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.get("", response_model=list[AccountResponse])
def list_accounts(db: Session = Depends(get_db)):
    """List all accounts."""
    return AccountService.list_accounts(db)


@router.post("", response_model=AccountResponse, status_code=201)
def create_account(account_data: AccountCreate, db: Session = Depends(get_db)):
    """Create an account to hold lots."""
    account = AccountService.create_account(
        db,
        name=account_data.name,
        institution_name=account_data.institution_name,
        account_type=account_data.account_type.value,
    )
    db.commit()
    db.refresh(account)
    return account


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: str, db: Session = Depends(get_db)):
    """Get a specific account."""
    return get_or_404(db, Account, account_id, "Account not found")
