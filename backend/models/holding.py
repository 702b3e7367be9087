"""Holding model - cached position summary per (ticker, account)."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Holding(Base):
    """Materialized view of the lots backing a (ticker, account) pair.

    Only the holding reconciliation service writes ``quantity`` and
    ``cost_basis_total``. Any other change to these columns shows up as
    drift until the next explicit reconcile.
    """

    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint("account_id", "ticker", name="uix_holding_account_ticker"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True, index=True)
    ticker = Column(String, nullable=False)
    quantity = Column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    cost_basis_total = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    last_reconciled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="holdings")
