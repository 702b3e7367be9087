"""SaleRecord model - a sell transaction priced against its lots."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class SaleRecord(Base):
    """A sell of an asset from an account.

    ``cost_basis`` and ``realized_gain_loss`` are fixed when the sale is
    matched. When the lot pool could not cover the sale, the shortfall is
    kept in ``unmatched_quantity`` (a zero-cost-basis disposal) and the sale
    is flagged with ``needs_review``.
    """

    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_quantity_positive"),
        CheckConstraint("unmatched_quantity >= 0", name="ck_sale_unmatched_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True, index=True)
    ticker = Column(String, nullable=False, index=True)
    sale_date = Column(Date, nullable=False)
    quantity = Column(Numeric(18, 8), nullable=False)
    unit_price = Column(Numeric(18, 6), nullable=False)
    fees = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    cost_basis = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    realized_gain_loss = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    holding_period = Column(String, nullable=False)  # "short_term" / "long_term"
    lot_method = Column(String, nullable=False)  # "FIFO" / "LIFO" / "HIFO" / "AVG"
    unmatched_quantity = Column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    needs_review = Column(Boolean, nullable=False, default=False)
    source = Column(String, nullable=False)  # "form" / "import"
    venue = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    external_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    account = relationship("Account", back_populates="sales")
    disposals = relationship("LotDisposal", back_populates="sale", cascade="all, delete-orphan")
