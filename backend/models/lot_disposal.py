"""LotDisposal model - records a quantity drawn from a lot by a sale."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class LotDisposal(Base):
    """One (lot, quantity_consumed) pair of a sale.

    A single sell creates one disposal per lot it drew from (e.g. FIFO
    across two lots, or every candidate lot under average cost).
    """

    __tablename__ = "lot_disposals"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_lot_disposal_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    sale_id = Column(String(36), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    holding_lot_id = Column(
        String(36), ForeignKey("holding_lots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Numeric(18, 8), nullable=False)
    cost_basis = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    sale = relationship("SaleRecord", back_populates="disposals")
    holding_lot = relationship("HoldingLot", back_populates="disposals")
