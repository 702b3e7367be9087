"""HoldingLot model - persistent ledger record for each buy event."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class HoldingLot(Base):
    """A cost-basis lot created by a buy of an asset in an account.

    ``remaining_quantity`` starts at ``original_quantity`` and only ever
    decreases as sells consume it. A manual edit rewrites the lot but keeps
    the already-disposed amount intact.
    """

    __tablename__ = "holding_lots"
    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="ck_holding_lot_unit_price_non_negative"),
        CheckConstraint("fees >= 0", name="ck_holding_lot_fees_non_negative"),
        CheckConstraint("original_quantity > 0", name="ck_holding_lot_original_quantity_positive"),
        CheckConstraint("remaining_quantity >= 0", name="ck_holding_lot_remaining_quantity_non_negative"),
        CheckConstraint(
            "remaining_quantity <= original_quantity",
            name="ck_holding_lot_remaining_not_above_original",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    # Nullable: unscoped lots are a degraded state left over from before
    # accounts existed; they only match sells that are unscoped as well.
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True, index=True)
    ticker = Column(String, nullable=False, index=True)
    purchase_date = Column(Date, nullable=False)
    original_quantity = Column(Numeric(18, 8), nullable=False)
    remaining_quantity = Column(Numeric(18, 8), nullable=False)
    unit_price = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    fees = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    source = Column(String, nullable=False)  # "manual" / "form" / "import"
    venue = Column(String, nullable=True)  # exchange or wallet
    notes = Column(Text, nullable=True)
    external_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="holding_lots")
    disposals = relationship("LotDisposal", back_populates="holding_lot", cascade="all, delete-orphan")

    @property
    def cost_basis(self) -> Decimal:
        """Full acquisition cost: quantity * unit price + fees."""
        return (
            Decimal(self.original_quantity) * Decimal(self.unit_price)
            + Decimal(self.fees or 0)
        )

    @property
    def remaining_cost_basis(self) -> Decimal:
        """Cost basis attributable to the units still held."""
        if not self.original_quantity:
            return Decimal("0")
        return (
            Decimal(self.remaining_quantity) / Decimal(self.original_quantity)
        ) * self.cost_basis

    @property
    def is_closed(self) -> bool:
        return self.remaining_quantity == 0
