"""Account model - scoping boundary for lot pools."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Account(Base):
    """A brokerage account, exchange or wallet holding assets.

    Lots for the same ticker in different accounts are never matched
    against each other, so every lot pool and holding is keyed by
    (ticker, account_id).
    """

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    institution_name = Column(String, nullable=True)  # e.g. "Vanguard", "Coinbase"
    account_type = Column(String, nullable=False, default="taxable")  # "taxable" / "traditional" / "roth"
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    holding_lots = relationship("HoldingLot", back_populates="account")
    sales = relationship("SaleRecord", back_populates="account")
    holdings = relationship("Holding", back_populates="account")
