"""ImportRun model - audit record of a committed CSV import."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from database import Base
from models.utils import generate_uuid


class ImportRun(Base):
    """Outcome counters of one CSV import commit."""

    __tablename__ = "import_runs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    filename = Column(String, nullable=True)
    lot_method = Column(String, nullable=False)
    status = Column(String, nullable=False)  # "completed" / "partial" / "cancelled"
    rows_total = Column(Integer, nullable=False, default=0)
    committed_count = Column(Integer, nullable=False, default=0)
    invalid_rows_dropped = Column(Integer, nullable=False, default=0)
    duplicates_skipped = Column(Integer, nullable=False, default=0)
    persistence_failures = Column(Integer, nullable=False, default=0)
    flagged_sales = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
