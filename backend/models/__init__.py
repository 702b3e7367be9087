"""SQLAlchemy ORM models."""

from .account import Account
from .holding import Holding
from .holding_lot import HoldingLot
from .import_run import ImportRun
from .lot_disposal import LotDisposal
from .sale_record import SaleRecord
from .utils import generate_uuid

__all__ = ["Account", "Holding", "HoldingLot", "ImportRun", "LotDisposal", "SaleRecord", "generate_uuid"]
