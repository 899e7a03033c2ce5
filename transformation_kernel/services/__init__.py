"""Services for the transformation kernel (write side)."""

from transformation_kernel.services.item_catalog import ItemCatalog
from transformation_kernel.services.lineage_tracker import LineageTracker
from transformation_kernel.services.sequence_service import SequenceService
from transformation_kernel.services.stock_ledger import StockLedger
from transformation_kernel.services.transaction_recorder import StockTransactionRecorder

__all__ = [
    "ItemCatalog",
    "LineageTracker",
    "SequenceService",
    "StockLedger",
    "StockTransactionRecorder",
]
