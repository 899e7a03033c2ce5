"""Kernel ORM models."""

from transformation_kernel.models.item import ItemModel
from transformation_kernel.models.lineage import LineageEdgeModel
from transformation_kernel.models.stock import (
    StockBalanceModel,
    StockTransactionItemModel,
    StockTransactionModel,
)

__all__ = [
    "ItemModel",
    "LineageEdgeModel",
    "StockBalanceModel",
    "StockTransactionItemModel",
    "StockTransactionModel",
]
