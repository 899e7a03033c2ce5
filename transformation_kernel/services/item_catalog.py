"""
Item catalog read access.

The transformation engine consumes the catalog as a collaborator: unit cost at
consumption time, item code/name for shortfall reports, and unit of measure.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from transformation_kernel.domain.dtos import ItemSnapshot
from transformation_kernel.exceptions import ItemNotFoundError
from transformation_kernel.models.item import ItemModel
from transformation_kernel.services.base import BaseService


class ItemCatalog(BaseService[ItemModel]):
    """Returns ItemSnapshot DTOs, never ORM entities."""

    def get_item(self, item_id: UUID) -> ItemSnapshot:
        """
        Get an item by id.

        Raises:
            ItemNotFoundError: If the item doesn't exist.
        """
        item = self.session.get(ItemModel, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item.to_dto()

    def find_item(self, item_id: UUID) -> ItemSnapshot | None:
        item = self.session.get(ItemModel, item_id)
        return item.to_dto() if item else None

    def get_items(self, item_ids: Iterable[UUID]) -> dict[UUID, ItemSnapshot]:
        """Batch lookup; ids with no catalog row are simply absent."""
        ids = list(set(item_ids))
        if not ids:
            return {}
        rows = self.session.execute(
            select(ItemModel).where(ItemModel.id.in_(ids))
        ).scalars().all()
        return {row.id: row.to_dto() for row in rows}
