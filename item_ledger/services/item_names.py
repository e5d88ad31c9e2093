"""Persistence helpers for the canonical item registry.

The registry holds exactly one ``ItemName`` row per case-insensitive
name.  Lookups always go through ``name_key`` so that ``"Milk"`` and
``"milk"`` resolve to the same row.  Category changes are applied with
set-based UPDATE statements; line items never store a category so the
single statement is what makes a change visible everywhere.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.core.errors import NotFoundError
from item_ledger.models.tables import ItemName, Receipt, ReceiptItem, normalize_item_name, utcnow

logger = logging.getLogger(__name__)


class ItemNameRepository:
    """Queries and set-based updates over ``item_names``."""

    async def get_by_id(self, db: AsyncSession, item_name_id: int) -> Optional[ItemName]:
        return await db.get(ItemName, item_name_id)

    async def get_by_name(self, db: AsyncSession, name: str) -> Optional[ItemName]:
        stmt = select(ItemName).where(ItemName.name_key == normalize_item_name(name))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self, db: AsyncSession) -> List[ItemName]:
        result = await db.execute(select(ItemName).order_by(ItemName.name_key))
        return list(result.scalars().all())

    async def list_uncategorized(self, db: AsyncSession) -> List[ItemName]:
        stmt = select(ItemName).where(ItemName.category_id.is_(None)).order_by(ItemName.id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_uncategorized_for_owner(self, db: AsyncSession, owner_id: str) -> List[ItemName]:
        """Uncategorized canonical items referenced by at least one of the owner's line items."""
        referenced = (
            select(ReceiptItem.item_name_id)
            .join(Receipt, Receipt.id == ReceiptItem.receipt_id)
            .where(Receipt.owner_id == owner_id, ReceiptItem.item_name_id.is_not(None))
        )
        stmt = (
            select(ItemName)
            .where(ItemName.category_id.is_(None), ItemName.id.in_(referenced))
            .order_by(ItemName.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    def add(self, db: AsyncSession, name: str) -> ItemName:
        display = name.strip()
        item = ItemName(name=display, name_key=normalize_item_name(display))
        db.add(item)
        return item

    async def set_category(self, db: AsyncSession, item_name_ids: Iterable[int], category_id: Optional[str]) -> int:
        """Point every listed canonical item at ``category_id``; returns affected rows."""
        ids: Sequence[int] = list(item_name_ids)
        if not ids:
            return 0
        stmt = (
            update(ItemName)
            .where(ItemName.id.in_(ids))
            .values(category_id=category_id, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount or 0

    async def set_category_for_owner_names(
        self,
        db: AsyncSession,
        owner_id: str,
        name: str,
        category_id: str,
    ) -> int:
        """Categorize the uncategorized item ``name`` if the owner's line items reference it.

        Items that gained a category in the meantime keep it.
        """
        referenced = (
            select(ReceiptItem.item_name_id)
            .join(Receipt, Receipt.id == ReceiptItem.receipt_id)
            .where(Receipt.owner_id == owner_id, ReceiptItem.item_name_id.is_not(None))
        )
        stmt = (
            update(ItemName)
            .where(ItemName.name_key == normalize_item_name(name), ItemName.category_id.is_(None), ItemName.id.in_(referenced))
            .values(category_id=category_id, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount or 0

    async def clear_category(self, db: AsyncSession, category_id: str) -> int:
        """Detach every canonical item from ``category_id`` (used before a category delete)."""
        stmt = (
            update(ItemName)
            .where(ItemName.category_id == category_id)
            .values(category_id=None, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount or 0

    async def delete(self, db: AsyncSession, item_name_id: int) -> None:
        """Remove a canonical item; its line items keep their snapshot and become unlinked."""
        try:
            if await self.get_by_id(db, item_name_id) is None:
                raise NotFoundError(f"Item name {item_name_id} not found")
            # The FK is nulled explicitly so the outcome does not depend on the
            # dialect enforcing ON DELETE SET NULL.
            unlinked = await db.execute(
                update(ReceiptItem)
                .where(ReceiptItem.item_name_id == item_name_id)
                .values(item_name_id=None)
                .execution_options(synchronize_session="fetch")
            )
            await db.execute(delete(ItemName).where(ItemName.id == item_name_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Deleted canonical item %d (%d line items unlinked)", item_name_id, unlinked.rowcount or 0)


item_name_repository = ItemNameRepository()
