"""User scoped category store."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.core.errors import ConflictError, NotFoundError
from item_ledger.models.schemas import CategoryCreate, CategoryUpdate
from item_ledger.models.tables import Category
from item_ledger.services.item_names import item_name_repository

logger = logging.getLogger(__name__)


class CategoryRepository:
    """CRUD over ``categories``; every query is restricted to one owner."""

    async def list_for_owner(self, db: AsyncSession, owner_id: str) -> List[Category]:
        stmt = select(Category).where(Category.owner_id == owner_id).order_by(Category.name)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, db: AsyncSession, owner_id: str, category_id: str) -> Optional[Category]:
        stmt = select(Category).where(Category.id == category_id, Category.owner_id == owner_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_404(self, db: AsyncSession, owner_id: str, category_id: str) -> Category:
        category = await self.get(db, owner_id, category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    async def get_by_name(self, db: AsyncSession, owner_id: str, name: str) -> Optional[Category]:
        stmt = select(Category).where(
            Category.owner_id == owner_id,
            func.lower(Category.name) == name.strip().lower(),
        )
        result = await db.execute(stmt)
        # Older rows may differ only in case; the first one wins
        return result.scalars().first()

    async def by_lower_name(self, db: AsyncSession, owner_id: str) -> Dict[str, Category]:
        """Map of casefolded name to category for one owner."""
        mapping: Dict[str, Category] = {}
        for category in await self.list_for_owner(db, owner_id):
            mapping.setdefault(category.name.casefold(), category)
        return mapping

    async def find_or_create_many(self, db: AsyncSession, owner_id: str, names: Iterable[str]) -> Dict[str, Category]:
        """Return categories keyed by casefolded name, creating the missing ones.

        New rows are added to the session but not committed.
        """
        existing = await self.by_lower_name(db, owner_id)
        result: Dict[str, Category] = {}
        for name in names:
            key = name.strip().casefold()
            if not key or key in result:
                continue
            category = existing.get(key)
            if category is None:
                category = Category(owner_id=owner_id, name=name.strip())
                db.add(category)
                existing[key] = category
                logger.info("Created category %r for owner %s", category.name, owner_id)
            result[key] = category
        await db.flush()
        return result

    async def create(self, db: AsyncSession, owner_id: str, payload: CategoryCreate) -> Category:
        if await self.get_by_name(db, owner_id, payload.name) is not None:
            raise ConflictError(f"Category '{payload.name}' already exists")
        category = Category(owner_id=owner_id, name=payload.name, icon=payload.icon)
        db.add(category)
        await db.commit()
        await db.refresh(category)
        return category

    async def update(self, db: AsyncSession, owner_id: str, category_id: str, payload: CategoryUpdate) -> Category:
        category = await self.get_or_404(db, owner_id, category_id)
        clash = await self.get_by_name(db, owner_id, payload.name)
        if clash is not None and clash.id != category.id:
            raise ConflictError(f"Category '{payload.name}' already exists")
        category.name = payload.name
        category.icon = payload.icon
        await db.commit()
        await db.refresh(category)
        return category

    async def delete(self, db: AsyncSession, owner_id: str, category_id: str) -> None:
        category = await self.get_or_404(db, owner_id, category_id)
        try:
            detached = await item_name_repository.clear_category(db, category.id)
            await db.delete(category)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Deleted category %s (detached %d canonical items)", category_id, detached)


category_repository = CategoryRepository()
