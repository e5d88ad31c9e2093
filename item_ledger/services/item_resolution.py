"""Resolve raw line-item names to canonical registry entries.

``resolve_or_create`` is the single entry point through which ingestion
and reconciliation obtain a canonical item id.  Two callers resolving
the same new name at the same time both succeed and receive the same
id: the insert runs inside a SAVEPOINT and a uniqueness violation rolls
back only that savepoint before the winner's row is read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.core.config import settings
from item_ledger.core.errors import ValidationError
from item_ledger.models.tables import normalize_item_name
from item_ledger.services.item_names import ItemNameRepository, item_name_repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedItem:
    item_name_id: int
    category_id: Optional[str]


class ItemResolutionService:
    def __init__(self, repository: Optional[ItemNameRepository] = None, max_length: Optional[int] = None) -> None:
        self.repository = repository or item_name_repository
        self.max_length = max_length or settings.ITEM_NAME_MAX_LENGTH

    def validate_name(self, name: Optional[str]) -> str:
        """Return the trimmed name or raise :class:`ValidationError`."""
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValidationError("Item name must not be empty")
        if len(trimmed) > self.max_length:
            raise ValidationError(
                f"Item name exceeds {self.max_length} characters",
                details={"length": len(trimmed)},
            )
        return trimmed

    async def resolve_or_create(self, db: AsyncSession, name: str, user_scope: Optional[str] = None) -> ResolvedItem:
        """Return the canonical item for ``name``, creating it when absent.

        ``user_scope`` is accepted for symmetry with the other services; the
        registry itself is global.  The caller owns the surrounding
        transaction, nothing is committed here.
        """
        trimmed = self.validate_name(name)
        existing = await self.repository.get_by_name(db, trimmed)
        if existing is not None:
            return ResolvedItem(existing.id, existing.category_id)

        try:
            async with db.begin_nested():
                created = self.repository.add(db, trimmed)
                await db.flush()
            logger.debug("Created canonical item %d for %r", created.id, trimmed)
            return ResolvedItem(created.id, created.category_id)
        except IntegrityError:
            # Another writer inserted the same key between our lookup and insert
            logger.info("Item name race on %r; reusing the committed row", normalize_item_name(trimmed))
            winner = await self.repository.get_by_name(db, trimmed)
            if winner is None:
                raise
            return ResolvedItem(winner.id, winner.category_id)

    async def resolve_many(self, db: AsyncSession, names: Iterable[str], user_scope: Optional[str] = None) -> List[ResolvedItem]:
        """Resolve ``names`` in order; repeated names are looked up once."""
        cache: Dict[str, ResolvedItem] = {}
        resolved: List[ResolvedItem] = []
        for name in names:
            key = normalize_item_name(self.validate_name(name))
            hit = cache.get(key)
            if hit is None:
                hit = await self.resolve_or_create(db, name, user_scope)
                cache[key] = hit
            resolved.append(hit)
        return resolved
