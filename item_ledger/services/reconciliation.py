"""Reconcile a user's edited item list against a persisted receipt.

The proposed list is authoritative: persisted items missing from it are
deleted, entries carrying an id update that item in place, and entries
without an id are inserted.  Every new or renamed entry goes through
item resolution so it stays linked to the canonical registry.

All changes of one attempt are flushed in a single transaction that
also bumps ``receipts.version_id``.  A concurrent writer that committed
in between makes the flush raise ``StaleDataError``; the attempt is
rolled back and the whole reconciliation re-run against fresh state,
with jittered exponential backoff between attempts.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from item_ledger.core.config import settings
from item_ledger.core.errors import BadInputError, ConflictError
from item_ledger.core.observability import sentry_metric_inc
from item_ledger.models.enums import ItemsPatchMode
from item_ledger.models.schemas import ItemsPatch, ProposedItem, ReconcileResult
from item_ledger.models.tables import Receipt, ReceiptItem, normalize_item_name, utcnow
from item_ledger.services.item_resolution import ItemResolutionService
from item_ledger.services.receipts import ReceiptRepository, line_total, receipt_repository

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(
        self,
        resolver: Optional[ItemResolutionService] = None,
        receipts: Optional[ReceiptRepository] = None,
        max_attempts: Optional[int] = None,
        backoff_base_ms: Optional[int] = None,
    ) -> None:
        self.resolver = resolver or ItemResolutionService()
        self.receipts = receipts or receipt_repository
        self.max_attempts = max(1, max_attempts or settings.RECONCILE_MAX_ATTEMPTS)
        self.backoff_base_ms = settings.RECONCILE_BACKOFF_BASE_MS if backoff_base_ms is None else backoff_base_ms

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based)."""
        base = self.backoff_base_ms / 1000.0
        return base * (2 ** (attempt - 1)) + random.uniform(0, base)

    async def reconcile_items(
        self,
        db: AsyncSession,
        receipt_id: int,
        patch: ItemsPatch,
        user_scope: str,
    ) -> ReconcileResult:
        if patch.mode == ItemsPatchMode.KEEP:
            receipt = await self.receipts.get_or_404(db, user_scope, receipt_id)
            return ReconcileResult(receipt_id=receipt_id, version_id=receipt.version_id)

        proposed: List[ProposedItem] = list(patch.items or [])
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await self._apply(db, receipt_id, proposed, user_scope)
            except StaleDataError:
                await db.rollback()
                logger.info("Receipt %s changed concurrently (attempt %d/%d)", receipt_id, attempt, self.max_attempts)
                if attempt == self.max_attempts:
                    sentry_metric_inc("reconciliation.conflict")
                    raise ConflictError(
                        f"Receipt {receipt_id} was modified concurrently; retry later",
                        details={"attempts": attempt},
                    )
                await asyncio.sleep(self.backoff_delay(attempt))
                continue
            result.attempts = attempt
            logger.info(
                "Reconciled receipt %s: inserted=%d updated=%d deleted=%d",
                receipt_id,
                result.inserted,
                result.updated,
                result.deleted,
            )
            return result
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _check_ids(proposed: Sequence[ProposedItem], existing: Dict[int, ReceiptItem], receipt_id: int) -> Set[int]:
        seen: Set[int] = set()
        for entry in proposed:
            if entry.id is None:
                continue
            if entry.id not in existing:
                raise BadInputError(
                    f"Item {entry.id} does not belong to receipt {receipt_id}",
                    details={"item_id": entry.id},
                )
            if entry.id in seen:
                raise BadInputError(f"Item {entry.id} appears more than once", details={"item_id": entry.id})
            seen.add(entry.id)
        return seen

    async def _apply(
        self,
        db: AsyncSession,
        receipt_id: int,
        proposed: Sequence[ProposedItem],
        user_scope: str,
    ) -> ReconcileResult:
        try:
            receipt = await self.receipts.get_or_404(db, user_scope, receipt_id, populate_existing=True)
            existing = {item.id: item for item in receipt.items}
            kept_ids = self._check_ids(proposed, existing, receipt_id)
            for entry in proposed:
                self.resolver.validate_name(entry.name)

            result = ReconcileResult(receipt_id=receipt_id)
            result.deleted = len(set(existing) - kept_ids)
            cache: Dict[str, int] = {}

            async def link(name: str) -> int:
                key = normalize_item_name(name)
                if key not in cache:
                    cache[key] = (await self.resolver.resolve_or_create(db, name, user_scope)).item_name_id
                return cache[key]

            items: List[ReceiptItem] = []
            for position, entry in enumerate(proposed):
                if entry.id is not None:
                    item = existing[entry.id]
                    if item.item_name_id is None or normalize_item_name(item.name) != normalize_item_name(entry.name):
                        item.item_name_id = await link(entry.name)
                    result.updated += 1
                else:
                    item = ReceiptItem(item_name_id=await link(entry.name))
                    result.inserted += 1
                item.position = position
                item.name = entry.name.strip()
                item.description = entry.description
                item.quantity = entry.quantity
                item.quantity_unit = entry.quantity_unit
                item.unit_price = entry.unit_price
                item.total_price = line_total(entry)
                item.sku = entry.sku
                items.append(item)
        except Exception:
            await db.rollback()
            raise

        # Up to here a cancellation simply abandons the open transaction.
        # From the flush on, the write runs to completion and the caller
        # waits for it so the session is never closed under a running commit.
        write = asyncio.ensure_future(self._write(db, receipt, items, result))
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            await asyncio.wait([write])
            if not write.cancelled() and write.exception() is not None:
                await db.rollback()
            raise

    async def _write(
        self,
        db: AsyncSession,
        receipt: Receipt,
        items: List[ReceiptItem],
        result: ReconcileResult,
    ) -> ReconcileResult:
        try:
            # Items left out of the list are orphans and get deleted
            receipt.items = items
            # Touch the header so the version check covers item-only edits
            receipt.updated_at = utcnow()
            await db.flush()
            result.version_id = receipt.version_id
            await db.commit()
            return result
        except StaleDataError:
            raise
        except Exception:
            await db.rollback()
            raise
