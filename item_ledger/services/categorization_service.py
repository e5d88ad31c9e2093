"""Categorization orchestrator.

Four ways of labelling the canonical registry converge here:

* ``categorize`` - one item, chosen by a user;
* ``categorize_bulk`` - many manual assignments, each committed on its own;
* ``run_categorization_job`` - the keyword rule table over uncategorized items;
* ``auto_categorize`` - one batch round trip to the classifier oracle.

Whatever the mode, the write is a set-based UPDATE of
``item_names.category_id``.  Line items carry no category of their own,
so that one statement re-labels every receipt that mentions the item,
including receipts ingested later.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.core.config import settings
from item_ledger.core.errors import LedgerError, NotFoundError, RequestTimeoutError
from item_ledger.core.observability import sentry_breadcrumb, sentry_metric_inc
from item_ledger.models.enums import CategorizationSource
from item_ledger.models.schemas import BulkCategorizeResult, CategorizationJobSummary
from item_ledger.models.tables import Category, ItemName
from item_ledger.services.categories import CategoryRepository, category_repository
from item_ledger.services.categorization_rules import RuleTable, load_rule_table
from item_ledger.services.item_names import ItemNameRepository, item_name_repository
from item_ledger.services.oracle import OllamaClient
from item_ledger.services.receipts import ReceiptRepository, receipt_repository
from item_ledger.utils.parsing import extract_categorizations
from item_ledger.utils.prompts import build_categorization_prompt

logger = logging.getLogger(__name__)


class CategorizationService:
    def __init__(
        self,
        rules: Optional[RuleTable] = None,
        oracle: Optional[OllamaClient] = None,
        *,
        items: Optional[ItemNameRepository] = None,
        categories: Optional[CategoryRepository] = None,
        receipts: Optional[ReceiptRepository] = None,
        oracle_timeout: Optional[float] = None,
    ) -> None:
        self.rules = rules if rules is not None else load_rule_table()
        self.oracle = oracle or OllamaClient()
        self.items = items or item_name_repository
        self.categories = categories or category_repository
        self.receipts = receipts or receipt_repository
        self.oracle_timeout = float(oracle_timeout if oracle_timeout is not None else settings.ORACLE_TIMEOUT_SECONDS)

    # ------------------------------------------------------------------
    # Manual and bulk

    async def categorize(self, db: AsyncSession, name: str, category_id: str, user_scope: str) -> ItemName:
        """Assign ``category_id`` to the canonical item called ``name``."""
        return await self._categorize(db, name, category_id, user_scope, CategorizationSource.MANUAL)

    async def _categorize(
        self,
        db: AsyncSession,
        name: str,
        category_id: str,
        user_scope: str,
        source: CategorizationSource,
    ) -> ItemName:
        try:
            item = await self.items.get_by_name(db, name)
            if item is None:
                raise NotFoundError(f"Item '{name}' not found")
            category = await self.categories.get(db, user_scope, category_id)
            if category is None:
                raise NotFoundError(f"Category {category_id} not found")
            await self.items.set_category(db, [item.id], category.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await db.refresh(item, attribute_names=["category_id", "category", "updated_at"])
        logger.info("Categorized item %d (%r) as %s via %s", item.id, item.name, category_id, source.value)
        sentry_metric_inc("categorization.assigned", tags={"source": source.value})
        return item

    async def categorize_bulk(self, db: AsyncSession, mapping: Mapping[str, str], user_scope: str) -> BulkCategorizeResult:
        """Apply ``{item name: category id}`` entries independently.

        A failing entry is reported in ``failed`` and does not undo or stop
        the others.
        """
        result = BulkCategorizeResult()
        for name, category_id in mapping.items():
            try:
                await self._categorize(db, name, category_id, user_scope, CategorizationSource.BULK)
            except LedgerError as exc:
                result.failed[name] = exc.message
                continue
            result.updated.append(name)
        if result.failed:
            logger.info("Bulk categorization: %d updated, %d failed", len(result.updated), len(result.failed))
        return result

    # ------------------------------------------------------------------
    # Rule job

    async def run_categorization_job(self, db: AsyncSession, user_scope: str) -> CategorizationJobSummary:
        """Label uncategorized items of ``user_scope`` using the rule table.

        Items without a matching rule, or whose rule names a category the
        user does not have, are left alone.  Running the job twice in a row
        writes nothing the second time.
        """
        summary = CategorizationJobSummary()
        try:
            pending = await self.items.list_uncategorized_for_owner(db, user_scope)
            summary.processed = len(pending)
            if not pending:
                await db.rollback()
                return summary
            by_name = await self.categories.by_lower_name(db, user_scope)

            targets: Dict[str, List[int]] = defaultdict(list)
            for item in pending:
                rule_category = self.rules.match(item.name)
                category = by_name.get(rule_category.casefold()) if rule_category else None
                if category is None:
                    summary.unmatched += 1
                    continue
                targets[category.id].append(item.id)

            for category_id, ids in targets.items():
                await self.items.set_category(db, ids, category_id)
                summary.updated += len(ids)
            if targets:
                await db.commit()
            else:
                await db.rollback()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Categorization job for %s: processed=%d updated=%d unmatched=%d",
            user_scope,
            summary.processed,
            summary.updated,
            summary.unmatched,
        )
        if summary.updated:
            sentry_metric_inc("categorization.assigned", summary.updated, tags={"source": CategorizationSource.RULE.value})
        return summary

    # ------------------------------------------------------------------
    # Oracle batch

    async def _ask_oracle(self, prompt: str) -> str:
        try:
            return await asyncio.wait_for(self.oracle.send(prompt), timeout=self.oracle_timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(f"Classifier did not respond within {self.oracle_timeout:g} seconds") from exc

    async def auto_categorize(self, db: AsyncSession, user_scope: str) -> List[Category]:
        """Ask the oracle to label every uncategorized item the user has bought.

        Returns the user's categories after the update.  Oracle failures
        (unreachable, timeout, unusable answer) propagate and leave the
        database exactly as it was.
        """
        names = await self.receipts.distinct_uncategorized_names(db, user_scope)
        if not names:
            return await self.categories.list_for_owner(db, user_scope)
        # No transaction may stay open while waiting on the network
        await db.rollback()

        sentry_breadcrumb("categorization", "auto_categorize", data={"items": len(names)})
        raw = await self._ask_oracle(build_categorization_prompt(names))
        pairs = extract_categorizations(raw)

        requested = {name.casefold() for name in names}
        applicable = [pair for pair in pairs if pair.item.casefold() in requested]
        if len(applicable) < len(pairs):
            logger.info("Ignoring %d oracle labels for items that were not requested", len(pairs) - len(applicable))

        updated = 0
        try:
            categories = await self.categories.find_or_create_many(db, user_scope, [p.category for p in applicable])
            for pair in applicable:
                category = categories[pair.category.casefold()]
                updated += await self.items.set_category_for_owner_names(db, user_scope, pair.item, category.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Auto categorization for %s labelled %d of %d items", user_scope, updated, len(names))
        sentry_metric_inc("categorization.assigned", updated, tags={"source": CategorizationSource.ORACLE.value})
        return await self.categories.list_for_owner(db, user_scope)
