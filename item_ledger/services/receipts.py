"""Receipt ledger: ingestion, reads and deletes.

Every line item written here goes through item resolution so that it
references a canonical item from the moment it exists.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from item_ledger.core.errors import NotFoundError
from item_ledger.models.schemas import ReceiptCreate, ReceiptItemCreate
from item_ledger.models.tables import ItemName, Receipt, ReceiptItem
from item_ledger.services.item_resolution import ItemResolutionService

logger = logging.getLogger(__name__)


def line_total(item: ReceiptItemCreate) -> Decimal:
    """Captured total, or ``quantity * unit_price`` when none was captured."""
    if item.total_price is not None:
        return item.total_price
    return (item.quantity * item.unit_price).quantize(Decimal("0.01"))


class ReceiptRepository:
    async def get(self, db: AsyncSession, owner_id: str, receipt_id: int, *, populate_existing: bool = False) -> Optional[Receipt]:
        stmt = (
            select(Receipt)
            .where(Receipt.id == receipt_id, Receipt.owner_id == owner_id)
            .options(selectinload(Receipt.items).selectinload(ReceiptItem.item_name))
        )
        if populate_existing:
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_404(self, db: AsyncSession, owner_id: str, receipt_id: int, *, populate_existing: bool = False) -> Receipt:
        receipt = await self.get(db, owner_id, receipt_id, populate_existing=populate_existing)
        if receipt is None:
            raise NotFoundError(f"Receipt {receipt_id} not found")
        return receipt

    async def list_for_owner(self, db: AsyncSession, owner_id: str) -> List[Receipt]:
        stmt = select(Receipt).where(Receipt.owner_id == owner_id).order_by(Receipt.id.desc())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def distinct_uncategorized_names(self, db: AsyncSession, owner_id: str) -> List[str]:
        """Line-item names of the owner whose canonical item has no category.

        Names are deduplicated case-insensitively, keeping the first spelling
        seen in receipt and position order.
        """
        stmt = (
            select(ReceiptItem.name)
            .join(Receipt, Receipt.id == ReceiptItem.receipt_id)
            .join(ItemName, ItemName.id == ReceiptItem.item_name_id)
            .where(Receipt.owner_id == owner_id, ItemName.category_id.is_(None))
            .order_by(Receipt.id, ReceiptItem.position, ReceiptItem.id)
        )
        result = await db.execute(stmt)
        seen: dict[str, str] = {}
        for (name,) in result.all():
            key = name.strip().casefold()
            if key and key not in seen:
                seen[key] = name.strip()
        return list(seen.values())

    async def items_by_category(self, db: AsyncSession, owner_id: str, category_id: Optional[str]) -> List[ReceiptItem]:
        """The owner's line items whose derived category is ``category_id`` (or unset)."""
        stmt = (
            select(ReceiptItem)
            .join(Receipt, Receipt.id == ReceiptItem.receipt_id)
            .outerjoin(ItemName, ItemName.id == ReceiptItem.item_name_id)
            .where(Receipt.owner_id == owner_id)
            .order_by(ReceiptItem.receipt_id, ReceiptItem.position)
        )
        if category_id is None:
            stmt = stmt.where(ItemName.category_id.is_(None))
        else:
            stmt = stmt.where(ItemName.category_id == category_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def delete(self, db: AsyncSession, owner_id: str, receipt_id: int) -> None:
        receipt = await self.get_or_404(db, owner_id, receipt_id)
        await db.delete(receipt)
        await db.commit()
        logger.info("Deleted receipt %s", receipt_id)


receipt_repository = ReceiptRepository()


async def ingest_receipt(
    db: AsyncSession,
    owner_id: str,
    payload: ReceiptCreate,
    resolver: Optional[ItemResolutionService] = None,
) -> Receipt:
    """Store a receipt with its line items, linking each to a canonical item."""
    resolver = resolver or ItemResolutionService()
    try:
        resolved = await resolver.resolve_many(db, [item.name for item in payload.items], owner_id)
        receipt = Receipt(
            owner_id=owner_id,
            receipt_number=payload.receipt_number,
            merchant_name=payload.merchant_name,
            receipt_date=payload.receipt_date,
            sub_total=payload.sub_total,
            tax_amount=payload.tax_amount,
            total_amount=payload.total_amount,
            currency=payload.currency.upper(),
            status=payload.status,
        )
        for position, (item, link) in enumerate(zip(payload.items, resolved)):
            receipt.items.append(
                ReceiptItem(
                    position=position,
                    name=item.name.strip(),
                    description=item.description,
                    quantity=item.quantity,
                    quantity_unit=item.quantity_unit,
                    unit_price=item.unit_price,
                    total_price=line_total(item),
                    sku=item.sku,
                    item_name_id=link.item_name_id,
                )
            )
        db.add(receipt)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Ingested receipt %s with %d items for owner %s", receipt.id, len(payload.items), owner_id)
    return await receipt_repository.get_or_404(db, owner_id, receipt.id, populate_existing=True)
