"""Print a short summary of the item registry and receipts.

    python -m item_ledger.scripts.check_db
"""

import asyncio

from sqlalchemy import select, func

from item_ledger.core.database import get_db
from item_ledger.models.tables import ItemName, Receipt, ReceiptItem


async def check_db():
    async for session in get_db():
        receipts = (await session.execute(select(func.count(Receipt.id)))).scalar()
        line_items = (await session.execute(select(func.count(ReceiptItem.id)))).scalar()
        unlinked = (
            await session.execute(select(func.count(ReceiptItem.id)).where(ReceiptItem.item_name_id.is_(None)))
        ).scalar()
        canonical = (await session.execute(select(func.count(ItemName.id)))).scalar()
        uncategorized = (
            await session.execute(select(func.count(ItemName.id)).where(ItemName.category_id.is_(None)))
        ).scalar()

        print(f"Receipts: {receipts}")
        print(f"Line items: {line_items} ({unlinked} unlinked)")
        print(f"Canonical items: {canonical} ({uncategorized} uncategorized)")

        result = await session.execute(select(Receipt).order_by(Receipt.id.desc()).limit(5))
        latest = result.scalars().all()
        if latest:
            print("\nLatest receipts:")
            for r in latest:
                print(f"ID: {r.id}, Owner: {r.owner_id}, Status: {r.status.value}, Items: {len(r.items)}, v{r.version_id}")
        break


if __name__ == "__main__":
    asyncio.run(check_db())
