"""Initialize database tables (development; production uses Alembic)."""

import asyncio
import logging

from item_ledger.core.database import init_db

logger = logging.getLogger(__name__)


async def main():
    logger.info("Initializing database tables...")
    await init_db()
    logger.info("Database initialization complete!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
