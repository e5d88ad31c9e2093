"""Common dependencies for FastAPI routes.

This module defines shared dependency functions: database access, the
caller's user scope and the service objects the routers delegate to.
Session issuance happens upstream; the API only reads the scope the
gateway forwards in ``X-User-Id``.  ``DEV_AUTH_BYPASS`` substitutes
``DEV_USER_ID`` when the header is absent (local development only).
"""

from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.core.config import settings
from item_ledger.core.database import get_db
from item_ledger.services.categorization_rules import RuleTable, load_rule_table
from item_ledger.services.categorization_service import CategorizationService
from item_ledger.services.item_resolution import ItemResolutionService
from item_ledger.services.oracle import OllamaClient
from item_ledger.services.reconciliation import ReconciliationService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Alias for `get_db` to be imported in routers."""
    async for session in get_db():
        yield session


def get_user_scope(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Return the caller's user scope or reject the request."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    if settings.DEV_AUTH_BYPASS:
        return settings.DEV_USER_ID
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")


@lru_cache(maxsize=1)
def get_rule_table() -> RuleTable:
    """Rule table, loaded once per process."""
    return load_rule_table()


def get_oracle_client() -> OllamaClient:
    return OllamaClient()


def get_categorization_service(
    rules: RuleTable = Depends(get_rule_table),
    oracle: OllamaClient = Depends(get_oracle_client),
) -> CategorizationService:
    return CategorizationService(rules=rules, oracle=oracle)


def get_resolution_service() -> ItemResolutionService:
    return ItemResolutionService()


def get_reconciliation_service(
    resolver: ItemResolutionService = Depends(get_resolution_service),
) -> ReconciliationService:
    return ReconciliationService(resolver=resolver)
