"""API routes for receipts and their line items."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.api.dependencies import (
    get_db_session,
    get_reconciliation_service,
    get_resolution_service,
    get_user_scope,
)
from item_ledger.models.schemas import (
    ItemsPatch,
    ReceiptCreate,
    ReceiptItemRead,
    ReceiptRead,
    ReconcileResult,
)
from item_ledger.services.item_resolution import ItemResolutionService
from item_ledger.services.receipts import ingest_receipt, receipt_repository
from item_ledger.services.reconciliation import ReconciliationService

router = APIRouter(prefix="/receipts", tags=["receipts"])


@router.post("", response_model=ReceiptRead, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    payload: ReceiptCreate,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
    resolver: ItemResolutionService = Depends(get_resolution_service),
):
    """Store an extracted receipt, linking every line to the item registry."""
    return await ingest_receipt(db, user_scope, payload, resolver=resolver)


@router.get("", response_model=List[ReceiptRead])
async def list_receipts(
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await receipt_repository.list_for_owner(db, user_scope)


@router.get("/items/by-category", response_model=List[ReceiptItemRead])
async def list_items_by_category(
    category_id: Optional[str] = Query(None, description="Omit to list uncategorized items"),
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await receipt_repository.items_by_category(db, user_scope, category_id)


@router.get("/{receipt_id}", response_model=ReceiptRead)
async def get_receipt(
    receipt_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await receipt_repository.get_or_404(db, user_scope, receipt_id)


@router.put("/{receipt_id}/items", response_model=ReconcileResult)
async def update_receipt_items(
    receipt_id: int,
    patch: ItemsPatch,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Replace (or keep) the item list of a receipt.

    Send ``{"mode": "keep"}`` to leave items untouched, or
    ``{"mode": "replace", "items": [...]}`` with the complete list;
    ``"items": []`` removes every item.
    """
    return await service.reconcile_items(db, receipt_id, patch, user_scope)


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_receipt(
    receipt_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    await receipt_repository.delete(db, user_scope, receipt_id)
