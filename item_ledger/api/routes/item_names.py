"""API routes for the canonical item registry and its categorization."""

from __future__ import annotations

from typing import List, Union

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.api.dependencies import get_categorization_service, get_db_session, get_user_scope
from item_ledger.core.errors import NotFoundError
from item_ledger.models.schemas import (
    BulkCategorizeRequest,
    BulkCategorizeResult,
    CategorizationJobQueued,
    CategorizationJobSummary,
    CategorizeItemRequest,
    ItemNameDetail,
    ItemNameRead,
)
from item_ledger.models.tables import ItemName
from item_ledger.services.categorization_service import CategorizationService
from item_ledger.services.item_names import item_name_repository

router = APIRouter(prefix="/item-names", tags=["item-names"])


def _detail(item: ItemName) -> ItemNameDetail:
    detail = ItemNameDetail.model_validate(item)
    detail.category_name = item.category.name if item.category is not None else None
    return detail


@router.get("", response_model=List[ItemNameRead])
async def list_item_names(
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await item_name_repository.list_all(db)


@router.get("/uncategorized", response_model=List[ItemNameRead])
async def list_uncategorized_item_names(
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await item_name_repository.list_uncategorized(db)


@router.put("/categorize", response_model=ItemNameDetail)
async def categorize_item(
    payload: CategorizeItemRequest,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
    service: CategorizationService = Depends(get_categorization_service),
):
    item = await service.categorize(db, payload.item_name, payload.category_id, user_scope)
    return _detail(item)


@router.put("/categorize/bulk", response_model=BulkCategorizeResult)
async def categorize_items_bulk(
    payload: BulkCategorizeRequest,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
    service: CategorizationService = Depends(get_categorization_service),
):
    return await service.categorize_bulk(db, payload.items, user_scope)


@router.post("/run-categorization-job", response_model=None)
async def run_categorization_job(
    background: bool = Query(False, description="Queue the job on the worker instead of running it inline"),
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
    service: CategorizationService = Depends(get_categorization_service),
) -> Union[CategorizationJobSummary, CategorizationJobQueued]:
    """Run the keyword rule job inline, or queue it on the worker with ``?background=true``."""
    if background:
        from item_ledger.core.tasks import run_categorization_job_task

        message = run_categorization_job_task.send(user_scope)
        return CategorizationJobQueued(message_id=message.message_id)
    return await service.run_categorization_job(db, user_scope)


@router.get("/{item_name_id}", response_model=ItemNameDetail)
async def get_item_name(
    item_name_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    item = await item_name_repository.get_by_id(db, item_name_id)
    if item is None:
        raise NotFoundError(f"Item name {item_name_id} not found")
    return _detail(item)


@router.delete("/{item_name_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item_name(
    item_name_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    """Remove a canonical item; line items keep their text and become unlinked."""
    await item_name_repository.delete(db, item_name_id)
