"""API routes for the user's categories."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.api.dependencies import get_categorization_service, get_db_session, get_user_scope
from item_ledger.models.schemas import CategoryCreate, CategoryRead, CategoryUpdate
from item_ledger.services.categories import category_repository
from item_ledger.services.categorization_service import CategorizationService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=List[CategoryRead])
async def list_categories(
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await category_repository.list_for_owner(db, user_scope)


@router.post("", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await category_repository.create(db, user_scope, payload)


@router.post("/auto-categorize", response_model=List[CategoryRead])
async def auto_categorize(
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
    service: CategorizationService = Depends(get_categorization_service),
):
    """Label every uncategorized item of the caller through the classifier oracle."""
    return await service.auto_categorize(db, user_scope)


@router.get("/{category_id}", response_model=CategoryRead)
async def get_category(
    category_id: str,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await category_repository.get_or_404(db, user_scope, category_id)


@router.put("/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    return await category_repository.update(db, user_scope, category_id, payload)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: str,
    db: AsyncSession = Depends(get_db_session),
    user_scope: str = Depends(get_user_scope),
):
    """Delete a category; items that used it become uncategorized."""
    await category_repository.delete(db, user_scope, category_id)
