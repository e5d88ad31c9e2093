"""Pydantic schemas for request and response models.

Pydantic models are used for validating and serialising data that
crosses the boundary of the API or of the classifier oracle. Schemas
are intentionally separate from the ORM models so that the shape
exposed through the API can differ from what is stored.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .enums import ReceiptStatus, LinkState, ItemsPatchMode


# ---------------------------------------------------------------------------
# Categories


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CategoryUpdate(CategoryCreate):
    pass


class CategoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    icon: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


# ---------------------------------------------------------------------------
# Canonical item registry


class ItemNameRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category_id: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class ItemNameDetail(ItemNameRead):
    category_name: Optional[str] = None


class CategorizeItemRequest(BaseModel):
    item_name: str
    category_id: str


class BulkCategorizeRequest(BaseModel):
    """Mapping of item name to category id."""

    items: Dict[str, str] = Field(default_factory=dict)


class BulkCategorizeResult(BaseModel):
    updated: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


class CategorizationJobSummary(BaseModel):
    processed: int = 0
    updated: int = 0
    unmatched: int = 0


class CategorizationJobQueued(BaseModel):
    queued: bool = True
    message_id: Optional[str] = None


class ItemCategorization(BaseModel):
    """One ``{item, category}`` pair returned by the classifier oracle."""

    item: str
    category: str

    @model_validator(mode="before")
    @classmethod
    def _lower_keys(cls, data: Any) -> Any:
        # The oracle is free-form; accept "Item", "CATEGORY" and so on
        if isinstance(data, dict):
            return {str(k).lower(): v for k, v in data.items()}
        return data

    @field_validator("item", "category")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


# ---------------------------------------------------------------------------
# Receipts and line items


class ReceiptItemCreate(BaseModel):
    """Raw line item as captured by ingestion."""

    name: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    total_price: Optional[Decimal] = None
    quantity_unit: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None


class ReceiptCreate(BaseModel):
    receipt_number: Optional[str] = None
    merchant_name: Optional[str] = None
    receipt_date: Optional[dt.date] = None
    sub_total: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: ReceiptStatus = ReceiptStatus.PROCESSED
    items: List[ReceiptItemCreate] = Field(default_factory=list)


class ReceiptItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    receipt_id: int
    position: int
    name: str
    description: Optional[str] = None
    quantity: Decimal
    quantity_unit: Optional[str] = None
    unit_price: Decimal
    total_price: Decimal
    sku: Optional[str] = None
    item_name_id: Optional[int] = None
    category_id: Optional[str] = None
    link_state: LinkState


class ReceiptRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    receipt_number: Optional[str] = None
    merchant_name: Optional[str] = None
    receipt_date: Optional[dt.date] = None
    sub_total: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str
    status: ReceiptStatus
    version_id: int
    created_at: dt.datetime
    updated_at: dt.datetime
    items: List[ReceiptItemRead] = Field(default_factory=list)


class ProposedItem(ReceiptItemCreate):
    """Entry of a proposed item list; ``id`` is set for items already on the receipt."""

    id: Optional[int] = None


class ItemsPatch(BaseModel):
    """Explicit tri-state item list of a receipt update.

    ``mode="keep"`` leaves the persisted items untouched and must not carry
    a list; ``mode="replace"`` carries the complete proposed list, where an
    empty list removes every item.
    """

    mode: ItemsPatchMode = ItemsPatchMode.KEEP
    items: Optional[List[ProposedItem]] = None

    @model_validator(mode="after")
    def _check_mode(self) -> "ItemsPatch":
        if self.mode == ItemsPatchMode.REPLACE and self.items is None:
            raise ValueError("mode 'replace' requires an items list (use [] to remove all items)")
        if self.mode == ItemsPatchMode.KEEP and self.items is not None:
            raise ValueError("mode 'keep' must not carry an items list")
        return self

    @classmethod
    def keep(cls) -> "ItemsPatch":
        return cls(mode=ItemsPatchMode.KEEP)

    @classmethod
    def replace(cls, items: List[ProposedItem]) -> "ItemsPatch":
        return cls(mode=ItemsPatchMode.REPLACE, items=list(items))


class ReconcileResult(BaseModel):
    receipt_id: int
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    attempts: int = 1
    version_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Oracle passthrough


class OraclePromptRequest(BaseModel):
    prompt: str
    model: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Prompt cannot be empty")
        return v


class OraclePromptResponse(BaseModel):
    prompt: str
    model: str
    response: str


class OracleStatus(BaseModel):
    available: bool
    message: str
