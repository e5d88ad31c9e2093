"""SQLAlchemy ORM models for the receipt item ledger.

These models define the relational schema: the canonical item registry
(``item_names``), user scoped ``categories``, ``receipts`` and their
``receipt_items``.  A line item never stores a category of its own; its
category is always read through the canonical item it references, so a
single update on ``item_names`` is visible to every receipt at once.

If you extend or modify these models remember to add an Alembic
migration under ``migrations/versions`` or call the ``init_db`` helper
during development to recreate the tables.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Date,
    Enum,
    ForeignKey,
    Numeric,
    Text,
    Index,
)
from sqlalchemy.orm import relationship

from item_ledger.core.database import Base
from .enums import ReceiptStatus, LinkState


def _new_category_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def normalize_item_name(name: str) -> str:
    """Return the comparison key for an item name (trimmed, casefolded)."""
    return name.strip().casefold()


class Category(Base):
    """User owned spending category label."""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_new_category_id)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    icon = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    item_names = relationship("ItemName", back_populates="category", passive_deletes=True)


class ItemName(Base):
    """Canonical identity of a purchasable item, shared by every line item with that name."""

    __tablename__ = "item_names"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    # Casefolded name; uniqueness here is what makes names case-insensitive
    name_key = Column(String(200), nullable=False, unique=True)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    category = relationship("Category", back_populates="item_names", lazy="selectin")
    receipt_items = relationship("ReceiptItem", back_populates="item_name", passive_deletes=True)


class Receipt(Base):
    """Receipt header owning an ordered list of line items."""

    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    receipt_number = Column(String(100), nullable=True)
    merchant_name = Column(String(200), nullable=True)
    receipt_date = Column(Date, nullable=True)
    sub_total = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(Enum(ReceiptStatus), default=ReceiptStatus.PROCESSING, nullable=False)
    # Optimistic concurrency token, bumped on every UPDATE of the row
    version_id = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "ReceiptItem",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="ReceiptItem.position",
        passive_deletes=True,
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}


class ReceiptItem(Base):
    """One line on one receipt with a snapshot of what was captured."""

    __tablename__ = "receipt_items"

    id = Column(Integer, primary_key=True, index=True)
    receipt_id = Column(Integer, ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    item_name_id = Column(Integer, ForeignKey("item_names.id", ondelete="SET NULL"), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False, default=1)
    quantity_unit = Column(String(20), nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    sku = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    receipt = relationship("Receipt", back_populates="items")
    item_name = relationship("ItemName", back_populates="receipt_items", lazy="selectin")

    __table_args__ = (
        Index("ix_receipt_items_receipt_position", "receipt_id", "position"),
    )

    @property
    def category_id(self) -> Optional[str]:
        return self.item_name.category_id if self.item_name is not None else None

    @property
    def link_state(self) -> LinkState:
        if self.item_name is None:
            return LinkState.UNLINKED
        if self.item_name.category_id is None:
            return LinkState.LINKED_UNCATEGORIZED
        return LinkState.LINKED_CATEGORIZED
