"""Enumeration types used throughout the receipt item ledger.

Enumerations make it easier to constrain the values that can be
stored in the database or passed through the API.

When modifying these enums you should update any corresponding
database columns or Pydantic validators so that new values are
accepted where appropriate.
"""

from enum import Enum


class ReceiptStatus(str, Enum):
    """Processing states for a receipt."""

    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class LinkState(str, Enum):
    """Where a line item stands relative to the canonical item registry.

    The state is never set directly; it follows from the line item's
    canonical item and that item's category.
    """

    UNLINKED = "unlinked"
    LINKED_UNCATEGORIZED = "linked_uncategorized"
    LINKED_CATEGORIZED = "linked_categorized"


class ItemsPatchMode(str, Enum):
    """How a receipt update treats the item list."""

    KEEP = "keep"
    REPLACE = "replace"


class CategorizationSource(str, Enum):
    """Which categorization mode assigned a category."""

    MANUAL = "manual"
    BULK = "bulk"
    RULE = "rule"
    ORACLE = "oracle"
