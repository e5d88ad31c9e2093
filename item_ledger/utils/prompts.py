"""Prompt templates for the classifier oracle.

Keeping prompts in a central location makes it easier to iterate on
their content and ensure consistency between the API and the worker.
"""

from __future__ import annotations

from textwrap import dedent
from typing import Iterable

EXAMPLE_CATEGORIES = (
    "Groceries",
    "Household",
    "Personal Care",
    "Electronics",
    "Clothing",
    "Entertainment",
)


def build_categorization_prompt(item_names: Iterable[str]) -> str:
    """Return the prompt asking the oracle to label ``item_names``.

    The model is told to answer with a bare JSON array of
    ``{"item": ..., "category": ...}`` objects.  Models often wrap the
    array in prose anyway, which is why the answer goes through
    :func:`item_ledger.utils.parsing.extract_categorizations`.
    """
    joined = ", ".join(name.strip() for name in item_names)
    examples = ", ".join(EXAMPLE_CATEGORIES)
    return dedent(
        f"""
        Categorize these receipt items into logical categories (e.g., {examples}, etc.).
        Return ONLY a valid JSON array with this exact format (no additional text or explanation):
        [{{"item": "item name", "category": "category name"}}, ...]

        Items to categorize: {joined}
        """
    ).strip()
