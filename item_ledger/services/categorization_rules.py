"""Keyword rule table for the background categorization job.

A rule table maps a category name to the keywords that select it.  An
item name matches a rule when it contains one of the keywords,
ignoring case.  Rules are checked in table order and the first match
wins, so more specific categories should be listed first.

The table is loaded once (from ``CATEGORIZATION_RULES_PATH`` when set,
otherwise the built-in defaults) and handed to the categorization
service; nothing reads it from global state at match time.

Example file::

    {
      "groceries": ["milk", "bread", "cheese"],
      "personal care": ["soap", "shampoo", "toothpaste"]
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from item_ledger.core.config import settings

logger = logging.getLogger(__name__)


DEFAULT_RULES: Dict[str, List[str]] = {
    "groceries": ["milk", "bread", "cheese"],
    "personal care": ["soap", "shampoo", "toothpaste"],
}


@dataclass(frozen=True)
class RuleTable:
    """Ordered ``(category name, keywords)`` pairs."""

    rules: Tuple[Tuple[str, Tuple[str, ...]], ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Sequence[str]]) -> "RuleTable":
        rules = []
        for category, keywords in mapping.items():
            if not isinstance(category, str) or not category.strip():
                raise ValueError("rule category names must be non-empty strings")
            if isinstance(keywords, str) or not all(isinstance(k, str) for k in keywords):
                raise ValueError(f"keywords for {category!r} must be a list of strings")
            cleaned = tuple(k.strip().casefold() for k in keywords if k.strip())
            rules.append((category.strip(), cleaned))
        return cls(tuple(rules))

    def match(self, item_name: str) -> Optional[str]:
        """Return the category name of the first rule whose keyword occurs in ``item_name``."""
        haystack = item_name.casefold()
        for category, keywords in self.rules:
            if any(keyword in haystack for keyword in keywords):
                return category
        return None

    def __len__(self) -> int:
        return len(self.rules)


def load_rule_table(path: Optional[str] = None) -> RuleTable:
    """Load the rule table from ``path`` (or the configured path), else the defaults."""
    path = path or settings.CATEGORIZATION_RULES_PATH
    if not path:
        return RuleTable.from_mapping(DEFAULT_RULES)
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Rule file {path} must contain a JSON object")
    table = RuleTable.from_mapping(raw)
    logger.info("Loaded %d categorization rules from %s", len(table), path)
    return table
