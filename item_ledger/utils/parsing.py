"""Extraction of structured answers from free-form oracle text."""

from __future__ import annotations

import json
import logging
from typing import List

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from item_ledger.core.errors import BadInputError
from item_ledger.models.schemas import ItemCategorization

logger = logging.getLogger(__name__)

_PAIRS = TypeAdapter(List[ItemCategorization])


def extract_json_array(raw: str) -> str:
    """Return the text between the first ``[`` and the last ``]`` of ``raw``.

    Raises :class:`BadInputError` (carrying ``raw``) when there is no such span.
    """
    text = raw or ""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise BadInputError("Oracle response does not contain a JSON array", raw_response=raw)
    return text[start : end + 1]


def extract_categorizations(raw: str) -> List[ItemCategorization]:
    """Parse an oracle answer into ``{item, category}`` pairs.

    Keys are matched case-insensitively.  Any answer that cannot be turned
    into a list of such objects raises :class:`BadInputError` with the raw
    text attached; callers must not have mutated anything before calling.
    """
    fragment = extract_json_array(raw)
    try:
        data = json.loads(fragment)
    except json.JSONDecodeError as exc:
        logger.warning("Unparsable oracle answer: %s", exc)
        raise BadInputError("Oracle response is not valid JSON", raw_response=raw) from exc
    try:
        return _PAIRS.validate_python(data)
    except PydanticValidationError as exc:
        logger.warning("Oracle answer has unexpected shape: %s", exc.error_count())
        raise BadInputError("Oracle response has an unexpected shape", raw_response=raw) from exc
