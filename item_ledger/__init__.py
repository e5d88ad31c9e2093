"""Top-level package for the receipt item ledger service.

The ledger keeps receipts and their line items, links every line item
to a deduplicated canonical item registry and labels that registry
with user categories (manually, in bulk, by keyword rules or through a
text-classification oracle).  It contains database models, Pydantic
schemas, the service layer, Dramatiq tasks and the API routers.

To run the API locally you can execute:

```bash
uvicorn item_ledger.api.main:app --reload
```

Configuration values come from environment variables or a ``.env``
file at the project root; set ``DB_DEV_FALLBACK_SQLITE=true`` to use a
local ``item_ledger.db`` SQLite database during development.
"""

__all__: list[str] = []
