"""API package.

This exposes router modules to simplify test imports like:
	from item_ledger.api.routes.receipts import router
"""

__all__ = [
	"routes",
]
