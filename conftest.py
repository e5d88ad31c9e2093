"""Root pytest configuration (kept intentionally minimal).

The application package lives in ``item_ledger/`` at the repository root,
so pytest can import it without path manipulation.  Test environment
variables are set in ``tests/conftest.py`` before the package is imported.
"""
