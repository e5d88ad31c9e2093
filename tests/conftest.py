from __future__ import annotations

import asyncio
import os
from typing import List, Optional

# Settings and the module level engine are created at import time, so the
# test environment must be in place before anything imports item_ledger.
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DB_DEV_FALLBACK_SQLITE", "true")
os.environ["SENTRY_DSN"] = ""

import pytest
import pytest_asyncio

from item_ledger.core.database import Base, build_engine, build_sessionmaker
from item_ledger.models import tables  # noqa: F401  (registers the models on Base)


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so that separate sessions get separate connections
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


class FakeOracle:
    """Stand-in for ``OllamaClient`` that records prompts."""

    model = "fake-model"

    def __init__(self, response: str = "[]", exc: Optional[Exception] = None, delay: float = 0.0):
        self.response = response
        self.exc = exc
        self.delay = delay
        self.prompts: List[str] = []

    async def send(self, prompt: str, model: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.response

    async def status(self):
        return {"available": self.exc is None, "message": "fake"}

    async def is_available(self) -> bool:
        return self.exc is None


@pytest.fixture
def fake_oracle():
    return FakeOracle
