from __future__ import annotations

import os
import tempfile

# Point the service at a throwaway SQLite database before any flecto_manager import builds the engine.
_DB_DIR = tempfile.mkdtemp(prefix="flecto-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/flecto.db")
os.environ.setdefault("JWT_SECRET", "test-secret-with-at-least-thirty-two-chars")

import pytest

from flecto_manager.domain.models import Base
from flecto_manager.persistence.db import engine


@pytest.fixture(scope="session", autouse=True)
async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture(autouse=True)
async def clean_tables_between_tests() -> None:
    # Every test starts from an empty schema; children are cleared before parents.
    yield
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())
    # Dispose the async engine to prevent cross-test connection reuse.
    await engine.dispose()
