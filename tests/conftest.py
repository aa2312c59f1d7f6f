"""Shared fixtures."""
import pytest
import pytest_asyncio

from tests.fakes import FakeProvider, HookedStore


@pytest_asyncio.fixture
async def store(tmp_path) -> HookedStore:
    db = HookedStore(tmp_path / "scraper.db")
    await db.initialize()
    return db


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
