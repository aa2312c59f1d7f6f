"""Tests for the batch persister."""
import pytest

from carrier_scraper.errors import PersistenceError
from carrier_scraper.jobs.persister import BatchPersister
from carrier_scraper.parse.models import PolicyRecord


def make_records(count, prefix="P"):
    return [PolicyRecord(policy_number=f"{prefix}{i}") for i in range(count)]


@pytest.mark.asyncio
async def test_writes_in_batches(store):
    job = await store.create_job("j", "GTL")
    persister = BatchPersister(store, batch_size=3)

    assert await persister.persist(job.id, make_records(7)) == 7
    assert store.inserts == 3
    assert persister.total_saved == 7
    assert await store.count_policies(job.id) == 7


@pytest.mark.asyncio
async def test_empty_page_writes_nothing(store):
    job = await store.create_job("j", "GTL")
    persister = BatchPersister(store, batch_size=3)
    assert await persister.persist(job.id, []) == 0
    assert store.inserts == 0


@pytest.mark.asyncio
async def test_failure_keeps_earlier_batches(store):
    job = await store.create_job("j", "GTL")
    store.fail_on_insert = 2
    persister = BatchPersister(store, batch_size=3)

    with pytest.raises(PersistenceError) as exc_info:
        await persister.persist(job.id, make_records(7))
    assert "after 3 records" in str(exc_info.value)
    assert persister.total_saved == 3
    assert await store.count_policies(job.id) == 3
