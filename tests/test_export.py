"""Tests for tabular export."""
import orjson
import pytest

from carrier_scraper.parse.models import POLICY_COLUMNS, PolicyRecord
from carrier_scraper.store.export import export_job, parse_csv, records_to_csv, records_to_json


def sample_records():
    return [
        PolicyRecord(policy_number="1001", applicant_name="Doe, Jane", premium="45.10", notes="line one\nline two"),
        PolicyRecord(policy_number="1002", status="Pending"),
    ]


def test_csv_header_order():
    header = records_to_csv([]).splitlines()[0]
    assert header.split(",") == list(POLICY_COLUMNS)


@pytest.mark.asyncio
async def test_export_round_trip(store, tmp_path):
    job = await store.create_job("j", "GTL")
    await store.insert_policies(job.id, sample_records())

    output = await export_job(store, job.id, "csv", tmp_path / "out.csv")
    parsed = parse_csv(output.read_text(), job_id=job.id)

    assert parsed == await store.list_policies(job.id)
    assert parsed[0].applicant_name == "Doe, Jane"
    assert parsed[0].notes == "line one\nline two"
    assert parsed[1].premium is None


def test_json_export():
    rows = orjson.loads(records_to_json(sample_records()))
    assert [row["policy_number"] for row in rows] == ["1001", "1002"]
    assert list(rows[0]) == list(POLICY_COLUMNS)


def test_parse_csv_missing_column():
    with pytest.raises(ValueError):
        parse_csv("policy_number\n1\n")


@pytest.mark.asyncio
async def test_unknown_format(store):
    with pytest.raises(ValueError):
        await export_job(store, "job", "xlsx")
