"""Flat tabular export of a job's policy records."""
import csv
import io
import logging
from pathlib import Path
from typing import Iterable

import aiofiles
import orjson

from carrier_scraper.config import EXPORT_DIR
from carrier_scraper.parse.models import POLICY_COLUMNS, PolicyRecord
from carrier_scraper.store.base import ScraperStore

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")


def records_to_csv(records: Iterable[PolicyRecord]) -> str:
    """CSV with one header row; columns always in POLICY_COLUMNS order."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=POLICY_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for record in records:
        writer.writerow({column: getattr(record, column) or "" for column in POLICY_COLUMNS})
    return buffer.getvalue()


def parse_csv(text: str, job_id: str | None = None) -> list[PolicyRecord]:
    """Inverse of ``records_to_csv``: blank cells come back as None."""
    reader = csv.DictReader(io.StringIO(text))
    missing = set(POLICY_COLUMNS) - set(reader.fieldnames or ())
    if missing:
        raise ValueError(f"Export is missing columns: {', '.join(sorted(missing))}")
    records = []
    for row in reader:
        values = {column: (row[column] if row[column] != "" else None) for column in POLICY_COLUMNS}
        values["policy_number"] = row["policy_number"]
        records.append(PolicyRecord(job_id=job_id, **values))
    return records


def records_to_json(records: Iterable[PolicyRecord]) -> bytes:
    rows = [{column: getattr(record, column) for column in POLICY_COLUMNS} for record in records]
    return orjson.dumps(rows, option=orjson.OPT_INDENT_2)


async def export_job(
    store: ScraperStore,
    job_id: str,
    fmt: str = "csv",
    output: Path | None = None,
) -> Path:
    """Write a job's policies to ``output`` (default under data/exports)."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'")
    records = await store.list_policies(job_id)
    output = output or EXPORT_DIR / f"policies_{job_id}.{fmt}"
    payload = records_to_csv(records).encode() if fmt == "csv" else records_to_json(records)
    async with aiofiles.open(output, "wb") as f:
        await f.write(payload)
    logger.info(f"Exported {len(records)} policies for job {job_id} to {output}")
    return output
