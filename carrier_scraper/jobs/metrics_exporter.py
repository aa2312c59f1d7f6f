"""Metrics exporter for observability."""
import json
import time
from pathlib import Path
from typing import Optional

import aiofiles

from carrier_scraper.config import DATA_DIR

METRICS_FILE = DATA_DIR / "metrics.jsonl"


class MetricsExporter:
    """Exports metrics to JSONL file for observability."""

    def __init__(self, run_id: str, metrics_file: Optional[Path] = None):
        self.run_id = run_id
        self.metrics_file = Path(metrics_file) if metrics_file else METRICS_FILE
        self.start_time = time.time()

    async def export_metrics(
        self,
        job_id: str,
        status: str,
        current_page: int,
        total_pages: int,
        records: int,
        saved: int,
        field_misses: int,
        rps: float,
        eta: float,
    ) -> None:
        """Export metrics to JSONL file."""
        metrics = {
            "ts": time.time(),
            "run_id": self.run_id,
            "job_id": job_id,
            "status": status,
            "current_page": current_page,
            "total_pages": total_pages,
            "records": records,
            "saved": saved,
            "field_misses": field_misses,
            "rps": round(rps, 2),
            "eta": round(eta, 2),
            "elapsed": round(time.time() - self.start_time, 2),
        }

        line = json.dumps(metrics) + "\n"
        async with aiofiles.open(self.metrics_file, "a") as f:
            await f.write(line)


async def read_metrics(limit: int = 100, metrics_file: Optional[Path] = None) -> list[dict]:
    """Last ``limit`` exported entries, oldest first."""
    path = Path(metrics_file) if metrics_file else METRICS_FILE
    if not path.exists():
        return []
    lines = []
    async with aiofiles.open(path, "r") as f:
        async for line in f:
            if line.strip():
                lines.append(json.loads(line))
    return lines[-limit:]
