"""Metrics tracking for scraping progress."""
import time
import logging
from collections import defaultdict
from typing import Dict

logger = logging.getLogger(__name__)


class Metrics:
    """Track per-session scraping metrics and calculate ETA."""

    def __init__(self, total_pages: int):
        self.total_pages = total_pages
        self.start_time = time.time()
        self.counters: Dict[str, int] = defaultdict(int)
        self.last_report_time = time.time()
        self.last_report_records = 0

    def increment(self, key: str, amount: int = 1) -> None:
        """Increment a counter."""
        self.counters[key] = self.counters.get(key, 0) + amount

    def get_rate(self) -> float:
        """Get current processing rate (records/second)."""
        elapsed = time.time() - self.start_time
        records = self.counters.get("records", 0)
        if elapsed > 0:
            return records / elapsed
        return 0.0

    def get_eta(self) -> float:
        """Get estimated time remaining in seconds, from the page rate."""
        elapsed = time.time() - self.start_time
        pages = self.counters.get("pages", 0)
        if pages <= 0 or elapsed <= 0:
            return 0.0
        remaining = max(self.total_pages - pages, 0)
        return remaining * elapsed / pages

    def format_eta(self) -> str:
        """Format ETA as human-readable string."""
        eta_seconds = self.get_eta()
        if eta_seconds < 60:
            return f"{eta_seconds:.0f}s"
        elif eta_seconds < 3600:
            return f"{eta_seconds / 60:.1f}m"
        else:
            return f"{eta_seconds / 3600:.1f}h"

    def report(self, tag: str = "") -> None:
        """Log current metrics."""
        now = time.time()
        pages = self.counters.get("pages", 0)
        records = self.counters.get("records", 0)
        rate = self.get_rate()

        # Calculate recent rate
        recent_elapsed = now - self.last_report_time
        recent_records = records - self.last_report_records
        recent_rate = recent_records / recent_elapsed if recent_elapsed > 0 else 0

        logger.info(
            f"{tag}Progress: page {pages}/{self.total_pages} | "
            f"Records: {records} | "
            f"Saved: {self.counters.get('saved', 0)} | "
            f"Missing details: {self.counters.get('field_misses', 0)} | "
            f"Rate: {rate:.2f}/s (recent: {recent_rate:.2f}/s) | "
            f"ETA: {self.format_eta()}"
        )

        self.last_report_time = now
        self.last_report_records = records

    def get_summary(self) -> Dict:
        """Get summary statistics."""
        elapsed = time.time() - self.start_time
        return {
            "total_pages": self.total_pages,
            "pages": self.counters.get("pages", 0),
            "records": self.counters.get("records", 0),
            "saved": self.counters.get("saved", 0),
            "field_misses": self.counters.get("field_misses", 0),
            "rate": self.get_rate(),
            "eta_seconds": self.get_eta(),
            "elapsed_seconds": elapsed,
        }
