#!/usr/bin/env python3
"""Utility script to inspect recent scraper sessions."""
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from carrier_scraper.parse.models import SessionStatus
from carrier_scraper.store.factory import build_store


async def show_sessions(limit: int) -> None:
    """Print the most recent sessions and how many are waiting for a worker."""
    store = build_store()
    await store.initialize()
    sessions = await store.list_sessions(limit=limit)

    if not sessions:
        print("No sessions found")
        return

    print(f"Last {len(sessions)} sessions:")
    for session in sessions:
        created = session.created_at.isoformat() if session.created_at else "-"
        print(
            f"  {session.id}  {session.status.value:<18} "
            f"page {session.current_page}/{session.total_pages}  "
            f"records {session.scraped_count}  created {created}"
        )
        if session.error_message:
            print(f"      error: {session.error_message}")

    ready = [session for session in sessions if session.status == SessionStatus.READY]
    print(f"Ready for a worker: {len(ready)}")
    oldest = await store.oldest_ready_session()
    if oldest:
        print(f"Next to be picked up: {oldest.id}")


async def show_job(session_id: str) -> None:
    store = build_store()
    await store.initialize()
    session = await store.get_session(session_id)
    if session is None:
        print(f"Session {session_id} not found")
        sys.exit(1)
    job = await store.get_job(session.job_id)
    stored = await store.count_policies(session.job_id)
    print(f"Session {session.id}: {session.status.value}")
    print(f"  Job {session.job_id}: {job.status.value if job else 'missing'} ({job.progress if job else 0}%)")
    print(f"  Reported records: {session.scraped_count}")
    print(f"  Stored records:   {stored}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage:")
        print("  python scripts/check_sessions.py recent [limit]        # List recent sessions")
        print("  python scripts/check_sessions.py show <session_id>     # Session, job and stored count")
        sys.exit(1)

    command = sys.argv[1]

    if command == "recent":
        limit = int(sys.argv[2]) if len(sys.argv) > 2 else 5
        asyncio.run(show_sessions(limit))
    elif command == "show":
        if len(sys.argv) < 3:
            print("Error: Please provide a session id")
            sys.exit(1)
        asyncio.run(show_job(sys.argv[2]))
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
