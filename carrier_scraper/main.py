"""Main entry point with CLI."""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from carrier_scraper.browser.provider import build_provider
from carrier_scraper.config import config, Config
from carrier_scraper.jobs.runner import SessionRunner
from carrier_scraper.jobs.session_machine import SessionStateMachine
from carrier_scraper.jobs.worker import Worker
from carrier_scraper.logging_conf import setup_logging
from carrier_scraper.store.export import EXPORT_FORMATS, export_job
from carrier_scraper.store.factory import build_store

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Carrier Portal Scraper")
    parser.add_argument(
        "--store",
        choices=["supabase", "sqlite"],
        default=None,
        help=f"Datastore backend (default: {config.STORE_BACKEND})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logs",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    worker = sub.add_parser("worker", help="Poll for ready sessions and scrape them")
    worker.add_argument("--once", action="store_true", help="Run a single poll and exit")
    worker.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help=f"Upper bound on pages per session (default: {config.MAX_PAGES})",
    )
    worker.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Policies per insert (default: {config.BATCH_SIZE})",
    )
    worker.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help=f"Seconds between polls (default: {config.POLL_INTERVAL})",
    )

    api = sub.add_parser("api", help="Run the control API")
    api.add_argument("--host", default="0.0.0.0")
    api.add_argument("--port", type=int, default=8000)

    start = sub.add_parser("start", help="Create a job and bring up the remote browser")
    start.add_argument("job_name")
    start.add_argument("--created-by", default=None)

    confirm = sub.add_parser("confirm-ready", help="Confirm the operator is logged in")
    confirm.add_argument("session_id")

    stop = sub.add_parser("stop", help="Stop a session")
    stop.add_argument("session_id")

    export = sub.add_parser("export", help="Export a job's policies")
    export.add_argument("job_id")
    export.add_argument("--format", choices=EXPORT_FORMATS, default="csv")
    export.add_argument("--output", type=Path, default=None)

    return parser.parse_args(argv)


async def run_worker(args: argparse.Namespace) -> None:
    store = build_store(args.store)
    await store.initialize()
    if not await store.test_connection():
        raise RuntimeError("Datastore connection failed")

    provider = build_provider()
    runner = SessionRunner(
        store,
        provider,
        batch_size=args.batch_size,
        max_pages=args.max_pages,
    )
    worker = Worker(store, runner, poll_interval=args.poll_interval)
    try:
        await worker.run(once=args.once)
    finally:
        aclose = getattr(provider, "aclose", None)
        if aclose is not None:
            await aclose()


async def run_command(args: argparse.Namespace) -> None:
    store = build_store(args.store)
    await store.initialize()

    if args.command == "start":
        provider = build_provider()
        machine = SessionStateMachine(store, provider)
        try:
            session_id, job_id = await machine.start(args.job_name, created_by=args.created_by)
        finally:
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()
        session = await machine.get(session_id)
        logger.info(f"Session: {session_id}")
        logger.info(f"Job: {job_id}")
        logger.info(f"Status: {session.status.value}")
        if session.browser_url:
            logger.info(f"Log in at: {session.browser_url}")
        logger.info(f"Then run: confirm-ready {session_id}")

    elif args.command == "confirm-ready":
        session = await SessionStateMachine(store).confirm_ready(args.session_id)
        logger.info(f"Session {session.id} is {session.status.value}")

    elif args.command == "stop":
        session = await SessionStateMachine(store).stop(args.session_id)
        logger.info(f"Session {session.id} is {session.status.value}: {session.error_message}")

    elif args.command == "export":
        if await store.get_job(args.job_id) is None:
            raise ValueError(f"Job {args.job_id} not found")
        path = await export_job(store, args.job_id, args.format, args.output)
        logger.info(f"Wrote {path}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    # Setup logging
    setup_logging()

    # Parse args
    args = parse_args(argv)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.store:
        config.STORE_BACKEND = args.store

    # Validate config
    try:
        Config.validate(require_browser=args.command in ("worker", "start", "api"))
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.command == "api":
        import uvicorn
        from carrier_scraper.api.main import app
        uvicorn.run(app, host=args.host, port=args.port)
        return

    if args.command == "worker":
        logger.info("=" * 60)
        logger.info("Carrier Portal Scraper Worker Starting")
        logger.info(f"Portal: {config.PORTAL}")
        logger.info(f"Store: {config.STORE_BACKEND}")
        logger.info(f"Browser provider: {config.BROWSER_PROVIDER}")
        logger.info(f"Max pages: {args.max_pages or config.MAX_PAGES}")
        logger.info(f"Batch size: {args.batch_size or config.BATCH_SIZE}")
        logger.info(f"Poll interval: {args.poll_interval or config.POLL_INTERVAL}s")
        logger.info("=" * 60)
        coro = run_worker(args)
    else:
        coro = run_command(args)

    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
