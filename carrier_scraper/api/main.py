"""FastAPI control API for operators: start, confirm, scrape, stop, read."""
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from carrier_scraper.browser.provider import BrowserProvider, build_provider
from carrier_scraper.config import config, Config
from carrier_scraper.errors import (
    InvalidTransition,
    PortalUnreachableError,
    ProvisioningError,
    ScraperError,
    SessionNotFound,
)
from carrier_scraper.jobs.metrics_exporter import read_metrics
from carrier_scraper.jobs.session_machine import SessionStateMachine
from carrier_scraper.parse.models import SessionStatus, utcnow
from carrier_scraper.parse.redact import redact_string
from carrier_scraper.store.base import ScraperStore
from carrier_scraper.store.export import EXPORT_FORMATS, records_to_csv, records_to_json
from carrier_scraper.store.factory import build_store

logger = logging.getLogger(__name__)

app = FastAPI(title="Carrier Portal Scraper API", version="0.1.0")

# API Key security (if configured)
API_KEY_HEADER = APIKeyHeader(name="X-API-KEY", auto_error=False)


def verify_api_key(api_key: str = Depends(API_KEY_HEADER)) -> bool:
    """Verify API key if configured."""
    expected_key = config.API_KEY
    if expected_key:
        if not api_key or api_key != expected_key:
            raise HTTPException(status_code=403, detail="Invalid API key")
    return True


_store: Optional[ScraperStore] = None
_provider: Optional[BrowserProvider] = None


def get_store() -> ScraperStore:
    global _store
    if _store is None:
        _store = build_store()
    return _store


def get_provider() -> BrowserProvider:
    global _provider
    if _provider is None:
        try:
            _provider = build_provider()
        except ValueError as e:
            raise ProvisioningError(str(e)) from e
    return _provider


def get_machine(store: ScraperStore = Depends(get_store)) -> SessionStateMachine:
    return SessionStateMachine(store)


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    store = get_store()
    await store.initialize()
    if not await store.test_connection():
        logger.warning("Datastore connection test failed, but continuing...")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": redact_string(message)})


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return _error(404, str(exc))


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return _error(409, str(exc))


@app.exception_handler(ProvisioningError)
@app.exception_handler(PortalUnreachableError)
async def upstream_error_handler(request: Request, exc: ScraperError):
    return _error(502, str(exc))


@app.exception_handler(ScraperError)
async def scraper_error_handler(request: Request, exc: ScraperError):
    logger.error(f"Unhandled scraper error on {request.url.path}: {exc}")
    return _error(500, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return _error(400, str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


class StartRequest(BaseModel):
    """Request model for starting a session."""
    job_name: str
    created_by: Optional[str] = None


class SessionRequest(BaseModel):
    """Request model for actions on an existing session."""
    session_id: str


@app.get("/health")
async def health(store: ScraperStore = Depends(get_store)):
    """Health check endpoint (no auth required)."""
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "store_connected": await store.test_connection(),
    }


@app.get("/metrics")
async def get_metrics(_: bool = Depends(verify_api_key)):
    """Get the last exported worker metrics (requires API key if configured)."""
    lines = await read_metrics(limit=100)
    if not lines:
        return {"error": "No metrics available"}
    return {"metrics": lines}


@app.post("/sessions/start")
async def start_session(
    request: StartRequest,
    _: bool = Depends(verify_api_key),
    store: ScraperStore = Depends(get_store),
    provider: BrowserProvider = Depends(get_provider),
):
    """
    Create a job and a session and bring up the remote browser.
    The response carries the URL the operator opens to log in.
    """
    machine = SessionStateMachine(store, provider)
    session_id, job_id = await machine.start(request.job_name, created_by=request.created_by)
    session = await machine.get(session_id)
    return {
        "success": True,
        "session_id": session_id,
        "job_id": job_id,
        "status": session.status.value,
        "browser_url": session.browser_url,
        "message": "Browser is ready. Log in to the portal, then confirm.",
    }


@app.post("/sessions/confirm-ready")
async def confirm_ready(
    request: SessionRequest,
    _: bool = Depends(verify_api_key),
    machine: SessionStateMachine = Depends(get_machine),
):
    """Operator confirms they are logged in."""
    session = await machine.confirm_ready(request.session_id)
    return {"success": True, "session_id": session.id, "status": session.status.value}


@app.post("/sessions/scrape")
async def scrape_session(
    request: SessionRequest,
    _: bool = Depends(verify_api_key),
    machine: SessionStateMachine = Depends(get_machine),
):
    """
    Hand a ready session to the workers.
    Nothing runs here: a worker picks up ready sessions on its next poll.
    """
    session = await machine.get(request.session_id)
    if session.status != SessionStatus.READY:
        raise HTTPException(
            status_code=400,
            detail=f"Session must be ready to scrape (current status: {session.status.value})",
        )
    return {
        "success": True,
        "session_id": session.id,
        "status": session.status.value,
        "message": f"Scraping will start within {config.POLL_INTERVAL:.0f} seconds",
    }


@app.post("/sessions/{session_id}/stop")
async def stop_session(
    session_id: str,
    _: bool = Depends(verify_api_key),
    machine: SessionStateMachine = Depends(get_machine),
):
    """Stop a session; a running worker stops before its next page."""
    session = await machine.stop(session_id)
    return {
        "success": True,
        "session_id": session.id,
        "status": session.status.value,
        "error_message": session.error_message,
    }


@app.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    _: bool = Depends(verify_api_key),
    machine: SessionStateMachine = Depends(get_machine),
    store: ScraperStore = Depends(get_store),
):
    """Session with its job, for status polling."""
    session = await machine.get(session_id)
    job = await store.get_job(session.job_id)
    return {
        "session": session.model_dump(mode="json"),
        "job": job.model_dump(mode="json") if job else None,
    }


@app.get("/sessions")
async def list_sessions(
    limit: int = Query(5, ge=1, le=100),
    _: bool = Depends(verify_api_key),
    store: ScraperStore = Depends(get_store),
):
    sessions = await store.list_sessions(limit=limit)
    return {"sessions": [session.model_dump(mode="json") for session in sessions]}


@app.get("/jobs/{job_id}/policies")
async def list_policies(
    job_id: str,
    _: bool = Depends(verify_api_key),
    store: ScraperStore = Depends(get_store),
):
    job = await store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    policies = await store.list_policies(job_id)
    return {
        "job_id": job_id,
        "count": len(policies),
        "policies": [policy.model_dump(mode="json") for policy in policies],
    }


@app.get("/jobs/{job_id}/export")
async def export_policies(
    job_id: str,
    format: str = Query("csv"),
    _: bool = Depends(verify_api_key),
    store: ScraperStore = Depends(get_store),
):
    """Download a job's policies as CSV or JSON."""
    if format not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported export format '{format}'")
    job = await store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    policies = await store.list_policies(job_id)
    filename = f"policies_{job_id}.{format}"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if format == "csv":
        return Response(content=records_to_csv(policies), media_type="text/csv", headers=headers)
    return Response(content=records_to_json(policies), media_type="application/json", headers=headers)


if __name__ == "__main__":
    import uvicorn
    from carrier_scraper.logging_conf import setup_logging
    setup_logging()
    Config.validate()
    uvicorn.run(app, host="0.0.0.0", port=8000)
