"""Configuration management from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
EXPORT_DIR = DATA_DIR / "exports"

# Ensure directories exist
DATA_DIR.mkdir(exist_ok=True)
EXPORT_DIR.mkdir(exist_ok=True)


class Config:
    """Application configuration."""

    # Datastore
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "supabase")
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE: str | None = os.getenv("SUPABASE_SERVICE_ROLE")
    SESSIONS_TABLE: str = os.getenv("SESSIONS_TABLE", "gtl_scraper_sessions")
    JOBS_TABLE: str = os.getenv("JOBS_TABLE", "scraper_jobs")
    POLICIES_TABLE: str = os.getenv("POLICIES_TABLE", "gtl_scraped_policies")
    SQLITE_PATH: str = os.getenv("SQLITE_PATH", str(DATA_DIR / "scraper.db"))

    # Remote browser
    BROWSER_PROVIDER: str = os.getenv("BROWSER_PROVIDER", "gologin")
    GL_API_TOKEN: str | None = os.getenv("GL_API_TOKEN")
    GL_PROFILE_ID: str | None = os.getenv("GL_PROFILE_ID")
    GL_API_URL: str = os.getenv("GL_API_URL", "https://api.gologin.com")
    GL_CLOUD_CONNECT_URL: str = os.getenv(
        "GL_CLOUD_CONNECT_URL", "wss://cloudbrowser.gologin.com/connect"
    )
    CDP_URL: str = os.getenv("CDP_URL", "http://localhost:9222")
    ALLOCATION_ATTEMPTS: int = int(os.getenv("ALLOCATION_ATTEMPTS", "3"))
    ALLOCATION_RETRY_DELAY: float = float(os.getenv("ALLOCATION_RETRY_DELAY", "10"))

    # Portal
    PORTAL: str = os.getenv("PORTAL", "gtl")
    MAX_PAGES: int = int(os.getenv("MAX_PAGES", "19"))
    PORTAL_READY_TIMEOUT: float = float(os.getenv("PORTAL_READY_TIMEOUT", "10"))
    NAVIGATION_TIMEOUT: float = float(os.getenv("NAVIGATION_TIMEOUT", "60"))
    PAGE_SETTLE_TIMEOUT: float = float(os.getenv("PAGE_SETTLE_TIMEOUT", "10"))
    PAGE_SETTLE_DELAY: float = float(os.getenv("PAGE_SETTLE_DELAY", "2.0"))
    INTER_PAGE_DELAY: float = float(os.getenv("INTER_PAGE_DELAY", "1.5"))

    # Worker
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "50"))
    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "5"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # API Security
    API_KEY: str | None = os.getenv("API_KEY")

    @classmethod
    def validate(cls, require_browser: bool = True) -> None:
        """Validate required configuration."""
        errors = []
        if cls.STORE_BACKEND not in ("supabase", "sqlite"):
            errors.append(f"STORE_BACKEND must be 'supabase' or 'sqlite', got {cls.STORE_BACKEND!r}")
        if cls.STORE_BACKEND == "supabase":
            if not cls.SUPABASE_URL:
                errors.append("SUPABASE_URL is required")
            if not cls.SUPABASE_SERVICE_ROLE:
                errors.append("SUPABASE_SERVICE_ROLE is required")
        if require_browser:
            if cls.BROWSER_PROVIDER not in ("gologin", "local"):
                errors.append(f"BROWSER_PROVIDER must be 'gologin' or 'local', got {cls.BROWSER_PROVIDER!r}")
            if cls.BROWSER_PROVIDER == "gologin":
                if not cls.GL_API_TOKEN:
                    errors.append("GL_API_TOKEN is required")
                if not cls.GL_PROFILE_ID:
                    errors.append("GL_PROFILE_ID is required")
        if cls.MAX_PAGES < 1:
            errors.append("MAX_PAGES must be at least 1")
        if cls.BATCH_SIZE < 1:
            errors.append("BATCH_SIZE must be at least 1")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


config = Config()
