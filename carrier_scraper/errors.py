"""Error taxonomy for the scraping pipeline."""
from typing import Optional


class ScraperError(Exception):
    """Base class for pipeline errors."""


class ProvisioningError(ScraperError, ConnectionError):
    """Remote browser could not be allocated or connected."""


class InvalidTransition(ScraperError):
    """A session transition was requested from a state that does not allow it."""

    def __init__(self, session_id: str, current: str, requested: str):
        self.session_id = session_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Session {session_id} cannot move from '{current}' to '{requested}'"
        )


class SessionNotFound(ScraperError):
    """No session with the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class PortalUnreachableError(ScraperError):
    """Neither the data marker nor the login form appeared on the portal tab."""


class LoginRequiredError(PortalUnreachableError):
    """The portal tab shows a login form when scraping should start."""


class ExtractionFieldMiss(ScraperError):
    """A record's detail panel or one of its labeled fields was not found."""

    def __init__(self, policy_number: str, field: str, reason: Optional[str] = None):
        self.policy_number = policy_number
        self.field = field
        message = f"Policy {policy_number or '<blank>'}: field '{field}' not found"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class PersistenceError(ScraperError):
    """A batch write failed."""


class SessionStopped(ScraperError):
    """The session was stopped by an operator while scraping."""
