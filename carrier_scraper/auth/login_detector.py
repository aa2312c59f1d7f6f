"""Tell apart a logged-in results page from the portal's login form."""
import re
import logging

from selectolax.parser import HTMLParser

from carrier_scraper.browser.endpoints import Portal

logger = logging.getLogger(__name__)

# Weak text hints; two or more together mean a login screen
_WEAK_LOGIN_HINTS = [
    r"\blog ?in\b",
    r"\bsign ?in\b",
    r"\bpassword\b",
    r"\busername\b",
    r"forgot (?:your )?password",
]


def has_portal_data(html_content: str | None, portal: Portal) -> bool:
    """True if the results table marker is present."""
    if not html_content:
        return False
    return HTMLParser(html_content).css_first(portal.data_marker) is not None


def is_login_page(html_content: str | None, final_url: str, portal: Portal) -> bool:
    """
    Detect if the tab shows the portal's login screen.
    Returns True if one of:
    - the login form marker is present and no result rows are
    - final_url is the portal's login URL or contains "login"
    - the page has no data and at least two weak login hints
    """
    url_lower = (final_url or "").lower()
    if url_lower.startswith(portal.login_url.lower()) or "/login" in url_lower:
        return True

    if not html_content:
        return False

    parser = HTMLParser(html_content)
    if parser.css_first(portal.data_marker) is not None:
        return False
    if parser.css_first(portal.login_marker) is not None:
        return True

    text = parser.body.text(separator=" ") if parser.body else ""
    hits = sum(1 for pattern in _WEAK_LOGIN_HINTS if re.search(pattern, text, re.IGNORECASE))
    if hits >= 2:
        logger.debug(f"Login page inferred from {hits} text hints on {final_url}")
        return True
    return False
