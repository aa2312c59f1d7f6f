"""URL builders and DOM markers for supported carrier portals."""
from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class Portal:
    """Where a portal lives and how to tell its pages apart."""

    portal_id: str
    carrier_name: str
    domains: tuple[str, ...]
    login_url: str
    landing_url: str
    page_url_template: str
    # Present once the results table has rendered
    data_marker: str
    # Present when the operator is not logged in
    login_marker: str

    def page_url(self, page_number: int) -> str:
        """Get the results URL for a given page."""
        return self.page_url_template.format(page=page_number)

    def owns_url(self, url: str | None) -> bool:
        """True if ``url`` is on one of the portal's domains."""
        if not url:
            return False
        host = (urlparse(url).hostname or "").lower()
        return any(host == domain or host.endswith(f".{domain}") for domain in self.domains)

    def is_landing_url(self, url: str | None) -> bool:
        if not url:
            return False
        landing = urlparse(self.landing_url)
        current = urlparse(url)
        if current.hostname != landing.hostname or current.path.rstrip("/") != landing.path.rstrip("/"):
            return False
        return "page=" not in current.query or "page=1" in current.query.split("&")

    def as_job_config(self) -> dict:
        """Portal settings recorded on the job for operators."""
        return {
            "carrier_name": self.carrier_name,
            "login_url": self.login_url,
            "portal_url": self.landing_url,
        }


GTL = Portal(
    portal_id="gtl",
    carrier_name="GTL",
    domains=("gtlink.gtlic.com", "gtlic.com"),
    login_url="https://eapp.gtlic.com/",
    landing_url="https://gtlink.gtlic.com/MyBusiness",
    page_url_template="https://gtlink.gtlic.com/MyBusiness?page={page}",
    data_marker='.DivTableRow, .policy-table, [data-testid*="policy"], tbody tr',
    login_marker='input[name="username"], input[name="password"], form[action*="login"]',
)

PORTALS: dict[str, Portal] = {GTL.portal_id: GTL}


def get_portal(portal_id: str) -> Portal:
    try:
        return PORTALS[portal_id.lower()]
    except KeyError:
        raise ValueError(f"Unknown portal '{portal_id}' (known: {', '.join(sorted(PORTALS))})") from None
