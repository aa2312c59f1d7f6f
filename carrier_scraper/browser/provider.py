"""Remote browser providers: where the CDP endpoint comes from."""
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from carrier_scraper.config import config
from carrier_scraper.errors import ProvisioningError
from carrier_scraper.parse.redact import redact_string

logger = logging.getLogger(__name__)


@dataclass
class BrowserAllocation:
    """A running remote browser."""

    endpoint: str
    # Link an operator opens to log in by hand, when the provider has one
    browser_url: Optional[str] = None


class BrowserProvider:
    """Allocates and releases a remote browser reachable over CDP."""

    name = "base"

    async def allocate(self) -> BrowserAllocation:
        raise NotImplementedError

    async def release(self) -> None:
        raise NotImplementedError


class GoLoginProvider(BrowserProvider):
    """GoLogin cloud browser bound to one stored profile.

    The profile keeps the operator's portal cookies between allocations, so a
    login done through ``browser_url`` is still valid when the worker connects.
    """

    name = "gologin"

    def __init__(
        self,
        token: str | None = None,
        profile_id: str | None = None,
        api_url: str | None = None,
        connect_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.token = token or config.GL_API_TOKEN
        self.profile_id = profile_id or config.GL_PROFILE_ID
        if not self.token or not self.profile_id:
            raise ValueError("GoLogin configuration missing (GL_API_TOKEN, GL_PROFILE_ID)")
        self.api_url = (api_url or config.GL_API_URL).rstrip("/")
        self.connect_url = connect_url or config.GL_CLOUD_CONNECT_URL
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                http2=True,
                timeout=30,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        return self._client

    @property
    def _web_url(self) -> str:
        return f"{self.api_url}/browser/{self.profile_id}/web"

    def cdp_endpoint(self) -> str:
        query = urlencode({"token": self.token, "profile": self.profile_id})
        return f"{self.connect_url}?{query}"

    async def allocate(self) -> BrowserAllocation:
        """Start (or reuse) the cloud browser for the profile."""
        try:
            response = await self._http().post(self._web_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProvisioningError(
                f"GoLogin could not start profile {self.profile_id}: {redact_string(str(e))}"
            ) from e

        payload = response.json() if response.content else {}
        browser_url = payload.get("remoteOrbitaUrl") if isinstance(payload, dict) else None
        logger.info(f"GoLogin profile {self.profile_id} running (operator URL: {browser_url or 'n/a'})")
        return BrowserAllocation(endpoint=self.cdp_endpoint(), browser_url=browser_url)

    async def release(self) -> None:
        """Stop the cloud browser. Failures are logged, not raised."""
        try:
            response = await self._http().delete(self._web_url)
            response.raise_for_status()
            logger.info(f"GoLogin profile {self.profile_id} stopped")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to stop GoLogin profile {self.profile_id}: {redact_string(str(e))}")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LocalCDPProvider(BrowserProvider):
    """A Chrome started by hand with ``--remote-debugging-port``."""

    name = "local"

    def __init__(self, cdp_url: str | None = None):
        self.cdp_url = cdp_url or config.CDP_URL

    async def allocate(self) -> BrowserAllocation:
        return BrowserAllocation(endpoint=self.cdp_url, browser_url=None)

    async def release(self) -> None:
        # Not ours to stop
        return None


def build_provider(name: str | None = None) -> BrowserProvider:
    """Provider selected by BROWSER_PROVIDER."""
    name = (name or config.BROWSER_PROVIDER).lower()
    if name == "gologin":
        return GoLoginProvider()
    if name == "local":
        return LocalCDPProvider()
    raise ValueError(f"Unknown browser provider '{name}'")
