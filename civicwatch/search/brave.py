"""Brave web search restricted to trusted French press publishers."""

import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

import requests

from ..errors import ExternalServiceError, RateLimitError
from ..matching.text import strip_title_marker

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

# Domain -> display name
TRUSTED_PUBLISHERS = {
    "lemonde.fr": "Le Monde",
    "lefigaro.fr": "Le Figaro",
    "liberation.fr": "Libération",
    "francetvinfo.fr": "Franceinfo",
    "mediapart.fr": "Mediapart",
    "publicsenat.fr": "Public Sénat",
    "lcp.fr": "LCP",
    "ouest-france.fr": "Ouest-France",
    "20minutes.fr": "20 Minutes",
    "bfmtv.com": "BFM TV",
    "tf1info.fr": "TF1 Info",
    "ladepeche.fr": "La Dépêche",
    "sudouest.fr": "Sud Ouest",
    "lexpress.fr": "L'Express",
    "lobs.fr": "L'Obs",
    "lepoint.fr": "Le Point",
    "huffingtonpost.fr": "HuffPost",
    "europe1.fr": "Europe 1",
    "rtl.fr": "RTL",
    "reuters.com": "Reuters",
    "afp.com": "AFP",
    "leprogres.fr": "Le Progrès",
    "lavoixdunord.fr": "La Voix du Nord",
    "dna.fr": "DNA",
    "ledauphine.com": "Le Dauphiné",
}


@dataclass
class SearchResult:
    """A search hit from a trusted publisher."""
    url: str
    title: str
    publisher: str
    snippet: str = ""
    age: Optional[str] = None


def resolve_publisher(url: str) -> Optional[str]:
    """Map a URL to a trusted publisher name, or None."""
    hostname = (urlparse(url).hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    if not hostname:
        return None

    for domain, name in TRUSTED_PUBLISHERS.items():
        if hostname == domain or hostname.endswith(f".{domain}"):
            return name
    return None


def build_affair_query(full_name: str, affair_title: str) -> str:
    """Search query for press coverage of an affair."""
    title = " ".join(strip_title_marker(affair_title).split())
    return f"{full_name} {title} affaire judiciaire"


class BraveSearchClient:
    """Thin client for the Brave Search web endpoint."""

    service_name = "brave_search"

    def __init__(
        self,
        api_key: str,
        endpoint: str = BRAVE_SEARCH_URL,
        country: str = "fr",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.country = country
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(self, query: str, count: int = 10) -> List[SearchResult]:
        """Run a web search and keep trusted publishers only.

        Raises:
            RateLimitError: On HTTP 429
            ExternalServiceError: On network errors, timeouts or other failures
        """
        params = {
            "q": query,
            "country": self.country,
            "search_lang": self.country,
            "count": count,
        }
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "X-Subscription-Token": self.api_key,
        }

        try:
            response = self.session.get(
                self.endpoint, params=params, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ExternalServiceError(
                f"Brave search request failed: {e}", service=self.service_name, cause=e
            ) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Brave search rate limit exceeded",
                service=self.service_name,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if not response.ok:
            raise ExternalServiceError(
                f"Brave search error: {response.status_code} {response.reason}",
                service=self.service_name,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                "Brave search returned invalid JSON", service=self.service_name, cause=e
            ) from e

        results = []
        for item in (payload.get("web") or {}).get("results", []):
            url = item.get("url") or ""
            publisher = resolve_publisher(url)
            if publisher is None:
                continue
            results.append(
                SearchResult(
                    url=url,
                    title=item.get("title") or "",
                    publisher=publisher,
                    snippet=item.get("description") or "",
                    age=item.get("age"),
                )
            )

        logger.debug(f"Brave search '{query}': {len(results)} trusted results")
        return results
