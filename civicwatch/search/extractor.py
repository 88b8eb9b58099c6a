"""Readable text extraction from press article pages."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import requests
from bs4 import BeautifulSoup

from ..errors import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; CivicWatch/1.0)",
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "fr-FR,fr;q=0.9",
}

_WHITESPACE = re.compile(r"\s+")


@dataclass
class ExtractedPage:
    url: str
    title: str
    text: str


def clean_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def extract_main_text(html: str) -> str:
    """Article body text, preferring <article>, then <main>, then paragraphs."""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style", "noscript", "iframe", "form"]):
        tag.decompose()
    for tag in soup.find_all(["header", "nav", "footer", "aside"]):
        tag.decompose()

    for tag_name in ("article", "main"):
        node = soup.find(tag_name)
        if node is not None:
            text = clean_text(node.get_text(" "))
            if text:
                return text

    paragraphs = [clean_text(p.get_text(" ")) for p in soup.find_all("p")]
    return " ".join(p for p in paragraphs if p)


def extract_title(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        return clean_text(og_title["content"])
    if soup.title and soup.title.string:
        return clean_text(soup.title.string)
    return ""


class PageExtractor:
    """Downloads a page and returns its readable text."""

    service_name = "page_fetch"

    def __init__(
        self,
        timeout: float = 15.0,
        min_chars: int = 200,
        max_chars: int = 12000,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.min_chars = min_chars
        self.max_chars = max_chars
        self.session = session or requests.Session()

    def fetch(self, url: str) -> ExtractedPage:
        """Fetch ``url`` and extract its article text.

        Raises:
            ExternalServiceError: On network failure, non-2xx status, or
                when the page has too little readable text
        """
        try:
            response = self.session.get(url, headers=DEFAULT_HEADERS, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            status_code = getattr(getattr(e, "response", None), "status_code", None)
            raise ExternalServiceError(
                f"Page fetch failed for {url}: {e}",
                service=self.service_name,
                status_code=status_code,
                cause=e,
            ) from e

        html = response.text
        text = extract_main_text(html)
        if len(text) <= self.min_chars:
            raise ExternalServiceError(
                f"Not enough readable text at {url} ({len(text)} chars)",
                service=self.service_name,
            )

        return ExtractedPage(url=url, title=extract_title(html), text=text[: self.max_chars])
