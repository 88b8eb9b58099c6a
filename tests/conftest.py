"""Shared fixtures for civicwatch tests."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from civicwatch.models import (
    Affair,
    AffairCategory,
    AffairStatus,
    Entity,
    Source,
    SourceType,
)
from civicwatch.moderation.ai_client import AIProvider
from civicwatch.rate_limiting import RateLimiter
from civicwatch.repositories import SQLiteStore
from civicwatch.security.audit import AuditLogger


class FakeProvider(AIProvider):
    """AI provider returning canned tool inputs in order.

    An item that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses: Optional[List[Any]] = None, model: str = "test-model"):
        self.model = model
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def call_tool(self, system, user_content, tool):
        self.calls.append({"system": system, "user_content": user_content, "tool": tool["name"]})
        if not self.responses:
            return None
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def store():
    """In-memory store, discarded after each test."""
    db = SQLiteStore(":memory:")
    yield db
    db.close()


@pytest.fixture
def audit_logger():
    return Mock(spec=AuditLogger)


@pytest.fixture
def sleeps():
    """Records every pause requested by instant limiters."""
    return []


@pytest.fixture
def instant_limiter(sleeps):
    """Build rate limiters that never actually sleep."""

    def _make(name: str = "test", pause: float = 30.0) -> RateLimiter:
        return RateLimiter(0.0, pause, name=name, sleep=sleeps.append)

    return _make


@pytest.fixture
def make_entity(store):
    """Create and persist an entity."""

    def _make(first_name: str = "Jean", last_name: str = "Dupont", **kwargs) -> Entity:
        entity = Entity(first_name=first_name, last_name=last_name, **kwargs)
        return store.save_entity(entity)

    return _make


@pytest.fixture
def make_affair(store):
    """Create and persist an affair. Each call is one minute younger than the last."""
    counter = {"n": 0}
    base_time = datetime(2024, 1, 1, 12, 0, 0)

    def _make(politician_id: str, title: str = "Affaire des emplois fictifs", **kwargs) -> Affair:
        counter["n"] += 1
        kwargs.setdefault("created_at", base_time + timedelta(minutes=counter["n"]))
        affair = Affair(politician_id=politician_id, title=title, **kwargs)
        return store.save_affair(affair)

    return _make


def press_source(url: str, title: str = "Article", publisher: str = "Le Monde") -> Source:
    return Source(url=url, title=title, publisher=publisher, source_type=SourceType.PRESSE)


@pytest.fixture
def sample_classification() -> Dict[str, Any]:
    """Raw tool input for a clean PUBLISH recommendation."""
    return {
        "recommendation": "PUBLISH",
        "confidence": 88,
        "reasoning": "Sources vérifiables et description neutre.",
        "corrected_title": None,
        "corrected_description": None,
        "corrected_status": None,
        "corrected_category": None,
        "issues": [],
    }


@pytest.fixture
def sample_enrichment() -> Dict[str, Any]:
    """Raw tool input for a confident enrichment."""
    return {
        "enriched_title": "Condamnation de Jean Dupont pour détournement de fonds publics",
        "enriched_description": (
            "Jean Dupont a été condamné en première instance pour détournement de fonds "
            "publics. Le tribunal a prononcé une peine de prison avec sursis."
        ),
        "corrected_status": AffairStatus.CONDAMNATION_PREMIERE_INSTANCE.value,
        "corrected_category": AffairCategory.DETOURNEMENT_FONDS_PUBLICS.value,
        "sentence_details": {"prison_months": 18, "prison_suspended": True, "fine_amount": 15000},
        "facts_date": "2019-03-01",
        "verdict_date": "2023-06-15",
        "court": "Tribunal correctionnel de Paris",
        "confidence": 82,
        "reasoning": "Deux articles confirment la condamnation.",
        "sources_used": [
            {
                "url": "https://www.lemonde.fr/politique/article/dupont.html",
                "title": "Jean Dupont condamné",
                "publisher": "Le Monde",
                "published_date": "2023-06-16",
            }
        ],
    }


ARTICLE_TEXT = (
    "Le tribunal correctionnel de Paris a condamné jeudi Jean Dupont à dix-huit mois "
    "de prison avec sursis et 15 000 euros d'amende pour détournement de fonds publics. "
    "L'ancien élu a annoncé son intention de faire appel de cette décision. "
) * 3


def article_html(title: str = "Jean Dupont condamné", body: str = ARTICLE_TEXT) -> str:
    return (
        f"<html><head><title>{title} - Le Monde</title>"
        f'<meta property="og:title" content="{title}"></head>'
        "<body><nav>Menu Politique Economie</nav>"
        f"<article><h1>{title}</h1><p>{body}</p></article>"
        "<footer>Mentions légales</footer></body></html>"
    )
