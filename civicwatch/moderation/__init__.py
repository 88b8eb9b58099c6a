"""
Affair Moderation

AI-assisted review of imported affairs with a web enrichment fallback.

Components:
- ModerationPipeline: deduplication, classification and enrichment phases
- AffairClassifier / EnrichmentExtractor: forced tool calls to the AI provider
- EnrichmentAgent: search, extraction and structured write-back
- ReviewApplier: the explicit step that applies or dismisses a review
"""

from .ai_client import (
    AIProvider,
    ClaudeProvider,
    create_provider,
    AffairClassifier,
    ModerationContext,
    ClassificationResult,
    EnrichmentExtractor,
    EnrichmentResult,
    SentenceDetails,
)
from .enrichment import EnrichmentAgent, EnrichmentOutcome
from .pipeline import ModerationPipeline, ModerationStats, enforce_sensitive_review
from .review import ReviewApplier

__all__ = [
    # AI
    "AIProvider",
    "ClaudeProvider",
    "create_provider",
    "AffairClassifier",
    "ModerationContext",
    "ClassificationResult",
    "EnrichmentExtractor",
    "EnrichmentResult",
    "SentenceDetails",
    # Enrichment
    "EnrichmentAgent",
    "EnrichmentOutcome",
    # Pipeline
    "ModerationPipeline",
    "ModerationStats",
    "enforce_sensitive_review",
    # Review
    "ReviewApplier",
]
