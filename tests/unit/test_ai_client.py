"""Tests for the AI provider and the classification and extraction parsers."""

from datetime import date
from types import SimpleNamespace
from unittest.mock import patch

import anthropic
import httpx
import pytest

from civicwatch.errors import ConfigurationError, ExternalServiceError, RateLimitError
from civicwatch.models import (
    AIConfig,
    Affair,
    AffairCategory,
    AffairStatus,
    IssueType,
    Recommendation,
)
from civicwatch.moderation.ai_client import (
    MODERATION_TOOL,
    AffairClassifier,
    ClaudeProvider,
    EnrichmentExtractor,
    ModerationContext,
    clamp_confidence,
    create_provider,
    parse_classification,
    parse_date,
    parse_enrichment,
    parse_int,
)

from conftest import FakeProvider, press_source

ANTHROPIC_CLIENT = "civicwatch.moderation.ai_client.anthropic.Anthropic"


def tool_response(name, payload):
    return SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Voici mon analyse."),
            SimpleNamespace(type="tool_use", name=name, input=payload),
        ]
    )


def http_response(status_code, headers=None):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return httpx.Response(status_code, request=request, headers=headers or {})


class TestParsers:
    """Test lenient value parsing."""

    def test_parse_int(self):
        assert parse_int(12) == 12
        assert parse_int(12.7) == 12
        assert parse_int("18") == 18
        assert parse_int(True) is None
        assert parse_int("dix") is None

    def test_parse_date(self):
        assert parse_date("2023-06-15") == date(2023, 6, 15)
        assert parse_date("2023-06-15T10:00:00Z") == date(2023, 6, 15)
        assert parse_date("juin 2023") is None
        assert parse_date(None) is None

    def test_clamp_confidence(self):
        assert clamp_confidence(150) == 100
        assert clamp_confidence(-5) == 0
        assert clamp_confidence(None) == 50
        assert clamp_confidence("n/a", default=0) == 0


class TestParseClassification:
    """Test mapping raw tool input to a result."""

    def test_valid_payload(self, sample_classification):
        sample_classification["corrected_status"] = "MISE_EN_EXAMEN"
        sample_classification["issues"] = [{"type": "HOMONYM_RISK", "detail": "Deux élus du même nom"}]

        result = parse_classification(sample_classification, model="m")

        assert result.recommendation == Recommendation.PUBLISH
        assert result.confidence == 88
        assert result.corrected_status == AffairStatus.MISE_EN_EXAMEN
        assert result.has_issue(IssueType.HOMONYM_RISK)
        assert result.model == "m"

    def test_unknown_values_fall_back(self, sample_classification):
        sample_classification.update(
            recommendation="MAYBE",
            corrected_status="INCONNU",
            corrected_category="NOPE",
            issues=[{"type": "SOMETHING_ELSE", "detail": "x"}, "garbage"],
        )

        result = parse_classification(sample_classification)

        assert result.recommendation == Recommendation.NEEDS_REVIEW
        assert result.corrected_status is None
        assert result.corrected_category is None
        assert result.issues == []

    def test_blank_corrections_are_none(self, sample_classification):
        sample_classification["corrected_title"] = "   "

        assert parse_classification(sample_classification).corrected_title is None

    def test_to_review(self, sample_classification):
        review = parse_classification(sample_classification, model="m").to_review("a1")

        assert review.affair_id == "a1"
        assert review.recommendation == Recommendation.PUBLISH
        assert review.is_pending
        assert review.duplicate_of_id is None


class TestParseEnrichment:
    """Test mapping raw enrichment output."""

    def test_full_payload(self, sample_enrichment):
        result = parse_enrichment(sample_enrichment, model="m")

        assert result.status == AffairStatus.CONDAMNATION_PREMIERE_INSTANCE
        assert result.category == AffairCategory.DETOURNEMENT_FONDS_PUBLICS
        assert result.sentence.prison_months == 18
        assert result.sentence.prison_suspended is True
        assert result.sentence.fine_amount == 15000.0
        assert result.verdict_date == date(2023, 6, 15)
        assert result.sources_used[0].published_date == date(2023, 6, 16)
        assert result.confidence == 82

    def test_missing_confidence_defaults_to_zero(self):
        result = parse_enrichment({"enriched_title": "Titre", "reasoning": "?"})

        assert result.confidence == 0
        assert result.sentence is None
        assert result.sources_used == []


class TestModerationContext:
    """Test the prompt sent to the classifier."""

    def test_prompt_lists_sources_and_siblings(self):
        affair = Affair(
            politician_id="p1",
            title="Affaire des assistants",
            prison_months=12,
            prison_suspended=True,
            sources=[press_source("https://www.lemonde.fr/a", title="Article du Monde")],
        )
        context = ModerationContext(affair, "Jean Dupont", ["Affaire Bygmalion"])

        prompt = context.to_prompt()

        assert "Politicien : Jean Dupont" in prompt
        assert "Article du Monde" in prompt
        assert "12 mois de prison avec sursis" in prompt
        assert "- Affaire Bygmalion" in prompt

    def test_prompt_without_sources(self):
        prompt = ModerationContext(Affair(politician_id="p1", title="X"), "Jean Dupont").to_prompt()

        assert "Aucune source fournie." in prompt


class TestCreateProvider:
    """Test provider construction from configuration."""

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            create_provider(AIConfig(api_key=None))

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_provider(AIConfig(provider="openai", api_key="sk-test"))

    @patch(ANTHROPIC_CLIENT)
    def test_claude_provider(self, mock_anthropic):
        provider = create_provider(AIConfig(api_key="sk-test", model="claude-test", timeout=30))

        assert isinstance(provider, ClaudeProvider)
        assert provider.model == "claude-test"
        mock_anthropic.assert_called_once_with(api_key="sk-test", timeout=30)


class TestClaudeProvider:
    """Test the Anthropic call and its error mapping."""

    @patch(ANTHROPIC_CLIENT)
    def test_forced_tool_call(self, mock_anthropic, sample_classification):
        client = mock_anthropic.return_value
        client.messages.create.return_value = tool_response("moderate_affair", sample_classification)
        provider = ClaudeProvider(api_key="sk-test", model="claude-test")

        data = provider.call_tool("system", "user", MODERATION_TOOL)

        assert data == sample_classification
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "moderate_affair"}
        assert kwargs["tools"] == [MODERATION_TOOL]
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]

    @patch(ANTHROPIC_CLIENT)
    def test_no_tool_block_returns_none(self, mock_anthropic):
        mock_anthropic.return_value.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Je ne peux pas.")]
        )
        provider = ClaudeProvider(api_key="sk-test")

        assert provider.call_tool("s", "u", MODERATION_TOOL) is None

    @patch(ANTHROPIC_CLIENT)
    def test_rate_limit_is_mapped(self, mock_anthropic):
        mock_anthropic.return_value.messages.create.side_effect = anthropic.RateLimitError(
            "rate limited", response=http_response(429, {"retry-after": "12"}), body=None
        )
        provider = ClaudeProvider(api_key="sk-test")

        with pytest.raises(RateLimitError) as exc_info:
            provider.call_tool("s", "u", MODERATION_TOOL)

        assert exc_info.value.retry_after == 12.0
        assert exc_info.value.service == "anthropic"

    @patch(ANTHROPIC_CLIENT)
    def test_status_error_is_mapped(self, mock_anthropic):
        mock_anthropic.return_value.messages.create.side_effect = anthropic.InternalServerError(
            "overloaded", response=http_response(500), body=None
        )
        provider = ClaudeProvider(api_key="sk-test")

        with pytest.raises(ExternalServiceError) as exc_info:
            provider.call_tool("s", "u", MODERATION_TOOL)

        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, RateLimitError)

    @patch(ANTHROPIC_CLIENT)
    def test_connection_error_is_mapped(self, mock_anthropic):
        mock_anthropic.return_value.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        provider = ClaudeProvider(api_key="sk-test")

        with pytest.raises(ExternalServiceError) as exc_info:
            provider.call_tool("s", "u", MODERATION_TOOL)

        assert exc_info.value.status_code is None


class TestClassifierAndExtractor:
    """Test the thin wrappers around the provider."""

    def test_classifier_uses_moderation_tool(self, sample_classification):
        provider = FakeProvider([sample_classification], model="claude-test")
        context = ModerationContext(Affair(politician_id="p1", title="X"), "Jean Dupont")

        result = AffairClassifier(provider).classify(context)

        assert result.recommendation == Recommendation.PUBLISH
        assert result.model == "claude-test"
        assert provider.calls[0]["tool"] == "moderate_affair"

    def test_classifier_without_tool_output_fails(self):
        context = ModerationContext(Affair(politician_id="p1", title="X"), "Jean Dupont")

        with pytest.raises(ExternalServiceError):
            AffairClassifier(FakeProvider([])).classify(context)

    def test_extractor_returns_none_without_tool_output(self):
        affair = Affair(politician_id="p1", title="X")

        assert EnrichmentExtractor(FakeProvider([])).extract("Jean Dupont", affair, ["article"]) is None

    def test_extractor_passes_articles(self, sample_enrichment):
        provider = FakeProvider([sample_enrichment])
        affair = Affair(politician_id="p1", title="X")

        result = EnrichmentExtractor(provider).extract("Jean Dupont", affair, ["--- Article ---"])

        assert result.confidence == 82
        assert "--- Article ---" in provider.calls[0]["user_content"]
        assert provider.calls[0]["tool"] == "enrich_affair"
