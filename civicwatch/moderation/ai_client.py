"""AI classification and extraction for affairs, using forced tool calls."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar

import anthropic

from ..errors import ConfigurationError, ExternalServiceError, RateLimitError
from ..models import (
    AIConfig,
    Affair,
    AffairCategory,
    AffairStatus,
    Issue,
    IssueType,
    ModerationReview,
    Recommendation,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")


class AIProvider(ABC):
    """Base class for AI providers."""

    model: str

    @abstractmethod
    def call_tool(
        self, system: str, user_content: str, tool: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Force a call to ``tool`` and return its input, or None if the model gave none."""


class ClaudeProvider(AIProvider):
    """Anthropic Messages API provider."""

    service_name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 2000,
        temperature: float = 0.0,
        timeout: float = 60.0,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    def call_tool(
        self, system: str, user_content: str, tool: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
                messages=[{"role": "user", "content": user_content}],
            )
        except anthropic.RateLimitError as e:
            retry_after = e.response.headers.get("retry-after") if e.response is not None else None
            raise RateLimitError(
                f"Anthropic rate limit: {e}",
                service=self.service_name,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                cause=e,
            ) from e
        except anthropic.APIStatusError as e:
            raise ExternalServiceError(
                f"Anthropic API error: {e.status_code}",
                service=self.service_name,
                status_code=e.status_code,
                cause=e,
            ) from e
        except anthropic.APIError as e:
            # Connection failures and timeouts
            raise ExternalServiceError(
                f"Anthropic request failed: {e}", service=self.service_name, cause=e
            ) from e

        for block in response.content:
            if block.type == "tool_use" and block.name == tool["name"]:
                return dict(block.input)
        return None


def create_provider(config: AIConfig) -> AIProvider:
    """Build the configured AI provider.

    Raises:
        ConfigurationError: Unknown provider or missing API key
    """
    if config.provider.lower() != "claude":
        raise ConfigurationError(f"Unsupported AI provider: {config.provider}", setting="ai.provider")
    if not config.api_key:
        raise ConfigurationError("ANTHROPIC_API_KEY is not set", setting="ai.api_key")

    return ClaudeProvider(
        api_key=config.api_key,
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout=config.timeout,
    )


def parse_enum(enum_cls: Type[E], value: Any, fallback: Optional[E] = None) -> Optional[E]:
    """Enum member for ``value``, or ``fallback`` when it is not a valid member."""
    if value is None:
        return fallback
    try:
        return enum_cls(value)
    except ValueError:
        return fallback


def parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def parse_date(value: Any) -> Optional[date]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def clamp_confidence(value: Any, default: int = 50) -> int:
    number = parse_int(value)
    if number is None:
        return default
    return max(0, min(100, number))


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# Moderation


MODERATION_TOOL = {
    "name": "moderate_affair",
    "description": (
        "Modère une affaire judiciaire : vérifie la qualité des données et la "
        "sécurité juridique, puis recommande PUBLISH, REJECT ou NEEDS_REVIEW."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "recommendation": {
                "type": "string",
                "enum": [r.value for r in Recommendation],
                "description": (
                    "PUBLISH = données fiables. REJECT = pas une affaire judiciaire ou "
                    "données insuffisantes. NEEDS_REVIEW = cas sensible ou ambigu."
                ),
            },
            "confidence": {
                "type": "integer",
                "minimum": 0,
                "maximum": 100,
                "description": "Confiance dans la recommandation (0-100).",
            },
            "reasoning": {
                "type": "string",
                "description": "Justification en français des points vérifiés et des problèmes.",
            },
            "corrected_title": {
                "type": ["string", "null"],
                "description": "Titre corrigé, sans marqueur. null si le titre est correct.",
            },
            "corrected_description": {
                "type": ["string", "null"],
                "description": "Description factuelle en 2-3 phrases. null si correcte.",
            },
            "corrected_status": {
                "type": ["string", "null"],
                "enum": [s.value for s in AffairStatus] + [None],
                "description": "Statut judiciaire corrigé d'après les sources. null si correct.",
            },
            "corrected_category": {
                "type": ["string", "null"],
                "enum": [c.value for c in AffairCategory] + [None],
                "description": "Catégorie corrigée. null si correcte.",
            },
            "issues": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {
                            "type": "string",
                            "enum": [t.value for t in IssueType if t != IssueType.ENRICHED_FROM_WEB],
                        },
                        "detail": {"type": "string"},
                    },
                    "required": ["type", "detail"],
                },
            },
        },
        "required": [
            "recommendation",
            "confidence",
            "reasoning",
            "corrected_title",
            "corrected_description",
            "corrected_status",
            "corrected_category",
            "issues",
        ],
    },
}

MODERATION_SYSTEM_PROMPT = """Tu es modérateur juridique pour un site citoyen qui recense les affaires judiciaires des responsables politiques. Tu décides si une affaire importée automatiquement peut être publiée.

SÉCURITÉ JURIDIQUE :
1. Présomption d'innocence : une mise en examen reste MISE_EN_EXAMEN. Ne suggère jamais une condamnation sans preuve explicite dans les sources.
2. CONDAMNATION_DEFINITIVE uniquement si les sources indiquent que le pourvoi a été rejeté ou que les délais de recours sont expirés.
3. Catégories sensibles (AGRESSION_SEXUELLE, HARCELEMENT_SEXUEL, VIOLENCE) : toujours NEEDS_REVIEW avec un issue SENSITIVE_CATEGORY.
4. N'invente aucune information absente des données fournies.
5. En cas de doute sur le statut, choisis la valeur la moins grave. En cas de doute sur la catégorie, utilise AUTRE ou signale WRONG_CATEGORY.

PUBLISH (confiance >= 80) : sources vérifiables, titre et description neutres, statut et catégorie cohérents, pas de risque d'homonymie.
REJECT : pas une affaire judiciaire, données insuffisantes (aucune source, description vide), doublon évident, politicien non impliqué.
NEEDS_REVIEW : catégorie sensible, sources ambiguës, homonymie possible, statut incertain, description non neutre.

TITRE : retire les marqueurs comme "[À VÉRIFIER]" et corrige la casse. Retourne null si le titre est correct.
DESCRIPTION : 2-3 phrases factuelles et neutres, sans artefact de génération. Retourne null si elle est correcte.
DATES : les faits précèdent le début de la procédure et le verdict. Sinon signale INVALID_DATES.
IMPLICATION : VICTIM et PLAINTIFF présentent moins de risque. DIRECT exige une vérification stricte.
DOUBLONS : si une affaire existante du même politicien porte un titre proche, signale POSSIBLE_DUPLICATE."""


@dataclass
class ModerationContext:
    """Everything the classifier sees about one affair."""
    affair: Affair
    politician_name: str
    sibling_titles: List[str] = field(default_factory=list)

    def to_prompt(self) -> str:
        affair = self.affair
        lines = [
            "Modère cette affaire judiciaire :",
            "",
            f"Politicien : {self.politician_name}",
            f"Titre : {affair.title}",
            f"Description : {affair.description}",
            f"Statut : {affair.status.value}",
            f"Catégorie : {affair.category.value}",
            f"Implication : {affair.involvement.value}",
        ]
        if affair.facts_date:
            lines.append(f"Date des faits : {affair.facts_date.isoformat()}")
        if affair.start_date:
            lines.append(f"Date de début : {affair.start_date.isoformat()}")
        if affair.verdict_date:
            lines.append(f"Date du verdict : {affair.verdict_date.isoformat()}")
        if affair.court:
            lines.append(f"Juridiction : {affair.court}")
        sentence = affair.sentence_summary()
        if sentence:
            lines.append(f"Peine : {sentence}")

        lines.append("")
        if affair.sources:
            lines.append(f"Sources ({len(affair.sources)}) :")
            for source in affair.sources:
                published = source.published_at.isoformat() if source.published_at else "date inconnue"
                lines.append(f'- "{source.title}" ({source.publisher}, {published}) {source.url}')
        else:
            lines.append("Aucune source fournie.")

        if self.sibling_titles:
            lines.append("")
            lines.append("Affaires existantes du même politicien :")
            lines.extend(f"- {title}" for title in self.sibling_titles)

        return "\n".join(lines)


@dataclass
class ClassificationResult:
    """Parsed classifier output."""
    recommendation: Recommendation
    confidence: int
    reasoning: str
    corrected_title: Optional[str] = None
    corrected_description: Optional[str] = None
    corrected_status: Optional[AffairStatus] = None
    corrected_category: Optional[AffairCategory] = None
    issues: List[Issue] = field(default_factory=list)
    model: str = ""

    def has_issue(self, issue_type: IssueType) -> bool:
        return any(issue.type == issue_type for issue in self.issues)

    def to_review(self, affair_id: str) -> ModerationReview:
        return ModerationReview(
            affair_id=affair_id,
            recommendation=self.recommendation,
            confidence=self.confidence,
            reasoning=self.reasoning,
            suggested_title=self.corrected_title,
            suggested_description=self.corrected_description,
            suggested_status=self.corrected_status,
            suggested_category=self.corrected_category,
            issues=list(self.issues),
            model=self.model,
        )


def parse_classification(data: Dict[str, Any], model: str = "") -> ClassificationResult:
    """Turn raw tool input into a ClassificationResult.

    Unknown recommendations fall back to NEEDS_REVIEW, unknown corrections to
    None, and issues outside the known set are dropped.
    """
    issues = []
    for raw in data.get("issues") or []:
        if not isinstance(raw, dict):
            continue
        issue_type = parse_enum(IssueType, raw.get("type"))
        if issue_type is None:
            continue
        issues.append(Issue(type=issue_type, detail=str(raw.get("detail") or "")))

    return ClassificationResult(
        recommendation=parse_enum(Recommendation, data.get("recommendation"), Recommendation.NEEDS_REVIEW),
        confidence=clamp_confidence(data.get("confidence")),
        reasoning=str(data.get("reasoning") or ""),
        corrected_title=_optional_text(data.get("corrected_title")),
        corrected_description=_optional_text(data.get("corrected_description")),
        corrected_status=parse_enum(AffairStatus, data.get("corrected_status")),
        corrected_category=parse_enum(AffairCategory, data.get("corrected_category")),
        issues=issues,
        model=model,
    )


class AffairClassifier:
    """Asks the AI provider for a moderation recommendation."""

    def __init__(self, provider: AIProvider):
        self.provider = provider

    def classify(self, context: ModerationContext) -> ClassificationResult:
        """Classify one affair.

        Raises:
            RateLimitError: The provider signalled a rate limit
            ExternalServiceError: The call failed or returned no tool call
        """
        data = self.provider.call_tool(MODERATION_SYSTEM_PROMPT, context.to_prompt(), MODERATION_TOOL)
        if data is None:
            raise ExternalServiceError("No tool_use content in AI response", service="anthropic")
        return parse_classification(data, model=self.provider.model)


# Enrichment


ENRICHMENT_TOOL = {
    "name": "enrich_affair",
    "description": (
        "Enrichit une affaire judiciaire à partir d'articles de presse. "
        "N'extrais que les faits vérifiables présents dans les articles."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "enriched_title": {
                "type": "string",
                "description": "Titre factuel, sans marqueur '[À VÉRIFIER]'.",
            },
            "enriched_description": {
                "type": "string",
                "description": "Description de 3 à 5 phrases : faits, procédure, peine, contexte.",
            },
            "corrected_status": {
                "type": "string",
                "enum": [s.value for s in AffairStatus],
                "description": (
                    "Statut d'après les articles. CONDAMNATION_DEFINITIVE seulement si "
                    "le caractère définitif est confirmé explicitement."
                ),
            },
            "corrected_category": {
                "type": "string",
                "enum": [c.value for c in AffairCategory],
            },
            "sentence_details": {
                "type": "object",
                "properties": {
                    "prison_months": {"type": "integer"},
                    "prison_suspended": {"type": "boolean"},
                    "fine_amount": {"type": "number"},
                    "ineligibility_months": {"type": "integer"},
                    "community_service": {"type": "integer"},
                    "other": {"type": "string"},
                },
                "description": "Peine prononcée si les articles la mentionnent.",
            },
            "facts_date": {"type": "string", "description": "Date des faits, YYYY-MM-DD."},
            "verdict_date": {"type": "string", "description": "Date du verdict, YYYY-MM-DD."},
            "court": {"type": "string", "description": "Juridiction."},
            "confidence": {
                "type": "integer",
                "minimum": 0,
                "maximum": 100,
                "description": (
                    "80+ si les articles confirment clairement l'affaire et la personne. "
                    "Moins de 30 s'ils parlent d'une autre personne ou d'une autre affaire."
                ),
            },
            "reasoning": {"type": "string"},
            "sources_used": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "url": {"type": "string"},
                        "title": {"type": "string"},
                        "publisher": {"type": "string"},
                        "published_date": {"type": "string"},
                    },
                    "required": ["url", "title", "publisher"],
                },
            },
        },
        "required": ["enriched_title", "enriched_description", "confidence", "reasoning", "sources_used"],
    },
}

ENRICHMENT_SYSTEM_PROMPT = """Tu enrichis des fiches d'affaires judiciaires de responsables politiques à partir d'articles de presse fournis.

RÈGLES :
1. N'extrais que les informations présentes dans les articles. N'invente rien.
2. Présomption d'innocence : pour une mise en examen, reste au conditionnel.
3. CONDAMNATION_DEFINITIVE uniquement si l'article confirme que le jugement est définitif. Sinon CONDAMNATION_PREMIERE_INSTANCE.
4. Vérifie que les articles concernent la même personne et la même affaire. Attention aux homonymes.
5. Si les articles ne confirment pas l'affaire, indique une confiance inférieure à 30.
6. Ton neutre et factuel.

TITRE : "Condamnation de [Prénom Nom] pour [motif]", "Mise en examen de [Prénom Nom] pour [motif]" ou "Affaire [nom]"."""


@dataclass
class SentenceDetails:
    prison_months: Optional[int] = None
    prison_suspended: Optional[bool] = None
    fine_amount: Optional[float] = None
    ineligibility_months: Optional[int] = None
    community_service_hours: Optional[int] = None
    other: Optional[str] = None


@dataclass
class SourceReference:
    url: str
    title: str = ""
    publisher: str = ""
    published_date: Optional[date] = None


@dataclass
class EnrichmentResult:
    """Structured facts extracted from press articles."""
    title: Optional[str]
    description: Optional[str]
    confidence: int
    reasoning: str
    status: Optional[AffairStatus] = None
    category: Optional[AffairCategory] = None
    sentence: Optional[SentenceDetails] = None
    facts_date: Optional[date] = None
    verdict_date: Optional[date] = None
    court: Optional[str] = None
    sources_used: List[SourceReference] = field(default_factory=list)
    model: str = ""


def parse_enrichment(data: Dict[str, Any], model: str = "") -> EnrichmentResult:
    sentence = None
    raw_sentence = data.get("sentence_details")
    if isinstance(raw_sentence, dict):
        fine = raw_sentence.get("fine_amount")
        suspended = raw_sentence.get("prison_suspended")
        sentence = SentenceDetails(
            prison_months=parse_int(raw_sentence.get("prison_months")),
            prison_suspended=suspended if isinstance(suspended, bool) else None,
            fine_amount=float(fine) if isinstance(fine, (int, float)) and not isinstance(fine, bool) else None,
            ineligibility_months=parse_int(raw_sentence.get("ineligibility_months")),
            community_service_hours=parse_int(raw_sentence.get("community_service")),
            other=_optional_text(raw_sentence.get("other")),
        )

    sources = []
    for raw in data.get("sources_used") or []:
        if isinstance(raw, dict) and raw.get("url"):
            sources.append(
                SourceReference(
                    url=str(raw["url"]),
                    title=str(raw.get("title") or ""),
                    publisher=str(raw.get("publisher") or ""),
                    published_date=parse_date(raw.get("published_date")),
                )
            )

    return EnrichmentResult(
        title=_optional_text(data.get("enriched_title")),
        description=_optional_text(data.get("enriched_description")),
        confidence=clamp_confidence(data.get("confidence"), default=0),
        reasoning=str(data.get("reasoning") or ""),
        status=parse_enum(AffairStatus, data.get("corrected_status")),
        category=parse_enum(AffairCategory, data.get("corrected_category")),
        sentence=sentence,
        facts_date=parse_date(data.get("facts_date")),
        verdict_date=parse_date(data.get("verdict_date")),
        court=_optional_text(data.get("court")),
        sources_used=sources,
        model=model,
    )


class EnrichmentExtractor:
    """Extracts structured affair facts from scraped press text."""

    def __init__(self, provider: AIProvider):
        self.provider = provider

    def extract(
        self, politician_name: str, affair: Affair, article_contexts: List[str]
    ) -> Optional[EnrichmentResult]:
        """Returns None when the model produced no structured answer."""
        user_content = "\n".join(
            [
                "AFFAIRE À ENRICHIR :",
                f"- Politicien : {politician_name}",
                f"- Titre actuel : {affair.title}",
                f"- Description actuelle : {affair.description}",
                f"- Statut actuel : {affair.status.value}",
                f"- Catégorie actuelle : {affair.category.value}",
                "",
                "ARTICLES DE PRESSE :",
                "",
                "\n\n".join(article_contexts),
                "",
                f"Vérifie que les articles parlent bien de {politician_name} et de cette affaire, "
                "puis extrais peine, dates, juridiction, titre et description.",
            ]
        )

        data = self.provider.call_tool(ENRICHMENT_SYSTEM_PROMPT, user_content, ENRICHMENT_TOOL)
        if data is None:
            logger.warning(f"⚠️ No structured enrichment returned for affair {affair.id}")
            return None
        return parse_enrichment(data, model=self.provider.model)
