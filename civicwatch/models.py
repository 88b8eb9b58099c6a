"""Data models for civicwatch."""

from typing import Dict, List, Any, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator
from enum import Enum
import uuid

from .utils import utc_now


def new_id() -> str:
    return uuid.uuid4().hex


class MandateType(str, Enum):
    """Offices a public figure can hold."""

    PRESIDENT_REPUBLIQUE = "PRESIDENT_REPUBLIQUE"
    PREMIER_MINISTRE = "PREMIER_MINISTRE"
    MINISTRE = "MINISTRE"
    MINISTRE_DELEGUE = "MINISTRE_DELEGUE"
    SECRETAIRE_ETAT = "SECRETAIRE_ETAT"
    DEPUTE = "DEPUTE"
    SENATEUR = "SENATEUR"
    DEPUTE_EUROPEEN = "DEPUTE_EUROPEEN"
    PRESIDENT_REGION = "PRESIDENT_REGION"
    PRESIDENT_DEPARTEMENT = "PRESIDENT_DEPARTEMENT"
    MAIRE = "MAIRE"
    PRESIDENT_PARTI = "PRESIDENT_PARTI"
    ADJOINT_MAIRE = "ADJOINT_MAIRE"
    CONSEILLER_REGIONAL = "CONSEILLER_REGIONAL"
    CONSEILLER_DEPARTEMENTAL = "CONSEILLER_DEPARTEMENTAL"
    CONSEILLER_MUNICIPAL = "CONSEILLER_MUNICIPAL"
    OTHER = "OTHER"


class PartyRole(str, Enum):
    """Roles held inside a political party."""

    SECRETARY_GENERAL = "SECRETARY_GENERAL"
    SPOKESPERSON = "SPOKESPERSON"
    COORDINATOR = "COORDINATOR"
    FOUNDER = "FOUNDER"
    HONORARY_PRESIDENT = "HONORARY_PRESIDENT"
    MEMBER = "MEMBER"


class EntityStatus(str, Enum):
    """Publication status of a public figure's page."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"
    EXCLUDED = "EXCLUDED"


class AffairPublicationStatus(str, Enum):
    """Publication status of an affair."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"
    EXCLUDED = "EXCLUDED"


class AffairStatus(str, Enum):
    """Judicial stage of an affair."""

    ENQUETE_PRELIMINAIRE = "ENQUETE_PRELIMINAIRE"
    INSTRUCTION = "INSTRUCTION"
    MISE_EN_EXAMEN = "MISE_EN_EXAMEN"
    RENVOI_TRIBUNAL = "RENVOI_TRIBUNAL"
    PROCES_EN_COURS = "PROCES_EN_COURS"
    CONDAMNATION_PREMIERE_INSTANCE = "CONDAMNATION_PREMIERE_INSTANCE"
    APPEL_EN_COURS = "APPEL_EN_COURS"
    CONDAMNATION_DEFINITIVE = "CONDAMNATION_DEFINITIVE"
    RELAXE = "RELAXE"
    ACQUITTEMENT = "ACQUITTEMENT"
    NON_LIEU = "NON_LIEU"
    PRESCRIPTION = "PRESCRIPTION"
    CLASSEMENT_SANS_SUITE = "CLASSEMENT_SANS_SUITE"


class AffairCategory(str, Enum):
    """Offense category of an affair."""

    CORRUPTION = "CORRUPTION"
    CORRUPTION_PASSIVE = "CORRUPTION_PASSIVE"
    TRAFIC_INFLUENCE = "TRAFIC_INFLUENCE"
    PRISE_ILLEGALE_INTERETS = "PRISE_ILLEGALE_INTERETS"
    FAVORITISME = "FAVORITISME"
    DETOURNEMENT_FONDS_PUBLICS = "DETOURNEMENT_FONDS_PUBLICS"
    FRAUDE_FISCALE = "FRAUDE_FISCALE"
    BLANCHIMENT = "BLANCHIMENT"
    ABUS_BIENS_SOCIAUX = "ABUS_BIENS_SOCIAUX"
    ABUS_CONFIANCE = "ABUS_CONFIANCE"
    EMPLOI_FICTIF = "EMPLOI_FICTIF"
    FINANCEMENT_ILLEGAL_CAMPAGNE = "FINANCEMENT_ILLEGAL_CAMPAGNE"
    FINANCEMENT_ILLEGAL_PARTI = "FINANCEMENT_ILLEGAL_PARTI"
    HARCELEMENT_MORAL = "HARCELEMENT_MORAL"
    HARCELEMENT_SEXUEL = "HARCELEMENT_SEXUEL"
    AGRESSION_SEXUELLE = "AGRESSION_SEXUELLE"
    VIOLENCE = "VIOLENCE"
    MENACE = "MENACE"
    DIFFAMATION = "DIFFAMATION"
    INJURE = "INJURE"
    INCITATION_HAINE = "INCITATION_HAINE"
    FAUX_ET_USAGE_FAUX = "FAUX_ET_USAGE_FAUX"
    RECEL = "RECEL"
    CONFLIT_INTERETS = "CONFLIT_INTERETS"
    AUTRE = "AUTRE"


SENSITIVE_CATEGORIES = frozenset(
    {
        AffairCategory.AGRESSION_SEXUELLE,
        AffairCategory.HARCELEMENT_SEXUEL,
        AffairCategory.VIOLENCE,
    }
)


class Involvement(str, Enum):
    """How the public figure is involved in an affair."""

    DIRECT = "DIRECT"
    INDIRECT = "INDIRECT"
    MENTIONED_ONLY = "MENTIONED_ONLY"
    VICTIM = "VICTIM"
    PLAINTIFF = "PLAINTIFF"


class SourceType(str, Enum):
    """Kind of document backing an affair."""

    PRESSE = "PRESSE"
    JUDICIAIRE = "JUDICIAIRE"
    OFFICIEL = "OFFICIEL"
    WIKIDATA = "WIKIDATA"
    AUTRE = "AUTRE"


class Recommendation(str, Enum):
    """Outcome proposed by a moderation review."""

    PUBLISH = "PUBLISH"
    REJECT = "REJECT"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class IssueType(str, Enum):
    """Closed set of problems a review can flag."""

    MISSING_SOURCE = "MISSING_SOURCE"
    POOR_DESCRIPTION = "POOR_DESCRIPTION"
    WRONG_STATUS = "WRONG_STATUS"
    WRONG_CATEGORY = "WRONG_CATEGORY"
    SENSITIVE_CATEGORY = "SENSITIVE_CATEGORY"
    POSSIBLE_DUPLICATE = "POSSIBLE_DUPLICATE"
    INVALID_DATES = "INVALID_DATES"
    NOT_A_REAL_AFFAIR = "NOT_A_REAL_AFFAIR"
    HOMONYM_RISK = "HOMONYM_RISK"
    ENRICHED_FROM_WEB = "ENRICHED_FROM_WEB"


# Issues that make a rejected affair eligible for web enrichment
ENRICHABLE_ISSUES = frozenset({IssueType.MISSING_SOURCE, IssueType.POOR_DESCRIPTION})

ENRICHED_PREFIX = "[ENRICHI]"


class Mandate(BaseModel):
    """A political office held by an entity."""

    mandate_type: MandateType = MandateType.OTHER
    is_current: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class PartyRoleEntry(BaseModel):
    """A role in a party; end_date None means still held."""

    role: PartyRole = PartyRole.MEMBER
    party_id: Optional[str] = None
    end_date: Optional[date] = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None


class Entity(BaseModel):
    """A public figure."""

    id: str = Field(default_factory=new_id)
    first_name: str = ""
    last_name: str = ""
    full_name: str = Field(default="", validate_default=True)
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    mandates: List[Mandate] = Field(default_factory=list)
    party_roles: List[PartyRoleEntry] = Field(default_factory=list)
    prominence_score: int = Field(default=0, ge=0, le=1000)
    publication_status: EntityStatus = EntityStatus.DRAFT
    status_override: bool = False
    has_photo: bool = False
    has_biography: bool = False

    @field_validator("full_name", mode="before")
    @classmethod
    def default_full_name(cls, v, info):
        if v:
            return v
        first = info.data.get("first_name", "")
        last = info.data.get("last_name", "")
        return f"{first} {last}".strip()

    @property
    def has_current_mandate(self) -> bool:
        return any(m.is_current for m in self.mandates)


class Party(BaseModel):
    """A political organization."""

    id: str = Field(default_factory=new_id)
    name: str
    short_name: Optional[str] = None


class ActivityCounts(BaseModel):
    """Pre-aggregated activity counts for prominence scoring."""

    votes: int = 0
    press_mentions: int = 0
    fact_check_mentions: int = 0
    recent_media_mentions: int = 0
    affairs: int = 0


class Source(BaseModel):
    """A document backing an affair."""

    id: str = Field(default_factory=new_id)
    url: str
    title: str = ""
    publisher: str = ""
    published_at: Optional[date] = None
    source_type: SourceType = SourceType.PRESSE


class AffairEvent(BaseModel):
    """A dated step in an affair's procedure."""

    event_date: Optional[date] = None
    event_type: str = "AUTRE"
    description: str = ""


class Affair(BaseModel):
    """A recorded allegation or judicial procedure linked to a public figure."""

    id: str = Field(default_factory=new_id)
    politician_id: str
    title: str
    description: str = ""
    status: AffairStatus = AffairStatus.ENQUETE_PRELIMINAIRE
    category: AffairCategory = AffairCategory.AUTRE
    involvement: Involvement = Involvement.DIRECT
    publication_status: AffairPublicationStatus = AffairPublicationStatus.DRAFT

    facts_date: Optional[date] = None
    start_date: Optional[date] = None
    verdict_date: Optional[date] = None
    court: Optional[str] = None

    ecli: Optional[str] = None
    pourvoi_number: Optional[str] = None
    case_numbers: List[str] = Field(default_factory=list)

    prison_months: Optional[int] = None
    prison_suspended: Optional[bool] = None
    fine_amount: Optional[float] = None
    ineligibility_months: Optional[int] = None
    community_service_hours: Optional[int] = None
    other_sentence: Optional[str] = None

    sources: List[Source] = Field(default_factory=list)
    events: List[AffairEvent] = Field(default_factory=list)
    press_article_ids: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    @property
    def source_urls(self) -> List[str]:
        return [s.url for s in self.sources]

    def sentence_summary(self) -> Optional[str]:
        """Human readable sentence, or None when no penalty is recorded."""
        parts = []
        if self.prison_months:
            suffix = " avec sursis" if self.prison_suspended else ""
            parts.append(f"{self.prison_months} mois de prison{suffix}")
        if self.fine_amount:
            parts.append(f"{self.fine_amount:.0f} € d'amende")
        if self.ineligibility_months:
            parts.append(f"{self.ineligibility_months} mois d'inéligibilité")
        if self.community_service_hours:
            parts.append(f"{self.community_service_hours} h de TIG")
        if self.other_sentence:
            parts.append(self.other_sentence)
        return ", ".join(parts) if parts else None


class Issue(BaseModel):
    """A problem flagged by a review."""

    type: IssueType
    detail: str = ""


class ModerationReview(BaseModel):
    """A recommendation awaiting application. applied_at None means pending."""

    id: str = Field(default_factory=new_id)
    affair_id: str
    recommendation: Recommendation
    confidence: int = Field(default=50, ge=0, le=100)
    reasoning: str = ""
    suggested_title: Optional[str] = None
    suggested_description: Optional[str] = None
    suggested_status: Optional[AffairStatus] = None
    suggested_category: Optional[AffairCategory] = None
    issues: List[Issue] = Field(default_factory=list)
    duplicate_of_id: Optional[str] = None
    model: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    applied_at: Optional[datetime] = None
    applied_by: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.applied_at is None

    def has_issue(self, issue_type: IssueType) -> bool:
        return any(issue.type == issue_type for issue in self.issues)


class AuditEntry(BaseModel):
    """Durable record of a state change, written with the change itself."""

    id: str = Field(default_factory=new_id)
    action: str
    entity_type: str
    entity_id: str
    changes: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


# Configuration models


class AIConfig(BaseModel):
    """AI provider configuration."""

    provider: str = "claude"
    api_key: Optional[str] = None
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 2000
    temperature: float = 0.0
    timeout: float = 60.0


class SearchConfig(BaseModel):
    """Web search and page extraction configuration."""

    api_key: Optional[str] = None
    endpoint: str = "https://api.search.brave.com/res/v1/web/search"
    country: str = "fr"
    result_count: int = 10
    timeout: float = 10.0
    page_timeout: float = 15.0
    max_pages: int = 3
    min_page_chars: int = 200
    max_page_chars: int = 12000


class RateLimitConfig(BaseModel):
    """Pacing for external calls."""

    ai_interval: float = 1.0
    search_interval: float = 1.1
    rate_limit_pause: float = 30.0


class ModerationConfig(BaseModel):
    """Moderation pipeline settings."""

    enabled: bool = True
    enrichment_confidence_floor: int = Field(default=40, ge=0, le=100)
    sibling_title_limit: int = 20


class DeduplicationConfig(BaseModel):
    """Thresholds for duplicate affair detection."""

    date_proximity_days: int = 30
    near_identical_title_ratio: int = 90
    possible_title_ratio: int = 75
    min_containment_length: int = 10
    review_model_tag: str = "dedup-algorithm"


class StatusRules(BaseModel):
    """Thresholds for the publication status rules."""

    publish_threshold: int = 150
    archive_death_years: int = 10
    archive_score_threshold: int = 50
    exclude_death_before_year: int = 1958
    exclude_born_before_year: int = 1920
    require_min_data: bool = True


class DatabaseConfig(BaseModel):
    """Storage location."""

    path: str = "civicwatch.db"


class LoggingConfig(BaseModel):
    """Logging output settings."""

    format: str = "text"
    level: str = "INFO"
    file: Optional[str] = None


class Config(BaseModel):
    """Complete configuration model."""

    ai: AIConfig = Field(default_factory=AIConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    moderation: ModerationConfig = Field(default_factory=ModerationConfig)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    status_rules: StatusRules = Field(default_factory=StatusRules)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    dry_run: bool = False
