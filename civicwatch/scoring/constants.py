"""Weights and caps for prominence scoring."""

from ..models import MandateType, PartyRole

MANDATE_WEIGHTS = {
    MandateType.PRESIDENT_REPUBLIQUE: 400,
    MandateType.PREMIER_MINISTRE: 350,
    MandateType.MINISTRE: 280,
    MandateType.MINISTRE_DELEGUE: 250,
    MandateType.SECRETAIRE_ETAT: 230,
    MandateType.DEPUTE: 200,
    MandateType.SENATEUR: 200,
    MandateType.PRESIDENT_PARTI: 200,
    MandateType.DEPUTE_EUROPEEN: 180,
    MandateType.PRESIDENT_REGION: 160,
    MandateType.PRESIDENT_DEPARTEMENT: 140,
    MandateType.MAIRE: 120,
    MandateType.ADJOINT_MAIRE: 60,
    MandateType.CONSEILLER_REGIONAL: 50,
    MandateType.CONSEILLER_DEPARTEMENTAL: 50,
    MandateType.CONSEILLER_MUNICIPAL: 40,
    MandateType.OTHER: 30,
}

PARTY_ROLE_WEIGHTS = {
    PartyRole.SECRETARY_GENERAL: 140,
    PartyRole.SPOKESPERSON: 100,
    PartyRole.COORDINATOR: 80,
    PartyRole.FOUNDER: 80,
    PartyRole.HONORARY_PRESIDENT: 40,
    PartyRole.MEMBER: 0,
}

CURRENT_MULTIPLIER = 1.0
PAST_MULTIPLIER = 0.3

# Activity: points per unit and per-term cap
VOTE_POINTS = 0.5
VOTE_MAX = 80
PRESS_POINTS = 3
PRESS_MAX = 100
FACT_CHECK_POINTS = 8
FACT_CHECK_MAX = 60

MEDIA_POINTS_PER_MENTION = 5
MEDIA_WINDOW_MONTHS = 3

AFFAIR_POINTS = 15

RECENCY_CURRENT_MANDATE = 150
RECENCY_ACTIVE_PARTY_ROLE = 100
RECENCY_RECENT_MANDATE = 50
RECENT_MANDATE_YEARS = 5

MANDATE_CAP = 400
ACTIVITY_CAP = 200
MEDIA_CAP = 150
AFFAIRS_CAP = 100
TOTAL_CAP = 1000

DAYS_PER_YEAR = 365.25
