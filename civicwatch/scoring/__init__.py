"""Prominence scoring and publication status rules."""

from .prominence import (
    ProminenceScorer,
    ProminenceBreakdown,
    ProminencePassStats,
    compute_prominence,
)
from .publication_status import (
    PublicationStatusEngine,
    StatusChange,
    StatusPassStats,
    determine_publication_status,
)

__all__ = [
    "ProminenceScorer",
    "ProminenceBreakdown",
    "ProminencePassStats",
    "compute_prominence",
    "PublicationStatusEngine",
    "StatusChange",
    "StatusPassStats",
    "determine_publication_status",
]
