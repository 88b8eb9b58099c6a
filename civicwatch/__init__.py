"""CivicWatch: tracking judicial affairs involving French public figures.

This package provides:
- Mention matching of politicians and parties in press text
- Prominence scoring and publication status rules
- Duplicate detection and reconciliation of imported affairs
- AI-assisted moderation with web enrichment
"""

from .config import ConfigManager
from .models import Affair, Config, Entity, ModerationReview
from .moderation import ModerationPipeline, ReviewApplier
from .repositories import SQLiteStore

__all__ = [
    "ConfigManager",
    "Affair",
    "Config",
    "Entity",
    "ModerationReview",
    "ModerationPipeline",
    "ReviewApplier",
    "SQLiteStore",
]

__version__ = "1.0.0"
