"""Configuration management for civicwatch."""

import copy
import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from .errors import ConfigurationError
from .models import Config

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes")


class ConfigManager:
    """Manages configuration loading and validation.

    Precedence, lowest first: DEFAULT_CONFIG, the JSON config file,
    environment variables.
    """

    DEFAULT_CONFIG = {
        "ai": {
            "provider": "claude",
            "model": "claude-sonnet-4-5-20250929",
            "max_tokens": 2000,
            "temperature": 0.0,
            "timeout": 60.0,
        },
        "search": {
            "endpoint": "https://api.search.brave.com/res/v1/web/search",
            "country": "fr",
            "result_count": 10,
            "timeout": 10.0,
            "page_timeout": 15.0,
            "max_pages": 3,
            "min_page_chars": 200,
            "max_page_chars": 12000,
        },
        "rate_limit": {
            "ai_interval": 1.0,
            "search_interval": 1.1,
            "rate_limit_pause": 30.0,
        },
        "moderation": {
            "enabled": True,
            "enrichment_confidence_floor": 40,
            "sibling_title_limit": 20,
        },
        "deduplication": {
            "date_proximity_days": 30,
            "near_identical_title_ratio": 90,
            "possible_title_ratio": 75,
            "min_containment_length": 10,
            "review_model_tag": "dedup-algorithm",
        },
        "status_rules": {
            "publish_threshold": 150,
            "archive_death_years": 10,
            "archive_score_threshold": 50,
            "exclude_death_before_year": 1958,
            "exclude_born_before_year": 1920,
            "require_min_data": True,
        },
        "database": {"path": "civicwatch.db"},
        "logging": {"format": "text", "level": "INFO", "file": None},
        "dry_run": False,
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config manager.

        Args:
            config_path: Path to config file. If None, uses defaults + env vars
        """
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from file and environment."""
        if self._config:
            return self._config

        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path:
            if not self.config_path.exists():
                raise ConfigurationError(
                    f"Config file not found: {self.config_path}", setting="config_path"
                )
            with open(self.config_path, "r") as f:
                file_config = json.load(f)
                config_dict = self._deep_merge(config_dict, file_config)

        config_dict = self._apply_env_overrides(config_dict)

        self._config = Config(**config_dict)
        return self._config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        if not config.get("ai", {}).get("api_key"):
            ai_key = os.getenv("ANTHROPIC_API_KEY")
            if ai_key:
                config.setdefault("ai", {})["api_key"] = ai_key

        if not config.get("search", {}).get("api_key"):
            search_key = os.getenv("BRAVE_API_KEY") or os.getenv("BRAVE_SEARCH_API_KEY")
            if search_key:
                config.setdefault("search", {})["api_key"] = search_key

        db_path = os.getenv("CIVICWATCH_DB_PATH")
        if db_path:
            config.setdefault("database", {})["path"] = db_path

        if os.getenv("CIVICWATCH_DRY_RUN", "").lower() in TRUTHY:
            config["dry_run"] = True

        log_level = os.getenv("CIVICWATCH_LOG_LEVEL")
        if log_level:
            config.setdefault("logging", {})["level"] = log_level.upper()

        ai_interval = os.getenv("CIVICWATCH_AI_INTERVAL")
        if ai_interval:
            config.setdefault("rate_limit", {})["ai_interval"] = float(ai_interval)

        moderation_enabled = os.getenv("CIVICWATCH_MODERATION_ENABLED")
        if moderation_enabled:
            config.setdefault("moderation", {})["enabled"] = (
                moderation_enabled.lower() in TRUTHY
            )

        return config

    def save_template(self, path: str):
        """Save a configuration template file."""
        template = copy.deepcopy(self.DEFAULT_CONFIG)
        template["ai"]["api_key"] = "YOUR_ANTHROPIC_API_KEY"
        template["search"]["api_key"] = "YOUR_BRAVE_API_KEY"

        with open(path, "w") as f:
            json.dump(template, f, indent=2)

        logger.info(f"Configuration template saved to: {path}")

    def validate(self, require_ai: bool = True, require_search: bool = False) -> bool:
        """Validate the current configuration.

        Raises:
            ConfigurationError: When a required credential is missing
        """
        config = self.load()

        if require_ai and not config.ai.api_key:
            raise ConfigurationError("AI API key not configured", setting="ai.api_key")

        if require_search and not config.search.api_key:
            raise ConfigurationError(
                "Search API key not configured", setting="search.api_key"
            )

        if not config.search.api_key:
            logger.warning("Search API key not configured, enrichment will be skipped")

        return True

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            self._config = self.load()
        return self._config
