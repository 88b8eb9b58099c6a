"""Audit logging for moderation and reconciliation decisions."""

import structlog
from typing import Any, Dict, List, Optional

from ..utils import utc_now


class AuditLogger:
    """Emits structured audit events for every state-changing operation.

    The durable audit trail lives in the store (written inside the same
    transaction as the change). This logger mirrors those events to the
    log stream so operators can follow a run as it happens.
    """

    SENSITIVE_KEYS = [
        "password",
        "api_key",
        "token",
        "secret",
        "credential",
        "private_key",
        "subscription",
    ]

    def __init__(self, logger_name: str = "audit"):
        """Initialize audit logger.

        Args:
            logger_name: Name of the underlying structlog logger
        """
        self.logger = structlog.get_logger(logger_name)
        self._configure_logger()

    def _configure_logger(self):
        """Configure structured logger with proper processors."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                self._add_audit_context,
                self._sanitize_sensitive_data,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

    def _add_audit_context(self, logger, method_name, event_dict):
        """Add audit context to log entries."""
        event_dict["audit_timestamp"] = utc_now().isoformat()
        event_dict["audit_version"] = "1.0"

        return event_dict

    def _sanitize_sensitive_data(self, logger, method_name, event_dict):
        """Remove or mask sensitive data from logs."""

        def sanitize_value(key: str, value: Any) -> Any:
            key_lower = key.lower()

            if any(term in key_lower for term in self.SENSITIVE_KEYS):
                if isinstance(value, str) and len(value) > 8:
                    return f"{value[:4]}...{value[-4:]}"
                return "***REDACTED***"

            if isinstance(value, dict):
                return {k: sanitize_value(k, v) for k, v in value.items()}
            elif isinstance(value, list):
                return [sanitize_value(f"item_{i}", v) for i, v in enumerate(value)]

            return value

        for key, value in list(event_dict.items()):
            event_dict[key] = sanitize_value(key, value)

        return event_dict

    def log_merge(
        self,
        kept_id: str,
        removed_id: str,
        tier: str,
        score: float,
        sources_moved: int = 0,
    ) -> None:
        """Log an automatic merge of two duplicate affairs."""
        self.logger.info(
            "affair_merged",
            kept_id=kept_id,
            removed_id=removed_id,
            tier=tier,
            score=score,
            sources_moved=sources_moved,
        )

    def log_duplicate_flagged(self, affair_id: str, duplicate_of_id: str, score: float) -> None:
        """Log a possible duplicate sent to human review."""
        self.logger.info(
            "duplicate_flagged",
            affair_id=affair_id,
            duplicate_of_id=duplicate_of_id,
            score=score,
        )

    def log_review_created(
        self,
        affair_id: str,
        recommendation: str,
        confidence: int,
        issues: Optional[List[str]] = None,
    ) -> None:
        """Log a new pending moderation review."""
        self.logger.info(
            "review_created",
            affair_id=affair_id,
            recommendation=recommendation,
            confidence=confidence,
            issues=issues or [],
        )

    def log_review_applied(
        self,
        review_id: str,
        affair_id: str,
        action: str,
        applied_by: str,
        changes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a review being applied or dismissed."""
        self.logger.info(
            "review_applied",
            review_id=review_id,
            affair_id=affair_id,
            action=action,
            applied_by=applied_by,
            changes=changes or {},
        )

    def log_enrichment(
        self,
        affair_id: str,
        changes: List[str],
        sources_added: int,
        confidence: int,
    ) -> None:
        """Log an affair enriched from web sources."""
        self.logger.info(
            "affair_enriched",
            affair_id=affair_id,
            changes=changes,
            sources_added=sources_added,
            confidence=confidence,
        )

    def log_status_change(self, target_status: str, entity_ids: List[str]) -> None:
        """Log a bulk publication status write."""
        self.logger.info(
            "publication_status_changed",
            target_status=target_status,
            count=len(entity_ids),
            entity_ids=entity_ids[:50],
        )

    def log_error(
        self,
        error_type: str,
        error_message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log application error."""
        self.logger.error(
            "application_error",
            error_type=error_type,
            error_message=error_message,
            context=context or {},
        )
