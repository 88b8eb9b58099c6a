"""Security and audit module for civicwatch."""

from .audit import AuditLogger

__all__ = [
    "AuditLogger",
]
