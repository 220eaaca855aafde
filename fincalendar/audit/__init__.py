"""Audit logging package."""

from fincalendar.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
