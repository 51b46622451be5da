"""HTTP middleware for the treasury action service."""

from .audit import AuditMiddleware

__all__ = ["AuditMiddleware"]
