"""
Request Context Module

This module provides a context variable to store request-scoped audit
information: the acting user and the network origin of the request.

Uses Python's contextvars to provide thread-safe, async-safe request context.
"""
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class AuditActor:
    """Minimal identity of the authenticated user behind a request."""
    id: UUID
    email: Optional[str] = None
    role: Optional[str] = None


@dataclass
class AuditContext:
    """
    Request context for audit logging.

    This context is populated by middleware and used by the interception
    mechanism to enrich audit log entries with request metadata.
    """
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    actor: Optional[AuditActor] = None

    @property
    def actor_id(self) -> Optional[UUID]:
        return self.actor.id if self.actor else None

    @classmethod
    def create_empty(cls) -> "AuditContext":
        """Create an empty audit context for system operations."""
        return cls(ip_address=None, user_agent=None, actor=None)


# Context variable to store audit context per request
# This is thread-safe and async-safe
audit_context_var: ContextVar[Optional[AuditContext]] = ContextVar(
    "audit_context",
    default=None
)


def get_audit_context() -> Optional[AuditContext]:
    """
    Get the current audit context.

    Returns:
        The current AuditContext if set, None otherwise
    """
    return audit_context_var.get()


def set_audit_context(context: AuditContext) -> None:
    """
    Set the audit context for the current request.

    Args:
        context: The AuditContext to set
    """
    audit_context_var.set(context)


def clear_audit_context() -> None:
    """
    Clear the audit context.

    This is typically called at the end of request processing.
    """
    audit_context_var.set(None)
