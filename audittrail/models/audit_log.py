"""
Audit Log Model

This module defines the AuditLog model: one immutable row per audited
business operation (who did what, to which record, with which before/after
state).

The audit_logs table is created by migration 001_audit_logs.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Text, DateTime, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID as PostgreSQLUUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from audittrail.core.database import Base
from audittrail.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """
    Audit log model for business operations.

    The action vocabulary is open: `action` is a free-form tag such as
    "CREATE_OFFER" and new actions need no schema change. Every other column
    is optional because not every operation has a resolvable actor, record
    or prior state.

    Security features:
    - Sanitized payloads (no secrets, no large blobs)
    - Immutable records (no updates/deletes allowed from this package)
    - Best-effort logging (failures don't break business logic)
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_table_record", "table_name", "record_id"),
    )

    # Primary key, generated at write time
    id: Mapped[uuid.UUID] = mapped_column(
        PostgreSQLUUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False
    )

    action: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Business operation tag (e.g., 'CREATE_OFFER', 'APPROVE_REJECT_STUDENT')"
    )

    table_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Logical entity affected (e.g., 'offers', 'merchant_branches')"
    )

    # String rather than UUID: unresolved records are stored as 'unknown'
    record_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Identifier of the affected entity instance"
    )

    # Value snapshots (JSONB for flexibility)
    # These are sanitized to remove secrets and large blobs
    old_values: Mapped[Optional[dict]] = mapped_column(
        JSONB,
        nullable=True,
        comment="State before the operation (update/delete)"
    )

    new_values: Mapped[Optional[dict]] = mapped_column(
        JSONB,
        nullable=True,
        comment="State after the operation or submitted payload"
    )

    # Actor (nullable for unauthenticated and system actions)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        PostgreSQLUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="User who performed the action (null for system actions)"
    )

    # Request origin
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),
        nullable=True,
        comment="IP address of the request (IPv4 or IPv6)"
    )

    user_agent: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Timestamp (immutable, set once)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="When the audit log entry was created"
    )

    actor: Mapped[Optional[User]] = relationship(User, lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, "
            f"action={self.action}, "
            f"table_name={self.table_name}, "
            f"record_id={self.record_id}, "
            f"actor_id={self.actor_id})>"
        )
