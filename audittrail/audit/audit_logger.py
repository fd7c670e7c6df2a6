"""
Audit Logger Service

This module provides the core audit logging functionality: it turns an
operation's declared intent plus its actual inputs/outputs into a normalized
AuditLog entry, and writes it with safe error handling so audit logging
failures never break business logic.
"""
import enum
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from audittrail.audit.context import AuditActor, AuditContext
from audittrail.audit.metadata import (
    AuditMetadata,
    OperationInputs,
    OperationKind,
    PRIVILEGED_REVIEW_ACTIONS,
    validate_action,
)
from audittrail.core import database
from audittrail.core.config import settings
from audittrail.models.audit_log import AuditLog
from audittrail.repositories.audit_log_repository import AuditLogRepository
from audittrail.services.logging import audit_ops_logger

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Column widths of audit_logs; longer values are clipped rather than rejected
TABLE_NAME_LENGTH = 100
RECORD_ID_LENGTH = 255
IP_ADDRESS_LENGTH = 45

# Sensitive keys that should be redacted from audit logs.
# Compared after lowercasing and dropping "_" / "-", so "newPassword",
# "new_password" and "new-password" all match.
SENSITIVE_KEYS = {
    # Authentication & Authorization
    "password",
    "currentpassword",
    "newpassword",
    "confirmpassword",
    "hashedpassword",
    "token",
    "authorization",
    "refreshtoken",
    "accesstoken",
    "secret",
    "apikey",
    "privatekey",
    "clientsecret",
    "otp",
    # Uploaded content (large blobs)
    "filecontent",
    "filedata",
    "binarydata",
    "imagebase64",
}

# Keys that should be masked instead of removed
MASK_KEYS = {
    "cnic",
    "phone",
    "phonenumber",
}


def _normalize_key(key: Any) -> str:
    return str(key).lower().replace("_", "").replace("-", "")


def sanitize_value(value: Any) -> Any:
    """
    Sanitize a single value (recursive for nested structures).

    Args:
        value: The value to sanitize

    Returns:
        The sanitized value
    """
    max_length = settings.AUDIT_MAX_STRING_LENGTH
    if isinstance(value, dict):
        return sanitize_payload(value)
    elif isinstance(value, list):
        return [sanitize_value(item) for item in value]
    elif isinstance(value, str) and len(value) > max_length:
        # Truncate very long strings (likely base64 uploads)
        return f"{value[:100]}... [TRUNCATED {len(value)} chars]"
    else:
        return value


def sanitize_payload(payload: Any) -> Any:
    """
    Sanitize a payload dictionary by removing/masking sensitive fields.

    This function:
    - Redacts keys like password, token, secret, etc.
    - Masks CNIC and phone values (shows only first and last 4 chars)
    - Truncates large text fields
    - Works recursively for nested dictionaries and lists

    Args:
        payload: The payload to sanitize

    Returns:
        A sanitized copy of the payload
    """
    if isinstance(payload, list):
        return [sanitize_value(item) for item in payload]
    if not isinstance(payload, dict):
        return sanitize_value(payload)

    sanitized = {}

    for key, value in payload.items():
        key_normalized = _normalize_key(key)

        if key_normalized in SENSITIVE_KEYS or key_normalized.endswith("password"):
            sanitized[key] = "**REDACTED**"
            continue

        if key_normalized in MASK_KEYS:
            if isinstance(value, str) and len(value) > 8:
                sanitized[key] = f"{value[:4]}**MASKED**{value[-4:]}"
            else:
                sanitized[key] = "**MASKED**"
            continue

        sanitized[key] = sanitize_value(value)

    return sanitized


def to_snapshot(value: Any) -> Any:
    """
    Convert a value into a detached, JSON-serializable snapshot.

    Containers are rebuilt rather than referenced, so later mutation of the
    source object cannot alter a stored entry. Pydantic models and ORM
    instances are reduced to their field/column values.

    Raises:
        TypeError: If the value contains something that has no JSON form
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    elif isinstance(value, float):
        return value
    elif isinstance(value, enum.Enum):
        return to_snapshot(value.value)
    elif isinstance(value, UUID):
        return str(value)
    elif isinstance(value, Decimal):
        return float(value)
    elif isinstance(value, (datetime, date, time)):
        return value.isoformat()
    elif isinstance(value, bytes):
        return f"<binary data {len(value)} bytes>"
    elif isinstance(value, dict):
        return {str(k): to_snapshot(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple, set, frozenset)):
        return [to_snapshot(item) for item in value]
    elif isinstance(value, BaseModel):
        return to_snapshot(value.model_dump(mode="json"))

    try:
        insp = sa_inspect(value)
    except NoInspectionAvailable:
        insp = None
    if insp is not None and getattr(insp, "mapper", None) is not None:
        return {
            attr.key: to_snapshot(getattr(value, attr.key, None))
            for attr in insp.mapper.column_attrs
        }

    raise TypeError(f"Cannot snapshot value of type {type(value).__name__}")


def _prepare_values(values: Any) -> Any:
    if values is None:
        return None
    return sanitize_payload(to_snapshot(values))


def _clip(value: Optional[str], length: int) -> Optional[str]:
    if value is None:
        return None
    return value[:length]


def build_entry(
    *,
    action: str,
    table_name: Optional[str] = None,
    record_id: Optional[Any] = None,
    old_values: Any = None,
    new_values: Any = None,
    actor_id: Optional[UUID] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Build an unpersisted AuditLog with snapshotted, sanitized values."""
    return AuditLog(
        action=validate_action(action),
        table_name=_clip(table_name, TABLE_NAME_LENGTH),
        record_id=_clip(str(record_id), RECORD_ID_LENGTH) if record_id is not None else None,
        old_values=_prepare_values(old_values),
        new_values=_prepare_values(new_values),
        actor_id=actor_id,
        ip_address=_clip(ip_address, IP_ADDRESS_LENGTH),
        user_agent=user_agent,
    )


def _review_enrichment(inputs: Optional[OperationInputs], actor: Optional[AuditActor]) -> dict:
    body = inputs.body if inputs is not None and isinstance(inputs.body, dict) else {}
    review_notes = body.get("reviewNotes", body.get("review_notes"))
    return {
        "action": body.get("action"),
        "reviewer_id": str(actor.id) if actor else None,
        "reviewer_email": actor.email if actor else None,
        "review_notes": review_notes or None,
    }


def compose_entry(
    kind: OperationKind,
    metadata: AuditMetadata,
    actor: Optional[AuditActor],
    context: Optional[AuditContext],
    record_id: Optional[Any] = None,
    old_values: Any = None,
    new_values: Any = None,
    inputs: Optional[OperationInputs] = None,
) -> AuditLog:
    """
    Compose a normalized audit entry for an intercepted operation.

    The kind decides which snapshots are kept:
    - CREATE: new_values only
    - UPDATE: old_values and new_values
    - DELETE: old_values only
    - GENERIC: new_values only; table/record stay empty when unknown

    For the privileged review actions (approve/reject workflows) new_values
    is enriched with the decision, the reviewer and the review notes taken
    from the request.
    """
    context = context or AuditContext.create_empty()

    if kind == OperationKind.GENERIC:
        table_name = metadata.table_name
    else:
        table_name = metadata.table_name or UNKNOWN
        if record_id is None or record_id == "":
            record_id = UNKNOWN

    if kind == OperationKind.CREATE:
        old_values = None
    elif kind == OperationKind.DELETE:
        new_values = None
    elif kind == OperationKind.GENERIC:
        old_values = None

    if kind == OperationKind.UPDATE and metadata.action in PRIVILEGED_REVIEW_ACTIONS:
        snapshot = to_snapshot(new_values)
        if isinstance(snapshot, dict):
            enriched = dict(snapshot)
        elif snapshot is None:
            enriched = {}
        else:
            # Lists and scalars are kept under "values"
            enriched = {"values": snapshot}
        enriched.update(_review_enrichment(inputs, actor))
        new_values = enriched

    return build_entry(
        action=metadata.action,
        table_name=table_name,
        record_id=record_id if record_id not in (None, "") else None,
        old_values=old_values,
        new_values=new_values,
        actor_id=actor.id if actor else None,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )


class AuditLogger:
    """
    Writes audit entries, best-effort.

    Each write uses its own session from the session factory, so the entry
    is committed independently of the audited operation's transaction.
    Every public method returns True when an entry was stored and False
    otherwise; none of them raise.
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    @property
    def session_factory(self):
        return self._session_factory or database.async_session_maker

    async def write(self, entry: AuditLog) -> bool:
        """Append one entry to the store."""
        try:
            # Guard: never audit the audit table itself
            if entry.table_name == AuditLog.__tablename__:
                return False

            async with self.session_factory() as session:
                await AuditLogRepository(session).append(entry)

            audit_ops_logger.audit_recorded(
                action=entry.action,
                table_name=entry.table_name,
                record_id=entry.record_id,
                actor_id=entry.actor_id,
            )
            return True
        except Exception as e:
            # Best-effort logging: never let audit failures break business logic
            audit_ops_logger.audit_write_failed(
                action=entry.action,
                table_name=entry.table_name,
                record_id=entry.record_id,
                error=e,
            )
            return False

    async def record(
        self,
        kind: OperationKind,
        metadata: AuditMetadata,
        actor: Optional[AuditActor],
        context: Optional[AuditContext],
        record_id: Optional[Any] = None,
        old_values: Any = None,
        new_values: Any = None,
        inputs: Optional[OperationInputs] = None,
    ) -> bool:
        """Compose and write the entry for an intercepted operation."""
        if metadata.skip_logging:
            audit_ops_logger.audit_skipped(metadata.action, "skip_logging declared")
            return False
        if not settings.AUDIT_LOGGING_ENABLED:
            audit_ops_logger.audit_skipped(metadata.action, "logging disabled")
            return False

        try:
            entry = compose_entry(
                kind,
                metadata,
                actor,
                context,
                record_id=record_id,
                old_values=old_values,
                new_values=new_values,
                inputs=inputs,
            )
        except Exception as e:
            audit_ops_logger.audit_write_failed(
                action=metadata.action,
                table_name=metadata.table_name,
                record_id=str(record_id) if record_id is not None else None,
                error=e,
            )
            return False

        return await self.write(entry)

    async def log(
        self,
        action: str,
        table_name: Optional[str] = None,
        record_id: Optional[Any] = None,
        old_values: Any = None,
        new_values: Any = None,
        actor_id: Optional[UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Record an event explicitly from business code."""
        if not settings.AUDIT_LOGGING_ENABLED:
            return False

        try:
            entry = build_entry(
                action=action,
                table_name=table_name,
                record_id=record_id,
                old_values=old_values,
                new_values=new_values,
                actor_id=actor_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except Exception as e:
            audit_ops_logger.audit_write_failed(
                action=str(action),
                table_name=table_name,
                record_id=str(record_id) if record_id is not None else None,
                error=e,
            )
            return False

        return await self.write(entry)

    async def log_create(self, action, table_name, record_id, new_values, actor_id=None, ip_address=None, user_agent=None) -> bool:
        return await self.log(
            action,
            table_name=table_name,
            record_id=record_id,
            new_values=new_values,
            actor_id=actor_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_update(self, action, table_name, record_id, old_values, new_values, actor_id=None, ip_address=None, user_agent=None) -> bool:
        return await self.log(
            action,
            table_name=table_name,
            record_id=record_id,
            old_values=old_values,
            new_values=new_values,
            actor_id=actor_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_delete(self, action, table_name, record_id, old_values, actor_id=None, ip_address=None, user_agent=None) -> bool:
        return await self.log(
            action,
            table_name=table_name,
            record_id=record_id,
            old_values=old_values,
            actor_id=actor_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_action(self, action, table_name=None, record_id=None, metadata=None, actor_id=None, ip_address=None, user_agent=None) -> bool:
        """Generic event; `metadata` is stored as new_values."""
        return await self.log(
            action,
            table_name=table_name,
            record_id=record_id,
            new_values=metadata,
            actor_id=actor_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
