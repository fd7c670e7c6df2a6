"""
Audit Middleware

This middleware captures request context and stores it in a context variable
for use by the audit interception mechanism.
"""
import ipaddress
import logging
from typing import Optional
from uuid import UUID

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from audittrail.audit.context import (
    AuditActor,
    AuditContext,
    set_audit_context,
    clear_audit_context,
)
from audittrail.core.config import settings
from audittrail.core.roles import normalize_role
from audittrail.core.security import decode_token

logger = logging.getLogger(__name__)

# Width of audit_logs.ip_address
MAX_IP_LENGTH = 45


def _valid_ip(value: str) -> Optional[str]:
    value = value.strip()
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        logger.debug(f"Ignoring malformed client address header: {value[:64]!r}")
        return None


def get_client_ip(request: Request) -> Optional[str]:
    """
    Best-effort client IP for a request.

    Preference order: first entry of X-Forwarded-For, then X-Real-IP, then
    the transport-level peer address. Proxy headers are ignored when
    AUDIT_TRUST_PROXY_HEADERS is off, and header values that are not valid
    IPv4/IPv6 addresses fall through to the next source.
    """
    if settings.AUDIT_TRUST_PROXY_HEADERS:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first_hop = _valid_ip(forwarded_for.split(",")[0])
        if first_hop:
            return first_hop

        real_ip = _valid_ip(request.headers.get("x-real-ip", ""))
        if real_ip:
            return real_ip

    if request.client and request.client.host:
        return request.client.host[:MAX_IP_LENGTH]
    return None


def resolve_actor(request: Request) -> Optional[AuditActor]:
    """
    Resolve the acting user from the bearer token, if any.

    The token is only decoded here, not validated against the session store;
    an absent, malformed or expired token simply yields no actor.
    """
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix
    payload = decode_token(token)
    if not payload:
        return None

    user_id_str = payload.get("sub")
    if not user_id_str:
        return None

    try:
        user_id = UUID(str(user_id_str))
    except (ValueError, TypeError):
        logger.warning(f"Invalid user_id in token: {user_id_str}")
        return None

    role = payload.get("role")
    if role:
        try:
            role = normalize_role(role)
        except ValueError:
            logger.warning(f"Unknown role in token: {role}")
            role = None

    return AuditActor(
        id=user_id,
        email=payload.get("email"),
        role=role,
    )


def build_audit_context(request: Request) -> AuditContext:
    """Extract actor and network origin from a request."""
    return AuditContext(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        actor=resolve_actor(request),
    )


class AuditContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware to capture request context for audit logging.

    This middleware extracts:
    - ip_address (forwarded-for, real-ip, then transport peer)
    - user_agent (User-Agent header)
    - actor (id/email/role claims from the JWT if present)

    The context is stored in a context variable and cleared after request processing.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            context = build_audit_context(request)
        except Exception as e:
            # Context extraction must never block the request
            logger.warning(f"Could not build audit context: {e}")
            context = AuditContext.create_empty()

        set_audit_context(context)

        try:
            response = await call_next(request)
            return response
        finally:
            # Always clear context after request
            clear_audit_context()
