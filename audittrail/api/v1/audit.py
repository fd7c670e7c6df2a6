"""
Admin audit log endpoints.

All routes require an authenticated user with the admin role.
"""
import logging
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from audittrail.api.v1.deps import AdminUser
from audittrail.core.database import get_db
from audittrail.schemas.audit import (
    AuditLogEntry,
    AuditLogListResponse,
    AuditLogQuery,
    AuditStatistics,
)
from audittrail.services.audit_service import AuditQueryService, as_utc

router = APIRouter()
logger = logging.getLogger(__name__)


def _check_date_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    start, end = as_utc(start_date), as_utc(end_date)
    if start and end and start > end:
        raise HTTPException(
            status_code=422,
            detail={"code": "INVALID_DATE_RANGE", "message": "start_date must not be after end_date"},
        )


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    admin: AdminUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    query: Annotated[AuditLogQuery, Query()],
):
    """
    List audit log entries, newest first by default.

    Filters:
    - user_id: exact acting user
    - action / table_name: case-insensitive substring
    - record_id: exact record id
    - start_date / end_date: inclusive creation-time range
    - search: matches if action, table name or actor email contains it
    """
    _check_date_range(query.start_date, query.end_date)
    return await AuditQueryService(db).list_entries(query)


@router.get("/statistics", response_model=AuditStatistics)
async def get_audit_statistics(
    admin: AdminUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    start_date: Optional[datetime] = Query(None, description="Created at or after (inclusive)"),
    end_date: Optional[datetime] = Query(None, description="Created at or before (inclusive)"),
):
    """Totals, top 10 actions, top 10 tables and the 5 most recent entries."""
    _check_date_range(start_date, end_date)
    return await AuditQueryService(db).statistics(start_date, end_date)


@router.get("/{audit_log_id}", response_model=AuditLogEntry)
async def get_audit_log(
    audit_log_id: UUID,
    admin: AdminUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    entry = await AuditQueryService(db).get_entry(audit_log_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Audit log not found")
    return entry
