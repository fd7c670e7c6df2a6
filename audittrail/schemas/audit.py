"""
Audit Log Schemas

Pydantic schemas for the administrative audit trail API: entry listings,
single-entry lookup and aggregated statistics.
"""
import math
from datetime import datetime
from typing import Any, Literal, Optional, List
from uuid import UUID
from pydantic import BaseModel, Field


MAX_PAGE = 100
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class AuditActorOut(BaseModel):
    """Minimal projection of the user behind an entry."""
    id: UUID
    email: str
    role: str

    class Config:
        from_attributes = True


class AuditLogEntry(BaseModel):
    """Schema for one audit log entry with its old/new value snapshots."""
    id: UUID
    action: str
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    actor_id: Optional[UUID] = None
    actor: Optional[AuditActorOut] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaginationMeta(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, page: int, page_size: int) -> "PaginationMeta":
        return cls(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
            has_next=page * page_size < total,
            has_prev=page > 1,
        )


class AuditLogListResponse(BaseModel):
    """Schema for a page of audit log entries."""
    items: List[AuditLogEntry]
    pagination: PaginationMeta


class AuditLogQuery(BaseModel):
    """Validated filter/sort/pagination parameters for listing entries."""
    user_id: Optional[UUID] = Field(default=None, description="Filter by acting user")
    action: Optional[str] = Field(default=None, max_length=100, description="Case-insensitive substring of the action")
    table_name: Optional[str] = Field(default=None, max_length=100, description="Case-insensitive substring of the table name")
    record_id: Optional[str] = Field(default=None, max_length=255, description="Exact record id")
    start_date: Optional[datetime] = Field(default=None, description="Created at or after (inclusive)")
    end_date: Optional[datetime] = Field(default=None, description="Created at or before (inclusive)")
    search: Optional[str] = Field(default=None, max_length=255, description="Matches action, table name or actor email")
    sort: Literal["newest", "oldest"] = Field(default="newest", description="Sort by creation time")
    page: int = Field(default=1, ge=1, le=MAX_PAGE, description="Page number (1-indexed)")
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Results per page")


class ActionCount(BaseModel):
    action: str
    count: int


class TableCount(BaseModel):
    table_name: str
    count: int


class RecentActivityItem(BaseModel):
    id: UUID
    action: str
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    actor: Optional[AuditActorOut] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditStatistics(BaseModel):
    """Aggregated view of the audit trail for the admin dashboard."""
    total: int
    by_action: List[ActionCount]
    by_table: List[TableCount]
    recent_activity: List[RecentActivityItem]
