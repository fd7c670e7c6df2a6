"""
Audit Query Service

Read side of the audit trail: filtered and paginated listing, single-entry
lookup and summary statistics for administrative review. Entries are never
modified here.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from audittrail.repositories.audit_log_repository import AuditLogFilter, AuditLogRepository
from audittrail.schemas.audit import (
    ActionCount,
    AuditLogEntry,
    AuditLogListResponse,
    AuditLogQuery,
    AuditStatistics,
    PaginationMeta,
    RecentActivityItem,
    TableCount,
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuditQueryService:
    """
    Service for querying audit log entries.

    Provides methods to:
    - List entries with filters, free-text search, sorting and pagination
    - Fetch a single entry
    - Compute statistics (totals, top actions/tables, recent activity)
    """

    TOP_GROUPS_LIMIT = 10
    RECENT_ACTIVITY_LIMIT = 5

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository = AuditLogRepository(db)

    async def list_entries(self, query: AuditLogQuery) -> AuditLogListResponse:
        """List entries matching the query, each with its actor projection."""
        filters = AuditLogFilter(
            actor_id=query.user_id,
            action=query.action,
            table_name=query.table_name,
            record_id=query.record_id,
            start_date=as_utc(query.start_date),
            end_date=as_utc(query.end_date),
            search=query.search,
        )
        entries, total = await self.repository.paginate(
            filters,
            sort=query.sort,
            page=query.page,
            page_size=query.page_size,
        )
        return AuditLogListResponse(
            items=[AuditLogEntry.model_validate(entry) for entry in entries],
            pagination=PaginationMeta.build(total, query.page, query.page_size),
        )

    async def get_entry(self, audit_log_id: UUID) -> Optional[AuditLogEntry]:
        """Fetch one entry; None when it does not exist."""
        entry = await self.repository.get_by_id(audit_log_id)
        if entry is None:
            return None
        return AuditLogEntry.model_validate(entry)

    async def statistics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> AuditStatistics:
        """
        Summarize the audit trail, optionally within a creation-time range.

        by_action and by_table hold at most 10 groups each, most frequent
        first; entries without a table name never form a table group.
        """
        filters = AuditLogFilter(start_date=as_utc(start_date), end_date=as_utc(end_date))

        total = await self.repository.count(filters)
        by_action = await self.repository.group_count(
            "action", filters, limit=self.TOP_GROUPS_LIMIT
        )
        by_table = await self.repository.group_count(
            "table_name", filters, limit=self.TOP_GROUPS_LIMIT, exclude_null=True
        )
        recent = await self.repository.recent(filters, limit=self.RECENT_ACTIVITY_LIMIT)

        return AuditStatistics(
            total=total,
            by_action=[ActionCount(action=action, count=count) for action, count in by_action],
            by_table=[TableCount(table_name=table, count=count) for table, count in by_table],
            recent_activity=[RecentActivityItem.model_validate(entry) for entry in recent],
        )
