from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional
import uuid

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from audittrail.models.audit_log import AuditLog
from audittrail.models.user import User


SortOrder = Literal["newest", "oldest"]

# Columns that can be aggregated with group_count()
GROUPABLE_FIELDS = {
    "action": AuditLog.action,
    "table_name": AuditLog.table_name,
}


@dataclass
class AuditLogFilter:
    """
    Filter for audit log reads. Unset fields do not restrict the result.

    action/table_name match case-insensitive substrings; actor_id and
    record_id match exactly; start_date/end_date are inclusive. `search`
    matches if the action, the table name or the actor's email contains it.
    """
    actor_id: Optional[uuid.UUID] = None
    action: Optional[str] = None
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None


class AuditLogRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        await self.db.commit()
        return entry

    def _apply_filters(self, query, filters: Optional[AuditLogFilter]):
        if filters is None:
            return query

        if filters.actor_id:
            query = query.where(AuditLog.actor_id == filters.actor_id)
        if filters.action:
            query = query.where(AuditLog.action.icontains(filters.action, autoescape=True))
        if filters.table_name:
            query = query.where(AuditLog.table_name.icontains(filters.table_name, autoescape=True))
        if filters.record_id:
            query = query.where(AuditLog.record_id == filters.record_id)
        if filters.start_date:
            query = query.where(AuditLog.created_at >= filters.start_date)
        if filters.end_date:
            query = query.where(AuditLog.created_at <= filters.end_date)
        if filters.search:
            term = filters.search
            query = query.where(
                or_(
                    AuditLog.action.icontains(term, autoescape=True),
                    AuditLog.table_name.icontains(term, autoescape=True),
                    AuditLog.actor.has(User.email.icontains(term, autoescape=True)),
                )
            )
        return query

    async def count(self, filters: Optional[AuditLogFilter] = None) -> int:
        query = self._apply_filters(select(func.count(AuditLog.id)), filters)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def paginate(
        self,
        filters: Optional[AuditLogFilter] = None,
        sort: SortOrder = "newest",
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[AuditLog], int]:
        """Return one page of entries (actor loaded) and the total match count."""
        total = await self.count(filters)

        if sort == "oldest":
            order_by = (AuditLog.created_at.asc(), AuditLog.id.asc())
        else:
            order_by = (AuditLog.created_at.desc(), AuditLog.id.desc())

        query = (
            self._apply_filters(select(AuditLog), filters)
            .options(selectinload(AuditLog.actor))
            .order_by(*order_by)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_by_id(self, audit_log_id: uuid.UUID) -> Optional[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .options(selectinload(AuditLog.actor))
            .where(AuditLog.id == audit_log_id)
        )
        return result.scalar_one_or_none()

    async def group_count(
        self,
        field: str,
        filters: Optional[AuditLogFilter] = None,
        limit: int = 10,
        exclude_null: bool = False,
    ) -> list[tuple[Optional[str], int]]:
        """
        Count entries per distinct value of `field`, most frequent first.

        Ties are ordered by value so results are deterministic.
        """
        column = GROUPABLE_FIELDS.get(field)
        if column is None:
            raise ValueError(f"Cannot group audit logs by '{field}'")

        count_col = func.count(AuditLog.id).label("count")
        query = self._apply_filters(select(column, count_col), filters)
        if exclude_null:
            query = query.where(column.is_not(None))
        query = (
            query.group_by(column)
            .order_by(count_col.desc(), column.asc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return [(value, count) for value, count in result.all()]

    async def recent(self, filters: Optional[AuditLogFilter] = None, limit: int = 5) -> list[AuditLog]:
        query = (
            self._apply_filters(select(AuditLog), filters)
            .options(selectinload(AuditLog.actor))
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
