"""
Tests for the admin audit log API.

These tests verify:
- Only administrators can read the audit trail
- Listing, filtering and pagination over HTTP
- Statistics and single-entry lookup
- Validation errors for bad query parameters
"""
import pytest
import uuid

from httpx import AsyncClient

from audittrail.audit.audit_logger import AuditLogger
from audittrail.audit.metadata import AuditActions
from audittrail.models.user import User

BASE_URL = "/api/v1/admin/audit-logs"


async def _seed(audit_logger: AuditLogger, actor: User) -> None:
    await audit_logger.log_create(
        AuditActions.CREATE_OFFER, "offers", "1", {"title": "Half price"}, actor_id=actor.id
    )
    await audit_logger.log_update(
        AuditActions.UPDATE_OFFER, "offers", "1", {"title": "Half price"}, {"title": "Buy one get one"}
    )
    await audit_logger.log_create(
        AuditActions.CREATE_OFFER, "offers", "2", {"title": "Free drink"}, actor_id=actor.id
    )


@pytest.mark.asyncio
class TestAuditLogAccess:
    """Tests for role enforcement on audit log endpoints."""

    async def test_unauthenticated_rejected(self, async_client: AsyncClient):
        response = await async_client.get(BASE_URL)

        assert response.status_code == 401

    async def test_non_admin_forbidden(self, async_client: AsyncClient, student_headers: dict):
        for path in (BASE_URL, f"{BASE_URL}/statistics", f"{BASE_URL}/{uuid.uuid4()}"):
            response = await async_client.get(path, headers=student_headers)

            assert response.status_code == 403
            assert response.json()["detail"]["code"] == "FORBIDDEN_ROLE"


@pytest.mark.asyncio
class TestAuditLogListing:
    """Tests for GET /admin/audit-logs."""

    async def test_list_newest_first(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)

        response = await async_client.get(BASE_URL, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["pagination"] == {
            "total": 3,
            "page": 1,
            "page_size": 10,
            "total_pages": 1,
            "has_next": False,
            "has_prev": False,
        }
        items = data["items"]
        assert [item["record_id"] for item in items] == ["2", "1", "1"]
        assert items[0]["actor"] == {
            "id": str(admin_user.id),
            "email": admin_user.email,
            "role": "admin",
        }
        assert items[1]["actor"] is None
        assert items[1]["old_values"] == {"title": "Half price"}
        assert items[1]["new_values"] == {"title": "Buy one get one"}

    async def test_filter_and_paginate(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)

        response = await async_client.get(
            BASE_URL,
            params={"action": "create_offer", "sort": "oldest", "page": 2, "page_size": 1},
            headers=admin_headers,
        )

        data = response.json()
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["has_prev"] is True
        assert [item["record_id"] for item in data["items"]] == ["2"]

    async def test_filter_by_user_and_search(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)

        by_user = await async_client.get(
            BASE_URL, params={"user_id": str(admin_user.id)}, headers=admin_headers
        )
        by_email = await async_client.get(
            BASE_URL, params={"search": "ADMIN@PARCHI"}, headers=admin_headers
        )

        assert by_user.json()["pagination"]["total"] == 2
        assert by_email.json()["pagination"]["total"] == 2

    @pytest.mark.parametrize("params", [
        {"page": 0},
        {"page": 101},
        {"page_size": 0},
        {"page_size": 101},
        {"sort": "random"},
        {"user_id": "not-a-uuid"},
        {"action": "a" * 101},
    ])
    async def test_invalid_query_parameters(self, async_client: AsyncClient, admin_headers: dict, params):
        response = await async_client.get(BASE_URL, params=params, headers=admin_headers)

        assert response.status_code == 422

    async def test_invalid_page_size_reported_once(self, async_client: AsyncClient, admin_headers: dict):
        response = await async_client.get(BASE_URL, params={"page_size": 500}, headers=admin_headers)

        assert response.status_code == 422
        errors = response.json()["detail"]
        assert [error["loc"] for error in errors] == [["query", "page_size"]]

    async def test_default_page_size(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)

        response = await async_client.get(BASE_URL, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["pagination"]["page_size"] == 10

    async def test_start_after_end_rejected(self, async_client: AsyncClient, admin_headers: dict):
        response = await async_client.get(
            BASE_URL,
            params={"start_date": "2024-06-02T00:00:00Z", "end_date": "2024-06-01T00:00:00Z"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_DATE_RANGE"


@pytest.mark.asyncio
class TestAuditLogStatistics:
    """Tests for GET /admin/audit-logs/statistics."""

    async def test_statistics(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)
        await audit_logger.log_action("EXPORT_REPORT")

        response = await async_client.get(f"{BASE_URL}/statistics", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 4
        assert data["by_action"] == [
            {"action": "CREATE_OFFER", "count": 2},
            {"action": "EXPORT_REPORT", "count": 1},
            {"action": "UPDATE_OFFER", "count": 1},
        ]
        assert data["by_table"] == [{"table_name": "offers", "count": 3}]
        assert data["recent_activity"][0]["action"] == "EXPORT_REPORT"
        assert len(data["recent_activity"]) == 4

    async def test_statistics_future_range_is_empty(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)

        response = await async_client.get(
            f"{BASE_URL}/statistics",
            params={"start_date": "2999-01-01T00:00:00Z"},
            headers=admin_headers,
        )

        assert response.json() == {"total": 0, "by_action": [], "by_table": [], "recent_activity": []}


@pytest.mark.asyncio
class TestAuditLogDetail:
    """Tests for GET /admin/audit-logs/{id}."""

    async def test_get_existing_entry(
        self, async_client: AsyncClient, audit_logger: AuditLogger, admin_user: User, admin_headers: dict
    ):
        await _seed(audit_logger, admin_user)
        listing = await async_client.get(BASE_URL, headers=admin_headers)
        entry_id = listing.json()["items"][0]["id"]

        response = await async_client.get(f"{BASE_URL}/{entry_id}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == entry_id
        assert data["action"] == "CREATE_OFFER"
        assert data["table_name"] == "offers"
        assert data["new_values"] == {"title": "Free drink"}
        assert data["actor"]["email"] == admin_user.email

    async def test_missing_entry_returns_404(self, async_client: AsyncClient, admin_headers: dict):
        response = await async_client.get(f"{BASE_URL}/{uuid.uuid4()}", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Audit log not found"

    async def test_malformed_id_returns_422(self, async_client: AsyncClient, admin_headers: dict):
        response = await async_client.get(f"{BASE_URL}/not-a-uuid", headers=admin_headers)

        assert response.status_code == 422
