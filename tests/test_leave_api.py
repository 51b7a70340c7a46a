"""Leave API tests — endpoints, role checks and problem+json error bodies."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.models import User
from leavedesk.common.constants import UserRole
from leavedesk.leave.models import LeaveBalance, LeaveType
from tests.conftest import _make_user, auth_header, create_access_token

BASE = "/api/v1/leave"


# ── Helpers ─────────────────────────────────────────────────────────


async def _seed_catalog(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """Annual (10) + Sick (5) with 2025 balances for *user_id*; committed."""
    now = datetime.now(timezone.utc)
    annual = LeaveType(id=uuid.uuid4(), name="Annual", default_days=10,
                       created_at=now, updated_at=now)
    sick = LeaveType(id=uuid.uuid4(), name="Sick", default_days=5,
                     created_at=now, updated_at=now)
    db.add_all([annual, sick])
    await db.flush()
    annual_bal = LeaveBalance(id=uuid.uuid4(), user_id=user_id, leave_type_id=annual.id,
                              year=2025, total_days=10, used_days=0, pending_days=0)
    sick_bal = LeaveBalance(id=uuid.uuid4(), user_id=user_id, leave_type_id=sick.id,
                            year=2025, total_days=5, used_days=0, pending_days=0)
    db.add_all([annual_bal, sick_bal])
    await db.commit()
    return {
        "annual": annual.id,
        "sick": sick.id,
        "annual_balance": annual_bal.id,
        "sick_balance": sick_bal.id,
    }


def _submit_body(leave_type_id: uuid.UUID, start: str, end: str, reason: str = "vacation") -> dict:
    return {
        "leave_type_id": str(leave_type_id),
        "start_date": start,
        "end_date": end,
        "reason": reason,
    }


async def _submit(client: AsyncClient, headers: dict, leave_type_id: uuid.UUID,
                  start: str = "2025-06-02", end: str = "2025-06-06"):
    return await client.post(
        f"{BASE}/requests", json=_submit_body(leave_type_id, start, end), headers=headers,
    )


async def _balance(client: AsyncClient, headers: dict, leave_type_id: uuid.UUID) -> dict:
    resp = await client.get(f"{BASE}/balances", params={"year": 2025}, headers=headers)
    assert resp.status_code == 200
    return next(b for b in resp.json() if b["leave_type_id"] == str(leave_type_id))


def _assert_problem(resp, status: int, kind: str) -> dict:
    assert resp.status_code == status
    assert resp.headers["content-type"].startswith("application/problem+json")
    body = resp.json()
    assert body["success"] is False
    assert body["kind"] == kind
    assert body["message"]
    return body


# ═════════════════════════════════════════════════════════════════════
# SYSTEM / AUTH
# ═════════════════════════════════════════════════════════════════════


class TestSystem:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token(self, client: AsyncClient):
        resp = await client.get(f"{BASE}/balances")
        assert resp.status_code == 401

    async def test_expired_token(self, client: AsyncClient, test_user):
        token = create_access_token(test_user["id"], expired=True)
        resp = await client.get(
            f"{BASE}/balances", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_inactive_user(self, client: AsyncClient, db: AsyncSession):
        data = _make_user(username="gone", is_active=False)
        db.add(User(**data))
        await db.commit()

        resp = await client.get(f"{BASE}/balances", headers=auth_header(data["id"]))
        assert resp.status_code == 401

    async def test_role_comes_from_stored_user(self, client: AsyncClient, test_user):
        """A token claiming admin does not grant admin to an employee."""
        headers = auth_header(test_user["id"], UserRole.admin)
        resp = await client.get(f"{BASE}/summary", headers=headers)
        _assert_problem(resp, 403, "Forbidden")


# ═════════════════════════════════════════════════════════════════════
# WORKFLOW ENDPOINTS
# ═════════════════════════════════════════════════════════════════════


class TestWorkflowEndpoints:

    async def test_submit_and_balance(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await _submit(client, user_headers, ids["annual"])

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "pending"
        assert body["total_days"] == 5
        assert body["leave_type"]["name"] == "Annual"

        bal = await _balance(client, user_headers, ids["annual"])
        assert (bal["total_days"], bal["used_days"], bal["pending_days"]) == (10, 0, 5)
        assert bal["available_days"] == 5

    async def test_insufficient_balance_body(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await _submit(client, user_headers, ids["sick"], "2025-06-02", "2025-06-09")

        body = _assert_problem(resp, 422, "InsufficientBalance")
        assert body["errors"] == {"available_days": 5, "requested_days": 6}

    async def test_overlap_conflict(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])
        await _submit(client, user_headers, ids["annual"])

        resp = await _submit(client, user_headers, ids["sick"], "2025-06-05", "2025-06-10")

        _assert_problem(resp, 409, "OverlappingRequest")

    async def test_cross_year(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await _submit(client, user_headers, ids["annual"], "2025-12-29", "2026-01-02")

        _assert_problem(resp, 422, "CrossYearRequest")

    async def test_reversed_range(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await _submit(client, user_headers, ids["annual"], "2025-06-06", "2025-06-02")

        body = _assert_problem(resp, 422, "InvalidRange")
        assert body["errors"] == {"reason": "start_after_end"}

    async def test_weekend_only_range(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await _submit(client, user_headers, ids["annual"], "2025-06-07", "2025-06-08")

        body = _assert_problem(resp, 422, "InvalidRange")
        assert body["errors"] == {"reason": "no_working_days"}

    async def test_missing_balance(self, client, db, test_user, user_headers):
        await _seed_catalog(db, test_user["id"])

        resp = await _submit(client, user_headers, uuid.uuid4())

        _assert_problem(resp, 404, "BalanceNotFound")

    async def test_body_validation(self, client, test_user, user_headers):
        resp = await client.post(
            f"{BASE}/requests", json={"start_date": "2025-06-02"}, headers=user_headers,
        )

        body = _assert_problem(resp, 422, "ValidationError")
        assert "leave_type_id" in body["errors"]
        assert "end_date" in body["errors"]

    async def test_approve_then_cancel(
        self, client, db, test_user, test_admin, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        request_id = (await _submit(client, user_headers, ids["annual"])).json()["id"]

        resp = await client.put(f"{BASE}/requests/{request_id}/approve", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"
        assert resp.json()["approved_by"] == str(test_admin["id"])
        assert resp.json()["approver"]["username"] == "test.admin"
        assert resp.json()["user"]["username"] == "test.user"
        bal = await _balance(client, user_headers, ids["annual"])
        assert (bal["used_days"], bal["pending_days"]) == (5, 0)

        resp = await client.put(f"{BASE}/requests/{request_id}/cancel", headers=user_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        bal = await _balance(client, user_headers, ids["annual"])
        assert (bal["used_days"], bal["pending_days"]) == (0, 0)

    async def test_approve_requires_admin(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])
        request_id = (await _submit(client, user_headers, ids["annual"])).json()["id"]

        resp = await client.put(f"{BASE}/requests/{request_id}/approve", headers=user_headers)

        _assert_problem(resp, 403, "Forbidden")

    async def test_reject_with_and_without_reason(
        self, client, db, test_user, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        first = (await _submit(client, user_headers, ids["annual"])).json()["id"]
        resp = await client.put(
            f"{BASE}/requests/{first}/reject", json={"reason": "Deadline"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["rejection_reason"] == "Deadline"

        second = (await _submit(client, user_headers, ids["annual"])).json()["id"]
        resp = await client.put(f"{BASE}/requests/{second}/reject", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["rejection_reason"] == "Request denied"

        bal = await _balance(client, user_headers, ids["annual"])
        assert (bal["used_days"], bal["pending_days"]) == (0, 0)

    async def test_second_decision_conflict(
        self, client, db, test_user, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        request_id = (await _submit(client, user_headers, ids["annual"])).json()["id"]
        await client.put(f"{BASE}/requests/{request_id}/approve", headers=admin_headers)

        resp = await client.put(f"{BASE}/requests/{request_id}/reject", headers=admin_headers)

        body = _assert_problem(resp, 409, "InvalidStateTransition")
        assert body["errors"] == {"current_status": "approved", "event": "reject"}
        bal = await _balance(client, user_headers, ids["annual"])
        assert (bal["used_days"], bal["pending_days"]) == (5, 0)

    async def test_cancel_by_other_user(
        self, client, db, test_user, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        request_id = (await _submit(client, user_headers, ids["annual"])).json()["id"]

        resp = await client.put(f"{BASE}/requests/{request_id}/cancel", headers=admin_headers)

        _assert_problem(resp, 403, "Forbidden")

    async def test_unknown_request(self, client, test_admin, admin_headers):
        resp = await client.put(f"{BASE}/requests/{uuid.uuid4()}/approve", headers=admin_headers)

        _assert_problem(resp, 404, "NotFound")

    async def test_submit_rate_limited(self, client, test_user, user_headers):
        # Reversed ranges fail fast but still count against the limit
        body = {
            "leave_type_id": str(uuid.uuid4()),
            "start_date": "2025-06-06",
            "end_date": "2025-06-02",
        }
        statuses = [
            (await client.post(f"{BASE}/requests", json=body, headers=user_headers)).status_code
            for _ in range(21)
        ]
        assert statuses[:20] == [422] * 20
        assert statuses[20] == 429


# ═════════════════════════════════════════════════════════════════════
# BALANCES / CATALOG / REPORTS
# ═════════════════════════════════════════════════════════════════════


class TestBalanceEndpoints:

    async def test_initialize_own_balances(self, client, db, test_user, user_headers):
        now = datetime.now(timezone.utc)
        db.add(LeaveType(id=uuid.uuid4(), name="Annual", default_days=10,
                         created_at=now, updated_at=now))
        await db.commit()

        first = await client.post(
            f"{BASE}/balances/initialize", params={"year": 2025}, headers=user_headers,
        )
        second = await client.post(
            f"{BASE}/balances/initialize", params={"year": 2025}, headers=user_headers,
        )

        assert first.status_code == 200
        assert first.json() == second.json()
        assert len(first.json()) == 1
        assert first.json()[0]["total_days"] == 10

    async def test_admin_initializes_for_user(
        self, client, db, test_user, test_admin, admin_headers, user_headers,
    ):
        now = datetime.now(timezone.utc)
        db.add(LeaveType(id=uuid.uuid4(), name="Annual", default_days=10,
                         created_at=now, updated_at=now))
        await db.commit()

        resp = await client.post(
            f"{BASE}/users/{test_user['id']}/balances/initialize",
            params={"year": 2025},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()[0]["user_id"] == str(test_user["id"])

        resp = await client.post(
            f"{BASE}/users/{test_admin['id']}/balances/initialize",
            params={"year": 2025},
            headers=user_headers,
        )
        _assert_problem(resp, 403, "Forbidden")

    async def test_initialize_unknown_user(self, client, db, test_admin, admin_headers):
        now = datetime.now(timezone.utc)
        db.add(LeaveType(id=uuid.uuid4(), name="Annual", default_days=10,
                         created_at=now, updated_at=now))
        await db.commit()

        resp = await client.post(
            f"{BASE}/users/{uuid.uuid4()}/balances/initialize",
            params={"year": 2025},
            headers=admin_headers,
        )

        _assert_problem(resp, 404, "NotFound")

    async def test_override_total(
        self, client, db, test_user, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        await _submit(client, user_headers, ids["annual"])

        resp = await client.put(
            f"{BASE}/balances/{ids['annual_balance']}",
            json={"total_days": 4},
            headers=admin_headers,
        )
        body = _assert_problem(resp, 422, "InvalidBalanceTotal")
        assert body["errors"]["committed_days"] == 5

        resp = await client.put(
            f"{BASE}/balances/{ids['annual_balance']}",
            json={"total_days": 15},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["available_days"] == 10

    async def test_override_negative_rejected_by_schema(self, client, db, test_user, admin_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await client.put(
            f"{BASE}/balances/{ids['annual_balance']}",
            json={"total_days": -1},
            headers=admin_headers,
        )
        _assert_problem(resp, 422, "ValidationError")

    async def test_override_requires_admin(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])

        resp = await client.put(
            f"{BASE}/balances/{ids['annual_balance']}",
            json={"total_days": 20},
            headers=user_headers,
        )
        _assert_problem(resp, 403, "Forbidden")

    async def test_leave_types(self, client, db, test_user, user_headers):
        await _seed_catalog(db, test_user["id"])

        resp = await client.get(f"{BASE}/types", headers=user_headers)

        assert resp.status_code == 200
        assert [t["name"] for t in resp.json()] == ["Annual", "Sick"]


class TestReportEndpoints:

    async def test_my_requests(self, client, db, test_user, user_headers):
        ids = await _seed_catalog(db, test_user["id"])
        await _submit(client, user_headers, ids["annual"])
        await _submit(client, user_headers, ids["sick"], "2025-07-01", "2025-07-01")

        resp = await client.get(f"{BASE}/requests", headers=user_headers)
        assert resp.status_code == 200
        assert [r["start_date"] for r in resp.json()] == ["2025-07-01", "2025-06-02"]

        resp = await client.get(
            f"{BASE}/requests", params={"status": "approved"}, headers=user_headers,
        )
        assert resp.json() == []

    async def test_all_requests_admin_only(
        self, client, db, test_user, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        await _submit(client, user_headers, ids["annual"])

        resp = await client.get(f"{BASE}/requests/all", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["user_id"] == str(test_user["id"])
        assert body["data"][0]["user"]["username"] == "test.user"
        assert body["data"][0]["approver"] is None

        resp = await client.get(f"{BASE}/requests/all", headers=user_headers)
        _assert_problem(resp, 403, "Forbidden")

    async def test_all_requests_page_params(
        self, client, db, test_user, user_headers, admin_headers,
    ):
        ids = await _seed_catalog(db, test_user["id"])
        await _submit(client, user_headers, ids["annual"], "2025-06-02", "2025-06-02")
        await _submit(client, user_headers, ids["annual"], "2025-06-09", "2025-06-09")
        await _submit(client, user_headers, ids["sick"], "2025-07-01", "2025-07-01")

        resp = await client.get(
            f"{BASE}/requests/all", params={"page": 2, "page_size": 2}, headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["data"]) == 1
        assert body["meta"]["page"] == 2
        assert body["meta"]["has_prev"] and not body["meta"]["has_next"]

        resp = await client.get(
            f"{BASE}/requests/all", params={"page_size": 0}, headers=admin_headers,
        )
        _assert_problem(resp, 422, "ValidationError")

    async def test_summary(self, client, db, test_user, user_headers, admin_headers):
        ids = await _seed_catalog(db, test_user["id"])
        await _submit(client, user_headers, ids["annual"])

        resp = await client.get(f"{BASE}/summary", params={"year": 2025}, headers=admin_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["year"] == 2025
        assert body["by_status"] == [{"status": "pending", "count": 1}]
        assert body["by_type"][0]["total_days"] == 5
        assert body["by_month"] == [{"month": 6, "count": 1}]
