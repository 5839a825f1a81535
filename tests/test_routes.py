"""HTTP tests for the role routers, through a real DB session.

Tokens are minted locally with the configured secret; issuing them in
production is the auth service's job.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.app.routes.architect import router as architect_router
from demolition_supervision.app.routes.city import router as city_router
from demolition_supervision.app.routes.district import router as district_router
from demolition_supervision.app.routes.inspector import router as inspector_router
from demolition_supervision.domain.enums import UserRole
from demolition_supervision.infra.database import get_db
from demolition_supervision.services.auth_service import create_access_token

from conftest import INSPECTOR_ID

DISTRICT = "/api/district/demolition-requests"
CITY = "/api/city/demolition-requests"
ARCHITECT = "/api/architect/demolition-requests"
INSPECTOR = "/api/inspector/demolition-requests"


def _build_app_client(db_session: AsyncSession):
    """Build an HTTPX AsyncClient wired to a test FastAPI app with the role routers."""
    test_app = FastAPI()
    test_app.include_router(district_router)
    test_app.include_router(city_router)
    test_app.include_router(architect_router)
    test_app.include_router(inspector_router)

    async def _override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = _override_get_db

    return AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://testserver",
    )


def _auth(role: UserRole, user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role.value)}"}


DISTRICT_AUTH = _auth(UserRole.DISTRICT_OFFICE, 1)
CITY_AUTH = _auth(UserRole.CITY_HALL, 2)
ARCHITECT_AUTH = _auth(UserRole.ARCHITECT_SOCIETY, 3)
INSPECTOR_AUTH = _auth(UserRole.INSPECTOR, INSPECTOR_ID)


def _filing_json(**overrides) -> dict:
    data = {
        "district_office": "Mapo District Office",
        "region": "Seoul",
        "zone": "Zone 3",
        "residential_area": "Hapjeong-dong",
        "officer_name": "Officer Kim",
        "officer_phone": "02-330-0000",
        "officer_email": "officer@district.example",
        "owner_name": "Owner Lee",
        "site_address": "12 Riverside-ro",
        "application_category": "permit",
        "structure_type": "reinforced concrete",
        "floors_above": "4",
        "floors_below": "1",
        "demolition_type": "full",
        "demolition_scale": "medium",
        "site_area": 320.5,
        "building_area": 180.25,
        "total_floor_area": 720,
    }
    data.update(overrides)
    return data


SETTLEMENT_JSON = {
    "supervision_fee": "1500000",
    "payment_amount": "1500000",
    "contract_amount": "42000000",
    "association_fee": "50000",
    "contractor_name": "Hanil Demolition",
}


@pytest.fixture
async def client(db_session):
    async with _build_app_client(db_session) as c:
        yield c


class TestAuthentication:
    async def test_missing_token(self, client):
        resp = await client.post(DISTRICT, json=_filing_json())
        assert resp.status_code == 401

    async def test_garbage_token(self, client):
        resp = await client.post(DISTRICT, json=_filing_json(), headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    async def test_wrong_role_router(self, client):
        resp = await client.post(DISTRICT, json=_filing_json(), headers=CITY_AUTH)
        assert resp.status_code == 403


class TestErrorMapping:
    async def test_validation_error_names_field(self, client):
        resp = await client.post(DISTRICT, json=_filing_json(owner_name=""), headers=DISTRICT_AUTH)
        assert resp.status_code == 422
        assert resp.json()["detail"] == {
            "code": "validation_error",
            "message": "owner_name is required",
            "field": "owner_name",
        }

    async def test_unknown_request(self, client):
        resp = await client.get(f"{CITY}/9999", headers=CITY_AUTH)
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "not_found"

    async def test_invalid_transition(self, client):
        created = (await client.post(DISTRICT, json=_filing_json(), headers=DISTRICT_AUTH)).json()
        resp = await client.put(f"{ARCHITECT}/{created['id']}/complete-verification", headers=ARCHITECT_AUTH)
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_transition"

    async def test_stale_version_conflict(self, client):
        created = (await client.post(DISTRICT, json=_filing_json(), headers=DISTRICT_AUTH)).json()
        resp = await client.put(
            f"{DISTRICT}/{created['id']}/cancel",
            json={"reason": "owner withdrew", "expected_version": created["version"] - 1},
            headers=DISTRICT_AUTH,
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "concurrent_modification"

    async def test_unbound_inspector_forbidden(self, client):
        created = (await client.post(
            DISTRICT,
            json=_filing_json(supervisor_id=INSPECTOR_ID, priority_supervisor_name="Cho"),
            headers=DISTRICT_AUTH,
        )).json()
        rid = created["id"]
        await client.put(f"{CITY}/{rid}/pre-recommend", headers=CITY_AUTH)
        await client.put(f"{ARCHITECT}/{rid}/complete-verification", headers=ARCHITECT_AUTH)
        await client.put(f"{CITY}/{rid}/complete-recommendation", headers=CITY_AUTH)
        await client.put(f"{DISTRICT}/{rid}/assign-supervisor", headers=DISTRICT_AUTH)

        resp = await client.put(
            f"{INSPECTOR}/{rid}/settlement",
            json=SETTLEMENT_JSON,
            headers=_auth(UserRole.INSPECTOR, 999),
        )
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "unauthorized"


class TestRecommendationFlow:
    async def test_full_lifecycle(self, client):
        resp = await client.post(DISTRICT, json=_filing_json(), headers=DISTRICT_AUTH)
        assert resp.status_code == 201
        created = resp.json()
        rid = created["id"]
        assert created["status"] == "INITIAL_REQUEST"
        assert created["allowed_actions"] == ["submit", "edit_candidates", "cancel"]
        assert created["editable"] is True

        resp = await client.put(f"{CITY}/{rid}/pre-recommend", headers=CITY_AUTH)
        assert resp.json()["status"] == "VERIFICATION_REQUESTED"

        resp = await client.put(
            f"{ARCHITECT}/{rid}/reject-verification",
            json={"rejection_reason": "missing docs"},
            headers=ARCHITECT_AUTH,
        )
        body = resp.json()
        assert body["status"] == "VERIFICATION_REJECTED"
        assert body["rejection_reason"] == "missing docs"
        assert body["rejection_count"] == 1

        await client.put(f"{CITY}/{rid}/pre-recommend", headers=CITY_AUTH)
        await client.put(f"{ARCHITECT}/{rid}/complete-verification", headers=ARCHITECT_AUTH)
        resp = await client.put(f"{CITY}/{rid}/complete-recommendation", headers=CITY_AUTH)
        assert resp.json()["status"] == "RECOMMENDATION_COMPLETED"

        resp = await client.put(
            f"{DISTRICT}/{rid}/assign-supervisor",
            json={"supervisor_id": INSPECTOR_ID, "supervisor_name": "Inspector Cho"},
            headers=DISTRICT_AUTH,
        )
        body = resp.json()
        assert body["status"] == "SUPERVISOR_ASSIGNED"
        assert body["supervisor_id"] == INSPECTOR_ID
        assert body["assignment_histories"][-1]["event_type"] == "CONFIRMED"

        resp = await client.put(
            f"{INSPECTOR}/{rid}/complete",
            json={"attachments": [{"id": "f1"}]},
            headers=INSPECTOR_AUTH,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "settlement_required"

        resp = await client.put(f"{INSPECTOR}/{rid}/settlement", json=SETTLEMENT_JSON, headers=INSPECTOR_AUTH)
        assert resp.status_code == 200
        assert resp.json()["settled"] is True

        resp = await client.put(
            f"{INSPECTOR}/{rid}/complete",
            json={"attachments": [{"id": "f1", "file_label": "site photo"}]},
            headers=INSPECTOR_AUTH,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "SUPERVISOR_COMPLETED"
        assert body["settlement"]["settled"] is True
        assert body["completion_report"]["attachments"][0]["id"] == "f1"
        assert body["allowed_actions"] == []

        resp = await client.put(
            f"{INSPECTOR}/{rid}/complete",
            json={"attachments": [{"id": "f2"}]},
            headers=INSPECTOR_AUTH,
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "already_completed"

        resp = await client.get(f"{INSPECTOR}/{rid}/assignment-histories", headers=INSPECTOR_AUTH)
        assert [e["event_type"] for e in resp.json()] == ["CONFIRMED", "COMPLETED"]


class TestPriorityCandidates:
    async def test_candidate_editing(self, client):
        resp = await client.post(
            DISTRICT,
            json=_filing_json(
                request_type="PRIORITY_DESIGNATION",
                priority_designation=True,
                priority_reason="Adjacent to a school",
                priority_designations=[
                    {"user_id": INSPECTOR_ID, "supervisor_name": "Cho"},
                    {"user_id": 101, "supervisor_name": "Park"},
                ],
            ),
            headers=DISTRICT_AUTH,
        )
        rid = resp.json()["id"]
        assert resp.json()["supervisor_id"] == INSPECTOR_ID

        resp = await client.put(
            f"{DISTRICT}/{rid}/priority-designations/2/move",
            json={"direction": "up"},
            headers=DISTRICT_AUTH,
        )
        body = resp.json()
        assert [c["user_id"] for c in body["priority_designations"]] == [101, INSPECTOR_ID]
        assert body["supervisor_id"] == 101

        resp = await client.post(
            f"{DISTRICT}/{rid}/priority-designations",
            json={"user_id": 101, "supervisor_name": "Park again"},
            headers=DISTRICT_AUTH,
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "duplicate_candidate"

        resp = await client.delete(f"{DISTRICT}/{rid}/priority-designations/1", headers=DISTRICT_AUTH)
        body = resp.json()
        assert [(c["order"], c["user_id"]) for c in body["priority_designations"]] == [(1, INSPECTOR_ID)]

        resp = await client.put(f"{CITY}/{rid}/request-verification", headers=CITY_AUTH)
        assert resp.json()["status"] == "VERIFICATION_REQUESTED"

        resp = await client.put(
            f"{DISTRICT}/{rid}/priority-designations/1/move",
            json={"direction": "down"},
            headers=DISTRICT_AUTH,
        )
        assert resp.status_code == 400

    async def test_first_candidate_needs_priority_reason(self, client):
        rid = (await client.post(DISTRICT, json=_filing_json(), headers=DISTRICT_AUTH)).json()["id"]

        resp = await client.post(
            f"{DISTRICT}/{rid}/priority-designations",
            json={"user_id": INSPECTOR_ID, "supervisor_name": "Cho"},
            headers=DISTRICT_AUTH,
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "priority_reason"

        resp = await client.post(
            f"{DISTRICT}/{rid}/priority-designations",
            json={"user_id": INSPECTOR_ID, "supervisor_name": "Cho", "priority_reason": "Fire damage"},
            headers=DISTRICT_AUTH,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["priority_designation"] is True
        assert body["priority_reason"] == "Fire damage"


class TestHealth:
    async def test_health(self):
        from demolition_supervision.app.main import app

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as c:
            resp = await c.get("/health")
        assert resp.json() == {"status": "ok", "service": "demolition-supervision"}
