"""Shared test infrastructure for the demolition supervision test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- callers: one CallerIdentity per role (the inspector is user 100)
- filing: factory for a complete DemolitionRequestCreate payload
- make_request: factory that files a request through the workflow service
- advance: drives a request through the happy path up to a given status
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from demolition_supervision.infra.database import Base

import demolition_supervision.domain.models  # noqa: F401

from demolition_supervision.domain.enums import (
    DemolitionRequestStatus,
    DemolitionRequestType,
    UserRole,
)
from demolition_supervision.domain.schemas import (
    DemolitionRequestCreate,
    PriorityCandidateIn,
)
from demolition_supervision.services.demolition_workflow import (
    CallerIdentity,
    DemolitionWorkflowService,
)
from demolition_supervision.services.settlement_service import SettlementPayload

INSPECTOR_ID = 100


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def workflow(db_session):
    return DemolitionWorkflowService(db_session)


# ---------------------------------------------------------------------------
# Callers
# ---------------------------------------------------------------------------

@pytest.fixture
def district():
    return CallerIdentity(role=UserRole.DISTRICT_OFFICE, user_id=1)


@pytest.fixture
def city():
    return CallerIdentity(role=UserRole.CITY_HALL, user_id=2)


@pytest.fixture
def architect():
    return CallerIdentity(role=UserRole.ARCHITECT_SOCIETY, user_id=3)


@pytest.fixture
def inspector():
    return CallerIdentity(role=UserRole.INSPECTOR, user_id=INSPECTOR_ID)


# ---------------------------------------------------------------------------
# Payload factories
# ---------------------------------------------------------------------------

def candidate_in(user_id: int, name: str | None = None, **kwargs) -> PriorityCandidateIn:
    return PriorityCandidateIn(
        user_id=user_id,
        supervisor_name=name or f"Supervisor {user_id}",
        supervisor_license=f"LIC-{user_id}",
        **kwargs,
    )


@pytest.fixture
def filing():
    """Factory for a filing with every required field present.

    Usage:
        payload = filing(request_type=DemolitionRequestType.PRIORITY_DESIGNATION,
                         priority_designations=[candidate_in(100)])
    """
    def _factory(**overrides) -> DemolitionRequestCreate:
        data = dict(
            request_date="2026-03-02",
            district_office="Mapo District Office",
            region="Seoul",
            zone="Zone 3",
            residential_area="Hapjeong-dong",
            officer_name="Officer Kim",
            officer_phone="02-330-0000",
            officer_email="officer@district.example",
            owner_name="Owner Lee",
            site_address="12 Riverside-ro",
            application_category="permit",
            structure_type="reinforced concrete",
            floors_above="4",
            floors_below="1",
            demolition_type="full",
            demolition_scale="medium",
            site_area="320.50",
            building_area="180.25",
            total_floor_area="720.00",
        )
        data.update(overrides)
        return DemolitionRequestCreate(**data)

    return _factory


def priority_filing_kwargs(*user_ids: int) -> dict:
    return dict(
        request_type=DemolitionRequestType.PRIORITY_DESIGNATION,
        priority_designation=True,
        priority_reason="Adjacent to a school",
        priority_designations=[candidate_in(uid) for uid in user_ids],
    )


def valid_settlement(**overrides) -> SettlementPayload:
    data = dict(
        supervision_fee="1500000",
        payment_amount="1500000",
        contract_amount="42000000",
        association_fee="50000",
        contractor_name="Hanil Demolition",
    )
    data.update(overrides)
    return SettlementPayload(**data)


@pytest.fixture
def make_request(workflow, district, filing):
    """Factory that files a request through the workflow service.

    Usage:
        request = await make_request()
        request = await make_request(**priority_filing_kwargs(100, 101))
    """
    async def _factory(**overrides):
        return await workflow.create_request(filing(**overrides), district)

    return _factory


@pytest.fixture
def advance(workflow, district, city, architect):
    """Drive a request along the happy path until it reaches *target*.

    Recommendation requests go through pre-recommend; priority-designation
    requests through request-verification.
    """
    S = DemolitionRequestStatus

    async def _advance(request, target: DemolitionRequestStatus):
        steps = []
        if request.request_type == DemolitionRequestType.RECOMMENDATION.value:
            steps.append((S.VERIFICATION_REQUESTED, lambda: workflow.pre_recommend(request.id, city)))
        else:
            steps.append((S.VERIFICATION_REQUESTED, lambda: workflow.request_verification(request.id, city)))
        steps += [
            (S.VERIFICATION_COMPLETED, lambda: workflow.complete_verification(request.id, architect)),
            (S.RECOMMENDATION_COMPLETED, lambda: workflow.complete_recommendation(request.id, city)),
            (S.SUPERVISOR_ASSIGNED, lambda: workflow.assign_supervisor(request.id, district)),
        ]
        for status, step in steps:
            request = await step()
            if status == target:
                return request
        raise AssertionError(f"{target} is not on the happy path")

    return _advance
