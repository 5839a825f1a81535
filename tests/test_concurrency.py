"""Per-request serialization: expected versions and lost optimistic-lock races."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from demolition_supervision.domain.enums import DemolitionRequestStatus
from demolition_supervision.domain.models import DemolitionRequest
from demolition_supervision.infra.database import Base, engine_options
from demolition_supervision.services.demolition_workflow import DemolitionWorkflowService
from demolition_supervision.services.workflow_errors import ConcurrentModificationError

S = DemolitionRequestStatus


class TestExpectedVersion:
    async def test_stale_version_is_rejected_without_changes(self, workflow, make_request, city):
        request = await make_request()
        stale = request.version - 1

        with pytest.raises(ConcurrentModificationError):
            await workflow.pre_recommend(request.id, city, expected_version=stale)

        current = await workflow.get_request(request.id)
        assert current.status == S.INITIAL_REQUEST.value

    async def test_matching_version_proceeds_and_bumps(self, workflow, make_request, city):
        request = await make_request()
        version = request.version

        result = await workflow.pre_recommend(request.id, city, expected_version=version)
        assert result.status == S.VERIFICATION_REQUESTED.value
        assert result.version == version + 1

    async def test_each_write_bumps_version(self, workflow, make_request, district, city):
        request = await make_request()
        before = request.version
        await workflow.initial_reject(request.id, "incomplete", city)
        after = (await workflow.get_request(request.id)).version
        assert after == before + 1


class RacingWorkflowService(DemolitionWorkflowService):
    """Lets a rival writer commit between this service's read and its write."""

    def __init__(self, db, rival):
        super().__init__(db)
        self.rival = rival

    async def _load_for_update(self, request_id, expected_version=None):
        request = await super()._load_for_update(request_id, expected_version)
        await self.rival()
        return request


@pytest.fixture
async def file_session_factory(tmp_path):
    """Two sessions need a shared database, so use a file instead of :memory:."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'race.db'}"
    engine = create_async_engine(url, **engine_options(url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class TestLostRace:
    async def test_second_writer_gets_concurrent_modification(
        self, file_session_factory, filing, district, city
    ):
        async with file_session_factory() as setup:
            request = await DemolitionWorkflowService(setup).create_request(filing(), district)
            await setup.commit()
            request_id = request.id

        async with file_session_factory() as winner, file_session_factory() as loser:

            async def rival():
                await DemolitionWorkflowService(winner).initial_reject(request_id, "wrong parcel", city)
                await winner.commit()

            with pytest.raises(ConcurrentModificationError):
                await RacingWorkflowService(loser, rival).pre_recommend(request_id, city)

        async with file_session_factory() as check:
            stored = await check.get(DemolitionRequest, request_id)
            assert stored.status == S.INITIAL_REJECTED.value
            assert stored.initial_rejection_reason == "wrong parcel"
