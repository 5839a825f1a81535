"""City hall endpoints: review, verification routing, recommendation."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.app.routes.auth import require_role
from demolition_supervision.app.routes.common import (
    assignment_history,
    request_detail,
    workflow_http_error,
)
from demolition_supervision.domain.enums import UserRole
from demolition_supervision.domain.schemas import ReasonRequest, VersionedRequest
from demolition_supervision.infra.database import get_db
from demolition_supervision.services.demolition_workflow import (
    CallerIdentity,
    DemolitionWorkflowService,
)
from demolition_supervision.services.workflow_errors import WorkflowError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/city/demolition-requests", tags=["city"])
require_city_hall = require_role(UserRole.CITY_HALL)


def _expected(body: Optional[VersionedRequest]) -> Optional[int]:
    return body.expected_version if body else None


@router.get("/{request_id}")
async def get_request(
    request_id: int,
    caller: CallerIdentity = Depends(require_city_hall),
    db: AsyncSession = Depends(get_db),
):
    return await request_detail(DemolitionWorkflowService(db), request_id, caller)


@router.get("/{request_id}/assignment-histories")
async def get_assignment_histories(
    request_id: int,
    caller: CallerIdentity = Depends(require_city_hall),
    db: AsyncSession = Depends(get_db),
):
    return await assignment_history(DemolitionWorkflowService(db), request_id)


@router.put("/{request_id}/initial-reject")
async def initial_reject(
    request_id: int,
    body: ReasonRequest,
    caller: CallerIdentity = Depends(require_city_hall),
    db: AsyncSession = Depends(get_db),
):
    """Send the filing back to the district office with a reason."""
    service = DemolitionWorkflowService(db)
    try:
        await service.initial_reject(
            request_id, body.reason, caller, expected_version=body.expected_version
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/pre-recommend")
async def pre_recommend(
    request_id: int,
    body: Optional[VersionedRequest] = None,
    caller: CallerIdentity = Depends(require_city_hall),
    db: AsyncSession = Depends(get_db),
):
    """Forward a recommendation-type request to the architect society."""
    service = DemolitionWorkflowService(db)
    try:
        await service.pre_recommend(request_id, caller, expected_version=_expected(body))
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/request-verification")
async def request_verification(
    request_id: int,
    body: Optional[VersionedRequest] = None,
    caller: CallerIdentity = Depends(require_city_hall),
    db: AsyncSession = Depends(get_db),
):
    """Forward a priority-designation request to the architect society."""
    service = DemolitionWorkflowService(db)
    try:
        await service.request_verification(request_id, caller, expected_version=_expected(body))
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/complete-recommendation")
async def complete_recommendation(
    request_id: int,
    body: Optional[VersionedRequest] = None,
    caller: CallerIdentity = Depends(require_city_hall),
    db: AsyncSession = Depends(get_db),
):
    service = DemolitionWorkflowService(db)
    try:
        await service.complete_recommendation(request_id, caller, expected_version=_expected(body))
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)
