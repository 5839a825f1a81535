"""District office endpoints: filing, candidate ranking, assignment, cancel."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.app.routes.auth import require_role
from demolition_supervision.app.routes.common import (
    assignment_history,
    request_detail,
    workflow_http_error,
)
from demolition_supervision.domain.enums import UserRole
from demolition_supervision.domain.schemas import (
    AddCandidateRequest,
    AssignSupervisorRequest,
    DemolitionRequestCreate,
    MoveCandidateRequest,
    ReasonRequest,
)
from demolition_supervision.infra.database import get_db
from demolition_supervision.services.demolition_workflow import (
    CallerIdentity,
    DemolitionWorkflowService,
)
from demolition_supervision.services.workflow_errors import WorkflowError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/district/demolition-requests", tags=["district"])
require_district = require_role(UserRole.DISTRICT_OFFICE)


@router.post("", status_code=201)
async def create_request(
    body: DemolitionRequestCreate,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    """File a new demolition supervision request."""
    service = DemolitionWorkflowService(db)
    try:
        request = await service.create_request(body, caller)
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request.id, caller)


@router.get("/{request_id}")
async def get_request(
    request_id: int,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    return await request_detail(DemolitionWorkflowService(db), request_id, caller)


@router.get("/{request_id}/assignment-histories")
async def get_assignment_histories(
    request_id: int,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    return await assignment_history(DemolitionWorkflowService(db), request_id)


@router.put("/{request_id}")
async def update_request(
    request_id: int,
    body: DemolitionRequestCreate,
    expected_version: Optional[int] = Query(None),
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    """Edit a filing; a rejected filing goes back to INITIAL_REQUEST."""
    service = DemolitionWorkflowService(db)
    try:
        await service.update_request(request_id, body, caller, expected_version=expected_version)
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/cancel")
async def cancel_request(
    request_id: int,
    body: ReasonRequest,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    service = DemolitionWorkflowService(db)
    try:
        await service.cancel_request(
            request_id, body.reason, caller, expected_version=body.expected_version
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.post("/{request_id}/priority-designations")
async def add_priority_candidate(
    request_id: int,
    body: AddCandidateRequest,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    """Nominate one more supervisor at the bottom of the ranking."""
    service = DemolitionWorkflowService(db)
    try:
        await service.add_priority_candidate(
            request_id, body.to_candidate(), caller,
            expected_version=body.expected_version,
            priority_reason=body.priority_reason,
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.delete("/{request_id}/priority-designations/{order}")
async def remove_priority_candidate(
    request_id: int,
    order: int,
    expected_version: Optional[int] = Query(None),
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    service = DemolitionWorkflowService(db)
    try:
        await service.remove_priority_candidate(
            request_id, order, caller, expected_version=expected_version
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/priority-designations/{order}/move")
async def move_priority_candidate(
    request_id: int,
    order: int,
    body: MoveCandidateRequest,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    service = DemolitionWorkflowService(db)
    try:
        await service.move_priority_candidate(
            request_id, order, body.direction, caller,
            expected_version=body.expected_version,
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/assign-supervisor")
async def assign_supervisor(
    request_id: int,
    body: Optional[AssignSupervisorRequest] = None,
    caller: CallerIdentity = Depends(require_district),
    db: AsyncSession = Depends(get_db),
):
    """Confirm the supervisor: an explicit id in the body, else the top candidate."""
    body = body or AssignSupervisorRequest()
    service = DemolitionWorkflowService(db)
    try:
        await service.assign_supervisor(
            request_id, caller,
            supervisor_id=body.supervisor_id,
            supervisor_name=body.supervisor_name,
            expected_version=body.expected_version,
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)
