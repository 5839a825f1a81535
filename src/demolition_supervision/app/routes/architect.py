"""Architect society endpoints: verification outcome."""

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
from demolition_supervision.domain.schemas import VerificationRejectRequest, VersionedRequest
from demolition_supervision.infra.database import get_db
from demolition_supervision.services.demolition_workflow import (
    CallerIdentity,
    DemolitionWorkflowService,
)
from demolition_supervision.services.workflow_errors import WorkflowError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/architect/demolition-requests", tags=["architect"])
require_architect = require_role(UserRole.ARCHITECT_SOCIETY)


@router.get("/{request_id}")
async def get_request(
    request_id: int,
    caller: CallerIdentity = Depends(require_architect),
    db: AsyncSession = Depends(get_db),
):
    return await request_detail(DemolitionWorkflowService(db), request_id, caller)


@router.get("/{request_id}/assignment-histories")
async def get_assignment_histories(
    request_id: int,
    caller: CallerIdentity = Depends(require_architect),
    db: AsyncSession = Depends(get_db),
):
    return await assignment_history(DemolitionWorkflowService(db), request_id)


@router.put("/{request_id}/complete-verification")
async def complete_verification(
    request_id: int,
    body: Optional[VersionedRequest] = None,
    caller: CallerIdentity = Depends(require_architect),
    db: AsyncSession = Depends(get_db),
):
    service = DemolitionWorkflowService(db)
    try:
        await service.complete_verification(
            request_id, caller, expected_version=body.expected_version if body else None
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)


@router.put("/{request_id}/reject-verification")
async def reject_verification(
    request_id: int,
    body: VerificationRejectRequest,
    caller: CallerIdentity = Depends(require_architect),
    db: AsyncSession = Depends(get_db),
):
    """Reject the verification; city hall may pre-recommend again."""
    service = DemolitionWorkflowService(db)
    try:
        await service.reject_verification(
            request_id, body.rejection_reason, caller,
            expected_version=body.expected_version,
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)
