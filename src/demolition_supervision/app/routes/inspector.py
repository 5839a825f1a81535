"""Inspector endpoints: settlement and the completion report.

Only the supervisor bound to a request may act on it; the workflow
service enforces that on top of the role check here.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.app.routes.auth import require_role
from demolition_supervision.app.routes.common import (
    assignment_history,
    request_detail,
    workflow_http_error,
)
from demolition_supervision.domain.enums import UserRole
from demolition_supervision.domain.schemas import (
    CompletionRequest,
    SettlementRequest,
    SettlementResponse,
)
from demolition_supervision.infra.database import get_db
from demolition_supervision.services.demolition_workflow import (
    CallerIdentity,
    DemolitionWorkflowService,
)
from demolition_supervision.services.settlement_service import SettlementPayload
from demolition_supervision.services.workflow_errors import WorkflowError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inspector/demolition-requests", tags=["inspector"])
require_inspector = require_role(UserRole.INSPECTOR)


@router.get("/{request_id}")
async def get_request(
    request_id: int,
    caller: CallerIdentity = Depends(require_inspector),
    db: AsyncSession = Depends(get_db),
):
    return await request_detail(DemolitionWorkflowService(db), request_id, caller)


@router.get("/{request_id}/assignment-histories")
async def get_assignment_histories(
    request_id: int,
    caller: CallerIdentity = Depends(require_inspector),
    db: AsyncSession = Depends(get_db),
):
    return await assignment_history(DemolitionWorkflowService(db), request_id)


@router.put("/{request_id}/settlement", response_model=SettlementResponse)
async def submit_settlement(
    request_id: int,
    body: SettlementRequest,
    caller: CallerIdentity = Depends(require_inspector),
    db: AsyncSession = Depends(get_db),
):
    """File or correct the settlement. Re-filing never un-settles."""
    service = DemolitionWorkflowService(db)
    payload = SettlementPayload(
        supervision_fee=body.supervision_fee,
        payment_amount=body.payment_amount,
        contract_amount=body.contract_amount,
        association_fee=body.association_fee,
        contractor_name=body.contractor_name,
        payment_completed=body.payment_completed,
        payment_completed_at=body.payment_completed_at,
    )
    try:
        settlement = await service.submit_settlement(
            request_id, payload, caller, expected_version=body.expected_version
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return settlement


@router.put("/{request_id}/complete")
async def submit_completion(
    request_id: int,
    body: CompletionRequest,
    caller: CallerIdentity = Depends(require_inspector),
    db: AsyncSession = Depends(get_db),
):
    """Submit the completion report; settlement must already be in place."""
    service = DemolitionWorkflowService(db)
    try:
        await service.submit_completion(
            request_id,
            [a.model_dump() for a in body.attachments],
            caller,
            supervision_content=body.supervision_content,
            expected_version=body.expected_version,
        )
        await db.commit()
    except WorkflowError as e:
        raise workflow_http_error(e)
    return await request_detail(service, request_id, caller)
