"""Helpers shared by the role routers: error translation and serialization."""

from datetime import datetime
from typing import Optional

from fastapi import HTTPException

from demolition_supervision.domain.schemas import (
    AssignmentEventResponse,
    CompletionReportResponse,
    SettlementResponse,
)
from demolition_supervision.services.demolition_workflow import (
    CallerIdentity,
    DemolitionWorkflowService,
    RequestView,
)
from demolition_supervision.services.workflow_errors import (
    AttachmentsRequiredError,
    CandidateListFullError,
    ConcurrentModificationError,
    DuplicateCandidateError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
    WorkflowError,
)

# Checked in order; anything else is a failed transition or precondition (400)
_STATUS_BY_ERROR = (
    (RequestNotFoundError, 404),
    (UnauthorizedError, 403),
    (ConcurrentModificationError, 409),
    (ValidationError, 422),
    (AttachmentsRequiredError, 422),
    (CandidateListFullError, 422),
    (DuplicateCandidateError, 422),
)


def workflow_http_error(e: WorkflowError) -> HTTPException:
    """Map a workflow failure to an HTTPException with a ``{code, message, field}`` detail."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(e, error_cls):
            return HTTPException(status_code=status_code, detail=e.to_dict())
    return HTTPException(status_code=400, detail=e.to_dict())


def _dt(val) -> Optional[str]:
    """Safely convert datetime to ISO string."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.isoformat()
    return str(val)


def _num(val) -> Optional[float]:
    """Safely convert Numeric/Decimal to float."""
    if val is None:
        return None
    return float(val)


def serialize_request(view: RequestView) -> dict:
    """Serialize a request with everything it owns and the caller's next actions."""
    r = view.request
    return {
        "id": r.id,
        "request_number": r.request_number,
        "request_type": r.request_type,
        "status": r.status,
        "version": r.version,
        "request_date": r.request_date,
        "request_category": r.request_category,
        "district_office": r.district_office,
        "region": r.region,
        "zone": r.zone,
        "residential_area": r.residential_area,
        "officer_name": r.officer_name,
        "officer_phone": r.officer_phone,
        "officer_fax": r.officer_fax,
        "officer_email": r.officer_email,
        "owner_name": r.owner_name,
        "owner_other_name": r.owner_other_name,
        "owner_phone": r.owner_phone,
        "owner_address": r.owner_address,
        "site_address": r.site_address,
        "site_detail_address": r.site_detail_address,
        "application_category": r.application_category,
        "building_use": r.building_use,
        "site_area": _num(r.site_area),
        "building_area": _num(r.building_area),
        "total_floor_area": _num(r.total_floor_area),
        "floors_above": r.floors_above,
        "floors_below": r.floors_below,
        "structure_type": r.structure_type,
        "demolition_type": r.demolition_type,
        "demolition_scale": r.demolition_scale,
        "demolition_permit_number1": r.demolition_permit_number1,
        "demolition_permit_number2": r.demolition_permit_number2,
        "demolition_permit_number3": r.demolition_permit_number3,
        "demolition_permit_number4": r.demolition_permit_number4,
        "demolition_permit_date": r.demolition_permit_date,
        "underground_work": bool(r.underground_work),
        "priority_designation": bool(r.priority_designation),
        "priority_reason": r.priority_reason,
        "priority_designations": list(r.priority_designations or []),
        "supervisor_id": r.supervisor_id,
        "supervisor_name": r.supervisor_name,
        "rejection_reason": r.rejection_reason,
        "initial_rejection_reason": r.initial_rejection_reason,
        "cancellation_reason": r.cancellation_reason,
        "rejection_count": r.rejection_count or 0,
        "requested_at": _dt(r.requested_at),
        "initial_rejected_at": _dt(r.initial_rejected_at),
        "pre_recommended_at": _dt(r.pre_recommended_at),
        "verification_requested_at": _dt(r.verification_requested_at),
        "verification_completed_at": _dt(r.verification_completed_at),
        "verification_rejected_at": _dt(r.verification_rejected_at),
        "recommendation_completed_at": _dt(r.recommendation_completed_at),
        "supervisor_assigned_at": _dt(r.supervisor_assigned_at),
        "supervisor_completed_at": _dt(r.supervisor_completed_at),
        "cancelled_at": _dt(r.cancelled_at),
        "created_at": _dt(r.created_at),
        "updated_at": _dt(r.updated_at),
        "settlement": (
            SettlementResponse.model_validate(view.settlement).model_dump(mode="json")
            if view.settlement else None
        ),
        "completion_report": (
            CompletionReportResponse.model_validate(view.completion_report).model_dump(mode="json")
            if view.completion_report else None
        ),
        "assignment_histories": [
            AssignmentEventResponse.model_validate(e).model_dump(mode="json")
            for e in view.assignment_history
        ],
        "allowed_actions": [a.value for a in view.allowed_actions],
        "editable": view.editable,
    }


async def request_detail(
    service: DemolitionWorkflowService, request_id: int, caller: CallerIdentity
) -> dict:
    """Load and serialize a request, translating a missing id to 404."""
    try:
        view = await service.get_request_view(request_id, caller)
    except WorkflowError as e:
        raise workflow_http_error(e)
    return serialize_request(view)


async def assignment_history(
    service: DemolitionWorkflowService, request_id: int
) -> list[dict]:
    try:
        events = await service.get_assignment_history(request_id)
    except WorkflowError as e:
        raise workflow_http_error(e)
    return [AssignmentEventResponse.model_validate(e).model_dump(mode="json") for e in events]
