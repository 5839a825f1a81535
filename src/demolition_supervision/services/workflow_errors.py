"""Exceptions raised by the demolition workflow.

Every error is terminal for the operation that raised it. Callers get a
stable ``code`` to branch on and, for validation problems, the offending
``field`` so a form can highlight it.
"""

from typing import Optional

from demolition_supervision.domain.enums import (
    DemolitionRequestStatus,
    UserRole,
    WorkflowAction,
)


class WorkflowError(Exception):
    """Base class for all workflow failures."""

    code = "workflow_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "field": self.field}


class RequestNotFoundError(WorkflowError):
    code = "not_found"

    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Demolition request {request_id} not found")


class UnauthorizedError(WorkflowError):
    """Raised when the caller's role (or binding) does not permit the action."""

    code = "unauthorized"

    def __init__(self, role: UserRole, action: WorkflowAction, reason: Optional[str] = None):
        self.role = role
        self.action = action
        super().__init__(
            reason or f"Role {role.value} is not permitted to {action.value}"
        )


class InvalidTransitionError(WorkflowError):
    """Raised when an action is not defined for the request's current status."""

    code = "invalid_transition"

    def __init__(
        self,
        current_status: DemolitionRequestStatus,
        action: WorkflowAction,
        reason: str,
    ):
        self.current_status = current_status
        self.action = action
        self.reason = reason
        super().__init__(
            f"Cannot {action.value} from {current_status.value}: {reason}"
        )


class AlreadyCompletedError(InvalidTransitionError):
    code = "already_completed"

    def __init__(self, action: WorkflowAction = WorkflowAction.SUBMIT_COMPLETION):
        super().__init__(
            DemolitionRequestStatus.SUPERVISOR_COMPLETED,
            action,
            "supervision has already been completed",
        )


class ValidationError(WorkflowError):
    """A required field is missing or malformed. Always names the field."""

    code = "validation_error"

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)


class SettlementRequiredError(WorkflowError):
    code = "settlement_required"

    def __init__(self):
        super().__init__(
            "Settlement must be submitted and settled before the completion report",
            field="settlement",
        )


class AttachmentsRequiredError(WorkflowError):
    code = "attachments_required"

    def __init__(self):
        super().__init__(
            "At least one attachment is required for the completion report",
            field="attachments",
        )


class CandidateListFullError(WorkflowError):
    code = "candidate_list_full"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"At most {limit} priority candidates may be nominated",
            field="priority_designations",
        )


class DuplicateCandidateError(WorkflowError):
    code = "duplicate_candidate"

    def __init__(self, user_id: Optional[int], applicant_id: Optional[int]):
        self.user_id = user_id
        self.applicant_id = applicant_id
        super().__init__(
            f"Candidate already nominated (user_id={user_id}, applicant_id={applicant_id})",
            field="priority_designations",
        )


class ConcurrentModificationError(WorkflowError):
    code = "concurrent_modification"

    def __init__(self, request_id: int, reason: str = "request was modified concurrently"):
        self.request_id = request_id
        super().__init__(f"Demolition request {request_id}: {reason}")
