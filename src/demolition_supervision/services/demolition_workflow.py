"""Demolition Workflow Service - request-scoped orchestration of every operation.

This is NOT where the rules live: who may do what from which status is the
transition table in ``request_state_machine``. This service loads the
aggregate under a per-request lock, asks the state machine, checks the
operation's own preconditions, mutates, and writes assignment history.

All methods are async and accept a SQLAlchemy AsyncSession at construction.
They flush but never commit; the caller commits or rolls back after each
operation.
"""

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from demolition_supervision.app.config import get_settings
from demolition_supervision.domain.enums import (
    AssignmentEventType,
    DemolitionRequestStatus,
    DemolitionRequestType,
    MoveDirection,
    UserRole,
    WorkflowAction,
)
from demolition_supervision.domain.models import (
    AssignmentEvent,
    DemolitionCompletionReport,
    DemolitionRequest,
    DemolitionSettlement,
)
from demolition_supervision.domain.schemas import DemolitionRequestCreate
from demolition_supervision.services import assignment_history
from demolition_supervision.services.candidate_ranking import (
    PriorityCandidate,
    add_candidate,
    build_candidates,
    dump_candidates,
    load_candidates,
    move_candidate,
    remove_candidate,
    top_candidate,
    validate_candidates,
)
from demolition_supervision.services.completion_service import (
    create_completion_report,
    get_completion_report,
)
from demolition_supervision.services.request_state_machine import (
    DemolitionStateMachine,
    Transition,
)
from demolition_supervision.services.settlement_service import (
    SettlementPayload,
    get_settlement,
    upsert_settlement,
)
from demolition_supervision.services.workflow_errors import (
    ConcurrentModificationError,
    RequestNotFoundError,
    UnauthorizedError,
    ValidationError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

S = DemolitionRequestStatus
A = WorkflowAction

# Fields the district office must fill before a request can be filed
REQUIRED_FIELDS = (
    "district_office",
    "region",
    "zone",
    "residential_area",
    "officer_name",
    "officer_phone",
    "officer_email",
    "owner_name",
    "site_address",
    "application_category",
    "structure_type",
    "floors_above",
    "floors_below",
    "demolition_type",
    "demolition_scale",
    "site_area",
    "building_area",
    "total_floor_area",
)

# Descriptive fields copied verbatim from the filing
DESCRIPTIVE_FIELDS = REQUIRED_FIELDS + (
    "request_date",
    "request_category",
    "officer_fax",
    "owner_other_name",
    "owner_phone",
    "owner_address",
    "site_detail_address",
    "building_use",
    "demolition_permit_number1",
    "demolition_permit_number2",
    "demolition_permit_number3",
    "demolition_permit_number4",
    "demolition_permit_date",
    "underground_work",
)

REASON_FIELDS = ("rejection_reason", "initial_rejection_reason", "cancellation_reason")


@dataclass(frozen=True)
class CallerIdentity:
    """Who is calling. Authentication happens upstream; this is just the claim."""
    role: UserRole
    user_id: Optional[int] = None


@dataclass
class RequestView:
    """A request with everything it owns, for read endpoints."""
    request: DemolitionRequest
    settlement: Optional[DemolitionSettlement] = None
    completion_report: Optional[DemolitionCompletionReport] = None
    assignment_history: list[AssignmentEvent] = field(default_factory=list)
    allowed_actions: list[WorkflowAction] = field(default_factory=list)
    editable: bool = False


def _serialized(method):
    """Translate a lost optimistic-lock race into ConcurrentModificationError."""

    @functools.wraps(method)
    async def wrapper(self, request_id, *args, **kwargs):
        try:
            return await method(self, request_id, *args, **kwargs)
        except StaleDataError:
            await self.db.rollback()
            logger.warning(
                "Demolition request %s: concurrent modification in %s",
                request_id,
                method.__name__,
            )
            raise ConcurrentModificationError(request_id)

    return wrapper


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require_reason(field_name: str, reason: Optional[str]) -> str:
    if _is_blank(reason):
        raise ValidationError(field_name, f"{field_name} is required")
    return reason.strip()


class DemolitionWorkflowService:
    """Runs every demolition-request operation as one serialized unit of work."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.state_machine = DemolitionStateMachine()
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Loading / locking
    # ------------------------------------------------------------------

    async def _load_for_update(
        self,
        request_id: int,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        """Fetch the aggregate with a row lock and a fresh version.

        FOR UPDATE serializes writers on databases that support it; the
        version column catches the rest at flush time.
        """
        result = await self.db.execute(
            select(DemolitionRequest)
            .where(DemolitionRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(request_id)
        if expected_version is not None and request.version != expected_version:
            logger.warning(
                "Demolition request %s: stale version %s (current %s)",
                request_id,
                expected_version,
                request.version,
            )
            raise ConcurrentModificationError(
                request_id,
                f"expected version {expected_version}, found {request.version}",
            )
        return request

    async def get_request(self, request_id: int) -> DemolitionRequest:
        result = await self.db.execute(
            select(DemolitionRequest).where(DemolitionRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    async def get_request_view(
        self, request_id: int, caller: Optional[CallerIdentity] = None
    ) -> RequestView:
        request = await self.get_request(request_id)
        allowed = []
        if caller is not None:
            allowed = self.state_machine.get_allowed_actions(
                request.status, caller.role, request.request_type
            )
        return RequestView(
            request=request,
            settlement=await get_settlement(self.db, request.id),
            completion_report=await get_completion_report(self.db, request.id),
            assignment_history=await assignment_history.list_events(self.db, request.id),
            allowed_actions=allowed,
            editable=self.state_machine.is_editable(request.status),
        )

    async def get_assignment_history(self, request_id: int) -> list[AssignmentEvent]:
        await self.get_request(request_id)
        return await assignment_history.list_events(self.db, request_id)

    # ------------------------------------------------------------------
    # Transition helpers
    # ------------------------------------------------------------------

    def _authorize(
        self,
        request: DemolitionRequest,
        action: WorkflowAction,
        caller: CallerIdentity,
    ) -> Transition:
        try:
            return self.state_machine.authorize(
                action, caller.role, request.status, request.request_type
            )
        except WorkflowError as e:
            logger.warning(
                "Demolition request %s: %s rejected for role=%s user=%s: %s",
                request.id,
                action.value,
                caller.role.value,
                caller.user_id,
                e,
            )
            raise

    async def _apply(
        self,
        request: DemolitionRequest,
        transition: Transition,
        caller: CallerIdentity,
        *stamp_fields: str,
    ) -> DemolitionRequest:
        """Move *request* to the transition's target status and stamp phase times."""
        now = datetime.now(timezone.utc)
        from_status = request.status
        if transition.to_status is not None:
            request.status = transition.to_status.value
        for name in stamp_fields:
            # Phase timestamps are write-once
            if getattr(request, name) is None:
                setattr(request, name, now)
        request.updated_at = now
        await self.db.flush()

        logger.info(
            "Demolition request %s: %s → %s (role=%s, user=%s)",
            request.id,
            from_status,
            request.status,
            caller.role.value,
            caller.user_id,
        )
        return request

    @staticmethod
    def _set_reason(request: DemolitionRequest, field_name: str, reason: str) -> None:
        """Record the latest negative-transition reason and clear the others."""
        for name in REASON_FIELDS:
            setattr(request, name, reason if name == field_name else None)

    def _require_bound_supervisor(
        self,
        request: DemolitionRequest,
        caller: CallerIdentity,
        action: WorkflowAction,
    ) -> None:
        if request.supervisor_id is None or request.supervisor_id != caller.user_id:
            logger.warning(
                "Demolition request %s: inspector %s is not the bound supervisor (%s)",
                request.id,
                caller.user_id,
                request.supervisor_id,
            )
            raise UnauthorizedError(
                caller.role,
                action,
                f"Inspector {caller.user_id} is not the supervisor assigned to request {request.id}",
            )

    # ------------------------------------------------------------------
    # Filing (district office)
    # ------------------------------------------------------------------

    def _validate_filing(
        self,
        payload: DemolitionRequestCreate,
        existing: Optional[list[PriorityCandidate]] = None,
    ) -> list[PriorityCandidate]:
        """Check required fields and return the candidate list to store."""
        for name in REQUIRED_FIELDS:
            if _is_blank(getattr(payload, name)):
                raise ValidationError(name, f"{name} is required")

        if payload.priority_designations is not None:
            candidates = build_candidates([
                c.to_candidate() for c in payload.priority_designations
            ])
        else:
            candidates = list(existing or [])

        wants_priority = payload.priority_designation or bool(candidates)
        if wants_priority:
            if _is_blank(payload.priority_reason):
                raise ValidationError("priority_reason", "priority_reason is required for priority designation")
            if not candidates and _is_blank(payload.priority_supervisor_name):
                raise ValidationError(
                    "priority_designations",
                    "At least one priority candidate is required for priority designation",
                )
        return candidates

    def _apply_filing(
        self,
        request: DemolitionRequest,
        payload: DemolitionRequestCreate,
        candidates: list[PriorityCandidate],
    ) -> None:
        for name in DESCRIPTIVE_FIELDS:
            value = getattr(payload, name)
            if isinstance(value, str):
                value = value.strip()
            setattr(request, name, value)

        request.priority_designation = bool(payload.priority_designation or candidates)
        request.priority_reason = payload.priority_reason if request.priority_designation else None
        request.priority_designations = dump_candidates(candidates)

        top = top_candidate(candidates)
        if top is not None:
            request.supervisor_id = top.supervisor_ref
            request.supervisor_name = top.supervisor_name
        else:
            # Single-supervisor filing without a ranked list
            request.supervisor_id = payload.supervisor_id
            request.supervisor_name = payload.priority_supervisor_name

    async def create_request(
        self,
        payload: DemolitionRequestCreate,
        caller: CallerIdentity,
    ) -> DemolitionRequest:
        """File a new request in INITIAL_REQUEST."""
        if caller.role != UserRole.DISTRICT_OFFICE:
            logger.warning(
                "Demolition request create rejected for role=%s user=%s",
                caller.role.value,
                caller.user_id,
            )
            raise UnauthorizedError(caller.role, A.SUBMIT)

        candidates = self._validate_filing(payload)
        now = datetime.now(timezone.utc)
        request_type = payload.request_type or DemolitionRequestType.RECOMMENDATION

        request = DemolitionRequest(
            request_type=request_type.value,
            status=S.INITIAL_REQUEST.value,
            rejection_count=0,
            created_by_id=caller.user_id,
            requested_at=now,
            created_at=now,
            updated_at=now,
        )
        self._apply_filing(request, payload, candidates)
        self.db.add(request)
        await self.db.flush()

        # Number derives from the generated id, then never changes
        request.request_number = (
            f"{self.settings.request_number_prefix}-{now.year}-{request.id:05d}"
        )
        await self.db.flush()

        if request.supervisor_id is not None:
            await assignment_history.record_event(
                self.db, request, AssignmentEventType.SELECTED,
                request.supervisor_id, request.supervisor_name,
                caller=caller,
            )

        logger.info(
            "Demolition request %s (%s) filed: type=%s, candidates=%d (user=%s)",
            request.id,
            request.request_number,
            request.request_type,
            len(candidates),
            caller.user_id,
        )
        return request

    @_serialized
    async def update_request(
        self,
        request_id: int,
        payload: DemolitionRequestCreate,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        """Edit and resubmit; an INITIAL_REJECTED request returns to INITIAL_REQUEST."""
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.SUBMIT, caller)

        if payload.request_type is not None and payload.request_type.value != request.request_type:
            raise ValidationError("request_type", "request_type cannot change after filing")

        candidates = self._validate_filing(
            payload, existing=load_candidates(request.priority_designations)
        )
        previous_id, previous_name = request.supervisor_id, request.supervisor_name
        self._apply_filing(request, payload, candidates)

        await self._apply(request, transition, caller)
        await assignment_history.record_mirror_change(
            self.db, request, previous_id, previous_name, caller=caller
        )
        return request

    @_serialized
    async def cancel_request(
        self,
        request_id: int,
        reason: Optional[str],
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.CANCEL, caller)
        reason = _require_reason("reason", reason)

        bound = request.status == S.SUPERVISOR_ASSIGNED.value and request.supervisor_id is not None
        self._set_reason(request, "cancellation_reason", reason)
        await self._apply(request, transition, caller, "cancelled_at")

        if bound:
            await assignment_history.record_event(
                self.db, request, AssignmentEventType.RELEASED,
                request.supervisor_id, request.supervisor_name,
                reason=reason, caller=caller,
            )
        return request

    # ------------------------------------------------------------------
    # City hall
    # ------------------------------------------------------------------

    @_serialized
    async def initial_reject(
        self,
        request_id: int,
        reason: Optional[str],
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.INITIAL_REJECT, caller)
        reason = _require_reason("reason", reason)

        self._set_reason(request, "initial_rejection_reason", reason)
        return await self._apply(request, transition, caller, "initial_rejected_at")

    @_serialized
    async def pre_recommend(
        self,
        request_id: int,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.PRE_RECOMMEND, caller)
        return await self._apply(
            request, transition, caller, "pre_recommended_at", "verification_requested_at"
        )

    @_serialized
    async def request_verification(
        self,
        request_id: int,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.REQUEST_VERIFICATION, caller)

        candidates = load_candidates(request.priority_designations)
        if not candidates:
            raise ValidationError(
                "priority_designations",
                "A priority-designation request needs at least one candidate before verification",
            )
        validate_candidates(candidates)
        return await self._apply(request, transition, caller, "verification_requested_at")

    @_serialized
    async def complete_recommendation(
        self,
        request_id: int,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.COMPLETE_RECOMMENDATION, caller)
        return await self._apply(request, transition, caller, "recommendation_completed_at")

    # ------------------------------------------------------------------
    # Architect society
    # ------------------------------------------------------------------

    @_serialized
    async def complete_verification(
        self,
        request_id: int,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.COMPLETE_VERIFICATION, caller)
        return await self._apply(request, transition, caller, "verification_completed_at")

    @_serialized
    async def reject_verification(
        self,
        request_id: int,
        reason: Optional[str],
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.REJECT_VERIFICATION, caller)
        reason = _require_reason("rejection_reason", reason)

        self._set_reason(request, "rejection_reason", reason)
        request.rejection_count = (request.rejection_count or 0) + 1
        return await self._apply(request, transition, caller, "verification_rejected_at")

    # ------------------------------------------------------------------
    # Assignment (district office)
    # ------------------------------------------------------------------

    @_serialized
    async def assign_supervisor(
        self,
        request_id: int,
        caller: CallerIdentity,
        supervisor_id: Optional[int] = None,
        supervisor_name: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        """Confirm the supervisor: an explicit id wins, else the top candidate."""
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.ASSIGN_SUPERVISOR, caller)
        candidates = load_candidates(request.priority_designations)

        if supervisor_id is not None:
            if request.supervisor_id is not None and request.supervisor_id != supervisor_id:
                await assignment_history.record_event(
                    self.db, request, AssignmentEventType.RELEASED,
                    request.supervisor_id, request.supervisor_name,
                    reason="replaced by direct assignment", caller=caller,
                )
            if supervisor_name is None:
                match = next((c for c in candidates if c.supervisor_ref == supervisor_id), None)
                supervisor_name = match.supervisor_name if match else None
            request.supervisor_id = supervisor_id
            request.supervisor_name = supervisor_name
        elif request.supervisor_id is None:
            top = top_candidate(candidates)
            if top is None:
                raise ValidationError(
                    "supervisor_id",
                    "No supervisor to assign: nominate a candidate or pass a supervisor id",
                )
            request.supervisor_id = top.supervisor_ref
            request.supervisor_name = top.supervisor_name

        await self._apply(request, transition, caller, "supervisor_assigned_at")
        await assignment_history.record_event(
            self.db, request, AssignmentEventType.CONFIRMED,
            request.supervisor_id, request.supervisor_name,
            caller=caller,
        )
        return request

    # ------------------------------------------------------------------
    # Inspector: settlement, then completion
    # ------------------------------------------------------------------

    @_serialized
    async def submit_settlement(
        self,
        request_id: int,
        payload: SettlementPayload,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionSettlement:
        request = await self._load_for_update(request_id, expected_version)
        self._authorize(request, A.SUBMIT_SETTLEMENT, caller)
        self._require_bound_supervisor(request, caller, A.SUBMIT_SETTLEMENT)
        return await upsert_settlement(self.db, request, payload, submitted_by_id=caller.user_id)

    @_serialized
    async def submit_completion(
        self,
        request_id: int,
        attachments: list,
        caller: CallerIdentity,
        supervision_content: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        transition = self._authorize(request, A.SUBMIT_COMPLETION, caller)
        self._require_bound_supervisor(request, caller, A.SUBMIT_COMPLETION)

        await create_completion_report(
            self.db, request, attachments,
            supervision_content=supervision_content,
            submitted_by_id=caller.user_id,
        )
        await self._apply(request, transition, caller, "supervisor_completed_at")
        await assignment_history.record_event(
            self.db, request, AssignmentEventType.COMPLETED,
            request.supervisor_id, request.supervisor_name,
            caller=caller,
        )
        return request

    # ------------------------------------------------------------------
    # Priority candidates (district office, while editable)
    # ------------------------------------------------------------------

    async def _store_candidates(
        self,
        request: DemolitionRequest,
        candidates: list[PriorityCandidate],
        caller: CallerIdentity,
    ) -> DemolitionRequest:
        """Persist a new ranking and recompute the single-supervisor mirror."""
        previous_id, previous_name = request.supervisor_id, request.supervisor_name

        request.priority_designations = dump_candidates(candidates)
        if candidates:
            request.priority_designation = True
        top = top_candidate(candidates)
        request.supervisor_id = top.supervisor_ref if top else None
        request.supervisor_name = top.supervisor_name if top else None
        request.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        await assignment_history.record_mirror_change(
            self.db, request, previous_id, previous_name, caller=caller
        )
        logger.info(
            "Demolition request %s: candidate ranking now %s (user=%s)",
            request.id,
            [c.supervisor_ref for c in candidates],
            caller.user_id,
        )
        return request

    @_serialized
    async def add_priority_candidate(
        self,
        request_id: int,
        candidate: PriorityCandidate,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
        priority_reason: Optional[str] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        self._authorize(request, A.EDIT_CANDIDATES, caller)
        candidates = add_candidate(load_candidates(request.priority_designations), candidate)

        # A non-empty ranking makes this a priority designation
        if not _is_blank(priority_reason):
            request.priority_reason = priority_reason.strip()
        if _is_blank(request.priority_reason):
            raise ValidationError("priority_reason", "priority_reason is required for priority designation")
        return await self._store_candidates(request, candidates, caller)

    @_serialized
    async def remove_priority_candidate(
        self,
        request_id: int,
        order: int,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        self._authorize(request, A.EDIT_CANDIDATES, caller)
        candidates = remove_candidate(load_candidates(request.priority_designations), order - 1)
        return await self._store_candidates(request, candidates, caller)

    @_serialized
    async def move_priority_candidate(
        self,
        request_id: int,
        order: int,
        direction: MoveDirection | str,
        caller: CallerIdentity,
        expected_version: Optional[int] = None,
    ) -> DemolitionRequest:
        request = await self._load_for_update(request_id, expected_version)
        self._authorize(request, A.EDIT_CANDIDATES, caller)
        candidates = move_candidate(
            load_candidates(request.priority_designations), order - 1, direction
        )
        return await self._store_candidates(request, candidates, caller)
