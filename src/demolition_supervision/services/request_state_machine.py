"""Demolition request state machine — one transition table, one authorization check.

Every role-gated operation on a request is a row in TRANSITION_MAP:
which role may perform it, from which statuses, what status it lands in,
and (for the two verification routes) which request type it applies to.
"""

from dataclasses import dataclass
from typing import Optional

from demolition_supervision.domain.enums import (
    DemolitionRequestStatus,
    DemolitionRequestType,
    UserRole,
    WorkflowAction,
)
from demolition_supervision.services.workflow_errors import (
    AlreadyCompletedError,
    InvalidTransitionError,
    UnauthorizedError,
)


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""

    role: UserRole
    from_statuses: frozenset[DemolitionRequestStatus]
    # None means the action does not change status
    to_status: Optional[DemolitionRequestStatus]
    request_type: Optional[DemolitionRequestType] = None


# ---------------------------------------------------------------------------
# Transition map: action -> (role, from_statuses, to_status, request_type)
# ---------------------------------------------------------------------------

S = DemolitionRequestStatus
R = UserRole
T = DemolitionRequestType
A = WorkflowAction

TERMINAL_STATES: frozenset[DemolitionRequestStatus] = frozenset({
    S.SUPERVISOR_COMPLETED,
    S.CANCELLED,
})

CANCELLABLE_STATES: frozenset[DemolitionRequestStatus] = frozenset(
    s for s in DemolitionRequestStatus if s not in TERMINAL_STATES
)

# The district office may only edit its own filing in these states
EDITABLE_STATES: frozenset[DemolitionRequestStatus] = frozenset({
    S.INITIAL_REQUEST,
    S.INITIAL_REJECTED,
})

TRANSITION_MAP: dict[WorkflowAction, Transition] = {
    A.SUBMIT: Transition(R.DISTRICT_OFFICE, EDITABLE_STATES, S.INITIAL_REQUEST),
    A.EDIT_CANDIDATES: Transition(R.DISTRICT_OFFICE, EDITABLE_STATES, None),
    A.CANCEL: Transition(R.DISTRICT_OFFICE, CANCELLABLE_STATES, S.CANCELLED),
    A.INITIAL_REJECT: Transition(
        R.CITY_HALL,
        frozenset({S.INITIAL_REQUEST, S.RE_REQUEST}),
        S.INITIAL_REJECTED,
    ),
    A.PRE_RECOMMEND: Transition(
        R.CITY_HALL,
        frozenset({S.INITIAL_REQUEST, S.VERIFICATION_REJECTED, S.RE_REQUEST}),
        S.VERIFICATION_REQUESTED,
        T.RECOMMENDATION,
    ),
    A.REQUEST_VERIFICATION: Transition(
        R.CITY_HALL,
        frozenset({S.INITIAL_REQUEST}),
        S.VERIFICATION_REQUESTED,
        T.PRIORITY_DESIGNATION,
    ),
    A.COMPLETE_VERIFICATION: Transition(
        R.ARCHITECT_SOCIETY,
        frozenset({S.VERIFICATION_REQUESTED}),
        S.VERIFICATION_COMPLETED,
    ),
    A.REJECT_VERIFICATION: Transition(
        R.ARCHITECT_SOCIETY,
        frozenset({S.VERIFICATION_REQUESTED}),
        S.VERIFICATION_REJECTED,
    ),
    A.COMPLETE_RECOMMENDATION: Transition(
        R.CITY_HALL,
        frozenset({S.VERIFICATION_COMPLETED}),
        S.RECOMMENDATION_COMPLETED,
    ),
    A.ASSIGN_SUPERVISOR: Transition(
        R.DISTRICT_OFFICE,
        frozenset({S.RECOMMENDATION_COMPLETED}),
        S.SUPERVISOR_ASSIGNED,
    ),
    A.SUBMIT_SETTLEMENT: Transition(
        R.INSPECTOR,
        frozenset({S.SUPERVISOR_ASSIGNED}),
        None,
    ),
    A.SUBMIT_COMPLETION: Transition(
        R.INSPECTOR,
        frozenset({S.SUPERVISOR_ASSIGNED}),
        S.SUPERVISOR_COMPLETED,
    ),
}


def _coerce_status(status) -> DemolitionRequestStatus:
    """Stored statuses are plain strings; unknown values fail fast."""
    if isinstance(status, DemolitionRequestStatus):
        return status
    return DemolitionRequestStatus(status)


def _coerce_type(request_type) -> DemolitionRequestType:
    if isinstance(request_type, DemolitionRequestType):
        return request_type
    return DemolitionRequestType(request_type)


class DemolitionStateMachine:
    """Validates role-gated actions against the transition table."""

    def authorize(
        self,
        action: WorkflowAction,
        role: UserRole,
        current_status,
        request_type,
    ) -> Transition:
        """Return the matching Transition, or raise.

        Checks, in order:
        1. The role owns this action at all (UnauthorizedError otherwise).
        2. The current status is a valid source (InvalidTransitionError, or
           AlreadyCompletedError for a repeated completion).
        3. The request type matches the action's type gate.
        """
        current_status = _coerce_status(current_status)
        request_type = _coerce_type(request_type)

        transition = TRANSITION_MAP[action]
        if transition.role != role:
            raise UnauthorizedError(role, action)

        if current_status not in transition.from_statuses:
            if (
                action == A.SUBMIT_COMPLETION
                and current_status == S.SUPERVISOR_COMPLETED
            ):
                raise AlreadyCompletedError(action)
            if current_status in TERMINAL_STATES:
                reason = f"{current_status.value} is terminal"
            elif action in (A.SUBMIT, A.EDIT_CANDIDATES):
                reason = "request is read-only once it leaves the initial filing stage"
            else:
                allowed = ", ".join(sorted(s.value for s in transition.from_statuses))
                reason = f"allowed from: {allowed}"
            raise InvalidTransitionError(current_status, action, reason)

        if transition.request_type is not None and request_type != transition.request_type:
            raise InvalidTransitionError(
                current_status,
                action,
                f"only applies to {transition.request_type.value} requests "
                f"(this request is {request_type.value})",
            )

        return transition

    def get_allowed_actions(
        self,
        current_status,
        role: UserRole,
        request_type,
    ) -> list[WorkflowAction]:
        """Return the actions *role* may take right now, in table order."""
        current_status = _coerce_status(current_status)
        request_type = _coerce_type(request_type)

        results: list[WorkflowAction] = []
        for action, transition in TRANSITION_MAP.items():
            if transition.role != role:
                continue
            if current_status not in transition.from_statuses:
                continue
            if transition.request_type is not None and request_type != transition.request_type:
                continue
            results.append(action)
        return results

    def is_editable(self, current_status) -> bool:
        return _coerce_status(current_status) in EDITABLE_STATES
