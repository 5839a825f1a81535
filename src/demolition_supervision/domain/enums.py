"""Domain enumerations for the demolition supervision workflow.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Organizational role carried by every caller identity."""

    DISTRICT_OFFICE = "DISTRICT_OFFICE"
    CITY_HALL = "CITY_HALL"
    ARCHITECT_SOCIETY = "ARCHITECT_SOCIETY"
    INSPECTOR = "INSPECTOR"


class DemolitionRequestType(str, Enum):
    """How a supervisor is sourced for a request. Fixed at creation."""

    RECOMMENDATION = "RECOMMENDATION"
    PRIORITY_DESIGNATION = "PRIORITY_DESIGNATION"


class DemolitionRequestStatus(str, Enum):
    """Status of a demolition request through its full lifecycle."""

    INITIAL_REQUEST = "INITIAL_REQUEST"
    INITIAL_REJECTED = "INITIAL_REJECTED"
    # Legacy: accepted as a source state, never produced by a transition.
    RE_REQUEST = "RE_REQUEST"
    VERIFICATION_REQUESTED = "VERIFICATION_REQUESTED"
    VERIFICATION_COMPLETED = "VERIFICATION_COMPLETED"
    VERIFICATION_REJECTED = "VERIFICATION_REJECTED"
    RECOMMENDATION_COMPLETED = "RECOMMENDATION_COMPLETED"
    SUPERVISOR_ASSIGNED = "SUPERVISOR_ASSIGNED"
    SUPERVISOR_COMPLETED = "SUPERVISOR_COMPLETED"
    CANCELLED = "CANCELLED"


class WorkflowAction(str, Enum):
    """Operation a caller attempts on a request; keys the transition table."""

    SUBMIT = "submit"
    EDIT_CANDIDATES = "edit_candidates"
    CANCEL = "cancel"
    INITIAL_REJECT = "initial_reject"
    PRE_RECOMMEND = "pre_recommend"
    REQUEST_VERIFICATION = "request_verification"
    COMPLETE_VERIFICATION = "complete_verification"
    REJECT_VERIFICATION = "reject_verification"
    COMPLETE_RECOMMENDATION = "complete_recommendation"
    ASSIGN_SUPERVISOR = "assign_supervisor"
    SUBMIT_SETTLEMENT = "submit_settlement"
    SUBMIT_COMPLETION = "submit_completion"


class AssignmentEventType(str, Enum):
    """Type of event in the supervisor assignment audit trail."""

    SELECTED = "SELECTED"
    RELEASED = "RELEASED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"


class MoveDirection(str, Enum):
    """Direction a priority candidate moves within the ranking."""

    UP = "up"
    DOWN = "down"
