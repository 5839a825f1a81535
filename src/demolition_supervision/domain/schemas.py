"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from demolition_supervision.domain.enums import DemolitionRequestType
from demolition_supervision.services.candidate_ranking import PriorityCandidate


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


class PriorityCandidateIn(BaseModel):
    """One nominated supervisor as filed by the district office."""

    order: int | None = None
    applicant_id: int | None = None
    user_id: int | None = None
    supervisor_name: str | None = None
    supervisor_license: str | None = None
    supervisor_birthdate: str | None = None
    designation_reason: str | None = None

    def to_candidate(self) -> PriorityCandidate:
        return PriorityCandidate(
            order=self.order or 0,
            applicant_id=self.applicant_id,
            user_id=self.user_id,
            supervisor_name=self.supervisor_name,
            supervisor_license=self.supervisor_license,
            supervisor_birthdate=self.supervisor_birthdate,
            designation_reason=self.designation_reason,
        )


class DemolitionRequestCreate(BaseModel):
    """Filing submitted by a district office (create and resubmit)."""

    # None on create means RECOMMENDATION; on update means "unchanged"
    request_type: DemolitionRequestType | None = None

    request_date: str | None = None
    request_category: str | None = None
    district_office: str | None = None
    region: str | None = None
    zone: str | None = None
    residential_area: str | None = None

    officer_name: str | None = None
    officer_phone: str | None = None
    officer_fax: str | None = None
    officer_email: str | None = None

    owner_name: str | None = None
    owner_other_name: str | None = None
    owner_phone: str | None = None
    owner_address: str | None = None

    site_address: str | None = None
    site_detail_address: str | None = None
    application_category: str | None = None
    building_use: str | None = None
    site_area: Decimal | None = None
    building_area: Decimal | None = None
    total_floor_area: Decimal | None = None
    floors_above: str | None = None
    floors_below: str | None = None
    structure_type: str | None = None
    demolition_type: str | None = None
    demolition_scale: str | None = None
    demolition_permit_number1: str | None = None
    demolition_permit_number2: str | None = None
    demolition_permit_number3: str | None = None
    demolition_permit_number4: str | None = None
    demolition_permit_date: str | None = None
    underground_work: bool = False

    priority_designation: bool = False
    priority_reason: str | None = None
    # None on update keeps the stored ranking
    priority_designations: list[PriorityCandidateIn] | None = None

    # Single-supervisor filing without a ranked list
    supervisor_id: int | None = None
    priority_supervisor_name: str | None = None


# ---------------------------------------------------------------------------
# Transition bodies
# ---------------------------------------------------------------------------


class VersionedRequest(BaseModel):
    """Base for bodies that may carry the version the caller last saw."""

    expected_version: int | None = None


class ReasonRequest(VersionedRequest):
    """Cancel / initial reject."""

    reason: str | None = None


class VerificationRejectRequest(VersionedRequest):
    rejection_reason: str | None = None


class AssignSupervisorRequest(VersionedRequest):
    supervisor_id: int | None = None
    supervisor_name: str | None = None


class AddCandidateRequest(PriorityCandidateIn):
    expected_version: int | None = None
    # Required when the request has no priority reason yet
    priority_reason: str | None = None


class MoveCandidateRequest(VersionedRequest):
    direction: str


class SettlementRequest(VersionedRequest):
    supervision_fee: Decimal | None = None
    payment_amount: Decimal | None = None
    contract_amount: Decimal | None = None
    association_fee: Decimal | None = None
    contractor_name: str | None = None
    payment_completed: bool = False
    payment_completed_at: datetime | None = None


class AttachmentRef(BaseModel):
    """Opaque reference into the external file store."""

    id: str
    file_label: str | None = None
    original_name: str | None = None


class CompletionRequest(VersionedRequest):
    attachments: list[AttachmentRef] = Field(default_factory=list)
    supervision_content: str | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    supervision_fee: Decimal
    payment_amount: Decimal
    contract_amount: Decimal
    association_fee: Decimal
    contractor_name: str
    payment_completed: bool
    payment_completed_at: datetime | None = None
    settled: bool
    updated_at: datetime | None = None


class CompletionReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attachments: list[AttachmentRef]
    supervision_content: str | None = None
    settled_at_creation: bool
    created_at: datetime | None = None


class AssignmentEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    event_type: str
    supervisor_id: int | None = None
    supervisor_name: str | None = None
    reason: str | None = None
    actor_role: str | None = None
    actor_id: int | None = None
    created_at: datetime | None = None
