"""SQLAlchemy ORM models for the demolition supervision workflow.

All models use SQLite-compatible types:
- Integer primary key for requests (human-facing numeric id), String(36)
  UUIDs for owned sub-entities
- JSON for embedded value lists (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from demolition_supervision.infra.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Demolition Request Aggregate
# ---------------------------------------------------------------------------


class DemolitionRequest(Base):
    """Aggregate root: one demolition supervision request and its lifecycle."""

    __tablename__ = "demolition_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_number = Column(String(30), unique=True, nullable=True, index=True)

    # Classification / status
    request_type = Column(String(30), nullable=False)  # DemolitionRequestType
    status = Column(String(40), nullable=False, default="INITIAL_REQUEST", index=True)

    # Filing
    request_date = Column(String(10), nullable=True)  # YYYY-MM-DD as filed
    request_category = Column(String(100), nullable=True)
    district_office = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    zone = Column(String(100), nullable=True)
    residential_area = Column(String(100), nullable=True)

    # Officer
    officer_name = Column(String(100), nullable=True)
    officer_phone = Column(String(50), nullable=True)
    officer_fax = Column(String(50), nullable=True)
    officer_email = Column(String(255), nullable=True)

    # Building owner
    owner_name = Column(String(100), nullable=True)
    owner_other_name = Column(String(255), nullable=True)
    owner_phone = Column(String(50), nullable=True)
    owner_address = Column(String(500), nullable=True)

    # Site / scale (descriptive only)
    site_address = Column(String(500), nullable=True)
    site_detail_address = Column(String(500), nullable=True)
    application_category = Column(String(50), nullable=True)
    building_use = Column(String(100), nullable=True)
    site_area = Column(Numeric(14, 2), nullable=True)
    building_area = Column(Numeric(14, 2), nullable=True)
    total_floor_area = Column(Numeric(14, 2), nullable=True)
    floors_above = Column(String(20), nullable=True)
    floors_below = Column(String(20), nullable=True)
    structure_type = Column(String(100), nullable=True)
    demolition_type = Column(String(100), nullable=True)
    demolition_scale = Column(String(100), nullable=True)
    demolition_permit_number1 = Column(String(100), nullable=True)
    demolition_permit_number2 = Column(String(100), nullable=True)
    demolition_permit_number3 = Column(String(100), nullable=True)
    demolition_permit_number4 = Column(String(100), nullable=True)
    demolition_permit_date = Column(String(10), nullable=True)
    underground_work = Column(Boolean, default=False)

    # Priority designation
    priority_designation = Column(Boolean, default=False)
    priority_reason = Column(String(500), nullable=True)
    # Ordered PriorityCandidate snapshots, never a live reference to a profile
    priority_designations = Column(JSON, default=list)

    # Bound supervisor (mirrors order=1 candidate until confirmed)
    supervisor_id = Column(Integer, nullable=True, index=True)
    supervisor_name = Column(String(100), nullable=True)

    # Negative-transition reasons (at most one set at a time)
    rejection_reason = Column(Text, nullable=True)
    initial_rejection_reason = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    rejection_count = Column(Integer, nullable=False, default=0)

    # Phase timestamps (write-once)
    requested_at = Column(DateTime, nullable=True)
    initial_rejected_at = Column(DateTime, nullable=True)
    pre_recommended_at = Column(DateTime, nullable=True)
    verification_requested_at = Column(DateTime, nullable=True)
    verification_completed_at = Column(DateTime, nullable=True)
    verification_rejected_at = Column(DateTime, nullable=True)
    recommendation_completed_at = Column(DateTime, nullable=True)
    supervisor_assigned_at = Column(DateTime, nullable=True)
    supervisor_completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Audit
    created_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Optimistic concurrency: UPDATE ... WHERE version = :loaded
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class DemolitionSettlement(Base):
    """Financial settlement filed by the inspector before completion."""

    __tablename__ = "demolition_settlements"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(
        Integer, ForeignKey("demolition_requests.id"), unique=True, nullable=False
    )

    supervision_fee = Column(Numeric(14, 2), nullable=False)
    payment_amount = Column(Numeric(14, 2), nullable=False)
    contract_amount = Column(Numeric(14, 2), nullable=False)
    association_fee = Column(Numeric(14, 2), nullable=False)
    contractor_name = Column(String(255), nullable=False)

    # Informational money flow; does not gate anything
    payment_completed = Column(Boolean, default=False)
    payment_completed_at = Column(DateTime, nullable=True)

    # Gates the completion report
    settled = Column(Boolean, default=False)

    submitted_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class DemolitionCompletionReport(Base):
    """Inspector's final deliverable. Created once, after settlement."""

    __tablename__ = "demolition_completion_reports"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(
        Integer, ForeignKey("demolition_requests.id"), unique=True, nullable=False
    )
    # Ordered opaque references into the external file store
    attachments = Column(JSON, nullable=False, default=list)
    supervision_content = Column(Text, nullable=True)
    settled_at_creation = Column(Boolean, nullable=False, default=True)

    submitted_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class AssignmentEvent(Base):
    """Immutable audit trail entry for supervisor assignment changes."""

    __tablename__ = "demolition_assignment_events"
    __table_args__ = (UniqueConstraint("request_id", "sequence"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(Integer, ForeignKey("demolition_requests.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    event_type = Column(String(20), nullable=False)  # AssignmentEventType
    supervisor_id = Column(Integer, nullable=True)
    supervisor_name = Column(String(100), nullable=True)
    reason = Column(Text, nullable=True)
    actor_role = Column(String(30), nullable=True)  # UserRole
    actor_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
