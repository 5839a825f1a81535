"""Settlement Service - the financial gate in front of the completion report.

The inspector files supervision fee, payment, contract amount, association
fee and contractor. Filing is the act of settling: every successful call
leaves ``settled = True``. The record can be re-filed to correct values
while the request is still SUPERVISOR_ASSIGNED; re-filing never un-settles.

``payment_completed`` is informational about the money flow and is kept
separate from ``settled`` on purpose: only ``settled`` gates completion.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.domain.models import DemolitionRequest, DemolitionSettlement
from demolition_supervision.services.workflow_errors import ValidationError

logger = logging.getLogger(__name__)

MONETARY_FIELDS = (
    "supervision_fee",
    "payment_amount",
    "contract_amount",
    "association_fee",
)


@dataclass
class SettlementPayload:
    """Inspector-submitted settlement values before validation."""
    supervision_fee: object = None
    payment_amount: object = None
    contract_amount: object = None
    association_fee: object = None
    contractor_name: Optional[str] = None
    payment_completed: bool = False
    payment_completed_at: Optional[datetime] = None


def _positive_amount(field_name: str, value) -> Decimal:
    """Coerce *value* to a finite Decimal > 0 or raise a field-specific error."""
    if value is None or isinstance(value, bool):
        raise ValidationError(field_name, f"{field_name} is required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(field_name, f"{field_name} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(field_name, f"{field_name} must be a finite amount")
    if amount <= 0:
        raise ValidationError(field_name, f"{field_name} must be greater than zero")
    return amount


def validate_settlement(payload: SettlementPayload) -> dict:
    """Return normalized column values, raising ValidationError on the first bad field."""
    values = {
        name: _positive_amount(name, getattr(payload, name))
        for name in MONETARY_FIELDS
    }

    contractor = (payload.contractor_name or "").strip()
    if not contractor:
        raise ValidationError("contractor_name", "contractor_name is required")
    values["contractor_name"] = contractor

    values["payment_completed"] = bool(payload.payment_completed)
    if payload.payment_completed:
        if payload.payment_completed_at is None:
            raise ValidationError(
                "payment_completed_at",
                "payment_completed_at is required when payment_completed is true",
            )
        values["payment_completed_at"] = payload.payment_completed_at
    else:
        values["payment_completed_at"] = None

    return values


async def get_settlement(db: AsyncSession, request_id: int) -> Optional[DemolitionSettlement]:
    result = await db.execute(
        select(DemolitionSettlement).where(DemolitionSettlement.request_id == request_id)
    )
    return result.scalar_one_or_none()


async def upsert_settlement(
    db: AsyncSession,
    request: DemolitionRequest,
    payload: SettlementPayload,
    submitted_by_id: Optional[int] = None,
) -> DemolitionSettlement:
    """Create or replace the settlement for *request* and mark it settled.

    The caller has already authorized the action; this only validates values
    and writes them.
    """
    values = validate_settlement(payload)
    now = datetime.now(timezone.utc)

    settlement = await get_settlement(db, request.id)
    if settlement is None:
        settlement = DemolitionSettlement(
            id=str(uuid.uuid4()),
            request_id=request.id,
            created_at=now,
        )
        db.add(settlement)
        created = True
    else:
        created = False

    for name, value in values.items():
        setattr(settlement, name, value)
    settlement.settled = True
    settlement.submitted_by_id = submitted_by_id
    settlement.updated_at = now
    request.updated_at = now

    await db.flush()

    logger.info(
        "Demolition request %s: settlement %s (contract=%s, paid=%s)",
        request.id,
        "filed" if created else "re-filed",
        values["contract_amount"],
        values["payment_completed"],
    )
    return settlement
