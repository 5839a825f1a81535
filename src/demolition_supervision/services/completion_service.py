"""Completion Service - the inspector's final deliverable."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.domain.models import (
    DemolitionCompletionReport,
    DemolitionRequest,
)
from demolition_supervision.services.settlement_service import get_settlement
from demolition_supervision.services.workflow_errors import (
    AttachmentsRequiredError,
    SettlementRequiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def normalize_attachments(attachments: list) -> list[dict]:
    """Turn opaque file references into ``{id, file_label, original_name}`` dicts.

    Accepts bare ids or mappings with an ``id`` key. File content is never
    inspected; the store behind these ids is external.
    """
    if not attachments:
        raise AttachmentsRequiredError()

    normalized = []
    for position, ref in enumerate(attachments, start=1):
        if isinstance(ref, dict):
            ref_id = ref.get("id")
            label = ref.get("file_label")
            original = ref.get("original_name")
        else:
            ref_id, label, original = ref, None, None
        if ref_id is None or not str(ref_id).strip():
            raise ValidationError("attachments", f"Attachment #{position} has no file id")
        normalized.append({
            "id": str(ref_id).strip(),
            "file_label": label,
            "original_name": original,
        })
    return normalized


async def get_completion_report(
    db: AsyncSession, request_id: int
) -> Optional[DemolitionCompletionReport]:
    result = await db.execute(
        select(DemolitionCompletionReport).where(
            DemolitionCompletionReport.request_id == request_id
        )
    )
    return result.scalar_one_or_none()


async def create_completion_report(
    db: AsyncSession,
    request: DemolitionRequest,
    attachments: list,
    supervision_content: Optional[str] = None,
    submitted_by_id: Optional[int] = None,
) -> DemolitionCompletionReport:
    """Create the report once settlement is in place.

    Checks settlement first, then attachments, so an inspector who has not
    settled yet is told about the financial gate before anything else.
    """
    settlement = await get_settlement(db, request.id)
    if settlement is None or not settlement.settled:
        raise SettlementRequiredError()

    refs = normalize_attachments(attachments)
    now = datetime.now(timezone.utc)

    report = DemolitionCompletionReport(
        id=str(uuid.uuid4()),
        request_id=request.id,
        attachments=refs,
        supervision_content=(supervision_content or None),
        settled_at_creation=True,
        submitted_by_id=submitted_by_id,
        created_at=now,
        updated_at=now,
    )
    db.add(report)
    await db.flush()

    logger.info(
        "Demolition request %s: completion report filed (%d attachments)",
        request.id,
        len(refs),
    )
    return report
