"""Priority-designation candidate ranking.

Pure-function module — NO database access.

A priority-designation request nominates up to five supervisors in ranked
order. Every operation returns a new list; the input is never mutated.
After each operation ``order`` is a contiguous 1..n sequence and no two
entries share a ``user_id`` or an ``applicant_id``.

Candidates are snapshots taken at nomination time. Name, license and
birthdate are copied in and never re-fetched, so a historical nomination
stays stable even if the supervisor's profile changes later.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Optional

from demolition_supervision.domain.enums import MoveDirection
from demolition_supervision.services.workflow_errors import (
    CandidateListFullError,
    DuplicateCandidateError,
    ValidationError,
)

MAX_PRIORITY_CANDIDATES = 5


@dataclass(frozen=True)
class PriorityCandidate:
    """One ranked nominee. ``order`` is assigned by the ranking functions."""
    order: int = 0
    applicant_id: Optional[int] = None
    user_id: Optional[int] = None
    supervisor_name: Optional[str] = None
    supervisor_license: Optional[str] = None
    supervisor_birthdate: Optional[str] = None
    designation_reason: Optional[str] = None

    @property
    def supervisor_ref(self) -> Optional[int]:
        """Id used for the request's single-supervisor fields (user first)."""
        return self.user_id if self.user_id is not None else self.applicant_id

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PriorityCandidate":
        return cls(
            order=int(data.get("order") or 0),
            applicant_id=data.get("applicant_id"),
            user_id=data.get("user_id"),
            supervisor_name=data.get("supervisor_name"),
            supervisor_license=data.get("supervisor_license"),
            supervisor_birthdate=data.get("supervisor_birthdate"),
            designation_reason=data.get("designation_reason"),
        )


def _renumber(candidates: list[PriorityCandidate]) -> list[PriorityCandidate]:
    return [replace(c, order=i + 1) for i, c in enumerate(candidates)]


def _conflicts(a: PriorityCandidate, b: PriorityCandidate) -> bool:
    if a.user_id is not None and a.user_id == b.user_id:
        return True
    if a.applicant_id is not None and a.applicant_id == b.applicant_id:
        return True
    return False


def _check_index(candidates: list[PriorityCandidate], index: int) -> None:
    if index < 0 or index >= len(candidates):
        raise ValidationError(
            "order",
            f"No priority candidate at position {index + 1} (list has {len(candidates)})",
        )


def add_candidate(
    candidates: list[PriorityCandidate],
    candidate: PriorityCandidate,
) -> list[PriorityCandidate]:
    """Append *candidate* as the lowest-ranked nominee."""
    if candidate.user_id is None and candidate.applicant_id is None:
        raise ValidationError(
            "priority_designations",
            "A priority candidate needs a user_id or an applicant_id",
        )
    if len(candidates) >= MAX_PRIORITY_CANDIDATES:
        raise CandidateListFullError(MAX_PRIORITY_CANDIDATES)
    if any(_conflicts(existing, candidate) for existing in candidates):
        raise DuplicateCandidateError(candidate.user_id, candidate.applicant_id)

    return _renumber(list(candidates) + [candidate])


def remove_candidate(
    candidates: list[PriorityCandidate],
    index: int,
) -> list[PriorityCandidate]:
    """Drop the entry at *index* (0-based) and close the gap."""
    _check_index(candidates, index)
    return _renumber(candidates[:index] + candidates[index + 1:])


def move_candidate(
    candidates: list[PriorityCandidate],
    index: int,
    direction: MoveDirection | str,
) -> list[PriorityCandidate]:
    """Swap the entry at *index* with its neighbour.

    Moving the first entry up or the last entry down is a no-op.
    """
    try:
        direction = MoveDirection(direction)
    except ValueError:
        raise ValidationError("direction", f"Unknown direction {direction!r}; use 'up' or 'down'")
    _check_index(candidates, index)

    target = index - 1 if direction == MoveDirection.UP else index + 1
    if target < 0 or target >= len(candidates):
        return _renumber(list(candidates))

    moved = list(candidates)
    moved[index], moved[target] = moved[target], moved[index]
    return _renumber(moved)


def top_candidate(candidates: list[PriorityCandidate]) -> Optional[PriorityCandidate]:
    """Return the order=1 nominee, or None for an empty list."""
    for c in candidates:
        if c.order == 1:
            return c
    return None


def validate_candidates(candidates: list[PriorityCandidate]) -> None:
    """Check every ranking invariant on an already-built list."""
    if len(candidates) > MAX_PRIORITY_CANDIDATES:
        raise CandidateListFullError(MAX_PRIORITY_CANDIDATES)

    orders = sorted(c.order for c in candidates)
    if orders != list(range(1, len(candidates) + 1)):
        raise ValidationError(
            "priority_designations",
            f"Candidate orders must be contiguous from 1, got {orders}",
        )

    for i, c in enumerate(candidates):
        if c.user_id is None and c.applicant_id is None:
            raise ValidationError(
                "priority_designations",
                f"Priority candidate #{c.order} needs a user_id or an applicant_id",
            )
        for other in candidates[i + 1:]:
            if _conflicts(c, other):
                raise DuplicateCandidateError(other.user_id, other.applicant_id)


def build_candidates(entries: list[PriorityCandidate]) -> list[PriorityCandidate]:
    """Build a ranked list by adding *entries* in their submitted order.

    Entries are sorted by any ``order`` the caller supplied first, so a
    submitted ranking is preserved; dedup and the size cap apply as for
    single additions.
    """
    ranked = sorted(
        enumerate(entries),
        key=lambda pair: (pair[1].order or (MAX_PRIORITY_CANDIDATES + 1), pair[0]),
    )
    result: list[PriorityCandidate] = []
    for _, entry in ranked:
        result = add_candidate(result, entry)
    return result


def load_candidates(raw: list[dict] | None) -> list[PriorityCandidate]:
    """Deserialize the JSON column, ordered by rank."""
    candidates = [PriorityCandidate.from_dict(d) for d in (raw or [])]
    return sorted(candidates, key=lambda c: c.order)


def dump_candidates(candidates: list[PriorityCandidate]) -> list[dict]:
    """Serialize for the JSON column."""
    return [c.to_dict() for c in candidates]
