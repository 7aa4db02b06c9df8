"""Guide approval lifecycle.

The stored representation of a guide's lifecycle is spread over
``guides.approved``, the approval/rejection columns and ``users.status``.
This module is the single place that reads those fields (``derive_state``)
and the single place that writes them (``apply_projection``). Services ask a
transition function for the next state and persist its projection; they never
set the flags by hand.

    UNREGISTERED -> PENDING_DOCS -> UNDER_REVIEW -> APPROVED
                                        |   ^
                                        v   | (resubmission / approval)
                                      REJECTED

``Blocked`` is entered and left through the admin account-status endpoint
and freezes every other transition. The guide columns are left as they were
while blocked, so unblocking restores the state the guide had before.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from app.core.errors import AccountBlocked, AlreadyApproved, NoDocuments, ValidationError
from app.models.guide import Guide
from app.models.user import User


@dataclass(frozen=True)
class Unregistered:
    name = "unregistered"


@dataclass(frozen=True)
class PendingDocs:
    name = "pending_docs"


@dataclass(frozen=True)
class UnderReview:
    name = "under_review"


@dataclass(frozen=True)
class Approved:
    approved_at: datetime | None = None
    approved_by: str | None = None
    name = "approved"


@dataclass(frozen=True)
class Rejected:
    reason: str = ""
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    name = "rejected"


@dataclass(frozen=True)
class Blocked:
    name = "blocked"


GuideState = Union[Unregistered, PendingDocs, UnderReview, Approved, Rejected, Blocked]


@dataclass(frozen=True)
class Projection:
    approved: bool
    account_status: str
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None


def derive_state(guide: Guide | None, account_status: str | None, document_count: int) -> GuideState:
    if guide is None:
        return Unregistered()
    if account_status == "blocked":
        return Blocked()
    if guide.approved:
        return Approved(approved_at=guide.approved_at, approved_by=guide.approved_by)
    if account_status == "rejected":
        return Rejected(
            reason=guide.rejection_reason or "",
            rejected_at=guide.rejected_at,
            rejected_by=guide.rejected_by,
        )
    if document_count == 0:
        return PendingDocs()
    return UnderReview()


def project(state: GuideState) -> Projection:
    if isinstance(state, Approved):
        return Projection(
            approved=True,
            account_status="active",
            approved_at=state.approved_at,
            approved_by=state.approved_by,
        )
    if isinstance(state, Rejected):
        return Projection(
            approved=False,
            account_status="rejected",
            rejection_reason=state.reason,
            rejected_at=state.rejected_at,
            rejected_by=state.rejected_by,
        )
    if isinstance(state, (PendingDocs, UnderReview)):
        return Projection(approved=False, account_status="pending")
    raise ValueError(f"{state.name} has no stored projection")


def apply_projection(guide: Guide, account: User, state: GuideState) -> None:
    if isinstance(state, Blocked):
        account.status = "blocked"
        return
    p = project(state)
    guide.approved = p.approved
    guide.approved_at = p.approved_at
    guide.approved_by = p.approved_by
    guide.rejection_reason = p.rejection_reason
    guide.rejected_at = p.rejected_at
    guide.rejected_by = p.rejected_by
    account.status = p.account_status


# -------------------------
# Transitions
# -------------------------
def _ensure_not_blocked(state: GuideState) -> None:
    if isinstance(state, Blocked):
        raise AccountBlocked()


def register(state: GuideState) -> GuideState:
    if not isinstance(state, Unregistered):
        raise ValueError("guide profile already exists")
    return PendingDocs()


def document_uploaded(state: GuideState) -> GuideState:
    """A new document moves the guide (back) into review."""
    _ensure_not_blocked(state)
    if isinstance(state, Approved):
        raise AlreadyApproved()
    return UnderReview()


def verification_settled(state: GuideState, total: int, verified: int, admin_id: str, now: datetime) -> GuideState:
    """Auto-approval: the last outstanding document was verified."""
    if isinstance(state, (Approved, Blocked, Unregistered)):
        return state
    if total > 0 and verified == total:
        return Approved(approved_at=now, approved_by=admin_id)
    return state


def approve(state: GuideState, document_count: int, admin_id: str, now: datetime) -> GuideState:
    _ensure_not_blocked(state)
    if isinstance(state, Approved):
        raise AlreadyApproved()
    if document_count == 0:
        raise NoDocuments()
    return Approved(approved_at=now, approved_by=admin_id)


def reject(state: GuideState, reason: str | None, admin_id: str, now: datetime) -> GuideState:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")
    _ensure_not_blocked(state)
    if isinstance(state, Approved):
        raise AlreadyApproved("Approved guides cannot be rejected")
    return Rejected(reason=reason, rejected_at=now, rejected_by=admin_id)


def block(state: GuideState) -> GuideState:
    if isinstance(state, Unregistered):
        raise ValueError("no guide profile to block")
    return Blocked()


def unblock(guide: Guide, document_count: int) -> GuideState:
    """State the guide held before it was blocked, read from the untouched guide columns."""
    if guide.approved:
        return Approved(approved_at=guide.approved_at, approved_by=guide.approved_by)
    if guide.rejection_reason:
        return Rejected(reason=guide.rejection_reason, rejected_at=guide.rejected_at, rejected_by=guide.rejected_by)
    if document_count == 0:
        return PendingDocs()
    return UnderReview()
