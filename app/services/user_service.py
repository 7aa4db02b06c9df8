import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import InvalidState, UserNotFound, ValidationError
from app.models.guide import Guide
from app.models.user import ROLES, STATUSES, User
from app.services import guide_state
from app.services.audit_service import log_audit
from app.services.guide_service import _document_counts, _lock_guide

logger = logging.getLogger(__name__)

# pending and rejected are owned by the guide approval workflow
SETTABLE_STATUSES = ("active", "blocked")


def list_users(db: Session, role: str | None = None, status: str | None = None) -> list[User]:
    q = db.query(User)
    if role:
        if role not in ROLES:
            raise ValidationError(f"role must be one of {', '.join(ROLES)}")
        q = q.filter(User.role == role)
    if status:
        if status not in STATUSES:
            raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
        q = q.filter(User.status == status)
    return q.order_by(User.created_at.desc()).all()


def set_account_status(db: Session, *, user_id: str, status: str | None, admin_id: str) -> User:
    """Block or unblock an account.

    Guide accounts move through ``guide_state``: blocking freezes the guide and
    unblocking restores whatever approval state it held before.
    """
    status = (status or "").strip().lower()
    if status not in STATUSES:
        raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
    if status not in SETTABLE_STATUSES:
        raise InvalidState("pending and rejected are set by the guide approval workflow")
    if user_id == admin_id and status == "blocked":
        raise InvalidState("Admins cannot block their own account")

    user = db.execute(select(User).where(User.id == user_id).with_for_update()).scalar_one_or_none()
    if not user:
        raise UserNotFound()
    previous = user.status

    if user.role == "guide":
        guide_id = db.execute(select(Guide.id).where(Guide.user_id == user.id)).scalar_one_or_none()
        if guide_id is None:
            raise UserNotFound("Guide profile missing")
        guide = _lock_guide(db, guide_id)
        total, _ = _document_counts(db, guide.id)
        current = guide_state.derive_state(guide, previous, total)
        if status == "blocked":
            state = guide_state.block(current)
        elif isinstance(current, guide_state.Blocked):
            state = guide_state.unblock(guide, total)
        else:
            state = current
        guide_state.apply_projection(guide, user, state)
    elif status == "blocked" or previous == "blocked":
        user.status = status

    if user.status == previous:
        db.rollback()
        return db.get(User, user_id)

    log_audit(db, admin_id, "user.status", "user", user.id, {"from": previous, "to": user.status})
    db.commit()
    db.refresh(user)
    logger.info("account %s status %s -> %s by %s", user.id, previous, user.status, admin_id)
    return user
