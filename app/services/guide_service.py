import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    DocumentNotFound,
    DuplicateDocumentType,
    DuplicateEmail,
    GuideNotFound,
    StorageError,
    ValidationError,
)
from app.core.security import hash_password
from app.models.guide import Guide
from app.models.guide_document import GuideDocument, DOCUMENT_TYPES
from app.models.user import User
from app.services import email_templates, guide_state
from app.services.account_service import ensure_email_available, normalize_email
from app.services.audit_service import log_audit
from app.services.notifications import Notifier, dispatch
from app.services.storage_service import DocumentStorage, document_object_path

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "application/pdf")


@dataclass
class GuideOverview:
    guide: Guide
    account: User
    document_count: int
    pending_documents: int
    state: guide_state.GuideState


@dataclass
class GuideDetail:
    guide: Guide
    account: User
    state: guide_state.GuideState
    documents: list[GuideDocument] = field(default_factory=list)


@dataclass
class VerificationResult:
    document: GuideDocument
    guide_approved: bool
    approved_now: bool


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _lock_guide(db: Session, guide_id: str) -> Guide:
    """Row lock that serializes every approval-affecting write for one guide."""
    guide = db.execute(
        select(Guide).where(Guide.id == guide_id).with_for_update()
    ).scalar_one_or_none()
    if not guide:
        raise GuideNotFound()
    return guide


def _document_counts(db: Session, guide_id: str) -> tuple[int, int]:
    total, verified = db.execute(
        select(
            func.count(GuideDocument.id),
            func.coalesce(func.sum(case((GuideDocument.verified.is_(True), 1), else_=0)), 0),
        ).where(GuideDocument.guide_id == guide_id)
    ).one()
    return int(total or 0), int(verified or 0)


def _account(db: Session, guide: Guide) -> User:
    account = db.get(User, guide.user_id)
    if not account:
        # guides rows are only ever created together with their account
        raise GuideNotFound("Guide account missing")
    return account


def current_state(db: Session, guide: Guide) -> guide_state.GuideState:
    total, _ = _document_counts(db, guide.id)
    return guide_state.derive_state(guide, _account(db, guide).status, total)


# -------------------------
# Lookups
# -------------------------
def get_guide(db: Session, guide_id: str) -> Guide:
    guide = db.get(Guide, guide_id)
    if not guide:
        raise GuideNotFound()
    return guide


def get_guide_for_user(db: Session, user: User) -> Guide:
    guide = db.query(Guide).filter(Guide.user_id == user.id).first()
    if not guide:
        raise GuideNotFound("Guide profile not found")
    return guide


def list_guides(db: Session, status: str | None = None) -> list[GuideOverview]:
    document_count = (
        select(func.count(GuideDocument.id))
        .where(GuideDocument.guide_id == Guide.id)
        .correlate(Guide)
        .scalar_subquery()
    )
    pending_count = (
        select(func.count(GuideDocument.id))
        .where(GuideDocument.guide_id == Guide.id, GuideDocument.verified.is_(False))
        .correlate(Guide)
        .scalar_subquery()
    )
    q = (
        select(Guide, User, document_count.label("document_count"), pending_count.label("pending_count"))
        .join(User, User.id == Guide.user_id)
    )
    if status:
        q = q.where(User.status == status)
    rows = db.execute(q.order_by(Guide.created_at.desc())).all()
    return [
        GuideOverview(
            guide=g,
            account=u,
            document_count=int(docs or 0),
            pending_documents=int(pending or 0),
            state=guide_state.derive_state(g, u.status, int(docs or 0)),
        )
        for g, u, docs, pending in rows
    ]


def get_guide_detail(db: Session, guide_id: str) -> GuideDetail:
    guide = get_guide(db, guide_id)
    account = _account(db, guide)
    documents = (
        db.query(GuideDocument)
        .filter(GuideDocument.guide_id == guide.id)
        .order_by(GuideDocument.uploaded_at.desc())
        .all()
    )
    state = guide_state.derive_state(guide, account.status, len(documents))
    return GuideDetail(guide=guide, account=account, state=state, documents=documents)


def list_documents(db: Session, guide_id: str | None = None) -> list[tuple[GuideDocument, Guide, User]]:
    q = (
        select(GuideDocument, Guide, User)
        .join(Guide, Guide.id == GuideDocument.guide_id)
        .join(User, User.id == Guide.user_id)
    )
    if guide_id:
        q = q.where(GuideDocument.guide_id == guide_id)
    return [tuple(r) for r in db.execute(q.order_by(GuideDocument.uploaded_at.desc())).all()]


def document_url(db: Session, storage: DocumentStorage, *, guide_id: str, document_id: str) -> str:
    doc = db.query(GuideDocument).filter(GuideDocument.id == document_id, GuideDocument.guide_id == guide_id).first()
    if not doc:
        raise DocumentNotFound()
    return storage.signed_url(doc.storage_path, settings.DOCUMENT_URL_TTL_SECONDS)


# -------------------------
# Registration
# -------------------------
def register_guide(db: Session, notifier: Notifier, *, email: str, password: str, full_name: str,
                   contact_number: str | None = None) -> tuple[Guide, User]:
    email_l = normalize_email(email)
    full_name = (full_name or "").strip()
    if not email_l or not password or not full_name:
        raise ValidationError("email, password and full name are required")
    ensure_email_available(db, email_l)

    account = User(
        id=str(uuid.uuid4()),
        email=email_l,
        role="guide",
        status="pending",
        password_hash=hash_password(password),
        email_verified=False,
    )
    guide = Guide(
        id=str(uuid.uuid4()),
        user_id=account.id,
        full_name=full_name,
        contact_number=(contact_number or "").strip() or None,
    )
    state = guide_state.register(guide_state.Unregistered())
    guide_state.apply_projection(guide, account, state)
    db.add(account)
    db.add(guide)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateEmail() from e

    logger.info("guide %s registered (%s)", guide.id, email_l)
    dispatch(notifier, email_l, email_templates.guide_registration(full_name), related_ref=guide.id)
    return guide, account


# -------------------------
# Document registry
# -------------------------
def _validate_upload(document_type: str, content: bytes, content_type: str) -> tuple[str, str]:
    document_type = (document_type or "").strip().lower()
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(f"document_type must be one of: {', '.join(DOCUMENT_TYPES)}")
    content_type = (content_type or "").strip().lower()
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"Invalid file type '{content_type}'. Allowed: JPEG, PNG, PDF")
    if not content:
        raise ValidationError("Document file is empty")
    if len(content) > settings.MAX_DOCUMENT_BYTES:
        raise ValidationError(f"Document exceeds {settings.MAX_DOCUMENT_BYTES // (1024 * 1024)}MB")
    return document_type, content_type


def _next_state_for_upload(db: Session, guide: Guide, account: User, document_type: str) -> guide_state.GuideState:
    total, _ = _document_counts(db, guide.id)
    state = guide_state.derive_state(guide, account.status, total)
    next_state = guide_state.document_uploaded(state)  # AlreadyApproved / AccountBlocked
    exists = (
        db.query(GuideDocument.id)
        .filter(GuideDocument.guide_id == guide.id, GuideDocument.document_type == document_type)
        .first()
    )
    if exists:
        raise DuplicateDocumentType(f"Document '{document_type}' already uploaded")
    return next_state


def _discard_object(storage: DocumentStorage, path: str) -> None:
    try:
        storage.remove([path])
    except StorageError:
        logger.warning("could not remove orphaned document object %s", path, exc_info=True)


def upload_document(db: Session, storage: DocumentStorage, notifier: Notifier, *, guide_id: str,
                    document_type: str, filename: str, content: bytes, content_type: str) -> GuideDocument:
    """Store a verification document, then record it.

    The object is written before any transaction is opened so no row lock is
    held during the upload. A failed upload persists nothing; a failed insert
    after a successful upload removes the object again.
    """
    document_type, content_type = _validate_upload(document_type, content, content_type)

    guide = get_guide(db, guide_id)
    _next_state_for_upload(db, guide, _account(db, guide), document_type)
    db.rollback()  # end the read transaction before talking to storage

    path = document_object_path(guide_id, filename, int(time.time() * 1000))
    storage.upload(path, content, content_type)

    try:
        guide = _lock_guide(db, guide_id)
        account = _account(db, guide)
        next_state = _next_state_for_upload(db, guide, account, document_type)
        doc = GuideDocument(
            id=str(uuid.uuid4()),
            guide_id=guide.id,
            document_type=document_type,
            storage_path=path,
            file_name=filename or "",
            mime_type=content_type,
            file_size=len(content),
            verified=False,
        )
        db.add(doc)
        guide_state.apply_projection(guide, account, next_state)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        _discard_object(storage, path)
        raise DuplicateDocumentType(f"Document '{document_type}' already uploaded") from e
    except Exception:
        db.rollback()
        _discard_object(storage, path)
        raise

    logger.info("guide %s uploaded %s (%s bytes)", guide.id, document_type, len(content))
    dispatch(notifier, account.email, email_templates.guide_document_received(guide.full_name, document_type),
             related_ref=guide.id)
    return doc


def verify_document(db: Session, notifier: Notifier, *, document_id: str, admin_id: str) -> VerificationResult:
    doc = db.get(GuideDocument, document_id)
    if not doc:
        raise DocumentNotFound()

    guide = _lock_guide(db, doc.guide_id)
    db.refresh(doc)
    now = _now()
    if not doc.verified:
        doc.verified = True
        doc.verified_by = admin_id
        doc.verified_at = now
    db.flush()

    # Counted under the guide lock: of two verifies racing for the last
    # documents, the second one sees both as verified.
    account = _account(db, guide)
    total, verified = _document_counts(db, guide.id)
    state = guide_state.derive_state(guide, account.status, total)
    next_state = guide_state.verification_settled(state, total, verified, admin_id, now)
    approved_now = isinstance(next_state, guide_state.Approved) and not isinstance(state, guide_state.Approved)
    if approved_now:
        guide_state.apply_projection(guide, account, next_state)

    log_audit(db, admin_id, "guide_document.verify", "guide_document", doc.id,
              {"guide_id": guide.id, "verified": verified, "total": total, "guide_approved": approved_now})
    db.commit()

    if approved_now:
        logger.info("guide %s approved: all %s documents verified", guide.id, total)
        dispatch(notifier, account.email, email_templates.guide_approved(guide.full_name), related_ref=guide.id)
    return VerificationResult(document=doc, guide_approved=bool(guide.approved), approved_now=approved_now)


def reject_document(db: Session, *, document_id: str, admin_id: str) -> GuideDocument:
    """Mark a document unverified. The stored file is kept; guide approval is untouched."""
    doc = db.get(GuideDocument, document_id)
    if not doc:
        raise DocumentNotFound()
    _lock_guide(db, doc.guide_id)
    db.refresh(doc)
    doc.verified = False
    doc.verified_by = admin_id
    doc.verified_at = _now()
    log_audit(db, admin_id, "guide_document.reject", "guide_document", doc.id, {"guide_id": doc.guide_id})
    db.commit()
    return doc


# -------------------------
# Admin decisions
# -------------------------
def approve_guide(db: Session, notifier: Notifier, *, guide_id: str, admin_id: str) -> Guide:
    guide = _lock_guide(db, guide_id)
    account = _account(db, guide)
    total, _ = _document_counts(db, guide.id)
    state = guide_state.derive_state(guide, account.status, total)
    now = _now()
    next_state = guide_state.approve(state, total, admin_id, now)

    for doc in db.query(GuideDocument).filter(GuideDocument.guide_id == guide.id, GuideDocument.verified.is_(False)):
        doc.verified = True
        doc.verified_by = admin_id
        doc.verified_at = now
    guide_state.apply_projection(guide, account, next_state)
    log_audit(db, admin_id, "guide.approve", "guide", guide.id, {"previous_state": state.name, "documents": total})
    db.commit()

    logger.info("guide %s approved by %s (was %s)", guide.id, admin_id, state.name)
    dispatch(notifier, account.email, email_templates.guide_approved(guide.full_name), related_ref=guide.id)
    return guide


def reject_guide(db: Session, notifier: Notifier, *, guide_id: str, admin_id: str, reason: str | None) -> Guide:
    if not (reason or "").strip():
        raise ValidationError("Rejection reason is required")
    guide = _lock_guide(db, guide_id)
    account = _account(db, guide)
    state = current_state(db, guide)
    next_state = guide_state.reject(state, reason, admin_id, _now())

    guide_state.apply_projection(guide, account, next_state)
    log_audit(db, admin_id, "guide.reject", "guide", guide.id, {"reason": next_state.reason, "previous_state": state.name})
    db.commit()

    logger.info("guide %s rejected by %s", guide.id, admin_id)
    dispatch(notifier, account.email, email_templates.guide_rejected(guide.full_name, next_state.reason),
             related_ref=guide.id)
    return guide
