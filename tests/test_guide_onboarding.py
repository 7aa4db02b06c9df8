import pytest

from app.core.errors import (
    AccountBlocked,
    AlreadyApproved,
    DocumentNotFound,
    DuplicateDocumentType,
    DuplicateEmail,
    GuideNotFound,
    NoDocuments,
    ValidationError,
)
from app.models.audit_log import AuditLog
from app.models.guide_document import GuideDocument
from app.models.user import User
from app.services import guide_service, user_service
from app.services.guide_state import Approved, PendingDocs, Rejected, UnderReview


def _account(db, guide):
    return db.get(User, guide.user_id)


def _assert_consistent(db, guide):
    db.refresh(guide)
    if guide.approved:
        assert _account(db, guide).status == "active"


def test_register_guide_starts_pending(db, factory, notifier):
    guide = factory.guide(email="New.Guide@Example.com")
    account = _account(db, guide)
    assert account.email == "new.guide@example.com"
    assert account.role == "guide"
    assert account.status == "pending"
    assert guide.approved is False
    assert isinstance(guide_service.current_state(db, guide), PendingDocs)
    assert notifier.subjects("new.guide@example.com") == ["Guide registration received - next steps"]


def test_register_guide_rejects_duplicate_email(factory):
    factory.guide(email="dup@example.com")
    with pytest.raises(DuplicateEmail):
        factory.guide(email="DUP@example.com")


def test_register_guide_requires_fields(db, notifier):
    with pytest.raises(ValidationError):
        guide_service.register_guide(db, notifier, email="x@example.com", password="pw", full_name="  ")


def test_verifying_every_document_approves_exactly_once(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide(email="asha@example.com")
    license_doc = factory.upload(guide, "license")
    id_doc = factory.upload(guide, "id_card")
    assert isinstance(guide_service.current_state(db, guide), UnderReview)

    first = guide_service.verify_document(db, notifier, document_id=license_doc.id, admin_id=admin.id)
    assert first.guide_approved is False and first.approved_now is False
    _assert_consistent(db, guide)
    assert guide.approved is False

    second = guide_service.verify_document(db, notifier, document_id=id_doc.id, admin_id=admin.id)
    assert second.guide_approved is True and second.approved_now is True
    db.refresh(guide)
    assert guide.approved is True
    assert guide.approved_by == admin.id
    assert _account(db, guide).status == "active"

    # verifying an already verified document again changes nothing and sends nothing
    again = guide_service.verify_document(db, notifier, document_id=id_doc.id, admin_id=admin.id)
    assert again.approved_now is False
    assert notifier.subjects("asha@example.com").count("Your guide account is approved") == 1


def test_duplicate_type_conflicts_and_upload_after_approval_is_invalid(db, factory, storage):
    admin = factory.admin()
    guide = factory.guide()
    factory.upload(guide, "license")
    with pytest.raises(DuplicateDocumentType):
        factory.upload(guide, "license")

    guide_service.approve_guide(db, factory.notifier, guide_id=guide.id, admin_id=admin.id)
    with pytest.raises(AlreadyApproved):
        factory.upload(guide, "certificate")
    assert db.query(GuideDocument).filter(GuideDocument.guide_id == guide.id).count() == 1


def test_upload_validation(factory):
    guide = factory.guide()
    with pytest.raises(ValidationError):
        factory.upload(guide, "passport")
    with pytest.raises(ValidationError):
        factory.upload(guide, "license", content_type="application/zip")
    with pytest.raises(ValidationError):
        factory.upload(guide, "license", content=b"")


def test_upload_for_unknown_guide(factory, db, storage, notifier):
    with pytest.raises(GuideNotFound):
        guide_service.upload_document(db, storage, notifier, guide_id="missing", document_type="license",
                                      filename="a.pdf", content=b"x", content_type="application/pdf")


def test_reject_then_approve_clears_rejection(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide(email="rejected@example.com")
    factory.upload(guide, "license")

    with pytest.raises(ValidationError):
        guide_service.reject_guide(db, notifier, guide_id=guide.id, admin_id=admin.id, reason="")

    guide_service.reject_guide(db, notifier, guide_id=guide.id, admin_id=admin.id, reason="Invalid license")
    db.refresh(guide)
    assert guide.rejection_reason == "Invalid license"
    assert guide.rejected_at is not None
    assert _account(db, guide).status == "rejected"
    assert isinstance(guide_service.current_state(db, guide), Rejected)
    assert "Invalid license" in notifier.sent[-1]["html"]

    guide_service.approve_guide(db, notifier, guide_id=guide.id, admin_id=admin.id)
    db.refresh(guide)
    assert guide.approved is True
    assert guide.rejection_reason is None
    assert guide.rejected_at is None
    assert _account(db, guide).status == "active"


def test_approve_without_documents_fails(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide()
    with pytest.raises(NoDocuments):
        guide_service.approve_guide(db, notifier, guide_id=guide.id, admin_id=admin.id)


def test_approve_marks_documents_verified(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide()
    factory.upload(guide, "license")
    factory.upload(guide, "certificate")
    guide_service.approve_guide(db, notifier, guide_id=guide.id, admin_id=admin.id)
    docs = db.query(GuideDocument).filter(GuideDocument.guide_id == guide.id).all()
    assert all(d.verified and d.verified_by == admin.id for d in docs)
    with pytest.raises(AlreadyApproved):
        guide_service.approve_guide(db, notifier, guide_id=guide.id, admin_id=admin.id)


def test_rejected_guide_resubmits_into_review(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide()
    factory.upload(guide, "license")
    guide_service.reject_guide(db, notifier, guide_id=guide.id, admin_id=admin.id, reason="Expired license")

    factory.upload(guide, "certificate")
    db.refresh(guide)
    assert isinstance(guide_service.current_state(db, guide), UnderReview)
    assert _account(db, guide).status == "pending"
    assert guide.rejection_reason is None


def test_blocked_guide_is_frozen(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide()
    doc = factory.upload(guide, "license")
    user_service.set_account_status(db, user_id=guide.user_id, status="blocked", admin_id=admin.id)

    with pytest.raises(AccountBlocked):
        factory.upload(guide, "certificate")
    with pytest.raises(AccountBlocked):
        guide_service.approve_guide(db, notifier, guide_id=guide.id, admin_id=admin.id)
    with pytest.raises(AccountBlocked):
        guide_service.reject_guide(db, notifier, guide_id=guide.id, admin_id=admin.id, reason="Fraud")

    result = guide_service.verify_document(db, notifier, document_id=doc.id, admin_id=admin.id)
    assert result.guide_approved is False
    assert _account(db, guide).status == "blocked"


def test_reject_document_keeps_approval(db, factory, notifier):
    admin = factory.admin()
    guide = factory.approved_guide(admin)
    doc = db.query(GuideDocument).filter(GuideDocument.guide_id == guide.id).one()

    rejected = guide_service.reject_document(db, document_id=doc.id, admin_id=admin.id)
    assert rejected.verified is False
    db.refresh(guide)
    assert guide.approved is True
    with pytest.raises(DocumentNotFound):
        guide_service.reject_document(db, document_id="missing", admin_id=admin.id)


def test_admin_actions_are_audited(db, factory, notifier):
    admin = factory.admin()
    guide = factory.guide()
    doc = factory.upload(guide, "license")
    guide_service.verify_document(db, notifier, document_id=doc.id, admin_id=admin.id)

    actions = [a.action for a in db.query(AuditLog).filter(AuditLog.actor_user_id == admin.id)]
    assert "guide_document.verify" in actions


def test_list_guides_filters_by_status(db, factory):
    admin = factory.admin()
    factory.guide(email="pending@example.com")
    factory.approved_guide(admin, email="active@example.com")

    pending = guide_service.list_guides(db, "pending")
    assert [o.account.email for o in pending] == ["pending@example.com"]
    active = guide_service.list_guides(db, "active")
    assert [o.account.email for o in active] == ["active@example.com"]
    assert isinstance(active[0].state, Approved)
    assert active[0].document_count == 1 and active[0].pending_documents == 0
    assert len(guide_service.list_guides(db)) == 2


def test_document_url_is_scoped_to_guide(db, factory, storage):
    guide = factory.guide()
    other = factory.guide(email="other@example.com")
    doc = factory.upload(guide, "license")

    url = guide_service.document_url(db, storage, guide_id=guide.id, document_id=doc.id)
    assert url.startswith("http://testserver/api/v1/files/")
    with pytest.raises(DocumentNotFound):
        guide_service.document_url(db, storage, guide_id=other.id, document_id=doc.id)
