from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import notifier_dep, require_roles, storage_dep
from app.core.config import settings
from app.models.user import User
from app.schemas.guide import GuideRejectIn
from app.services import guide_service
from app.services.notifications import Notifier
from app.services.storage_service import DocumentStorage
from app.api.v1.routes.guides import document_out, guide_out

router = APIRouter(tags=["admin-guides"])

admin_only = require_roles("admin")


@router.get("/admin/guides")
def list_guides(status: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    items = []
    for row in guide_service.list_guides(db, status):
        out = guide_out(row.guide, row.account, row.state)
        out["documentCount"] = row.document_count
        out["pendingDocuments"] = row.pending_documents
        items.append(out)
    return {"total": len(items), "items": items}


@router.get("/admin/guides/{guide_id}")
def guide_detail(guide_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    detail = guide_service.get_guide_detail(db, guide_id)
    out = guide_out(detail.guide, detail.account, detail.state)
    out["documents"] = [document_out(d) for d in detail.documents]
    return out


@router.get("/admin/guides/{guide_id}/documents/{document_id}/url")
def document_url(guide_id: str, document_id: str, db: Session = Depends(get_db),
                 storage: DocumentStorage = Depends(storage_dep), me: User = Depends(admin_only)):
    url = guide_service.document_url(db, storage, guide_id=guide_id, document_id=document_id)
    return {"url": url, "expiresIn": settings.DOCUMENT_URL_TTL_SECONDS}


@router.get("/admin/guide-documents")
def list_documents(guide_id: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    items = []
    for doc, guide, account in guide_service.list_documents(db, guide_id):
        out = document_out(doc)
        out["guideName"] = guide.full_name
        out["guideEmail"] = account.email
        items.append(out)
    return {"total": len(items), "items": items}


@router.patch("/admin/guide-documents/{document_id}/verify")
def verify_document(document_id: str, db: Session = Depends(get_db),
                    notifier: Notifier = Depends(notifier_dep), me: User = Depends(admin_only)):
    result = guide_service.verify_document(db, notifier, document_id=document_id, admin_id=me.id)
    message = "Document verified"
    if result.approved_now:
        message = "Document verified. All documents verified, guide approved."
    return {
        "success": True,
        "message": message,
        "document": document_out(result.document),
        "guideApproved": result.guide_approved,
    }


@router.patch("/admin/guide-documents/{document_id}/reject")
def reject_document(document_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    doc = guide_service.reject_document(db, document_id=document_id, admin_id=me.id)
    return {"success": True, "message": "Document rejected", "document": document_out(doc)}


@router.patch("/admin/guides/{guide_id}/approve-action")
def approve_guide(guide_id: str, db: Session = Depends(get_db),
                  notifier: Notifier = Depends(notifier_dep), me: User = Depends(admin_only)):
    guide = guide_service.approve_guide(db, notifier, guide_id=guide_id, admin_id=me.id)
    return {"success": True, "message": "Guide approved successfully", "guideId": guide.id}


@router.patch("/admin/guides/{guide_id}/reject-action")
def reject_guide(guide_id: str, body: GuideRejectIn, db: Session = Depends(get_db),
                 notifier: Notifier = Depends(notifier_dep), me: User = Depends(admin_only)):
    guide = guide_service.reject_guide(db, notifier, guide_id=guide_id, admin_id=me.id, reason=body.reason)
    return {
        "success": True,
        "message": "Guide rejected",
        "guideId": guide.id,
        "rejectionReason": guide.rejection_reason,
    }
