from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import notifier_dep, require_roles, storage_dep
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.security import create_access_token, create_refresh_token
from app.models.guide import Guide
from app.models.guide_document import GuideDocument
from app.models.user import User
from app.schemas.guide import AvailabilityIn, GuideRegister
from app.services import account_service, guide_service
from app.services.assignment_service import list_guide_bookings
from app.services.availability_service import list_availability, set_availability
from app.services.notifications import Notifier
from app.services.storage_service import DocumentStorage
from app.api.v1.routes.bookings import booking_out

router = APIRouter(tags=["guides"])


def guide_out(g: Guide, account: User, state=None) -> dict:
    return {
        "id": g.id,
        "userId": g.user_id,
        "email": account.email,
        "fullName": g.full_name,
        "contactNumber": g.contact_number,
        "approved": g.approved,
        "approvedAt": g.approved_at.isoformat() if g.approved_at else None,
        "rejectionReason": g.rejection_reason,
        "rejectedAt": g.rejected_at.isoformat() if g.rejected_at else None,
        "status": account.status,
        "state": state.name if state is not None else None,
        "createdAt": g.created_at.isoformat() if g.created_at else None,
    }


def document_out(d: GuideDocument) -> dict:
    return {
        "id": d.id,
        "guideId": d.guide_id,
        "documentType": d.document_type,
        "fileName": d.file_name,
        "mimeType": d.mime_type,
        "fileSize": d.file_size,
        "verified": d.verified,
        "verifiedAt": d.verified_at.isoformat() if d.verified_at else None,
        "uploadedAt": d.uploaded_at.isoformat() if d.uploaded_at else None,
    }


@router.post("/guides/register", status_code=201)
def register(body: GuideRegister, db: Session = Depends(get_db), notifier: Notifier = Depends(notifier_dep)):
    guide, account = guide_service.register_guide(
        db, notifier,
        email=body.email, password=body.password,
        full_name=body.full_name, contact_number=body.contact_number,
    )
    account_service.send_verification(notifier, account)
    return {
        "success": True,
        "message": "Guide registered successfully. Please upload your documents for verification.",
        "access_token": create_access_token(account.id),
        "refresh_token": create_refresh_token(account.id),
        "guide": guide_out(guide, account),
    }


@router.post("/guides/documents", status_code=201)
def upload(
    document: UploadFile | None = File(None),
    document_type: str = Form(""),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(storage_dep),
    notifier: Notifier = Depends(notifier_dep),
    me: User = Depends(require_roles("guide")),
):
    if document is None:
        raise ValidationError("Document file is required")
    guide = guide_service.get_guide_for_user(db, me)
    doc = guide_service.upload_document(
        db, storage, notifier,
        guide_id=guide.id,
        document_type=document_type,
        filename=document.filename or "",
        content=document.file.read(settings.MAX_DOCUMENT_BYTES + 1),
        content_type=document.content_type or "",
    )
    return {"success": True, "message": "Document uploaded successfully", "document": document_out(doc)}


@router.get("/guides/me")
def my_profile(db: Session = Depends(get_db), me: User = Depends(require_roles("guide"))):
    guide = guide_service.get_guide_for_user(db, me)
    detail = guide_service.get_guide_detail(db, guide.id)
    out = guide_out(detail.guide, detail.account, detail.state)
    out["documents"] = [document_out(d) for d in detail.documents]
    return out


@router.get("/guides/bookings")
def my_bookings(db: Session = Depends(get_db), me: User = Depends(require_roles("guide"))):
    guide = guide_service.get_guide_for_user(db, me)
    return {"items": [booking_out(b, package=p) for b, p in list_guide_bookings(db, guide)]}


@router.post("/guides/availability")
def set_my_availability(body: AvailabilityIn, db: Session = Depends(get_db),
                        me: User = Depends(require_roles("guide"))):
    guide = guide_service.get_guide_for_user(db, me)
    row = set_availability(db, guide, body.date, body.status)
    return {"success": True, "date": row.date.isoformat(), "status": row.status}


@router.get("/guides/availability")
def my_availability(db: Session = Depends(get_db), me: User = Depends(require_roles("guide"))):
    guide = guide_service.get_guide_for_user(db, me)
    return {"items": [{"date": a.date.isoformat(), "status": a.status} for a in list_availability(db, guide)]}
