from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import notifier_dep, require_roles
from app.models.guide import Guide
from app.models.package import TourPackage
from app.models.user import User
from app.schemas.booking import AssignGuideIn, BookingStatusIn
from app.services import assignment_service
from app.services.availability_service import parse_date
from app.services.notifications import Notifier
from app.api.v1.routes.bookings import booking_out

router = APIRouter(tags=["admin-bookings"])

admin_only = require_roles("admin")


@router.get("/admin/bookings")
def list_bookings(status: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    rows = assignment_service.list_bookings(db, status)
    return {
        "total": len(rows),
        "items": [booking_out(b, package=p, tourist=u, guide=g) for b, u, p, g in rows],
    }


@router.get("/admin/bookings/available-guides")
def available_guides(travel_date: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    day = parse_date(travel_date) if travel_date else None
    return {
        "travelDate": day.isoformat() if day else None,
        "items": [
            {
                "id": g.guide_id,
                "fullName": g.full_name,
                "contactNumber": g.contact_number,
                "email": g.email,
                "activeBookings": g.active_bookings,
                "availability": g.availability,
            }
            for g in assignment_service.list_assignable_guides(db, day)
        ],
    }


@router.get("/admin/bookings/{booking_id}")
def booking_detail(booking_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    b = assignment_service.get_booking(db, booking_id)
    guide = db.get(Guide, b.guide_id) if b.guide_id else None
    return booking_out(b, package=db.get(TourPackage, b.package_id), tourist=db.get(User, b.user_id), guide=guide)


@router.post("/admin/bookings/{booking_id}/assign-guide")
def assign_guide(booking_id: str, body: AssignGuideIn, db: Session = Depends(get_db),
                 notifier: Notifier = Depends(notifier_dep), me: User = Depends(admin_only)):
    b = assignment_service.assign_guide(db, notifier, booking_id=booking_id, guide_id=body.guideId, admin_id=me.id)
    return {
        "success": True,
        "message": "Guide assigned successfully",
        "booking": booking_out(b, guide=db.get(Guide, b.guide_id)),
    }


@router.post("/admin/bookings/{booking_id}/unassign-guide")
def unassign_guide(booking_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    b = assignment_service.unassign_guide(db, booking_id=booking_id, admin_id=me.id)
    return {"success": True, "message": "Guide unassigned", "booking": booking_out(b)}


@router.patch("/admin/bookings/{booking_id}/status")
def update_status(booking_id: str, body: BookingStatusIn, db: Session = Depends(get_db),
                  me: User = Depends(admin_only)):
    b = assignment_service.update_booking_status(db, booking_id=booking_id, status=body.status, admin_id=me.id)
    return {"success": True, "message": "Booking status updated", "booking": booking_out(b)}
