from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import require_roles
from app.models.booking import Booking
from app.models.guide import Guide
from app.models.package import TourPackage
from app.models.user import User
from app.schemas.booking import BookingCreate
from app.services.booking_service import cancel_booking, create_booking, list_my_bookings, list_packages

router = APIRouter(tags=["bookings"])


def package_out(p: TourPackage) -> dict:
    return {"id": p.id, "name": p.name, "duration": p.duration, "price": p.price}


def booking_out(b: Booking, package: TourPackage | None = None, tourist: User | None = None,
                guide: Guide | None = None) -> dict:
    out = {
        "id": b.id,
        "bookingRef": b.booking_ref,
        "packageId": b.package_id,
        "travelDate": b.travel_date.isoformat(),
        "travelers": b.travelers,
        "totalPrice": b.total_price,
        "status": b.status,
        "guideId": b.guide_id,
        "assignedAt": b.assigned_at.isoformat() if b.assigned_at else None,
        "createdAt": b.created_at.isoformat() if b.created_at else None,
    }
    if package is not None:
        out["packageName"] = package.name
        out["duration"] = package.duration
    if tourist is not None:
        out["touristEmail"] = tourist.email
    if guide is not None:
        out["guideName"] = guide.full_name
        out["guideContact"] = guide.contact_number
    return out


@router.get("/packages")
def packages(db: Session = Depends(get_db)):
    return {"items": [package_out(p) for p in list_packages(db)]}


@router.post("/bookings", status_code=201)
def book(body: BookingCreate, db: Session = Depends(get_db),
         me: User = Depends(require_roles("tourist"))):
    b = create_booking(db, me, body.package_id, body.travel_date, body.travelers)
    return {"success": True, "booking": booking_out(b, package=db.get(TourPackage, b.package_id))}


@router.get("/bookings/my")
def my_bookings(db: Session = Depends(get_db), me: User = Depends(require_roles("tourist"))):
    items = []
    for b in list_my_bookings(db, me):
        guide = db.get(Guide, b.guide_id) if b.guide_id else None
        items.append(booking_out(b, package=db.get(TourPackage, b.package_id), guide=guide))
    return {"items": items}


@router.post("/bookings/{booking_id}/cancel")
def cancel(booking_id: str, db: Session = Depends(get_db), me: User = Depends(require_roles("tourist"))):
    b = cancel_booking(db, me, booking_id)
    return {"success": True, "booking": booking_out(b)}
