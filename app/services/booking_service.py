import logging
import random
import string
import uuid
from datetime import date

from sqlalchemy.orm import Session

from app.core.errors import BookingNotFound, Conflict, InvalidState, PackageNotFound, ValidationError
from app.models.booking import Booking
from app.models.package import TourPackage
from app.models.user import User
from app.services.availability_service import parse_date

logger = logging.getLogger(__name__)

INITIAL_STATUS = "confirmed"


def make_booking_ref() -> str:
    return "TD-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def list_packages(db: Session) -> list[TourPackage]:
    return db.query(TourPackage).filter(TourPackage.active.is_(True)).order_by(TourPackage.name.asc()).all()


def create_booking(db: Session, tourist: User, package_id: str, travel_date, travelers: int,
                   today: date | None = None) -> Booking:
    if travelers is None or travelers < 1:
        raise ValidationError("Travelers count must be at least 1")
    travel_date = parse_date(travel_date)
    if travel_date < (today or date.today()):
        raise ValidationError("Travel date must be in the future")

    package = db.get(TourPackage, package_id)
    if not package or not package.active:
        raise PackageNotFound()

    # booking_ref must be unique
    for _ in range(10):
        ref = make_booking_ref()
        exists = db.query(Booking).filter(Booking.booking_ref == ref).first()
        if not exists:
            break
    else:
        raise Conflict("could not allocate booking reference")

    booking = Booking(
        id=str(uuid.uuid4()),
        booking_ref=ref,
        user_id=tourist.id,
        package_id=package.id,
        travel_date=travel_date,
        travelers=travelers,
        total_price=int(package.price) * travelers,
        status=INITIAL_STATUS,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s created for %s on %s", booking.booking_ref, tourist.email, travel_date)
    return booking


def list_my_bookings(db: Session, tourist: User) -> list[Booking]:
    return db.query(Booking).filter(Booking.user_id == tourist.id).order_by(Booking.created_at.desc()).all()


def cancel_booking(db: Session, tourist: User, booking_id: str, today: date | None = None) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id, Booking.user_id == tourist.id).with_for_update().first()
    if not booking:
        raise BookingNotFound()
    if booking.status == "cancelled":
        raise InvalidState("Booking is already cancelled")
    if booking.travel_date <= (today or date.today()):
        raise InvalidState("Cannot cancel booking for past or current date")
    booking.status = "cancelled"
    db.commit()
    logger.info("booking %s cancelled by tourist", booking.booking_ref)
    return booking
