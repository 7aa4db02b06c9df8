"""Guide-to-booking assignment.

Exclusivity rule: a guide holds at most one active (confirmed or pending)
booking per travel date. ``assign_guide`` checks it under row locks and the
partial unique index ``uq_bookings_guide_date_active`` enforces it for
anything that slips past the check, so two admins racing for the same
guide/date get exactly one success.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AlreadyAssigned,
    BookingNotConfirmable,
    BookingNotFound,
    DateConflict,
    GuideNotApproved,
    GuideNotFound,
    NotAssigned,
    ValidationError,
)
from app.models.availability import GuideAvailability
from app.models.booking import Booking, BOOKING_STATUSES, ACTIVE_STATUSES
from app.models.guide import Guide
from app.models.package import TourPackage
from app.models.user import User
from app.services import email_templates
from app.services.audit_service import log_audit
from app.services.notifications import Notifier, dispatch

logger = logging.getLogger(__name__)


@dataclass
class AssignableGuide:
    guide_id: str
    full_name: str
    contact_number: str | None
    email: str
    active_bookings: int
    availability: str | None  # marker for the requested date, informational


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _lock_booking(db: Session, booking_id: str) -> Booking:
    booking = db.execute(
        select(Booking).where(Booking.id == booking_id).with_for_update()
    ).scalar_one_or_none()
    if not booking:
        raise BookingNotFound()
    return booking


def is_assignable(guide: Guide, account: User | None) -> bool:
    return bool(guide.approved) and account is not None and account.status == "active"


def list_assignable_guides(db: Session, travel_date: date | None = None) -> list[AssignableGuide]:
    """Approved, active guides, least-booked first (then by name)."""
    conflict_filter = [Booking.guide_id == Guide.id, Booking.status.in_(ACTIVE_STATUSES)]
    if travel_date:
        conflict_filter.append(Booking.travel_date == travel_date)
    active_bookings = (
        select(func.count(Booking.id))
        .where(*conflict_filter)
        .correlate(Guide)
        .scalar_subquery()
        .label("active_bookings")
    )

    q = select(Guide, User.email, active_bookings).join(User, User.id == Guide.user_id)
    if travel_date:
        q = q.add_columns(GuideAvailability.status).outerjoin(
            GuideAvailability,
            and_(GuideAvailability.guide_id == Guide.id, GuideAvailability.date == travel_date),
        )
    q = q.where(Guide.approved.is_(True), User.status == "active").order_by(
        active_bookings.asc(), Guide.full_name.asc()
    )

    items = []
    for row in db.execute(q).all():
        guide, email, count = row[0], row[1], row[2]
        items.append(AssignableGuide(
            guide_id=guide.id,
            full_name=guide.full_name,
            contact_number=guide.contact_number,
            email=email,
            active_bookings=int(count or 0),
            availability=row[3] if travel_date else None,
        ))
    return items


def assign_guide(db: Session, notifier: Notifier, *, booking_id: str, guide_id: str, admin_id: str) -> Booking:
    if not guide_id:
        raise ValidationError("Guide ID is required")

    # Lock order: booking, then guide.
    booking = _lock_booking(db, booking_id)
    guide = db.execute(select(Guide).where(Guide.id == guide_id).with_for_update()).scalar_one_or_none()
    if not guide:
        raise GuideNotFound()
    if booking.guide_id:
        raise AlreadyAssigned()
    guide_account = db.get(User, guide.user_id)
    if not is_assignable(guide, guide_account):
        raise GuideNotApproved()
    if booking.status != "confirmed":
        raise BookingNotConfirmable(f"Booking is {booking.status}; only confirmed bookings accept a guide")

    clash = (
        db.query(Booking.id)
        .filter(
            Booking.guide_id == guide.id,
            Booking.travel_date == booking.travel_date,
            Booking.id != booking.id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        .first()
    )
    if clash:
        raise DateConflict()

    booking.guide_id = guide.id
    booking.assigned_at = _now()
    booking.assigned_by = admin_id
    log_audit(db, admin_id, "booking.assign_guide", "booking", booking.id,
              {"guide_id": guide.id, "travel_date": booking.travel_date})
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DateConflict() from e

    logger.info("booking %s assigned to guide %s for %s", booking.booking_ref, guide.id, booking.travel_date)
    _notify_assignment(db, notifier, booking, guide, guide_account)
    return booking


def _notify_assignment(db: Session, notifier: Notifier, booking: Booking, guide: Guide, guide_account: User) -> None:
    package = db.get(TourPackage, booking.package_id)
    tourist = db.get(User, booking.user_id)
    package_name = package.name if package else "Tour package"
    dispatch(
        notifier,
        guide_account.email,
        email_templates.guide_assignment(guide.full_name, package_name, booking.travel_date, booking.booking_ref),
        related_ref=booking.booking_ref,
    )
    if tourist:
        dispatch(
            notifier,
            tourist.email,
            email_templates.tourist_guide_assigned(guide.full_name, guide.contact_number, package_name, booking.travel_date),
            related_ref=booking.booking_ref,
        )


def unassign_guide(db: Session, *, booking_id: str, admin_id: str) -> Booking:
    booking = _lock_booking(db, booking_id)
    if not booking.guide_id:
        raise NotAssigned()
    previous = booking.guide_id
    booking.guide_id = None
    booking.assigned_at = None
    booking.assigned_by = None
    log_audit(db, admin_id, "booking.unassign_guide", "booking", booking.id, {"guide_id": previous})
    db.commit()
    logger.info("booking %s released guide %s", booking.booking_ref, previous)
    return booking


def update_booking_status(db: Session, *, booking_id: str, status: str, admin_id: str) -> Booking:
    """Allowed-value check only; any status may follow any other."""
    if status not in BOOKING_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}")
    booking = _lock_booking(db, booking_id)
    previous = booking.status
    booking.status = status
    log_audit(db, admin_id, "booking.status", "booking", booking.id, {"from": previous, "to": status})
    try:
        db.commit()
    except IntegrityError as e:
        # re-activating a booking whose guide now holds another active booking that date
        db.rollback()
        raise DateConflict("Guide already has another active booking on this date; unassign first") from e
    return booking


def get_booking(db: Session, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound()
    return booking


def list_bookings(db: Session, status: str | None = None) -> list[tuple[Booking, User | None, TourPackage | None, Guide | None]]:
    q = (
        select(Booking, User, TourPackage, Guide)
        .outerjoin(User, User.id == Booking.user_id)
        .outerjoin(TourPackage, TourPackage.id == Booking.package_id)
        .outerjoin(Guide, Guide.id == Booking.guide_id)
    )
    if status:
        q = q.where(Booking.status == status)
    return [tuple(r) for r in db.execute(q.order_by(Booking.created_at.desc())).all()]


def list_guide_bookings(db: Session, guide: Guide) -> list[tuple[Booking, TourPackage | None]]:
    rows = db.execute(
        select(Booking, TourPackage)
        .outerjoin(TourPackage, TourPackage.id == Booking.package_id)
        .where(Booking.guide_id == guide.id)
        .order_by(Booking.travel_date.asc())
    ).all()
    return [tuple(r) for r in rows]
