import uuid
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import InvalidState, ValidationError
from app.models.availability import GuideAvailability, AVAILABILITY_STATUSES
from app.models.guide import Guide


def parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        raise ValidationError("Invalid date format, expected YYYY-MM-DD")


def set_availability(db: Session, guide: Guide, day, status: str, today: date | None = None) -> GuideAvailability:
    """Upsert the guide's marker for one date. Later writes replace earlier ones."""
    if status not in AVAILABILITY_STATUSES:
        raise ValidationError("Status must be 'available' or 'unavailable'")
    day = parse_date(day)
    if day < (today or date.today()):
        raise ValidationError("Cannot set availability for past dates")
    if not guide.approved:
        raise InvalidState("Only approved guides can manage availability")

    for _ in range(2):
        row = (
            db.query(GuideAvailability)
            .filter(GuideAvailability.guide_id == guide.id, GuideAvailability.date == day)
            .with_for_update()
            .first()
        )
        if row:
            row.status = status
        else:
            row = GuideAvailability(id=str(uuid.uuid4()), guide_id=guide.id, date=day, status=status)
            db.add(row)
        try:
            db.commit()
            return row
        except IntegrityError:
            # concurrent insert for the same (guide, date); retry as an update
            db.rollback()
    raise InvalidState("Availability is being updated concurrently, retry")


def list_availability(db: Session, guide: Guide, today: date | None = None) -> list[GuideAvailability]:
    return (
        db.query(GuideAvailability)
        .filter(GuideAvailability.guide_id == guide.id, GuideAvailability.date >= (today or date.today()))
        .order_by(GuideAvailability.date.asc())
        .all()
    )
