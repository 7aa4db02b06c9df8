import uuid

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from app.db.session import SessionLocal
from app.core.config import settings
from app.core.security import hash_password
from app.models.user import User
from app.models.package import TourPackage

DEMO_PACKAGES = [
    ("Serengeti Classic Safari", "4 days", 1450),
    ("Ngorongoro Crater Day Trip", "1 day", 380),
    ("Kilimanjaro Machame Route", "7 days", 2100),
    ("Zanzibar Stone Town Walk", "1 day", 60),
]


def ensure_admin(db: Session, email: str, password: str) -> bool:
    email_l = email.strip().lower()
    if db.query(User).filter(User.email == email_l).first():
        return False
    db.add(
        User(
            id=str(uuid.uuid4()),
            email=email_l,
            role="admin",
            status="active",
            password_hash=hash_password(password),
            email_verified=True,
        )
    )
    db.commit()
    return True


def ensure_packages(db: Session) -> int:
    created = 0
    for name, duration, price in DEMO_PACKAGES:
        if db.query(TourPackage).filter(TourPackage.name == name).first():
            continue
        db.add(TourPackage(id=str(uuid.uuid4()), name=name, duration=duration, price=price, active=True))
        created += 1
    db.commit()
    return created


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except ProgrammingError:
            db.rollback()
            print("[seed] users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        if ensure_admin(db, settings.SEED_ADMIN_EMAIL, settings.SEED_ADMIN_PASSWORD):
            print(f"[seed] admin account created: {settings.SEED_ADMIN_EMAIL}")
        created = ensure_packages(db)
        print(f"[seed] tour packages created: {created}")
    finally:
        db.close()


if __name__ == "__main__":
    run()
