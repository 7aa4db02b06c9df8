import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["API_PUBLIC_URL"] = "http://testserver"

import uuid
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.session import Base, get_db
from app.main import app
from app.api.deps import notifier_dep, storage_dep
from app.core.security import create_access_token, hash_password
from app.models.user import User
from app.models.tourist import Tourist
from app.models.guide import Guide
from app.models.guide_document import GuideDocument  # noqa: F401
from app.models.availability import GuideAvailability  # noqa: F401
from app.models.package import TourPackage
from app.models.booking import Booking
from app.models.email_log import EmailLog  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
from app.services import guide_service
from app.services.booking_service import make_booking_ref
from app.services.notifications import Notifier
from app.services.storage_service import LocalDocumentStorage

PDF = b"%PDF-1.4 test document"


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def notify(self, to_email, subject, html, related_ref=""):
        self.sent.append({"to": to_email, "subject": subject, "html": html, "related_ref": related_ref})

    def subjects(self, to_email=None):
        return [m["subject"] for m in self.sent if to_email is None or m["to"] == to_email]


class FailingNotifier(Notifier):
    def notify(self, to_email, subject, html, related_ref=""):
        raise ConnectionError("mail relay unreachable")


class Factory:
    """Builds rows directly, bypassing the workflow where a test needs a fixed starting point."""

    def __init__(self, db, notifier, storage):
        self.db = db
        self.notifier = notifier
        self.storage = storage

    def admin(self, email="admin@tourdesk.test") -> User:
        u = User(id=str(uuid.uuid4()), email=email, role="admin", status="active",
                 password_hash=hash_password("admin-pass"), email_verified=True)
        self.db.add(u)
        self.db.commit()
        return u

    def tourist(self, email="tourist@tourdesk.test") -> User:
        u = User(id=str(uuid.uuid4()), email=email, role="tourist", status="active",
                 password_hash=hash_password("tourist-pass"), email_verified=True)
        self.db.add(u)
        self.db.add(Tourist(id=str(uuid.uuid4()), user_id=u.id, full_name="Test Tourist"))
        self.db.commit()
        return u

    def package(self, name="Serengeti Classic", price=500) -> TourPackage:
        p = TourPackage(id=str(uuid.uuid4()), name=name, duration="3 days", price=price, active=True)
        self.db.add(p)
        self.db.commit()
        return p

    def booking(self, tourist: User, package: TourPackage, travel_date: date, status="confirmed",
                guide_id=None) -> Booking:
        b = Booking(
            id=str(uuid.uuid4()),
            booking_ref=make_booking_ref(),
            user_id=tourist.id,
            package_id=package.id,
            travel_date=travel_date,
            travelers=2,
            total_price=package.price * 2,
            status=status,
            guide_id=guide_id,
        )
        self.db.add(b)
        self.db.commit()
        return b

    def guide(self, email="guide@tourdesk.test", full_name="Asha Mollel") -> Guide:
        guide, _ = guide_service.register_guide(
            self.db, self.notifier, email=email, password="guide-pass",
            full_name=full_name, contact_number="+255700000001",
        )
        return guide

    def upload(self, guide: Guide, document_type="license", content=PDF, content_type="application/pdf"):
        return guide_service.upload_document(
            self.db, self.storage, self.notifier,
            guide_id=guide.id, document_type=document_type,
            filename=f"{document_type}.pdf", content=content, content_type=content_type,
        )

    def approved_guide(self, admin: User, email="approved@tourdesk.test", full_name="Baraka Kimaro") -> Guide:
        guide = self.guide(email=email, full_name=full_name)
        self.upload(guide, "license")
        guide_service.approve_guide(self.db, self.notifier, guide_id=guide.id, admin_id=admin.id)
        return guide


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite for multi-threaded tests."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # Serialize writers the way row locks do on Postgres: every transaction takes the write lock up front.
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def storage(tmp_path):
    return LocalDocumentStorage(str(tmp_path / "documents"))


@pytest.fixture
def factory(db, notifier, storage):
    return Factory(db, notifier, storage)


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=30)


@pytest.fixture
def client(session_factory, storage, notifier):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[storage_dep] = lambda: storage
    app.dependency_overrides[notifier_dep] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth():
    return auth_header
