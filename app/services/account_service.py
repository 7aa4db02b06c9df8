import hashlib
import logging
import uuid

from jose import JWTError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import DuplicateEmail, ValidationError
from app.core.security import create_action_token, decode_token, hash_password, verify_password
from app.models.tourist import Tourist
from app.models.user import User
from app.services import email_templates
from app.services.notifications import Notifier, dispatch

logger = logging.getLogger(__name__)

EMAIL_VERIFY = "email_verify"
PASSWORD_RESET = "password_reset"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def ensure_email_available(db: Session, email: str) -> None:
    if db.query(User.id).filter(func.lower(User.email) == normalize_email(email)).first():
        raise DuplicateEmail()


def register_tourist(db: Session, *, email: str, password: str, full_name: str,
                     country: str | None = None, phone: str | None = None) -> User:
    email_l = normalize_email(email)
    if not email_l or not password or not (full_name or "").strip():
        raise ValidationError("Required fields missing")
    ensure_email_available(db, email_l)

    user = User(
        id=str(uuid.uuid4()),
        email=email_l,
        role="tourist",
        status="active",
        password_hash=hash_password(password),
        email_verified=False,
    )
    db.add(user)
    db.add(Tourist(id=str(uuid.uuid4()), user_id=user.id, full_name=full_name.strip(), country=country, phone=phone))
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateEmail() from e
    return user


def authenticate(db: Session, email: str, password: str) -> User | None:
    """Blocked accounts cannot log in; pending and rejected guides can, to upload documents."""
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or user.status == "blocked":
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# -------------------------
# Email verification and password reset
# -------------------------
def _password_fingerprint(password_hash: str) -> str:
    # changes whenever the password does, so a reset link works once
    return hashlib.sha256(password_hash.encode()).hexdigest()[:16]


def _read_action_token(token: str | None, purpose: str, error: str) -> dict:
    try:
        payload = decode_token(token or "")
    except JWTError as e:
        raise ValidationError(error) from e
    if payload.get("type") != purpose or not payload.get("sub"):
        raise ValidationError(error)
    return payload


def send_verification(notifier: Notifier, user: User) -> None:
    token = create_action_token(user.id, EMAIL_VERIFY, settings.EMAIL_VERIFY_EXPIRE_HOURS * 3600, email=user.email)
    link = f"{settings.API_PUBLIC_URL}/api/v1/auth/verify-email?token={token}"
    dispatch(notifier, user.email, email_templates.email_verification(link, settings.EMAIL_VERIFY_EXPIRE_HOURS),
             related_ref=user.id)


def verify_email(db: Session, token: str | None) -> User:
    error = "Invalid or expired verification link"
    payload = _read_action_token(token, EMAIL_VERIFY, error)
    user = db.get(User, payload["sub"])
    if not user or user.email != payload.get("email"):
        raise ValidationError(error)
    if not user.email_verified:
        user.email_verified = True
        db.commit()
        logger.info("email verified for %s", user.id)
    return user


def resend_verification(db: Session, notifier: Notifier, email: str) -> None:
    """Silent for unknown, verified and blocked addresses so callers cannot enumerate accounts."""
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user and not user.email_verified and user.status != "blocked":
        send_verification(notifier, user)


def request_password_reset(db: Session, notifier: Notifier, email: str) -> None:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or user.status == "blocked":
        logger.info("password reset requested for unknown or blocked address")
        return
    token = create_action_token(user.id, PASSWORD_RESET, settings.PASSWORD_RESET_EXPIRE_MINUTES * 60,
                                pwd=_password_fingerprint(user.password_hash))
    link = f"{settings.APP_PUBLIC_URL}/reset-password?token={token}"
    dispatch(notifier, user.email, email_templates.password_reset(link), related_ref=user.id)


def reset_password(db: Session, token: str | None, new_password: str | None) -> User:
    error = "Invalid or expired reset link"
    if not new_password:
        raise ValidationError("New password is required")
    payload = _read_action_token(token, PASSWORD_RESET, error)
    user = db.get(User, payload["sub"])
    if not user or user.status == "blocked" or payload.get("pwd") != _password_fingerprint(user.password_hash):
        raise ValidationError(error)
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("password reset for %s", user.id)
    return user
