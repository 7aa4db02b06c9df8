from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.schemas.auth import EmailIn, LoginRequest, PasswordResetIn, TokenPair, TouristRegister
from app.models.user import User
from app.core.security import create_access_token, create_refresh_token, decode_token
from app.api.deps import get_current_user, notifier_dep
from app.services import account_service
from app.services.account_service import authenticate, register_tourist
from app.services.notifications import Notifier

router = APIRouter(tags=["auth"])

@router.post("/auth/register", status_code=201)
def register(body: TouristRegister, db: Session = Depends(get_db), notifier: Notifier = Depends(notifier_dep)):
    user = register_tourist(db, email=body.email, password=body.password, full_name=body.full_name,
                            country=body.country, phone=body.phone)
    account_service.send_verification(notifier, user)
    return {
        "success": True,
        "message": "Tourist registered successfully",
        "token": create_access_token(user.id),
        "user": {"id": user.id, "email": user.email, "role": user.role},
    }


@router.post("/auth/login", response_model=TokenPair)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, body.email, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenPair(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id),
    )


@router.post("/auth/refresh", response_model=TokenPair)
def refresh(refresh_token: str, db: Session = Depends(get_db)):
    try:
        payload = decode_token(refresh_token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = db.get(User, payload.get("sub"))
    if not user or user.status == "blocked":
        raise HTTPException(status_code=401, detail="User not found or blocked")
    return TokenPair(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id),
    )

@router.get("/auth/me")
def me(me: User = Depends(get_current_user)):
    """Return current user info including role and account status."""
    return {
        "id": me.id,
        "email": me.email,
        "role": me.role,
        "status": me.status,
        "emailVerified": me.email_verified,
    }


@router.get("/auth/verify-email")
def verify_email(token: str = "", db: Session = Depends(get_db)):
    user = account_service.verify_email(db, token)
    return {"success": True, "message": "Email verified successfully", "email": user.email}


@router.post("/auth/resend-verification")
def resend_verification(body: EmailIn, db: Session = Depends(get_db), notifier: Notifier = Depends(notifier_dep)):
    account_service.resend_verification(db, notifier, body.email)
    return {"success": True, "message": "If the account exists and is unverified, a new link has been sent"}


@router.post("/auth/forgot-password")
def forgot_password(body: EmailIn, db: Session = Depends(get_db), notifier: Notifier = Depends(notifier_dep)):
    account_service.request_password_reset(db, notifier, body.email)
    return {"success": True, "message": "If the account exists, a password reset link has been sent"}


@router.post("/auth/reset-password")
def reset_password(body: PasswordResetIn, db: Session = Depends(get_db)):
    account_service.reset_password(db, body.token, body.password)
    return {"success": True, "message": "Password updated successfully"}
