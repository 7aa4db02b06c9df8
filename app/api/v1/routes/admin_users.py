from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import require_roles
from app.models.user import User
from app.schemas.auth import UserStatusIn
from app.services import user_service

router = APIRouter(tags=["admin-users"])

admin_only = require_roles("admin")


def user_out(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "role": u.role,
        "status": u.status,
        "emailVerified": u.email_verified,
        "createdAt": u.created_at.isoformat() if u.created_at else None,
    }


@router.get("/admin/users")
def list_users(role: str | None = None, status: str | None = None, db: Session = Depends(get_db),
               me: User = Depends(admin_only)):
    items = [user_out(u) for u in user_service.list_users(db, role, status)]
    return {"total": len(items), "items": items}


@router.patch("/admin/users/{user_id}/status")
def update_user_status(user_id: str, body: UserStatusIn, db: Session = Depends(get_db),
                       me: User = Depends(admin_only)):
    user = user_service.set_account_status(db, user_id=user_id, status=body.status, admin_id=me.id)
    return {"success": True, "message": "User status updated successfully", "user": user_out(user)}
