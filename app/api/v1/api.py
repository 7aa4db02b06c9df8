from fastapi import APIRouter
from app.api.v1.routes.auth import router as auth_router
from app.api.v1.routes.public import router as public_router
from app.api.v1.routes.bookings import router as bookings_router
from app.api.v1.routes.guides import router as guides_router
from app.api.v1.routes.admin_guides import router as admin_guides_router
from app.api.v1.routes.admin_bookings import router as admin_bookings_router
from app.api.v1.routes.admin_users import router as admin_users_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(public_router)
api_router.include_router(bookings_router)
api_router.include_router(guides_router)
api_router.include_router(admin_guides_router)
api_router.include_router(admin_bookings_router)
api_router.include_router(admin_users_router)
