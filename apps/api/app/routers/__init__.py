"""API routers."""

from app.routers.auth import router as auth_router
from app.routers.otp import router as otp_router
from app.routers.photos import router as photos_router
from app.routers.properties import router as properties_router
from app.routers.sms import router as sms_router
from app.routers.storage import router as storage_router
from app.routers.turns import router as turns_router

__all__ = [
    "auth_router",
    "otp_router",
    "photos_router",
    "properties_router",
    "sms_router",
    "storage_router",
    "turns_router",
]
