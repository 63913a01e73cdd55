"""
Users API endpoints
"""

from fastapi import APIRouter, Depends, Request

from app.api.deps import limiter
from app.api.schemas import UserRead
from app.core.security import get_current_user
from app.core.settings import settings
from app.db.models import User

router = APIRouter(prefix="/users")


@router.get("/me", response_model=UserRead)
@limiter.limit(settings.RATE_LIMIT_READ)
async def read_current_user(
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """The caller's user record (created on first authenticated access)"""
    return current_user
