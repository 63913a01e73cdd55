import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnauthenticatedError
from app.core.settings import settings
from app.db import crud
from app.db.models import User
from app.db.session import get_db_session

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    email: str,
    name: Optional[str] = None,
    image: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Mint a token shaped like the identity provider's (local development and tests)"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims: Dict[str, Any] = {"sub": email, "email": email, "exp": expire}
    if name:
        claims["name"] = name
    if image:
        claims["picture"] = image
    if settings.JWT_AUDIENCE:
        claims["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": bool(settings.JWT_AUDIENCE)},
        )
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise UnauthenticatedError("Could not validate credentials") from e


def principal_email(claims: Dict[str, Any]) -> str:
    """The principal is the ``email`` claim, else ``sub`` when it holds an email"""
    email = claims.get("email") or claims.get("sub")
    if not isinstance(email, str) or "@" not in email:
        raise UnauthenticatedError("Token carries no principal email")
    return email.strip().lower()


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Not authenticated")
    return decode_token(credentials.credentials)


async def get_current_principal(claims: Dict[str, Any] = Depends(get_current_claims)) -> str:
    return principal_email(claims)


async def get_current_user(
    claims: Dict[str, Any] = Depends(get_current_claims),
    session: AsyncSession = Depends(get_db_session),
) -> User:
    """Resolve the caller's user record, creating it on first authenticated access"""
    email = principal_email(claims)
    return await crud.get_or_create_user(
        session,
        email,
        name=claims.get("name"),
        image=claims.get("picture"),
    )
