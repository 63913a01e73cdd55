"""Share-link token minting and validity checks."""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from app.core.exceptions import ExpiredError, NotFoundError
from app.core.settings import settings
from app.db.models import ShareLink, utcnow


def mint_token(nbytes: Optional[int] = None) -> str:
    """Unguessable URL-safe token."""
    return secrets.token_urlsafe(nbytes or settings.SHARE_TOKEN_BYTES)


def expiry_from_days(days: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    if days is None:
        return None
    return (now or utcnow()) + timedelta(days=days)


def check_link(link: Optional[ShareLink], now: Optional[datetime] = None) -> ShareLink:
    """Raise unless the link may be resolved.

    Missing and deactivated links are both reported as not found; an expired
    link is reported separately.
    """
    if link is None or not link.is_active:
        raise NotFoundError("Shared trip not found")
    if link.is_expired(now):
        raise ExpiredError("This share link has expired")
    return link


def share_url(token: str, base_url: str) -> str:
    base = (settings.SHARE_BASE_URL or base_url).rstrip("/")
    return f"{base}/shared/{token}"
