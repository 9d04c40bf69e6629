import hashlib
import hmac
from typing import Optional
from fastapi import Header, HTTPException, Request, status
from dropshot.config import settings
from dropshot.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
    if not settings.admin_token_digest:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured"
        )

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    digest = hashlib.sha256(token.strip().encode("utf-8")).hexdigest()
    if not hmac.compare_digest(digest, settings.admin_token_digest.lower()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"}
        )
