"""
Caller identity for share endpoints.

Authentication itself happens in front of sharebox (reverse proxy, SSO
gateway, ...). The authenticated user name arrives in the AUTH_USER_HEADER
request header; a missing or empty header means an anonymous caller.
"""
from fastapi import Depends, HTTPException, Request, status

from sharebox.config import settings


def get_current_user(request: Request) -> str:
    """Return the authenticated user name, or "" for anonymous callers."""
    return request.headers.get(settings.AUTH_USER_HEADER, "").strip()


def require_user(user: str = Depends(get_current_user)) -> str:
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "success": False,
                "error": "Unauthorized",
                "message": "Authentication required",
            },
        )
    return user
