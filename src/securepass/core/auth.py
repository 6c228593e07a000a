"""
Request identity for API routes.

Identity is delegated: an upstream identity provider (reverse proxy, SSO
gateway) sets X-User-Id. Without it every request belongs to the configured
local user. The vault trusts this owner id and performs no authentication
of its own beyond the per-instance session token.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from .config import get_settings

MAX_OWNER_ID_LENGTH = 255


def resolve_owner(x_user_id: Optional[str]) -> dict:
    owner_id = (x_user_id or "").strip()
    if len(owner_id) > MAX_OWNER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id header too long",
        )
    if not owner_id:
        return {"id": get_settings().local_user, "local": True}
    return {"id": owner_id, "local": False}


async def get_current_user(
    x_session_token: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> dict:
    """
    Dependency that validates the session token and returns the caller.

    Returns:
        {"id": owner_id, "local": bool}
    """
    # Import here to avoid circular imports
    from ..api.security import check_session_token

    check_session_token(x_session_token)
    return resolve_owner(x_user_id)
