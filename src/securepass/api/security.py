# API Security - Per-process session token
#
# The browser client fetches the token from /api/session once and echoes it
# in X-Session-Token. Other local processes that never saw the token cannot
# drive the vault. A restart invalidates every client.

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

SESSION_HEADER = "X-Session-Token"
TOKEN_BYTES = 32

_SESSION_TOKEN: Optional[str] = None


def initialize_session_token() -> str:
    """Draw a fresh token (called from the startup hook) and return it."""
    global _SESSION_TOKEN
    _SESSION_TOKEN = secrets.token_urlsafe(TOKEN_BYTES)
    return _SESSION_TOKEN


def reset_session_token() -> None:
    """Forget the token; protected calls answer 503 until re-initialized."""
    global _SESSION_TOKEN
    _SESSION_TOKEN = None


def get_session_token() -> str:
    """
    Raises:
        RuntimeError: Token not initialized yet
    """
    if _SESSION_TOKEN is None:
        raise RuntimeError("Session token not initialized. Call initialize_session_token() first.")
    return _SESSION_TOKEN


def check_session_token(presented: Optional[str]) -> None:
    """
    Validate a presented token against the current one.

    Raises:
        HTTPException: 503 before startup, 401 if missing or wrong
    """
    expected = _SESSION_TOKEN
    if expected is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session token not initialized",
        )
    if not presented:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {SESSION_HEADER} header",
        )
    if not secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token",
        )


async def verify_session_token(x_session_token: Optional[str] = Header(None)) -> str:
    """Router dependency for endpoints that need the token but no owner."""
    check_session_token(x_session_token)
    return x_session_token
