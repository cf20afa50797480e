# Seedkeeper - API Security
#
# Generates a random session token on startup. Every route requires it in
# the X-Session-Token header, so other local processes cannot drive the
# vault API without the token the UI shell was given.

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

# Generated once per backend instance
_SESSION_TOKEN: Optional[str] = None


def initialize_session_token() -> str:
    """
    Generate a new 256-bit session token for this backend instance.

    Returns:
        The generated session token (handed to the UI shell)
    """
    global _SESSION_TOKEN
    _SESSION_TOKEN = secrets.token_urlsafe(32)
    return _SESSION_TOKEN


async def verify_session_token(x_session_token: str = Header(None)) -> str:
    """
    FastAPI dependency that checks the X-Session-Token header.

    Raises:
        HTTPException: 503 before initialization, 401 if missing or wrong
    """
    if _SESSION_TOKEN is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session token not initialized"
        )

    if x_session_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Session-Token header"
        )

    # Constant-time comparison
    if not secrets.compare_digest(x_session_token, _SESSION_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token"
        )

    return x_session_token
