"""
Identity collaborator.

The hosted Supabase auth service verifies the session token; the id it
returns is trusted as the principal for every core operation.
"""
import logging
from typing import Optional

from fastapi import Header, HTTPException
from supabase import Client, create_client

import config

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def _get_supabase_client() -> Optional[Client]:
    global _client
    if _client is None and config.SUPABASE_URL and config.SUPABASE_KEY:
        _client = create_client(config.SUPABASE_URL, config.SUPABASE_KEY)
    return _client


def resolve_principal(token: str) -> str:
    """Exchange a session token for the principal id, or raise 401/503."""
    client = _get_supabase_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Identity provider is not configured.")

    try:
        response = client.auth.get_user(token)
    except Exception as exc:
        logger.warning("Token verification failed: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid or expired session.") from exc

    user = getattr(response, "user", None)
    if user is None or not getattr(user, "id", None):
        raise HTTPException(status_code=401, detail="Invalid or expired session.")
    return str(user.id)


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency returning the signed-in principal id.

    Usage:
        @app.get("/programs")
        def list_programs(user_id: str = Depends(get_current_user)):
            ...
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header.")
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format.")
    return resolve_principal(authorization.split(" ", 1)[1])
