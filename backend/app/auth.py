"""
Authentication dependencies for Supabase JWT verification.
Provides caller identity for the form-email endpoint and the admin-role
check used by the email back-office endpoints.

Performance notes:
- get_current_user verifies JWTs locally with python-jose when SUPABASE_JWT_SECRET
  is set, avoiding a network round-trip to the Supabase Auth API.
- require_admin asks Postgres through the ``is_admin`` RPC so the role table
  stays the single source of truth for back-office access.
"""

import logging
import os
from fastapi import Depends, HTTPException, Header
from typing import Optional
from app.db import supabase, supabase_admin

logger = logging.getLogger(__name__)

# Set SUPABASE_JWT_SECRET in your environment (Project Settings > API > JWT Secret).
# When not set the implementation falls back to the Supabase Auth API.
SUPABASE_JWT_SECRET: Optional[str] = os.environ.get("SUPABASE_JWT_SECRET") or None


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify the bearer token from the Authorization header.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        user_id: Authenticated caller's ID (the JWT ``sub`` claim)

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Not authenticated")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials"
        )

    token = parts[1]

    if SUPABASE_JWT_SECRET:
        return _verify_jwt_locally(token)

    return await _verify_jwt_remotely(token)


def _verify_jwt_locally(token: str) -> str:
    """
    Verify a Supabase HS256 JWT with python-jose and return the user ID.

    Raises:
        HTTPException 401 on any verification failure.
    """
    from jose import jwt, JWTError, ExpiredSignatureError

    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},  # Supabase tokens carry the 'authenticated' audience
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


async def _verify_jwt_remotely(token: str) -> str:
    """
    Verify a JWT via the Supabase Auth API (used when no JWT secret is set).

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        response = supabase.auth.get_user(token)

        if not response.user:
            raise HTTPException(status_code=401, detail="Invalid token")

        return response.user.id

    except HTTPException:
        raise
    except Exception as e:
        if "expired" in str(e).lower():
            raise HTTPException(status_code=401, detail="Token expired")

        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")


async def require_admin(user_id: str = Depends(get_current_user)) -> str:
    """
    Ensure the authenticated caller holds an admin role.

    Calls the ``is_admin(user_uuid)`` Postgres function, which checks the
    ``user_roles`` table for ``admin`` or ``super_admin``.

    Returns:
        The caller's user ID.

    Raises:
        HTTPException: 403 if the caller is not an admin, 500 on database error
    """
    try:
        result = supabase_admin.rpc("is_admin", {"user_uuid": user_id}).execute()
    except Exception as e:
        logger.error(f"Admin role check failed for user {user_id!r}: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify admin role")

    if result.data is not True:
        raise HTTPException(
            status_code=403,
            detail="Admin access required"
        )

    return user_id
