"""
Authentication for the Rapid Offer API.

Supports both API key and JWT bearer token authentication, with
role-based access control (admin, manager, dialer, closer).
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Security, Depends, status
from fastapi.security import APIKeyHeader, APIKeyQuery, HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from config.settings import get_settings

logger = logging.getLogger(__name__)

# ── Security schemes ───────────────────────────────────────────────
API_KEY_HEADER = "X-API-Key"
API_KEY_QUERY = "api_key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
api_key_query = APIKeyQuery(name=API_KEY_QUERY, auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)

ROLES = ("admin", "manager", "dialer", "closer")


# ── JWT ────────────────────────────────────────────────────────────

def create_jwt_token(data: Dict[str, Any]) -> Tuple[str, int]:
    """
    Create a JWT token.

    Returns:
        Tuple of (token_string, expires_in_seconds)
    """
    settings = get_settings()
    expires = datetime.utcnow() + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {**data, "exp": expires}
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token, settings.jwt_expire_minutes * 60


def decode_jwt_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
        )


# ── Dependencies ──────────────────────────────────────────────────

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    header_key: Optional[str] = Security(api_key_header),
    query_key: Optional[str] = Security(api_key_query),
) -> Dict[str, Any]:
    """
    Get current user from JWT token or API key.

    Returns user payload dict with at least: sub, role, tenant_id
    """
    if credentials and credentials.credentials:
        payload = decode_jwt_token(credentials.credentials)
        if not payload.get("sub") or payload.get("role") not in ROLES:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token must carry a subject and one of roles: " + ", ".join(ROLES),
            )
        payload.setdefault("tenant_id", None)
        return payload

    api_key = header_key or query_key
    expected_key = get_settings().api_key

    if not expected_key:
        # Dev mode: anonymous admin without a tenant
        return {"sub": "anonymous", "role": "admin", "tenant_id": None}

    if api_key == expected_key:
        return {"sub": "api_key_user", "role": "admin", "tenant_id": None}

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
    )


def require_role(*roles: str) -> Callable:
    """
    Factory that returns a dependency requiring specific roles.

    Usage:
        @router.get("/closer/queue", dependencies=[Depends(require_role("closer"))])
    """
    async def _check_role(user: Dict = Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(roles)}",
            )
        return user
    return _check_role


def require_tenant(user: Dict[str, Any]) -> str:
    """Tenant id of the caller; tenant-scoped endpoints reject callers without one."""
    tenant_id = user.get("tenant_id")
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant context required")
    return tenant_id
