from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import Settings

OWNER_HEADER = "X-Owner-Id"

_security = HTTPBasic(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


def _check_basic_auth(settings: Settings, creds: Optional[HTTPBasicCredentials]) -> Optional[str]:
    """
    Enforce HTTP Basic authentication when enabled. Returns the authenticated
    username, or None when basic auth is disabled.

    Raises:
        HTTPException(401) if credentials are missing or invalid.
    """
    if not settings.enable_basic_auth:
        return None

    if creds is None or not creds.username or creds.password is None:
        raise _unauthorized("Not authenticated")

    expected_user = settings.basic_auth_username
    expected_pass = settings.basic_auth_password
    if expected_user is None or expected_pass is None:
        # Misconfiguration: auth enabled but username/password not provided
        raise _unauthorized("Server authentication not configured")

    user_ok = secrets.compare_digest(creds.username, expected_user)
    pass_ok = secrets.compare_digest(creds.password, expected_pass)
    if not (user_ok and pass_ok):
        raise _unauthorized("Invalid authentication credentials")
    return creds.username


# PUBLIC_INTERFACE
async def get_owner_id(
    request: Request,
    owner_header: Optional[str] = Header(default=None, alias=OWNER_HEADER),
    creds: Optional[HTTPBasicCredentials] = Depends(_security),
) -> str:
    """
    Resolve the owner id every core call is scoped to.

    The upstream identity provider sets the X-Owner-Id header. When basic auth is
    enabled the credentials are verified first, and the basic auth username stands in
    for the owner id if no header was sent.

    Raises:
        HTTPException(401) when no owner can be established.
    """
    settings: Settings = request.app.state.settings
    username = _check_basic_auth(settings, creds)

    owner_id = (owner_header or "").strip() or username
    if not owner_id:
        raise _unauthorized(f"Missing {OWNER_HEADER} header")
    return owner_id
