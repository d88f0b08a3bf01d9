"""
Caller identification for the HTTP API.

Requests carry a Firebase ID token in `Authorization: Bearer <token>`. With
in-memory backends (local development and tests) an `X-User-Id` header is
accepted instead.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from backend.config import Settings, get_settings
from backend.dependencies import ensure_firebase_app

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_id_token(token: str) -> str:
    ensure_firebase_app()
    try:
        decoded = firebase_auth.verify_id_token(token)
    except (ValueError, firebase_exceptions.FirebaseError) as e:
        logger.info("Rejected ID token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid authentication token")
    return decoded["uid"]


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """Returns the caller's uid or fails with 401."""
    token = _bearer_token(authorization)
    if token:
        return verify_id_token(token)
    if settings.use_in_memory_backends and x_user_id:
        return x_user_id
    raise HTTPException(status_code=401, detail="User authentication required")


def get_current_moderator(
    user: str = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> str:
    """Returns the caller's uid when they may moderate content, else 403."""
    if user not in settings.moderator_uids:
        raise HTTPException(status_code=403, detail="Moderator access required")
    return user
