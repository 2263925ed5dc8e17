"""Bearer-token identity resolution for the HTTP routes."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import firebase_admin
from fastapi import Depends, Header, HTTPException, status
from firebase_admin import auth as firebase_auth
from firebase_admin.exceptions import FirebaseError

from .config import Settings, get_settings
from .errors import AuthenticationError
from .firestore_store import ensure_firebase_app

logger = logging.getLogger(__name__)

DEV_USER_HEADER = "X-Study-Buddy-User"


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Dict[str, Any]:  # pragma: no cover - protocol definition
        ...


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens; the Firebase app is initialised on first use."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._app: Optional[firebase_admin.App] = None

    def verify(self, token: str) -> Dict[str, Any]:
        if self._app is None:
            self._app = ensure_firebase_app(self._settings)
        try:
            decoded = firebase_auth.verify_id_token(token, app=self._app)
        except (ValueError, FirebaseError) as exc:
            raise AuthenticationError(f"Token verification failed: {exc}") from exc
        if not decoded.get("uid"):
            raise AuthenticationError("Token carries no uid.")
        return decoded


def bearer_token(header: Optional[str]) -> str:
    if not header or not header.startswith("Bearer "):
        raise AuthenticationError("Missing bearer token.")
    token = header.split("Bearer ", 1)[1].strip()
    if not token:
        raise AuthenticationError("Missing bearer token.")
    return token


@lru_cache
def get_token_verifier() -> TokenVerifier:
    return FirebaseTokenVerifier(get_settings())


def get_current_user_id(
    authorization: Optional[str] = Header(None),
    dev_user: Optional[str] = Header(None, alias=DEV_USER_HEADER),
    settings: Settings = Depends(get_settings),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    if settings.auth_disabled and dev_user and dev_user.strip():
        return dev_user.strip()
    try:
        decoded = verifier.verify(bearer_token(authorization))
    except AuthenticationError as exc:
        logger.info("Rejected request: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc
    return str(decoded["uid"])


__all__ = [
    "DEV_USER_HEADER",
    "FirebaseTokenVerifier",
    "TokenVerifier",
    "bearer_token",
    "get_current_user_id",
    "get_token_verifier",
]
