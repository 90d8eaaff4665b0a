from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import jwt
from fastapi import Depends, HTTPException, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from supportdesk.core.config import settings
from supportdesk.core.errors import Unauthenticated
from supportdesk.store.base import Subscription

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


@dataclass(slots=True, frozen=True)
class AuthSession:
    user_id: str
    email: str
    email_verified: bool


SessionCallback = Callable[[AuthSession | None], None]


class IdentityProvider(Protocol):
    async def get_current_session(self) -> AuthSession | None: ...

    def on_session_change(self, callback: SessionCallback) -> Subscription: ...


def _decode_token(token: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "algorithms": [settings.jwt_algorithm],
        "leeway": settings.jwt_exp_leeway_seconds,
    }

    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        kwargs["options"] = {"verify_aud": False}

    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer

    try:
        payload = jwt.decode(token, settings.jwt_secret, **kwargs)
    except jwt.PyJWTError as exc:
        raise Unauthenticated("Invalid token") from exc

    return payload


def _parse_payload(payload: dict[str, Any]) -> AuthSession:
    user_id = str(payload.get("sub") or payload.get("user_id") or "").strip()
    if not user_id:
        raise Unauthenticated("Invalid sub claim")

    email = str(payload.get("email") or "").strip().lower()
    verified = payload.get("email_verified")
    if verified is None:
        verified = bool((payload.get("user_metadata") or {}).get("email_verified"))

    return AuthSession(user_id=user_id, email=email, email_verified=bool(verified))


def session_from_token(token: str) -> AuthSession:
    return _parse_payload(_decode_token(token))


class TokenIdentityProvider:
    """Identity backed by a signed access token held for the current client."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token
        self._listeners: dict[int, SessionCallback] = {}
        self._keys = itertools.count(1)

    async def get_current_session(self) -> AuthSession | None:
        if not self._token:
            return None
        try:
            return session_from_token(self._token)
        except Unauthenticated:
            logger.warning("Discarding unusable access token")
            return None

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        key = next(self._keys)
        self._listeners[key] = callback
        return Subscription(lambda: self._listeners.pop(key, None), label=f"auth#{key}")

    def _notify(self, session: AuthSession | None) -> None:
        for callback in list(self._listeners.values()):
            try:
                callback(session)
            except Exception:
                logger.exception("Session change listener failed")

    async def sign_in(self, token: str) -> AuthSession:
        session = session_from_token(token)
        self._token = token
        self._notify(session)
        return session

    async def sign_out(self) -> None:
        self._token = None
        self._notify(None)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> AuthSession:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return session_from_token(credentials.credentials)
    except Unauthenticated as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


async def get_current_user_from_ws(websocket: WebSocket) -> AuthSession:
    token = websocket.query_params.get("token")
    if not token:
        raise Unauthenticated("Missing token")
    return session_from_token(token)
