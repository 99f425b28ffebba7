# classes/auth_service.py

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import jwt
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from classes.errors import AuthError
from classes.google_helpers import AUTH_JWT_SECRET, AUTH_TOKEN_TTL_SECONDS, GOOGLE_OAUTH_CLIENT_ID

logger = logging.getLogger("diffref_backend")

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AuthUser:
    id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class AuthState:
    user: Optional[AuthUser]
    is_loading: bool
    session_token: str
    previous_user: Optional[AuthUser] = None


def verify_google_id_token(credential: str) -> Dict[str, Any]:
    """
    Check a Google Sign-In ID token (signature, issuer, expiry and, when
    GOOGLE_OAUTH_CLIENT_ID is set, audience). Returns its claims.
    """
    return id_token.verify_oauth2_token(credential, google_requests.Request(), GOOGLE_OAUTH_CLIENT_ID)


class AuthService:
    """
    Signs users in from an identity-provider credential and hands out a signed,
    expiring session token (HS256 JWT).

    - The token carries the user id; nothing can be claimed without a valid signature.
    - Each live token is also registered by its `jti`, so sign_out revokes it.
      Entries are pruned once they expire.
    - Listeners registered with on_auth_state_changed see every sign-in/sign-out.
    """

    def __init__(
        self,
        verifier: Callable[[str], Dict[str, Any]] = verify_google_id_token,
        secret: Optional[str] = AUTH_JWT_SECRET,
        token_ttl_seconds: int = AUTH_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            logger.warning("[AUTH] AUTH_JWT_SECRET not set, using a per-process secret; sessions end on restart")
            secret = secrets.token_urlsafe(32)
        self._verifier = verifier
        self._secret = secret
        self.token_ttl_seconds = token_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # jti -> (user, expires_at)
        self._live: Dict[str, Tuple[AuthUser, float]] = {}
        self._listeners: List[Callable[[AuthState], None]] = []

    def _prune_unlocked(self, now: float) -> int:
        expired = [jti for jti, (_, exp) in self._live.items() if exp <= now]
        for jti in expired:
            del self._live[jti]
        return len(expired)

    def _issue(self, user: AuthUser) -> str:
        now = self._clock()
        jti = secrets.token_hex(16)
        claims = {
            "sub": user.id,
            "name": user.display_name,
            "jti": jti,
            "iat": int(now),
            "exp": now + self.token_ttl_seconds,
        }
        token = jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)
        with self._lock:
            self._prune_unlocked(now)
            self._live[jti] = (user, claims["exp"])
        return token

    def _decode(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            raise AuthError("Not signed in.")
        try:
            # expiry is checked against our own clock below
            return jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["sub", "jti", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"[AUTH] rejected session token: {e}")
            raise AuthError("Not signed in.") from e

    def sign_in(self, credential: Optional[str]) -> Tuple[str, AuthUser]:
        credential = (credential or "").strip()
        if not credential:
            raise AuthError("A sign-in credential is required.")
        try:
            claims = self._verifier(credential)
        except (ValueError, GoogleAuthError) as e:
            logger.info(f"[AUTH] credential rejected: {e}")
            raise AuthError("The sign-in credential could not be verified.") from e

        user_id = str(claims.get("sub") or "").strip()
        if not user_id:
            raise AuthError("The sign-in credential has no user id.")
        user = AuthUser(id=user_id, display_name=claims.get("name") or None)

        token = self._issue(user)
        logger.info(f"[AUTH] sign_in user={user_id}")
        self._notify(AuthState(user=user, is_loading=False, session_token=token))
        return token, user

    def sign_out(self, token: Optional[str]) -> None:
        try:
            claims = self._decode(token)
        except AuthError:
            return
        with self._lock:
            entry = self._live.pop(claims["jti"], None)
        if entry is None:
            return
        user = entry[0]
        logger.info(f"[AUTH] sign_out user={user.id}")
        self._notify(AuthState(user=None, is_loading=False, session_token=token, previous_user=user))

    def current_user(self, token: Optional[str]) -> AuthUser:
        claims = self._decode(token)
        now = self._clock()
        with self._lock:
            entry = self._live.get(claims["jti"])
        if entry is None:
            raise AuthError("Not signed in.")
        if float(claims["exp"]) <= now or entry[1] <= now:
            raise AuthError("Your session has expired. Please sign in again.")
        return entry[0]

    def user_has_sessions(self, user_id: str) -> bool:
        with self._lock:
            self._prune_unlocked(self._clock())
            return any(u.id == user_id for u, _ in self._live.values())

    def sweep_expired(self) -> int:
        with self._lock:
            return self._prune_unlocked(self._clock())

    def session_count(self) -> int:
        with self._lock:
            return len(self._live)

    def on_auth_state_changed(self, callback: Callable[[AuthState], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, state: AuthState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            cb(state)
