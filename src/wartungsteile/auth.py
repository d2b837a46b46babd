"""Login, logout, token refresh and local token inspection."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from wartungsteile.client import BackendClient
from wartungsteile.errors import ApiError, AuthenticationError, ClientValidationError
from wartungsteile.models import User
from wartungsteile.session import SessionStore

logger = logging.getLogger(__name__)


def token_claims(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the JWT payload without verifying the signature.

    The backend issued the token and is the only party that validates it; the
    front end only reads the expiry and display claims.
    """
    if not token:
        return None
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def token_expiry(token: Optional[str]) -> Optional[float]:
    """``exp`` claim as a Unix timestamp, ``None`` when missing or undecodable."""
    claims = token_claims(token)
    if not claims or "exp" not in claims:
        return None
    try:
        return float(claims["exp"])
    except (TypeError, ValueError):
        return None


class AuthService:
    """Authentication endpoints of the backend, bound to one session store.

    Registers itself as the client's refresh handler so that a 401 on any
    call triggers exactly one refresh attempt.
    """

    def __init__(self, client: BackendClient, clock=time.time) -> None:
        self.client = client
        self.store: SessionStore = client.store
        self._clock = clock
        client.refresh_handler = self.refresh

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        if not username or not password:
            raise ClientValidationError(["Benutzername und Passwort sind erforderlich."])
        result = await self.client.post(
            "/auth/login",
            json={"username": username, "password": password},
            authenticated=False,
        )
        self._store_result(result)
        logger.info("User %s logged in", username)
        return result

    async def refresh(self) -> Dict[str, Any]:
        """Exchange the refresh token for a new access token.

        Any failure clears the session before the error propagates.
        """
        refresh_token = self.store.refresh_token
        if not refresh_token:
            self.store.clear()
            raise AuthenticationError("No refresh token available", status_code=401)
        try:
            result = await self.client.post(
                "/auth/refresh",
                json={"refreshToken": refresh_token},
                authenticated=False,
            )
        except ApiError:
            self.store.clear()
            raise
        self._store_result(result)
        return result

    async def logout(self) -> None:
        """Tell the backend, then always drop the local session."""
        try:
            if self.store.access_token:
                await self.client.post("/auth/logout", refresh_on_401=False)
        except ApiError as ex:
            logger.warning("Backend logout failed, clearing local session anyway: %s", ex)
        finally:
            self.store.clear()

    async def me(self) -> User:
        data = await self.client.get("/auth/me")
        return User.from_api(data)

    def is_authenticated(self) -> bool:
        expiry = token_expiry(self.store.access_token)
        if expiry is None:
            return False
        return self._clock() < expiry

    def current_user(self) -> Optional[User]:
        data = self.store.user
        return User.from_api(data) if data else None

    def _store_result(self, result: Any) -> None:
        if not isinstance(result, dict) or not result.get("accessToken"):
            raise AuthenticationError("Unexpected login response", payload=result)
        values: Dict[str, Any] = {"accessToken": result["accessToken"]}
        if result.get("refreshToken"):
            values["refreshToken"] = result["refreshToken"]
        if result.get("user") is not None:
            values["user"] = result["user"]
        self.store.set(**values)
