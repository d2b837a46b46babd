"""Session store: the single owner of the access token, refresh token and user."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "accessToken"
REFRESH_TOKEN = "refreshToken"
USER = "user"
KEYS = (ACCESS_TOKEN, REFRESH_TOKEN, USER)

Listener = Callable[["SessionStore"], None]


class SessionStore:
    """Holds the credentials of one browser session.

    Components never read tokens from anywhere else. Consumers that need to
    react to login, refresh or logout register with :meth:`subscribe`.
    """

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}
        self._listeners: List[Listener] = []

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, **values: Any) -> None:
        """Update one or more of ``accessToken``, ``refreshToken``, ``user``."""
        unknown = set(values) - set(KEYS)
        if unknown:
            raise KeyError(f"Unknown session keys: {sorted(unknown)}")
        self._values.update(values)
        self._notify()

    def clear(self) -> None:
        had_values = bool(self._values)
        self._values.clear()
        if had_values:
            self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    @property
    def access_token(self) -> Optional[str]:
        return self._values.get(ACCESS_TOKEN)

    @property
    def refresh_token(self) -> Optional[str]:
        return self._values.get(REFRESH_TOKEN)

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self._values.get(USER)

    @property
    def role(self) -> Optional[str]:
        user = self.user
        if not user:
            return None
        return user.get("role")

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)
