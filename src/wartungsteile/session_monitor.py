"""Session expiry monitor.

A background task wakes up every 30 seconds, reads the ``exp`` claim of the
stored access token (no server round-trip) and

* raises the warning once at most five minutes remain,
* logs the user out on the first check that sees the token expired.

The task belongs to one session and is cancelled when that session ends.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from wartungsteile import config
from wartungsteile.auth import AuthService, token_expiry
from wartungsteile.errors import ApiError

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    active: bool = False
    warning: bool = False
    expired: bool = False
    seconds_remaining: Optional[int] = None

    @property
    def countdown(self) -> str:
        """``m:ss`` as shown in the warning dialog."""
        seconds = max(0, self.seconds_remaining or 0)
        return f"{seconds // 60}:{seconds % 60:02d}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "warning": self.warning,
            "expired": self.expired,
            "secondsRemaining": self.seconds_remaining,
            "countdown": self.countdown,
        }


def evaluate(expiry: Optional[float], now: float, warning_seconds: float = config.SESSION_WARNING_SECONDS) -> SessionState:
    """Session state for a token expiring at ``expiry`` seen at time ``now``.

    >>> evaluate(1000.0, 699.0).warning
    False
    >>> evaluate(1000.0, 700.0).warning
    True
    >>> evaluate(1000.0, 1000.0).expired
    True
    """
    if expiry is None:
        return SessionState()
    remaining = expiry - now
    if remaining <= 0:
        return SessionState(active=False, warning=False, expired=True, seconds_remaining=0)
    return SessionState(
        active=True,
        warning=remaining <= warning_seconds,
        expired=False,
        seconds_remaining=int(remaining),
    )


class SessionMonitor:
    """Periodic expiry check for one session.

    Parameters
    ----------
    auth:
        Used to read the token, to refresh it and to force the logout.
    interval:
        Seconds between checks.
    on_logout:
        Awaited after every forced logout, to release what the session holds.
    clock, sleep:
        Injectable for tests.
    """

    def __init__(
        self,
        auth: AuthService,
        interval: float = config.SESSION_CHECK_INTERVAL_SECONDS,
        warning_seconds: float = config.SESSION_WARNING_SECONDS,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_logout: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.auth = auth
        self.on_logout = on_logout
        self.interval = interval
        self.warning_seconds = warning_seconds
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.state = SessionState()

    def check(self, now: Optional[float] = None) -> SessionState:
        """Evaluate the stored token without side effects."""
        now = self._clock() if now is None else now
        return evaluate(token_expiry(self.auth.store.access_token), now, self.warning_seconds)

    async def poll_once(self, now: Optional[float] = None) -> SessionState:
        """One timer tick: update the state and force logout on expiry."""
        state = self.check(now)
        if state.expired and not self.state.expired:
            logger.info("Access token expired, logging out")
            await self._force_logout()
        if state.expired or self.state.expired:
            state = SessionState(expired=True, seconds_remaining=0)
        self.state = state
        return state

    async def extend(self) -> bool:
        """Refresh the token; a failed refresh ends the session."""
        try:
            await self.auth.refresh()
        except ApiError as ex:
            logger.warning("Session extension failed: %s", ex)
            await self._force_logout()
            self.state = SessionState(expired=True, seconds_remaining=0)
            return False
        self.state = self.check()
        return True

    async def _force_logout(self) -> None:
        await self.auth.logout()
        if self.on_logout is not None:
            await self.on_logout()

    async def _run(self) -> None:
        while True:
            state = await self.poll_once()
            if state.expired:
                return
            await self._sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self.state = SessionState()
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
