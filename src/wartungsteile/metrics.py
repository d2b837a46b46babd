"""Operational metrics for the calls this front end sends to the backend.

Calls are counted per backend resource (the first path segment, i.e. the
backend controller such as ``Machines`` or ``backup``) and per HTTP status.
Transport failures without a response are counted under ``"network"``.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from wartungsteile import config

NETWORK = "network"


def resource_of(path: str) -> str:
    """Backend resource a request path belongs to.

    >>> resource_of("/Machines/id/42")
    'Machines'
    >>> resource_of("backup/progress/abc")
    'backup'
    >>> resource_of("/")
    '/'
    """
    return path.strip("/").split("/", 1)[0] or "/"


@dataclass
class ResourceStats:
    requests: int = 0
    failures: int = 0
    latency_ms_sum: float = 0.0

    @property
    def avg_latency_ms(self) -> Optional[float]:
        if not self.requests:
            return None
        return self.latency_ms_sum / self.requests

    def to_dict(self) -> Dict[str, Any]:
        return {"requests": self.requests, "failures": self.failures, "avg_latency_ms": self.avg_latency_ms}


@dataclass
class Metrics:
    """In-memory counters shared by all browser sessions of one process.

    Notes
    -----
    The metrics reset when the process restarts. Token refreshes are counted
    separately because a 401 followed by a successful refresh shows up as one
    failed and one successful call of the same resource.
    """

    total_requests: int = 0
    failed_requests: int = 0
    last_latency_ms: Optional[float] = None
    last_error: Optional[str] = None
    last_failed_call: Optional[str] = None
    refreshes: int = 0
    failed_refreshes: int = 0
    by_resource: Dict[str, ResourceStats] = field(default_factory=dict)
    by_status: Counter = field(default_factory=Counter)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def record(
        self,
        method: str,
        path: str,
        status_code: Optional[int],
        latency_ms: float,
        error: Optional[str] = None,
    ) -> None:
        """Count one backend call.

        Parameters
        ----------
        status_code:
            ``None`` when no response was received.
        error:
            Set for every failed call, including non-2xx responses.
        """
        async with self.lock:
            stats = self.by_resource.setdefault(resource_of(path), ResourceStats())
            stats.requests += 1
            stats.latency_ms_sum += latency_ms
            self.total_requests += 1
            self.last_latency_ms = latency_ms
            self.by_status[NETWORK if status_code is None else str(status_code)] += 1
            if error is None:
                self.last_error = None
                return
            stats.failures += 1
            self.failed_requests += 1
            self.last_error = error
            self.last_failed_call = f"{method} {path}"

    async def record_refresh(self, succeeded: bool) -> None:
        async with self.lock:
            self.refreshes += 1
            if not succeeded:
                self.failed_refreshes += 1

    async def snapshot(self) -> Dict[str, Any]:
        async with self.lock:
            latency_sum = sum(s.latency_ms_sum for s in self.by_resource.values())
            avg = latency_sum / self.total_requests if self.total_requests else None
            return {
                "backend_url": config.BACKEND_URL,
                "timeout_seconds": config.TIMEOUT_SECONDS,
                "total_requests": self.total_requests,
                "success_requests": self.total_requests - self.failed_requests,
                "failed_requests": self.failed_requests,
                "last_latency_ms": self.last_latency_ms,
                "avg_latency_ms": avg,
                "last_error": self.last_error,
                "last_failed_call": self.last_failed_call,
                "token_refreshes": {"total": self.refreshes, "failed": self.failed_refreshes},
                "by_status": dict(self.by_status),
                "by_resource": {name: stats.to_dict() for name, stats in sorted(self.by_resource.items())},
            }
