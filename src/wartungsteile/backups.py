"""Backup management (admin only).

Besides the plain endpoints this module has the two pollers of the backup
page: :class:`ActiveBackupPoller` refreshes the list of running backups every
two seconds while the page is open, and :func:`watch_progress` follows one
backup until the backend reports it completed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

from wartungsteile import cache, config
from wartungsteile.client import BackendClient
from wartungsteile.errors import ApiError, ClientValidationError
from wartungsteile.models import BACKUP_TYPES, BackupInfo, BackupProgress, BackupStatus

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _check_type(backup_type: str) -> None:
    if backup_type not in BACKUP_TYPES:
        raise ClientValidationError([f"Unbekannter Backup-Typ: {backup_type}"])


class BackupService:
    def __init__(self, client: BackendClient, queries: cache.QueryCache) -> None:
        self.client = client
        self.queries = queries

    async def list(self, force: bool = False) -> List[BackupInfo]:
        async def load() -> List[BackupInfo]:
            return [BackupInfo.from_api(b) for b in await self.client.get("/backup/list") or []]

        return await self.queries.fetch(cache.BACKUPS, load, force=force)

    async def status(self) -> BackupStatus:
        return BackupStatus.from_api(await self.client.get("/backup/status") or {})

    async def active(self) -> List[BackupProgress]:
        return [BackupProgress.from_api(p) for p in await self.client.get("/backup/active") or []]

    async def progress(self, backup_id: str) -> BackupProgress:
        return BackupProgress.from_api(await self.client.get(f"/backup/progress/{quote(backup_id, safe='')}"))

    async def create(self, backup_type: str = "full", description: str = "") -> Dict[str, Any]:
        """Start a backup; the answer carries the ``backupId`` to follow."""
        _check_type(backup_type)
        data = await self.client.post("/backup/create", json={"type": backup_type, "description": description})
        self.queries.invalidate(cache.BACKUPS)
        return data or {}

    async def create_complete(self, description: str = "") -> Dict[str, Any]:
        data = await self.client.post(
            "/backup/create-complete",
            json={"type": "full", "description": description},
            timeout=config.UPLOAD_TIMEOUT_SECONDS,
        )
        self.queries.invalidate(cache.BACKUPS)
        return data or {}

    async def restore(self, file_name: str, backup_type: Optional[str] = None, force: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"force": force}
        if backup_type is not None:
            _check_type(backup_type)
            body["type"] = backup_type
        logger.warning("Restoring backup %s (type=%s, force=%s)", file_name, backup_type, force)
        data = await self.client.post(
            f"/backup/restore/{quote(file_name, safe='')}",
            json=body,
            timeout=config.UPLOAD_TIMEOUT_SECONDS,
        )
        return data or {}

    async def delete(self, file_name: str) -> None:
        await self.client.delete(f"/backup/{quote(file_name, safe='')}")
        self.queries.invalidate(cache.BACKUPS)


async def watch_progress(
    service: BackupService,
    backup_id: str,
    interval: float = config.BACKUP_PROGRESS_POLL_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[BackupProgress]:
    """Yield progress snapshots of one backup until it is completed.

    The last snapshot yielded is the completed one. Polling errors propagate
    to the consumer, which decides whether to keep the dialog open.
    """
    while True:
        progress = await service.progress(backup_id)
        yield progress
        if progress.is_completed:
            return
        await sleep(interval)


class ActiveBackupPoller:
    """Keeps :attr:`active` current while the backup page is open.

    A failed poll is logged and the previous list is kept; the poller only
    ends through :meth:`stop`.
    """

    def __init__(
        self,
        service: BackupService,
        interval: float = config.ACTIVE_BACKUP_POLL_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.service = service
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.active: List[BackupProgress] = []
        self.polls = 0

    async def poll_once(self) -> List[BackupProgress]:
        try:
            self.active = await self.service.active()
        except ApiError as ex:
            logger.warning("Polling active backups failed: %s", ex)
        self.polls += 1
        return self.active

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await self._sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Request the task to end without waiting for it.

        Usable from synchronous code such as a session store listener.
        """
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
