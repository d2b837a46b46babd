import pytest

from wartungsteile.backups import ActiveBackupPoller, BackupService, watch_progress
from wartungsteile.cache import BACKUPS
from wartungsteile.conftest import json_body
from wartungsteile.errors import ClientValidationError


@pytest.fixture
def backups(client, queries):
    return BackupService(client, queries)


def _progress(percentage, completed=False):
    return {"id": "b-1", "type": "full", "percentage": percentage, "status": "running", "isCompleted": completed}


@pytest.mark.anyio
async def test_file_names_are_url_encoded(backend, backups):
    backend.on("POST", "/backup/restore/backup 2025-06-13.zip", {"success": True})
    backend.on("DELETE", "/backup/backup 2025-06-13.zip", 204)

    await backups.restore("backup 2025-06-13.zip", backup_type="database", force=True)
    await backups.delete("backup 2025-06-13.zip")

    assert backend.calls[0].url.raw_path == b"/api/backup/restore/backup%202025-06-13.zip"
    assert json_body(backend.calls[0]) == {"force": True, "type": "database"}
    assert backend.calls[1].url.raw_path == b"/api/backup/backup%202025-06-13.zip"


@pytest.mark.anyio
async def test_create_checks_type_and_invalidates_list(backend, backups, queries):
    with pytest.raises(ClientValidationError):
        await backups.create("everything")

    backend.on("POST", "/backup/create", {"backupId": "b-1"})
    assert await backups.create("database", "vor Update") == {"backupId": "b-1"}
    assert queries.invalidations == [BACKUPS]


@pytest.mark.anyio
async def test_watch_progress_stops_when_completed(backend, backups, sleeps):
    backend.on("GET", "/backup/progress/b-1", _progress(10), _progress(60), _progress(100, completed=True))

    seen = [p.percentage async for p in watch_progress(backups, "b-1", sleep=sleeps)]

    assert seen == [10, 60, 100]
    assert sleeps.delays == [0.5, 0.5]


@pytest.mark.anyio
async def test_poller_keeps_last_list_on_error(backend, backups, sleeps):
    backend.on("GET", "/backup/active", [_progress(30)], 500)
    poller = ActiveBackupPoller(backups, sleep=sleeps)

    assert [p.percentage for p in await poller.poll_once()] == [30]
    assert [p.percentage for p in await poller.poll_once()] == [30]
    assert poller.polls == 2


@pytest.mark.anyio
async def test_poller_stops_on_request(backend, backups):
    backend.on("GET", "/backup/active", [])
    poller = ActiveBackupPoller(backups, interval=0.01)

    poller.start()
    assert poller.running
    await poller.stop()

    assert not poller.running


@pytest.mark.anyio
async def test_status_formats_free_space(backend, backups):
    backend.on("GET", "/backup/status", {"backupRoot": "/srv/backup", "freeSpace": 5 * 1024 ** 3, "backupCount": 3})
    status = await backups.status()
    assert status.free_space_text == "5.00 GB"
