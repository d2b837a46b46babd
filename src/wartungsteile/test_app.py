import pytest
from fastapi.testclient import TestClient

from wartungsteile import config
from wartungsteile.app import Session, SessionRegistry, create_app
from wartungsteile.cache import QueryCache
from wartungsteile.conftest import BASE_URL, extraction, make_pdf, make_token, record
from wartungsteile.metrics import Metrics

NOW = 1_700_000_000.0


@pytest.fixture
def app(backend):
    return create_app(
        transport=backend.transport,
        base_url=BASE_URL,
        monitor_sessions=False,
        cache_factory=lambda: QueryCache(max_retries=0),
        batch_delay=0,
    )


@pytest.fixture
def web(app):
    with TestClient(app) as tc:
        yield tc


def login(web, backend, role="Technician"):
    backend.on(
        "POST",
        "/auth/login",
        {
            "accessToken": make_token(role=role),
            "refreshToken": "refresh-1",
            "user": {"id": "u1", "username": "tech", "role": role},
        },
    )
    response = web.post("/api/auth/login", json={"username": "tech", "password": "geheim123"})
    assert response.status_code == 200
    return response.json()


def test_index_page(web):
    response = web.get("/")
    assert response.status_code == 200
    assert "<title>Wartungsteile</title>" in response.text
    assert config.BACKEND_URL in response.text


def test_login_sets_session_cookie(web, backend):
    body = login(web, backend)

    assert body["role"] == "Technician"
    assert config.SESSION_COOKIE in web.cookies
    status = web.get("/api/session/status").json()
    assert status["authenticated"] and status["active"] and not status["warning"]


def test_wrong_password_message(web, backend):
    backend.on("POST", "/auth/login", 401)

    response = web.post("/api/auth/login", json={"username": "tech", "password": "falsch"})

    assert response.status_code == 401
    assert response.json()["error"] == "Benutzername oder Passwort ist falsch."


def test_unauthenticated_calls_redirect_to_login(web, backend):
    response = web.get("/api/machines")

    assert response.status_code == 401
    assert response.json()["redirect"] == "/login"
    assert backend.calls == []


def test_missing_role_redirects_home(web, backend):
    login(web, backend, role="Technician")

    response = web.get("/api/users")

    assert response.status_code == 403
    assert response.json() == {
        "error": config.ERROR_MESSAGES["forbidden"],
        "status": 403,
        "redirect": "/",
    }


def test_guard_decisions(web, backend):
    assert web.get("/api/guard", params={"path": "/machines"}).json()["decision"] == "redirect-login"
    assert web.get("/api/guard", params={"path": "/login"}).json()["decision"] == "allow"

    login(web, backend, role="Viewer")

    assert web.get("/api/guard", params={"path": "/machines/42"}).json()["decision"] == "allow"
    assert web.get("/api/guard", params={"path": "/machines/new"}).json() == {
        "decision": "redirect-home",
        "location": "/",
    }


def test_machine_list_and_validation(web, backend):
    login(web, backend)
    backend.on("GET", "/Machines", [{"id": "m-1", "number": "M-100", "type": "LM 1200", "status": 1}])

    machines = web.get("/api/machines").json()
    invalid = web.post("/api/machines", json={"number": "M 1", "type": ""})

    assert machines[0]["status"] == "InMaintenance"
    assert invalid.status_code == 400
    assert invalid.json()["details"] == [
        'Maschinennummer darf nur Buchstaben, Ziffern, "-" und "_" enthalten.',
        "Maschinentyp ist erforderlich.",
    ]


def test_backend_401_without_refresh_ends_session(web, backend):
    login(web, backend)
    backend.on("GET", "/Machines", 401)
    backend.on("POST", "/auth/refresh", 401)

    response = web.get("/api/machines")

    assert response.status_code == 401
    assert response.json()["redirect"] == "/login"
    assert not web.get("/api/session/status").json()["authenticated"]


def test_backend_errors_keep_their_status(web, backend):
    login(web, backend)
    backend.on("GET", "/Machines/id/m-9", 404)
    backend.on("GET", "/MaintenanceParts", 503)

    missing = web.get("/api/machines/m-9")
    down = web.get("/api/parts")

    assert missing.status_code == 404
    assert missing.json()["error"] == config.ERROR_MESSAGES["not_found"]
    assert down.status_code == 503
    assert down.json()["error"] == config.ERROR_MESSAGES["unavailable"]


def test_metrics_count_backend_calls(web, backend):
    login(web, backend)
    backend.on("GET", "/Machines", [])
    web.get("/api/machines")

    metrics = web.get("/api/metrics").json()

    assert metrics["total_requests"] == 2
    assert metrics["success_requests"] == 2
    assert metrics["failed_requests"] == 0


def test_import_wizard_over_http(web, backend):
    login(web, backend)
    backend.on("POST", "/Pdf/extract-machines", extraction(record("M-100"), record("M-101", exists=True)))
    backend.on("POST", "/Machines", "m-1")

    uploaded = web.post("/api/import/upload", files={"pdfFile": ("auftrag.pdf", make_pdf(), "application/pdf")})
    reviewed = web.post("/api/import/process").json()
    done = web.post("/api/import/create").json()

    assert uploaded.json()["file"]["pageCount"] == 1
    assert reviewed["step"] == "review"
    assert reviewed["selected"] == ["M-100"]
    assert done["step"] == "complete"
    assert done["batchResult"]["summary"] == "1 Maschinen erfolgreich erstellt, 0 Fehler"
    assert len(backend.calls_to("POST", "/Machines")) == 1


def test_viewer_cannot_import(web, backend):
    login(web, backend, role="Viewer")
    assert web.get("/api/import").status_code == 403


def test_unknown_user_action_is_rejected(web, backend):
    login(web, backend, role="Admin")
    response = web.post("/api/users/u2/promote")
    assert response.status_code == 400
    assert response.json()["error"] == "Unbekannte Aktion: promote"


def test_unexpected_errors_get_recovery_options(app, web):
    @app.get("/api/explode")
    async def explode():
        raise RuntimeError("boom")

    @app.get("/explode")
    async def explode_page():
        raise RuntimeError("boom")

    api = web.get("/api/explode")
    page = web.get("/explode")

    assert api.status_code == 500
    assert api.json() == {"error": config.ERROR_MESSAGES["unknown"], "recovery": ["reload", "ignore"]}
    assert page.status_code == 500
    assert "Seite neu laden" in page.text


def test_anonymous_calls_do_not_create_sessions(app, web):
    for _ in range(5):
        web.cookies.clear()
        assert not web.get("/api/session/status").json()["authenticated"]
        assert web.get("/api/guard", params={"path": "/machines"}).json()["decision"] == "redirect-login"
        assert web.get("/api/machines").status_code == 401

    assert len(app.state.sessions) == 0


def test_failed_login_leaves_no_session(app, web, backend):
    backend.on("POST", "/auth/login", 401)
    web.post("/api/auth/login", json={"username": "tech", "password": "falsch"})
    assert len(app.state.sessions) == 0


def test_logout_drops_the_session(app, web, backend):
    login(web, backend)
    assert len(app.state.sessions) == 1
    backend.on("POST", "/auth/logout", 204)

    assert web.post("/api/auth/logout").json() == {"redirect": "/login"}

    assert len(app.state.sessions) == 0
    assert web.get("/api/machines").status_code == 401


def _session(backend):
    return Session.create(Metrics(), base_url=BASE_URL, transport=backend.transport)


@pytest.mark.anyio
async def test_idle_sessions_are_closed(backend):
    now = [0.0]
    registry = SessionRegistry(lambda: _session(backend), idle_seconds=60, clock=lambda: now[0])
    old_id, old = registry.create()
    now[0] = 50.0
    new_id, _ = registry.create()
    now[0] = 100.0

    assert await registry.prune() == 1

    assert registry.get(old_id) is None
    assert registry.get(new_id) is not None
    assert old.client.closed
    await registry.close_all()


@pytest.mark.anyio
async def test_forced_logout_stops_backup_polling_and_resets_import(backend):
    backend.on("POST", "/auth/logout", 204)
    session = _session(backend)
    session.store.set(accessToken=make_token(30, now=NOW), refreshToken="refresh-1", user={"role": "Admin"})
    assert session.wizard.select_file("auftrag.pdf", make_pdf(), "application/pdf")
    session.backup_poller.start()

    state = await session.monitor.poll_once(NOW + 31)

    assert state.expired
    assert session.store.access_token is None
    assert not session.backup_poller.running
    assert session.wizard.file is None
    await session.close()


@pytest.mark.anyio
async def test_losing_the_token_stops_backup_polling(backend):
    session = _session(backend)
    session.store.set(accessToken=make_token(), refreshToken="refresh-1", user={"role": "Admin"})
    session.backup_poller.start()

    session.store.clear()

    assert not session.backup_poller.running
    await session.close()
