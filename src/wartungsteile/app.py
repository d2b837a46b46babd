"""Wartungsteile web front end.

A FastAPI application that serves one HTML page and a set of JSON routes.
The browser never talks to the maintenance backend directly: every route
forwards to the backend through the :class:`~wartungsteile.client.BackendClient`
of the caller's session and translates failures into German messages.

A successful login opens a session (cookie ``wartung_session``) holding the
browser's tokens, read cache, import wizard and background timers. Sessions
live in memory only and end on logout or after a long idle period.

Run with::

    python -m wartungsteile.app

or ``uvicorn wartungsteile.app:app --port 7860``.
"""

from __future__ import annotations

import logging
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from wartungsteile import config
from wartungsteile.auth import AuthService
from wartungsteile.backups import ActiveBackupPoller, BackupService
from wartungsteile.cache import QueryCache
from wartungsteile.client import BackendClient
from wartungsteile.compatibility import CompatibilityService
from wartungsteile.dashboard import DashboardService
from wartungsteile.errors import (
    ApiError,
    AuthenticationError,
    ClientValidationError,
    PermissionDeniedError,
    describe,
)
from wartungsteile.guard import Decision, Role, check_session, required_role_for
from wartungsteile.machines import MachineService
from wartungsteile.metrics import Metrics
from wartungsteile.model_training import ModelTrainingService
from wartungsteile.parts import PartService
from wartungsteile.pdf_import import ImportWizard
from wartungsteile.session import SessionStore
from wartungsteile.session_monitor import SessionMonitor, SessionState
from wartungsteile.users import UserService

logger = logging.getLogger(__name__)


# -----------------------------
# Sessions
# -----------------------------

@dataclass
class Session:
    """Everything one browser session owns."""

    store: SessionStore
    client: BackendClient
    queries: QueryCache
    auth: AuthService
    machines: MachineService
    parts: PartService
    compatibility: CompatibilityService
    users: UserService
    backups: BackupService
    training: ModelTrainingService
    dashboard: DashboardService
    wizard: ImportWizard
    monitor: SessionMonitor
    backup_poller: ActiveBackupPoller

    @classmethod
    def create(
        cls,
        metrics: Metrics,
        base_url: str = config.BACKEND_URL,
        api_key: str = config.API_KEY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache_factory: Callable[[], QueryCache] = QueryCache,
        batch_delay: float = config.BATCH_CREATE_DELAY_SECONDS,
    ) -> "Session":
        store = SessionStore()
        client = BackendClient(store, base_url=base_url, api_key=api_key, metrics=metrics, transport=transport)
        queries = cache_factory()
        auth = AuthService(client)
        machines = MachineService(client, queries)
        parts = PartService(client, queries)
        backups = BackupService(client, queries)
        session = cls(
            store=store,
            client=client,
            queries=queries,
            auth=auth,
            machines=machines,
            parts=parts,
            compatibility=CompatibilityService(client, queries),
            users=UserService(client, queries),
            backups=backups,
            training=ModelTrainingService(client),
            dashboard=DashboardService(client, queries, machines, parts),
            wizard=ImportWizard(client, machines, queries, delay=batch_delay),
            monitor=SessionMonitor(auth),
            backup_poller=ActiveBackupPoller(backups),
        )
        session.monitor.on_logout = session.release

        def on_credentials_gone(s: SessionStore) -> None:
            # logout or failed refresh: nothing cached may leak to the next user
            if not s.access_token:
                queries.clear()
                session.backup_poller.cancel()

        store.subscribe(on_credentials_gone)
        return session

    async def release(self) -> None:
        """Drop what the logged-out user left behind; the monitor is left alone."""
        await self.backup_poller.stop()
        self.wizard.reset()

    async def end(self) -> None:
        """Stop the timers and forget the user."""
        await self.monitor.stop()
        self.store.clear()
        await self.release()

    async def close(self) -> None:
        await self.monitor.stop()
        await self.backup_poller.stop()
        await self.client.aclose()


class SessionRegistry:
    """In-memory map from cookie value to :class:`Session`.

    Sessions are created on login only. They are removed on logout, when the
    backend rejects the session, and after ``idle_seconds`` without a request.
    """

    def __init__(
        self,
        factory: Callable[[], Session],
        idle_seconds: float = config.SESSION_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._last_seen: Dict[str, float] = {}

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is not None:
            self._last_seen[session_id] = self._clock()
        return session

    def create(self) -> "tuple[str, Session]":
        session_id = secrets.token_urlsafe(24)
        session = self._factory()
        self._sessions[session_id] = session
        self._last_seen[session_id] = self._clock()
        return session_id, session

    async def discard(self, session_id: Optional[str]) -> bool:
        """End and close one session; ``False`` when it was not registered."""
        session = self._sessions.pop(session_id or "", None)
        self._last_seen.pop(session_id or "", None)
        if session is None:
            return False
        await session.end()
        await session.close()
        return True

    async def prune(self) -> int:
        """Discard every session idle for longer than ``idle_seconds``."""
        cutoff = self._clock() - self.idle_seconds
        idle = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for session_id in idle:
            await self.discard(session_id)
        if idle:
            logger.info("Dropped %d idle session(s), %d left", len(idle), len(self._sessions))
        return len(idle)

    def __len__(self) -> int:
        return len(self._sessions)

    async def close_all(self) -> None:
        sessions, self._sessions, self._last_seen = list(self._sessions.values()), {}, {}
        for session in sessions:
            await session.close()


# -----------------------------
# Dependencies
# -----------------------------

async def find_session(request: Request) -> Optional[Session]:
    """The caller's session, or ``None`` without a valid cookie. Never creates one."""
    registry: SessionRegistry = request.app.state.sessions
    await registry.prune()
    return registry.get(request.cookies.get(config.SESSION_COOKIE))


def require_role(minimum: Optional[Role] = Role.VIEWER):
    """Route dependency: logged in and at least ``minimum``.

    Unauthenticated callers get 401 (redirect to ``/login``), callers with a
    lower role get 403 (redirect to ``/``).
    """

    async def role_checker(session: Optional[Session] = Depends(find_session)) -> Session:
        decision = _decide(session, minimum)
        if session is None or decision is Decision.REDIRECT_LOGIN:
            raise AuthenticationError("Login required", status_code=401)
        if decision is Decision.REDIRECT_HOME:
            raise PermissionDeniedError(
                f"Role {session.store.role!r} below {minimum.api_name}",
                status_code=403,
                payload={"redirect": Decision.REDIRECT_HOME.location},
            )
        return session

    return role_checker


def _decide(session: Optional[Session], required: Optional[Role]) -> Decision:
    if session is None:
        return check_session(None, False, required)
    return check_session(session.store, session.auth.is_authenticated(), required)


viewer = require_role(Role.VIEWER)
technician = require_role(Role.TECHNICIAN)
admin = require_role(Role.ADMIN)


# -----------------------------
# Request bodies
# -----------------------------

class LoginBody(BaseModel):
    username: str = ""
    password: str = ""


class HoursBody(BaseModel):
    hours: int


class StatusBody(BaseModel):
    status: Any


class PasswordChangeBody(BaseModel):
    currentPassword: str
    newPassword: str


class PasswordResetBody(BaseModel):
    newPassword: str


class BackupBody(BaseModel):
    type: str = "full"
    description: str = ""


class RestoreBody(BaseModel):
    type: Optional[str] = None
    force: bool = False


def _rows(items: List[Any]) -> List[Dict[str, Any]]:
    return [item.to_api() if hasattr(item, "to_api") else vars(item) for item in items]


# -----------------------------
# Routes: auth and session
# -----------------------------

router = APIRouter(prefix="/api")


@router.get("/metrics")
async def api_metrics(request: Request) -> Dict[str, Any]:
    """Return a snapshot of operational metrics."""
    return await request.app.state.metrics.snapshot()


@router.post("/auth/login")
async def api_login(body: LoginBody, request: Request, response: Response) -> Any:
    registry: SessionRegistry = request.app.state.sessions
    session_id = request.cookies.get(config.SESSION_COOKIE)
    session = registry.get(session_id)
    created = session is None
    if session is None:
        session_id, session = registry.create()
    try:
        await session.auth.login(body.username.strip(), body.password)
    except AuthenticationError as ex:
        if created:
            await registry.discard(session_id)
        return JSONResponse(
            status_code=401,
            content={"error": ex.detail or "Benutzername oder Passwort ist falsch.", "status": 401},
        )
    if created:
        response.set_cookie(config.SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    session.monitor.state = SessionState()
    if request.app.state.monitor_sessions:
        session.monitor.start()
    return {"user": session.store.user, "role": session.store.role}


@router.post("/auth/logout")
async def api_logout(
    request: Request, response: Response, session: Optional[Session] = Depends(find_session)
) -> Dict[str, Any]:
    if session is not None:
        await session.auth.logout()
        await request.app.state.sessions.discard(request.cookies.get(config.SESSION_COOKIE))
    response.delete_cookie(config.SESSION_COOKIE)
    return {"redirect": Decision.REDIRECT_LOGIN.location}


@router.get("/auth/me")
async def api_me(session: Session = Depends(viewer)) -> Dict[str, Any]:
    return vars(await session.auth.me())


@router.get("/session/status")
async def api_session_status(session: Optional[Session] = Depends(find_session)) -> Dict[str, Any]:
    if session is None:
        return {"authenticated": False, "user": None, "role": None, **SessionState().to_dict()}
    state = session.monitor.state if session.monitor.state.expired else session.monitor.check()
    return {
        "authenticated": session.auth.is_authenticated(),
        "user": session.store.user,
        "role": session.store.role,
        **state.to_dict(),
    }


@router.post("/session/extend")
async def api_session_extend(session: Optional[Session] = Depends(find_session)) -> Dict[str, Any]:
    if session is None:
        expired = SessionState(expired=True, seconds_remaining=0)
        return {"extended": False, **expired.to_dict(), "redirect": Decision.REDIRECT_LOGIN.location}
    extended = await session.monitor.extend()
    body = {"extended": extended, **session.monitor.state.to_dict()}
    if not extended:
        body["redirect"] = Decision.REDIRECT_LOGIN.location
    return body


@router.get("/guard")
async def api_guard(path: str, session: Optional[Session] = Depends(find_session)) -> Dict[str, Any]:
    """Decision for entering page ``path`` (``allow``, ``redirect-login``, ``redirect-home``)."""
    required = required_role_for(path)
    if required is None and path in ("/login", "/unauthorized"):
        decision = Decision.ALLOW
    else:
        decision = _decide(session, required)
    return {"decision": decision.value, "location": decision.location}


@router.post("/profile/password")
async def api_change_password(body: PasswordChangeBody, session: Session = Depends(viewer)) -> Dict[str, Any]:
    user = session.store.user or {}
    await session.users.change_password(str(user.get("id", "")), body.currentPassword, body.newPassword)
    return {"success": True}


# -----------------------------
# Routes: machines
# -----------------------------

@router.get("/machines")
async def api_machines(refresh: bool = False, session: Session = Depends(viewer)) -> List[Dict[str, Any]]:
    return _rows(await session.machines.list(force=refresh))


@router.get("/machines/by-number/{number}")
async def api_machine_by_number(number: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    return (await session.machines.get_by_number(number)).to_api()


@router.get("/machines/{machine_id}")
async def api_machine(machine_id: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    detail = await session.machines.get(machine_id)
    body = detail.to_api()
    body["magazine"] = detail.magazine_display()
    body["completeness"] = vars(detail.completeness())
    body["maintenanceRecords"] = [vars(r) for r in detail.maintenance_records]
    return body


@router.post("/machines", status_code=201)
async def api_create_machine(data: Dict[str, Any], session: Session = Depends(technician)) -> Dict[str, Any]:
    machine_id = await session.machines.create(data)
    return {"id": machine_id, "message": config.SUCCESS_MESSAGES["machine_created"]}


@router.put("/machines/{machine_id}")
async def api_update_machine(
    machine_id: str, data: Dict[str, Any], session: Session = Depends(technician)
) -> Dict[str, Any]:
    await session.machines.update(machine_id, data)
    return {"message": config.SUCCESS_MESSAGES["machine_updated"]}


@router.delete("/machines/{machine_id}")
async def api_delete_machine(machine_id: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    await session.machines.delete(machine_id)
    return {"message": config.SUCCESS_MESSAGES["machine_deleted"]}


@router.put("/machines/{machine_id}/operating-hours")
async def api_operating_hours(
    machine_id: str, body: HoursBody, session: Session = Depends(technician)
) -> Dict[str, Any]:
    await session.machines.update_operating_hours(machine_id, body.hours)
    return {"success": True}


@router.put("/machines/{machine_id}/status")
async def api_machine_status(
    machine_id: str, body: StatusBody, session: Session = Depends(technician)
) -> Dict[str, Any]:
    status = await session.machines.update_status(machine_id, body.status)
    return {"status": status.value, "label": status.label}


@router.post("/machines/{machine_id}/maintenance", status_code=201)
async def api_perform_maintenance(
    machine_id: str, data: Dict[str, Any], session: Session = Depends(technician)
) -> Dict[str, Any]:
    record_id = await session.machines.perform_maintenance(machine_id, data)
    return {"id": record_id, "message": config.SUCCESS_MESSAGES["maintenance_completed"]}


@router.get("/machines/{machine_id}/magazine/completeness")
async def api_magazine_completeness(machine_id: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    completeness = await session.machines.magazine_completeness(machine_id)
    return dict(vars(completeness), level=completeness.level)


@router.put("/machines/{machine_id}/magazine")
async def api_update_magazine(
    machine_id: str, properties: Dict[str, Any], session: Session = Depends(technician)
) -> Dict[str, Any]:
    return await session.machines.update_magazine(machine_id, properties)


@router.post("/machines/{machine_id}/magazine/from-pdf")
async def api_magazine_from_pdf(
    machine_id: str, extracted: Dict[str, Any], session: Session = Depends(technician)
) -> Dict[str, Any]:
    return await session.machines.update_magazine_from_pdf(machine_id, extracted)


@router.get("/machines/{number}/parts-list")
async def api_parts_list(number: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    parts_list = await session.parts.parts_list_for_machine(number)
    return {
        "machineNumber": parts_list.machine_number,
        "machineType": parts_list.machine_type,
        "requiredParts": [vars(i) for i in parts_list.required_parts],
        "recommendedParts": [vars(i) for i in parts_list.recommended_parts],
        "overdue": [i.part_number for i in parts_list.overdue_parts],
    }


# -----------------------------
# Routes: parts and compatibility
# -----------------------------

@router.get("/parts")
async def api_parts(refresh: bool = False, session: Session = Depends(viewer)) -> List[Dict[str, Any]]:
    return [dict(p.to_api(), stockStatus=p.stock_status) for p in await session.parts.list(force=refresh)]


@router.get("/parts/by-number/{part_number}")
async def api_part_by_number(part_number: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    return (await session.parts.get_by_part_number(part_number)).to_api()


@router.get("/parts/{part_id}")
async def api_part(part_id: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    part = await session.parts.get(part_id)
    return dict(part.to_api(), stockStatus=part.stock_status, categoryLabel=part.category.label)


@router.post("/parts", status_code=201)
async def api_create_part(data: Dict[str, Any], session: Session = Depends(technician)) -> Dict[str, Any]:
    part_id = await session.parts.create(data)
    return {"id": part_id, "message": config.SUCCESS_MESSAGES["part_created"]}


@router.put("/parts/{part_id}")
async def api_update_part(part_id: str, data: Dict[str, Any], session: Session = Depends(technician)) -> Dict[str, Any]:
    await session.parts.update(part_id, data)
    return {"message": config.SUCCESS_MESSAGES["part_updated"]}


@router.delete("/parts/{part_id}")
async def api_delete_part(part_id: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    await session.parts.delete(part_id)
    return {"message": config.SUCCESS_MESSAGES["part_deleted"]}


@router.get("/compatibility/search")
async def api_compatibility_search(
    series: Optional[str] = None,
    yearCode: Optional[str] = None,
    modelCode: Optional[str] = None,
    session: Session = Depends(viewer),
) -> List[Dict[str, Any]]:
    return [vars(p) for p in await session.compatibility.search(series, yearCode, modelCode)]


@router.get("/compatibility/machine/{number}")
async def api_compatibility_for_machine(number: str, session: Session = Depends(viewer)) -> List[Dict[str, Any]]:
    return [vars(p) for p in await session.compatibility.for_machine(number)]


@router.get("/compatibility/{compatibility_id}")
async def api_compatibility(compatibility_id: str, session: Session = Depends(viewer)) -> Dict[str, Any]:
    return vars(await session.compatibility.get(compatibility_id))


@router.post("/compatibility", status_code=201)
async def api_create_compatibility(data: Dict[str, Any], session: Session = Depends(technician)) -> Dict[str, Any]:
    return {"id": await session.compatibility.create(data)}


@router.put("/compatibility/{compatibility_id}")
async def api_update_compatibility(
    compatibility_id: str, data: Dict[str, Any], session: Session = Depends(technician)
) -> Dict[str, Any]:
    await session.compatibility.update(compatibility_id, data)
    return {"success": True}


@router.delete("/compatibility/{compatibility_id}")
async def api_delete_compatibility(compatibility_id: str, session: Session = Depends(technician)) -> Dict[str, Any]:
    await session.compatibility.delete(compatibility_id)
    return {"success": True}


# -----------------------------
# Routes: administration
# -----------------------------

@router.get("/users")
async def api_users(includeDeleted: bool = False, session: Session = Depends(admin)) -> List[Dict[str, Any]]:
    return [vars(u) for u in await session.users.list(include_deleted=includeDeleted)]


@router.get("/users/{user_id}")
async def api_user(user_id: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    return vars(await session.users.get(user_id))


@router.post("/users", status_code=201)
async def api_create_user(data: Dict[str, Any], session: Session = Depends(admin)) -> Dict[str, Any]:
    return vars(await session.users.create(data))


@router.put("/users/{user_id}")
async def api_update_user(user_id: str, data: Dict[str, Any], session: Session = Depends(admin)) -> Dict[str, Any]:
    return vars(await session.users.update(user_id, data))


@router.delete("/users/{user_id}")
async def api_delete_user(user_id: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    await session.users.delete(user_id)
    return {"success": True}


@router.post("/users/{user_id}/reset-password")
async def api_reset_password(
    user_id: str, body: PasswordResetBody, session: Session = Depends(admin)
) -> Dict[str, Any]:
    await session.users.reset_password(user_id, body.newPassword)
    return {"success": True}


@router.post("/users/{user_id}/{action}")
async def api_user_action(user_id: str, action: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    actions = {
        "activate": session.users.activate,
        "deactivate": session.users.deactivate,
        "restore": session.users.restore,
    }
    if action not in actions:
        raise ClientValidationError([f"Unbekannte Aktion: {action}"])
    await actions[action](user_id)
    return {"success": True}


@router.get("/backups")
async def api_backups(session: Session = Depends(admin)) -> List[Dict[str, Any]]:
    return [dict(vars(b), typeLabel=b.type_label) for b in await session.backups.list(force=True)]


@router.get("/backups/status")
async def api_backup_status(session: Session = Depends(admin)) -> Dict[str, Any]:
    status = await session.backups.status()
    return dict(vars(status), freeSpaceText=status.free_space_text)


@router.get("/backups/active")
async def api_backups_active(session: Session = Depends(admin)) -> Dict[str, Any]:
    """Running backups; served from the page poller while it runs."""
    poller = session.backup_poller
    active = poller.active if poller.running else await session.backups.active()
    return {"polling": poller.running, "active": [vars(p) for p in active]}


@router.post("/backups/watch")
async def api_backups_watch(session: Session = Depends(admin)) -> Dict[str, Any]:
    session.backup_poller.start()
    return {"polling": True}


@router.delete("/backups/watch")
async def api_backups_unwatch(session: Session = Depends(admin)) -> Dict[str, Any]:
    await session.backup_poller.stop()
    return {"polling": False}


@router.get("/backups/progress/{backup_id}")
async def api_backup_progress(backup_id: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    return vars(await session.backups.progress(backup_id))


@router.post("/backups", status_code=202)
async def api_create_backup(body: BackupBody, session: Session = Depends(admin)) -> Dict[str, Any]:
    return await session.backups.create(body.type, body.description)


@router.post("/backups/complete", status_code=202)
async def api_create_complete_backup(body: BackupBody, session: Session = Depends(admin)) -> Dict[str, Any]:
    return await session.backups.create_complete(body.description)


@router.post("/backups/{file_name}/restore")
async def api_restore_backup(
    file_name: str, body: RestoreBody, session: Session = Depends(admin)
) -> Dict[str, Any]:
    return await session.backups.restore(file_name, body.type, body.force)


@router.delete("/backups/{file_name}")
async def api_delete_backup(file_name: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    await session.backups.delete(file_name)
    return {"success": True}


@router.get("/models")
async def api_models(session: Session = Depends(admin)) -> Dict[str, Any]:
    return (await session.training.list_models()).to_dict()


@router.post("/models/train")
async def api_train_model(
    modelName: str = Form(""),
    trainingFiles: List[UploadFile] = File(...),
    labelFiles: Optional[List[UploadFile]] = File(None),
    session: Session = Depends(admin),
) -> Any:
    training = [(f.filename or "training.pdf", await f.read(), f.content_type or "application/pdf") for f in trainingFiles]
    labels = [
        (f.filename or "labels.json", await f.read(), f.content_type or "application/json") for f in labelFiles or []
    ]
    outcome = await session.training.train(modelName, training, labels)
    return JSONResponse(status_code=200 if outcome.success else 502, content=outcome.to_dict())


@router.delete("/models/{model_id}")
async def api_delete_model(model_id: str, session: Session = Depends(admin)) -> Dict[str, Any]:
    await session.training.delete(model_id)
    return {"success": True}


# -----------------------------
# Routes: PDF import wizard
# -----------------------------

@router.get("/import")
async def api_import_state(session: Session = Depends(technician)) -> Dict[str, Any]:
    return session.wizard.to_dict()


@router.post("/import/upload")
async def api_import_upload(pdfFile: UploadFile = File(...), session: Session = Depends(technician)) -> Dict[str, Any]:
    content = await pdfFile.read()
    session.wizard.select_file(pdfFile.filename or "upload.pdf", content, pdfFile.content_type or "")
    return session.wizard.to_dict()


@router.post("/import/process")
async def api_import_process(session: Session = Depends(technician)) -> Dict[str, Any]:
    await session.wizard.process()
    return session.wizard.to_dict()


@router.post("/import/toggle/{machine_number}")
async def api_import_toggle(machine_number: str, session: Session = Depends(technician)) -> Dict[str, Any]:
    session.wizard.toggle(machine_number)
    return session.wizard.to_dict()


@router.post("/import/select-all")
async def api_import_select_all(session: Session = Depends(technician)) -> Dict[str, Any]:
    session.wizard.select_all_valid()
    return session.wizard.to_dict()


@router.post("/import/clear")
async def api_import_clear(session: Session = Depends(technician)) -> Dict[str, Any]:
    session.wizard.clear_selection()
    return session.wizard.to_dict()


@router.post("/import/create")
async def api_import_create(session: Session = Depends(technician)) -> Dict[str, Any]:
    await session.wizard.create_selected()
    return session.wizard.to_dict()


@router.post("/import/reset")
async def api_import_reset(session: Session = Depends(technician)) -> Dict[str, Any]:
    session.wizard.reset()
    return session.wizard.to_dict()


# -----------------------------
# Routes: dashboard
# -----------------------------

@router.get("/dashboard")
async def api_dashboard(session: Session = Depends(viewer)) -> Dict[str, Any]:
    return await session.dashboard.metrics()


@router.get("/dashboard/trends")
async def api_dashboard_trends(months: int = 6, session: Session = Depends(viewer)) -> Dict[str, Any]:
    return await session.dashboard.trends(months)


@router.get("/dashboard/maintenance-due")
async def api_dashboard_due(session: Session = Depends(viewer)) -> List[Dict[str, Any]]:
    return await session.dashboard.maintenance_due()


# -----------------------------
# Error boundaries
# -----------------------------

async def api_error_handler(request: Request, ex: ApiError) -> JSONResponse:
    """Render an :class:`ApiError` as JSON with a German message.

    A 401 ends the caller's session and tells the page to go to ``/login``.
    """
    if isinstance(ex, ClientValidationError):
        status = 400
    elif ex.status_code is not None and 400 <= ex.status_code < 600:
        status = ex.status_code
    else:
        status = 502
    body = describe(ex)
    if status == 401:
        registry: SessionRegistry = request.app.state.sessions
        await registry.discard(request.cookies.get(config.SESSION_COOKIE))
        body["redirect"] = Decision.REDIRECT_LOGIN.location
    elif isinstance(ex.payload, dict) and ex.payload.get("redirect"):
        body["redirect"] = ex.payload["redirect"]
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, ex)
    return JSONResponse(status_code=status, content=body)


RECOVERY_PAGE = """<!doctype html>
<html lang="de">
<head><meta charset="utf-8" /><title>Fehler</title></head>
<body style="font-family: system-ui, sans-serif; max-width: 560px; margin: 60px auto;">
  <h1>Etwas ist schiefgelaufen</h1>
  <p>{message}</p>
  <p>
    <button onclick="location.reload()">Seite neu laden</button>
    <button onclick="history.back()">Ignorieren</button>
  </p>
</body>
</html>
"""


async def error_boundary(request: Request, call_next: Callable) -> Response:
    """Outer boundary: nothing escapes as a bare 500."""
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = config.ERROR_MESSAGES["unknown"]
        if request.url.path.startswith("/api/"):
            return JSONResponse(status_code=500, content={"error": message, "recovery": ["reload", "ignore"]})
        return HTMLResponse(status_code=500, content=RECOVERY_PAGE.format(message=message))


# -----------------------------
# Page
# -----------------------------

pages = APIRouter()


@pages.get("/", response_class=HTMLResponse)
async def index() -> str:
    """Render the single-page UI."""
    return INDEX_HTML.replace("__BACKEND_URL__", config.BACKEND_URL)


INDEX_HTML = """<!doctype html>
<html lang="de">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>Wartungsteile</title>
  <style>
    :root {
      --brand: rgb(30,64,120);
      --bg: #ffffff;
      --fg: #111111;
      --muted: #666666;
      --border: #e5e5e5;
      --ok: #0a7a2f;
      --warn: #b36b00;
      --bad: #b00020;
      --card: #fafafa;
    }
    body { margin: 0; font-family: system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif;
           background: var(--bg); color: var(--fg); line-height: 1.35; }
    header { background: var(--brand); color: white; padding: 14px 18px; display: flex;
             justify-content: space-between; align-items: center; }
    header h1 { margin: 0; font-size: 18px; }
    main { max-width: 1100px; margin: 18px auto; padding: 0 16px 40px 16px; }
    .card { border: 1px solid var(--border); background: var(--card); border-radius: 10px;
            padding: 14px; margin-bottom: 14px; }
    .card h2 { margin: 0 0 10px 0; font-size: 15px; }
    .row { display: flex; gap: 10px; align-items: center; flex-wrap: wrap; margin-top: 10px; }
    .btn { background: var(--brand); color: white; border: none; border-radius: 8px;
           padding: 8px 12px; font-weight: 600; cursor: pointer; }
    .btn:disabled { opacity: 0.6; cursor: not-allowed; }
    .btn.secondary { background: #222; }
    input { padding: 8px; border-radius: 8px; border: 1px solid var(--border); background: white; }
    table { width: 100%; border-collapse: collapse; font-size: 13px; }
    th, td { text-align: left; padding: 6px; border-bottom: 1px solid var(--border); }
    .badge { padding: 2px 8px; border-radius: 999px; font-size: 12px; }
    .badge.ready { background: #dff5e5; color: var(--ok); }
    .badge.duplicate { background: #fff1d6; color: var(--warn); }
    .badge.invalid { background: #fde2e5; color: var(--bad); }
    .error { color: var(--bad); white-space: pre-wrap; }
    .hidden { display: none; }
    #sessionWarning { background: #fff1d6; border: 1px solid var(--warn); padding: 10px 14px; }
    .kpi { display: grid; grid-template-columns: repeat(3, minmax(0, 1fr)); gap: 8px; }
    .kpi .box { background: white; border: 1px solid var(--border); border-radius: 10px; padding: 10px; }
    .kpi .label { font-size: 11px; color: var(--muted); }
    .kpi .value { font-size: 16px; font-weight: 750; margin-top: 4px; }
    progress { width: 100%; }
  </style>
</head>
<body>
  <header>
    <h1>Wartungsteile</h1>
    <div><span id="who"></span> <button id="logoutBtn" class="btn secondary hidden">Abmelden</button></div>
  </header>

  <div id="sessionWarning" class="hidden">
    Ihre Sitzung läuft in <b id="countdown">5:00</b> ab.
    <button id="extendBtn" class="btn">Sitzung verlängern</button>
  </div>

  <main>
    <section id="loginCard" class="card">
      <h2>Anmelden</h2>
      <form id="loginForm" class="row">
        <input id="username" placeholder="Benutzername" autocomplete="username" />
        <input id="password" type="password" placeholder="Passwort" autocomplete="current-password" />
        <button class="btn" type="submit">Anmelden</button>
      </form>
      <div id="loginError" class="error"></div>
    </section>

    <section id="appCards" class="hidden">
      <div class="card">
        <h2>Übersicht</h2>
        <div class="kpi">
          <div class="box"><div class="label">Maschinen</div><div class="value" id="d_machines">-</div></div>
          <div class="box"><div class="label">In Wartung</div><div class="value" id="d_maint">-</div></div>
          <div class="box"><div class="label">Teile nachbestellen</div><div class="value" id="d_reorder">-</div></div>
        </div>
      </div>

      <div class="card">
        <h2>Maschinen</h2>
        <table><thead><tr><th>Nummer</th><th>Typ</th><th>Status</th><th>Betriebsstunden</th></tr></thead>
          <tbody id="machineRows"></tbody></table>
      </div>

      <div class="card" id="importCard">
        <h2>PDF-Import (Werkstattaufträge)</h2>
        <div class="row">
          <input id="pdfFile" type="file" accept="application/pdf" />
          <button id="uploadBtn" class="btn">Hochladen</button>
          <button id="processBtn" class="btn" disabled>Verarbeiten</button>
          <button id="resetBtn" class="btn secondary">Neue PDF verarbeiten</button>
        </div>
        <div class="row">Schritt: <b id="step">upload</b></div>
        <div id="importErrors" class="error"></div>
        <div id="review" class="hidden">
          <div class="row">
            <button id="selectAllBtn" class="btn secondary">Alle gültigen auswählen</button>
            <button id="clearBtn" class="btn secondary">Auswahl aufheben</button>
            <button id="createBtn" class="btn">Ausgewählte erstellen</button>
          </div>
          <table><thead><tr><th></th><th>Maschinennummer</th><th>Magazin</th><th>Status</th></tr></thead>
            <tbody id="extractRows"></tbody></table>
        </div>
        <div id="progressBox" class="hidden"><progress id="progress" max="100" value="0"></progress>
          <div id="progressText"></div></div>
        <pre id="summary" class="hidden"></pre>
      </div>

      <div class="card">
        <h2>Betriebskennzahlen</h2>
        <div class="kpi">
          <div class="box"><div class="label">Anfragen</div><div class="value" id="m_total">-</div></div>
          <div class="box"><div class="label">Fehlgeschlagen</div><div class="value" id="m_fail">-</div></div>
          <div class="box"><div class="label">Ø Latenz (ms)</div><div class="value" id="m_avg">-</div></div>
        </div>
        <div class="row" style="font-size:12px;color:var(--muted)">Backend: __BACKEND_URL__</div>
      </div>
    </section>
  </main>

<script>
(function() {
  const $ = (id) => document.getElementById(id);
  let secondsLeft = null;

  async function call(method, url, body, isForm) {
    const opts = { method: method, headers: {} };
    if (body && isForm) { opts.body = body; }
    else if (body) { opts.body = JSON.stringify(body); opts.headers["Content-Type"] = "application/json"; }
    const r = await fetch(url, opts);
    const data = await r.json().catch(() => ({}));
    if (r.status === 401 && url !== "/api/auth/login") { showLogin(data.error); }
    if (!r.ok) { throw new Error(data.error || ("HTTP " + r.status)); }
    return data;
  }

  function showLogin(message) {
    $("loginCard").classList.remove("hidden");
    $("appCards").classList.add("hidden");
    $("logoutBtn").classList.add("hidden");
    $("sessionWarning").classList.add("hidden");
    $("who").textContent = "";
    $("loginError").textContent = message || "";
  }

  async function showApp() {
    $("loginCard").classList.add("hidden");
    $("appCards").classList.remove("hidden");
    $("logoutBtn").classList.remove("hidden");
    await Promise.all([loadMachines(), loadDashboard(), loadImport()]);
  }

  async function checkSession() {
    const s = await call("GET", "/api/session/status");
    if (!s.authenticated || s.expired) { showLogin(s.expired ? "Ihre Sitzung ist abgelaufen." : ""); return false; }
    $("who").textContent = (s.user && s.user.username ? s.user.username : "") + " (" + (s.role || "") + ")";
    secondsLeft = s.secondsRemaining;
    $("sessionWarning").classList.toggle("hidden", !s.warning);
    return true;
  }

  function tick() {
    if (secondsLeft === null) return;
    secondsLeft = Math.max(0, secondsLeft - 1);
    $("countdown").textContent = Math.floor(secondsLeft / 60) + ":" + String(secondsLeft % 60).padStart(2, "0");
    if (secondsLeft === 0) { secondsLeft = null; checkSession(); }
  }

  async function loadMachines() {
    const rows = await call("GET", "/api/machines");
    $("machineRows").innerHTML = rows.map(m =>
      `<tr><td>${m.number}</td><td>${m.type}</td><td>${m.status}</td><td>${m.operatingHours}</td></tr>`).join("");
  }

  async function loadDashboard() {
    const d = await call("GET", "/api/dashboard");
    $("d_machines").textContent = d.machines ? d.machines.total : "-";
    $("d_maint").textContent = d.machines ? d.machines.inMaintenance : "-";
    $("d_reorder").textContent = d.parts ? d.parts.reorderRequired : "-";
  }

  function renderImport(w) {
    $("step").textContent = w.step;
    $("importErrors").textContent = (w.errors || []).join("\\n");
    $("processBtn").disabled = !(w.step === "upload" && w.file);
    $("review").classList.toggle("hidden", w.step !== "review");
    $("progressBox").classList.toggle("hidden", w.step !== "batch-creating");
    $("progress").value = w.progress.percentage;
    $("progressText").textContent = w.progress.status + " (" + w.progress.current + "/" + w.progress.total + ")";
    const selected = new Set(w.selected);
    $("extractRows").innerHTML = w.extraction ? w.extraction.machines.map(m =>
      `<tr><td><input type="checkbox" data-number="${m.machineNumber}" ${selected.has(m.machineNumber) ? "checked" : ""}
         ${m.selectable ? "" : "disabled"} /></td><td>${m.machineNumber}</td><td>${m.magazineType || "-"}</td>
         <td><span class="badge ${m.badge}">${m.badge}</span></td></tr>`).join("") : "";
    $("summary").classList.toggle("hidden", !w.batchResult);
    if (w.batchResult) {
      $("summary").textContent = w.batchResult.summary + "\\n\\n" + w.batchResult.results.map(r =>
        (r.success ? "OK   " : "FAIL ") + r.machineNumber + (r.error ? " - " + r.error : "")).join("\\n");
    }
  }

  async function loadImport() {
    try { renderImport(await call("GET", "/api/import")); }
    catch (e) { $("importCard").classList.add("hidden"); }
  }

  async function importAction(path) {
    try { renderImport(await call("POST", "/api/import/" + path)); }
    catch (e) { $("importErrors").textContent = String(e.message || e); }
  }

  $("loginForm").addEventListener("submit", async (ev) => {
    ev.preventDefault();
    try {
      await call("POST", "/api/auth/login", { username: $("username").value, password: $("password").value });
      $("loginError").textContent = "";
      if (await checkSession()) await showApp();
    } catch (e) { $("loginError").textContent = String(e.message || e); }
  });

  $("logoutBtn").addEventListener("click", async () => { await call("POST", "/api/auth/logout"); showLogin(""); });
  $("extendBtn").addEventListener("click", async () => {
    const r = await call("POST", "/api/session/extend");
    if (!r.extended) { showLogin("Ihre Sitzung ist abgelaufen."); return; }
    await checkSession();
  });

  $("uploadBtn").addEventListener("click", async () => {
    const input = $("pdfFile");
    if (!input.files || input.files.length !== 1) { $("importErrors").textContent = "Bitte wählen Sie eine PDF-Datei aus."; return; }
    const fd = new FormData();
    fd.append("pdfFile", input.files[0], input.files[0].name);
    try { renderImport(await call("POST", "/api/import/upload", fd, true)); }
    catch (e) { $("importErrors").textContent = String(e.message || e); }
  });
  $("processBtn").addEventListener("click", () => importAction("process"));
  $("selectAllBtn").addEventListener("click", () => importAction("select-all"));
  $("clearBtn").addEventListener("click", () => importAction("clear"));
  $("resetBtn").addEventListener("click", () => importAction("reset"));
  $("extractRows").addEventListener("change", (ev) => {
    const n = ev.target.getAttribute("data-number");
    if (n) importAction("toggle/" + encodeURIComponent(n));
  });
  $("createBtn").addEventListener("click", async () => {
    const poll = setInterval(loadImport, 500);
    try { await importAction("create"); } finally { clearInterval(poll); loadMachines(); }
  });

  async function refreshMetrics() {
    try {
      const m = await call("GET", "/api/metrics");
      $("m_total").textContent = m.total_requests;
      $("m_fail").textContent = m.failed_requests;
      $("m_avg").textContent = m.avg_latency_ms === null ? "-" : Math.round(m.avg_latency_ms);
    } catch (e) {
      // metrics are informative only
    }
  }

  checkSession().then(ok => { if (ok) showApp(); }).catch(() => showLogin(""));
  setInterval(tick, 1000);
  setInterval(() => { if (secondsLeft !== null) checkSession(); }, 30000);
  setInterval(refreshMetrics, 2000);
})();
</script>
</body>
</html>
"""


# -----------------------------
# Application factory
# -----------------------------

def create_app(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    base_url: str = config.BACKEND_URL,
    api_key: str = config.API_KEY,
    monitor_sessions: bool = True,
    cache_factory: Callable[[], QueryCache] = QueryCache,
    batch_delay: float = config.BATCH_CREATE_DELAY_SECONDS,
    session_idle_seconds: float = config.SESSION_IDLE_SECONDS,
) -> FastAPI:
    """Build the front-end application.

    Parameters
    ----------
    transport:
        ``httpx`` transport for all backend calls; tests pass a
        ``httpx.MockTransport``.
    monitor_sessions:
        Start the session expiry monitor on login.
    cache_factory, batch_delay:
        Read cache and import throttling of new sessions.
    session_idle_seconds:
        Sessions without a request for this long are closed.
    """
    metrics = Metrics()
    sessions = SessionRegistry(
        lambda: Session.create(
            metrics,
            base_url=base_url,
            api_key=api_key,
            transport=transport,
            cache_factory=cache_factory,
            batch_delay=batch_delay,
        ),
        idle_seconds=session_idle_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await sessions.close_all()

    app = FastAPI(title="Wartungsteile Frontend", lifespan=lifespan)
    app.state.metrics = metrics
    app.state.sessions = sessions
    app.state.monitor_sessions = monitor_sessions
    app.add_exception_handler(ApiError, api_error_handler)
    app.middleware("http")(error_boundary)
    app.include_router(router)
    app.include_router(pages)
    return app


app = create_app()


# -----------------------------
# Local dev entrypoint (optional)
# -----------------------------
if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=config.FRONTEND_HOST, port=config.FRONTEND_PORT)
