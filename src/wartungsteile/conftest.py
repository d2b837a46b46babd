"""Shared fixtures: a scripted fake backend, JWT and PDF helpers."""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pymupdf
import pytest
from jose import jwt

from wartungsteile.cache import QueryCache
from wartungsteile.client import BackendClient
from wartungsteile.session import SessionStore

BASE_URL = "http://backend.test/api"


def make_token(expires_in: float = 3600, role: str = "Technician", now: Optional[float] = None, **claims: Any) -> str:
    now = time.time() if now is None else now
    payload = {"sub": "u1", "role": role, "exp": int(now + expires_in), **claims}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None


def make_pdf(text: str = "Auftrag M-100 LM 1200") -> bytes:
    doc = pymupdf.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def record(number: str, valid: bool = True, exists: bool = False, **extra: Any) -> Dict[str, Any]:
    """One machine as returned by ``/Pdf/extract-machines``."""
    return dict({"machineNumber": number, "isValid": valid, "alreadyExists": exists}, **extra)


def extraction(*records: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "success": True,
        "extractedMachines": list(records),
        "totalMachinesFound": len(records),
        "validMachines": sum(1 for r in records if r["isValid"]),
        "duplicateMachines": sum(1 for r in records if r["alreadyExists"]),
        "ocrEngine": "Azure Document Intelligence",
    }


class FakeBackend:
    """Answers requests from scripted responses and records every call.

    ``on(method, path, *answers)`` queues answers for one route; the last
    answer repeats. An answer is an ``httpx.Response``, a status code, a
    JSON-able value (200) or a callable taking the request.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[httpx.Request] = []

    def on(self, method: str, path: str, *answers: Any) -> "FakeBackend":
        self.routes[(method.upper(), path)] = list(answers)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        answers = self.routes.get((request.method, path))
        if not answers:
            return httpx.Response(404, json={"message": f"no route {request.method} {path}"})
        answer = answers.pop(0) if len(answers) > 1 else answers[0]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            answer = answer(request)
        if isinstance(answer, httpx.Response):
            return answer
        if isinstance(answer, int):
            return httpx.Response(answer)
        return httpx.Response(200, json=answer)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, method: str, path: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.method == method and c.url.path == "/api" + path]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def queries(sleeps: SleepRecorder) -> QueryCache:
    return QueryCache(sleep=sleeps)


@pytest.fixture
def client(backend: FakeBackend, store: SessionStore) -> BackendClient:
    return BackendClient(store, base_url=BASE_URL, api_key="test-key", transport=backend.transport)


@pytest.fixture
def logged_in(store: SessionStore) -> Callable[..., SessionStore]:
    def login(role: str = "Technician", expires_in: float = 3600) -> SessionStore:
        store.set(
            accessToken=make_token(expires_in, role=role),
            refreshToken="refresh-1",
            user={"id": "u1", "username": "tech", "role": role},
        )
        return store

    return login
