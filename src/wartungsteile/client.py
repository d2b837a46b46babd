"""HTTP transport to the maintenance backend.

All resource services go through :class:`BackendClient`. It adds the API key
and bearer token, measures latency, maps failures onto :mod:`wartungsteile.errors`
and performs the one-shot token refresh when the backend answers 401.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from wartungsteile import config
from wartungsteile.errors import (
    ApiError,
    AuthenticationError,
    error_from_response,
    error_from_transport,
)
from wartungsteile.metrics import Metrics
from wartungsteile.session import SessionStore

logger = logging.getLogger(__name__)

RefreshHandler = Callable[[], Awaitable[Any]]


def default_timeout(seconds: float = config.TIMEOUT_SECONDS) -> httpx.Timeout:
    return httpx.Timeout(
        seconds,
        connect=config.CONNECT_TIMEOUT_SECONDS,
        read=seconds,
        write=seconds,
        pool=seconds,
    )


def response_data(response: httpx.Response) -> Any:
    """Decoded JSON body, or ``None`` for empty bodies (204, bare 200)."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class BackendClient:
    """Async client bound to one :class:`SessionStore`.

    Parameters
    ----------
    store:
        Source of the bearer token; cleared when a refresh fails.
    base_url:
        Backend API root, e.g. ``http://localhost:5000/api``.
    api_key:
        Value of the ``X-API-Key`` header sent with every request.
    metrics:
        Shared counters; a private instance is created when omitted.
    transport:
        Optional ``httpx`` transport, used by tests to fake the backend.
    """

    def __init__(
        self,
        store: SessionStore,
        base_url: str = config.BACKEND_URL,
        api_key: str = config.API_KEY,
        metrics: Optional[Metrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[httpx.Timeout] = None,
    ) -> None:
        self.store = store
        self.metrics = metrics if metrics is not None else Metrics()
        self.refresh_handler: Optional[RefreshHandler] = None
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={config.API_KEY_HEADER: api_key, "Accept": "application/json"},
            timeout=timeout or default_timeout(),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def closed(self) -> bool:
        return self._http.is_closed

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        token = self.store.access_token
        if authenticated and token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Any = None,
        authenticated: bool = True,
        timeout: Optional[float] = None,
        refresh_on_401: bool = True,
    ) -> httpx.Response:
        """Send one request and return the successful response.

        Raises
        ------
        NetworkError
            When no response was received.
        ApiError
            Subclass matching the HTTP status for every non-2xx response.
        """
        kwargs: Dict[str, Any] = {"headers": self._headers(authenticated)}
        if json is not None:
            kwargs["json"] = json
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if data is not None:
            kwargs["data"] = data
        if files is not None:
            kwargs["files"] = files
        if timeout is not None:
            kwargs["timeout"] = default_timeout(timeout)

        t0 = time.perf_counter()
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as ex:
            latency_ms = (time.perf_counter() - t0) * 1000.0
            error = error_from_transport(ex)
            await self.metrics.record(method, path, None, latency_ms, str(error))
            logger.warning("%s %s failed after %.0f ms: %s", method, path, latency_ms, error)
            raise error from ex
        latency_ms = (time.perf_counter() - t0) * 1000.0
        logger.debug("%s %s -> %d (%.0f ms)", method, path, response.status_code, latency_ms)

        if response.is_success:
            await self.metrics.record(method, path, response.status_code, latency_ms)
            return response

        error = error_from_response(response)
        await self.metrics.record(method, path, response.status_code, latency_ms, str(error))

        if (
            response.status_code == 401
            and authenticated
            and refresh_on_401
            and self.refresh_handler is not None
            and self.store.refresh_token
        ):
            try:
                await self.refresh_handler()
            except ApiError as refresh_error:
                await self.metrics.record_refresh(False)
                logger.warning("Token refresh after 401 failed: %s", refresh_error)
                self.store.clear()
                raise AuthenticationError(
                    "Session expired; refresh failed", status_code=401, payload=error.payload
                ) from refresh_error
            await self.metrics.record_refresh(True)
            return await self.request(
                method,
                path,
                json=json,
                params=params,
                data=data,
                files=files,
                authenticated=authenticated,
                timeout=timeout,
                refresh_on_401=False,
            )

        raise error

    async def get(self, path: str, **kwargs: Any) -> Any:
        return response_data(await self.request("GET", path, **kwargs))

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return response_data(await self.request("POST", path, json=json, **kwargs))

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return response_data(await self.request("PUT", path, json=json, **kwargs))

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return response_data(await self.request("DELETE", path, **kwargs))
