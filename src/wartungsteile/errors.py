"""Error taxonomy for calls to the maintenance backend.

Every failure that reaches the UI is an :class:`ApiError` (or a subclass), so
views only need one ``except`` clause and :func:`user_message` to render a
German, human-readable message.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from wartungsteile.config import ERROR_MESSAGES

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for every backend or client-side failure.

    Parameters
    ----------
    message:
        Technical message, used for logs and as fallback detail.
    status_code:
        HTTP status of the response, ``None`` when no response arrived.
    payload:
        Decoded response body (JSON or text), if any.
    """

    default_message_key = "unknown"

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def detail(self) -> Optional[str]:
        """Message supplied by the backend (``message`` or ``error`` field), if any."""
        if isinstance(self.payload, dict):
            for key in ("message", "error", "detail", "title"):
                value = self.payload.get(key)
                if isinstance(value, str) and value:
                    return value
        if isinstance(self.payload, str) and self.payload.strip():
            return self.payload.strip()[:500]
        return None

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class ClientValidationError(ApiError):
    """Form input rejected before any request was sent."""

    default_message_key = "validation"

    def __init__(self, errors: List[str]) -> None:
        super().__init__("; ".join(errors), status_code=None, payload={"errors": errors})
        self.errors = errors


class ValidationError(ApiError):
    default_message_key = "validation"


class AuthenticationError(ApiError):
    default_message_key = "unauthenticated"


class PermissionDeniedError(ApiError):
    default_message_key = "forbidden"


class NotFoundError(ApiError):
    default_message_key = "not_found"


class ConflictError(ApiError):
    default_message_key = "conflict"


class ServerError(ApiError):
    default_message_key = "server"


class NetworkError(ApiError):
    """No response object: connection refused, DNS failure, timeout, protocol error."""

    default_message_key = "network"

    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


_STATUS_CLASSES = {
    400: ValidationError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def error_from_response(response: httpx.Response) -> ApiError:
    """Build the matching :class:`ApiError` subclass for a non-2xx response."""
    status = response.status_code
    payload = _decode_body(response)
    cls = _STATUS_CLASSES.get(status)
    if cls is None:
        cls = ServerError if status >= 500 else ApiError
    method = response.request.method if response.request is not None else "?"
    url = response.request.url.path if response.request is not None else "?"
    return cls(f"{method} {url} -> HTTP {status}", status_code=status, payload=payload)


def error_from_transport(ex: httpx.HTTPError) -> NetworkError:
    """Convert a low-level ``httpx`` exception into a :class:`NetworkError`.

    Parameters
    ----------
    ex:
        The exception raised while talking to the backend.

    Returns
    -------
    NetworkError
        ``timed_out`` is set for every flavour of ``httpx.TimeoutException``.
    """
    if isinstance(ex, httpx.TimeoutException):
        return NetworkError(f"Backend did not answer in time ({type(ex).__name__})", timed_out=True)
    if isinstance(ex, httpx.ConnectError):
        return NetworkError(f"Could not connect to the backend: {ex}")
    if isinstance(ex, httpx.RemoteProtocolError):
        return NetworkError(f"HTTP protocol exchange with the backend failed: {ex}")
    return NetworkError(f"{type(ex).__name__}: {ex}")


def user_message(ex: BaseException) -> str:
    """Localized message for any exception that can reach a view.

    Client-side validation errors and backend 400s with a readable detail keep
    that detail, because it names the offending field.

    >>> user_message(NotFoundError("GET /x -> HTTP 404", 404))
    'Die angeforderte Ressource wurde nicht gefunden.'
    """
    if isinstance(ex, ClientValidationError):
        return " ".join(ex.errors)
    if isinstance(ex, NetworkError):
        return ERROR_MESSAGES["timeout" if ex.timed_out else "network"]
    if isinstance(ex, ValidationError) and ex.detail:
        return ex.detail
    if isinstance(ex, ConflictError) and ex.detail:
        return ex.detail
    if isinstance(ex, ServerError) and ex.status_code == 503:
        return ERROR_MESSAGES["unavailable"]
    if isinstance(ex, ValidationError) and ex.status_code == 422:
        return ERROR_MESSAGES["unprocessable"]
    if isinstance(ex, ApiError):
        return ERROR_MESSAGES[ex.default_message_key]
    return ERROR_MESSAGES["unknown"]


def format_validation_errors(errors: Any) -> List[str]:
    """Flatten backend validation errors to ``"field: message"`` lines.

    >>> format_validation_errors({"Number": ["required", "too long"]})
    ['Number: required', 'Number: too long']
    >>> format_validation_errors(["a", "b"])
    ['a', 'b']
    """
    if isinstance(errors, list):
        return [str(e) for e in errors]
    if isinstance(errors, dict):
        lines: List[str] = []
        for field_name, messages in errors.items():
            if isinstance(messages, list):
                lines.extend(f"{field_name}: {msg}" for msg in messages)
            else:
                lines.append(f"{field_name}: {messages}")
        return lines
    return ["Validierungsfehler aufgetreten"]


def describe(ex: BaseException) -> Dict[str, Any]:
    """JSON-serialisable description of an error for API responses."""
    body: Dict[str, Any] = {"error": user_message(ex)}
    if isinstance(ex, ApiError):
        body["status"] = ex.status_code
        if isinstance(ex.payload, dict) and "errors" in ex.payload:
            body["details"] = format_validation_errors(ex.payload["errors"])
    return body
