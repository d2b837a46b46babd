import httpx
import pytest

from wartungsteile.config import ERROR_MESSAGES
from wartungsteile.errors import (
    ApiError,
    AuthenticationError,
    ClientValidationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    ValidationError,
    describe,
    error_from_response,
    error_from_transport,
    user_message,
)


def _response(status, **kwargs):
    request = httpx.Request("GET", "http://backend.test/api/Machines")
    return httpx.Response(status, request=request, **kwargs)


@pytest.mark.parametrize(
    "status, cls",
    [
        (400, ValidationError),
        (401, AuthenticationError),
        (403, PermissionDeniedError),
        (404, NotFoundError),
        (409, ConflictError),
        (422, ValidationError),
        (500, ServerError),
        (503, ServerError),
        (418, ApiError),
    ],
)
def test_status_maps_to_error_class(status, cls):
    error = error_from_response(_response(status))
    assert type(error) is cls
    assert error.status_code == status
    assert "GET /api/Machines" in str(error)


def test_detail_prefers_backend_message():
    error = error_from_response(_response(409, json={"message": "Maschinennummer existiert bereits"}))
    assert error.detail == "Maschinennummer existiert bereits"
    assert user_message(error) == "Maschinennummer existiert bereits"


def test_plain_text_payload_is_detail():
    error = error_from_response(_response(400, text="Number is required"))
    assert error.payload == "Number is required"
    assert error.detail == "Number is required"


def test_timeouts_and_connect_errors_become_network_errors():
    request = httpx.Request("GET", "http://backend.test/api/Machines")
    timed_out = error_from_transport(httpx.ReadTimeout("slow", request=request))
    refused = error_from_transport(httpx.ConnectError("refused", request=request))
    assert isinstance(timed_out, NetworkError) and timed_out.timed_out
    assert not refused.timed_out
    assert timed_out.status_code is None
    assert user_message(timed_out) == ERROR_MESSAGES["timeout"]
    assert user_message(refused) == ERROR_MESSAGES["network"]


def test_user_messages_are_german():
    assert user_message(PermissionDeniedError("x", 403)) == ERROR_MESSAGES["forbidden"]
    assert user_message(ServerError("x", 500)) == ERROR_MESSAGES["server"]
    assert user_message(ServerError("x", 503)) == ERROR_MESSAGES["unavailable"]
    assert user_message(ValidationError("x", 422)) == ERROR_MESSAGES["unprocessable"]
    assert user_message(RuntimeError("boom")) == ERROR_MESSAGES["unknown"]


def test_client_validation_error_lists_all_problems():
    error = ClientValidationError(["Name ist erforderlich.", "Preis muss eine Zahl sein."])
    assert user_message(error) == "Name ist erforderlich. Preis muss eine Zahl sein."
    assert describe(error)["details"] == ["Name ist erforderlich.", "Preis muss eine Zahl sein."]


def test_describe_flattens_field_errors():
    error = error_from_response(
        _response(400, json={"title": "One or more validation errors occurred.", "errors": {"Number": ["required"]}})
    )
    body = describe(error)
    assert body["status"] == 400
    assert body["details"] == ["Number: required"]
    assert body["error"] == "One or more validation errors occurred."
