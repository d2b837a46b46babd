import pytest

from wartungsteile.cache import USERS
from wartungsteile.compatibility import COMPATIBILITY, CompatibilityService
from wartungsteile.conftest import json_body
from wartungsteile.errors import ClientValidationError
from wartungsteile.users import UserService, validate_user


@pytest.fixture
def users(client, queries):
    return UserService(client, queries)


def test_validate_user():
    assert validate_user({"username": "anna", "email": "anna@example.org", "role": "Admin"}, False) == []
    assert validate_user({"username": "", "email": "nope", "role": "Boss", "password": "kurz"}, True) == [
        "Benutzername ist erforderlich.",
        "Bitte geben Sie eine gültige E-Mail-Adresse ein.",
        "Unbekannte Rolle.",
        "Das Passwort muss mindestens 8 Zeichen lang sein.",
    ]


@pytest.mark.anyio
async def test_list_with_deleted_users(backend, users):
    backend.on("GET", "/users", [{"id": "u2", "username": "old", "isDeleted": True}])

    listed = await users.list(include_deleted=True)

    assert listed[0].is_deleted
    assert backend.calls[0].url.params["includeDeleted"] == "true"


@pytest.mark.anyio
async def test_actions_invalidate_user_list(backend, users, queries):
    backend.on("POST", "/users/u2/deactivate", 204)
    backend.on("POST", "/users/u2/restore", 204)

    await users.deactivate("u2")
    await users.restore("u2")

    assert queries.invalidations == [USERS, USERS]


@pytest.mark.anyio
async def test_change_password(backend, users):
    with pytest.raises(ClientValidationError):
        await users.change_password("u1", "alt", "kurz")

    backend.on("POST", "/users/u1/change-password", 204)
    await users.change_password("u1", "altes-passwort", "neues-passwort")

    assert json_body(backend.calls[0]) == {"currentPassword": "altes-passwort", "newPassword": "neues-passwort"}


@pytest.mark.anyio
async def test_compatibility_search_skips_empty_filters(backend, client, queries):
    backend.on("GET", "/MachinePartCompatibility/search", [{"partId": "p-1", "name": "Lager", "category": 1}])
    backend.on("POST", "/MachinePartCompatibility", "c-1")
    service = CompatibilityService(client, queries)

    found = await service.search(series="LM", year_code="", model_code="12")
    await service.create({"series": "LM", "partId": "p-1"})

    assert found[0].category.value == "SparePart"
    assert dict(backend.calls[0].url.params) == {"series": "LM", "modelCode": "12"}
    assert queries.invalidations == [COMPATIBILITY]
