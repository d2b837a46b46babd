import pytest

from wartungsteile.guard import Decision, Role, check_route, check_session, has_access, required_role_for


@pytest.mark.parametrize(
    "user, required, allowed",
    [
        ("Viewer", "Viewer", True),
        ("Viewer", "Technician", False),
        ("Viewer", "Admin", False),
        ("Technician", "Viewer", True),
        ("Technician", "Technician", True),
        ("Technician", "Admin", False),
        ("Admin", "Viewer", True),
        ("Admin", "Technician", True),
        ("Admin", "Admin", True),
    ],
)
def test_role_hierarchy(user, required, allowed):
    assert has_access(user, required) is allowed


def test_unknown_roles_never_pass():
    assert not has_access("Guest", "Viewer")
    assert not has_access(None, "Viewer")
    assert not has_access("Admin", "Superuser")


def test_unauthenticated_goes_to_login():
    decision = check_route(False, "Admin", Role.VIEWER)
    assert decision is Decision.REDIRECT_LOGIN
    assert decision.location == "/login"


def test_missing_role_goes_home():
    decision = check_route(True, "Viewer", Role.ADMIN)
    assert decision is Decision.REDIRECT_HOME
    assert decision.location == "/"


def test_route_without_role_only_needs_login():
    assert check_route(True, None) is Decision.ALLOW


def test_check_session_reads_role_from_store(logged_in):
    store = logged_in(role="Technician")
    assert check_session(store, True, required_role_for("/machines/import")) is Decision.ALLOW
    assert check_session(store, True, required_role_for("/admin/users")) is Decision.REDIRECT_HOME
    assert required_role_for("/parts/17/edit") is Role.TECHNICIAN


def test_missing_session_is_sent_to_login():
    assert check_session(None, True, Role.VIEWER) is Decision.REDIRECT_LOGIN
    assert check_session(None, True) is Decision.REDIRECT_LOGIN
