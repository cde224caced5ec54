"""
Tests for the admin impersonation overlay.

Tests:
- Effective identity resolution
- Session storage and the advisory banner
- Discarding malformed or foreign sessions
- Idempotent exit
"""

import json

import pytest

from rbac.context import AuthContext
from rbac.impersonation import ImpersonationOverlay, ImpersonationSession

ADMIN = AuthContext.authenticated("admin-1", "admin@clarity.example", "Ada Admin")


def make_session(**overrides) -> ImpersonationSession:
    data = {
        "original_identity": "admin-1",
        "original_email": "admin@clarity.example",
        "effective_identity": "user-42",
        "effective_display_name": "Bob Owner",
        "effective_email": "bob@acme.example",
    }
    data.update(overrides)
    return ImpersonationSession(**data)


class TestImpersonationSession:
    """Test the session model."""

    def test_requires_identities(self):
        with pytest.raises(ValueError):
            ImpersonationSession(original_identity="", effective_identity="user-42")

    def test_started_at_defaults_to_now(self):
        session = make_session()
        assert session.started_at.tzinfo is not None

    def test_is_frozen(self):
        session = make_session()
        with pytest.raises(ValueError):
            session.effective_identity = "someone-else"


class TestResolveEffectiveIdentity:

    def test_not_impersonating(self):
        overlay = ImpersonationOverlay({})
        effective = overlay.resolve_effective_identity(ADMIN)

        assert effective.effective_id == "admin-1"
        assert effective.effective_email == "admin@clarity.example"
        assert effective.is_impersonating is False
        assert effective.display is None

    def test_impersonating(self):
        session = {}
        overlay = ImpersonationOverlay(session)
        overlay.start(make_session())

        effective = overlay.resolve_effective_identity(ADMIN)

        assert effective.effective_id == "user-42"
        assert effective.effective_email == "bob@acme.example"
        assert effective.is_impersonating is True
        assert effective.display.effective_display_name == "Bob Owner"
        assert effective.display.exit_path == "/admin"

    def test_anonymous_never_impersonates(self):
        overlay = ImpersonationOverlay({})
        overlay.start(make_session())

        effective = overlay.resolve_effective_identity(AuthContext.anonymous())

        assert effective.effective_id is None
        assert effective.is_impersonating is False

    def test_display_name_falls_back_to_id(self):
        overlay = ImpersonationOverlay({})
        overlay.start(make_session(effective_display_name="", effective_email=""))

        effective = overlay.resolve_effective_identity(ADMIN)

        assert effective.display.effective_display_name == "user-42"
        assert effective.effective_email is None

    def test_session_stored_as_plain_data(self):
        session = {}
        ImpersonationOverlay(session).start(make_session())
        stored = session["admin_impersonation"]
        assert stored["effective_identity"] == "user-42"
        assert isinstance(stored["started_at"], str)

    def test_reads_json_string(self):
        payload = make_session().model_dump(mode="json")
        session = {"admin_impersonation": json.dumps(payload)}

        effective = ImpersonationOverlay(session).resolve_effective_identity(ADMIN)

        assert effective.effective_id == "user-42"

    def test_custom_session_key_and_exit_path(self):
        session = {}
        overlay = ImpersonationOverlay(session, session_key="viewing_as", exit_path="/admin/users")
        overlay.start(make_session())

        assert "viewing_as" in session
        assert overlay.banner(ADMIN).exit_path == "/admin/users"


class TestInvalidSessions:
    """Malformed or foreign sessions are discarded, never raised."""

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            json.dumps(["a", "list"]),
            json.dumps({"effective_identity": "user-42"}),
            {"original_identity": "admin-1"},
            42,
        ],
    )
    def test_malformed_is_discarded(self, raw, caplog):
        session = {"admin_impersonation": raw}
        overlay = ImpersonationOverlay(session)

        with caplog.at_level("WARNING", logger="rbac.impersonation"):
            effective = overlay.resolve_effective_identity(ADMIN)

        assert effective.effective_id == "admin-1"
        assert effective.is_impersonating is False
        assert "admin_impersonation" not in session
        assert "discarding impersonation session" in caplog.text

    def test_session_of_another_caller_is_discarded(self):
        session = {}
        overlay = ImpersonationOverlay(session)
        overlay.start(make_session(original_identity="admin-2"))

        effective = overlay.resolve_effective_identity(ADMIN)

        assert effective.effective_id == "admin-1"
        assert effective.is_impersonating is False
        assert "admin_impersonation" not in session


class TestExit:

    def test_exit_clears_session(self):
        session = {"other": "kept"}
        overlay = ImpersonationOverlay(session)
        overlay.start(make_session())

        assert overlay.exit() is True
        assert session == {"other": "kept"}
        assert overlay.resolve_effective_identity(ADMIN).effective_id == "admin-1"

    def test_exit_is_idempotent(self):
        session = {"other": "kept"}
        overlay = ImpersonationOverlay(session)

        assert overlay.exit() is False
        assert overlay.exit() is False
        assert session == {"other": "kept"}

    def test_banner_none_when_not_impersonating(self):
        assert ImpersonationOverlay({}).banner(ADMIN) is None

    def test_banner_to_dict(self):
        overlay = ImpersonationOverlay({})
        overlay.start(make_session())
        assert overlay.banner(ADMIN).to_dict() == {
            "effective_display_name": "Bob Owner",
            "effective_email": "bob@acme.example",
            "exit_path": "/admin",
        }
