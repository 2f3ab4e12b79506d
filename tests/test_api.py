"""HTTP tests for the auth and access routers."""

from unittest.mock import AsyncMock

import pytest
from authlib.integrations.starlette_client import OAuthError
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient

import helpdesk_rbac.router as router_module
import helpdesk_rbac.session as session_module
from helpdesk_rbac.app import create_app
from helpdesk_rbac.engine import RBACEngine, build_engine
from helpdesk_rbac.group_members import GroupMemberDirectory
from helpdesk_rbac.permissions import (
    PermissionService,
    create_admin_permissions,
    create_support_permissions,
    create_user_permissions,
)
from helpdesk_rbac.session import current_group_member_emails, current_permissions
from helpdesk_rbac.settings import Settings

from conftest import ADMIN_EMAIL, VIS_GID

AMY = create_user_permissions("amy@contoso.com", "Amy", ["g-vis"])
TECH = create_support_permissions("tech@contoso.com", "Tech", ["g-tech"], ["Tech"], [])
GM = create_admin_permissions("gm@contoso.com", "GM", ["g-admin"])

AMY_TICKET = {"id": 1, "requester": {"email": "amy@contoso.com"}, "problemType": "Tech"}
BOB_TICKET = {"id": 2, "requester": {"email": "bob@contoso.com"}, "problemType": "HR"}
ADMIN_TICKET = {"id": 3, "requester": {"email": ADMIN_EMAIL}, "problemType": "Tech"}
PENDING_TICKET = {
    "id": 4,
    "requester": {"email": "carol@contoso.com"},
    "problemType": "HR",
    "category": "Request",
    "approvalStatus": "Pending",
}


@pytest.fixture
def settings():
    return Settings(session_secret="test-secret", environment="test")


@pytest.fixture
def engine(settings):
    return build_engine(settings)


@pytest.fixture
def provider():
    fake = AsyncMock()
    fake.name = "microsoft"
    fake.login_redirect.return_value = RedirectResponse("https://login.example/authorize")
    fake.handle_callback.return_value = (
        {"preferred_username": "amy@contoso.com", "name": "Amy", "oid": "oid-1", "tid": "tid-1"},
        "delegated-token",
    )
    return fake


@pytest.fixture
def app(settings, engine, provider):
    return create_app(settings, engine=engine, provider=provider)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def sign_in_as(app, permissions, member_emails=()):
    app.dependency_overrides[current_permissions] = lambda: permissions
    app.dependency_overrides[current_group_member_emails] = lambda: list(member_emails)


class TestPublicRoutes:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_home_anonymous(self, client):
        assert client.get("/").json() == {"logged_in": False, "user": None}

    def test_me_redirects_to_login(self, client):
        response = client.get("/me", follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/login"

    def test_login_redirects_to_provider(self, client, provider):
        response = client.get("/login", follow_redirects=False)
        assert response.headers["location"] == "https://login.example/authorize"
        provider.login_redirect.assert_awaited_once()

    def test_access_requires_session(self, client):
        assert client.post("/access/evaluate", json={"ticket": AMY_TICKET}).status_code == 401


class TestSignIn:
    def test_callback_stores_permissions(self, client, engine):
        engine.sign_in = AsyncMock(return_value=(AMY, ["amy@contoso.com", "bob@contoso.com"]))

        body = client.get("/auth/callback").json()
        assert body["user"]["preferred_username"] == "amy@contoso.com"
        assert body["permissions"]["role"] == "user"
        assert body["permissions"]["group_ids"] == ["g-vis"]
        assert "group_member_emails" not in body

        email, display_name, _ = engine.sign_in.await_args.args
        assert (email, display_name) == ("amy@contoso.com", "Amy")

    def test_session_snapshot_drives_access(self, client, engine):
        engine.sign_in = AsyncMock(return_value=(AMY, ["amy@contoso.com", "bob@contoso.com"]))
        engine.group_member_emails = AsyncMock(return_value=["amy@contoso.com", "bob@contoso.com"])
        client.get("/auth/callback")

        response = client.post("/access/filter", json={"tickets": [AMY_TICKET, BOB_TICKET, ADMIN_TICKET]})
        assert response.json() == {"visible_ids": ["1", "2"]}

    def test_callback_oauth_error(self, client, provider):
        provider.handle_callback.side_effect = OAuthError(error="access_denied")
        response = client.get("/auth/callback")
        assert response.status_code == 400
        assert "access_denied" in response.json()["error"]

    def test_logout_clears_session(self, client, engine):
        engine.sign_in = AsyncMock(return_value=(AMY, []))
        engine.forget = lambda email: forgotten.append(email)
        forgotten = []
        client.get("/auth/callback")
        client.get("/logout")
        assert client.get("/").json()["logged_in"] is False
        assert forgotten == ["amy@contoso.com"]

    def test_refresh_drops_memoized_permissions(self, client, engine):
        engine.sign_in = AsyncMock(return_value=(AMY, []))
        engine.permission_service.invalidate = lambda email=None: invalidated.append(email)
        invalidated = []
        client.get("/auth/callback")

        assert client.post("/auth/refresh").json() == {"ok": True}
        assert invalidated == ["amy@contoso.com"]

    def test_debug_exposes_member_emails(self, engine, provider):
        debug_settings = Settings(session_secret="test-secret", environment="test", debug=True)
        app = create_app(debug_settings, engine=engine, provider=provider)
        engine.sign_in = AsyncMock(return_value=(AMY, ["bob@contoso.com"]))
        engine.group_member_emails = AsyncMock(return_value=["bob@contoso.com"])
        with TestClient(app) as client:
            body = client.get("/auth/callback").json()
        assert body["group_member_emails"] == ["bob@contoso.com"]


class TestAccessRoutes:
    def test_evaluate_own_ticket(self, app, client):
        sign_in_as(app, AMY)
        result = client.post("/access/evaluate", json={"ticket": AMY_TICKET}).json()
        assert result["is_own"] and result["can_view"] and result["can_edit"] and result["can_comment"]
        assert not result["can_delete"]

    def test_evaluate_other_ticket_for_user(self, app, client):
        sign_in_as(app, AMY)
        result = client.post("/access/evaluate", json={"ticket": BOB_TICKET}).json()
        assert not result["can_view"]
        assert not result["can_edit"]

    def test_team_sharing_excludes_admin_tickets(self, app, client):
        sign_in_as(app, AMY, ["bob@contoso.com", ADMIN_EMAIL])
        response = client.post("/access/filter", json={"tickets": [BOB_TICKET, ADMIN_TICKET]})
        assert response.json() == {"visible_ids": ["2"]}

    def test_support_filter_respects_approval_gate(self, app, client):
        sign_in_as(app, TECH)
        response = client.post("/access/filter", json={"tickets": [AMY_TICKET, BOB_TICKET, PENDING_TICKET]})
        assert response.json() == {"visible_ids": ["1", "2"]}

    def test_tickets_without_id_skipped(self, app, client):
        sign_in_as(app, GM)
        response = client.post("/access/filter", json={"tickets": [{"problemType": "Tech"}, AMY_TICKET]})
        assert response.json() == {"visible_ids": ["1"]}

    def test_malformed_ticket_fields_do_not_fail_request(self, app, client):
        sign_in_as(app, AMY, ["bob@contoso.com"])
        malformed = {"id": 5, "originalRequester": 42, "requester": {"email": 7}, "problemType": 5}
        response = client.post("/access/filter", json={"tickets": [malformed, AMY_TICKET]})
        assert response.status_code == 200
        assert response.json() == {"visible_ids": ["1"]}

        result = client.post("/access/evaluate", json={"ticket": malformed}).json()
        assert not result["can_view"]
        assert not result["is_own"]

    def test_config_is_admin_only(self, app, client):
        sign_in_as(app, TECH)
        assert client.get("/access/config").status_code == 403

    def test_config_summary_for_admin(self, app, client):
        sign_in_as(app, GM)
        body = client.get("/access/config").json()
        assert body["admin_groups"] == ["GeneralManagers"]
        assert body["visibility_group_count"] == 0

    def test_invalidate_caches(self, app, client, engine):
        sign_in_as(app, GM)
        engine.invalidate = lambda email=None: calls.append(email)
        calls = []
        assert client.post("/access/cache/invalidate").json() == {"ok": True}
        assert calls == [None]


class TestSessionExpiry:
    def test_stale_snapshot_requires_new_sign_in(self, engine, provider, monkeypatch):
        settings = Settings(session_secret="test-secret", environment="test", role_refresh_interval_seconds=60)
        app = create_app(settings, engine=engine, provider=provider)
        engine.sign_in = AsyncMock(return_value=(AMY, []))
        with TestClient(app) as client:
            assert client.get("/auth/callback").status_code == 200

            real_time = session_module.time.time
            monkeypatch.setattr(session_module.time, "time", lambda: real_time() + 120)
            assert client.post("/access/evaluate", json={"ticket": AMY_TICKET}).status_code == 401


class TestLargeTeamRoster:
    """A real engine behind the callback, with a visibility group of 300 people."""

    MEMBERS = [f"member{i:03d}@contoso.com" for i in range(300)]

    @pytest.fixture
    def roster_app(self, settings, provider, config_loader, directory, monkeypatch):
        directory.get_my_group_ids.return_value = [VIS_GID]
        directory.get_group_member_emails.return_value = list(self.MEMBERS)
        monkeypatch.setattr(router_module, "GraphDirectoryClient", lambda graph: directory)
        rbac_engine = RBACEngine(
            config_loader=config_loader,
            permission_service=PermissionService(config_loader),
            group_directory=GroupMemberDirectory(config_loader),
        )
        return create_app(settings, engine=rbac_engine, provider=provider)

    def test_session_cookie_stays_small(self, roster_app):
        with TestClient(roster_app) as client:
            response = client.get("/auth/callback", follow_redirects=False)
        assert response.status_code == 307
        assert len(response.headers["set-cookie"]) < 4096

    def test_roster_member_ticket_visible(self, roster_app):
        teammate_ticket = {"id": 9, "requester": {"email": "member250@contoso.com"}, "problemType": "Tech"}
        stranger_ticket = {"id": 10, "requester": {"email": "outsider@contoso.com"}, "problemType": "Tech"}
        with TestClient(roster_app) as client:
            client.get("/auth/callback")
            response = client.post("/access/filter", json={"tickets": [teammate_ticket, stranger_ticket]})
        assert response.json() == {"visible_ids": ["9"]}

    def test_roster_dropped_at_logout(self, roster_app):
        with TestClient(roster_app) as client:
            client.get("/auth/callback")
            client.get("/logout")
        assert roster_app.state.engine._rosters == {}
