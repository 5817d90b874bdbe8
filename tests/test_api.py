"""HTTP tests: routing, identity headers, and error-to-status mapping."""
import asyncio
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.feeds import _event_stream
from app.main import create_app
from app.services.container import Services
from app.store.memory import InMemoryStore
from tests.helpers import make_user


def auth(uid: str) -> dict[str, str]:
    return {"X-User-Id": uid, "X-User-Name": uid.title(), "X-User-Email": f"{uid}@example.com"}


@pytest.fixture
def api_services():
    return Services.build(InMemoryStore())


@pytest.fixture
def client(api_services):
    with TestClient(create_app(api_services)) as c:
        yield c


def _onboard(client, uid, native, target):
    assert client.post("/api/v1/profiles/me", headers=auth(uid)).status_code == 201
    resp = client.put(
        "/api/v1/profiles/me/languages",
        headers=auth(uid),
        json={"native_language": native, "target_language": target},
    )
    assert resp.status_code == 200


class TestHealth:
    def test_liveness(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_deep(self, client):
        body = client.get("/health/deep").json()
        assert body["status"] == "healthy"
        assert body["store"] == "connected"


class TestProfilesApi:
    def test_missing_identity_is_unauthenticated(self, client):
        resp = client.get("/api/v1/profiles/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthenticated"

    def test_ensure_profile_created_then_existing(self, client):
        first = client.post("/api/v1/profiles/me", headers=auth("alice"))
        second = client.post("/api/v1/profiles/me", headers={"X-User-Id": "alice", "X-User-Name": "Other"})

        assert first.status_code == 201
        assert first.json()["created"] is True
        assert second.status_code == 200
        assert second.json()["profile"]["display_name"] == "Alice"

    def test_unknown_profile_is_not_found(self, client):
        resp = client.get("/api/v1/profiles/me", headers=auth("ghost"))
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_language_validation(self, client):
        client.post("/api/v1/profiles/me", headers=auth("alice"))
        same = client.put(
            "/api/v1/profiles/me/languages",
            headers=auth("alice"),
            json={"native_language": "en", "target_language": "en"},
        )
        unknown = client.put(
            "/api/v1/profiles/me/languages",
            headers=auth("alice"),
            json={"native_language": "en", "target_language": "tlh"},
        )
        assert same.status_code == 400
        assert unknown.status_code == 400
        assert unknown.json()["error"] == "invalid_argument"

    def test_request_body_errors_map_to_invalid_argument(self, client):
        client.post("/api/v1/profiles/me", headers=auth("alice"))
        resp = client.patch("/api/v1/profiles/me", headers=auth("alice"), json={"email": "x@y.z"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_argument"

    def test_block_round_trip(self, client):
        client.post("/api/v1/profiles/me", headers=auth("alice"))
        assert client.put("/api/v1/profiles/me/blocks/bob", headers=auth("alice")).status_code == 204
        assert client.get("/api/v1/profiles/me/blocks", headers=auth("alice")).json() == {
            "blocked_users": ["bob"]
        }
        assert client.delete("/api/v1/profiles/me/blocks/bob", headers=auth("alice")).status_code == 204
        assert client.get("/api/v1/profiles/me", headers=auth("alice")).json()["blocked_users"] == []

    def test_languages_listed(self, client):
        codes = [item["code"] for item in client.get("/api/v1/profiles/languages").json()]
        assert codes == ["pt", "en", "es", "fr", "de", "it", "ja", "ko", "zh", "ar"]


class TestDiscoveryApi:
    def test_lists_partners(self, client):
        _onboard(client, "alice", "pt", "en")
        _onboard(client, "bob", "en", "pt")
        _onboard(client, "carol", "es", "fr")

        resp = client.get("/api/v1/discovery", headers=auth("alice"))

        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()] == ["bob"]
        assert "email" not in resp.json()[0]


class TestConversationsApi:
    def test_open_send_and_list(self, client):
        _onboard(client, "alice", "pt", "en")
        _onboard(client, "bob", "en", "pt")

        opened = client.post("/api/v1/conversations", headers=auth("bob"), json={"other_user_id": "alice"})
        reopened = client.post("/api/v1/conversations", headers=auth("alice"), json={"other_user_id": "bob"})
        assert opened.status_code == 201
        assert reopened.status_code == 200
        cid = opened.json()["conversation"]["id"]
        assert cid == reopened.json()["conversation"]["id"] == "alice_bob"

        sent = client.post(
            f"/api/v1/conversations/{cid}/messages", headers=auth("alice"), json={"text": " hi "}
        )
        assert sent.status_code == 201
        assert sent.json()["text"] == "hi"

        messages = client.get(f"/api/v1/conversations/{cid}/messages", headers=auth("bob")).json()
        assert [m["text"] for m in messages] == ["hi"]

        listing = client.get("/api/v1/conversations", headers=auth("bob")).json()
        assert listing[0]["other_user_id"] == "alice"
        assert listing[0]["other_user"]["display_name"] == "Alice"
        assert listing[0]["last_message_text"] == "hi"

    def test_error_statuses(self, client):
        _onboard(client, "alice", "pt", "en")
        _onboard(client, "bob", "en", "pt")
        _onboard(client, "mallory", "en", "pt")

        assert client.post(
            "/api/v1/conversations", headers=auth("alice"), json={"other_user_id": "alice"}
        ).status_code == 400
        assert client.post(
            "/api/v1/conversations", headers=auth("alice"), json={"other_user_id": "ghost"}
        ).status_code == 404

        client.put("/api/v1/profiles/me/blocks/mallory", headers=auth("bob"))
        denied = client.post("/api/v1/conversations", headers=auth("mallory"), json={"other_user_id": "bob"})
        assert denied.status_code == 403
        assert denied.json()["error"] == "permission_denied"

        cid = client.post(
            "/api/v1/conversations", headers=auth("alice"), json={"other_user_id": "bob"}
        ).json()["conversation"]["id"]
        assert client.get(f"/api/v1/conversations/{cid}", headers=auth("mallory")).status_code == 403
        assert client.get("/api/v1/conversations/nope", headers=auth("alice")).status_code == 404
        assert client.post(
            f"/api/v1/conversations/{cid}/messages", headers=auth("alice"), json={"text": "x" * 501}
        ).status_code == 400
        assert client.get(
            f"/api/v1/conversations/{cid}/messages?limit=0", headers=auth("alice")
        ).status_code == 400


class TestAuthHook:
    def test_rejected_when_secret_not_configured(self, client):
        resp = client.post("/api/v1/hooks/auth/user-created", json={"uid": "alice"})
        assert resp.status_code == 401

    def test_creates_profile_with_valid_secret(self, client):
        settings = MagicMock()
        settings.AUTH_HOOK_SECRET = "s3cret"
        with patch("app.api.hooks.get_settings", return_value=settings):
            bad = client.post(
                "/api/v1/hooks/auth/user-created",
                headers={"X-Hook-Secret": "wrong"},
                json={"uid": "alice"},
            )
            first = client.post(
                "/api/v1/hooks/auth/user-created",
                headers={"X-Hook-Secret": "s3cret"},
                json={"uid": "alice", "display_name": "Alice"},
            )
            again = client.post(
                "/api/v1/hooks/auth/user-created",
                headers={"X-Hook-Secret": "s3cret"},
                json={"uid": "alice", "display_name": "Changed"},
            )

        assert bad.status_code == 401
        assert first.status_code == 201
        assert again.status_code == 200
        assert again.json()["profile"]["display_name"] == "Alice"


class TestEventStream:
    @pytest.mark.asyncio
    async def test_snapshot_keepalive_and_release(self):
        services = Services.build(InMemoryStore())
        await make_user(services, "alice", "pt", "en")
        sub = services.feeds.subscribe_profiles()
        stream = _event_stream(sub, lambda profiles: [p.id for p in profiles], keepalive_seconds=0.01)

        first = await asyncio.wait_for(stream.__anext__(), 1.0)
        assert first == 'event: snapshot\ndata: ["alice"]\n\n'

        assert await asyncio.wait_for(stream.__anext__(), 1.0) == ": keepalive\n\n"

        await make_user(services, "bob", "en", "pt")
        frame = await asyncio.wait_for(stream.__anext__(), 1.0)
        while frame == ": keepalive\n\n":
            frame = await asyncio.wait_for(stream.__anext__(), 1.0)
        assert frame == 'event: snapshot\ndata: ["alice", "bob"]\n\n'

        await stream.aclose()
        assert sub.closed
        assert services.store.changes.listener_count == 0
