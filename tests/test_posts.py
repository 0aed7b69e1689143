"""Tests for the posts module (public API, admin API, publish notifications)."""
import time

import jwt
import pytest

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.mailer import EmailBackend, EmailError
from app.blog.models import ROLE_ADMIN, ROLE_VIEWER, ROLE_WRITER, ActivityLog, AdminSettings, Base, User
from app.blog.modules.posts.models import Post
from app.blog.modules.subscribers.models import Subscriber

JWT_SECRET = "test-jwt-secret-for-hs256-signing-0001"


class RecordingBackend(EmailBackend):
    name = "recording"

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, message, sender):
        if self.fail_for & set(message.to):
            raise EmailError("rejected")
        self.sent.append(message)
        return "msg-id"

    def verify(self):
        return None


def _auth(sub: str) -> dict:
    token = jwt.encode({"sub": sub, "exp": int(time.time()) + 3600}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def _post_payload(**overrides) -> dict:
    payload = {
        "title": "Getting Started with Flask",
        "slug": "getting-started-with-flask",
        "description": "A short tour of the framework.",
        "content": "<p>Flask is a small web framework.</p>",
        "coverImage": "https://images.example.com/flask.png",
        "author": "Jane Writer",
        "category": "web-development",
        "tags": ["python", "flask"],
        "isPublished": True,
        "isFeatured": False,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("AUTH_JWT_KEY", JWT_SECRET)
    monkeypatch.setenv("AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.setenv("APP_URL", "http://blog.test")
    monkeypatch.setenv("NOTIFY_ASYNC", "0")
    monkeypatch.setenv("EMAIL_BATCH_DELAY_SECONDS", "0")
    for k in ("AUTH_JWT_ISSUER", "CLERK_SECRET_KEY", "CLERK_WEBHOOK_SECRET"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.extensions["email_backend"] = RecordingBackend()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                User(clerk_id="user_admin", email="admin@example.com", role=ROLE_ADMIN, is_active=True),
                User(clerk_id="user_writer", email="writer@example.com", role=ROLE_WRITER, is_active=True),
                User(clerk_id="user_viewer", email="viewer@example.com", role=ROLE_VIEWER, is_active=True),
                Subscriber(email="reader1@example.com", is_active=True),
                Subscriber(email="reader2@example.com", is_active=True),
                Subscriber(email="gone@example.com", is_active=False),
            ]
        )

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _activity_types(app) -> list[str]:
    with session_scope(app) as s:
        return [a.type for a in s.query(ActivityLog).order_by(ActivityLog.id.asc()).all()]


# ---------- Public create ----------
def test_create_post_requires_writer(client):
    r = client.post("/api/posts", json=_post_payload())
    assert r.status_code == 401

    r = client.post("/api/posts", json=_post_payload(), headers=_auth("user_viewer"))
    assert r.status_code == 403


def test_create_post_missing_fields(client):
    r = client.post("/api/posts", json=_post_payload(coverImage=""), headers=_auth("user_writer"))
    assert r.status_code == 400
    assert r.json["error"] == "Missing required fields"


def test_create_post_duplicate_slug_rejected(app, client):
    r = client.post("/api/posts", json=_post_payload(isPublished=False), headers=_auth("user_writer"))
    assert r.status_code == 201
    assert r.json["slug"] == "getting-started-with-flask"
    assert r.json["tags"] == ["python", "flask"]

    r = client.post("/api/posts", json=_post_payload(title="Another"), headers=_auth("user_writer"))
    assert r.status_code == 409

    with session_scope(app) as s:
        assert s.query(Post).count() == 1


def test_create_published_post_emails_active_subscribers(app, client):
    r = client.post("/api/posts", json=_post_payload(), headers=_auth("user_writer"))
    assert r.status_code == 201

    backend = app.extensions["email_backend"]
    recipients = sorted(m.to[0] for m in backend.sent)
    assert recipients == ["reader1@example.com", "reader2@example.com"]
    assert backend.sent[0].subject == "New Post: Getting Started with Flask"
    assert "http://blog.test/blog/getting-started-with-flask" in backend.sent[0].html
    assert "List-Unsubscribe" in backend.sent[0].headers
    assert "notification_sent" in _activity_types(app)


def test_publish_notification_respects_settings(app, client):
    with session_scope(app) as s:
        s.add(AdminSettings(email_notifications=True, auto_notify_new_post=False))

    r = client.post("/api/posts", json=_post_payload(), headers=_auth("user_writer"))
    assert r.status_code == 201
    assert app.extensions["email_backend"].sent == []


def test_publish_notification_failure_does_not_fail_request(app, client):
    app.extensions["email_backend"] = RecordingBackend(fail_for={"reader1@example.com", "reader2@example.com"})
    r = client.post("/api/posts", json=_post_payload(), headers=_auth("user_writer"))
    assert r.status_code == 201


# ---------- Public reads ----------
def test_public_list_and_detail(client):
    client.post("/api/posts", json=_post_payload(slug="draft-post", isPublished=False), headers=_auth("user_writer"))
    client.post("/api/posts", json=_post_payload(slug="live-post", isFeatured=True), headers=_auth("user_writer"))

    r = client.get("/api/posts")
    assert r.status_code == 200
    assert [p["slug"] for p in r.json] == ["live-post"]

    r = client.get("/api/posts?featured=true&category=web-development")
    assert [p["slug"] for p in r.json] == ["live-post"]

    r = client.get("/api/posts/live-post")
    assert r.status_code == 200
    assert r.json["readingTime"] == 1

    r = client.get("/api/posts/missing")
    assert r.status_code == 404


def test_search(client):
    client.post(
        "/api/posts",
        json=_post_payload(slug="plain", title="Plain post", tags=["misc"], content="nothing here"),
        headers=_auth("user_writer"),
    )
    client.post(
        "/api/posts",
        json=_post_payload(slug="featured", title="Featured post", tags=["misc"], isFeatured=True, content="nothing"),
        headers=_auth("user_writer"),
    )
    client.post(
        "/api/posts",
        json=_post_payload(slug="tagged", title="Tagged", tags=["kubernetes"], content="body"),
        headers=_auth("user_writer"),
    )

    r = client.get("/api/search?q=")
    assert r.json == {"posts": []}

    r = client.get("/api/search?q=POST")
    assert [p["slug"] for p in r.json["posts"]] == ["featured", "plain"]

    r = client.get("/api/search?q=kubernetes")
    assert [p["slug"] for p in r.json["posts"]] == ["tagged"]


def test_search_treats_wildcards_literally(client):
    client.post(
        "/api/posts",
        json=_post_payload(slug="coverage", title="Reaching 100% coverage", tags=["testing"], content="body"),
        headers=_auth("user_writer"),
    )
    client.post(
        "/api/posts",
        json=_post_payload(slug="latency", title="Shaving 100 ms off requests", tags=["perf"], content="body"),
        headers=_auth("user_writer"),
    )
    client.post(
        "/api/posts",
        json=_post_payload(slug="naming", title="snake_case names", tags=["style"], content="body"),
        headers=_auth("user_writer"),
    )
    client.post(
        "/api/posts",
        json=_post_payload(slug="other-naming", title="snakeXcase names", tags=["style"], content="body"),
        headers=_auth("user_writer"),
    )

    r = client.get("/api/search", query_string={"q": "100%"})
    assert [p["slug"] for p in r.json["posts"]] == ["coverage"]

    r = client.get("/api/search", query_string={"q": "snake_case"})
    assert [p["slug"] for p in r.json["posts"]] == ["naming"]

    r = client.get("/api/admin/posts", query_string={"search": "100%"}, headers=_auth("user_writer"))
    assert [p["slug"] for p in r.json["posts"]] == ["coverage"]


def test_search_matches_non_ascii_tag(client):
    client.post(
        "/api/posts",
        json=_post_payload(slug="paris", title="A week in Paris", tags=["café", "travel"], content="body"),
        headers=_auth("user_writer"),
    )

    r = client.get("/api/search", query_string={"q": "café"})
    assert [p["slug"] for p in r.json["posts"]] == ["paris"]


# ---------- Admin ----------
def test_admin_create_duplicate_slug_is_400(client):
    r = client.post("/api/admin/posts", json=_post_payload(author=""), headers=_auth("user_writer"))
    assert r.status_code == 201
    assert r.json["author"] == "Admin"

    r = client.post("/api/admin/posts", json=_post_payload(), headers=_auth("user_writer"))
    assert r.status_code == 400


def test_admin_create_logs_activity(app, client):
    client.post("/api/admin/posts", json=_post_payload(slug="a", isPublished=False), headers=_auth("user_writer"))
    client.post("/api/admin/posts", json=_post_payload(slug="b"), headers=_auth("user_writer"))
    types = _activity_types(app)
    assert types[0] == "post_created"
    assert "post_published" in types


def test_admin_list_filters_and_pagination(client):
    for i in range(3):
        client.post(
            "/api/admin/posts",
            json=_post_payload(slug=f"post-{i}", isPublished=(i != 0), isFeatured=(i == 2)),
            headers=_auth("user_writer"),
        )

    r = client.get("/api/admin/posts?limit=2", headers=_auth("user_writer"))
    assert r.status_code == 200
    assert r.json["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    r = client.get("/api/admin/posts?status=draft", headers=_auth("user_writer"))
    assert [p["slug"] for p in r.json["posts"]] == ["post-0"]

    r = client.get("/api/admin/posts?featured=true", headers=_auth("user_writer"))
    assert [p["slug"] for p in r.json["posts"]] == ["post-2"]


def test_admin_update_publish_and_feature(app, client):
    r = client.post("/api/admin/posts", json=_post_payload(isPublished=False), headers=_auth("user_writer"))
    post_id = r.json["id"]
    assert app.extensions["email_backend"].sent == []

    r = client.put("/api/admin/posts", json={"id": post_id, "isPublished": True}, headers=_auth("user_writer"))
    assert r.status_code == 200
    assert r.json["isPublished"] is True
    assert len(app.extensions["email_backend"].sent) == 2

    r = client.put("/api/admin/posts", json={"id": post_id, "isFeatured": True}, headers=_auth("user_writer"))
    assert r.status_code == 200

    r = client.put("/api/admin/posts", json={"id": post_id, "title": "Renamed"}, headers=_auth("user_writer"))
    assert r.json["title"] == "Renamed"
    assert r.json["slug"] == "getting-started-with-flask"

    types = _activity_types(app)
    assert types.count("post_published") == 1
    assert "post_featured" in types
    assert types[-1] == "post_updated"


def test_admin_update_slug_collision_and_missing(client):
    client.post("/api/admin/posts", json=_post_payload(slug="first"), headers=_auth("user_writer"))
    r = client.post("/api/admin/posts", json=_post_payload(slug="second"), headers=_auth("user_writer"))
    second_id = r.json["id"]

    r = client.put("/api/admin/posts", json={"id": second_id, "slug": "first"}, headers=_auth("user_writer"))
    assert r.status_code == 400

    r = client.put("/api/admin/posts", json={"id": 9999, "title": "x"}, headers=_auth("user_writer"))
    assert r.status_code == 404


def test_admin_delete(app, client):
    r = client.post("/api/admin/posts", json=_post_payload(isPublished=False), headers=_auth("user_writer"))
    post_id = r.json["id"]

    r = client.delete("/api/admin/posts", headers=_auth("user_writer"))
    assert r.status_code == 400

    r = client.delete(f"/api/admin/posts?id={post_id}", headers=_auth("user_writer"))
    assert r.status_code == 200

    r = client.delete(f"/api/admin/posts?id={post_id}", headers=_auth("user_writer"))
    assert r.status_code == 404
    assert _activity_types(app)[-1] == "post_deleted"
