import json
import time

import jwt
import pytest

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.identity import sign_webhook
from app.blog.models import ROLE_ADMIN, ROLE_VIEWER, ROLE_WRITER, Base, User
from app.blog.rbac import has_role

JWT_SECRET = "test-jwt-secret-for-hs256-signing-0001"
WEBHOOK_SECRET = "whsec_dGVzdC13ZWJob29rLXNlY3JldA=="


def _token(sub: str, **claims) -> str:
    payload = {"sub": sub, "exp": int(time.time()) + 3600, **claims}
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("AUTH_JWT_KEY", JWT_SECRET)
    monkeypatch.setenv("AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.setenv("EMAIL_BACKEND", "console")
    monkeypatch.setenv("CLERK_WEBHOOK_SECRET", WEBHOOK_SECRET)
    for k in ("AUTH_JWT_ISSUER", "CLERK_SECRET_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _user(app, clerk_id: str) -> User | None:
    with session_scope(app) as s:
        u = s.query(User).filter(User.clerk_id == clerk_id).one_or_none()
        if u is not None:
            s.expunge(u)
        return u


def _webhook(client, event: dict, *, secret: str = WEBHOOK_SECRET, headers: dict | None = None):
    body = json.dumps(event).encode("utf-8")
    msg_id = "msg_123"
    ts = str(int(time.time()))
    h = {
        "svix-id": msg_id,
        "svix-timestamp": ts,
        "svix-signature": sign_webhook(secret, msg_id, ts, body),
        "Content-Type": "application/json",
    }
    if headers is not None:
        h = headers
    return client.post("/api/webhooks/clerk", data=body, headers=h)


def _clerk_user(user_id: str, email: str) -> dict:
    return {
        "id": user_id,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "image_url": "https://img.example.com/ada.png",
        "primary_email_address_id": "idn_2",
        "email_addresses": [
            {"id": "idn_1", "email_address": "old@example.com"},
            {"id": "idn_2", "email_address": email},
        ],
    }


def test_role_hierarchy():
    admin = User(clerk_id="a", email="a@x.com", role=ROLE_ADMIN, is_active=True)
    writer = User(clerk_id="w", email="w@x.com", role=ROLE_WRITER, is_active=True)
    viewer = User(clerk_id="v", email="v@x.com", role=ROLE_VIEWER, is_active=True)
    inactive = User(clerk_id="i", email="i@x.com", role=ROLE_ADMIN, is_active=False)

    assert has_role(admin, ROLE_WRITER)
    assert has_role(writer, ROLE_WRITER)
    assert not has_role(viewer, ROLE_WRITER)
    assert has_role(viewer, ROLE_VIEWER)
    assert not has_role(inactive, ROLE_VIEWER)
    assert not has_role(None, ROLE_VIEWER)


# ---------- Webhooks ----------
def test_webhook_user_created(app, client):
    r = _webhook(client, {"type": "user.created", "data": _clerk_user("user_ada", "Ada@Example.com")})
    assert r.status_code == 200

    u = _user(app, "user_ada")
    assert u.role == ROLE_VIEWER
    assert u.email == "ada@example.com"
    assert u.first_name == "Ada"


def test_webhook_user_updated_keeps_role(app, client):
    with session_scope(app) as s:
        s.add(User(clerk_id="user_ada", email="ada@example.com", role=ROLE_WRITER, is_active=True))

    r = _webhook(client, {"type": "user.updated", "data": _clerk_user("user_ada", "ada@new.example.com")})
    assert r.status_code == 200
    u = _user(app, "user_ada")
    assert u.role == ROLE_WRITER
    assert u.email == "ada@new.example.com"


def test_webhook_user_deleted_deactivates(app, client):
    with session_scope(app) as s:
        s.add(User(clerk_id="user_ada", email="ada@example.com", role=ROLE_WRITER, is_active=True))

    r = _webhook(client, {"type": "user.deleted", "data": {"id": "user_ada", "deleted": True}})
    assert r.status_code == 200
    assert _user(app, "user_ada").is_active is False


def test_webhook_rejects_bad_signature(app, client):
    r = _webhook(client, {"type": "user.created", "data": _clerk_user("user_x", "x@example.com")}, secret="whsec_b3RoZXI=")
    assert r.status_code == 400
    assert _user(app, "user_x") is None


def test_webhook_requires_svix_headers(client):
    r = _webhook(client, {"type": "user.created", "data": {}}, headers={"Content-Type": "application/json"})
    assert r.status_code == 400


def test_webhook_without_secret_is_500(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'nosecret.db'}")
    monkeypatch.setenv("AUTH_JWT_KEY", JWT_SECRET)
    monkeypatch.delenv("CLERK_WEBHOOK_SECRET", raising=False)
    app = create_app()
    r = _webhook(app.test_client(), {"type": "user.created", "data": {}})
    assert r.status_code == 500


def test_webhook_ignores_other_events(client):
    r = _webhook(client, {"type": "session.created", "data": {"id": "sess_1"}})
    assert r.status_code == 200


# ---------- Sync ----------
def test_sync_from_writer_portal_creates_writer(app, client):
    headers = {
        "Authorization": f"Bearer {_token('user_new', email='New@Example.com')}",
        "Referer": "https://blog.example.com/writer/sign-up",
    }
    r = client.post("/api/users/sync", headers=headers)
    assert r.status_code == 200
    assert r.json["action"] == "created"
    assert r.json["role"] == ROLE_WRITER
    assert r.json["user"]["email"] == "new@example.com"

    r = client.post("/api/users/sync", headers={"Authorization": headers["Authorization"]})
    assert r.json["action"] == "updated"
    assert r.json["role"] == ROLE_WRITER


def test_sync_defaults_to_viewer(client):
    r = client.post("/api/users/sync", headers={"Authorization": f"Bearer {_token('user_plain')}"})
    assert r.status_code == 200
    assert r.json["role"] == ROLE_VIEWER


def test_sync_requires_token(client):
    r = client.post("/api/users/sync")
    assert r.status_code == 401


def test_deactivated_user_is_forbidden(app, client):
    with session_scope(app) as s:
        s.add(User(clerk_id="user_off", email="off@example.com", role=ROLE_ADMIN, is_active=False))
    r = client.get("/api/admin/stats", headers={"Authorization": f"Bearer {_token('user_off')}"})
    assert r.status_code == 403
