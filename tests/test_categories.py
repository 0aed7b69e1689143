import time

import jwt
import pytest

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.models import ROLE_ADMIN, ROLE_WRITER, ActivityLog, Base, User
from app.blog.modules.categories.models import DEFAULT_CATEGORY_COLOR, Category
from app.blog.modules.categories.service import seed_default_categories
from app.blog.modules.posts.models import Post

JWT_SECRET = "test-jwt-secret-for-hs256-signing-0001"


def _auth(sub: str) -> dict:
    token = jwt.encode({"sub": sub, "exp": int(time.time()) + 3600}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("AUTH_JWT_KEY", JWT_SECRET)
    monkeypatch.setenv("AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.setenv("EMAIL_BACKEND", "console")
    monkeypatch.setenv("NOTIFY_ASYNC", "0")
    for k in ("AUTH_JWT_ISSUER", "CLERK_SECRET_KEY", "CLERK_WEBHOOK_SECRET"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(User(clerk_id="user_admin", email="admin@example.com", role=ROLE_ADMIN, is_active=True))
        s.add(User(clerk_id="user_writer", email="writer@example.com", role=ROLE_WRITER, is_active=True))

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_create_category_defaults_slug_and_color(app, client):
    r = client.post("/api/admin/categories", json={"name": "Machine Learning"}, headers=_auth("user_admin"))
    assert r.status_code == 201
    assert r.json["slug"] == "machine-learning"
    assert r.json["color"] == DEFAULT_CATEGORY_COLOR

    with session_scope(app) as s:
        log = s.query(ActivityLog).one()
        assert log.type == "category_created"
        assert log.created_by == "user_admin"


def test_create_category_requires_name(client):
    r = client.post("/api/admin/categories", json={"slug": "x"}, headers=_auth("user_admin"))
    assert r.status_code == 400


def test_duplicate_name_or_slug_rejected(client):
    client.post("/api/admin/categories", json={"name": "Python", "slug": "python"}, headers=_auth("user_admin"))

    r = client.post("/api/admin/categories", json={"name": "Python"}, headers=_auth("user_admin"))
    assert r.status_code == 400
    assert r.json["error"] == "Category name or slug already exists"

    r = client.post("/api/admin/categories", json={"name": "Snakes", "slug": "python"}, headers=_auth("user_admin"))
    assert r.status_code == 400


def test_update_category(client):
    r = client.post("/api/admin/categories", json={"name": "Python"}, headers=_auth("user_admin"))
    first_id = r.json["id"]
    client.post("/api/admin/categories", json={"name": "Rust"}, headers=_auth("user_admin"))

    r = client.put(
        "/api/admin/categories",
        json={"id": first_id, "description": "All things Python", "color": "#000000"},
        headers=_auth("user_admin"),
    )
    assert r.status_code == 200
    assert r.json["name"] == "Python"
    assert r.json["color"] == "#000000"

    r = client.put("/api/admin/categories", json={"id": first_id, "slug": "rust"}, headers=_auth("user_admin"))
    assert r.status_code == 400

    r = client.put("/api/admin/categories", json={"id": 999, "name": "Nope"}, headers=_auth("user_admin"))
    assert r.status_code == 404


def test_delete_category_in_use_is_rejected(app, client):
    r = client.post("/api/admin/categories", json={"name": "Web Development"}, headers=_auth("user_admin"))
    category_id = r.json["id"]
    with session_scope(app) as s:
        s.add(Post(title="T", slug="t", description="d", content="c", cover_image="i", category="web-development", tags=[]))

    r = client.delete(f"/api/admin/categories?id={category_id}", headers=_auth("user_admin"))
    assert r.status_code == 400
    assert r.json["error"] == "Cannot delete category that is being used by posts"

    r = client.get("/api/admin/categories?withCounts=true", headers=_auth("user_writer"))
    assert r.json[0]["postCount"] == 1


def test_delete_unused_category(app, client):
    r = client.post("/api/admin/categories", json={"name": "Empty"}, headers=_auth("user_admin"))
    category_id = r.json["id"]

    r = client.delete(f"/api/admin/categories?id={category_id}", headers=_auth("user_admin"))
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.query(Category).count() == 0
        assert s.query(ActivityLog).order_by(ActivityLog.id.desc()).first().type == "category_deleted"


def test_writer_can_list_but_not_modify(client):
    r = client.get("/api/admin/categories", headers=_auth("user_writer"))
    assert r.status_code == 200
    assert r.json == []

    r = client.post("/api/admin/categories", json={"name": "Nope"}, headers=_auth("user_writer"))
    assert r.status_code == 403


def test_seed_default_categories_is_idempotent(app):
    defaults = [
        {"name": "Python", "slug": "python"},
        {"name": "DevOps", "slug": "devops", "color": "#84cc16"},
    ]
    with session_scope(app) as s:
        assert seed_default_categories(s, defaults) == 2
    with session_scope(app) as s:
        assert seed_default_categories(s, defaults) == 0
        assert s.query(Category).count() == 2
